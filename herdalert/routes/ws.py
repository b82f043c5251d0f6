"""
Live feed for browser dashboards.

A dashboard connects to /ws and receives the store's events as JSON frames:

  {"type": "state", "payload": <NotificationStore.snapshot()>}
  {"type": "toast", "payload": <Toast.to_dict()>}
  {"type": "ping"}                                   # idle keepalive

It may send commands back over the same socket:

  {"type": "mark_as_read", "id": "<notification id>"}
  {"type": "mark_all_as_read"}
  {"type": "clear_all"}
"""
import json
import logging
import queue
import time

from flask_sock import Sock
from simple_websocket import ConnectionClosed

from herdalert import state

log = logging.getLogger("herdalert.routes.ws")

sock = Sock()   # bound to the Flask app in agent.py

_QUEUE_MAX     = 256   # events buffered per dashboard before dropping
_POLL_INTERVAL = 0.5   # seconds to wait for a command before flushing events
_IDLE_PING     = 25    # seconds without traffic before a keepalive frame


def _handle_command(store, msg: dict):
    cmd = msg.get("type")
    if cmd == "mark_as_read":
        store.mark_as_read(str(msg.get("id", "")))
    elif cmd == "mark_all_as_read":
        store.mark_all_as_read()
    elif cmd == "clear_all":
        store.clear_all()
    else:
        log.debug("Dashboard WS: unknown command %r", cmd)


def serve_dashboard(ws, store, poll_interval: float = _POLL_INTERVAL):
    """
    Pump store events to one dashboard socket and apply its commands until
    the socket closes. Runs in the flask-sock handler thread.
    """
    events: queue.Queue = queue.Queue(maxsize=_QUEUE_MAX)

    def _listener(event, payload):
        try:
            events.put_nowait({"type": event, "payload": payload})
        except queue.Full:
            log.warning("Dashboard WS: event queue full, dropping %s event", event)

    unsubscribe = store.subscribe(_listener)
    last_sent = time.monotonic()
    try:
        ws.send(json.dumps({"type": "state", "payload": store.snapshot()}))
        while True:
            raw = ws.receive(timeout=poll_interval)
            if raw:
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    log.warning("Dashboard WS: bad JSON command")
                    msg = None
                if isinstance(msg, dict):
                    _handle_command(store, msg)

            while True:
                try:
                    event = events.get_nowait()
                except queue.Empty:
                    break
                ws.send(json.dumps(event))
                last_sent = time.monotonic()

            if time.monotonic() - last_sent >= _IDLE_PING:
                ws.send(json.dumps({"type": "ping"}))
                last_sent = time.monotonic()
    except ConnectionClosed as exc:
        log.info("Dashboard WS closed: %s", exc)
    finally:
        unsubscribe()


@sock.route("/ws")
def dashboard_ws(ws):
    log.info("Dashboard WS connected")
    serve_dashboard(ws, state.store)
