"""
Persistent WebSocket channel to the alert server.

The client opens a single WebSocket to the server's alert endpoint, carrying
the session bearer token in the upgrade request. The server pushes
compliance/safety alerts over it for the lifetime of the session; the client
sends keepalive pings and alert acknowledgments back over the same socket.

Message framing (JSON, one object per text frame):

  {"type": "<event>", "payload": <value>}     # payload omitted when empty

Server -> client:
  connected          handshake accepted; payload is server metadata
  alert              compliance/safety alert object
  connect_error      handshake rejected; payload {"message": "<str>"}
  disconnect         server is ending the session; payload is a reason string
  pong               reply to ping, diagnostic only

Client -> server:
  ping               keepalive while connected
  alert:acknowledge  {"alertType", "alertId", "timestamp"}

Delivery is best effort. Nothing is buffered while the channel is down and
nothing missed during an outage is replayed.
"""
import json
import logging
import threading
import time

import websocket  # websocket-client

log = logging.getLogger("herdalert.channel")

_CONNECT_TIMEOUT        = 5       # seconds for WS handshake
_PING_INTERVAL          = 30      # seconds between keepalive pings
_RECONNECT_DELAY        = 1.0     # first reconnect delay in seconds
_RECONNECT_DELAY_MAX    = 5.0     # backoff cap in seconds
_MAX_RECONNECT_ATTEMPTS = 5       # consecutive connection errors before giving up


class ConnectError(Exception):
    """The server rejected the session handshake."""


def ws_url_for(server_url: str, path: str = "") -> str:
    """Turn an http(s) origin into the ws(s) URL of the alert endpoint."""
    ws_url = server_url.replace("https://", "wss://").replace("http://", "ws://")
    if path:
        ws_url = ws_url.rstrip("/") + "/" + path.lstrip("/")
    return ws_url


class AlertChannel:
    """
    Manages the WebSocket connection for one session.

    connect_and_maintain() runs the connect/recv loop and is meant for a
    daemon thread. Event callbacks (on_alert, on_connect, on_disconnect,
    on_failed) are plain attributes and are invoked on that thread; any
    exception they raise is logged and swallowed so a broken handler cannot
    kill the transport.

    Retry policy: every connection error (refused socket, rejected upgrade,
    connect_error frame) bumps `attempts`; the server's `connected` frame
    resets it to 0. Reaching max_attempts closes the channel for good and
    sets `failed`; only a new channel can try again.

    Thread-safety: _ws is guarded by _lock.
    """

    def __init__(self, url: str, token: str, *,
                 connect_timeout: float = _CONNECT_TIMEOUT,
                 ping_interval: float = _PING_INTERVAL,
                 reconnect_delay: float = _RECONNECT_DELAY,
                 reconnect_delay_max: float = _RECONNECT_DELAY_MAX,
                 max_attempts: int = _MAX_RECONNECT_ATTEMPTS,
                 ws_factory=None):
        self.url   = url
        self.token = token
        self.connect_timeout     = connect_timeout
        self.ping_interval       = ping_interval
        self.reconnect_delay     = reconnect_delay
        self.reconnect_delay_max = reconnect_delay_max
        self.max_attempts        = max_attempts

        self.on_alert = None
        self.on_connect = None
        self.on_disconnect = None
        self.on_failed = None

        self.server_info: dict = {}     # metadata from the last `connected` frame
        self.attempts  = 0              # consecutive connection errors
        self.failed    = False
        self.last_pong: float | None = None

        self._ws_factory = ws_factory or websocket.WebSocket
        self._ws = None
        self._lock = threading.Lock()
        self._running = True
        self._stop = threading.Event()
        self.connected_event = threading.Event()   # set while the socket is open

    # ── Public API ────────────────────────────────────────────

    def is_connected(self) -> bool:
        return self.connected_event.is_set()

    def push(self, msg_type: str, payload=None):
        """Send a fire-and-forget event. Raises RuntimeError when not connected."""
        msg: dict = {"type": msg_type}
        if payload is not None:
            msg["payload"] = payload
        self._send_raw(msg)

    def close(self, reason: str = "io client disconnect"):
        """Shut the channel down. No callbacks other than on_disconnect fire afterwards."""
        self._running = False
        self._stop.set()
        self._drop_socket()
        self._mark_disconnected(reason)

    # ── Connect loop ──────────────────────────────────────────

    def connect_and_maintain(self):
        """
        Blocking loop: connect, pump frames until the socket drops, then
        reconnect with capped exponential backoff. Returns once the channel
        is closed or the retry ceiling is hit.
        """
        while self._running:
            try:
                self._connect()
                reason = self._recv_loop()
            except Exception as exc:
                if not self._running:
                    return
                # A rejected handshake is not a session, so no on_disconnect.
                self.connected_event.clear()
                if not self._connection_error(exc):
                    return
                continue

            if not self._running:
                return
            self._mark_disconnected(reason)
            delay = self._backoff(self.attempts + 1)
            log.info("Alert channel dropped (%s), reconnecting in %.1fs", reason, delay)
            self._stop.wait(delay)

    def _connect(self):
        ws = self._ws_factory(enable_multithread=True)
        ws.connect(self.url, timeout=self.connect_timeout, header={
            "Authorization": f"Bearer {self.token}",
        })
        # The handshake timeout would otherwise stick to recv() and drop an
        # idle but healthy connection.
        ws.settimeout(None)
        with self._lock:
            if not self._running:
                ws.close()
                raise RuntimeError("channel closed during connect")
            self._ws = ws
        self.connected_event.set()
        log.info("Alert channel connected to %s", self.url)

        threading.Thread(target=self._ping_loop, args=(ws,), daemon=True,
                         name="alert-ping").start()

    def _connection_error(self, exc: Exception) -> bool:
        """Count a connection error. Returns False once the channel gave up."""
        self.attempts += 1
        log.error("Alert channel connection error: %s", exc)
        if self.attempts >= self.max_attempts:
            log.error("Max reconnection attempts (%d) reached, giving up", self.max_attempts)
            self.failed = True
            self.close("max reconnection attempts")
            self._invoke(self.on_failed, str(exc))
            return False
        delay = self._backoff(self.attempts)
        log.info("Retrying alert channel in %.1fs (attempt %d/%d)",
                 delay, self.attempts, self.max_attempts)
        self._stop.wait(delay)
        return self._running

    def _backoff(self, attempt: int) -> float:
        return min(self.reconnect_delay * 2 ** max(attempt - 1, 0), self.reconnect_delay_max)

    # ── Recv loop ─────────────────────────────────────────────

    def _recv_loop(self) -> str:
        """Pump frames until the socket closes. Returns the disconnect reason."""
        reason = "transport close"
        try:
            while self._running:
                ws = self._ws
                if ws is None:
                    break
                try:
                    raw = ws.recv()
                except websocket.WebSocketConnectionClosedException:
                    break
                except Exception as exc:
                    if self._running:
                        log.info("Alert channel recv error: %s", exc)
                    reason = "transport error"
                    break

                if raw is None:
                    continue
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8", errors="replace")
                if raw == "":
                    # websocket-client returns "" on clean close
                    log.info("Alert channel: empty recv (clean close)")
                    break
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    log.warning("Alert channel: bad JSON frame dropped")
                    continue
                if not isinstance(msg, dict):
                    log.warning("Alert channel: non-object frame dropped")
                    continue
                if msg.get("type") == "disconnect":
                    reason = str(msg.get("payload") or "io server disconnect")
                    break
                self._dispatch(msg)
        finally:
            self._drop_socket()
        return reason

    def _dispatch(self, msg: dict):
        msg_type = msg.get("type", "")
        payload  = msg.get("payload")

        if msg_type == "connected":
            self.attempts = 0
            self.server_info = payload if isinstance(payload, dict) else {}
            log.info("Alert channel handshake accepted: %s", self.server_info)
            self._invoke(self.on_connect, self.server_info)
            return
        if msg_type == "alert":
            if not self._running:
                return
            if not isinstance(payload, dict):
                log.warning("Alert channel: non-object alert payload dropped")
                return
            log.info("Alert received: %s", payload.get("type"))
            self._invoke(self.on_alert, payload)
            return
        if msg_type == "pong":
            self.last_pong = time.monotonic()
            log.debug("Alert channel pong")
            return
        if msg_type == "connect_error":
            message = payload.get("message") if isinstance(payload, dict) else payload
            raise ConnectError(message or "connection refused")
        log.debug("Alert channel: ignoring %r frame", msg_type)

    # ── Internals ─────────────────────────────────────────────

    def _invoke(self, handler, *args):
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as exc:
            log.warning("Alert channel handler %s raised: %s",
                        getattr(handler, "__name__", handler), exc)

    def _mark_disconnected(self, reason: str):
        with self._lock:
            was_connected = self.connected_event.is_set()
            self.connected_event.clear()
        if was_connected:
            log.info("Alert channel disconnected: %s", reason)
            self._invoke(self.on_disconnect, reason)

    def _drop_socket(self):
        with self._lock:
            ws = self._ws
            self._ws = None
        if ws is not None:
            try:
                ws.close()
            except Exception:
                pass

    def _send_raw(self, msg: dict):
        with self._lock:
            ws = self._ws
        if ws is None or not self.connected_event.is_set():
            raise RuntimeError("alert channel is not connected")
        try:
            ws.send(json.dumps(msg))
        except Exception as exc:
            raise RuntimeError(f"alert channel send failed: {exc}") from exc

    def _ping_loop(self, ws):
        # Bound to one socket so a reconnect never leaves two pingers running.
        while self._running and self._ws is ws:
            if self._stop.wait(self.ping_interval):
                return
            if self._ws is not ws:
                return
            try:
                self.push("ping")
            except RuntimeError as exc:
                log.debug("Keepalive ping failed: %s", exc)
                return
