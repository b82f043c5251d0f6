"""
Session-scoped owner of the alert channel.

ConnectionManager keeps at most one AlertChannel alive, runs its connect loop
on a daemon thread, tracks the connection state and relays acknowledgments.
It knows nothing about the alert shape; alert payloads are handed to the
caller's on_alert untouched.
"""
import logging
import threading
from datetime import datetime, timezone

from herdalert.channel import AlertChannel, ws_url_for
from herdalert.models import ClientSettings, ConnectionState

log = logging.getLogger("herdalert.connection")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ConnectionManager:
    """
    One instance per session. Hand it to the NotificationStore; do not share
    channels between managers.

    `state` moves between "disconnected", "connecting" and "connected";
    listeners added with add_state_listener() are called with the new state
    on every transition.
    """

    def __init__(self, settings: ClientSettings | None = None, channel_factory=AlertChannel):
        self.settings = settings or ClientSettings()
        self.url = ws_url_for(self.settings.server_url, self.settings.ws_path)
        self.state: ConnectionState = "disconnected"
        self._channel_factory = channel_factory
        self._channel: AlertChannel | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._listeners: list = []

    # ── Connection lifecycle ──────────────────────────────────

    def connect(self, token: str, on_alert=None, on_connect=None, on_disconnect=None) -> AlertChannel:
        """
        Open the alert channel authenticated with `token`.

        Idempotent: a live channel is returned as-is and the new callbacks
        are ignored. A channel that exists but is not live (still
        connecting, retrying, or given up) is closed and replaced.
        """
        with self._lock:
            old = self._channel
            if old is not None:
                if old.is_connected():
                    log.info("Alert channel already connected")
                    return old
                log.info("Replacing stale alert channel")
                self._channel = None
                old.close()

            ch = self._channel_factory(
                self.url, token,
                connect_timeout=self.settings.connect_timeout,
                ping_interval=self.settings.ping_interval,
                reconnect_delay=self.settings.reconnect_delay,
                reconnect_delay_max=self.settings.reconnect_delay_max,
                max_attempts=self.settings.reconnect_attempts,
            )
            self._bind(ch, on_alert, on_connect, on_disconnect)
            self._channel = ch

        self._set_state("connecting")
        self._thread = threading.Thread(target=ch.connect_and_maintain, daemon=True,
                                        name="alert-channel")
        self._thread.start()
        return ch

    def disconnect(self):
        """Close the live channel if there is one. Safe to call repeatedly."""
        with self._lock:
            ch = self._channel
            self._channel = None
        if ch is None:
            return
        ch.close()
        self._set_state("disconnected")
        log.info("Alert channel disconnected")

    def is_connected(self) -> bool:
        ch = self._channel
        return ch is not None and ch.is_connected()

    @property
    def channel(self) -> AlertChannel | None:
        return self._channel

    @property
    def retry_attempts(self) -> int:
        ch = self._channel
        return ch.attempts if ch is not None else 0

    # ── Outbound events ───────────────────────────────────────

    def acknowledge(self, alert_type: str | None, alert_id: str) -> bool:
        """
        Tell the server an alert was seen. Dropped when not connected; there
        is no outbox. Returns whether the event was handed to the socket.
        """
        ch = self._channel
        if ch is None or not ch.is_connected():
            log.debug("Acknowledgment for %s dropped: not connected", alert_id)
            return False
        try:
            ch.push("alert:acknowledge", {
                "alertType": alert_type,
                "alertId": alert_id,
                "timestamp": _utc_timestamp(),
            })
        except RuntimeError as exc:
            log.warning("Acknowledgment for %s not sent: %s", alert_id, exc)
            return False
        return True

    # ── State listeners ───────────────────────────────────────

    def add_state_listener(self, listener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_state_listener(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set_state(self, new_state: ConnectionState):
        if new_state == self.state:
            return
        log.debug("Connection state %s -> %s", self.state, new_state)
        self.state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as exc:
                log.warning("Connection state listener raised: %s", exc)

    def _bind(self, ch: AlertChannel, on_alert, on_connect, on_disconnect):
        """Wire channel events to the caller's callbacks and the state machine."""

        def _on_connect(info, _ch=ch):
            if self._channel is _ch:
                self._set_state("connected")
            if on_connect:
                on_connect(info)

        def _on_disconnect(reason, _ch=ch):
            # An explicit disconnect() has already detached the channel.
            if self._channel is _ch:
                self._set_state("connecting")
            if on_disconnect:
                on_disconnect(reason)

        def _on_failed(error, _ch=ch):
            if self._channel is _ch:
                self._set_state("disconnected")

        ch.on_alert = on_alert
        ch.on_connect = _on_connect
        ch.on_disconnect = _on_disconnect
        ch.on_failed = _on_failed
