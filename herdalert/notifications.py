"""
Client-side notification state.

NotificationStore turns the raw alert stream from the ConnectionManager into
what dashboards render: a newest-first history capped at max_notifications,
an unread badge counter, a connection indicator and a toast per alert. Marking
a single notification read sends the acknowledgment back to the server.

The unread counter is kept on its own (up on arrival, down on an individual
read, zeroed by read-all/clear). Evicting an unread entry off the end of the
history does not lower it, so the badge can read higher than the number of
unread entries still listed.
"""
import logging
import threading
import time

from herdalert.connection import ConnectionManager
from herdalert.models import Alert, Notification, StorePhase
from herdalert.presentation import Toast, build_toast

log = logging.getLogger("herdalert.notifications")

_MAX = 50              # retained history
_CONNECT_DELAY = 0.1   # seconds; collapses back-to-back start/stop cycles


def _log_toast(toast: Toast):
    log.info("%s %s: %s", toast.icon, toast.title, toast.message)


class NotificationStore:
    """
    One store per authenticated session: start() on login/mount, stop() on
    logout/unmount.

    Listeners added with subscribe() are called as listener(event, payload):
      ("state", snapshot())   after every change
      ("toast", toast dict)   for every received alert
    They run on whichever thread produced the change.
    """

    def __init__(self, manager: ConnectionManager, session=None, *,
                 max_notifications: int = _MAX,
                 connect_delay: float = _CONNECT_DELAY,
                 on_toast=None,
                 timer_factory=threading.Timer):
        self.manager = manager
        self.session = session
        self.max_notifications = max_notifications
        self.connect_delay = connect_delay
        self.on_toast = on_toast or _log_toast

        self.notifications: list[Notification] = []
        self.unread_count = 0
        self.is_connected = False
        self.phase: StorePhase = "idle"

        self._timer_factory = timer_factory
        self._timer = None
        self._lock = threading.RLock()
        self._listeners: list = []
        self._last_stamp = 0

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self, token: str | None = None) -> bool:
        """
        Schedule the connection for this session. The token defaults to the
        session store's; without one this is a no-op. Returns whether a
        connection was scheduled.
        """
        if token is None and self.session is not None:
            token = self.session.token()
        if not token:
            log.info("No session token, realtime alerts disabled")
            return False
        with self._lock:
            self._cancel_timer()
            self.phase = "connecting"
            self._timer = self._timer_factory(self.connect_delay, self._connect, args=(token,))
            self._timer.daemon = True
            self._timer.start()
        self._notify_state()
        return True

    def stop(self):
        """Cancel a pending connect, drop the connection and detach listeners."""
        with self._lock:
            self._cancel_timer()
            self.phase = "idle"
        self.manager.remove_state_listener(self._on_connection_state)
        self.manager.disconnect()
        self._set_connected(False)

    def _connect(self, token: str):
        with self._lock:
            self._timer = None
            if self.phase != "connecting":
                return
            existing = self.manager.channel
            self.manager.add_state_listener(self._on_connection_state)
            ch = self.manager.connect(token, self._handle_alert,
                                      self._handle_connect, self._handle_disconnect)
            # An already-live channel is handed back without a new on_connect.
            resumed = ch is existing and ch.is_connected()
            if resumed:
                self.phase = "live"
                self.is_connected = True
        if resumed:
            self._notify_state()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ── Channel callbacks ─────────────────────────────────────

    def _handle_alert(self, payload: dict):
        alert = Alert.from_dict(payload)
        with self._lock:
            if self.phase == "idle":
                return
            n = Notification(id=self._next_id(alert), alert=alert)
            self.notifications.insert(0, n)
            if len(self.notifications) > self.max_notifications:
                self.notifications[:] = self.notifications[:self.max_notifications]
            self.unread_count += 1
        self._show_toast(alert)
        self._notify_state()

    def _handle_connect(self, info: dict):
        log.info("Realtime alerts live: %s", info)
        with self._lock:
            if self.phase == "idle":
                return
            self.phase = "live"
        self._set_connected(True)

    def _handle_disconnect(self, reason: str):
        log.info("Realtime alerts interrupted: %s", reason)
        with self._lock:
            if self.phase != "idle":
                self.phase = "reconnecting"
        self._set_connected(False)

    def _on_connection_state(self, state: str):
        if state != "disconnected":
            return
        with self._lock:
            if self.phase == "idle":
                return
            self.phase = "failed"
        log.warning("Realtime alerts unavailable: connection gave up")
        self._set_connected(False)

    # ── Operations ────────────────────────────────────────────

    def mark_as_read(self, notification_id: str) -> bool:
        """
        Mark one notification read and acknowledge it to the server. Every
        call on a retained notification counts against the badge and is
        acknowledged again, read or not. Unknown (or already evicted) ids are
        left alone. Returns whether the id was found.
        """
        with self._lock:
            n = self._find(notification_id)
            if n is None:
                return False
            n.read = True
            self.unread_count = max(0, self.unread_count - 1)
            alert_type = n.alert.type
        self.manager.acknowledge(alert_type, notification_id)
        self._notify_state()
        return True

    def mark_all_as_read(self):
        """Local only; no acknowledgments are sent."""
        with self._lock:
            for n in self.notifications:
                n.read = True
            self.unread_count = 0
        self._notify_state()

    def clear_all(self):
        """Local only; the server is not told."""
        with self._lock:
            self.notifications.clear()
            self.unread_count = 0
        self._notify_state()

    def get(self, notification_id: str) -> Notification | None:
        with self._lock:
            return self._find(notification_id)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "notifications": [n.to_dict() for n in self.notifications],
                "unread_count": self.unread_count,
                "is_connected": self.is_connected,
                "phase": self.phase,
            }

    # ── Listeners ─────────────────────────────────────────────

    def subscribe(self, listener):
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    def _emit(self, event: str, payload: dict):
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as exc:
                log.warning("Notification listener raised: %s", exc)

    def _notify_state(self):
        if self._listeners:
            self._emit("state", self.snapshot())

    # ── Internals ─────────────────────────────────────────────

    def _show_toast(self, alert: Alert):
        toast = build_toast(alert)
        try:
            self.on_toast(toast)
        except Exception as exc:
            log.warning("Toast sink raised: %s", exc)
        self._emit("toast", toast.to_dict())

    def _set_connected(self, connected: bool):
        with self._lock:
            if self.is_connected == connected:
                changed = False
            else:
                self.is_connected = connected
                changed = True
        if changed:
            self._notify_state()

    def _next_id(self, alert: Alert) -> str:
        # type + arrival time in ms, nudged forward so two alerts of the same
        # type in one millisecond still get distinct ids
        stamp = max(int(time.time() * 1000), self._last_stamp + 1)
        self._last_stamp = stamp
        return f"{alert.type}_{stamp}"

    def _find(self, notification_id: str) -> Notification | None:
        for n in self.notifications:
            if n.id == notification_id:
                return n
        return None
