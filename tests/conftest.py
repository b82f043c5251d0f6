import json

import pytest
import websocket

from herdalert import state
from herdalert.connection import ConnectionManager
from herdalert.models import ClientSettings
from herdalert.notifications import NotificationStore


def frame(msg_type, payload=None):
    msg = {"type": msg_type}
    if payload is not None:
        msg["payload"] = payload
    return json.dumps(msg)


def mrl_alert(**overrides):
    alert = {
        "type": "MRL_VIOLATION",
        "severity": "critical",
        "title": "X",
        "message": "Y",
        "data": {"animalId": "A-1", "drugName": "Oxytetracycline"},
    }
    alert.update(overrides)
    return alert


# ── Transport fakes ───────────────────────────────────────────

class FakeWebSocket:
    """websocket.WebSocket stand-in replaying scripted frames."""

    def __init__(self, frames=(), fail_connect=None):
        self.frames = list(frames)
        self.fail_connect = fail_connect
        self.sent = []
        self.closed = False
        self.url = None
        self.options = None

    def connect(self, url, **options):
        self.url = url
        self.options = options
        if self.fail_connect is not None:
            raise self.fail_connect

    def settimeout(self, timeout):
        pass

    def recv(self):
        if self.closed or not self.frames:
            raise websocket.WebSocketConnectionClosedException("socket is already closed.")
        return self.frames.pop(0)

    def send(self, data):
        if self.closed:
            raise websocket.WebSocketConnectionClosedException("socket is already closed.")
        self.sent.append(json.loads(data))

    def close(self):
        self.closed = True


class SocketFactory:
    """Hands out the scripted sockets in order; afterwards every connect is refused."""

    def __init__(self, *sockets):
        self.sockets = list(sockets)
        self.created = []

    def __call__(self, **kwargs):
        if self.sockets:
            ws = self.sockets.pop(0)
        else:
            ws = FakeWebSocket(fail_connect=ConnectionRefusedError("connection refused"))
        self.created.append(ws)
        return ws


class FakeChannel:
    """AlertChannel stand-in driven by the test through simulate_* helpers."""

    def __init__(self, url, token, **kwargs):
        self.url = url
        self.token = token
        self.kwargs = kwargs
        self.attempts = 0
        self.connected = False
        self.closed = False
        self.pushed = []
        self.on_alert = None
        self.on_connect = None
        self.on_disconnect = None
        self.on_failed = None

    def is_connected(self):
        return self.connected and not self.closed

    def connect_and_maintain(self):
        pass

    def push(self, msg_type, payload=None):
        if not self.is_connected():
            raise RuntimeError("alert channel is not connected")
        self.pushed.append((msg_type, payload))

    def close(self, reason="io client disconnect"):
        was_connected = self.is_connected()
        self.closed = True
        self.connected = False
        if was_connected and self.on_disconnect:
            self.on_disconnect(reason)

    def simulate_connected(self, info=None):
        self.connected = True
        self.on_connect(info or {"role": "farmer"})

    def simulate_alert(self, payload):
        self.on_alert(payload)

    def simulate_drop(self, reason="transport close"):
        self.connected = False
        self.on_disconnect(reason)

    def simulate_failed(self):
        self.connected = False
        self.on_failed("connection refused")


class ChannelFactory:
    def __init__(self):
        self.instances = []

    def __call__(self, url, token, **kwargs):
        ch = FakeChannel(url, token, **kwargs)
        self.instances.append(ch)
        return ch

    @property
    def last(self):
        return self.instances[-1]


class ManualTimer:
    """threading.Timer stand-in; the test fires it explicitly."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.function(*self.args, **self.kwargs)


class TimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function, args=None, kwargs=None):
        t = ManualTimer(interval, function, args, kwargs)
        self.timers.append(t)
        return t

    @property
    def last(self):
        return self.timers[-1]


class StaticSession:
    def __init__(self, token):
        self._token = token

    def token(self):
        return self._token


# ── Fixtures ──────────────────────────────────────────────────

@pytest.fixture
def settings():
    return ClientSettings(server_url="http://alerts.test:5000", connect_delay=0)


@pytest.fixture
def channels():
    return ChannelFactory()


@pytest.fixture
def manager(settings, channels):
    return ConnectionManager(settings, channel_factory=channels)


@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def toasts():
    return []


@pytest.fixture
def store(manager, timers, toasts):
    return NotificationStore(manager, StaticSession("tok-123"),
                             on_toast=toasts.append, timer_factory=timers)


@pytest.fixture
def live_store(store, timers, channels):
    """A store whose session is connected and receiving alerts."""
    store.start()
    timers.last.fire()
    channels.last.simulate_connected()
    return store


@pytest.fixture
def restore_state():
    saved = (state.settings, state.manager, state.store)
    yield
    state.settings, state.manager, state.store = saved
