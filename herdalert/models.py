"""Alert, notification and settings types shared by the client and the dashboard API."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

Severity = Literal["critical", "urgent", "warning", "success", "info"]
ConnectionState = Literal["disconnected", "connecting", "connected"]
StorePhase = Literal["idle", "connecting", "live", "reconnecting", "failed"]

_ALERT_FIELDS = ("type", "severity", "title", "message")


@dataclass
class Alert:
    """
    A compliance/safety alert pushed by the server.

    Only type/severity/title/message are interpreted (and only for display).
    Everything else the server sends (data, action, timestamp, recipient,
    broadcast, ...) is kept verbatim in `extra` and handed back unchanged.
    Missing fields stay None; the producer owns the payload contract.
    """
    type: str | None = None
    severity: str | None = None
    title: str | None = None
    message: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict) -> "Alert":
        return cls(
            type=d.get("type"),
            severity=d.get("severity"),
            title=d.get("title"),
            message=d.get("message"),
            extra={k: v for k, v in d.items() if k not in _ALERT_FIELDS},
        )

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out.update({
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
        })
        return out


@dataclass
class Notification:
    """Client-side wrapper around an Alert adding read/arrival state."""
    id: str
    alert: Alert
    read: bool = False
    received_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self):
        return {
            "id": self.id,
            "alert": self.alert.to_dict(),
            "read": self.read,
            "received_at": self.received_at,
        }


@dataclass
class ClientSettings:
    """
    Runtime settings for the alert client.

    Connection:
      server_url          — REST/WS origin of the alert server (http(s) or ws(s))
      ws_path             — path of the alert stream endpoint on server_url
      session_file        — JSON user-info file holding the bearer token
      connect_timeout     — seconds for the WS handshake

    Transport policy:
      ping_interval       — seconds between keepalive pings while connected
      reconnect_delay     — first reconnect delay in seconds
      reconnect_delay_max — backoff cap in seconds
      reconnect_attempts  — consecutive connection errors before giving up

    Store:
      max_notifications   — retained notification history (newest first)
      connect_delay       — debounce before the first connect, in seconds

    Dashboard:
      listen_host / listen_port — bind address of the local dashboard API
      log_level                 — DEBUG | INFO | WARNING | ERROR
    """
    server_url: str = "http://localhost:5000"
    ws_path: str = "/ws/alerts"
    session_file: str = "~/.herdalert/user_info.json"
    connect_timeout: float = 5.0

    ping_interval: float = 30.0
    reconnect_delay: float = 1.0
    reconnect_delay_max: float = 5.0
    reconnect_attempts: int = 5

    max_notifications: int = 50
    connect_delay: float = 0.1

    listen_host: str = "127.0.0.1"
    listen_port: int = 8000
    log_level: str = "INFO"

    def to_dict(self):
        return {
            "server_url": self.server_url,
            "ws_path": self.ws_path,
            "session_file": self.session_file,
            "connect_timeout": self.connect_timeout,
            "ping_interval": self.ping_interval,
            "reconnect_delay": self.reconnect_delay,
            "reconnect_delay_max": self.reconnect_delay_max,
            "reconnect_attempts": self.reconnect_attempts,
            "max_notifications": self.max_notifications,
            "connect_delay": self.connect_delay,
            "listen_host": self.listen_host,
            "listen_port": self.listen_port,
            "log_level": self.log_level,
        }
