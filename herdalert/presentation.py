"""
Toast presentation for incoming alerts.

Severity drives presentation only: duration, background and icon. It never
affects delivery or ordering. Every mapping has a default arm, so unknown or
missing severities render as "info" rather than erroring.
"""
from dataclasses import dataclass

from herdalert.models import Alert

TOAST_POSITION = "top-right"
LONG_DURATION_MS = 10000
SHORT_DURATION_MS = 5000

_RED   = "linear-gradient(135deg, #dc2626 0%, #991b1b 100%)"
_AMBER = "linear-gradient(135deg, #f59e0b 0%, #d97706 100%)"
_GREEN = "linear-gradient(135deg, #10b981 0%, #059669 100%)"
_BLUE  = "linear-gradient(135deg, #3b82f6 0%, #2563eb 100%)"


@dataclass(frozen=True)
class Toast:
    """A transient on-screen notice derived from one alert."""
    title: str | None
    message: str | None
    severity: str | None
    duration_ms: int
    background: str
    icon: str
    position: str = TOAST_POSITION
    color: str = "#fff"
    border_radius: str = "10px"
    padding: str = "16px"

    def to_dict(self):
        return {
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "duration_ms": self.duration_ms,
            "position": self.position,
            "icon": self.icon,
            "style": {
                "background": self.background,
                "color": self.color,
                "border_radius": self.border_radius,
                "padding": self.padding,
            },
        }


def toast_duration(severity: str | None) -> int:
    if severity == "critical" or severity == "urgent":
        return LONG_DURATION_MS
    return SHORT_DURATION_MS


def toast_background(severity: str | None) -> str:
    if severity == "critical":
        return _RED
    elif severity == "urgent" or severity == "warning":
        return _AMBER
    elif severity == "success":
        return _GREEN
    else:
        return _BLUE


def toast_icon(severity: str | None) -> str:
    if severity == "critical":
        return "🚨"
    elif severity == "urgent" or severity == "warning":
        return "⚠️"
    elif severity == "success":
        return "✅"
    else:
        return "ℹ️"


def build_toast(alert: Alert) -> Toast:
    severity = alert.severity
    return Toast(
        title=alert.title,
        message=alert.message,
        severity=severity,
        duration_ms=toast_duration(severity),
        background=toast_background(severity),
        icon=toast_icon(severity),
    )
