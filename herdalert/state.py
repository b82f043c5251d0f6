"""
Shared runtime state for the herdalert dashboard process.

Route modules import from here so they all see the same session objects.
Everything is set once at startup by herdalert/agent.py (create_app) and read
by routes at call time.
"""
from typing import TYPE_CHECKING
from herdalert.models import ClientSettings
if TYPE_CHECKING:
    from herdalert.connection import ConnectionManager
    from herdalert.notifications import NotificationStore

# ── Runtime config (set by agent.py at startup) ──────────────
settings: ClientSettings = ClientSettings()

# ── Session objects ───────────────────────────────────────────
manager: "ConnectionManager | None" = None
store:   "NotificationStore | None" = None
