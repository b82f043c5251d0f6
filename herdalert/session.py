"""
Read-only access to the persisted login session.

The dashboard login flow stores the authenticated user's info (including the
bearer token) as a JSON document. The alert client only reads it, once, at
start-up; token rotation mid-session is not observed.
"""
import json
import logging
import os

log = logging.getLogger("herdalert.session")


class SessionStore:
    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def user_info(self) -> dict | None:
        """Return the stored user info, or None when absent or unreadable."""
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            log.error("Error reading session file %s: %s", self.path, exc)
            return None
        if not isinstance(data, dict):
            log.error("Session file %s does not hold a JSON object", self.path)
            return None
        return data

    def token(self) -> str | None:
        info = self.user_info()
        if not info:
            return None
        token = info.get("token")
        return token if isinstance(token, str) and token else None
