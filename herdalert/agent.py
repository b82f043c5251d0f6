"""
herdalert entrypoint.

Reads runtime config from the environment into the shared state module,
wires the ConnectionManager and NotificationStore for the signed-in session,
registers the Flask blueprints and serves the local dashboard API. The store
is started on boot and stopped on every shutdown path.
"""
import logging
import os

from flask import Flask

from herdalert import state
from herdalert.connection import ConnectionManager
from herdalert.log_buffer import LOG_FORMAT, install_log_handler
from herdalert.models import ClientSettings
from herdalert.notifications import NotificationStore
from herdalert.routes import docs as docs_bp
from herdalert.routes import logs as logs_bp
from herdalert.routes import notifications as notifications_bp
from herdalert.routes import settings as settings_bp
from herdalert.routes.ws import sock
from herdalert.session import SessionStore

log = logging.getLogger("herdalert.agent")


def _env_int(environ, name: str, default: int) -> int:
    raw = environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning("Ignoring %s=%r: not an integer", name, raw)
        return default


def load_settings(environ=None) -> ClientSettings:
    """Build ClientSettings from HERDALERT_* environment variables."""
    environ = os.environ if environ is None else environ
    defaults = ClientSettings()
    return ClientSettings(
        server_url=environ.get("HERDALERT_SERVER_URL", defaults.server_url),
        ws_path=environ.get("HERDALERT_WS_PATH", defaults.ws_path),
        session_file=environ.get("HERDALERT_SESSION_FILE", defaults.session_file),
        max_notifications=max(1, _env_int(environ, "HERDALERT_MAX_NOTIFICATIONS",
                                          defaults.max_notifications)),
        listen_host=environ.get("HERDALERT_LISTEN_HOST", defaults.listen_host),
        listen_port=_env_int(environ, "HERDALERT_LISTEN_PORT", defaults.listen_port),
        log_level=environ.get("HERDALERT_LOG_LEVEL", defaults.log_level).upper(),
    )


def create_app(settings: ClientSettings | None = None,
               manager: ConnectionManager | None = None,
               store: NotificationStore | None = None) -> Flask:
    """Wire the session objects into state and build the Flask app. Does not connect."""
    state.settings = settings or load_settings()
    state.manager = manager or ConnectionManager(state.settings)
    state.store = store or NotificationStore(
        state.manager,
        SessionStore(state.settings.session_file),
        max_notifications=state.settings.max_notifications,
        connect_delay=state.settings.connect_delay,
    )

    app = Flask(__name__)
    app.register_blueprint(notifications_bp.bp)
    app.register_blueprint(logs_bp.bp)
    app.register_blueprint(settings_bp.bp)
    app.register_blueprint(docs_bp.bp)
    sock.init_app(app)
    return app


def main():
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )
    install_log_handler()

    app = create_app(settings)
    log.info("Alert server %s, session file %s", settings.server_url, settings.session_file)
    state.store.start()
    try:
        app.run(host=settings.listen_host, port=settings.listen_port, threaded=True)
    finally:
        state.store.stop()
        log.info("herdalert stopped")


if __name__ == "__main__":
    main()
