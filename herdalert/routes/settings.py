import logging

from flask import Blueprint, request, jsonify

from herdalert import state

log = logging.getLogger("herdalert.routes.settings")

bp = Blueprint("settings", __name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def apply_log_level(level_name: str):
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.getLogger().setLevel(level)


@bp.route("/settings")
def get_settings():
    return jsonify(state.settings.to_dict())


@bp.route("/settings", methods=["POST"])
def update_settings():
    data = request.json or {}

    if "log_level" in data:
        level = str(data["log_level"]).upper()
        if level not in _LOG_LEVELS:
            return jsonify({"error": "log_level must be DEBUG, INFO, WARNING, or ERROR"}), 400
        state.settings.log_level = level
        apply_log_level(level)

    if "max_notifications" in data:
        try:
            cap = int(data["max_notifications"])
        except (ValueError, TypeError):
            return jsonify({"error": "max_notifications must be an integer"}), 400
        if cap < 1:
            return jsonify({"error": "max_notifications must be at least 1"}), 400
        state.settings.max_notifications = cap
        # Takes effect on the next arrival; the current history is not trimmed.
        if state.store is not None:
            state.store.max_notifications = cap

    log.info("Settings updated: %s", state.settings.to_dict())
    return jsonify(state.settings.to_dict())
