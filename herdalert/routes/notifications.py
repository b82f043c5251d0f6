import logging

from flask import Blueprint, jsonify

from herdalert import state

log = logging.getLogger("herdalert.routes.notifications")

bp = Blueprint("notifications", __name__)


@bp.route("/status")
def status():
    store = state.store
    manager = state.manager
    return jsonify({
        "server_url": state.settings.server_url,
        "connection": manager.state if manager else "disconnected",
        "retry_attempts": manager.retry_attempts if manager else 0,
        "is_connected": store.is_connected if store else False,
        "phase": store.phase if store else "idle",
        "unread_count": store.unread_count if store else 0,
    })


@bp.route("/notifications")
def list_notifications():
    return jsonify(state.store.snapshot())


@bp.route("/notifications/<notif_id>/read", methods=["POST"])
def mark_read(notif_id):
    store = state.store
    if store.get(notif_id) is None:
        return jsonify({"error": "not found"}), 404
    changed = store.mark_as_read(notif_id)
    return jsonify({"ok": True, "changed": changed, "unread_count": store.unread_count})


@bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    state.store.mark_all_as_read()
    return jsonify({"ok": True, "unread_count": 0})


@bp.route("/notifications", methods=["DELETE"])
def clear_notifications():
    state.store.clear_all()
    return jsonify({"ok": True})
