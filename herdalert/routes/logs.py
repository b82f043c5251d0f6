import logging

from flask import Blueprint, request, jsonify, Response

from herdalert.log_buffer import get_recent_logs

log = logging.getLogger("herdalert.routes.logs")

bp = Blueprint("logs", __name__)

TAIL_DEFAULT = 200
TAIL_MAX = 500


@bp.route("/logs")
def get_logs():
    tail = request.args.get("tail", default=TAIL_DEFAULT, type=int)
    tail = max(1, min(TAIL_MAX, tail))
    fmt = (request.args.get("format") or "json").strip().lower()

    level_name = (request.args.get("level") or "").strip().upper()
    min_level = logging.NOTSET
    if level_name:
        min_level = logging.getLevelName(level_name)
        if not isinstance(min_level, int):
            return jsonify({"error": f"unknown log level: {level_name}"}), 400
    prefix = (request.args.get("logger") or "").strip()

    lines = get_recent_logs(limit=tail, min_level=min_level, logger_prefix=prefix)

    if fmt == "text":
        text = "\n".join(entry["message"] for entry in lines)
        return Response(text, mimetype="text/plain; charset=utf-8")

    return jsonify({"lines": lines})
