"""
History Blueprint: item change trail.

Endpoints:
  GET  /api/v1/history?item_id=&limit=: Newest first, with current item text
  POST /api/v1/history: Append a batch (any signed-in session)

POST body:
    {"entries": [{"item_id": "...", "change_type": "updated",
                  "field_name": "ok", "old_value": false, "new_value": true}]}
"""

from flask import Blueprint, jsonify, request

from commissioning.auth import require_session
from commissioning.blueprints import parse_limit, request_actor
from commissioning.services import history_service

history_bp = Blueprint("history", __name__, url_prefix="/api/v1/history")


@history_bp.route("", methods=["GET"])
def list_history():
    entries = history_service.list_history(
        item_id=request.args.get("item_id") or None,
        limit=parse_limit(),
    )
    return jsonify(entries), 200


@history_bp.route("", methods=["POST"])
@require_session
def append_history():
    data = request.get_json(silent=True) or {}
    written = history_service.append_entries(data.get("entries"), actor=request_actor())
    return jsonify(written), 201
