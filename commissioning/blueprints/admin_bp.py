"""
Admin Blueprint: user roles and role requests.

All endpoints require the admin role.

Endpoints:
  GET    /api/v1/admin/user-roles: List role assignments
  POST   /api/v1/admin/user-roles: Assign a role by email
  PUT    /api/v1/admin/user-roles/<id>: Change a role
  DELETE /api/v1/admin/user-roles/<id>: Remove a role
  GET    /api/v1/admin/role-requests?status=pending: List role requests
  POST   /api/v1/admin/role-requests/<id>/approve: Grant the requested role
  POST   /api/v1/admin/role-requests/<id>/reject: Reject the request
"""

import logging

from flask import Blueprint, jsonify, request

from commissioning.auth import require_role
from commissioning.models.auth import REQUEST_STATUSES
from commissioning.services import admin_service
from commissioning.utils.errors import E, api_error

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


# ═══════════════════════════════════════════════════════════════
# User roles
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/user-roles", methods=["GET"])
@require_role("admin")
def list_user_roles():
    return jsonify(admin_service.list_user_roles()), 200


@admin_bp.route("/user-roles", methods=["POST"])
@require_role("admin")
def add_user_role():
    """
    Body: { "email": "...", "role": "admin|editor|viewer" }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("role"):
        return api_error(E.VALIDATION_REQUIRED, "email and role are required")

    assignment = admin_service.add_user_role(data["email"], data["role"])
    return jsonify(assignment.to_dict()), 201


@admin_bp.route("/user-roles/<int:role_id>", methods=["PUT"])
@require_role("admin")
def update_user_role(role_id):
    data = request.get_json(silent=True) or {}
    if not data.get("role"):
        return api_error(E.VALIDATION_REQUIRED, "role is required")

    assignment = admin_service.update_user_role(role_id, data["role"])
    return jsonify(assignment.to_dict()), 200


@admin_bp.route("/user-roles/<int:role_id>", methods=["DELETE"])
@require_role("admin")
def delete_user_role(role_id):
    admin_service.delete_user_role(role_id)
    return jsonify({"message": "Role deleted"}), 200


# ═══════════════════════════════════════════════════════════════
# Role requests
# ═══════════════════════════════════════════════════════════════
@admin_bp.route("/role-requests", methods=["GET"])
@require_role("admin")
def list_role_requests():
    status = request.args.get("status", "pending")
    if status not in REQUEST_STATUSES:
        return api_error(E.VALIDATION_INVALID, f"status must be one of: {', '.join(REQUEST_STATUSES)}")
    return jsonify(admin_service.list_role_requests(status)), 200


@admin_bp.route("/role-requests/<int:request_id>/approve", methods=["POST"])
@require_role("admin")
def approve_role_request(request_id):
    return jsonify(admin_service.approve_role_request(request_id).to_dict()), 200


@admin_bp.route("/role-requests/<int:request_id>/reject", methods=["POST"])
@require_role("admin")
def reject_role_request(request_id):
    return jsonify(admin_service.reject_role_request(request_id).to_dict()), 200
