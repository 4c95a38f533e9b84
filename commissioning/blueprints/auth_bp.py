"""
Auth Blueprint: sessions, shared edit password, role requests.

Endpoints:
  POST /api/v1/auth/sign-up: Create an account (no role until an admin grants one)
  POST /api/v1/auth/sign-in: Email + password → capability token
  POST /api/v1/auth/sign-out: Revoke the caller's session
  GET  /api/v1/auth/me: Current role: admin | editor | viewer | none
  POST /api/v1/auth/unlock: Shared edit password → capability token
  POST /api/v1/auth/edit-password: Change the shared edit password (admin password required)
  POST /api/v1/auth/role-requests: Signed-in user asks for a role
"""

import logging

from flask import Blueprint, g, jsonify, request

from commissioning.auth import load_optional_session, require_session
from commissioning.models import db
from commissioning.models.auth import User
from commissioning.services import auth_service
from commissioning.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# Accounts
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/sign-up", methods=["POST"])
def sign_up():
    """
    Body: { "email": "...", "password": "...", "display_name": "..." }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("password"):
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    user = auth_service.sign_up(data["email"], data["password"], data.get("display_name"))
    return jsonify(user.to_dict()), 201


@auth_bp.route("/sign-in", methods=["POST"])
def sign_in():
    """
    Body: { "email": "...", "password": "..." }

    Returns token, role and can_edit. Wrong credentials → 401.
    """
    data = request.get_json(silent=True) or {}
    if not data.get("email") or not data.get("password"):
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    return jsonify(auth_service.sign_in(data["email"], data["password"])), 200


@auth_bp.route("/sign-out", methods=["POST"])
@require_session
def sign_out():
    auth_service.sign_out(g.auth_session)
    return jsonify({"message": "Signed out"}), 200


@auth_bp.route("/me", methods=["GET"])
def me():
    """Current role. Anonymous callers get role "none" rather than 401."""
    session = load_optional_session()
    role = auth_service.current_role(session)
    body = {
        "role": role,
        "can_edit": auth_service.can_edit_role(role),
        "session": session.to_dict() if session else None,
        "user": None,
    }
    if session is not None and session.user_id is not None:
        user = db.session.get(User, session.user_id)
        body["user"] = user.to_dict() if user else None
    return jsonify(body), 200


# ═══════════════════════════════════════════════════════════════
# Shared edit password
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/unlock", methods=["POST"])
def unlock():
    """
    Body: { "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("password"):
        return api_error(E.VALIDATION_REQUIRED, "Password is required")

    return jsonify(auth_service.unlock(data["password"])), 200


@auth_bp.route("/edit-password", methods=["POST"])
def change_edit_password():
    """
    Body: { "admin_password": "...", "new_password": "...", "confirm_password": "..." }
    """
    data = request.get_json(silent=True) or {}
    auth_service.change_edit_password(
        data.get("admin_password", ""),
        data.get("new_password", ""),
        data.get("confirm_password", ""),
    )
    return jsonify({"message": "Edit password changed"}), 200


# ═══════════════════════════════════════════════════════════════
# Role requests
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/role-requests", methods=["POST"])
@require_session
def request_role():
    """
    Body: { "requested_role": "editor" }
    """
    if g.auth_session.user_id is None:
        return api_error(E.FORBIDDEN, "Sign in with an account to request a role")

    data = request.get_json(silent=True) or {}
    requested_role = data.get("requested_role", "")
    if not requested_role:
        return api_error(E.VALIDATION_REQUIRED, "requested_role is required")

    req = auth_service.request_role(g.auth_session.user_id, requested_role)
    return jsonify(req.to_dict()), 201
