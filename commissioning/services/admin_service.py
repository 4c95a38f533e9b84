"""
Admin Service: user role management and role request decisions.

Callers are admin-only (enforced by the blueprint). Every mutation commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from commissioning.core.exceptions import ConflictError, NotFoundError, ValidationError
from commissioning.models import db
from commissioning.models.auth import ROLES, RoleRequest, User, UserRole

logger = logging.getLogger(__name__)


def _validate_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}", details={"role": role})
    return role


def list_user_roles() -> list[dict]:
    rows = UserRole.query.join(User).order_by(User.email).all()
    return [r.to_dict() for r in rows]


def add_user_role(email: str, role: str) -> UserRole:
    """Assign *role* to an existing user found by email."""
    _validate_role(role)
    email = str(email or "").strip().lower()
    if not email:
        raise ValidationError("email is required", details={"email": "required"})
    user = User.query.filter_by(email=email).first()
    if user is None:
        raise NotFoundError("User", email)
    if user.role_assignment is not None:
        raise ConflictError("UserRole", "user_id", user.id,
                            message="A role is already assigned to this user")

    assignment = UserRole(user_id=user.id, role=role)
    db.session.add(assignment)
    db.session.commit()
    logger.info("Role %s assigned to user %s", role, user.id)
    return assignment


def update_user_role(role_id: int, role: str) -> UserRole:
    _validate_role(role)
    assignment = db.session.get(UserRole, role_id)
    if assignment is None:
        raise NotFoundError("UserRole", role_id)
    assignment.role = role
    db.session.commit()
    logger.info("Role %s changed to %s", role_id, role)
    return assignment


def delete_user_role(role_id: int) -> None:
    assignment = db.session.get(UserRole, role_id)
    if assignment is None:
        raise NotFoundError("UserRole", role_id)
    db.session.delete(assignment)
    db.session.commit()
    logger.info("Role %s deleted", role_id)


def list_role_requests(status: str = "pending") -> list[dict]:
    rows = (
        RoleRequest.query.filter_by(status=status)
        .order_by(RoleRequest.created_at.desc())
        .all()
    )
    return [r.to_dict() for r in rows]


def _pending_request(request_id: int) -> RoleRequest:
    req = db.session.get(RoleRequest, request_id)
    if req is None:
        raise NotFoundError("RoleRequest", request_id)
    if req.status != "pending":
        raise ConflictError("RoleRequest", "status", req.status,
                            message=f"Request already {req.status}")
    return req


def approve_role_request(request_id: int) -> RoleRequest:
    """Grant the requested role (replacing any existing one) and close the request."""
    req = _pending_request(request_id)
    assignment = UserRole.query.filter_by(user_id=req.user_id).first()
    if assignment is None:
        db.session.add(UserRole(user_id=req.user_id, role=req.requested_role))
    else:
        assignment.role = req.requested_role
    req.status = "approved"
    req.decided_at = datetime.now(timezone.utc)
    db.session.commit()
    logger.info("Role request %s approved (%s)", req.id, req.requested_role)
    return req


def reject_role_request(request_id: int) -> RoleRequest:
    req = _pending_request(request_id)
    req.status = "rejected"
    req.decided_at = datetime.now(timezone.utc)
    db.session.commit()
    logger.info("Role request %s rejected", req.id)
    return req
