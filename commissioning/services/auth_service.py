"""
Auth Service: sign-up, sign-in, sign-out, shared edit password, role requests.

Two credential designs feed the same capability model:
  - Role-based: email/password sign-in; ``can_edit`` iff the user's role is
    admin or editor.
  - Password-based: a shared edit password (bcrypt hash in template
    settings) unlocks edit mode with role "editor".

Either way the caller receives a short-lived capability token backed by an
AuthSession row. Sign-out revokes the row; the token is dead from then on.
Plain passwords are never stored or logged.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone

import jwt
from email_validator import EmailNotValidError, validate_email
from flask import current_app

from commissioning.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from commissioning.models import db
from commissioning.models.auth import EDIT_ROLES, ROLES, AuthSession, RoleRequest, User, UserRole
from commissioning.models.template import SETTING_EDIT_PASSWORD_HASH
from commissioning.services import jwt_service
from commissioning.services.template_service import get_setting, set_setting
from commissioning.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MIN_EDIT_PASSWORD_LENGTH = 4
SHARED_SUBJECT = "shared"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_email(email) -> str:
    return str(email or "").strip().lower()


def can_edit_role(role: str | None) -> bool:
    return role in EDIT_ROLES


# ── Accounts ──────────────────────────────────────────────────────────────────


def sign_up(email: str, password: str, display_name: str | None = None) -> User:
    """Create an account with no role. Roles are granted by an admin."""
    try:
        email = validate_email(str(email or ""), check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"})
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too short"},
        )
    if User.query.filter_by(email=email).first():
        raise ConflictError("User", "email", email)

    user = User(email=email, password_hash=hash_password(password), display_name=display_name)
    db.session.add(user)
    db.session.commit()
    logger.info("User signed up: id=%s", user.id, extra={"user_id": user.id})
    return user


def create_user_with_role(email: str, password: str, role: str) -> User:
    """Create an account and assign *role* in one step (CLI / bootstrap)."""
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    user = sign_up(email, password)
    db.session.add(UserRole(user_id=user.id, role=role))
    db.session.commit()
    return user


def _open_session(user_id: int | None, role: str, method: str) -> dict:
    can_edit = can_edit_role(role)
    subject = str(user_id) if user_id is not None else SHARED_SUBJECT
    issued = jwt_service.generate_capability_token(subject, role, can_edit)
    session = AuthSession(
        user_id=user_id,
        jti=issued["jti"],
        role=role,
        can_edit=can_edit,
        method=method,
        expires_at=issued["expires_at"],
    )
    db.session.add(session)
    db.session.commit()
    return {
        "token": issued["token"],
        "token_type": "Bearer",
        "role": role,
        "can_edit": can_edit,
        "expires_at": issued["expires_at"].isoformat(),
        "session_id": session.id,
    }


def sign_in(email: str, password: str) -> dict:
    """Verify an email/password pair and open a session.

    Raises:
        AuthenticationError: unknown email, inactive user or wrong password.
    """
    user = User.query.filter_by(email=_normalize_email(email)).first()
    if not user or not user.is_active or not verify_password(password or "", user.password_hash):
        logger.warning("Failed sign-in attempt")
        raise AuthenticationError("Invalid email or password")

    user.last_login_at = _utcnow()
    role = user.role or "none"
    result = _open_session(user.id, role, "password")
    result["user"] = user.to_dict()
    logger.info("User signed in: id=%s role=%s", user.id, role, extra={"user_id": user.id})
    return result


def sign_out(session: AuthSession) -> None:
    """Revoke *session*. Idempotent."""
    if not session.is_active:
        return
    session.is_active = False
    session.revoked_at = _utcnow()
    db.session.commit()
    logger.info("Session revoked: %s", session.id)


def resolve_session(token: str) -> AuthSession:
    """Return the active AuthSession behind a capability token.

    Raises:
        AuthenticationError: malformed, expired or revoked token.
    """
    if not token:
        raise AuthenticationError("Authentication required")
    try:
        payload = jwt_service.decode_capability_token(token)
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("Session expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError("Invalid token") from exc

    session = AuthSession.query.filter_by(jti=payload.get("jti")).first()
    if session is None or not session.is_active or session.is_expired:
        raise AuthenticationError("Session is no longer active")
    return session


def current_role(session: AuthSession | None) -> str:
    """admin | editor | viewer | none. Re-reads the user's role so role
    changes apply to live sessions."""
    if session is None:
        return "none"
    if session.user_id is None:
        return session.role
    user = db.session.get(User, session.user_id)
    if user is None or not user.is_active:
        return "none"
    return user.role or "none"


# ── Shared edit password ──────────────────────────────────────────────────────


def _edit_password_hash() -> str | None:
    stored = get_setting(SETTING_EDIT_PASSWORD_HASH)
    if stored:
        return stored
    bootstrap = current_app.config.get("EDIT_PASSWORD")
    if not bootstrap:
        return None
    hashed = hash_password(bootstrap)
    set_setting(SETTING_EDIT_PASSWORD_HASH, hashed)
    db.session.commit()
    logger.info("Bootstrapped shared edit password from configuration")
    return hashed


def verify_edit_password(password: str) -> bool:
    return verify_password(password or "", _edit_password_hash())


def unlock(password: str) -> dict:
    """Open an edit session with the shared password.

    Raises:
        AuthenticationError: wrong password, or no shared password configured.
    """
    if not verify_edit_password(password):
        logger.warning("Failed edit-mode unlock attempt")
        raise AuthenticationError("Incorrect password")
    return _open_session(None, "editor", "shared")


def change_edit_password(admin_password: str, new_password: str, confirm_password: str) -> None:
    """Replace the shared edit password. Requires the configured admin password."""
    admin_expected = current_app.config.get("ADMIN_PASSWORD")
    supplied = str(admin_password or "").encode("utf-8")
    if not admin_expected or not hmac.compare_digest(supplied, admin_expected.encode("utf-8")):
        raise AuthenticationError("Incorrect admin password")
    if not isinstance(new_password, str) or len(new_password) < MIN_EDIT_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_EDIT_PASSWORD_LENGTH} characters",
            details={"new_password": "too short"},
        )
    if new_password != confirm_password:
        raise ValidationError("Passwords do not match", details={"confirm_password": "mismatch"})

    set_setting(SETTING_EDIT_PASSWORD_HASH, hash_password(new_password))
    # Revoke outstanding shared-password sessions
    AuthSession.query.filter_by(method="shared", is_active=True).update(
        {"is_active": False, "revoked_at": _utcnow()},
    )
    db.session.commit()
    logger.info("Shared edit password changed")


# ── Role requests ─────────────────────────────────────────────────────────────


def request_role(user_id: int, requested_role: str) -> RoleRequest:
    """File a pending role request for a signed-in user."""
    if requested_role not in ROLES:
        raise ValidationError(f"requested_role must be one of: {', '.join(ROLES)}")
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    existing = RoleRequest.query.filter_by(user_id=user_id, status="pending").first()
    if existing:
        raise ConflictError("RoleRequest", "user_id", user_id,
                            message="A role request is already pending")

    req = RoleRequest(user_id=user.id, email=user.email, requested_role=requested_role)
    db.session.add(req)
    db.session.commit()
    logger.info("Role request filed: user=%s role=%s", user.id, requested_role)
    return req
