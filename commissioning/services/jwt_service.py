"""
JWT Service: capability token generation and verification.

Capability token: JWT_ACCESS_EXPIRES seconds (default 1 hour)
Algorithm:        HS256

Token payload:
{
    "sub": "<user_id>" | "shared",
    "role": "admin" | "editor" | "viewer" | "none",
    "can_edit": true | false,
    "type": "capability",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Every issued token also has an AuthSession row keyed by ``jti``; a token is
only honoured while that row is active (see auth_service.resolve_session).
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

DEFAULT_ACCESS_EXPIRES = 3600
ALGORITHM = "HS256"
TOKEN_TYPE = "capability"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def generate_capability_token(subject: str, role: str, can_edit: bool) -> dict:
    """Generate a capability token.

    Returns:
        dict with ``token``, ``jti`` and ``expires_at`` (aware datetime).
    """
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=_get_access_expires())
    jti = str(uuid.uuid4())
    payload = {
        "sub": str(subject),
        "role": role,
        "can_edit": bool(can_edit),
        "type": TOKEN_TYPE,
        "iat": now,
        "exp": expires_at,
        "jti": jti,
    }
    token = jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)
    return {"token": token, "jti": jti, "expires_at": expires_at}


def decode_capability_token(token: str) -> dict:
    """
    Decode and verify a capability token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"Expected {TOKEN_TYPE} token, got {payload.get('type')}")
    return payload
