"""
Commissioning Report Editor
Authentication & Authorization decorators.

Provides:
    - Bearer capability-token parsing (Authorization: Bearer <token>)
    - require_session: any active session
    - require_edit:    session whose capability allows template editing
    - require_role:    minimum role level (admin > editor > viewer)

The resolved session is exposed on ``g.auth_session`` and the live role on
``g.current_role`` for the duration of the request. Nothing else is kept
between requests.
"""

import functools
import logging

from flask import g, request

from commissioning.core.exceptions import AuthenticationError
from commissioning.services import auth_service
from commissioning.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Role hierarchy: admin > editor > viewer
ROLE_HIERARCHY = {
    "admin": {"admin", "editor", "viewer"},
    "editor": {"editor", "viewer"},
    "viewer": {"viewer"},
    "none": set(),
}


def get_bearer_token() -> str | None:
    """Extract the capability token from the Authorization header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def load_optional_session():
    """Resolve the request's session if a valid token is present, else None."""
    token = get_bearer_token()
    if not token:
        return None
    try:
        return auth_service.resolve_session(token)
    except AuthenticationError:
        return None


def _authenticate():
    """Resolve the session into ``g``; return an error response or None."""
    try:
        session = auth_service.resolve_session(get_bearer_token())
    except AuthenticationError as exc:
        return api_error(E.UNAUTHENTICATED, str(exc))
    g.auth_session = session
    g.current_role = auth_service.current_role(session)
    return None


def require_session(f):
    """Decorator: require any active session."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        err = _authenticate()
        if err:
            return err
        return f(*args, **kwargs)
    return decorated


def require_edit(f):
    """Decorator: require a session whose current role may edit the template."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        err = _authenticate()
        if err:
            return err
        if not auth_service.can_edit_role(g.current_role):
            logger.warning("Edit denied for role '%s' on %s", g.current_role, request.path)
            return api_error(E.FORBIDDEN, "Edit permission required")
        return f(*args, **kwargs)
    return decorated


def require_role(minimum_role: str):
    """
    Decorator: require a minimum role level.

    Usage:
        @require_role("admin")
        def list_user_roles(): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            err = _authenticate()
            if err:
                return err
            allowed = ROLE_HIERARCHY.get(g.current_role, set())
            if minimum_role not in allowed:
                logger.warning(
                    "Access denied: role '%s' tried to access '%s'-level endpoint %s",
                    g.current_role, minimum_role, request.path,
                )
                return api_error(E.FORBIDDEN, "Insufficient permissions")
            return f(*args, **kwargs)
        return decorated
    return decorator
