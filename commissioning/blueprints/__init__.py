"""
Commissioning Report Editor
Blueprint registry.
"""

from flask import request


def parse_limit(default_limit=200, max_limit=1000):
    """Read the ``limit`` query parameter, capped at *max_limit*."""
    try:
        limit = int(request.args.get("limit", default_limit))
    except (ValueError, TypeError):
        return default_limit
    return max(1, min(limit, max_limit))


def request_actor():
    """Label for the caller used in the history trail."""
    from flask import g

    session = getattr(g, "auth_session", None)
    if session is None:
        return "anonymous"
    if session.user_id is None:
        return "shared-editor"
    return f"user:{session.user_id}"
