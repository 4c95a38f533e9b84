"""JSON error envelope shared by every endpoint.

Every error the API returns has the same shape::

    {"error": "<message>", "code": "ERR_...", "details": {...}}

``details`` is omitted when empty.

Usage
-----
    from commissioning.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Category not found")
    return api_error(E.CONFLICT_VERSION, "Template changed", details={"current_version": 4})
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes. The HTTP status for each lives in ``STATUS_BY_CODE``."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"    # missing field / param
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"      # present but rejected

    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"            # no / dead session
    FORBIDDEN = "ERR_FORBIDDEN"                        # session lacks the capability

    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"

    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"          # stale template version

    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA_TYPE = "ERR_UNSUPPORTED_MEDIA_TYPE"
    RATE_LIMITED = "ERR_RATE_LIMITED"

    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_VERSION: 409,
    E.PAYLOAD_TOO_LARGE: 413,
    E.UNSUPPORTED_MEDIA_TYPE: 415,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Build ``(response, status)`` for an error.

    ``status`` overrides the code's default; unknown codes fall back to 400.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)
