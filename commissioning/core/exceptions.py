"""
Application-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
(see ``commissioning.create_app``) and get consistent HTTP status codes
everywhere. The editor library catches the same types at its call sites and
turns them into notifications.

Usage:
    from commissioning.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="TemplateItem", resource_id=item_id)
    raise ValidationError("Category name is required", details={"name": "empty"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "TemplateCategory").
        resource_id: The key that was looked up. Included in logs.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write would clobber newer data or duplicate a unique value.

    Maps to HTTP 409. Template saves raise it when the caller's
    ``expected_version`` no longer matches the stored template version.

    Args:
        resource: Model name.
        field: The field in conflict (``version``, ``email`` ...).
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value=None, message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class AuthenticationError(Exception):
    """Raised when a credential or token is missing, wrong or expired. HTTP 401."""


class PermissionDeniedError(Exception):
    """Raised when the caller is authenticated but lacks the capability. HTTP 403."""


class TemplateStoreError(Exception):
    """Raised when the Template Store cannot be reached or answers with an error."""


class StorageQuotaError(Exception):
    """Raised by key-value storage when a write would exceed its quota.

    Args:
        required: Bytes the write needed.
        quota: Configured capacity in bytes.
    """

    def __init__(self, required: int, quota: int) -> None:
        self.required = required
        self.quota = quota
        super().__init__(f"storage quota exceeded: need {required} bytes, quota {quota} bytes")


class ImageProcessingError(Exception):
    """Raised when a single image cannot be accepted (too large, undecodable).

    Args:
        filename: Name of the rejected file.
        reason: Short explanation surfaced to the user.
    """

    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f"{filename}: {reason}")
