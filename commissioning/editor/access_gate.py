"""
Access Gate: the capability check in front of edit mode.

State machine::

    LOCKED   --submit(right credential)-->  UNLOCKED
    LOCKED   --submit(wrong credential)-->  LOCKED     (error notification)
    UNLOCKED --exit()------------------->  LOCKED     (on_lock fires once)

Holding a Capability is the only way to edit: it carries the short-lived
token the Template Store checks on save. Credentials are handed to the
verifier and never kept.

Verifiers:
    PasswordVerifier: shared edit password (in-process, via auth_service)
    RoleVerifier: email/password sign-in; can edit iff role is admin/editor
HTTP counterparts live in commissioning.integrations.template_gateway.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from commissioning.core.exceptions import (
    AuthenticationError,
    PermissionDeniedError,
    TemplateStoreError,
    ValidationError,
)
from commissioning.editor.types import Notification

logger = logging.getLogger(__name__)


class GateState:
    LOCKED = "locked"
    UNLOCKED = "unlocked"


@dataclass(frozen=True)
class Capability:
    """Proof that edit mode was entered with a valid credential."""

    token: str
    role: str
    can_edit: bool
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime | None = None

    @classmethod
    def from_session(cls, session: dict) -> "Capability":
        """Build from an auth session payload (``auth_service`` / ``/auth/*``)."""
        expires_at = session.get("expires_at")
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at)
        return cls(
            token=session["token"],
            role=session.get("role") or "none",
            can_edit=bool(session.get("can_edit")),
            expires_at=expires_at,
        )


@dataclass(frozen=True)
class SignInCredential:
    email: str
    password: str = field(repr=False)


class CredentialVerifier:
    """Turns a credential into a Capability.

    ``verify`` raises AuthenticationError for a wrong credential and
    TemplateStoreError when the auth backend cannot be reached.
    ``release`` ends the capability's session.
    """

    def verify(self, credential) -> Capability:
        raise NotImplementedError

    def release(self, capability: Capability) -> None:
        return None


class _AppVerifier(CredentialVerifier):
    def __init__(self, app):
        self.app = app

    def _call(self, fn, *args):
        """Run an auth_service call in an app context; DB errors become TemplateStoreError."""
        from commissioning.models import db

        with self.app.app_context():
            try:
                return fn(*args)
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error("Auth backend failed: %s", exc)
                raise TemplateStoreError(f"Auth store unavailable: {exc}") from exc

    def release(self, capability):
        from commissioning.services import auth_service

        def _sign_out(token):
            try:
                session = auth_service.resolve_session(token)
            except AuthenticationError:
                return
            auth_service.sign_out(session)

        self._call(_sign_out, capability.token)


class PasswordVerifier(_AppVerifier):
    """Shared edit password checked against the stored bcrypt hash."""

    def verify(self, credential) -> Capability:
        from commissioning.services import auth_service

        if not isinstance(credential, str) or not credential:
            raise ValidationError("Password is required")
        return Capability.from_session(self._call(auth_service.unlock, credential))


class RoleVerifier(_AppVerifier):
    """Email/password sign-in; the role claim decides ``can_edit``."""

    def verify(self, credential) -> Capability:
        from commissioning.services import auth_service

        if not isinstance(credential, SignInCredential):
            raise ValidationError("Email and password are required")
        return Capability.from_session(
            self._call(auth_service.sign_in, credential.email, credential.password)
        )


class AccessGate:
    """Edit-mode gate.

    Args:
        verifier: CredentialVerifier used by ``submit``.
        on_lock:  Called with the outgoing Capability exactly once per
                  UNLOCKED → LOCKED transition (template write-back).
        notify:   ``(Notification) -> None``; defaults to collecting them in
                  ``self.notifications``.
    """

    def __init__(
        self,
        verifier: CredentialVerifier,
        on_lock: Callable[[Capability], None] | None = None,
        notify: Callable[[Notification], None] | None = None,
    ):
        self.verifier = verifier
        self.on_lock = on_lock
        self.notifications: list[Notification] = []
        self.notify = notify or self.notifications.append
        self._state = GateState.LOCKED
        self._capability: Capability | None = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def capability(self) -> Capability | None:
        return self._capability

    @property
    def can_edit(self) -> bool:
        return self._state == GateState.UNLOCKED and self._capability is not None

    def submit(self, credential) -> Capability | None:
        """Verify *credential*; unlock on success.

        A failed submit leaves state and capability untouched. A successful
        submit while already unlocked replaces the capability.
        """
        try:
            capability = self.verifier.verify(credential)
        except (AuthenticationError, ValidationError) as exc:
            logger.info("Edit mode credential rejected: %s", exc)
            self.notify(Notification("error", str(exc)))
            return None
        except TemplateStoreError as exc:
            logger.error("Credential check failed: %s", exc)
            self.notify(Notification("error", f"Could not verify credentials: {exc}"))
            return None

        if not capability.can_edit:
            logger.info("Role '%s' may not edit", capability.role)
            self._release(capability)
            self.notify(Notification("error", "Your role does not allow editing"))
            return None

        previous = self._capability
        self._capability = capability
        self._state = GateState.UNLOCKED
        if previous is not None:
            self._release(previous)
        self.notify(Notification("success", "Edit mode enabled"))
        return capability

    def exit(self) -> bool:
        """Leave edit mode. Returns False if the gate was already locked."""
        if self._state == GateState.LOCKED:
            return False

        capability = self._capability
        self._state = GateState.LOCKED
        self._capability = None
        try:
            if self.on_lock is not None:
                self.on_lock(capability)
        except (TemplateStoreError, PermissionDeniedError, AuthenticationError) as exc:
            logger.error("Write-back on edit-mode exit failed: %s", exc)
            self.notify(Notification("error", f"Failed to save changes: {exc}"))
        finally:
            self._release(capability)
        return True

    def _release(self, capability: Capability) -> None:
        try:
            self.verifier.release(capability)
        except (TemplateStoreError, AuthenticationError) as exc:
            logger.warning("Could not end edit session: %s", exc)
