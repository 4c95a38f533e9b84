"""
Template Store and history sink adapters used by the editor.

    TemplateStore: load() / save(template, capability)
    DatabaseTemplateStore: in-process, calls template_service inside an app context
    HistorySink: record(entries, capability)
    DatabaseHistorySink: in-process, calls history_service

HTTP implementations of the same contracts live in
commissioning.integrations.template_gateway.

Store failures surface as TemplateStoreError; version conflicts as
ConflictError; a capability that no longer allows editing as
PermissionDeniedError.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from commissioning.core.exceptions import AuthenticationError, PermissionDeniedError, TemplateStoreError
from commissioning.editor.types import Template

logger = logging.getLogger(__name__)


class TemplateStore:
    def load(self) -> Template:
        raise NotImplementedError

    def save(self, template: Template, capability) -> Template:
        raise NotImplementedError


class HistorySink:
    def record(self, entries: list[dict], capability=None) -> None:
        raise NotImplementedError


def _capability_actor(capability):
    """Resolve *capability* to its live session, or raise PermissionDeniedError."""
    from commissioning.services import auth_service

    try:
        session = auth_service.resolve_session(capability.token)
    except AuthenticationError as exc:
        raise PermissionDeniedError(f"Edit session is no longer valid: {exc}") from exc
    if not auth_service.can_edit_role(auth_service.current_role(session)):
        raise PermissionDeniedError("Edit permission required")
    return "shared-editor" if session.user_id is None else f"user:{session.user_id}"


class DatabaseTemplateStore(TemplateStore):
    """Template Store backed directly by the application database."""

    def __init__(self, app):
        self.app = app

    def load(self) -> Template:
        from commissioning.models import db
        from commissioning.services import template_service

        with self.app.app_context():
            try:
                return Template.from_dict(template_service.load_or_seed_template())
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error("Template load failed: %s", exc)
                raise TemplateStoreError(f"Template store unavailable: {exc}") from exc

    def save(self, template: Template, capability) -> Template:
        from commissioning.models import db
        from commissioning.services import template_service

        payload = template.to_dict()
        with self.app.app_context():
            try:
                actor = _capability_actor(capability)
                saved = template_service.save_template(
                    payload["categories"],
                    payload["product_types"],
                    expected_version=template.version,
                    actor=actor,
                )
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.error("Template save failed: %s", exc)
                raise TemplateStoreError(f"Template store unavailable: {exc}") from exc
        return Template.from_dict(saved)


class DatabaseHistorySink(HistorySink):
    """Appends item history rows in-process."""

    def __init__(self, app):
        self.app = app

    def record(self, entries, capability=None):
        from commissioning.models import db
        from commissioning.services import history_service

        with self.app.app_context():
            try:
                actor = "anonymous"
                if capability is not None:
                    try:
                        actor = _capability_actor(capability)
                    except PermissionDeniedError:
                        actor = "anonymous"
                history_service.append_entries(entries, actor=actor)
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise TemplateStoreError(f"History store unavailable: {exc}") from exc
