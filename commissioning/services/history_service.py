"""
History Service: append-only item change trail.

The trail is optional: editors send instance-field changes here only when a
history sink is configured, and template saves record structural changes.
Nothing reads the trail back into the report; it is display-only.
"""

from __future__ import annotations

import logging

from commissioning.core.exceptions import ValidationError
from commissioning.models import db
from commissioning.models.history import CHANGE_TYPES, TRACKED_FIELDS, ItemHistory
from commissioning.models.template import TemplateItem

logger = logging.getLogger(__name__)

_MAX_VALUE_LENGTH = 2000


def _as_text(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)[:_MAX_VALUE_LENGTH]


def write_item_history(
    *,
    item_id: str,
    change_type: str,
    field_name: str | None = None,
    old_value=None,
    new_value=None,
    actor: str = "anonymous",
) -> ItemHistory:
    """
    Append a single history row.  Uses ``flush`` so callers keep
    transaction control.
    """
    entry = ItemHistory(
        item_id=str(item_id),
        change_type=change_type,
        field_name=field_name,
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
        actor=actor or "anonymous",
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def append_entries(entries: list[dict], actor: str = "anonymous") -> list[dict]:
    """Validate and append a batch of change entries, then commit.

    Each entry needs ``item_id`` and ``change_type``; ``updated`` entries also
    need a tracked ``field_name``.

    Raises:
        ValidationError: on the first malformed entry (nothing is written).
    """
    if not isinstance(entries, list) or not entries:
        raise ValidationError("entries must be a non-empty list")

    for index, data in enumerate(entries):
        if not isinstance(data, dict) or not data.get("item_id"):
            raise ValidationError("item_id is required", details={"index": index})
        change_type = data.get("change_type")
        if change_type not in CHANGE_TYPES:
            raise ValidationError(
                f"change_type must be one of: {', '.join(sorted(CHANGE_TYPES))}",
                details={"index": index},
            )
        if change_type == "updated" and data.get("field_name") not in TRACKED_FIELDS:
            raise ValidationError(
                f"field_name must be one of: {', '.join(sorted(TRACKED_FIELDS))}",
                details={"index": index},
            )

    written = [
        write_item_history(
            item_id=data["item_id"],
            change_type=data["change_type"],
            field_name=data.get("field_name"),
            old_value=data.get("old_value"),
            new_value=data.get("new_value"),
            actor=actor,
        )
        for data in entries
    ]
    db.session.commit()
    logger.debug("Appended %d history entries", len(written))
    return [w.to_dict() for w in written]


def list_history(item_id: str | None = None, limit: int = 200) -> list[dict]:
    """Return history newest first, each entry enriched with ``item_text``
    (current template text, or None when the item no longer exists)."""
    query = ItemHistory.query
    if item_id:
        query = query.filter_by(item_id=item_id)
    rows = query.order_by(ItemHistory.changed_at.desc(), ItemHistory.id.desc()).limit(limit).all()

    item_ids = {row.item_id for row in rows}
    texts = {}
    if item_ids:
        texts = {
            item.id: item.text
            for item in TemplateItem.query.filter(TemplateItem.id.in_(item_ids)).all()
        }

    result = []
    for row in rows:
        d = row.to_dict()
        d["item_text"] = texts.get(row.item_id)
        d["description"] = describe_change(d)
        result.append(d)
    return result


def describe_change(entry: dict) -> str:
    """Human-readable one-liner for a history entry."""
    label = entry.get("item_text") or "Item"
    change_type = entry.get("change_type")
    field = entry.get("field_name")

    if change_type == "created":
        return f"Created: {label}"
    if change_type == "deleted":
        return f"Deleted: {label}"
    if change_type == "updated":
        if field == "text":
            return f'Updated text from "{entry.get("old_value")}" to "{entry.get("new_value")}"'
        if field == "ok":
            return f'{"Checked" if entry.get("new_value") == "true" else "Unchecked"} OK status'
        if field == "ng":
            return f'{"Checked" if entry.get("new_value") == "true" else "Unchecked"} NG status'
        if field == "issue":
            return "Updated issue description"
        return f"Updated {field}"
    return "Unknown change"
