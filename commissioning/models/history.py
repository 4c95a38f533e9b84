"""
Commissioning Report Editor
Item history model: append-only audit trail of checklist item changes.

One row per change. Instance-field changes (ok, ng, issue) and structural
changes (created, deleted, text) share the table; ``field_name`` is NULL for
created/deleted rows.
"""

from datetime import datetime, timezone

from commissioning.models import db

CHANGE_TYPES = {"created", "updated", "deleted"}

TRACKED_FIELDS = {"text", "ok", "ng", "issue", "product_type"}


class ItemHistory(db.Model):
    """Immutable record of a single item change."""

    __tablename__ = "item_history"
    __table_args__ = (
        db.Index("idx_item_history_item", "item_id"),
        db.Index("idx_item_history_ts", "changed_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    # No FK: history outlives deleted template items
    item_id = db.Column(db.String(36), nullable=False)
    change_type = db.Column(
        db.String(20), nullable=False,
        comment="created | updated | deleted",
    )
    field_name = db.Column(db.String(50), nullable=True)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    actor = db.Column(db.String(200), nullable=False, default="anonymous")
    changed_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "change_type": self.change_type,
            "field_name": self.field_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "actor": self.actor,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }

    def __repr__(self):
        return f"<ItemHistory {self.id}: {self.change_type} {self.field_name} on {self.item_id}>"
