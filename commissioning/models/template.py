"""
Commissioning Report Editor
Template domain model.

Models:
    - TemplateCategory: ordered checklist category of the shared template.
    - TemplateItem: ordered checklist item (structural fields only).
    - TemplateSetting: key/value JSON settings (product types, version, seed marker).

Only structure lives here. Inspection results (ok/ng/issue/images) are
device-local instance data and have no column in these tables.
"""

import json
import uuid
from datetime import datetime, timezone

from commissioning.models import db

COMMON_PRODUCT_TYPE = "Common"

# ── Setting keys ─────────────────────────────────────────────────────────────

SETTING_PRODUCT_TYPES = "product_types"
SETTING_TEMPLATE_VERSION = "template_version"
SETTING_SEED_MARKER = "seed_marker"
SETTING_EDIT_PASSWORD_HASH = "edit_password_hash"


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class TemplateCategory(db.Model):
    """A named, ordered group of checklist items."""

    __tablename__ = "template_categories"
    __table_args__ = (
        db.Index("ix_template_categories_sort", "sort_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(300), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = db.relationship(
        "TemplateItem", back_populates="category",
        cascade="all, delete-orphan", passive_deletes=True,
        order_by="TemplateItem.sort_order",
    )

    def to_dict(self, include_items=True):
        d = {
            "id": self.id,
            "name": self.name,
            "sort_order": self.sort_order,
        }
        if include_items:
            d["items"] = [item.to_dict() for item in self.items]
        return d

    def __repr__(self):
        return f"<TemplateCategory {self.id}: {self.name!r} #{self.sort_order}>"


class TemplateItem(db.Model):
    """One checklist line: text, product type tag and reference photos."""

    __tablename__ = "template_items"
    __table_args__ = (
        db.Index("ix_template_items_category_sort", "category_id", "sort_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    category_id = db.Column(
        db.String(36),
        db.ForeignKey("template_categories.id", ondelete="CASCADE"),
        nullable=False,
    )
    text = db.Column(db.Text, nullable=False)
    product_type = db.Column(db.String(100), nullable=True, default=COMMON_PRODUCT_TYPE)
    reference_images_json = db.Column(
        "reference_images", db.Text, default="[]",
        comment="JSON list of data-URL exemplar photos",
    )
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    category = db.relationship("TemplateCategory", back_populates="items")

    @property
    def reference_images(self) -> list:
        """Deserialise *reference_images_json*; null or bad JSON yields []."""
        try:
            value = json.loads(self.reference_images_json or "[]")
        except (json.JSONDecodeError, TypeError):
            return []
        return value if isinstance(value, list) else []

    @reference_images.setter
    def reference_images(self, value):
        self.reference_images_json = json.dumps(list(value or []))

    def to_dict(self):
        return {
            "id": self.id,
            "category_id": self.category_id,
            "text": self.text,
            "product_type": self.product_type or COMMON_PRODUCT_TYPE,
            "reference_images": self.reference_images,
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<TemplateItem {self.id} in {self.category_id} #{self.sort_order}>"


class TemplateSetting(db.Model):
    """Key/value store for template-wide settings. ``value`` is JSON text."""

    __tablename__ = "template_settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value_json = db.Column("value", db.Text, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def value(self):
        try:
            return json.loads(self.value_json) if self.value_json is not None else None
        except (json.JSONDecodeError, TypeError):
            return None

    @value.setter
    def value(self, new_value):
        self.value_json = json.dumps(new_value)

    def __repr__(self):
        return f"<TemplateSetting {self.key}>"
