"""
Template Service: shared checklist structure (the Template Store).

Owns loading, saving and first-run seeding of the shared template.

Rules:
  - Only structural fields are persisted: category name, item text, product
    type tag, reference images, ordering and category membership. Instance
    fields (ok, ng, issue, images) sent by a client are ignored.
  - Category and item ids are preserved across saves so device-local
    inspection results keyed by item id stay attached to their items.
  - ``sort_order`` is rewritten from list positions on every save and is the
    only ordering honoured on load.
  - Saves are versioned: a caller that passes ``expected_version`` gets a
    ConflictError instead of silently overwriting a newer template.
  - db.session.commit() happens only in this file for template tables.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from commissioning.core.exceptions import ConflictError, ValidationError
from commissioning.data.default_template import DEFAULT_PRODUCT_TYPES, DEFAULT_TEMPLATE_CATEGORIES
from commissioning.models import db
from commissioning.models.template import (
    COMMON_PRODUCT_TYPE,
    SETTING_PRODUCT_TYPES,
    SETTING_SEED_MARKER,
    SETTING_TEMPLATE_VERSION,
    TemplateCategory,
    TemplateItem,
    TemplateSetting,
)
from commissioning.services import history_service

logger = logging.getLogger(__name__)

_MAX_ID_LENGTH = 36


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Settings helpers ──────────────────────────────────────────────────────────


def get_setting(key: str, default=None):
    """Return the decoded value of a template setting, or *default*."""
    row = TemplateSetting.query.filter_by(key=key).first()
    if row is None:
        return default
    value = row.value
    return default if value is None else value


def set_setting(key: str, value) -> TemplateSetting:
    """Upsert a template setting. Flushes; caller commits."""
    row = TemplateSetting.query.filter_by(key=key).first()
    if row is None:
        row = TemplateSetting(key=key)
        db.session.add(row)
    row.value = value
    db.session.flush()
    return row


def get_template_version() -> int:
    version = get_setting(SETTING_TEMPLATE_VERSION, 0)
    try:
        return int(version)
    except (TypeError, ValueError):
        return 0


def get_product_types() -> list[str]:
    """Product types from settings, or the bundled defaults when unset."""
    value = get_setting(SETTING_PRODUCT_TYPES)
    if not isinstance(value, list) or not value:
        logger.info("No product types stored, using defaults")
        return list(DEFAULT_PRODUCT_TYPES)
    return [str(v) for v in value]


# ── Load ──────────────────────────────────────────────────────────────────────


def load_template() -> dict:
    """Return the template as ``{categories, product_types, version}``.

    Categories and items come back in ``sort_order``. Items are grouped by
    category in one pass over a single ordered query.
    """
    categories = TemplateCategory.query.order_by(
        TemplateCategory.sort_order, TemplateCategory.created_at,
    ).all()
    items = TemplateItem.query.order_by(
        TemplateItem.sort_order, TemplateItem.created_at,
    ).all()

    items_by_category: dict[str, list[TemplateItem]] = {}
    for item in items:
        items_by_category.setdefault(item.category_id, []).append(item)

    return {
        "categories": [
            {
                "id": cat.id,
                "name": cat.name,
                "items": [
                    {
                        "id": item.id,
                        "text": item.text,
                        "product_type": item.product_type or COMMON_PRODUCT_TYPE,
                        "reference_images": item.reference_images,
                    }
                    for item in items_by_category.get(cat.id, [])
                ],
            }
            for cat in categories
        ],
        "product_types": get_product_types(),
        "version": get_template_version(),
    }


def load_or_seed_template() -> dict:
    """Seed the bundled template on an empty store, then load."""
    seed_default_template()
    return load_template()


# ── Seed ──────────────────────────────────────────────────────────────────────


def seed_default_template() -> bool:
    """Insert the bundled default template once, if the store is empty.

    Idempotent: the seeding caller first claims the unique ``seed_marker``
    setting row. A second (or concurrent) caller either sees existing
    categories or fails to claim the marker, and inserts nothing.

    Returns:
        True if this call seeded the template, False otherwise.
    """
    if db.session.query(TemplateCategory.id).first() is not None:
        return False

    marker = TemplateSetting(key=SETTING_SEED_MARKER)
    marker.value = {"seeded_at": _utcnow().isoformat()}
    db.session.add(marker)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.info("Template seed skipped: seed marker already claimed")
        return False

    for cat_index, cat_def in enumerate(DEFAULT_TEMPLATE_CATEGORIES):
        category = TemplateCategory(name=cat_def["name"], sort_order=cat_index)
        db.session.add(category)
        db.session.flush()
        for item_index, (text, product_type) in enumerate(cat_def["items"]):
            item = TemplateItem(
                category_id=category.id,
                text=text,
                product_type=product_type,
                sort_order=item_index,
            )
            item.reference_images = []
            db.session.add(item)

    set_setting(SETTING_PRODUCT_TYPES, list(DEFAULT_PRODUCT_TYPES))
    set_setting(SETTING_TEMPLATE_VERSION, 1)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info("Template seed lost a race with a concurrent seeder")
        return False

    logger.info("Seeded default template: %d categories", len(DEFAULT_TEMPLATE_CATEGORIES))
    return True


# ── Save ──────────────────────────────────────────────────────────────────────


def _clean_id(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    if not value or len(value) > _MAX_ID_LENGTH:
        return None
    return value


def _validate_product_types(product_types) -> list[str]:
    if not isinstance(product_types, list):
        raise ValidationError("product_types must be a list", details={"product_types": "not a list"})
    cleaned = []
    for value in product_types:
        name = str(value or "").strip()
        if not name:
            raise ValidationError("Product type names must not be empty",
                                  details={"product_types": "empty name"})
        if name in cleaned:
            raise ValidationError(f"Duplicate product type: {name}",
                                  details={"product_types": f"duplicate {name}"})
        cleaned.append(name)
    return cleaned


def _normalize_categories(categories) -> list[dict]:
    """Validate the payload and keep structural fields only."""
    if not isinstance(categories, list):
        raise ValidationError("categories must be a list", details={"categories": "not a list"})

    seen_categories: set[str] = set()
    seen_items: set[str] = set()
    normalized = []
    for cat_index, cat in enumerate(categories):
        if not isinstance(cat, dict):
            raise ValidationError("Each category must be an object", details={"index": cat_index})
        name = str(cat.get("name") or "").strip()
        if not name:
            raise ValidationError("Category name is required", details={"index": cat_index})
        cat_id = _clean_id(cat.get("id"))
        if cat_id is not None:
            if cat_id in seen_categories:
                raise ValidationError(f"Duplicate category id {cat_id}", details={"id": cat_id})
            seen_categories.add(cat_id)

        items = []
        for item_index, item in enumerate(cat.get("items") or []):
            if not isinstance(item, dict):
                raise ValidationError("Each item must be an object",
                                      details={"category": cat_index, "index": item_index})
            text = str(item.get("text") or "").strip()
            if not text:
                raise ValidationError("Item text is required",
                                      details={"category": cat_index, "index": item_index})
            item_id = _clean_id(item.get("id"))
            if item_id is not None:
                if item_id in seen_items:
                    raise ValidationError(f"Duplicate item id {item_id}", details={"id": item_id})
                seen_items.add(item_id)
            reference_images = item.get("reference_images") or []
            if not isinstance(reference_images, list):
                raise ValidationError("reference_images must be a list", details={"id": item_id})
            items.append({
                "id": item_id,
                "text": text,
                "product_type": str(item.get("product_type") or "").strip() or COMMON_PRODUCT_TYPE,
                "reference_images": [str(img) for img in reference_images],
            })
        normalized.append({"id": cat_id, "name": name, "items": items})
    return normalized


def _record_item_diff(item: TemplateItem, item_data: dict, actor: str) -> None:
    for field in ("text", "product_type"):
        old = getattr(item, field) or (COMMON_PRODUCT_TYPE if field == "product_type" else "")
        new = item_data[field]
        if old != new:
            history_service.write_item_history(
                item_id=item.id, change_type="updated", field_name=field,
                old_value=old, new_value=new, actor=actor,
            )


def save_template(
    categories: list[dict],
    product_types: list[str],
    expected_version: int | None = None,
    actor: str = "anonymous",
) -> dict:
    """Replace the stored template with *categories* and *product_types*.

    Existing rows are updated in place (ids preserved), rows missing from the
    payload are deleted, new rows are inserted with the id the client
    assigned (or a fresh UUID), and ``sort_order`` is rewritten from list
    position. Structural item changes are appended to the item history.

    Args:
        categories:       Ordered list of ``{id, name, items: [{id, text,
                          product_type, reference_images}]}``.
        product_types:    Ordered list of recognized product type tags.
        expected_version: Template version the caller last loaded. When given
                          and stale, nothing is written.
        actor:            Who saved (for the history trail).

    Returns:
        The freshly loaded template dict (with the bumped version).

    Raises:
        ValidationError: Malformed payload.
        ConflictError:   ``expected_version`` does not match the stored version.
    """
    normalized = _normalize_categories(categories)
    cleaned_types = _validate_product_types(product_types)
    if expected_version is not None:
        try:
            expected_version = int(expected_version)
        except (TypeError, ValueError) as exc:
            raise ValidationError("version must be an integer",
                                  details={"version": expected_version}) from exc

    version_row = (
        TemplateSetting.query.filter_by(key=SETTING_TEMPLATE_VERSION).with_for_update().first()
    )
    current_version = get_template_version()
    if expected_version is not None and expected_version != current_version:
        db.session.rollback()
        raise ConflictError(
            "Template", "version", current_version,
            message=(
                f"Template was changed by someone else (version {current_version}, "
                f"you loaded {expected_version}). Reload before saving."
            ),
        )

    existing_categories = {c.id: c for c in TemplateCategory.query.all()}
    existing_items = {i.id: i for i in TemplateItem.query.all()}
    kept_categories: set[str] = set()
    kept_items: set[str] = set()

    for cat_index, cat_data in enumerate(normalized):
        category = existing_categories.get(cat_data["id"]) if cat_data["id"] else None
        if category is None:
            category = TemplateCategory(id=cat_data["id"] or str(uuid.uuid4()))
            db.session.add(category)
        category.name = cat_data["name"]
        category.sort_order = cat_index
        kept_categories.add(category.id)
        db.session.flush()

        for item_index, item_data in enumerate(cat_data["items"]):
            item = existing_items.get(item_data["id"]) if item_data["id"] else None
            if item is None:
                item = TemplateItem(
                    id=item_data["id"] or str(uuid.uuid4()),
                    category_id=category.id,
                    text=item_data["text"],
                    sort_order=item_index,
                )
                db.session.add(item)
                history_service.write_item_history(
                    item_id=item.id, change_type="created", new_value=item_data["text"], actor=actor,
                )
            else:
                _record_item_diff(item, item_data, actor)
            item.category_id = category.id
            item.text = item_data["text"]
            item.product_type = item_data["product_type"]
            item.reference_images = item_data["reference_images"]
            item.sort_order = item_index
            kept_items.add(item.id)

    for item_id, item in existing_items.items():
        if item_id not in kept_items:
            history_service.write_item_history(
                item_id=item_id, change_type="deleted", old_value=item.text, actor=actor,
            )
            db.session.delete(item)
    db.session.flush()
    for cat_id, category in existing_categories.items():
        if cat_id not in kept_categories:
            db.session.delete(category)

    set_setting(SETTING_PRODUCT_TYPES, cleaned_types)
    new_version = current_version + 1
    if version_row is None:
        set_setting(SETTING_TEMPLATE_VERSION, new_version)
    else:
        version_row.value = new_version

    db.session.commit()
    logger.info(
        "Template saved: %d categories, %d items, version %d",
        len(normalized), len(kept_items), new_version,
        extra={"template_version": new_version},
    )
    return load_template()
