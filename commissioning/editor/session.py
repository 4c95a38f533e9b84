"""
Report editor session: the working report and every action on it.

Control flow::

    load():   Template Store → Local Inspection Cache → merge → ReportData
    edits:    mutate ReportData → debounced write of the instance half
    exit():   Access Gate UNLOCKED → LOCKED → one template save (if dirty)

Inspection edits (ok/ng/issue/images) and report fields are allowed at any
time. Structural edits need the gate unlocked and raise
PermissionDeniedError otherwise.

I/O failures never escape an action: they become entries in
``notifications`` and the session keeps the best state it has.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import asdict

from commissioning.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TemplateStoreError,
    ValidationError,
)
from commissioning.editor import images as image_utils
from commissioning.editor.access_gate import AccessGate, Capability, CredentialVerifier, PasswordVerifier
from commissioning.editor.cache import (
    STORAGE_KEY,
    STORAGE_WARNING_THRESHOLD,
    InspectionCache,
    KeyValueStorage,
    MemoryStorage,
)
from commissioning.editor.merge import filter_by_product_types, merge, merge_report, split
from commissioning.editor.scheduler import DEFAULT_DELAY_MS, DebouncedWriter, thread_timer
from commissioning.editor.stores import DatabaseHistorySink, DatabaseTemplateStore, HistorySink, TemplateStore
from commissioning.editor.types import (
    COMMON_PRODUCT_TYPE,
    REPORT_FIELDS,
    SIGNATURE_KINDS,
    CacheSnapshot,
    Category,
    ChecklistItem,
    InspectionFields,
    Notification,
    Product,
    ReportData,
    Template,
)

logger = logging.getLogger(__name__)

NEW_CATEGORY_NAME = "New Category"
NEW_ITEM_TEXT = "New checklist item"

# Report fields settable through update_report (signatures have their own setter)
EDITABLE_REPORT_FIELDS = tuple(f for f in REPORT_FIELDS if not f.endswith("_signature"))


def _new_id() -> str:
    return str(uuid.uuid4())


def _move(seq: list, from_index: int, to_index: int) -> None:
    if not (0 <= from_index < len(seq)) or not (0 <= to_index < len(seq)):
        raise ValidationError(
            f"Move out of range: {from_index} -> {to_index} (size {len(seq)})",
            details={"from_index": from_index, "to_index": to_index},
        )
    seq.insert(to_index, seq.pop(from_index))


class ReportEditor:
    """One editing session over a Template Store and a local cache.

    Args:
        store:           TemplateStore the structure is loaded from and saved to.
        cache:           InspectionCache holding device-local results.
        gate:            AccessGate guarding structural edits. The editor
                         installs its write-back as the gate's ``on_lock``.
        writer_delay_ms: Debounce window for cache writes.
        history:         Optional HistorySink for the item change trail.
        timer_factory:   Timer factory for the debounced writer.
        image_options:   Overrides for ``images.process_batch`` limits.
        on_notify:       Called with every Notification as it is added.
    """

    def __init__(
        self,
        store: TemplateStore,
        cache: InspectionCache,
        gate: AccessGate,
        writer_delay_ms: int = DEFAULT_DELAY_MS,
        history: HistorySink | None = None,
        timer_factory=thread_timer,
        image_options: dict | None = None,
        on_notify: Callable[[Notification], None] | None = None,
    ):
        self.store = store
        self.cache = cache
        self.gate = gate
        self.history = history
        self.image_options = dict(image_options or {})
        self.on_notify = on_notify
        self.notifications: list[Notification] = []

        self.report: ReportData | None = None
        self.product_filter: list[str] = []
        self._template_version: int | None = None
        self._last_good_template: Template | None = None
        self._cached_items: dict[str, InspectionFields] = {}
        self._structure_dirty = False
        self._closed = False

        gate.on_lock = self._write_back
        gate.notify = self._notify
        if cache.on_error is None:
            cache.on_error = lambda message: self._notify(Notification("error", message))
        if cache.on_warning is None:
            cache.on_warning = lambda message: self._notify(Notification("warning", message))
        self.writer = DebouncedWriter(self.cache.save, writer_delay_ms, timer_factory)

    # ── Notifications ────────────────────────────────────────────────────

    def _notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if self.on_notify is not None:
            self.on_notify(notification)

    def _ok(self, message: str) -> None:
        self._notify(Notification("success", message))

    def _fail(self, message: str) -> None:
        self._notify(Notification("error", message))

    # ── Lifecycle ────────────────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def structure_dirty(self) -> bool:
        return self._structure_dirty

    @property
    def template_version(self) -> int | None:
        return self._template_version

    def _ensure_open(self) -> ReportData:
        if self._closed:
            raise RuntimeError("ReportEditor is closed")
        if self.report is None:
            raise RuntimeError("ReportEditor.load() has not been called")
        return self.report

    def load(self) -> ReportData | None:
        """Load the template and local results and merge them.

        Returns None if the editor was closed while the load was in flight.
        """
        if self._closed:
            return None
        try:
            template = self.store.load()
        except TemplateStoreError as exc:
            logger.error("Template load failed: %s", exc)
            if self._closed:
                return None
            template = self._last_good_template or Template()
            fallback = "last loaded template" if self._last_good_template else "an empty template"
            self._notify(Notification("warning", f"Could not load the template, using {fallback}"))
        else:
            if self._closed:
                logger.debug("Ignoring template load that finished after close")
                return None
            self._last_good_template = template
            self._ok("Template loaded")

        snapshot = self.cache.load()
        self._cached_items = dict(snapshot.items)
        self.report = merge_report(template, snapshot)
        self._template_version = template.version
        self._structure_dirty = False
        logger.info(
            "Report loaded: %d categories, %d cached results",
            len(self.report.categories), len(snapshot.items),
            extra={"template_version": template.version},
        )
        return self.report

    def close(self) -> None:
        """Leave edit mode, flush pending local writes and stop accepting edits.

        An unlocked gate is exited first, so unsaved structure is written back
        and the edit session is released.
        """
        if self._closed:
            return
        self.gate.exit()
        self.writer.flush()
        self.writer.close()
        self._closed = True

    def reset_local_data(self) -> ReportData | None:
        """Drop every local result and reload from the template."""
        if self._closed:
            raise RuntimeError("ReportEditor is closed")
        self.writer.cancel()
        try:
            self.cache.reset()
        except OSError as exc:
            logger.error("Local data reset failed: %s", exc)
            self._fail(f"Failed to clear local data: {exc}")
            return self.report
        self._cached_items = {}
        self._ok("Local data cleared")
        return self.load()

    # ── Local persistence ────────────────────────────────────────────────

    def _snapshot(self) -> CacheSnapshot:
        report = self.report
        items = dict(self._cached_items)
        for cat in report.categories:
            for item in cat.items:
                fields = InspectionFields(ok=item.ok, ng=item.ng, issue=item.issue, images=list(item.images))
                if item.id in items or not fields.is_default():
                    items[item.id] = fields
        self._cached_items = items

        report_fields = {key: getattr(report, key) for key in REPORT_FIELDS}
        report_fields["products"] = [
            {"name": p.name, "model_name": p.model_name, "quantity": p.quantity}
            for p in report.products
        ]
        return CacheSnapshot(items=items, report=report_fields)

    def _persist_local(self) -> None:
        self.writer.schedule(self._snapshot())

    def flush(self) -> bool:
        """Write pending local changes now."""
        return self.writer.flush()

    # ── History ──────────────────────────────────────────────────────────

    def _record(self, entries: list[dict]) -> None:
        if self.history is None or not entries:
            return
        try:
            self.history.record(entries, self.gate.capability)
        except (TemplateStoreError, ValidationError) as exc:
            logger.warning("History append failed: %s", exc)
            self._notify(Notification("warning", f"Change history not recorded: {exc}"))

    @staticmethod
    def _change(item_id, field_name, old, new) -> dict:
        return {
            "item_id": item_id,
            "change_type": "updated",
            "field_name": field_name,
            "old_value": old,
            "new_value": new,
        }

    # ── Lookup ───────────────────────────────────────────────────────────

    def item(self, item_id: str) -> ChecklistItem:
        item = self._ensure_open().find_item(item_id)
        if item is None:
            raise NotFoundError("ChecklistItem", item_id)
        return item

    def category(self, category_id: str) -> Category:
        category = self._ensure_open().find_category(category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        return category

    def _category_of(self, item_id: str) -> Category:
        for cat in self._ensure_open().categories:
            if any(item.id == item_id for item in cat.items):
                return cat
        raise NotFoundError("ChecklistItem", item_id)

    # ── Inspection edits ─────────────────────────────────────────────────

    def set_ok(self, item_id: str, value: bool = True) -> ChecklistItem:
        """Set the OK flag; setting it clears NG."""
        return self._set_flag(item_id, "ok", "ng", value)

    def set_ng(self, item_id: str, value: bool = True) -> ChecklistItem:
        """Set the NG flag; setting it clears OK."""
        return self._set_flag(item_id, "ng", "ok", value)

    def _set_flag(self, item_id: str, flag: str, other: str, value: bool) -> ChecklistItem:
        item = self.item(item_id)
        value = bool(value)
        changes = []
        if getattr(item, flag) != value:
            changes.append(self._change(item_id, flag, getattr(item, flag), value))
            setattr(item, flag, value)
        if value and getattr(item, other):
            changes.append(self._change(item_id, other, True, False))
            setattr(item, other, False)
        if changes:
            self._persist_local()
            self._record(changes)
        return item

    def set_issue(self, item_id: str, issue: str) -> ChecklistItem:
        item = self.item(item_id)
        issue = issue or ""
        if item.issue != issue:
            old, item.issue = item.issue, issue
            self._persist_local()
            self._record([self._change(item_id, "issue", old, issue)])
        return item

    def add_images(
        self,
        item_id: str,
        files: Iterable[tuple[str, bytes]],
        yield_fn: Callable[[], None] | None = None,
    ) -> image_utils.BatchResult:
        """Normalize *files* and append them to the item's evidence photos."""
        item = self.item(item_id)
        result = image_utils.process_batch(
            files, len(item.images), yield_fn=yield_fn, **self.image_options,
        )
        if self._closed:
            return result
        if result.images:
            item.images.extend(result.images)
            self._persist_local()

        skipped = "; ".join(str(err) for err in result.errors)
        if result.images and result.errors:
            self._notify(Notification(
                "warning", f"Added {len(result.images)} image(s); skipped {skipped}",
            ))
        elif result.errors:
            self._fail(f"No images added: {skipped}")
        elif result.images:
            self._ok(f"Added {len(result.images)} image(s)")
        return result

    def remove_image(self, item_id: str, index: int) -> bool:
        item = self.item(item_id)
        if not 0 <= index < len(item.images):
            self._fail(f"No image at position {index + 1}")
            return False
        del item.images[index]
        self._persist_local()
        self._ok("Image removed")
        return True

    # ── Report fields ────────────────────────────────────────────────────

    def update_report(self, **fields) -> ReportData:
        """Set header fields (title, project_name, opportunity_number, address, inspection_date)."""
        report = self._ensure_open()
        unknown = set(fields) - set(EDITABLE_REPORT_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown report fields: {', '.join(sorted(unknown))}")
        for key, value in fields.items():
            setattr(report, key, "" if value is None else str(value))
        self._persist_local()
        return report

    def add_product(self, name: str = "", model_name: str = "", quantity: str = "") -> Product:
        report = self._ensure_open()
        product = Product(name=name, model_name=model_name, quantity=quantity)
        report.products.append(product)
        self._persist_local()
        return product

    def update_product(self, index: int, **fields) -> Product:
        report = self._ensure_open()
        if not 0 <= index < len(report.products):
            raise NotFoundError("Product", index)
        unknown = set(fields) - {"name", "model_name", "quantity"}
        if unknown:
            raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")
        product = report.products[index]
        for key, value in fields.items():
            setattr(product, key, "" if value is None else str(value))
        self._persist_local()
        return product

    def remove_product(self, index: int) -> Product:
        report = self._ensure_open()
        if not 0 <= index < len(report.products):
            raise NotFoundError("Product", index)
        product = report.products.pop(index)
        self._persist_local()
        return product

    def set_signature(self, kind: str, data_url: str) -> None:
        """Store a signature image (``data:`` URL, or "" to clear)."""
        report = self._ensure_open()
        if kind not in SIGNATURE_KINDS:
            raise ValidationError(f"kind must be one of: {', '.join(SIGNATURE_KINDS)}")
        if data_url and not data_url.startswith("data:image/"):
            raise ValidationError("Signature must be an image data URL")
        setattr(report, f"{kind}_signature", data_url or "")
        self._persist_local()

    def set_product_filter(self, product_types: Iterable[str]) -> list[Category]:
        """Choose which product types are shown (empty shows all)."""
        self.product_filter = [t for t in product_types if t]
        return self.visible_categories()

    def visible_categories(self) -> list[Category]:
        return filter_by_product_types(self._ensure_open().categories, self.product_filter)

    # ── Edit mode ────────────────────────────────────────────────────────

    @property
    def can_edit(self) -> bool:
        return self.gate.can_edit

    def enter_edit_mode(self, credential) -> bool:
        self._ensure_open()
        return self.gate.submit(credential) is not None

    def exit_edit_mode(self) -> bool:
        self._ensure_open()
        return self.gate.exit()

    def _write_back(self, capability: Capability) -> None:
        """Save the structure once on UNLOCKED → LOCKED, if it changed."""
        if not self._structure_dirty:
            self._notify(Notification("info", "Edit mode closed, no template changes"))
            return

        report = self.report
        template, instance = split(report.categories, report.product_types, self._template_version)
        try:
            saved = self.store.save(template, capability)
        except ConflictError as exc:
            logger.warning("Template save rejected: %s", exc)
            self._fail(str(exc))
            return
        except (TemplateStoreError, PermissionDeniedError, ValidationError) as exc:
            logger.error("Template save failed: %s", exc)
            self._fail(f"Failed to save template: {exc}")
            return

        self._last_good_template = saved
        self._template_version = saved.version
        self._structure_dirty = False
        report.categories = merge(saved, instance)
        report.product_types = list(saved.product_types)
        self._ok("Template saved")

    def _require_edit(self) -> ReportData:
        report = self._ensure_open()
        if not self.gate.can_edit:
            raise PermissionDeniedError("Enter edit mode to change the checklist")
        return report

    def _structure_changed(self) -> None:
        self._structure_dirty = True
        self._persist_local()

    # ── Structural edits (edit mode only) ────────────────────────────────

    def add_category(self, name: str = NEW_CATEGORY_NAME) -> Category:
        report = self._require_edit()
        category = Category(id=_new_id(), name=name)
        report.categories.append(category)
        self._structure_changed()
        return category

    def rename_category(self, category_id: str, name: str) -> Category:
        self._require_edit()
        category = self.category(category_id)
        category.name = name
        self._structure_changed()
        return category

    def delete_category(self, category_id: str) -> Category:
        report = self._require_edit()
        category = self.category(category_id)
        report.categories.remove(category)
        self._structure_changed()
        return category

    def move_category(self, from_index: int, to_index: int) -> None:
        report = self._require_edit()
        _move(report.categories, from_index, to_index)
        self._structure_changed()

    def add_item(
        self,
        category_id: str,
        text: str = NEW_ITEM_TEXT,
        product_type: str = COMMON_PRODUCT_TYPE,
    ) -> ChecklistItem:
        self._require_edit()
        category = self.category(category_id)
        self._check_product_type(product_type)
        item = ChecklistItem(id=_new_id(), text=text, product_type=product_type)
        category.items.append(item)
        self._structure_changed()
        return item

    def update_item_text(self, item_id: str, text: str) -> ChecklistItem:
        self._require_edit()
        item = self.item(item_id)
        if item.text != text:
            item.text = text
            self._structure_changed()
        return item

    def _check_product_type(self, product_type: str) -> None:
        if product_type != COMMON_PRODUCT_TYPE and product_type not in self.report.product_types:
            raise ValidationError(
                f"Unknown product type: {product_type}",
                details={"product_types": list(self.report.product_types)},
            )

    def set_item_product_type(self, item_id: str, product_type: str) -> ChecklistItem:
        self._require_edit()
        item = self.item(item_id)
        self._check_product_type(product_type)
        if item.product_type != product_type:
            item.product_type = product_type
            self._structure_changed()
        return item

    def delete_item(self, item_id: str) -> ChecklistItem:
        self._require_edit()
        category = self._category_of(item_id)
        item = self.item(item_id)
        category.items.remove(item)
        self._structure_changed()
        return item

    def move_item(self, category_id: str, from_index: int, to_index: int) -> None:
        """Reorder an item within its category (drag-and-drop)."""
        self._require_edit()
        _move(self.category(category_id).items, from_index, to_index)
        self._structure_changed()

    def set_reference_images(self, item_id: str, images: list[str]) -> ChecklistItem:
        self._require_edit()
        item = self.item(item_id)
        item.reference_images = [str(img) for img in images]
        self._structure_changed()
        return item

    def add_reference_images(self, item_id: str, files: Iterable[tuple[str, bytes]]) -> image_utils.BatchResult:
        """Normalize *files* and append them as exemplar photos."""
        self._require_edit()
        item = self.item(item_id)
        result = image_utils.process_batch(files, len(item.reference_images), **self.image_options)
        if result.images:
            item.reference_images.extend(result.images)
            self._structure_changed()
        if result.errors:
            self._fail("Skipped " + "; ".join(str(err) for err in result.errors))
        elif result.images:
            self._ok(f"Added {len(result.images)} reference image(s)")
        return result

    def set_product_types(self, product_types: list[str]) -> list[str]:
        report = self._require_edit()
        cleaned = []
        for name in product_types:
            name = (name or "").strip()
            if not name or name == COMMON_PRODUCT_TYPE:
                raise ValidationError(f"Invalid product type name: {name!r}")
            if name in cleaned:
                raise ValidationError(f"Duplicate product type: {name}")
            cleaned.append(name)
        report.product_types = cleaned
        self.product_filter = [t for t in self.product_filter if t in cleaned]
        self._structure_changed()
        return cleaned

    # ── Export ───────────────────────────────────────────────────────────

    def export_snapshot(self) -> dict:
        """Serializable view of the current report for the export pipeline.

        Categories are restricted to the active product filter.
        """
        data = self._ensure_open().to_dict()
        data["categories"] = [asdict(cat) for cat in self.visible_categories()]
        data["product_filter"] = list(self.product_filter)
        return data


def create_local_editor(
    app,
    storage: KeyValueStorage | None = None,
    verifier: CredentialVerifier | None = None,
    record_history: bool = False,
    **kwargs,
) -> ReportEditor:
    """Build an in-process editor wired from ``app.config``.

    Uses the database-backed Template Store, the shared-password verifier
    unless *verifier* is given, and MemoryStorage bounded by STORAGE_QUOTA
    unless *storage* is given. Extra keyword arguments go to ReportEditor.
    """
    cfg = app.config
    if storage is None:
        storage = MemoryStorage(quota_bytes=cfg.get("STORAGE_QUOTA"))
    cache = InspectionCache(
        storage,
        key=cfg.get("LOCAL_STORAGE_KEY", STORAGE_KEY),
        warning_threshold=cfg.get("STORAGE_WARNING_THRESHOLD", STORAGE_WARNING_THRESHOLD),
    )
    kwargs.setdefault("writer_delay_ms", cfg.get("SAVE_DEBOUNCE_MS", DEFAULT_DELAY_MS))
    kwargs.setdefault("image_options", {
        "max_count": cfg.get("MAX_IMAGES_PER_ITEM", image_utils.MAX_IMAGES_PER_ITEM),
        "max_file_size": cfg.get("MAX_IMAGE_FILE_SIZE", image_utils.MAX_IMAGE_FILE_SIZE),
        "max_dimension": cfg.get("IMAGE_MAX_DIMENSION", image_utils.IMAGE_MAX_DIMENSION),
        "quality": cfg.get("IMAGE_JPEG_QUALITY", image_utils.IMAGE_JPEG_QUALITY),
    })
    return ReportEditor(
        DatabaseTemplateStore(app),
        cache,
        AccessGate(verifier or PasswordVerifier(app)),
        history=DatabaseHistorySink(app) if record_history else None,
        **kwargs,
    )
