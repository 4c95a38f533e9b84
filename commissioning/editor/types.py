"""
Typed records for the report editor.

The template (structure) and the inspection results (instance data) are kept
as separate record types; ``ChecklistItem`` is the merged view the editor
works on. ``ok``/``ng`` are the pass/fail flags.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

COMMON_PRODUCT_TYPE = "Common"

SIGNATURE_KINDS = ("commissioner", "installer", "customer")


# ── Structure (Template Store) ───────────────────────────────────────────────


@dataclass
class TemplateItem:
    id: str
    text: str
    product_type: str = COMMON_PRODUCT_TYPE
    reference_images: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "TemplateItem":
        return cls(
            id=str(data["id"]),
            text=str(data.get("text") or ""),
            product_type=data.get("product_type") or COMMON_PRODUCT_TYPE,
            reference_images=list(data.get("reference_images") or []),
        )


@dataclass
class TemplateCategory:
    id: str
    name: str
    items: list[TemplateItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "TemplateCategory":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            items=[TemplateItem.from_dict(i) for i in data.get("items") or []],
        )


@dataclass
class Template:
    categories: list[TemplateCategory] = field(default_factory=list)
    product_types: list[str] = field(default_factory=list)
    version: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Template":
        return cls(
            categories=[TemplateCategory.from_dict(c) for c in data.get("categories") or []],
            product_types=list(data.get("product_types") or []),
            version=data.get("version"),
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def item_ids(self) -> list[str]:
        return [item.id for cat in self.categories for item in cat.items]


# ── Instance data (Local Inspection Cache) ───────────────────────────────────


@dataclass
class InspectionFields:
    ok: bool = False
    ng: bool = False
    issue: str = ""
    images: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "InspectionFields":
        return cls(
            ok=bool(data.get("ok", False)),
            ng=bool(data.get("ng", False)),
            issue=str(data.get("issue") or ""),
            images=[str(img) for img in data.get("images") or []],
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def is_default(self) -> bool:
        return not self.ok and not self.ng and not self.issue and not self.images


# ── Merged report ─────────────────────────────────────────────────────────────


@dataclass
class ChecklistItem:
    id: str
    text: str
    ok: bool = False
    ng: bool = False
    issue: str = ""
    images: list[str] = field(default_factory=list)
    product_type: str = COMMON_PRODUCT_TYPE
    reference_images: list[str] = field(default_factory=list)


@dataclass
class Category:
    id: str
    name: str
    items: list[ChecklistItem] = field(default_factory=list)


@dataclass
class Product:
    name: str
    model_name: str = ""
    quantity: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        return cls(
            name=str(data.get("name") or ""),
            model_name=str(data.get("model_name") or ""),
            quantity=str(data.get("quantity") or ""),
        )


@dataclass
class ReportData:
    title: str
    project_name: str = ""
    opportunity_number: str = ""
    address: str = ""
    products: list[Product] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    inspection_date: str = ""
    commissioner_signature: str = ""
    installer_signature: str = ""
    customer_signature: str = ""
    product_types: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    def find_item(self, item_id: str) -> ChecklistItem | None:
        for cat in self.categories:
            for item in cat.items:
                if item.id == item_id:
                    return item
        return None

    def find_category(self, category_id: str) -> Category | None:
        for cat in self.categories:
            if cat.id == category_id:
                return cat
        return None


# Report-level fields kept in the local cache next to the per-item results
REPORT_FIELDS = (
    "title",
    "project_name",
    "opportunity_number",
    "address",
    "inspection_date",
    "commissioner_signature",
    "installer_signature",
    "customer_signature",
)


@dataclass
class CacheSnapshot:
    """Everything the Local Inspection Cache persists for one device."""

    items: dict[str, InspectionFields] = field(default_factory=dict)
    report: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "items": {item_id: f.to_dict() for item_id, f in self.items.items()},
            "report": dict(self.report),
        }


@dataclass
class Notification:
    """User-visible outcome of an editor action."""

    level: str  # success | info | warning | error
    message: str
