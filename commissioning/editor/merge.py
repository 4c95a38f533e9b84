"""
Merge engine: Template (structure) + local results (instance data) → report.

Pure functions only. Nothing here performs I/O or mutates its inputs.

    merge(template, cache)       → list[Category]
    split(categories)            → (Template, {item_id: InspectionFields})
    filter_by_product_types()    → categories restricted to selected tags
    merge_report(template, snap) → ReportData

The template is authoritative for which items exist and in what order.
Structural fields come only from the template, instance fields only from the
cache, so the two halves can never leak into each other.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from commissioning.data.default_template import DEFAULT_PRODUCTS, DEFAULT_REPORT_TITLE
from commissioning.editor.types import (
    COMMON_PRODUCT_TYPE,
    REPORT_FIELDS,
    CacheSnapshot,
    Category,
    ChecklistItem,
    InspectionFields,
    Product,
    ReportData,
    Template,
    TemplateCategory,
    TemplateItem,
)


def _merge_item(item: TemplateItem, fields: InspectionFields | None) -> ChecklistItem:
    if fields is None:
        fields = InspectionFields()
    return ChecklistItem(
        id=item.id,
        text=item.text,
        # OK and NG are exclusive; NG wins for a corrupt entry
        ok=fields.ok and not fields.ng,
        ng=fields.ng,
        issue=fields.issue,
        images=list(fields.images),
        product_type=item.product_type or COMMON_PRODUCT_TYPE,
        reference_images=list(item.reference_images),
    )


def merge(template: Template, cache: Mapping[str, InspectionFields]) -> list[Category]:
    """Overlay cached inspection fields onto the template's items.

    Items without a cache entry get the defaults (not ok, not ng, empty issue,
    no images). Cache entries whose id is not in the template are dropped.
    """
    return [
        Category(
            id=cat.id,
            name=cat.name,
            items=[_merge_item(item, cache.get(item.id)) for item in cat.items],
        )
        for cat in template.categories
    ]


def split(
    categories: Iterable[Category],
    product_types: Iterable[str] = (),
    version: int | None = None,
) -> tuple[Template, dict[str, InspectionFields]]:
    """Project merged categories back onto their two sources.

    The returned Template carries no ok/ng/issue/images; the returned mapping
    carries no text, tag, reference images or ordering.
    """
    template_categories = []
    instance: dict[str, InspectionFields] = {}
    for cat in categories:
        template_items = []
        for item in cat.items:
            template_items.append(TemplateItem(
                id=item.id,
                text=item.text,
                product_type=item.product_type or COMMON_PRODUCT_TYPE,
                reference_images=list(item.reference_images),
            ))
            instance[item.id] = InspectionFields(
                ok=item.ok, ng=item.ng, issue=item.issue, images=list(item.images),
            )
        template_categories.append(TemplateCategory(id=cat.id, name=cat.name, items=template_items))
    return Template(template_categories, list(product_types), version), instance


def filter_by_product_types(categories: Iterable[Category], selected: Iterable[str]) -> list[Category]:
    """Keep items relevant to the selected product types.

    "Common" items are always kept. An empty selection keeps everything.
    Categories left without items are still returned.
    """
    selected = set(selected)
    if not selected:
        return list(categories)
    return [
        Category(
            id=cat.id,
            name=cat.name,
            items=[
                item for item in cat.items
                if item.product_type in (COMMON_PRODUCT_TYPE, "") or item.product_type in selected
            ],
        )
        for cat in categories
    ]


def default_products() -> list[Product]:
    return [Product(**p) for p in DEFAULT_PRODUCTS]


def merge_report(template: Template, snapshot: CacheSnapshot) -> ReportData:
    """Build the full working report from the template and a cache snapshot."""
    report_fields = {key: snapshot.report.get(key) for key in REPORT_FIELDS}
    raw_products = snapshot.report.get("products")
    if isinstance(raw_products, list) and raw_products:
        products = [Product.from_dict(p) for p in raw_products if isinstance(p, dict)]
    else:
        products = default_products()

    return ReportData(
        title=report_fields["title"] or DEFAULT_REPORT_TITLE,
        project_name=report_fields["project_name"] or "",
        opportunity_number=report_fields["opportunity_number"] or "",
        address=report_fields["address"] or "",
        products=products,
        categories=merge(template, snapshot.items),
        inspection_date=report_fields["inspection_date"] or "",
        commissioner_signature=report_fields["commissioner_signature"] or "",
        installer_signature=report_fields["installer_signature"] or "",
        customer_signature=report_fields["customer_signature"] or "",
        product_types=list(template.product_types),
    )
