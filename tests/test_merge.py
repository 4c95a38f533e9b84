"""
Merge engine tests.

Covers:
  - merge keeps exactly the template's item ids, in template order
  - merge with an empty cache yields default instance fields
  - a cached entry with both OK and NG set merges as NG only
  - merge is idempotent and does not mutate its inputs
  - split separates structure from instance data
  - product type filtering (Common always visible, empty selection shows all)
  - merge_report overlays cached report fields with defaults
"""

import copy

from commissioning.data.default_template import DEFAULT_REPORT_TITLE
from commissioning.editor.merge import (
    default_products,
    filter_by_product_types,
    merge,
    merge_report,
    split,
)
from commissioning.editor.types import (
    CacheSnapshot,
    InspectionFields,
    Template,
    TemplateCategory,
    TemplateItem,
)


# ── Helpers ─────────────────────────────────────────────────────────────────


def _template():
    return Template(
        categories=[
            TemplateCategory("c1", "Material", [
                TemplateItem("i1", "Pipe diameter", "Multi V"),
                TemplateItem("i2", "Pipe cap", "Common", ["data:image/jpeg;base64,AAA"]),
            ]),
            TemplateCategory("c2", "Air Handling Unit", [
                TemplateItem("i3", "Filter installed", "AHU"),
            ]),
        ],
        product_types=["Multi V", "AHU"],
        version=3,
    )


def _ids(categories):
    return [item.id for cat in categories for item in cat.items]


# ── merge ───────────────────────────────────────────────────────────────────


class TestMerge:
    def test_ids_and_order_follow_template(self):
        cache = {
            "i3": InspectionFields(ok=True),
            "orphan": InspectionFields(ng=True, issue="gone"),
        }
        result = merge(_template(), cache)
        assert _ids(result) == ["i1", "i2", "i3"]
        assert [c.id for c in result] == ["c1", "c2"]

    def test_empty_cache_gives_defaults(self):
        result = merge(_template(), {})
        for cat in result:
            for item in cat.items:
                assert item.ok is False
                assert item.ng is False
                assert item.issue == ""
                assert item.images == []

    def test_instance_fields_overlaid_by_id(self):
        cache = {"i2": InspectionFields(ng=True, issue="Cap missing", images=["data:image/jpeg;base64,BBB"])}
        item = merge(_template(), cache)[0].items[1]
        assert item.ng is True
        assert item.issue == "Cap missing"
        assert item.images == ["data:image/jpeg;base64,BBB"]
        # structure still from the template
        assert item.text == "Pipe cap"
        assert item.reference_images == ["data:image/jpeg;base64,AAA"]

    def test_conflicting_flags_keep_ng(self):
        item = merge(_template(), {"i1": InspectionFields(ok=True, ng=True)})[0].items[0]
        assert (item.ok, item.ng) == (False, True)

    def test_idempotent(self):
        template = _template()
        cache = {"i1": InspectionFields(ok=True, images=["x"])}
        assert merge(template, cache) == merge(template, cache)

    def test_inputs_not_mutated(self):
        template = _template()
        cache = {"i1": InspectionFields(images=["x"])}
        template_before = copy.deepcopy(template)
        cache_before = copy.deepcopy(cache)

        result = merge(template, cache)
        result[0].items[0].images.append("y")
        result[0].items[1].reference_images.append("z")

        assert template == template_before
        assert cache == cache_before

    def test_empty_template(self):
        assert merge(Template(), {"i1": InspectionFields(ok=True)}) == []


# ── split ───────────────────────────────────────────────────────────────────


class TestSplit:
    def test_split_inverts_merge(self):
        template = _template()
        cache = {"i1": InspectionFields(ok=True), "i3": InspectionFields(issue="dusty")}
        structure, instance = split(merge(template, cache), template.product_types, template.version)

        assert structure == template
        assert instance["i1"] == InspectionFields(ok=True)
        assert instance["i3"] == InspectionFields(issue="dusty")
        assert instance["i2"].is_default()

    def test_template_half_has_no_instance_fields(self):
        structure, _ = split(merge(_template(), {"i1": InspectionFields(ok=True, issue="x")}))
        payload = structure.to_dict()
        for cat in payload["categories"]:
            for item in cat["items"]:
                assert set(item) == {"id", "text", "product_type", "reference_images"}


# ── filter ──────────────────────────────────────────────────────────────────


class TestFilterByProductTypes:
    def test_empty_selection_shows_everything(self):
        categories = merge(_template(), {})
        assert _ids(filter_by_product_types(categories, [])) == ["i1", "i2", "i3"]

    def test_common_always_visible(self):
        categories = merge(_template(), {})
        assert _ids(filter_by_product_types(categories, ["AHU"])) == ["i2", "i3"]

    def test_categories_kept_when_emptied(self):
        categories = merge(_template(), {})
        result = filter_by_product_types(categories, ["Multi V"])
        assert [c.id for c in result] == ["c1", "c2"]
        assert result[1].items == []


# ── merge_report ────────────────────────────────────────────────────────────


class TestMergeReport:
    def test_defaults(self):
        report = merge_report(_template(), CacheSnapshot())
        assert report.title == DEFAULT_REPORT_TITLE
        assert report.project_name == ""
        assert report.products == default_products()
        assert [p.name for p in report.products] == ["ODU", "IDU"]
        assert report.product_types == ["Multi V", "AHU"]

    def test_cached_report_fields_overlaid(self):
        snapshot = CacheSnapshot(
            items={"i1": InspectionFields(ok=True)},
            report={
                "title": "Site A",
                "project_name": "Tower 1",
                "inspection_date": "2026-10-01",
                "customer_signature": "data:image/png;base64,SIG",
                "products": [{"name": "ODU", "model_name": "ARUM", "quantity": 4}],
            },
        )
        report = merge_report(_template(), snapshot)
        assert report.title == "Site A"
        assert report.project_name == "Tower 1"
        assert report.inspection_date == "2026-10-01"
        assert report.customer_signature == "data:image/png;base64,SIG"
        assert report.products[0].model_name == "ARUM"
        assert report.products[0].quantity == "4"
        assert report.find_item("i1").ok is True
