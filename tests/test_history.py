"""
Item history tests: service, describe_change and /api/v1/history.
"""

import pytest

from commissioning.core.exceptions import ValidationError
from commissioning.models.history import ItemHistory
from commissioning.services import history_service


class TestAppendEntries:
    def test_append_batch(self):
        written = history_service.append_entries([
            {"item_id": "i1", "change_type": "updated", "field_name": "ok",
             "old_value": False, "new_value": True},
            {"item_id": "i1", "change_type": "updated", "field_name": "issue",
             "old_value": "", "new_value": "Loose terminal"},
        ], actor="user:3")
        assert len(written) == 2
        assert written[0]["new_value"] == "true"
        assert written[0]["old_value"] == "false"
        assert {w["actor"] for w in written} == {"user:3"}

    @pytest.mark.parametrize("entries", [
        [],
        None,
        [{"change_type": "created"}],
        [{"item_id": "i1", "change_type": "renamed"}],
        [{"item_id": "i1", "change_type": "updated", "field_name": "colour"}],
    ])
    def test_rejects_malformed(self, entries):
        with pytest.raises(ValidationError):
            history_service.append_entries(entries)

    def test_bad_entry_writes_nothing(self):
        with pytest.raises(ValidationError):
            history_service.append_entries([
                {"item_id": "i1", "change_type": "created"},
                {"item_id": "i2", "change_type": "bogus"},
            ])
        assert ItemHistory.query.count() == 0


class TestListHistory:
    def test_enriched_with_current_text(self, seeded_template):
        item = seeded_template["categories"][0]["items"][0]
        history_service.append_entries([
            {"item_id": item["id"], "change_type": "updated", "field_name": "ng", "new_value": True},
            {"item_id": "gone", "change_type": "deleted"},
        ])
        entries = history_service.list_history()
        by_item = {e["item_id"]: e for e in entries}
        assert by_item[item["id"]]["item_text"] == item["text"]
        assert by_item[item["id"]]["description"] == "Checked NG status"
        assert by_item["gone"]["item_text"] is None
        assert by_item["gone"]["description"] == "Deleted: Item"

    def test_filter_and_limit(self):
        history_service.append_entries(
            [{"item_id": "a", "change_type": "created"}] * 3
            + [{"item_id": "b", "change_type": "created"}]
        )
        assert len(history_service.list_history(item_id="a")) == 3
        assert len(history_service.list_history(limit=2)) == 2

    def test_newest_first(self):
        history_service.append_entries([{"item_id": "x", "change_type": "created"}])
        history_service.append_entries([{"item_id": "x", "change_type": "deleted"}])
        assert [e["change_type"] for e in history_service.list_history()] == ["deleted", "created"]


class TestDescribeChange:
    @pytest.mark.parametrize("entry, expected", [
        ({"change_type": "created", "item_text": "Check wiring"}, "Created: Check wiring"),
        ({"change_type": "updated", "field_name": "text", "old_value": "a", "new_value": "b"},
         'Updated text from "a" to "b"'),
        ({"change_type": "updated", "field_name": "ok", "new_value": "true"}, "Checked OK status"),
        ({"change_type": "updated", "field_name": "ok", "new_value": "false"}, "Unchecked OK status"),
        ({"change_type": "updated", "field_name": "issue"}, "Updated issue description"),
        ({"change_type": "updated", "field_name": "product_type"}, "Updated product_type"),
        ({"change_type": "moved"}, "Unknown change"),
    ])
    def test_descriptions(self, entry, expected):
        assert history_service.describe_change(entry) == expected


@pytest.mark.integration
class TestHistoryApi:
    def test_get_is_public(self, client):
        res = client.get("/api/v1/history")
        assert res.status_code == 200
        assert res.get_json() == []

    def test_post_requires_session(self, client):
        res = client.post("/api/v1/history", json={"entries": [{"item_id": "i", "change_type": "created"}]})
        assert res.status_code == 401

    def test_post_records_actor(self, client, editor_user, editor_headers):
        res = client.post("/api/v1/history", json={"entries": [
            {"item_id": "i9", "change_type": "updated", "field_name": "ok", "new_value": True},
        ]}, headers=editor_headers)
        assert res.status_code == 201
        assert res.get_json()[0]["actor"] == f"user:{editor_user.id}"

        listed = client.get("/api/v1/history?item_id=i9").get_json()
        assert len(listed) == 1
        assert listed[0]["description"] == "Checked OK status"

    def test_shared_session_actor(self, client, shared_headers):
        res = client.post("/api/v1/history", json={"entries": [
            {"item_id": "i1", "change_type": "created"},
        ]}, headers=shared_headers)
        assert res.get_json()[0]["actor"] == "shared-editor"

    def test_post_invalid(self, client, viewer_headers):
        res = client.post("/api/v1/history", json={"entries": "nope"}, headers=viewer_headers)
        assert res.status_code == 422

    def test_bad_limit_falls_back(self, client):
        assert client.get("/api/v1/history?limit=abc").status_code == 200
