"""
Template gateway tests: HTTP adapters for the editor contracts.

Test strategy
-------------
TemplateGateway takes a ``session`` (anything with ``request``) and a
``sleep`` callable. A FakeSession replays queued responses or exceptions
and records every call, so no server is needed and retries do not wait.
"""

import json

import pytest
import requests

from commissioning.core.exceptions import (
    AuthenticationError,
    ConflictError,
    PermissionDeniedError,
    TemplateStoreError,
    ValidationError,
)
from commissioning.editor.access_gate import AccessGate, Capability, SignInCredential
from commissioning.editor.types import Template, TemplateCategory, TemplateItem
from commissioning.integrations.template_gateway import (
    HttpHistorySink,
    HttpPasswordVerifier,
    HttpRoleVerifier,
    HttpTemplateStore,
    TemplateGateway,
)

TEMPLATE_BODY = {
    "categories": [
        {"id": "c1", "name": "Material", "items": [
            {"id": "i1", "text": "Pipe diameter", "product_type": "Multi V", "reference_images": []},
        ]},
    ],
    "product_types": ["Multi V"],
    "version": 3,
}

SESSION_BODY = {
    "token": "tok-abc",
    "token_type": "Bearer",
    "role": "editor",
    "can_edit": True,
    "expires_at": "2026-10-19T12:00:00+00:00",
}


def _response(status, body=None):
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode() if body is not None else b""
    return resp


class FakeSession:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _gateway(*outcomes):
    session = FakeSession(*outcomes)
    sleeps = []
    gateway = TemplateGateway("https://reports.example.com/", session=session, sleep=sleeps.append)
    return gateway, session, sleeps


CAPABILITY = Capability(token="tok-abc", role="editor", can_edit=True)


# ═══════════════════════════════════════════════════════════════
# Gateway
# ═══════════════════════════════════════════════════════════════
class TestGateway:
    def test_success(self):
        gateway, session, _ = _gateway(_response(200, {"status": "ok"}))
        result = gateway.request("GET", "/api/v1/health", token="t")
        assert result.ok is True
        assert result.data == {"status": "ok"}
        method, url, kwargs = session.calls[0]
        assert url == "https://reports.example.com/api/v1/health"
        assert kwargs["headers"]["Authorization"] == "Bearer t"

    def test_get_retried_on_5xx(self):
        gateway, session, sleeps = _gateway(
            _response(503), requests.ConnectionError("reset"), _response(200, {"ok": True}),
        )
        result = gateway.request("GET", "/api/v1/template")
        assert result.ok is True
        assert len(session.calls) == 3
        assert sleeps == [0.5, 2]

    def test_get_gives_up_after_retries(self):
        gateway, session, _ = _gateway(_response(500), _response(502), _response(503, {"error": "down"}))
        result = gateway.request("GET", "/api/v1/template")
        assert result.ok is False
        assert result.status_code == 503
        assert result.error == "down"
        assert len(session.calls) == 3

    def test_put_never_retried(self):
        gateway, session, sleeps = _gateway(_response(503))
        result = gateway.request("PUT", "/api/v1/template", json_body={})
        assert result.ok is False
        assert len(session.calls) == 1
        assert sleeps == []

    def test_4xx_not_retried(self):
        gateway, session, _ = _gateway(_response(404, {"error": "Not found"}))
        result = gateway.request("GET", "/api/v1/nope")
        assert result.status_code == 404
        assert result.error == "Not found"
        assert len(session.calls) == 1

    def test_timeout(self):
        gateway, _, _ = _gateway(requests.Timeout(), requests.Timeout(), requests.Timeout())
        result = gateway.request("GET", "/api/v1/template")
        assert result.status_code is None
        assert "timed out" in result.error


# ═══════════════════════════════════════════════════════════════
# Template Store adapter
# ═══════════════════════════════════════════════════════════════
class TestHttpTemplateStore:
    def test_load(self):
        gateway, _, _ = _gateway(_response(200, TEMPLATE_BODY))
        template = HttpTemplateStore(gateway).load()
        assert template.version == 3
        assert template.categories[0].items[0].product_type == "Multi V"

    def test_load_failure(self):
        gateway, _, _ = _gateway(_response(500), _response(500), _response(500))
        with pytest.raises(TemplateStoreError):
            HttpTemplateStore(gateway).load()

    def test_save_sends_structure_and_version(self):
        gateway, session, _ = _gateway(_response(200, {**TEMPLATE_BODY, "version": 4}))
        template = Template(
            categories=[TemplateCategory("c1", "Material", [TemplateItem("i1", "Pipe diameter", "Multi V")])],
            product_types=["Multi V"],
            version=3,
        )
        saved = HttpTemplateStore(gateway).save(template, CAPABILITY)
        assert saved.version == 4

        method, _, kwargs = session.calls[0]
        assert method == "PUT"
        assert kwargs["headers"]["Authorization"] == "Bearer tok-abc"
        assert kwargs["json"]["version"] == 3
        assert set(kwargs["json"]["categories"][0]["items"][0]) == {
            "id", "text", "product_type", "reference_images",
        }

    def test_save_conflict(self):
        gateway, _, _ = _gateway(_response(409, {
            "error": "Template was changed", "code": "ERR_CONFLICT_VERSION",
            "details": {"field": "version", "current_version": 5},
        }))
        with pytest.raises(ConflictError) as exc_info:
            HttpTemplateStore(gateway).save(Template(version=3), CAPABILITY)
        assert exc_info.value.value == 5

    @pytest.mark.parametrize("status, exc_type", [
        (401, PermissionDeniedError),
        (403, PermissionDeniedError),
        (422, TemplateStoreError),
        (503, TemplateStoreError),
    ])
    def test_save_errors(self, status, exc_type):
        gateway, _, _ = _gateway(_response(status, {"error": "nope"}))
        with pytest.raises(exc_type):
            HttpTemplateStore(gateway).save(Template(version=1), CAPABILITY)


# ═══════════════════════════════════════════════════════════════
# Verifiers & history
# ═══════════════════════════════════════════════════════════════
class TestHttpVerifiers:
    def test_password_unlock(self):
        gateway, session, _ = _gateway(_response(200, SESSION_BODY))
        capability = HttpPasswordVerifier(gateway).verify("edit1234")
        assert capability.token == "tok-abc"
        assert capability.can_edit is True
        assert capability.expires_at.year == 2026
        assert session.calls[0][2]["json"] == {"password": "edit1234"}

    def test_wrong_password(self):
        gateway, _, _ = _gateway(_response(401, {"error": "Incorrect password"}))
        with pytest.raises(AuthenticationError, match="Incorrect password"):
            HttpPasswordVerifier(gateway).verify("guess")

    def test_empty_password_not_sent(self):
        gateway, session, _ = _gateway()
        with pytest.raises(ValidationError):
            HttpPasswordVerifier(gateway).verify("")
        assert session.calls == []

    def test_server_down_is_store_error(self):
        gateway, _, _ = _gateway(requests.ConnectionError("refused"))
        with pytest.raises(TemplateStoreError):
            HttpPasswordVerifier(gateway).verify("edit1234")

    def test_role_sign_in(self):
        gateway, session, _ = _gateway(_response(200, {**SESSION_BODY, "role": "viewer", "can_edit": False}))
        capability = HttpRoleVerifier(gateway).verify(SignInCredential("v@example.com", "pw123456"))
        assert capability.can_edit is False
        assert session.calls[0][1].endswith("/api/v1/auth/sign-in")

    def test_gate_releases_session_on_exit(self):
        gateway, session, _ = _gateway(_response(200, SESSION_BODY), _response(200, {"message": "Signed out"}))
        gate = AccessGate(HttpPasswordVerifier(gateway))
        gate.submit("edit1234")
        gate.exit()
        method, url, kwargs = session.calls[-1]
        assert url.endswith("/api/v1/auth/sign-out")
        assert kwargs["headers"]["Authorization"] == "Bearer tok-abc"

    def test_release_of_dead_session_is_quiet(self):
        gateway, _, _ = _gateway(_response(401, {"error": "Session is no longer active"}))
        HttpPasswordVerifier(gateway).release(CAPABILITY)


class TestHttpHistorySink:
    def test_posts_with_capability(self):
        gateway, session, _ = _gateway(_response(201, []))
        HttpHistorySink(gateway).record([{"item_id": "i1", "change_type": "created"}], CAPABILITY)
        method, url, kwargs = session.calls[0]
        assert method == "POST"
        assert kwargs["json"] == {"entries": [{"item_id": "i1", "change_type": "created"}]}

    def test_no_session_sends_nothing(self):
        gateway, session, _ = _gateway()
        HttpHistorySink(gateway).record([{"item_id": "i1", "change_type": "created"}])
        assert session.calls == []

    def test_failure_raises(self):
        gateway, _, _ = _gateway(_response(422, {"error": "bad entries"}))
        with pytest.raises(TemplateStoreError):
            HttpHistorySink(gateway, token="standing").record([{"item_id": "i1"}])


# ═══════════════════════════════════════════════════════════════
# Against the app
# ═══════════════════════════════════════════════════════════════
class ClientSession:
    """Routes gateway calls into the Flask test client."""

    def __init__(self, client):
        self.client = client

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        path = url.replace("http://testserver", "")
        res = self.client.open(path, method=method, headers=headers, json=json, query_string=params)
        resp = requests.Response()
        resp.status_code = res.status_code
        resp._content = res.data
        return resp


@pytest.mark.integration
class TestGatewayAgainstApp:
    def test_edit_round_trip(self, client, app):
        gateway = TemplateGateway("http://testserver", session=ClientSession(client))
        store = HttpTemplateStore(gateway)
        template = store.load()
        assert template.version == 1

        gate = AccessGate(HttpPasswordVerifier(gateway))
        capability = gate.submit(app.config["EDIT_PASSWORD"])
        template.categories[0].name = "Materials"
        saved = store.save(template, capability)
        assert saved.version == 2
        assert saved.categories[0].name == "Materials"

        with pytest.raises(ConflictError) as exc_info:
            store.save(template, capability)
        assert exc_info.value.value == 2
