"""
Template Store REST gateway: the editor's HTTP link to the server.

All editor → server calls go through TemplateGateway:
  - Bearer capability token injected per call
  - GET requests retried on network errors and 5xx (max 2 retries, 0.5 s → 2 s)
  - Non-idempotent calls are never retried
  - Structured GatewayResult returned; adapters map it to exceptions

Adapters on top of the gateway implement the editor contracts:
  HttpTemplateStore: TemplateStore
  HttpPasswordVerifier: shared edit password → Capability
  HttpRoleVerifier: email/password sign-in → Capability
  HttpHistorySink: item change trail

Testability: pass a fake ``session`` (anything with ``request``) and a no-op
``sleep`` to TemplateGateway.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests

from commissioning.core.exceptions import (
    AuthenticationError,
    ConflictError,
    PermissionDeniedError,
    TemplateStoreError,
    ValidationError,
)
from commissioning.editor.access_gate import Capability, CredentialVerifier, SignInCredential
from commissioning.editor.stores import HistorySink, TemplateStore
from commissioning.editor.types import Template

logger = logging.getLogger(__name__)

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [0.5, 2]

_DEFAULT_TIMEOUT = 10


class GatewayResult:
    """Structured return value from TemplateGateway calls.

    Attributes:
        ok:          True if the call returned HTTP 2xx.
        status_code: HTTP status code (None on network-level failure).
        data:        Parsed JSON body (also for error responses), else None.
        error:       Human-readable error message or None.
        duration_ms: Round-trip latency of the last attempt.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms

    def __repr__(self):
        return f"<GatewayResult ok={self.ok} status={self.status_code} error={self.error!r}>"


class TemplateGateway:
    """REST gateway to a commissioning report server.

    Usage:
        gateway = TemplateGateway("https://reports.example.com")
        store = HttpTemplateStore(gateway)
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session
        self.timeout = timeout
        self._sleep = sleep

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _do_request(self, method, url, headers, json_body, params) -> requests.Response:
        kwargs: dict[str, Any] = {"headers": headers, "timeout": self.timeout}
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params
        return self.session.request(method, url, **kwargs)

    @staticmethod
    def _parse(resp: requests.Response):
        try:
            return resp.json() if resp.content else None
        except ValueError:
            return None

    def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json_body: dict | list | None = None,
        params: dict | None = None,
    ) -> GatewayResult:
        """Execute a request against ``base_url + path``. Never raises."""
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        retries = _RETRY_MAX if method.upper() == "GET" else 0

        last_error = "Unknown error"
        last_status: int | None = None
        duration_ms = 0
        for attempt in range(retries + 1):
            try:
                t0 = time.perf_counter()
                resp = self._do_request(method, url, headers, json_body, params)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code
                data = self._parse(resp)

                if resp.ok:
                    return GatewayResult(True, resp.status_code, data, None, duration_ms)

                last_error = (
                    data.get("error") if isinstance(data, dict) and data.get("error")
                    else f"HTTP {resp.status_code}: {resp.text[:500]}"
                )
                if resp.status_code < 500:
                    return GatewayResult(False, resp.status_code, data, last_error, duration_ms)
                logger.warning(
                    "Template API request failed attempt=%d/%d status=%d url=%s",
                    attempt + 1, retries + 1, resp.status_code, url,
                )

            except requests.Timeout:
                last_error = f"Request timed out after {self.timeout}s"
                last_status = None
                logger.warning("Template API request timed out attempt=%d/%d url=%s",
                               attempt + 1, retries + 1, url)

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                last_status = None
                logger.warning("Template API network error attempt=%d/%d url=%s error=%s",
                               attempt + 1, retries + 1, url, last_error)

            if attempt < retries:
                self._sleep(_RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)])

        return GatewayResult(False, last_status, None, last_error, duration_ms)


def _raise_for_auth(result: GatewayResult) -> None:
    if result.status_code in (400, 422):
        raise ValidationError(result.error or "Invalid request")
    if result.status_code == 401:
        raise AuthenticationError(result.error or "Authentication failed")
    if result.status_code == 403:
        raise PermissionDeniedError(result.error or "Permission denied")


# ── Adapters ────────────────────────────────────────────────────────────────


class HttpTemplateStore(TemplateStore):
    def __init__(self, gateway: TemplateGateway):
        self.gateway = gateway

    def load(self) -> Template:
        result = self.gateway.request("GET", "/api/v1/template")
        if not result.ok or not isinstance(result.data, dict):
            raise TemplateStoreError(f"Template load failed: {result.error}")
        return Template.from_dict(result.data)

    def save(self, template: Template, capability) -> Template:
        payload = template.to_dict()
        result = self.gateway.request(
            "PUT", "/api/v1/template",
            token=capability.token,
            json_body={
                "categories": payload["categories"],
                "product_types": payload["product_types"],
                "version": template.version,
            },
        )
        if result.ok and isinstance(result.data, dict):
            return Template.from_dict(result.data)
        if result.status_code == 409:
            details = (result.data or {}).get("details") or {}
            raise ConflictError("Template", "version", details.get("current_version"), message=result.error)
        if result.status_code in (401, 403):
            raise PermissionDeniedError(result.error or "Edit permission required")
        if result.status_code in (400, 422):
            raise TemplateStoreError(f"Template rejected: {result.error}")
        raise TemplateStoreError(f"Template save failed: {result.error}")


class _HttpVerifier(CredentialVerifier):
    def __init__(self, gateway: TemplateGateway):
        self.gateway = gateway

    def _session(self, path: str, body: dict) -> Capability:
        result = self.gateway.request("POST", path, json_body=body)
        if result.ok and isinstance(result.data, dict):
            return Capability.from_session(result.data)
        _raise_for_auth(result)
        raise TemplateStoreError(f"Credential check failed: {result.error}")

    def release(self, capability):
        result = self.gateway.request("POST", "/api/v1/auth/sign-out", token=capability.token)
        if not result.ok and result.status_code != 401:
            raise TemplateStoreError(f"Sign-out failed: {result.error}")


class HttpPasswordVerifier(_HttpVerifier):
    def verify(self, credential) -> Capability:
        if not isinstance(credential, str) or not credential:
            raise ValidationError("Password is required")
        return self._session("/api/v1/auth/unlock", {"password": credential})


class HttpRoleVerifier(_HttpVerifier):
    def verify(self, credential) -> Capability:
        if not isinstance(credential, SignInCredential):
            raise ValidationError("Email and password are required")
        return self._session(
            "/api/v1/auth/sign-in", {"email": credential.email, "password": credential.password},
        )


class HttpHistorySink(HistorySink):
    """Posts change entries to ``/api/v1/history``.

    Entries are sent with the edit capability when there is one, otherwise
    with ``token`` (a standing signed-in session). With neither, nothing is
    sent.
    """

    def __init__(self, gateway: TemplateGateway, token: str | None = None):
        self.gateway = gateway
        self.token = token

    def record(self, entries, capability=None):
        token = capability.token if capability is not None else self.token
        if not token:
            logger.debug("No session for history, %d entries not sent", len(entries))
            return
        result = self.gateway.request("POST", "/api/v1/history", token=token, json_body={"entries": entries})
        if not result.ok:
            raise TemplateStoreError(f"History append failed: {result.error}")
