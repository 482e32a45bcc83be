"""
Insightly CRM Integration Gateway (API v3.1).

All outbound HTTP calls to Insightly go through this class.

  - Basic auth: API key as username, empty password
  - Base URL:   https://api.{pod}.insightly.com/v3.1
  - Timeout:    30 s, single attempt, no retry
  - Structured GatewayResult returned to the service, never raises

When no API key is configured the gateway runs in mock mode: searches
return a fixed sample dataset and writes return a deterministic mock id, so
dev and test environments work without credentials.

Testability: pass a mock `session` to InsightlyGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30
_SEARCH_LIMIT = 10
_MIN_QUERY_LENGTH = 2


class GatewayResult:
    """Structured return value from InsightlyGateway calls.

    Attributes:
        ok:             True if the call succeeded (HTTP 2xx + no exception).
        status_code:    HTTP status code (None if network-level failure or mock).
        data:           Parsed JSON response body (dict or list), else None.
        error:          Human-readable error message or None.
        duration_ms:    Round-trip latency in milliseconds.
        mock:           True when produced by mock mode.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int,
        mock: bool = False,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms
        self.mock = mock

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "status_code": self.status_code,
            "data": self.data,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "mock": self.mock,
        }


# ── Mock dataset (unconfigured mode) ─────────────────────────────────────────

MOCK_ORGANIZATIONS = [
    {"id": 1001, "name": "ABC Mining Corporation", "city": "Perth", "country": "Australia",
     "industry": "Mining & Quarrying", "website": "www.abcmining.com"},
    {"id": 1002, "name": "Global Steel Industries", "city": "Pittsburgh", "country": "United States",
     "industry": "Steel & Metal Processing", "website": "www.globalsteel.com"},
    {"id": 1003, "name": "Cement Works Ltd", "city": "Mumbai", "country": "India",
     "industry": "Cement", "website": "www.cementworks.in"},
    {"id": 1004, "name": "PowerGen Energy Solutions", "city": "Houston", "country": "United States",
     "industry": "Power Generation", "website": "www.powergen.com"},
    {"id": 1005, "name": "Marine Services International", "city": "Singapore", "country": "Singapore",
     "industry": "Marine", "website": "www.marineservices.sg"},
]

MOCK_CONTACTS = [
    {"id": 2001, "first_name": "John", "last_name": "Smith", "email": "john.smith@abcmining.com",
     "title": "Operations Manager", "organization_id": 1001},
    {"id": 2002, "first_name": "Sarah", "last_name": "Johnson", "email": "sarah.johnson@globalsteel.com",
     "title": "Technical Director", "organization_id": 1002},
    {"id": 2003, "first_name": "Rajesh", "last_name": "Patel", "email": "rajesh.patel@cementworks.in",
     "title": "Plant Manager", "organization_id": 1003},
]


def _mock_id(payload: Any) -> int:
    raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return int(hashlib.sha256(raw).hexdigest()[:8], 16) % 100000 + 1


def _odata_literal(value: str) -> str:
    """Escape a value for use inside an OData string literal."""
    return value.replace("'", "''")


def _address_field(addresses: list | None, field: str) -> str:
    if not addresses:
        return ""
    primary = next((a for a in addresses if a.get("ADDRESS_TYPE") == "Work"), addresses[0])
    return primary.get(field) or ""


class InsightlyGateway:
    """Insightly REST API gateway.

    Instantiate once at module level (module-level singleton pattern).

    Usage:
        from app.integrations.insightly_gateway import insightly_gateway
        result = insightly_gateway.search_organizations("ABC")
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        api_key: str | None = None,
        pod: str | None = None,
    ) -> None:
        self._session: requests.Session | None = session
        self.api_key = api_key if api_key is not None else os.getenv("INSIGHTLY_API_KEY", "")
        self.pod = pod or os.getenv("INSIGHTLY_POD", "na1")

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def base_url(self) -> str:
        return f"https://api.{self.pod}.insightly.com/v3.1"

    # ── Core request dispatcher ──────────────────────────────────────────────

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict | list | None = None,
        params: dict | None = None,
        files: dict | None = None,
        data: dict | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> GatewayResult:
        """Execute one authenticated request. Always returns, never raises."""
        url = f"{self.base_url}{path}"
        kwargs: dict[str, Any] = {
            "auth": (self.api_key, ""),
            "headers": {"Accept": "application/json"},
            "timeout": timeout,
        }
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = params
        if files:
            kwargs["files"] = files
        if data:
            kwargs["data"] = data

        t0 = time.perf_counter()
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.Timeout:
            logger.warning("Insightly request timed out %s %s", method, path, extra={"provider": "insightly"})
            return GatewayResult(
                ok=False, status_code=None, data=None,
                error=f"Request timed out after {timeout}s", duration_ms=int(timeout * 1000),
            )
        except requests.RequestException as exc:
            logger.warning("Insightly network error %s %s: %s", method, path, exc, extra={"provider": "insightly"})
            return GatewayResult(
                ok=False, status_code=None, data=None, error=str(exc)[:500],
                duration_ms=int((time.perf_counter() - t0) * 1000),
            )
        duration_ms = int((time.perf_counter() - t0) * 1000)

        if not resp.ok:
            logger.warning(
                "Insightly request failed status=%d %s %s", resp.status_code, method, path,
                extra={"provider": "insightly"},
            )
            return GatewayResult(
                ok=False, status_code=resp.status_code, data=None,
                error=f"Insightly API error: {resp.status_code} - {resp.text[:500]}",
                duration_ms=duration_ms,
            )
        try:
            body = resp.json() if resp.content and resp.status_code != 204 else {}
        except ValueError:
            body = {}
        return GatewayResult(
            ok=True, status_code=resp.status_code, data=body, error=None, duration_ms=duration_ms,
        )

    # ── Search ───────────────────────────────────────────────────────────────

    def search_organizations(self, query: str) -> GatewayResult:
        query = (query or "").strip()
        if not self.configured:
            return GatewayResult(
                ok=True, status_code=None, data=self._mock_organizations(query),
                error=None, duration_ms=0, mock=True,
            )
        result = self.request(
            "GET", "/Organisations",
            params={
                "$filter": f"contains(ORGANISATION_NAME,'{_odata_literal(query)}')",
                "$top": _SEARCH_LIMIT,
            },
        )
        if result.ok:
            result.data = [
                {
                    "id": org.get("ORGANISATION_ID"),
                    "name": org.get("ORGANISATION_NAME") or "",
                    "city": _address_field(org.get("ADDRESSES"), "ADDRESS_CITY"),
                    "country": _address_field(org.get("ADDRESSES"), "ADDRESS_COUNTRY"),
                    "website": org.get("WEBSITE") or "",
                }
                for org in (result.data or [])
            ]
        return result

    def search_contacts(self, query: str) -> GatewayResult:
        query = (query or "").strip()
        if not self.configured:
            return GatewayResult(
                ok=True, status_code=None, data=self._mock_contacts(query),
                error=None, duration_ms=0, mock=True,
            )
        q = _odata_literal(query)
        result = self.request(
            "GET", "/Contacts",
            params={
                "$filter": (
                    f"contains(FIRST_NAME,'{q}') or contains(LAST_NAME,'{q}') "
                    f"or contains(EMAIL_ADDRESS,'{q}')"
                ),
                "$top": _SEARCH_LIMIT,
            },
        )
        if result.ok:
            result.data = [
                {
                    "id": c.get("CONTACT_ID"),
                    "first_name": c.get("FIRST_NAME") or "",
                    "last_name": c.get("LAST_NAME") or "",
                    "email": c.get("EMAIL_ADDRESS") or "",
                    "title": c.get("TITLE") or "",
                    "organization_id": c.get("ORGANISATION_ID"),
                }
                for c in (result.data or [])
            ]
        return result

    # ── Opportunities ────────────────────────────────────────────────────────

    def create_opportunity(self, payload: dict) -> GatewayResult:
        """POST /Opportunities. ``data["OPPORTUNITY_ID"]`` carries the new id."""
        if not self.configured:
            return GatewayResult(
                ok=True, status_code=None, data={"OPPORTUNITY_ID": _mock_id(payload)},
                error=None, duration_ms=0, mock=True,
            )
        return self.request("POST", "/Opportunities", json_body=payload)

    def update_opportunity(self, opportunity_id: int, payload: dict) -> GatewayResult:
        body = {**payload, "OPPORTUNITY_ID": opportunity_id}
        if not self.configured:
            return GatewayResult(
                ok=True, status_code=None, data={"OPPORTUNITY_ID": opportunity_id},
                error=None, duration_ms=0, mock=True,
            )
        return self.request("PUT", "/Opportunities", json_body=body)

    # ── Files ────────────────────────────────────────────────────────────────

    def attach_file(self, opportunity_id: int, content: bytes, file_name: str,
                    content_type: str = "application/pdf") -> GatewayResult:
        """Upload a file, then link it to the opportunity."""
        if not self.configured:
            return GatewayResult(
                ok=True, status_code=None,
                data={"FILE_ATTACHMENT_ID": _mock_id([opportunity_id, file_name])},
                error=None, duration_ms=0, mock=True,
            )

        upload = self.request(
            "POST", "/FileAttachments",
            files={"file": (file_name, content, content_type)},
            data={"FILE_NAME": file_name, "CONTENT_TYPE": content_type},
        )
        if not upload.ok:
            return upload
        file_id = (upload.data or {}).get("FILE_ATTACHMENT_ID")
        if not file_id:
            return GatewayResult(
                ok=False, status_code=upload.status_code, data=upload.data,
                error="Upload response missing FILE_ATTACHMENT_ID", duration_ms=upload.duration_ms,
            )

        link = self.request(
            "POST", f"/Opportunities/{opportunity_id}/FileAttachments",
            json_body={"FILE_ATTACHMENT_ID": file_id},
        )
        if not link.ok:
            return link
        return GatewayResult(
            ok=True, status_code=link.status_code, data={"FILE_ATTACHMENT_ID": file_id},
            error=None, duration_ms=upload.duration_ms + link.duration_ms,
        )

    # ── Connectivity ─────────────────────────────────────────────────────────

    def test_connection(self) -> GatewayResult:
        if not self.configured:
            return GatewayResult(
                ok=False, status_code=None, data=None,
                error="Insightly API key not configured", duration_ms=0, mock=True,
            )
        return self.request("GET", "/Users/Me")

    # ── Mock helpers ─────────────────────────────────────────────────────────

    @staticmethod
    def _mock_organizations(query: str) -> list[dict]:
        if len(query) < _MIN_QUERY_LENGTH:
            return []
        q = query.lower()
        return [
            org for org in MOCK_ORGANIZATIONS
            if q in org["name"].lower() or q in org["city"].lower() or q in org["industry"].lower()
        ]

    @staticmethod
    def _mock_contacts(query: str) -> list[dict]:
        if len(query) < _MIN_QUERY_LENGTH:
            return []
        q = query.lower()
        return [
            c for c in MOCK_CONTACTS
            if q in c["first_name"].lower() or q in c["last_name"].lower() or q in c["email"].lower()
        ]


# Module-level singleton
insightly_gateway = InsightlyGateway()
