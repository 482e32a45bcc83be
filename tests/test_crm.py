"""
CRM (Insightly) integration tests.

Tests cover:
  - Mock-mode search for organisations and contacts
  - Case study sync: create then update, status, audit trail
  - PDF push (approved/published only)
  - Admin batch sync and connection test
  - Real-mode request shape via an injected requests session
  - Role gating on /api/v1/crm
"""
from unittest.mock import MagicMock

import pytest
import requests

from app.core.exceptions import IntegrationError
from app.integrations.insightly_gateway import InsightlyGateway
from app.models import db
from app.models.audit import AuditLog
from app.services import crm_service


def _response(status_code, body=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body
    resp.text = text
    return resp


# ═════════════════════════════════════════════════════════════════════════
# MOCK-MODE LOOKUPS
# ═════════════════════════════════════════════════════════════════════════

class TestLookups:
    def test_search_organizations(self, client, marketing, auth):
        res = client.get("/api/v1/crm/organizations?q=Mining", headers=auth(marketing))
        assert res.status_code == 200
        items = res.get_json()["items"]
        assert [o["id"] for o in items] == [1001]
        assert items[0]["name"] == "ABC Mining Corporation"

    def test_short_query_returns_nothing(self, client, marketing, auth):
        res = client.get("/api/v1/crm/organizations?q=A", headers=auth(marketing))
        assert res.get_json()["items"] == []

    def test_search_contacts(self, client, marketing, auth):
        res = client.get("/api/v1/crm/contacts?q=patel", headers=auth(marketing))
        assert [c["id"] for c in res.get_json()["items"]] == [2003]

    def test_contributor_forbidden(self, client, contributor, auth):
        res = client.get("/api/v1/crm/organizations?q=Mining", headers=auth(contributor))
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════
# SYNC
# ═════════════════════════════════════════════════════════════════════════

class TestSync:
    def test_create_then_update(self, client, approved_case, marketing, auth):
        first = client.post(
            f"/api/v1/crm/case-studies/{approved_case.id}/sync", headers=auth(marketing),
        ).get_json()
        assert first["success"] is True
        assert first["created"] is True
        assert first["mock"] is True
        assert first["organization_id"] == 1001

        second = client.post(
            f"/api/v1/crm/case-studies/{approved_case.id}/sync", headers=auth(marketing),
        ).get_json()
        assert second["created"] is False
        assert second["opportunity_id"] == first["opportunity_id"]
        assert AuditLog.query.filter_by(action="CRM_SYNC", entity_id=str(approved_case.id)).count() == 2

    def test_mock_ids_are_deterministic(self, approved_case, marketing):
        first = crm_service.sync_case_study(approved_case.id, marketing)
        approved_case.insightly_opportunity_id = None
        db.session.commit()
        again = crm_service.sync_case_study(approved_case.id, marketing)
        assert again["opportunity_id"] == first["opportunity_id"]

    def test_status(self, client, approved_case, marketing, auth):
        url = f"/api/v1/crm/case-studies/{approved_case.id}/status"
        before = client.get(url, headers=auth(marketing)).get_json()
        assert before["synced"] is False
        assert before["configured"] is False
        client.post(f"/api/v1/crm/case-studies/{approved_case.id}/sync", headers=auth(marketing))
        after = client.get(url, headers=auth(marketing)).get_json()
        assert after["synced"] is True
        assert after["synced_at"] is not None

    def test_unknown_case_is_404(self, client, marketing, auth):
        res = client.post("/api/v1/crm/case-studies/999/sync", headers=auth(marketing))
        assert res.status_code == 404

    def test_gateway_failure_is_502(self, client, approved_case, marketing, auth, crm_mock_mode, monkeypatch):
        from app.integrations.insightly_gateway import GatewayResult

        monkeypatch.setattr(
            crm_mock_mode, "create_opportunity",
            lambda payload: GatewayResult(ok=False, status_code=500, data=None, error="boom", duration_ms=3),
        )
        res = client.post(f"/api/v1/crm/case-studies/{approved_case.id}/sync", headers=auth(marketing))
        assert res.status_code == 502
        assert res.get_json()["provider"] == "insightly"

    def test_payload_probability(self, approved_case):
        payload = crm_service.build_opportunity_payload(approved_case, 1001)
        assert payload["PROBABILITY"] == 100
        assert payload["OPPORTUNITY_NAME"] == "Case Study: ABC Mining - Crusher Hammer"
        assert payload["BID_AMOUNT"] == 50000.0


class TestPushPdf:
    def test_approved_case(self, client, approved_case, marketing, auth):
        res = client.post(f"/api/v1/crm/case-studies/{approved_case.id}/push-pdf", headers=auth(marketing))
        assert res.status_code == 200
        data = res.get_json()
        assert data["pdf_attached"] is True
        assert data["file_id"]
        assert AuditLog.query.filter_by(action="PDF_EXPORTED").count() == 1

    def test_submitted_case_is_422(self, client, submitted_case, marketing, auth):
        res = client.post(f"/api/v1/crm/case-studies/{submitted_case.id}/push-pdf", headers=auth(marketing))
        assert res.status_code == 422


class TestAdminOperations:
    def test_batch_sync(self, client, make_case, contributor, approver, admin, auth):
        from app.services.approval_service import approve_case_study

        ids = []
        for name in ("One", "Two"):
            case = make_case(contributor, status="SUBMITTED", customer_name=name)
            approve_case_study(case.id, approver)
            ids.append(case.id)
        make_case(contributor, status="SUBMITTED", customer_name="Pending")

        res = client.post("/api/v1/crm/batch-sync", json={}, headers=auth(admin))
        assert res.status_code == 200
        assert res.get_json() == {"total": 2, "synced": 2, "failed": 0, "errors": []}

        again = client.post("/api/v1/crm/batch-sync", json={}, headers=auth(admin)).get_json()
        assert again["total"] == 0

    def test_batch_sync_bad_limit(self, client, admin, auth):
        res = client.post("/api/v1/crm/batch-sync", json={"limit": "lots"}, headers=auth(admin))
        assert res.status_code == 400

    def test_batch_sync_requires_admin(self, client, marketing, auth):
        assert client.post("/api/v1/crm/batch-sync", json={}, headers=auth(marketing)).status_code == 403

    def test_connection_unconfigured(self, client, admin, auth):
        data = client.get("/api/v1/crm/test-connection", headers=auth(admin)).get_json()
        assert data == {
            "success": False,
            "configured": False,
            "message": "Insightly API key not configured",
        }


# ═════════════════════════════════════════════════════════════════════════
# REAL-MODE GATEWAY
# ═════════════════════════════════════════════════════════════════════════

class TestInsightlyGateway:
    def test_search_request_shape(self):
        session = MagicMock()
        session.request.return_value = _response(200, [{
            "ORGANISATION_ID": 7,
            "ORGANISATION_NAME": "O'Brien Mining",
            "ADDRESSES": [{"ADDRESS_TYPE": "Work", "ADDRESS_CITY": "Perth", "ADDRESS_COUNTRY": "Australia"}],
        }])
        gw = InsightlyGateway(session=session, api_key="secret", pod="eu1")
        result = gw.search_organizations("O'Brien")

        assert result.ok is True
        assert result.data == [{
            "id": 7, "name": "O'Brien Mining", "city": "Perth", "country": "Australia", "website": "",
        }]
        method, url = session.request.call_args.args
        kwargs = session.request.call_args.kwargs
        assert method == "GET"
        assert url == "https://api.eu1.insightly.com/v3.1/Organisations"
        assert kwargs["auth"] == ("secret", "")
        assert kwargs["timeout"] == 30
        assert kwargs["params"]["$filter"] == "contains(ORGANISATION_NAME,'O''Brien')"

    def test_http_error_is_reported(self):
        session = MagicMock()
        session.request.return_value = _response(401, text="bad key")
        gw = InsightlyGateway(session=session, api_key="secret")
        result = gw.test_connection()
        assert result.ok is False
        assert result.status_code == 401
        assert "bad key" in result.error

    def test_timeout_is_reported(self):
        session = MagicMock()
        session.request.side_effect = requests.Timeout()
        gw = InsightlyGateway(session=session, api_key="secret")
        result = gw.create_opportunity({"OPPORTUNITY_NAME": "x"})
        assert result.ok is False
        assert result.status_code is None
        assert session.request.call_count == 1

    def test_attach_file_uploads_then_links(self):
        session = MagicMock()
        session.request.side_effect = [
            _response(200, {"FILE_ATTACHMENT_ID": 55}),
            _response(200, {}),
        ]
        gw = InsightlyGateway(session=session, api_key="secret")
        result = gw.attach_file(9, b"%PDF-1.4", "case.pdf")
        assert result.ok is True
        assert result.data == {"FILE_ATTACHMENT_ID": 55}
        link_call = session.request.call_args_list[1]
        assert link_call.args[1].endswith("/Opportunities/9/FileAttachments")

    def test_service_raises_on_failed_search(self, crm_mock_mode, monkeypatch):
        session = MagicMock()
        session.request.return_value = _response(503, text="unavailable")
        monkeypatch.setattr(crm_mock_mode, "api_key", "secret")
        monkeypatch.setattr(crm_mock_mode, "_session", session)
        with pytest.raises(IntegrationError) as exc:
            crm_service.search_organizations("Mining")
        assert exc.value.status_code == 503
