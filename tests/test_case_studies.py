"""
Case study API tests.

Tests cover:
  - Authentication (401) and capability sets (403)
  - Create / read / update / delete with field validation
  - Ownership rules (owner vs other contributor vs approver vs admin)
  - Submit transition and its side effects
  - Listing filters and pagination
  - Welding procedure (WPS) upsert and delete
"""
import pytest

from app.models import db
from app.models.audit import AuditLog
from app.models.case_study import CaseStudy
from app.models.notification import Notification


@pytest.fixture()
def create(client, case_payload):
    """create(headers, **overrides) → response of POST /api/v1/case-studies."""
    def _create(headers, **overrides):
        return client.post("/api/v1/case-studies", json={**case_payload, **overrides}, headers=headers)
    return _create


# ═════════════════════════════════════════════════════════════════════════
# AUTH
# ═════════════════════════════════════════════════════════════════════════

class TestAuth:
    def test_no_token_is_401(self, client):
        res = client.get("/api/v1/case-studies")
        assert res.status_code == 401
        assert res.get_json() == {"error": "Unauthorized"}

    def test_bad_token_is_401(self, client):
        res = client.get("/api/v1/case-studies", headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401

    def test_expired_token_is_401(self, client, contributor):
        from app.services.jwt_service import generate_access_token
        token = generate_access_token(contributor, expires_in=-10)
        res = client.get("/api/v1/case-studies", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    def test_deactivated_user_is_401(self, client, contributor, auth):
        headers = auth(contributor)
        contributor.is_active = False
        db.session.commit()
        assert client.get("/api/v1/case-studies", headers=headers).status_code == 401

    def test_viewer_cannot_create(self, client, create, viewer, auth):
        res = create(auth(viewer))
        assert res.status_code == 403
        assert res.get_json() == {"error": "Forbidden"}

    def test_marketing_cannot_create(self, client, create, marketing, auth):
        assert create(auth(marketing)).status_code == 403

    def test_non_json_body_is_415(self, client, contributor, auth):
        res = client.post(
            "/api/v1/case-studies", data="customer_name=x",
            content_type="text/plain", headers=auth(contributor),
        )
        assert res.status_code == 415


# ═════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_create_draft(self, client, create, contributor, auth):
        res = create(auth(contributor))
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "DRAFT"
        assert data["contributor_id"] == contributor.id
        assert data["title"] == "ABC Mining - Crusher Hammer"
        assert data["wear_type"] == ["ABRASION", "IMPACT"]
        assert data["solution_value_revenue"] == 50000.0
        assert data["currency"] == "EUR"
        assert AuditLog.query.filter_by(action="CASE_CREATED").count() == 1

    def test_missing_required_fields_is_422(self, client, create, contributor, auth):
        res = create(auth(contributor), customer_name="", wa_product=None)
        assert res.status_code == 422
        details = res.get_json()["details"]
        assert "customer_name" in details
        assert "wa_product" in details

    def test_invalid_enums(self, client, create, contributor, auth):
        res = create(auth(contributor), type="BLOG", work_type="REMOTE", wear_type=["RUST"])
        details = res.get_json()["details"]
        assert set(details) >= {"type", "work_type", "wear_type"}

    def test_severity_must_match_selected_wear_type(self, client, create, contributor, auth):
        res = create(auth(contributor), wear_severities={"CORROSION": 3})
        assert res.status_code == 422
        assert "wear_severities" in res.get_json()["details"]

    def test_severity_range(self, client, create, contributor, auth):
        res = create(auth(contributor), wear_severities={"ABRASION": 6})
        assert res.status_code == 422
        res = create(auth(contributor), wear_severities={"abrasion": 4})
        assert res.status_code == 201
        assert res.get_json()["wear_severities"] == {"ABRASION": 4}

    def test_negative_revenue_rejected(self, client, create, contributor, auth):
        res = create(auth(contributor), solution_value_revenue=-1)
        assert res.status_code == 422

    def test_cannot_create_approved(self, client, create, contributor, auth):
        res = create(auth(contributor), status="APPROVED")
        assert res.status_code == 422

    def test_create_submitted_notifies_approvers(self, client, create, contributor, approver, admin, auth):
        res = create(auth(contributor), status="SUBMITTED")
        assert res.status_code == 201
        assert res.get_json()["submitted_at"] is not None
        recipients = {n.user_id for n in Notification.query.filter_by(type="CASE_SUBMITTED")}
        assert recipients == {approver.id, admin.id}


class TestReadUpdateDelete:
    def test_get_includes_children(self, client, make_case, contributor, viewer, auth):
        case = make_case(contributor)
        res = client.get(f"/api/v1/case-studies/{case.id}", headers=auth(viewer))
        assert res.status_code == 200
        data = res.get_json()
        assert data["welding_procedure"] is None
        assert data["cost_calculator"] is None
        assert data["translations"] == {}

    def test_get_missing_is_404(self, client, viewer, auth):
        assert client.get("/api/v1/case-studies/999", headers=auth(viewer)).status_code == 404

    def test_owner_can_update(self, client, make_case, contributor, auth):
        case = make_case(contributor)
        res = client.put(
            f"/api/v1/case-studies/{case.id}",
            json={"location": "Kalgoorlie", "tags": "gold, crusher"},
            headers=auth(contributor),
        )
        assert res.status_code == 200
        assert res.get_json()["location"] == "Kalgoorlie"
        assert res.get_json()["tags"] == ["gold", "crusher"]

    def test_update_cannot_blank_required_field(self, client, make_case, contributor, auth):
        case = make_case(contributor)
        res = client.put(
            f"/api/v1/case-studies/{case.id}", json={"industry": " "}, headers=auth(contributor),
        )
        assert res.status_code == 422

    def test_update_cannot_change_status(self, client, make_case, contributor, auth):
        case = make_case(contributor)
        res = client.put(
            f"/api/v1/case-studies/{case.id}", json={"status": "APPROVED"}, headers=auth(contributor),
        )
        assert res.status_code == 422

    def test_removing_wear_type_drops_its_severity(self, client, make_case, contributor, auth):
        case = make_case(contributor, wear_severities={"ABRASION": 2, "IMPACT": 5})
        res = client.put(
            f"/api/v1/case-studies/{case.id}", json={"wear_type": ["IMPACT"]}, headers=auth(contributor),
        )
        assert res.get_json()["wear_severities"] == {"IMPACT": 5}

    def test_other_contributor_cannot_update(self, client, make_case, make_user, contributor, auth):
        case = make_case(contributor)
        other = make_user("CONTRIBUTOR")
        res = client.put(f"/api/v1/case-studies/{case.id}", json={"oem": "CAT"}, headers=auth(other))
        assert res.status_code == 403

    def test_approver_can_update_any_case(self, client, make_case, contributor, approver, auth):
        case = make_case(contributor)
        res = client.put(f"/api/v1/case-studies/{case.id}", json={"oem": "CAT"}, headers=auth(approver))
        assert res.status_code == 200

    def test_owner_cannot_edit_approved_case(self, client, approved_case, contributor, auth):
        res = client.put(
            f"/api/v1/case-studies/{approved_case.id}", json={"oem": "CAT"}, headers=auth(contributor),
        )
        assert res.status_code == 403

    def test_owner_can_delete(self, client, make_case, contributor, auth):
        case = make_case(contributor)
        res = client.delete(f"/api/v1/case-studies/{case.id}", headers=auth(contributor))
        assert res.status_code == 200
        assert db.session.get(CaseStudy, case.id) is None

    def test_approver_cannot_delete_others(self, client, make_case, contributor, approver, auth):
        case = make_case(contributor)
        res = client.delete(f"/api/v1/case-studies/{case.id}", headers=auth(approver))
        assert res.status_code == 403

    def test_admin_can_delete_any(self, client, make_case, contributor, admin, auth):
        case = make_case(contributor)
        assert client.delete(f"/api/v1/case-studies/{case.id}", headers=auth(admin)).status_code == 200


# ═════════════════════════════════════════════════════════════════════════
# LISTING
# ═════════════════════════════════════════════════════════════════════════

class TestList:
    def test_filters(self, client, make_case, make_user, contributor, viewer, auth):
        make_case(contributor)
        make_case(contributor, type="STAR", customer_name="Steel Works", industry="Steel")
        other = make_user("CONTRIBUTOR")
        make_case(other, customer_name="Cement Co", industry="Cement", status="SUBMITTED")

        def _list(query):
            return client.get(f"/api/v1/case-studies?{query}", headers=auth(viewer)).get_json()

        assert _list("")["total"] == 3
        assert _list("type=star")["total"] == 1
        assert _list("status=SUBMITTED")["items"][0]["customer_name"] == "Cement Co"
        assert _list("industry=steel")["total"] == 1
        assert _list("q=cement")["total"] == 1
        assert _list(f"contributor_id={other.id}")["total"] == 1

    def test_mine(self, client, make_case, make_user, contributor, auth):
        make_case(contributor)
        make_case(make_user("CONTRIBUTOR"), customer_name="Someone Else")
        data = client.get("/api/v1/case-studies?mine=true", headers=auth(contributor)).get_json()
        assert data["total"] == 1

    def test_pagination(self, client, make_case, contributor, auth):
        for i in range(5):
            make_case(contributor, customer_name=f"Customer {i}")
        data = client.get("/api/v1/case-studies?page=2&per_page=2", headers=auth(contributor)).get_json()
        assert data["page"] == 2
        assert data["pages"] == 3
        assert len(data["items"]) == 2

    def test_invalid_status_filter(self, client, viewer, auth):
        res = client.get("/api/v1/case-studies?status=LIVE", headers=auth(viewer))
        assert res.status_code == 422


# ═════════════════════════════════════════════════════════════════════════
# SUBMIT
# ═════════════════════════════════════════════════════════════════════════

class TestSubmit:
    def test_submit_draft(self, client, make_case, contributor, approver, auth):
        case = make_case(contributor)
        res = client.post(f"/api/v1/case-studies/{case.id}/submit", headers=auth(contributor))
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "SUBMITTED"
        assert data["translation"] == {"original_language": "en", "was_translated": False}
        assert Notification.query.filter_by(user_id=approver.id, type="CASE_SUBMITTED").count() == 1

    def test_submit_twice_is_409(self, client, make_case, contributor, auth):
        case = make_case(contributor)
        client.post(f"/api/v1/case-studies/{case.id}/submit", headers=auth(contributor))
        res = client.post(f"/api/v1/case-studies/{case.id}/submit", headers=auth(contributor))
        assert res.status_code == 409
        assert res.get_json()["current_status"] == "SUBMITTED"

    def test_submitter_not_notified_of_own_submission(self, client, make_case, approver, auth):
        case = make_case(approver)
        client.post(f"/api/v1/case-studies/{case.id}/submit", headers=auth(approver))
        assert Notification.query.filter_by(user_id=approver.id).count() == 0


# ═════════════════════════════════════════════════════════════════════════
# WPS
# ═════════════════════════════════════════════════════════════════════════

WPS = {
    "wa_product_name": "HARDFACE HC-O",
    "welding_process": "FCAW",
    "preheating_temp": "150°C",
    "shielding_gas": "Ar/CO2",
    "layers": [{"layer": 1, "product": "HARDFACE BUFFER"}, {"layer": 2, "product": "HARDFACE HC-O"}],
}


class TestWps:
    def test_upsert_and_get(self, client, make_case, contributor, viewer, auth):
        case = make_case(contributor, type="TECH")
        res = client.put(f"/api/v1/case-studies/{case.id}/wps", json=WPS, headers=auth(contributor))
        assert res.status_code == 200
        assert res.get_json()["wps"]["welding_process"] == "FCAW"

        res = client.put(
            f"/api/v1/case-studies/{case.id}/wps", json={"voltage": "28V"}, headers=auth(contributor),
        )
        wps = res.get_json()["wps"]
        assert wps["voltage"] == "28V"
        assert wps["welding_process"] == "FCAW"
        assert len(wps["layers"]) == 2

        res = client.get(f"/api/v1/case-studies/{case.id}/wps", headers=auth(viewer))
        assert res.get_json()["wps"]["shielding_gas"] == "Ar/CO2"

    def test_required_fields(self, client, make_case, contributor, auth):
        case = make_case(contributor, type="STAR")
        res = client.put(
            f"/api/v1/case-studies/{case.id}/wps", json={"voltage": "28V"}, headers=auth(contributor),
        )
        assert res.status_code == 422
        assert set(res.get_json()["details"]) == {"wa_product_name", "welding_process"}

    def test_application_case_rejected(self, client, make_case, contributor, auth):
        case = make_case(contributor)
        res = client.put(f"/api/v1/case-studies/{case.id}/wps", json=WPS, headers=auth(contributor))
        assert res.status_code == 422

    def test_delete(self, client, make_case, contributor, auth):
        case = make_case(contributor, type="TECH")
        client.put(f"/api/v1/case-studies/{case.id}/wps", json=WPS, headers=auth(contributor))
        res = client.delete(f"/api/v1/case-studies/{case.id}/wps", headers=auth(contributor))
        assert res.status_code == 200
        res = client.delete(f"/api/v1/case-studies/{case.id}/wps", headers=auth(contributor))
        assert res.status_code == 404

    def test_delete_case_cascades(self, client, make_case, contributor, auth):
        from app.models.case_study import WeldingProcedure
        case = make_case(contributor, type="TECH")
        client.put(f"/api/v1/case-studies/{case.id}/wps", json=WPS, headers=auth(contributor))
        client.delete(f"/api/v1/case-studies/{case.id}", headers=auth(contributor))
        assert WeldingProcedure.query.count() == 0


@pytest.mark.parametrize("path", ["/api/v1/nothing-here", "/api/v1/case-studies/abc"])
def test_unknown_routes_return_json_404(client, path):
    res = client.get(path)
    assert res.status_code == 404
    assert res.get_json()["error"] == "Not found"
