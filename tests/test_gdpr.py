"""
GDPR tests.

Tests cover:
  - Deletion request lifecycle (create, duplicate, cancel, reject, process)
  - Anonymisation on processing (cases retained, notifications removed)
  - Personal data export
"""
from app.models import db
from app.models.auth import User
from app.models.case_study import CaseStudy
from app.models.notification import Notification


def _request(client, headers, reason="Leaving the company"):
    return client.post("/api/v1/gdpr/deletion-requests", json={"reason": reason}, headers=headers)


class TestSelfService:
    def test_create(self, client, contributor, auth):
        res = _request(client, auth(contributor))
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "PENDING"
        assert data["user_email"] == "contributor@example.com"
        assert data["reason"] == "Leaving the company"

    def test_second_open_request_is_409(self, client, contributor, auth):
        _request(client, auth(contributor))
        assert _request(client, auth(contributor)).status_code == 409

    def test_cancel(self, client, contributor, auth):
        req_id = _request(client, auth(contributor)).get_json()["id"]
        res = client.post(f"/api/v1/gdpr/deletion-requests/{req_id}/cancel", headers=auth(contributor))
        assert res.get_json()["status"] == "CANCELLED"
        assert _request(client, auth(contributor)).status_code == 201

    def test_cancel_someone_elses_request(self, client, contributor, viewer, auth):
        req_id = _request(client, auth(contributor)).get_json()["id"]
        res = client.post(f"/api/v1/gdpr/deletion-requests/{req_id}/cancel", headers=auth(viewer))
        assert res.status_code == 403

    def test_export(self, client, make_case, contributor, auth):
        make_case(contributor)
        res = client.get("/api/v1/gdpr/export", headers=auth(contributor))
        assert res.status_code == 200
        data = res.get_json()
        assert data["profile"]["email"] == "contributor@example.com"
        assert len(data["case_studies"]) == 1
        assert data["deletion_requests"] == []


class TestAdministration:
    def test_list_requires_admin(self, client, contributor, auth):
        assert client.get("/api/v1/gdpr/deletion-requests", headers=auth(contributor)).status_code == 403

    def test_list_with_status_filter(self, client, contributor, viewer, admin, auth):
        _request(client, auth(contributor))
        req_id = _request(client, auth(viewer)).get_json()["id"]
        client.post(f"/api/v1/gdpr/deletion-requests/{req_id}/cancel", headers=auth(viewer))

        data = client.get("/api/v1/gdpr/deletion-requests?status=pending", headers=auth(admin)).get_json()
        assert data["total"] == 1
        assert data["items"][0]["user_id"] == contributor.id

    def test_invalid_status_filter_is_422(self, client, admin, auth):
        res = client.get("/api/v1/gdpr/deletion-requests?status=LOST", headers=auth(admin))
        assert res.status_code == 422

    def test_process_anonymises_user(self, client, approved_case, contributor, admin, auth):
        assert Notification.query.filter_by(user_id=contributor.id).count() > 0
        req_id = _request(client, auth(contributor)).get_json()["id"]

        res = client.post(f"/api/v1/gdpr/deletion-requests/{req_id}/process", headers=auth(admin))
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "COMPLETED"
        assert data["processed_by"] == admin.id
        assert data["summary"]["case_studies_retained"] == 1

        db.session.expire_all()
        user = db.session.get(User, contributor.id)
        assert user.email == f"deleted-{contributor.id}@anonymized.local"
        assert user.name == "Deleted User"
        assert user.is_active is False
        assert Notification.query.filter_by(user_id=contributor.id).count() == 0
        assert db.session.get(CaseStudy, approved_case.id).contributor_id == contributor.id

    def test_anonymised_user_cannot_authenticate(self, client, contributor, admin, auth):
        headers = auth(contributor)
        req_id = _request(client, headers).get_json()["id"]
        client.post(f"/api/v1/gdpr/deletion-requests/{req_id}/process", headers=auth(admin))
        assert client.get("/api/v1/gdpr/export", headers=headers).status_code == 401

    def test_process_twice_is_422(self, client, contributor, admin, auth):
        req_id = _request(client, auth(contributor)).get_json()["id"]
        client.post(f"/api/v1/gdpr/deletion-requests/{req_id}/process", headers=auth(admin))
        res = client.post(f"/api/v1/gdpr/deletion-requests/{req_id}/process", headers=auth(admin))
        assert res.status_code == 422

    def test_reject_requires_reason(self, client, contributor, admin, auth):
        req_id = _request(client, auth(contributor)).get_json()["id"]
        url = f"/api/v1/gdpr/deletion-requests/{req_id}/reject"
        assert client.post(url, json={}, headers=auth(admin)).status_code == 422
        res = client.post(url, json={"reason": "Legal hold"}, headers=auth(admin))
        assert res.status_code == 200
        assert res.get_json()["status"] == "REJECTED"
        assert res.get_json()["rejection_reason"] == "Legal hold"

    def test_unknown_request_is_404(self, client, admin, auth):
        res = client.post("/api/v1/gdpr/deletion-requests/99/process", headers=auth(admin))
        assert res.status_code == 404
