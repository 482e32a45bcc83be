"""
System configuration tests.

Tests cover:
  - Admin-only access (401 / 403)
  - GET for missing and existing keys
  - PUT upsert, description defaults, audit trail
  - Typed reads falling back on bad values
  - Storage failures surfaced as 500
"""
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.models.audit import AuditLog
from app.services import system_config_service as svc


class TestAccess:
    def test_no_user_is_401(self, client):
        res = client.get("/api/system-config/bhag_target")
        assert res.status_code == 401
        assert res.get_json() == {"error": "Unauthorized"}

    def test_approver_is_403(self, client, approver, auth):
        res = client.get("/api/system-config/bhag_target", headers=auth(approver))
        assert res.status_code == 403
        assert res.get_json() == {"error": "Forbidden"}

    def test_put_requires_admin(self, client, approver, auth):
        res = client.put("/api/system-config/bhag_target", json={"value": "5"}, headers=auth(approver))
        assert res.status_code == 403


class TestReadWrite:
    def test_missing_key_returns_null(self, client, admin, auth):
        res = client.get("/api/system-config/unknown_key", headers=auth(admin))
        assert res.status_code == 200
        assert res.get_json() == {"config": None}

    def test_put_then_get(self, client, admin, auth):
        res = client.put("/api/system-config/bhag_target", json={"value": 1500}, headers=auth(admin))
        assert res.status_code == 200
        cfg = res.get_json()["config"]
        assert cfg["value"] == "1500"
        assert cfg["updated_by"] == admin.id
        assert cfg["description"]

        res = client.get("/api/system-config/bhag_target", headers=auth(admin))
        assert res.get_json()["config"]["value"] == "1500"

    def test_update_records_old_value(self, client, admin, auth):
        client.put("/api/system-config/points_star", json={"value": "4"}, headers=auth(admin))
        client.put("/api/system-config/points_star", json={"value": "5"}, headers=auth(admin))
        entries = AuditLog.query.filter_by(action="CONFIG_UPDATED").order_by(AuditLog.id).all()
        assert entries[-1].details == {"old_value": "4", "new_value": "5"}

    def test_value_required(self, client, admin, auth):
        res = client.put("/api/system-config/bhag_target", json={"description": "x"}, headers=auth(admin))
        assert res.status_code == 400

    def test_list(self, client, admin, auth):
        svc.set_config("b_key", "2", admin)
        svc.set_config("a_key", "1", admin)
        keys = [c["key"] for c in client.get("/api/system-config", headers=auth(admin)).get_json()["configs"]]
        assert keys == ["a_key", "b_key"]

    def test_storage_failure_is_500(self, client, admin, auth, monkeypatch):
        def broken(key):
            raise SQLAlchemyError("database is locked")
        monkeypatch.setattr(svc, "get_config", broken)
        res = client.get("/api/system-config/bhag_target", headers=auth(admin))
        assert res.status_code == 500
        assert res.get_json() == {"error": "Failed to fetch system config"}


class TestTypedReads:
    def test_int_fallback(self, admin):
        assert svc.get_int_value("points_tech", 2) == 2
        svc.set_config("points_tech", "abc", admin)
        assert svc.get_int_value("points_tech", 2) == 2
        svc.set_config("points_tech", " 7 ", admin)
        assert svc.get_int_value("points_tech", 2) == 7

    def test_bhag_target_must_be_positive(self, admin):
        assert svc.get_bhag_target() == 1000
        svc.set_config("bhag_target", "0", admin)
        assert svc.get_bhag_target() == 1000
        svc.set_config("bhag_target", "250", admin)
        assert svc.get_bhag_target() == 250

    def test_seed_defaults_is_idempotent(self):
        assert svc.seed_defaults() == 4
        db.session.commit()
        assert svc.seed_defaults() == 0
