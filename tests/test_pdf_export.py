"""
PDF export tests.

Tests cover:
  - Download endpoint: owner and exporters allowed, others forbidden
  - PDF_EXPORTED audit entry
  - Rendering with and without technical data
  - Deterministic output for a fixed timestamp
"""
from datetime import datetime, timezone

from app.models.audit import AuditLog
from app.services.cost_calculator import save_cost_calculation
from app.services.pdf_export_service import pdf_file_name, render_case_study_pdf
from app.services.wps_service import save_wps


FIXED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _star_case(make_case, contributor):
    case = make_case(contributor, type="STAR")
    save_wps(case.id, {
        "wa_product_name": "HARDFACE HC-O",
        "welding_process": "FCAW",
        "shielding_gas": "Ar/CO2",
        "layers": [{"layer": "buffer", "passes": 1}, {"layer": "hardfacing", "passes": 2}],
    }, contributor)
    save_cost_calculation(case.id, {
        "cost_of_part_old": 5000,
        "cost_of_part_new": 7500,
        "old_lifetime_hours": 500,
        "new_lifetime_hours": 2000,
        "parts_per_year": 12,
        "maintenance_cost_per_event": 500,
        "disassembly_cost_per_event": 300,
        "downtime_cost_per_event": 2000,
    }, contributor)
    return case


class TestExportEndpoint:
    def test_owner_can_download(self, client, make_case, contributor, auth):
        case = make_case(contributor)
        res = client.get(f"/api/v1/case-studies/{case.id}/export/pdf", headers=auth(contributor))
        assert res.status_code == 200
        assert res.mimetype == "application/pdf"
        assert res.data.startswith(b"%PDF")
        assert pdf_file_name(case) in res.headers["Content-Disposition"]

    def test_marketing_can_download_any_case(self, client, make_case, contributor, marketing, auth):
        case = make_case(contributor)
        res = client.get(f"/api/v1/case-studies/{case.id}/export/pdf", headers=auth(marketing))
        assert res.status_code == 200

    def test_other_contributor_forbidden(self, client, make_case, make_user, contributor, auth):
        case = make_case(contributor)
        other = make_user("CONTRIBUTOR")
        res = client.get(f"/api/v1/case-studies/{case.id}/export/pdf", headers=auth(other))
        assert res.status_code == 403

    def test_viewer_forbidden(self, client, make_case, contributor, viewer, auth):
        case = make_case(contributor)
        res = client.get(f"/api/v1/case-studies/{case.id}/export/pdf", headers=auth(viewer))
        assert res.status_code == 403

    def test_audit_written(self, client, make_case, contributor, marketing, auth):
        case = make_case(contributor)
        client.get(f"/api/v1/case-studies/{case.id}/export/pdf", headers=auth(marketing))
        entry = AuditLog.query.filter_by(action="PDF_EXPORTED").one()
        assert entry.entity_id == str(case.id)
        assert entry.actor_user_id == marketing.id
        assert entry.details["bytes"] > 0

    def test_missing_case_is_404(self, client, marketing, auth):
        assert client.get("/api/v1/case-studies/77/export/pdf", headers=auth(marketing)).status_code == 404


class TestRenderer:
    def test_without_technical_data(self, make_case, contributor):
        pdf = render_case_study_pdf(make_case(contributor), contributor, FIXED)
        assert pdf.startswith(b"%PDF")

    def test_with_wps_and_cost_data(self, make_case, contributor):
        case = _star_case(make_case, contributor)
        plain = render_case_study_pdf(make_case(contributor), contributor, FIXED)
        full = render_case_study_pdf(case, contributor, FIXED)
        assert full.startswith(b"%PDF")
        assert len(full) > len(plain)

    def test_output_is_deterministic(self, make_case, contributor):
        case = _star_case(make_case, contributor)
        assert render_case_study_pdf(case, contributor, FIXED) == render_case_study_pdf(case, contributor, FIXED)

    def test_markup_in_narrative_is_escaped(self, make_case, contributor):
        case = make_case(contributor, problem_description="Wear <b>& tear</b> on <unknown> parts")
        assert render_case_study_pdf(case, contributor, FIXED).startswith(b"%PDF")

    def test_file_name_slug(self, make_case, contributor):
        case = make_case(contributor, customer_name="Acme & Sons", component_workpiece="Roll #3")
        assert pdf_file_name(case) == f"case-study-{case.id}-acme-sons-roll-3.pdf"
