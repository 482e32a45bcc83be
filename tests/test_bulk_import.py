"""
Bulk import tests.

Tests cover:
  - CSV template download
  - Parsing (header aliases, BOM, blank lines, .xlsx, unsupported .xls)
  - Row validation (required fields, enums, numbers) and row numbering
  - Import execution (DRAFT / SUBMITTED, duplicate skipping, 200 vs 207)
  - Endpoint input modes (raw body, JSON csv_content, multipart upload)
"""
import csv
import io

import pytest
from openpyxl import Workbook

from app.models import db
from app.models.case_study import CaseStudy
from app.models.notification import Notification
from app.services.bulk_import_service import (
    CSV_TEMPLATE_HEADER,
    BulkImportError,
    execute_bulk_import,
    parse_csv,
    parse_upload,
    validate_rows,
)


HEADER = [
    "type", "customerName", "industry", "location", "componentWorkpiece",
    "workType", "wearType", "problemDescription", "waSolution", "waProduct",
    "solutionValueRevenue", "tags",
]


def _row(i, **overrides):
    row = {
        "type": "APPLICATION",
        "customerName": f"Customer {i}",
        "industry": "Mining",
        "location": "Perth",
        "componentWorkpiece": f"Component {i}",
        "workType": "WORKSHOP",
        "wearType": "ABRASION,IMPACT",
        "problemDescription": f"Problem number {i}",
        "waSolution": "Hardfacing",
        "waProduct": "HARDFACE HC-O",
        "solutionValueRevenue": "1000",
        "tags": "mining,crusher",
    }
    row.update(overrides)
    return row


def _csv(rows, header=HEADER):
    out = io.StringIO()
    writer = csv.DictWriter(out, fieldnames=header)
    writer.writeheader()
    for row in rows:
        writer.writerow({k: row.get(k, "") for k in header})
    return out.getvalue()


@pytest.fixture()
def ten_rows_one_invalid():
    """Ten data rows; the fifth is missing customerName."""
    rows = [_row(i) for i in range(1, 11)]
    rows[4]["customerName"] = ""
    return _csv(rows)


# ═════════════════════════════════════════════════════════════════════════
# TEMPLATE
# ═════════════════════════════════════════════════════════════════════════

class TestTemplate:
    def test_download_template(self, client, approver, auth):
        res = client.get("/api/v1/case-studies/import/template", headers=auth(approver))
        assert res.status_code == 200
        assert res.mimetype == "text/csv"
        assert "attachment" in res.headers["Content-Disposition"]
        lines = list(csv.reader(io.StringIO(res.get_data(as_text=True))))
        assert len(lines[0]) == 23
        assert lines[0] == CSV_TEMPLATE_HEADER
        assert len(lines[1]) == 23

    def test_template_round_trips_through_validation(self, client, approver, auth):
        template = client.get(
            "/api/v1/case-studies/import/template", headers=auth(approver),
        ).get_data(as_text=True)
        result = validate_rows(parse_csv(template))
        assert result["success"] is True
        assert result["validRows"] == 1

    def test_contributor_forbidden(self, client, contributor, auth):
        res = client.get("/api/v1/case-studies/import/template", headers=auth(contributor))
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════
# PARSING
# ═════════════════════════════════════════════════════════════════════════

class TestParsing:
    def test_header_aliases_and_row_numbers(self):
        text = "Customer Name,Case Type\nACME,STAR\n"
        rows = parse_csv(text)
        assert rows == [{"rowNumber": 2, "customerName": "ACME", "type": "STAR"}]

    def test_bom_and_blank_lines(self):
        content = ("\ufefftype,customerName\n\nSTAR,ACME\n\n").encode("utf-8")
        rows = parse_csv(content)
        assert rows[0]["type"] == "STAR"
        assert rows[0]["rowNumber"] == 2

    def test_header_only_rejected(self):
        with pytest.raises(BulkImportError):
            parse_csv("type,customerName\n")

    def test_xlsx(self):
        wb = Workbook()
        ws = wb.active
        ws.append(HEADER)
        ws.append([_row(1)[h] for h in HEADER])
        buf = io.BytesIO()
        wb.save(buf)
        rows = parse_upload(buf.getvalue(), "cases.xlsx")
        assert rows[0]["customerName"] == "Customer 1"
        assert rows[0]["solutionValueRevenue"] == "1000"

    def test_legacy_xls_rejected(self):
        with pytest.raises(BulkImportError):
            parse_upload(b"whatever", "cases.xls")


# ═════════════════════════════════════════════════════════════════════════
# VALIDATION
# ═════════════════════════════════════════════════════════════════════════

class TestValidation:
    def test_missing_customer_name_reported_on_its_row(self, ten_rows_one_invalid):
        result = validate_rows(parse_csv(ten_rows_one_invalid))
        assert result["totalRows"] == 10
        assert result["validRows"] == 9
        assert result["success"] is False
        assert result["errors"] == [{
            "rowNumber": 6,
            "field": "customerName",
            "message": "customerName is required",
        }]

    def test_valid_plus_invalid_rows_equals_total(self):
        rows = [
            _row(1),
            _row(2, type="BOGUS", workType="NOWHERE"),
            _row(3, wearType="ABRASION,RUST"),
            _row(4, solutionValueRevenue="lots"),
            _row(5, solutionValueRevenue="-5"),
        ]
        result = validate_rows(parse_csv(_csv(rows)))
        invalid_rows = {e["rowNumber"] for e in result["errors"]}
        assert result["validRows"] + len(invalid_rows) == result["totalRows"]
        fields = {(e["rowNumber"], e["field"]) for e in result["errors"]}
        assert (3, "type") in fields
        assert (3, "workType") in fields
        assert (4, "wearType") in fields
        assert (5, "solutionValueRevenue") in fields
        assert (6, "solutionValueRevenue") in fields

    def test_numeric_cells_are_validated_not_crashed(self):
        row = {"rowNumber": 2, **_row(1), "type": 1, "workType": 2.0, "wearType": 3}
        result = validate_rows([row])
        fields = {e["field"] for e in result["errors"]}
        assert fields == {"type", "workType", "wearType"}
        assert result["validRows"] == 0

    def test_numeric_text_cells_are_imported_as_text(self, approver):
        row = {"rowNumber": 2, **_row(1), "customerName": 4711, "type": " tech "}
        result = execute_bulk_import([row], approver)
        assert result["successfulRows"] == 1
        case = CaseStudy.query.one()
        assert case.customer_name == "4711"
        assert case.type == "TECH"

    def test_validate_endpoint_is_a_dry_run(self, client, approver, auth, ten_rows_one_invalid):
        res = client.post(
            "/api/v1/case-studies/import/validate",
            data=ten_rows_one_invalid,
            content_type="text/csv",
            headers=auth(approver),
        )
        assert res.status_code == 200
        assert res.get_json()["validRows"] == 9
        assert CaseStudy.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════
# EXECUTION
# ═════════════════════════════════════════════════════════════════════════

class TestExecuteImport:
    def test_import_creates_drafts(self, approver):
        rows = parse_csv(_csv([_row(1), _row(2)]))
        result = execute_bulk_import(rows, approver)
        assert result["successfulRows"] == 2
        assert result["failedRows"] == 0
        case = db.session.get(CaseStudy, result["createdIds"][0])
        assert case.status == "DRAFT"
        assert case.contributor_id == approver.id
        assert case.wear_type == ["ABRASION", "IMPACT"]
        assert case.tags == ["mining", "crusher"]
        assert float(case.solution_value_revenue) == 1000

    def test_import_as_submitted(self, approver):
        result = execute_bulk_import(parse_csv(_csv([_row(1)])), approver, status="submitted")
        case = db.session.get(CaseStudy, result["createdIds"][0])
        assert case.status == "SUBMITTED"
        assert case.submitted_at is not None

    def test_invalid_status_rejected(self, approver):
        from app.core.exceptions import ValidationError
        with pytest.raises(ValidationError):
            execute_bulk_import(parse_csv(_csv([_row(1)])), approver, status="APPROVED")

    def test_duplicates_are_skipped(self, approver):
        execute_bulk_import(parse_csv(_csv([_row(1)])), approver)
        again = _row(1, customerName="  CUSTOMER 1 ")
        result = execute_bulk_import(parse_csv(_csv([again, _row(2)])), approver)
        assert result["successfulRows"] == 1
        assert result["skippedRows"] == 1
        assert result["errors"][0]["field"] == "duplicate"
        assert result["errors"][0]["rowNumber"] == 2

    def test_duplicates_allowed_when_not_skipping(self, approver):
        execute_bulk_import(parse_csv(_csv([_row(1)])), approver)
        result = execute_bulk_import(parse_csv(_csv([_row(1)])), approver, skip_duplicates=False)
        assert result["successfulRows"] == 1
        assert CaseStudy.query.count() == 2

    def test_importer_is_notified(self, approver):
        execute_bulk_import(parse_csv(_csv([_row(1)])), approver)
        notif = Notification.query.filter_by(user_id=approver.id, type="BULK_IMPORT").one()
        assert notif.message == "Successfully imported 1 case study"


class TestImportEndpoint:
    def test_partial_import_returns_207(self, client, approver, auth, ten_rows_one_invalid):
        res = client.post(
            "/api/v1/case-studies/import",
            data=ten_rows_one_invalid,
            content_type="text/csv",
            headers=auth(approver),
        )
        assert res.status_code == 207
        data = res.get_json()
        assert data["totalRows"] == 10
        assert data["successfulRows"] == 9
        assert data["failedRows"] == 1
        assert data["message"] == "Successfully imported 9 case studies (1 row failed)"

    def test_full_import_returns_200(self, client, approver, auth):
        res = client.post(
            "/api/v1/case-studies/import",
            json={"csv_content": _csv([_row(1), _row(2)]), "status": "DRAFT"},
            headers=auth(approver),
        )
        assert res.status_code == 200
        assert res.get_json()["successfulRows"] == 2

    def test_multipart_upload(self, client, approver, auth):
        res = client.post(
            "/api/v1/case-studies/import",
            data={
                "file": (io.BytesIO(_csv([_row(1)]).encode()), "cases.csv"),
                "status": "SUBMITTED",
            },
            content_type="multipart/form-data",
            headers=auth(approver),
        )
        assert res.status_code == 200
        assert CaseStudy.query.one().status == "SUBMITTED"

    def test_missing_file_is_400(self, client, approver, auth):
        res = client.post("/api/v1/case-studies/import", json={}, headers=auth(approver))
        assert res.status_code == 400

    def test_unparseable_file_is_400(self, client, approver, auth):
        res = client.post(
            "/api/v1/case-studies/import",
            data="type,customerName\n",
            content_type="text/csv",
            headers=auth(approver),
        )
        assert res.status_code == 400
        assert "header row" in res.get_json()["error"]

    def test_non_utf8_csv_is_400(self, client, approver, auth):
        content = _csv([_row(1, customerName="Société Générale", location="Köln")]).encode("latin-1")
        res = client.post(
            "/api/v1/case-studies/import/validate",
            data={"file": (io.BytesIO(content), "cases.csv")},
            content_type="multipart/form-data",
            headers=auth(approver),
        )
        assert res.status_code == 400
        assert res.get_json()["error"] == "File must be UTF-8 encoded CSV"
        assert CaseStudy.query.count() == 0
