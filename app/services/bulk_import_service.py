"""
Bulk Case Study Import Service

CSV / Excel bulk import of case studies with row-level validation.

Features:
  - Parse CSV (csv module) or .xlsx (openpyxl, first worksheet)
  - Header aliases ("Customer Name", "customer", "city", ...) normalised to field keys
  - Validate every row; all errors are collected, nothing stops at the first one
  - Create case studies row by row, each in its own savepoint
  - Duplicate detection on customer + component + problem description
  - Template CSV generation

Row numbers are 1-indexed file lines: the header is line 1, so the first
data row is 2.  Blank lines are skipped and do not count.
"""

import csv
import io
import logging
from datetime import date, datetime, timezone

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.exceptions import ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.case_study import CASE_TYPES, WEAR_TYPES, WORK_TYPES, CaseStudy
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)


class BulkImportError(Exception):
    """File-level import error (unreadable, empty, unsupported type)."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


REQUIRED_FIELDS = (
    "type",
    "customerName",
    "industry",
    "location",
    "componentWorkpiece",
    "workType",
    "problemDescription",
    "waSolution",
    "waProduct",
)

NUMERIC_FIELDS = ("solutionValueRevenue", "annualPotentialRevenue", "customerSavingsAmount")

IMPORT_STATUSES = ("DRAFT", "SUBMITTED")

# Accepted header spellings (lower-cased, trimmed) → field key
COLUMN_MAPPINGS = {
    # Type
    "type": "type",
    "case type": "type",
    "casetype": "type",
    # Customer
    "customername": "customerName",
    "customer name": "customerName",
    "customer": "customerName",
    # Industry
    "industry": "industry",
    # Location
    "location": "location",
    "city": "location",
    # Country
    "country": "country",
    # Component
    "componentworkpiece": "componentWorkpiece",
    "component workpiece": "componentWorkpiece",
    "component": "componentWorkpiece",
    "workpiece": "componentWorkpiece",
    # Work type
    "worktype": "workType",
    "work type": "workType",
    # Wear type
    "weartype": "wearType",
    "wear type": "wearType",
    "wear types": "wearType",
    # Base metal
    "basemetal": "baseMetal",
    "base metal": "baseMetal",
    # Dimensions
    "generaldimensions": "generalDimensions",
    "general dimensions": "generalDimensions",
    "dimensions": "generalDimensions",
    # OEM
    "oem": "oem",
    "original equipment manufacturer": "oem",
    # Problem
    "problemdescription": "problemDescription",
    "problem description": "problemDescription",
    "problem": "problemDescription",
    "challenge": "problemDescription",
    # Previous solution
    "previoussolution": "previousSolution",
    "previous solution": "previousSolution",
    "previousservicelife": "previousServiceLife",
    "previous service life": "previousServiceLife",
    # Competitor
    "competitorname": "competitorName",
    "competitor name": "competitorName",
    "competitor": "competitorName",
    # Solution
    "wasolution": "waSolution",
    "wa solution": "waSolution",
    "solution": "waSolution",
    "waproduct": "waProduct",
    "wa product": "waProduct",
    "product": "waProduct",
    "technicaladvantages": "technicalAdvantages",
    "technical advantages": "technicalAdvantages",
    "advantages": "technicalAdvantages",
    "expectedservicelife": "expectedServiceLife",
    "expected service life": "expectedServiceLife",
    # Financial
    "solutionvaluerevenue": "solutionValueRevenue",
    "solution value revenue": "solutionValueRevenue",
    "solution value": "solutionValueRevenue",
    "revenue": "solutionValueRevenue",
    "annualpotentialrevenue": "annualPotentialRevenue",
    "annual potential revenue": "annualPotentialRevenue",
    "annual revenue": "annualPotentialRevenue",
    "customersavingsamount": "customerSavingsAmount",
    "customer savings amount": "customerSavingsAmount",
    "customer savings": "customerSavingsAmount",
    "savings": "customerSavingsAmount",
    # Tags
    "tags": "tags",
}

# Row field key → CaseStudy column
FIELD_TO_COLUMN = {
    "type": "type",
    "customerName": "customer_name",
    "industry": "industry",
    "location": "location",
    "country": "country",
    "componentWorkpiece": "component_workpiece",
    "workType": "work_type",
    "wearType": "wear_type",
    "baseMetal": "base_metal",
    "generalDimensions": "general_dimensions",
    "oem": "oem",
    "problemDescription": "problem_description",
    "previousSolution": "previous_solution",
    "previousServiceLife": "previous_service_life",
    "competitorName": "competitor_name",
    "waSolution": "wa_solution",
    "waProduct": "wa_product",
    "technicalAdvantages": "technical_advantages",
    "expectedServiceLife": "expected_service_life",
    "solutionValueRevenue": "solution_value_revenue",
    "annualPotentialRevenue": "annual_potential_revenue",
    "customerSavingsAmount": "customer_savings_amount",
    "tags": "tags",
}


# ═══════════════════════════════════════════════════════════════
# CSV Template
# ═══════════════════════════════════════════════════════════════

CSV_TEMPLATE_HEADER = list(FIELD_TO_COLUMN)
CSV_TEMPLATE_EXAMPLE = [
    "APPLICATION",
    "Example Customer",
    "Mining",
    "Sydney",
    "Australia",
    "Crusher Hammer",
    "WORKSHOP",
    "ABRASION,IMPACT",
    "Manganese Steel",
    "500x200x100mm",
    "CAT",
    "Component suffers from severe wear due to high-impact abrasive materials",
    "Standard steel replacement every 3 months",
    "3 months",
    "Competitor Inc",
    "Applied HARDFACE overlay to extend service life",
    "HARDFACE HC-O",
    "Extended service life, reduced downtime, better wear resistance",
    "12 months",
    "50000",
    "200000",
    "30000",
    "mining,crusher,hardface",
]


def generate_csv_template() -> str:
    """Generate the CSV template: header row plus one example row."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_TEMPLATE_HEADER)
    writer.writerow(CSV_TEMPLATE_EXAMPLE)
    return output.getvalue()


# ═══════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════

def normalize_column_name(name) -> str:
    key = str(name or "").strip().lower()
    return COLUMN_MAPPINGS.get(key, key)


def _cell_to_str(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def _rows_from_table(table) -> list[dict]:
    """Map header + data rows to dicts keyed by normalised field name."""
    non_blank = [
        [_cell_to_str(c) for c in row]
        for row in table
        if any(_cell_to_str(c) for c in row)
    ]
    if len(non_blank) < 2:
        raise BulkImportError("File must have a header row and at least one data row")

    headers = [normalize_column_name(h) for h in non_blank[0]]
    rows = []
    for index, values in enumerate(non_blank[1:]):
        row = {"rowNumber": index + 2}
        for header, value in zip(headers, values):
            if header and value:
                row[header] = value
        rows.append(row)
    return rows


def parse_csv(file_content: str | bytes) -> list[dict]:
    """Parse CSV text into row dicts carrying ``rowNumber``."""
    if isinstance(file_content, bytes):
        try:
            file_content = file_content.decode("utf-8-sig")  # Handle BOM
        except UnicodeDecodeError as e:
            raise BulkImportError("File must be UTF-8 encoded CSV") from e
    try:
        table = list(csv.reader(io.StringIO(file_content)))
    except csv.Error as e:
        raise BulkImportError(f"Failed to parse file: {e}") from e
    return _rows_from_table(table)


def parse_excel(file_content: bytes) -> list[dict]:
    """Parse the first worksheet of an .xlsx workbook."""
    try:
        workbook = load_workbook(io.BytesIO(file_content), read_only=True, data_only=True)
    except (InvalidFileException, OSError, KeyError, ValueError) as e:
        raise BulkImportError(f"Failed to parse file: {e}") from e
    try:
        sheet = workbook.worksheets[0]
        table = list(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()
    return _rows_from_table(table)


def parse_upload(file_content: str | bytes, filename: str | None = None) -> list[dict]:
    """Dispatch on file extension; anything that is not .xlsx is read as CSV."""
    name = (filename or "").lower()
    if name.endswith(".xls"):
        raise BulkImportError("Legacy .xls files are not supported; save as .xlsx or .csv")
    if name.endswith(".xlsx"):
        if isinstance(file_content, str):
            raise BulkImportError("Excel files must be uploaded as a file")
        return parse_excel(file_content)
    return parse_csv(file_content)


# ═══════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════

def _split_list(value: str | None) -> list[str]:
    return [part.strip() for part in _cell_to_str(value).split(",") if part.strip()]


def _parse_float(value: str) -> float | None:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if num != num or num in (float("inf"), float("-inf")):
        return None
    return num


def validate_row(row: dict) -> list[dict]:
    """Return every validation error for one row."""
    row_number = row.get("rowNumber", 0)
    errors = []

    for field in REQUIRED_FIELDS:
        value = row.get(field)
        if not value or not str(value).strip():
            errors.append({
                "rowNumber": row_number,
                "field": field,
                "message": f"{field} is required",
            })

    case_type = _cell_to_str(row.get("type"))
    if case_type and case_type.upper() not in CASE_TYPES:
        errors.append({
            "rowNumber": row_number,
            "field": "type",
            "message": f'Invalid type "{case_type}". Must be one of: {", ".join(CASE_TYPES)}',
            "value": case_type,
        })

    work_type = _cell_to_str(row.get("workType"))
    if work_type and work_type.upper() not in WORK_TYPES:
        errors.append({
            "rowNumber": row_number,
            "field": "workType",
            "message": f'Invalid workType "{work_type}". Must be one of: {", ".join(WORK_TYPES)}',
            "value": work_type,
        })

    wear_type = row.get("wearType")
    if wear_type:
        invalid = [t for t in (w.upper() for w in _split_list(wear_type)) if t not in WEAR_TYPES]
        if invalid:
            errors.append({
                "rowNumber": row_number,
                "field": "wearType",
                "message": (
                    f"Invalid wearType values: {', '.join(invalid)}. "
                    f"Valid values: {', '.join(WEAR_TYPES)}"
                ),
                "value": wear_type,
            })

    for field in NUMERIC_FIELDS:
        value = row.get(field)
        if not value:
            continue
        num = _parse_float(value)
        if num is None:
            errors.append({
                "rowNumber": row_number,
                "field": field,
                "message": f"{field} must be a valid number",
                "value": value,
            })
        elif num < 0:
            errors.append({
                "rowNumber": row_number,
                "field": field,
                "message": f"{field} must not be negative",
                "value": value,
            })

    return errors


def validate_rows(rows: list[dict]) -> dict:
    """
    Validate all rows.

    Returns {"success", "totalRows", "validRows", "rows": [valid rows], "errors": [...]}.
    ``validRows`` plus the number of distinct rows with errors equals ``totalRows``.
    """
    valid = []
    errors = []
    for row in rows:
        row_errors = validate_row(row)
        if row_errors:
            errors.extend(row_errors)
        else:
            valid.append(row)
    return {
        "success": not errors,
        "totalRows": len(rows),
        "validRows": len(valid),
        "rows": valid,
        "errors": errors,
    }


def convert_to_case_input(row: dict) -> dict:
    """Map a validated row to CaseStudy column values."""
    data = {}
    for field, column in FIELD_TO_COLUMN.items():
        data[column] = _cell_to_str(row.get(field)) or None

    data["type"] = _cell_to_str(row["type"]).upper()
    data["work_type"] = _cell_to_str(row["workType"]).upper()
    wear_types = [w.upper() for w in _split_list(row.get("wearType"))]
    data["wear_type"] = wear_types or ["ABRASION"]
    data["tags"] = _split_list(row.get("tags"))
    for field in NUMERIC_FIELDS:
        column = FIELD_TO_COLUMN[field]
        data[column] = _parse_float(row[field]) if row.get(field) else None
    return data


# ═══════════════════════════════════════════════════════════════
# Bulk Import Execution
# ═══════════════════════════════════════════════════════════════

def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def find_duplicate(customer_name, component_workpiece, problem_description) -> CaseStudy | None:
    """Existing case with the same customer, component and problem (case-insensitive)."""
    stmt = select(CaseStudy).where(
        func.lower(func.trim(CaseStudy.customer_name)) == _norm(customer_name),
        func.lower(func.trim(CaseStudy.component_workpiece)) == _norm(component_workpiece),
        func.lower(func.trim(CaseStudy.problem_description)) == _norm(problem_description),
    ).limit(1)
    return db.session.execute(stmt).scalar_one_or_none()


def _import_message(created: int, failed: int, skipped: int) -> str:
    if created:
        message = f"Successfully imported {created} case {'study' if created == 1 else 'studies'}"
    else:
        message = "No case studies were imported"
    problems = failed + skipped
    if problems:
        message += f" ({problems} {'row' if problems == 1 else 'rows'} failed)"
    return message


def execute_bulk_import(rows: list[dict], user, status="DRAFT", skip_duplicates=True) -> dict:
    """
    Create one case study per row.

    Rows are re-validated; invalid rows are reported, never created.  Each
    valid row is inserted in its own savepoint so a failing row does not
    abort the batch.

    Returns {"totalRows", "successfulRows", "failedRows", "skippedRows",
             "errors", "createdIds", "message"}.
    """
    status = (status or "DRAFT").upper()
    if status not in IMPORT_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(IMPORT_STATUSES)}",
            details={"status": "invalid"},
        )

    validation = validate_rows(rows)
    errors = list(validation["errors"])
    failed_rows = {e["rowNumber"] for e in errors}
    created_ids = []
    skipped = 0
    now = datetime.now(timezone.utc)

    for row in validation["rows"]:
        data = convert_to_case_input(row)

        if skip_duplicates and find_duplicate(
            data["customer_name"], data["component_workpiece"], data["problem_description"],
        ):
            errors.append({
                "rowNumber": row["rowNumber"],
                "field": "duplicate",
                "message": "Duplicate case study found - same customer, component, and problem description",
            })
            skipped += 1
            continue

        try:
            with db.session.begin_nested():
                case = CaseStudy(
                    status=status,
                    contributor_id=user.id,
                    currency="EUR",
                    images=[],
                    supporting_docs=[],
                    submitted_at=now if status == "SUBMITTED" else None,
                    **data,
                )
                db.session.add(case)
                db.session.flush()
            created_ids.append(case.id)
        except IntegrityError as e:
            logger.warning("Bulk import row %s rejected: %s", row["rowNumber"], e.orig)
            errors.append({
                "rowNumber": row["rowNumber"],
                "field": "unique",
                "message": "A case study with this combination already exists",
            })
            failed_rows.add(row["rowNumber"])
        except SQLAlchemyError as e:
            logger.error("Bulk import row %s failed: %s", row["rowNumber"], e)
            errors.append({
                "rowNumber": row["rowNumber"],
                "field": "database",
                "message": f"Failed to create: {e.__class__.__name__}",
            })
            failed_rows.add(row["rowNumber"])

    result = {
        "totalRows": len(rows),
        "successfulRows": len(created_ids),
        "failedRows": len(failed_rows),
        "skippedRows": skipped,
        "errors": errors,
        "createdIds": created_ids,
        "message": _import_message(len(created_ids), len(failed_rows), skipped),
    }

    write_audit(
        entity_type="case_study",
        entity_id="bulk-import",
        action="BULK_IMPORT",
        actor_user_id=user.id,
        details={
            "totalRows": result["totalRows"],
            "successfulRows": result["successfulRows"],
            "failedRows": result["failedRows"],
            "skippedRows": skipped,
            "status": status,
        },
    )
    NotificationService.create(
        user_id=user.id,
        type="BULK_IMPORT",
        title="Bulk import finished",
        message=result["message"],
        link="/case-studies",
    )
    db.session.commit()
    logger.info(
        "Bulk import: %d created, %d failed, %d skipped of %d",
        result["successfulRows"], result["failedRows"], skipped, result["totalRows"],
        extra={"user_id": user.id},
    )
    return result


def import_from_file(file_content, user, filename=None, status="DRAFT", skip_duplicates=True) -> dict:
    """Full pipeline: parse → validate → import."""
    rows = parse_upload(file_content, filename)
    return execute_bulk_import(rows, user, status=status, skip_duplicates=skip_duplicates)
