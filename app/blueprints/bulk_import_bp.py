"""
Bulk Import Blueprint — case studies from CSV or Excel.

Endpoints:
  GET  /api/v1/case-studies/import/template   — Download CSV template
  POST /api/v1/case-studies/import/validate   — Validate without importing
  POST /api/v1/case-studies/import            — Upload & import

Input: multipart ``file`` (.csv / .xlsx), JSON ``csv_content``, or raw body.
"""

import logging

from flask import Blueprint, Response, jsonify, request

from app.middleware.role_required import current_user, require_roles
from app.models.auth import APPROVERS
from app.services.bulk_import_service import (
    BulkImportError,
    execute_bulk_import,
    generate_csv_template,
    parse_upload,
    validate_rows,
)
from app.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

bulk_import_bp = Blueprint("bulk_import", __name__, url_prefix="/api/v1/case-studies/import")


# ═══════════════════════════════════════════════════════════════
# Error Handler
# ═══════════════════════════════════════════════════════════════
@bulk_import_bp.errorhandler(BulkImportError)
def handle_bulk_import_error(e):
    return jsonify({"error": e.message}), e.status_code


# ═══════════════════════════════════════════════════════════════
# Template Download
# ═══════════════════════════════════════════════════════════════
@bulk_import_bp.route("/template", methods=["GET"])
@require_roles(*APPROVERS)
def download_template():
    """Download a CSV template for bulk case study import."""
    return Response(
        generate_csv_template(),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=case_study_import_template.csv"},
    )


# ═══════════════════════════════════════════════════════════════
# Validate (dry run)
# ═══════════════════════════════════════════════════════════════
@bulk_import_bp.route("/validate", methods=["POST"])
@require_roles(*APPROVERS)
def validate_file():
    """Validate an upload without importing — dry run."""
    file_content, filename = _extract_file_content()
    if not file_content:
        return jsonify({"error": "A CSV or Excel file is required (file upload or raw body)"}), 400

    rows = parse_upload(file_content, filename)
    return jsonify(validate_rows(rows)), 200


# ═══════════════════════════════════════════════════════════════
# Import
# ═══════════════════════════════════════════════════════════════
@bulk_import_bp.route("", methods=["POST"])
@require_roles(*APPROVERS)
def import_file():
    """Upload and import case studies. 207 when some rows were not created."""
    file_content, filename = _extract_file_content()
    if not file_content:
        return jsonify({"error": "A CSV or Excel file is required (file upload or raw body)"}), 400

    options = _import_options()
    rows = parse_upload(file_content, filename)
    result = execute_bulk_import(
        rows,
        current_user(),
        status=options["status"],
        skip_duplicates=options["skip_duplicates"],
    )
    status_code = 200 if result["successfulRows"] == result["totalRows"] else 207
    return jsonify(result), status_code


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════
def _extract_file_content():
    """Return (content, filename) from a multipart upload, JSON or raw body."""
    # Multipart file upload
    if request.files:
        file = request.files.get("file")
        if file:
            return file.read(), file.filename

    # JSON body with csv_content field
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data.get("csv_content"):
        return data["csv_content"], None

    # Raw body
    if request.data and not request.is_json:
        return request.data, None

    return None, None


def _import_options() -> dict:
    data = request.get_json(silent=True)
    source = data if isinstance(data, dict) else {**request.args, **request.form}
    return {
        "status": source.get("status", "DRAFT"),
        "skip_duplicates": parse_bool(source.get("skip_duplicates"), default=True),
    }
