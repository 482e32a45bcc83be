"""
Case Study Blueprint.

Routes (prefix /api/v1/case-studies):
  GET    ""                          – list with filters
  POST   ""                          – create (DRAFT or SUBMITTED)
  GET    /<id>                       – detail incl. WPS, calculator, translations
  PUT    /<id>                       – update (owner / approver / admin)
  DELETE /<id>                       – delete (owner / admin)
  POST   /<id>/submit                – DRAFT → SUBMITTED + auto-translate
  GET    /<id>/wps                   – welding procedure
  PUT    /<id>/wps                   – upsert welding procedure
  DELETE /<id>/wps
  GET    /<id>/cost-calculator
  PUT    /<id>/cost-calculator       – upsert inputs; outputs recomputed
  GET    /<id>/export/pdf            – PDF report
  GET    /<id>/translations/<lang>
  POST   /<id>/translate             – on-demand translation
  GET    /<id>/display?lang=         – translated-or-original narrative
"""

import logging

from flask import Blueprint, Response, jsonify, request

import app.services.case_study_service as svc
import app.services.cost_calculator as cost_svc
import app.services.translation_service as translation_svc
import app.services.wps_service as wps_svc
from app.middleware.role_required import current_user, require_roles
from app.models.auth import ALL_ROLES, CASE_AUTHORS
from app.services.pdf_export_service import export_case_study_pdf, pdf_file_name
from app.services.permission import ensure_can_export_case

logger = logging.getLogger(__name__)

case_study_bp = Blueprint("case_study", __name__, url_prefix="/api/v1/case-studies")


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════
@case_study_bp.route("", methods=["GET"])
@require_roles(*ALL_ROLES)
def list_case_studies():
    filters = request.args.to_dict()
    if filters.pop("mine", "").lower() in ("1", "true", "yes"):
        filters["contributor_id"] = str(current_user().id)
    return jsonify(svc.list_case_studies(filters))


@case_study_bp.route("", methods=["POST"])
@require_roles(*CASE_AUTHORS)
def create_case_study():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.create_case_study(data, current_user())), 201


@case_study_bp.route("/<int:case_id>", methods=["GET"])
@require_roles(*ALL_ROLES)
def get_case_study(case_id):
    return jsonify(svc.get_case_study(case_id))


@case_study_bp.route("/<int:case_id>", methods=["PUT"])
@require_roles(*CASE_AUTHORS)
def update_case_study(case_id):
    data = request.get_json(silent=True) or {}
    return jsonify(svc.update_case_study(case_id, data, current_user()))


@case_study_bp.route("/<int:case_id>", methods=["DELETE"])
@require_roles(*CASE_AUTHORS)
def delete_case_study(case_id):
    svc.delete_case_study(case_id, current_user())
    return jsonify({"deleted": True, "id": case_id})


@case_study_bp.route("/<int:case_id>/submit", methods=["POST"])
@require_roles(*CASE_AUTHORS)
def submit_case_study(case_id):
    return jsonify(svc.submit_case_study(case_id, current_user()))


# ═══════════════════════════════════════════════════════════════
# Welding procedure
# ═══════════════════════════════════════════════════════════════
@case_study_bp.route("/<int:case_id>/wps", methods=["GET"])
@require_roles(*ALL_ROLES)
def get_wps(case_id):
    return jsonify({"wps": wps_svc.get_wps(case_id)})


@case_study_bp.route("/<int:case_id>/wps", methods=["PUT"])
@require_roles(*CASE_AUTHORS)
def save_wps(case_id):
    data = request.get_json(silent=True) or {}
    return jsonify({"wps": wps_svc.save_wps(case_id, data, current_user())})


@case_study_bp.route("/<int:case_id>/wps", methods=["DELETE"])
@require_roles(*CASE_AUTHORS)
def delete_wps(case_id):
    wps_svc.delete_wps(case_id, current_user())
    return jsonify({"deleted": True})


# ═══════════════════════════════════════════════════════════════
# Cost calculator
# ═══════════════════════════════════════════════════════════════
@case_study_bp.route("/<int:case_id>/cost-calculator", methods=["GET"])
@require_roles(*ALL_ROLES)
def get_cost_calculator(case_id):
    return jsonify({"cost_calculator": cost_svc.get_cost_calculation(case_id)})


@case_study_bp.route("/<int:case_id>/cost-calculator", methods=["PUT"])
@require_roles(*CASE_AUTHORS)
def save_cost_calculator(case_id):
    data = request.get_json(silent=True) or {}
    return jsonify({"cost_calculator": cost_svc.save_cost_calculation(case_id, data, current_user())})


# ═══════════════════════════════════════════════════════════════
# PDF export
# ═══════════════════════════════════════════════════════════════
@case_study_bp.route("/<int:case_id>/export/pdf", methods=["GET"])
@require_roles(*ALL_ROLES)
def export_pdf(case_id):
    """Exporters, and the case owner, may download the report."""
    user = current_user()
    case = svc.get_case_or_404(case_id)
    ensure_can_export_case(case, user)
    pdf = export_case_study_pdf(case, user)
    return Response(
        pdf,
        mimetype="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={pdf_file_name(case)}"},
    )


# ═══════════════════════════════════════════════════════════════
# Translations
# ═══════════════════════════════════════════════════════════════
@case_study_bp.route("/<int:case_id>/translations/<lang>", methods=["GET"])
@require_roles(*ALL_ROLES)
def get_translation(case_id, lang):
    return jsonify(translation_svc.get_translation(case_id, lang))


@case_study_bp.route("/<int:case_id>/translate", methods=["POST"])
@require_roles(*CASE_AUTHORS)
def translate_case_study(case_id):
    data = request.get_json(silent=True) or {}
    target = (data.get("target_language") or "").strip()
    if not target:
        return jsonify({"error": "target_language is required"}), 400
    return jsonify(translation_svc.translate_case_study(case_id, target, current_user()))


@case_study_bp.route("/<int:case_id>/display", methods=["GET"])
@require_roles(*ALL_ROLES)
def display_content(case_id):
    case = svc.get_case_or_404(case_id)
    lang = request.args.get("lang", "en")
    return jsonify(translation_svc.get_display_content(case, lang))
