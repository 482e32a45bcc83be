"""
CRM Blueprint — Insightly lookups and case study sync.

Routes (prefix /api/v1/crm):
  GET  /organizations?q=
  GET  /contacts?q=
  POST /case-studies/<id>/sync
  POST /case-studies/<id>/push-pdf
  GET  /case-studies/<id>/status
  POST /batch-sync                 (admin)
  GET  /test-connection            (admin)
"""

from flask import Blueprint, jsonify, request

import app.services.crm_service as svc
from app.middleware.role_required import current_user, require_roles
from app.models.auth import ADMINS, EXPORTERS

crm_bp = Blueprint("crm", __name__, url_prefix="/api/v1/crm")


@crm_bp.route("/organizations", methods=["GET"])
@require_roles(*EXPORTERS)
def search_organizations():
    q = request.args.get("q", "")
    return jsonify({"items": svc.search_organizations(q)})


@crm_bp.route("/contacts", methods=["GET"])
@require_roles(*EXPORTERS)
def search_contacts():
    q = request.args.get("q", "")
    return jsonify({"items": svc.search_contacts(q)})


@crm_bp.route("/case-studies/<int:case_id>/sync", methods=["POST"])
@require_roles(*EXPORTERS)
def sync_case_study(case_id):
    return jsonify(svc.sync_case_study(case_id, current_user()))


@crm_bp.route("/case-studies/<int:case_id>/push-pdf", methods=["POST"])
@require_roles(*EXPORTERS)
def push_pdf(case_id):
    return jsonify(svc.push_pdf_to_crm(case_id, current_user()))


@crm_bp.route("/case-studies/<int:case_id>/status", methods=["GET"])
@require_roles(*EXPORTERS)
def sync_status(case_id):
    return jsonify(svc.get_sync_status(case_id))


@crm_bp.route("/batch-sync", methods=["POST"])
@require_roles(*ADMINS)
def batch_sync():
    data = request.get_json(silent=True) or {}
    try:
        limit = int(data.get("limit", svc.BATCH_SYNC_LIMIT))
    except (TypeError, ValueError):
        return jsonify({"error": "limit must be an integer"}), 400
    return jsonify(svc.batch_sync(current_user(), limit=limit))


@crm_bp.route("/test-connection", methods=["GET"])
@require_roles(*ADMINS)
def test_connection():
    return jsonify(svc.test_connection())
