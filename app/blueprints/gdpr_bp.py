"""
GDPR Blueprint — erasure requests and personal data export.

Routes (prefix /api/v1/gdpr):
  POST /deletion-requests                   – own request
  POST /deletion-requests/<id>/cancel       – own request, PENDING only
  GET  /export                              – own data
  GET  /deletion-requests?status=           – admin
  POST /deletion-requests/<id>/process      – admin
  POST /deletion-requests/<id>/reject       – admin, {reason}
"""

from flask import Blueprint, jsonify, request

import app.services.gdpr_service as svc
from app.middleware.role_required import current_user, require_roles
from app.models.auth import ADMINS, ALL_ROLES

gdpr_bp = Blueprint("gdpr", __name__, url_prefix="/api/v1/gdpr")


# ═══════════════════════════════════════════════════════════════
# Self-service
# ═══════════════════════════════════════════════════════════════
@gdpr_bp.route("/deletion-requests", methods=["POST"])
@require_roles(*ALL_ROLES)
def create_deletion_request():
    data = request.get_json(silent=True) or {}
    return jsonify(svc.create_deletion_request(current_user(), data.get("reason"))), 201


@gdpr_bp.route("/deletion-requests/<int:request_id>/cancel", methods=["POST"])
@require_roles(*ALL_ROLES)
def cancel_deletion_request(request_id):
    return jsonify(svc.cancel_deletion_request(request_id, current_user()))


@gdpr_bp.route("/export", methods=["GET"])
@require_roles(*ALL_ROLES)
def export_data():
    return jsonify(svc.export_user_data(current_user()))


# ═══════════════════════════════════════════════════════════════
# Administration
# ═══════════════════════════════════════════════════════════════
@gdpr_bp.route("/deletion-requests", methods=["GET"])
@require_roles(*ADMINS)
def list_deletion_requests():
    items = svc.list_deletion_requests(request.args.get("status"))
    return jsonify({"items": items, "total": len(items)})


@gdpr_bp.route("/deletion-requests/<int:request_id>/process", methods=["POST"])
@require_roles(*ADMINS)
def process_deletion_request(request_id):
    return jsonify(svc.process_deletion_request(request_id, current_user()))


@gdpr_bp.route("/deletion-requests/<int:request_id>/reject", methods=["POST"])
@require_roles(*ADMINS)
def reject_deletion_request(request_id):
    data = request.get_json(silent=True) or {}
    return jsonify(svc.reject_deletion_request(request_id, current_user(), data.get("reason", "")))
