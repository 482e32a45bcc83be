"""
Approval Workflow Blueprint.

Routes:
  GET    /approvals/pending              – SUBMITTED cases, oldest first
  POST   /approvals/<id>/approve         – SUBMITTED → APPROVED (+ points)
  POST   /approvals/<id>/reject          – SUBMITTED → REJECTED, {reason}
  POST   /approvals/<id>/publish         – APPROVED → PUBLISHED (admin)
  POST   /approvals/<id>/reopen          – APPROVED | REJECTED → DRAFT (admin)
"""

from flask import Blueprint, jsonify, request

import app.services.approval_service as svc
from app.middleware.role_required import current_user, require_roles
from app.models.auth import ADMINS, APPROVERS

approval_bp = Blueprint("approval", __name__, url_prefix="/api/v1")


@approval_bp.route("/approvals/pending", methods=["GET"])
@require_roles(*APPROVERS)
def pending_approvals():
    items = svc.list_pending_approvals()
    return jsonify({"items": items, "total": len(items)})


@approval_bp.route("/approvals/<int:case_id>/approve", methods=["POST"])
@require_roles(*APPROVERS)
def approve(case_id):
    return jsonify(svc.approve_case_study(case_id, current_user()))


@approval_bp.route("/approvals/<int:case_id>/reject", methods=["POST"])
@require_roles(*APPROVERS)
def reject(case_id):
    data = request.get_json(silent=True) or {}
    return jsonify(svc.reject_case_study(case_id, current_user(), data.get("reason", "")))


@approval_bp.route("/approvals/<int:case_id>/publish", methods=["POST"])
@require_roles(*ADMINS)
def publish(case_id):
    return jsonify(svc.publish_case_study(case_id, current_user()))


@approval_bp.route("/approvals/<int:case_id>/reopen", methods=["POST"])
@require_roles(*ADMINS)
def reopen(case_id):
    return jsonify(svc.reopen_case_study(case_id, current_user()))
