"""
Admin Blueprint — user management.

Routes (prefix /api/v1/admin):
  GET  /users                     – list (?role=&active=&q=&page=&per_page=)
  POST /users                     – create {email, name?, role?, region?}
  PUT  /users/<id>/role           – {role}
  POST /users/<id>/deactivate
"""

from flask import Blueprint, jsonify, request

import app.services.user_service as svc
from app.middleware.role_required import current_user, require_roles
from app.models.auth import ADMINS, ROLE_CONTRIBUTOR
from app.utils.helpers import parse_bool

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


@admin_bp.route("/users", methods=["GET"])
@require_roles(*ADMINS)
def list_users():
    active = request.args.get("active")
    return jsonify(svc.list_users(
        role=request.args.get("role"),
        active=parse_bool(active) if active is not None else None,
        q=request.args.get("q"),
        page=request.args.get("page", 1, type=int) or 1,
        per_page=request.args.get("per_page", 50, type=int) or 50,
    ))


@admin_bp.route("/users", methods=["POST"])
@require_roles(*ADMINS)
def create_user():
    data = request.get_json(silent=True) or {}
    if not data.get("email"):
        return jsonify({"error": "email is required"}), 400
    user = svc.create_user(
        email=data["email"],
        name=data.get("name"),
        role=data.get("role", ROLE_CONTRIBUTOR),
        region=data.get("region"),
        created_by=current_user(),
    )
    return jsonify(user.to_dict(include_permissions=True)), 201


@admin_bp.route("/users/<int:user_id>/role", methods=["PUT"])
@require_roles(*ADMINS)
def change_role(user_id):
    data = request.get_json(silent=True) or {}
    if not data.get("role"):
        return jsonify({"error": "role is required"}), 400
    user = svc.change_role(user_id, data["role"], current_user())
    return jsonify(user.to_dict(include_permissions=True))


@admin_bp.route("/users/<int:user_id>/deactivate", methods=["POST"])
@require_roles(*ADMINS)
def deactivate_user(user_id):
    return jsonify(svc.deactivate_user(user_id, current_user()).to_dict())
