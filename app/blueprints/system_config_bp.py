"""
System Config Blueprint — admin-managed key/value settings.

Routes:
  GET /api/system-config            – list all settings
  GET /api/system-config/<key>      – {"config": {...} | null}
  PUT /api/system-config/<key>      – upsert {value, description?}

All routes are ADMIN only: 401 without a user, 403 for any other role.
"""

import logging

from flask import Blueprint, jsonify, request

import app.services.system_config_service as svc
from app.middleware.role_required import current_user, require_roles
from app.models import db
from app.models.auth import ADMINS

logger = logging.getLogger(__name__)

system_config_bp = Blueprint("system_config", __name__, url_prefix="/api/system-config")


@system_config_bp.route("", methods=["GET"])
@require_roles(*ADMINS)
def list_configs():
    try:
        return jsonify({"configs": svc.list_configs()})
    except Exception:
        logger.exception("Failed to list system config")
        db.session.rollback()
        return jsonify({"error": "Failed to fetch system config"}), 500


@system_config_bp.route("/<key>", methods=["GET"])
@require_roles(*ADMINS)
def get_config(key):
    try:
        cfg = svc.get_config(key)
    except Exception:
        logger.exception("Failed to fetch system config %s", key)
        db.session.rollback()
        return jsonify({"error": "Failed to fetch system config"}), 500
    return jsonify({"config": cfg.to_dict() if cfg is not None else None})


@system_config_bp.route("/<key>", methods=["PUT"])
@require_roles(*ADMINS)
def set_config(key):
    data = request.get_json(silent=True) or {}
    if "value" not in data:
        return jsonify({"error": "value is required"}), 400
    cfg = svc.set_config(key, data["value"], current_user(), description=data.get("description"))
    return jsonify({"config": cfg})
