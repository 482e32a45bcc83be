"""BHAG progress and points leaderboard."""

from flask import Blueprint, jsonify, request

from app.middleware.role_required import require_roles
from app.models.auth import ALL_ROLES
from app.services.bhag_service import get_bhag_progress
from app.services.user_service import leaderboard

bhag_bp = Blueprint("bhag", __name__, url_prefix="/api/v1")


@bhag_bp.route("/bhag/progress", methods=["GET"])
@require_roles(*ALL_ROLES)
def progress():
    return jsonify(get_bhag_progress())


@bhag_bp.route("/leaderboard", methods=["GET"])
@require_roles(*ALL_ROLES)
def points_leaderboard():
    limit = min(request.args.get("limit", 10, type=int) or 10, 100)
    return jsonify({"items": leaderboard(limit)})
