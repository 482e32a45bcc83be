"""
Cost Calculator Blueprint — stateless calculation and savings statistics.

Routes:
  POST /api/v1/cost-calculator/calculate   – evaluate inputs, nothing persisted
  GET  /api/v1/cost-calculator/stats       – savings over APPROVED cases
"""

from flask import Blueprint, jsonify, request

import app.services.cost_calculator as svc
from app.middleware.role_required import require_roles
from app.models.auth import ALL_ROLES

cost_calculator_bp = Blueprint("cost_calculator", __name__, url_prefix="/api/v1/cost-calculator")


@cost_calculator_bp.route("/calculate", methods=["POST"])
@require_roles(*ALL_ROLES)
def calculate():
    data = request.get_json(silent=True) or {}
    result = svc.calculate_cost_reduction(data)
    if result is None:
        return jsonify({"computable": False, "result": None})

    currency = (data.get("currency") or "EUR").upper()
    return jsonify({
        "computable": True,
        "result": result.to_dict(),
        "formatted": {
            "annual_cost_old": svc.format_money(result.annual_cost_old, currency),
            "annual_cost_new": svc.format_money(result.annual_cost_new, currency),
            "annual_savings": svc.format_money(result.annual_savings, currency),
            "savings_percentage": svc.format_percent(result.savings_percentage),
        },
    })


@cost_calculator_bp.route("/stats", methods=["GET"])
@require_roles(*ALL_ROLES)
def stats():
    return jsonify(svc.get_cost_savings_stats())
