"""Cost reduction calculator for STAR case studies.

Compares the annual cost of the customer's current part against the welded
solution.  Lifetimes may be entered in any mix of hours/days/weeks/months/
years; each side is normalised to hours before the ratio is taken.

    lifetime_ratio      = new_hours / old_hours
    new_parts_per_year  = E / lifetime_ratio
    annual_cost_old     = A*E + (E-1)*(F+G+H)
    annual_cost_new     = B*new_ppy + max(0, new_ppy-1)*(F+G+H)
    annual_savings      = old - new
    savings_percentage  = savings / old * 100   (0 when old == 0)

A = cost_of_part_old, B = cost_of_part_new, E = parts_per_year,
F/G/H = maintenance/disassembly/downtime cost per replacement event.

``calculate_cost_reduction`` is pure.  Persistence is a separate, explicit
step (``save_cost_calculation``) that always recomputes the outputs.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from sqlalchemy import func, select

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.case_study import (
    COST_INPUT_FIELDS,
    LIFETIME_UNITS,
    CaseStudy,
    CostCalculator,
)
from app.services.permission import ensure_can_edit_case

logger = logging.getLogger(__name__)

HOURS_PER_UNIT = {
    "hours": 1,
    "days": 24,
    "weeks": 168,
    "months": 730,
    "years": 8760,
}

REQUIRED_INPUTS = ("cost_of_part_old", "cost_of_part_new", "parts_per_year")
EVENT_COST_FIELDS = (
    "maintenance_cost_per_event",
    "disassembly_cost_per_event",
    "downtime_cost_per_event",
)


@dataclass(frozen=True)
class CostResult:
    """Derived outputs of one calculation (unrounded)."""
    lifetime_ratio: float
    new_parts_per_year: float
    annual_cost_old: float
    annual_cost_new: float
    annual_savings: float
    savings_percentage: float

    def to_dict(self) -> dict:
        return asdict(self)


# ═════════════════════════════════════════════════════════════════════════════
# Pure calculation
# ═════════════════════════════════════════════════════════════════════════════

def _to_float(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if num != num or num in (float("inf"), float("-inf")):
        return None
    return num


def normalize_lifetime_hours(inputs: dict, prefix: str) -> float:
    """Sum ``<prefix>_lifetime_<unit>`` fields into hours (missing → 0)."""
    total = 0.0
    for unit in LIFETIME_UNITS:
        value = _to_float(inputs.get(f"{prefix}_lifetime_{unit}"))
        if value:
            total += value * HOURS_PER_UNIT[unit]
    return total


def calculate_cost_reduction(inputs: dict) -> CostResult | None:
    """Evaluate the cost comparison.

    Returns None ("not computable") when A, B or E is missing or zero, or
    when either lifetime normalises to <= 0.  Negative savings are returned
    as-is.
    """
    required = {f: _to_float(inputs.get(f)) for f in REQUIRED_INPUTS}
    if any(v is None or v <= 0 for v in required.values()):
        return None

    old_hours = normalize_lifetime_hours(inputs, "old")
    new_hours = normalize_lifetime_hours(inputs, "new")
    if old_hours <= 0 or new_hours <= 0:
        return None

    a = required["cost_of_part_old"]
    b = required["cost_of_part_new"]
    e = required["parts_per_year"]
    event_cost = sum(_to_float(inputs.get(f)) or 0.0 for f in EVENT_COST_FIELDS)

    ratio = new_hours / old_hours
    new_ppy = e / ratio
    cost_old = a * e + (e - 1) * event_cost
    cost_new = b * new_ppy + max(0.0, new_ppy - 1) * event_cost
    savings = cost_old - cost_new
    percentage = (savings / cost_old * 100) if cost_old != 0 else 0.0

    return CostResult(
        lifetime_ratio=ratio,
        new_parts_per_year=new_ppy,
        annual_cost_old=cost_old,
        annual_cost_new=cost_new,
        annual_savings=savings,
        savings_percentage=percentage,
    )


def format_money(value: float | None, currency: str | None = None) -> str:
    """Display formatting: thousands separators, 2 decimals, optional currency."""
    if value is None:
        return "-"
    text = f"{value:,.2f}"
    return f"{currency} {text}" if currency else text


def format_percent(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{value:.2f}%"


# ═════════════════════════════════════════════════════════════════════════════
# Persistence
# ═════════════════════════════════════════════════════════════════════════════

def _clean_inputs(data: dict) -> dict:
    """Keep only known input fields, coerced to float; reject negatives."""
    cleaned: dict = {}
    errors: dict = {}
    for field in COST_INPUT_FIELDS:
        if field not in data:
            continue
        raw = data.get(field)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            cleaned[field] = None
            continue
        num = _to_float(raw)
        if num is None:
            errors[field] = "must be a valid number"
        elif num < 0:
            errors[field] = "must not be negative"
        else:
            cleaned[field] = num
    if errors:
        raise ValidationError("Invalid cost calculator input", details=errors)
    return cleaned


def save_cost_calculation(case_id: int, data: dict, user) -> dict:
    """Upsert the calculator for a STAR case with freshly derived outputs.

    Output fields supplied by the caller are ignored.

    Raises:
        NotFoundError: unknown case.
        ForbiddenError: caller may not edit the case.
        ValidationError: non-STAR case, bad numbers, or not computable.
    """
    case = db.session.get(CaseStudy, case_id)
    if case is None:
        raise NotFoundError(resource="CaseStudy", resource_id=case_id)
    ensure_can_edit_case(case, user)
    if case.type != "STAR":
        raise ValidationError("Cost calculator is only available for STAR case studies")

    inputs = _clean_inputs(data)
    calc = case.cost_calculator
    merged = calc.inputs() if calc else {}
    merged.update(inputs)

    result = calculate_cost_reduction(merged)
    if result is None:
        raise ValidationError(
            "Cost calculation is not computable: cost_of_part_old, cost_of_part_new, "
            "parts_per_year and both lifetimes must be greater than zero",
        )

    if calc is None:
        calc = CostCalculator(case_study_id=case.id)
        db.session.add(calc)
        case.cost_calculator = calc
    for field in COST_INPUT_FIELDS:
        if field in merged:
            setattr(calc, field, merged[field] if merged[field] is not None else 0)
    if data.get("currency"):
        calc.currency = str(data["currency"]).upper()[:3]
    elif not calc.currency:
        calc.currency = case.currency or "EUR"
    for field, value in result.to_dict().items():
        setattr(calc, field, value)

    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="COST_CALCULATION_SAVED",
        actor_user_id=user.id,
        details={"annual_savings": result.annual_savings},
    )
    db.session.commit()
    logger.info(
        "Cost calculation saved savings=%.2f", result.annual_savings,
        extra={"case_id": case.id, "user_id": user.id},
    )
    return calc.to_dict()


def get_cost_calculation(case_id: int) -> dict | None:
    case = db.session.get(CaseStudy, case_id)
    if case is None:
        raise NotFoundError(resource="CaseStudy", resource_id=case_id)
    return case.cost_calculator.to_dict() if case.cost_calculator else None


def get_cost_savings_stats() -> dict:
    """Aggregate saved calculations over APPROVED cases."""
    base = (
        select(CostCalculator, CaseStudy.industry)
        .join(CaseStudy, CaseStudy.id == CostCalculator.case_study_id)
        .where(CaseStudy.status == "APPROVED")
    )
    rows = db.session.execute(base).all()
    if not rows:
        return {
            "count": 0,
            "total_savings": 0.0,
            "average_savings": 0.0,
            "average_percentage": 0.0,
            "by_industry": [],
        }

    total = sum(calc.annual_savings or 0.0 for calc, _ in rows)
    pct_total = sum(calc.savings_percentage or 0.0 for calc, _ in rows)

    by_industry = db.session.execute(
        select(
            CaseStudy.industry,
            func.count(CostCalculator.id),
            func.sum(CostCalculator.annual_savings),
        )
        .join(CaseStudy, CaseStudy.id == CostCalculator.case_study_id)
        .where(CaseStudy.status == "APPROVED")
        .group_by(CaseStudy.industry)
        .order_by(func.sum(CostCalculator.annual_savings).desc())
    ).all()

    return {
        "count": len(rows),
        "total_savings": total,
        "average_savings": total / len(rows),
        "average_percentage": pct_total / len(rows),
        "by_industry": [
            {"industry": industry, "count": count, "total_savings": float(savings or 0)}
            for industry, count, savings in by_industry
        ],
    }
