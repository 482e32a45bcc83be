"""Case study lifecycle service.

Create, update, delete, list and submit case studies.  Approval-side
transitions (approve, reject, publish, reopen) live in approval_service and
share ``apply_transition`` from here.

Submission commits first; the follow-up side effects (auto-translation and
approver notifications) are best-effort and never undo the submission.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NotFoundError, TransitionError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.auth import APPROVERS
from app.models.case_study import (
    CASE_STATUSES,
    CASE_STUDY_TRANSITIONS,
    CASE_TYPES,
    MONETARY_FIELDS,
    QUALIFIER_TYPES,
    WEAR_TYPES,
    WORK_TYPES,
    CaseStudy,
)
from app.services import translation_service
from app.services.notification import NotificationService
from app.services.permission import ensure_can_delete_case, ensure_can_edit_case
from app.utils.helpers import parse_number

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "type",
    "customer_name",
    "industry",
    "location",
    "component_workpiece",
    "work_type",
    "problem_description",
    "wa_solution",
    "wa_product",
)

TEXT_FIELDS = (
    "customer_name", "industry", "location", "country", "component_workpiece",
    "base_metal", "general_dimensions", "oem",
    "problem_description", "previous_solution", "previous_service_life",
    "competitor_name", "wa_solution", "wa_product", "technical_advantages",
    "expected_service_life",
)

LIST_FIELDS = ("tags", "images", "supporting_docs")

CREATE_STATUSES = ("DRAFT", "SUBMITTED")

SEVERITY_MIN, SEVERITY_MAX = 1, 5


# ═════════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════════

def _clean_enum(value, allowed, field, errors):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    normalized = str(value).strip().upper()
    if normalized not in allowed:
        errors[field] = f"must be one of: {', '.join(allowed)}"
        return None
    return normalized


def _clean_string_list(value, field, errors):
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors[field] = "must be a list of strings"
        return []
    return [v.strip() for v in value if v.strip()]


def validate_case_data(data: dict, *, partial: bool = False, existing: CaseStudy | None = None) -> dict:
    """Validate and normalise case study input.

    ``partial`` (update) only checks the keys present in ``data``; required
    fields may not be blanked.  ``existing`` supplies the current wear types
    when checking a severities-only update.

    Raises:
        ValidationError: with per-field ``details``.
    """
    errors: dict[str, str] = {}
    cleaned: dict = {}

    for field in REQUIRED_FIELDS:
        if partial and field not in data:
            continue
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors[field] = f"{field} is required"

    for field in TEXT_FIELDS:
        if field in data and field not in errors:
            value = data.get(field)
            cleaned[field] = str(value).strip() if value not in (None, "") else None

    if "type" in data and "type" not in errors:
        cleaned["type"] = _clean_enum(data["type"], CASE_TYPES, "type", errors)
    if "work_type" in data and "work_type" not in errors:
        cleaned["work_type"] = _clean_enum(data["work_type"], WORK_TYPES, "work_type", errors)
    if "qualifier_type" in data:
        cleaned["qualifier_type"] = _clean_enum(
            data["qualifier_type"], QUALIFIER_TYPES, "qualifier_type", errors,
        )

    if "wear_type" in data:
        wear = [w.upper() for w in _clean_string_list(data["wear_type"], "wear_type", errors)]
        invalid = [w for w in wear if w not in WEAR_TYPES]
        if invalid:
            errors["wear_type"] = f"invalid values: {', '.join(invalid)}"
        cleaned["wear_type"] = list(dict.fromkeys(wear))
    elif not partial:
        cleaned["wear_type"] = []

    if "wear_severities" in data:
        severities = data.get("wear_severities") or {}
        wear_types = set(
            cleaned.get("wear_type")
            if "wear_type" in cleaned
            else (existing.wear_type if existing is not None else []) or []
        )
        if not isinstance(severities, dict):
            errors["wear_severities"] = "must be an object of {wear_type: 1..5}"
        else:
            normalized = {}
            for key, level in severities.items():
                wear_key = str(key).upper()
                if wear_key not in wear_types:
                    errors["wear_severities"] = f"{wear_key} is not one of the selected wear types"
                    break
                if isinstance(level, bool) or not isinstance(level, int) or not (
                    SEVERITY_MIN <= level <= SEVERITY_MAX
                ):
                    errors["wear_severities"] = (
                        f"severity for {wear_key} must be an integer {SEVERITY_MIN}-{SEVERITY_MAX}"
                    )
                    break
                normalized[wear_key] = level
            cleaned["wear_severities"] = normalized
    elif "wear_type" in cleaned and existing is not None:
        # Drop severities for wear types that were removed
        kept = set(cleaned["wear_type"])
        cleaned["wear_severities"] = {
            k: v for k, v in (existing.wear_severities or {}).items() if k in kept
        }

    for field in MONETARY_FIELDS:
        if field in data:
            try:
                cleaned[field] = parse_number(data.get(field), field)
            except ValueError as exc:
                errors[field] = str(exc)

    if "currency" in data:
        currency = str(data.get("currency") or "").strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            errors["currency"] = "must be a 3-letter ISO currency code"
        else:
            cleaned["currency"] = currency

    for field in LIST_FIELDS:
        if field in data:
            cleaned[field] = _clean_string_list(data[field], field, errors)

    if errors:
        raise ValidationError("Invalid case study data", details=errors)
    return cleaned


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════

def apply_transition(case: CaseStudy, action: str) -> str:
    """Move ``case`` along the transition table; returns the previous status."""
    rule = CASE_STUDY_TRANSITIONS[action]
    if case.status not in rule["from"]:
        allowed = ", ".join(sorted(rule["from"]))
        raise TransitionError(case.id, action, case.status, f"requires status {allowed}")
    previous = case.status
    case.status = rule["to"]
    return previous


def get_case_or_404(case_id: int) -> CaseStudy:
    case = db.session.get(CaseStudy, case_id)
    if case is None:
        raise NotFoundError(resource="CaseStudy", resource_id=case_id)
    return case


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════

def create_case_study(data: dict, user) -> dict:
    """Create a DRAFT (or directly SUBMITTED) case study owned by ``user``."""
    status = str(data.get("status") or "DRAFT").upper()
    if status not in CREATE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(CREATE_STATUSES)}",
            details={"status": "invalid"},
        )
    cleaned = validate_case_data(data)

    case = CaseStudy(
        status=status,
        contributor_id=user.id,
        currency=cleaned.pop("currency", "EUR"),
        wear_severities=cleaned.pop("wear_severities", {}),
        tags=cleaned.pop("tags", []),
        images=cleaned.pop("images", []),
        supporting_docs=cleaned.pop("supporting_docs", []),
        **cleaned,
    )
    if status == "SUBMITTED":
        case.submitted_at = datetime.now(timezone.utc)
    db.session.add(case)
    db.session.flush()

    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="CASE_CREATED",
        actor_user_id=user.id,
        details={"type": case.type, "status": status},
    )
    if status == "SUBMITTED":
        write_audit(
            entity_type="case_study",
            entity_id=case.id,
            action="CASE_SUBMITTED",
            actor_user_id=user.id,
        )
    db.session.commit()
    logger.info("Case study created status=%s", status, extra={"case_id": case.id, "user_id": user.id})

    if status == "SUBMITTED":
        _run_submit_side_effects(case, user)
    return case.to_dict()


def update_case_study(case_id: int, data: dict, user) -> dict:
    """Partial update. Status is never changed here."""
    case = get_case_or_404(case_id)
    ensure_can_edit_case(case, user)
    if "status" in data and str(data["status"]).upper() != case.status:
        raise ValidationError(
            "Status cannot be changed through update; use the workflow actions",
            details={"status": "read-only"},
        )

    cleaned = validate_case_data(data, partial=True, existing=case)
    changed = []
    for field, value in cleaned.items():
        if getattr(case, field) != value:
            setattr(case, field, value)
            changed.append(field)

    if changed:
        write_audit(
            entity_type="case_study",
            entity_id=case.id,
            action="CASE_UPDATED",
            actor_user_id=user.id,
            details={"fields": sorted(changed)},
        )
    db.session.commit()
    logger.info("Case study updated fields=%s", changed, extra={"case_id": case.id, "user_id": user.id})
    return case.to_dict()


def delete_case_study(case_id: int, user) -> None:
    case = get_case_or_404(case_id)
    ensure_can_delete_case(case, user)
    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="CASE_DELETED",
        actor_user_id=user.id,
        details={"customer_name": case.customer_name, "type": case.type},
    )
    db.session.delete(case)
    db.session.commit()
    logger.info("Case study deleted", extra={"case_id": case_id, "user_id": user.id})


def get_case_study(case_id: int, include_children: bool = True) -> dict:
    return get_case_or_404(case_id).to_dict(include_children=include_children)


def _int_filter(filters: dict, key: str, default: int | None = None) -> int | None:
    raw = filters.get(key)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} must be an integer", details={key: "invalid"}) from exc


def list_case_studies(filters: dict | None = None) -> dict:
    """Filter by status, type, contributor_id, industry and free text ``q``."""
    filters = filters or {}
    stmt = select(CaseStudy)

    status = (filters.get("status") or "").upper()
    if status:
        if status not in CASE_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}", details={"status": "invalid"})
        stmt = stmt.where(CaseStudy.status == status)
    case_type = (filters.get("type") or "").upper()
    if case_type:
        if case_type not in CASE_TYPES:
            raise ValidationError(f"Invalid type filter: {case_type}", details={"type": "invalid"})
        stmt = stmt.where(CaseStudy.type == case_type)
    contributor_id = _int_filter(filters, "contributor_id")
    if contributor_id is not None:
        stmt = stmt.where(CaseStudy.contributor_id == contributor_id)
    if filters.get("industry"):
        stmt = stmt.where(func.lower(CaseStudy.industry) == filters["industry"].strip().lower())
    q = (filters.get("q") or "").strip()
    if q:
        like = f"%{q}%"
        stmt = stmt.where(or_(
            CaseStudy.customer_name.ilike(like),
            CaseStudy.component_workpiece.ilike(like),
            CaseStudy.problem_description.ilike(like),
            CaseStudy.wa_product.ilike(like),
            CaseStudy.location.ilike(like),
        ))

    page = max(_int_filter(filters, "page", 1), 1)
    per_page = min(max(_int_filter(filters, "per_page", 20), 1), 100)

    total = db.session.execute(
        select(func.count()).select_from(stmt.subquery())
    ).scalar_one()
    items = db.session.execute(
        stmt.order_by(CaseStudy.created_at.desc(), CaseStudy.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).scalars().all()

    return {
        "items": [c.to_dict() for c in items],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Submission
# ═════════════════════════════════════════════════════════════════════════════

def submit_case_study(case_id: int, user) -> dict:
    """DRAFT → SUBMITTED, then best-effort translation and approver notification."""
    case = get_case_or_404(case_id)
    ensure_can_edit_case(case, user)
    apply_transition(case, "submit")
    case.submitted_at = datetime.now(timezone.utc)
    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="CASE_SUBMITTED",
        actor_user_id=user.id,
    )
    db.session.commit()
    logger.info("Case study submitted", extra={"case_id": case.id, "user_id": user.id})

    translation = _run_submit_side_effects(case, user)
    result = case.to_dict()
    result["translation"] = translation
    return result


def _run_submit_side_effects(case: CaseStudy, user) -> dict:
    translation = translation_service.auto_translate_on_submit(case)
    try:
        NotificationService.notify_role(
            APPROVERS,
            type="CASE_SUBMITTED",
            title="New Case Study Submitted",
            message=f'"{case.title}" is waiting for review.',
            link=f"/case-studies/{case.id}",
            exclude_user_id=user.id,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to notify approvers", extra={"case_id": case.id})
    return translation
