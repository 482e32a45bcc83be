"""Approval workflow service.

    approve   SUBMITTED → APPROVED   (awards contributor points)
    reject    SUBMITTED → REJECTED   (reason required)
    publish   APPROVED  → PUBLISHED  (admin)
    reopen    APPROVED | REJECTED → DRAFT  (admin; clears approval stamps)

Points per case type come from SystemConfig (``points_application``,
``points_tech``, ``points_star``).  Contributor notifications and the
optional CRM auto-sync run after the transition has committed and never
undo it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import IntegrationError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.auth import User
from app.models.case_study import CaseStudy
from app.models.system_config import DEFAULT_SYSTEM_CONFIG
from app.services import crm_service
from app.services.case_study_service import apply_transition, get_case_or_404
from app.services.notification import NotificationService
from app.services.system_config_service import get_int_value

logger = logging.getLogger(__name__)

POINTS_CONFIG_KEYS = {
    "APPLICATION": "points_application",
    "TECH": "points_tech",
    "STAR": "points_star",
}


def points_for_type(case_type: str) -> int:
    key = POINTS_CONFIG_KEYS[case_type]
    return get_int_value(key, int(DEFAULT_SYSTEM_CONFIG[key][0]))


def _notify_contributor(case: CaseStudy, *, type: str, title: str, message: str, link: str) -> None:
    if case.contributor_id is None:
        return
    try:
        NotificationService.create(
            user_id=case.contributor_id, type=type, title=title, message=message, link=link,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to notify contributor", extra={"case_id": case.id})


# ═════════════════════════════════════════════════════════════════════════════
# Approve / reject
# ═════════════════════════════════════════════════════════════════════════════

def approve_case_study(case_id: int, approver) -> dict:
    case = get_case_or_404(case_id)
    apply_transition(case, "approve")
    case.approver_id = approver.id
    case.approved_at = datetime.now(timezone.utc)

    points = points_for_type(case.type)
    contributor = db.session.get(User, case.contributor_id) if case.contributor_id else None
    if contributor is not None:
        contributor.total_points = (contributor.total_points or 0) + points

    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="CASE_APPROVED",
        actor_user_id=approver.id,
        details={
            "type": case.type,
            "contributor_id": case.contributor_id,
            "points_awarded": points,
        },
    )
    db.session.commit()
    logger.info(
        "Case study approved, %d point(s) awarded", points,
        extra={"case_id": case.id, "user_id": approver.id},
    )

    _notify_contributor(
        case,
        type="CASE_APPROVED",
        title="Case Study Approved!",
        message=(
            f'Your case study "{case.customer_name} - {case.industry}" has been approved '
            f"and is now live. You earned {points} point{'s' if points != 1 else ''}!"
        ),
        link=f"/case-studies/{case.id}",
    )

    result = case.to_dict()
    result["points_awarded"] = points
    result["crm_sync"] = _auto_sync(case, approver)
    return result


def _auto_sync(case: CaseStudy, user) -> dict | None:
    if not current_app.config.get("INSIGHTLY_AUTO_SYNC"):
        return None
    try:
        return crm_service.sync_case_study(case.id, user)
    except IntegrationError as exc:
        db.session.rollback()
        logger.warning("CRM auto-sync failed: %s", exc, extra={"case_id": case.id, "provider": "insightly"})
        return {"success": False, "error": str(exc)}
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("CRM auto-sync could not be recorded", extra={"case_id": case.id, "provider": "insightly"})
        return {"success": False, "error": "CRM sync could not be recorded"}


def reject_case_study(case_id: int, approver, reason: str) -> dict:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required", details={"reason": "required"})

    case = get_case_or_404(case_id)
    apply_transition(case, "reject")
    case.rejection_reason = reason
    case.rejected_at = datetime.now(timezone.utc)
    case.rejected_by = approver.id

    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="CASE_REJECTED",
        actor_user_id=approver.id,
        details={"contributor_id": case.contributor_id, "reason": reason},
    )
    db.session.commit()
    logger.info("Case study rejected", extra={"case_id": case.id, "user_id": approver.id})

    _notify_contributor(
        case,
        type="CASE_REJECTED",
        title="Case Study Needs Revision",
        message=(
            f'Your case study "{case.customer_name} - {case.industry}" requires revisions. '
            "Please review the feedback; an administrator can reopen it for editing."
        ),
        link="/case-studies?mine=true",
    )
    return case.to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Admin transitions
# ═════════════════════════════════════════════════════════════════════════════

def publish_case_study(case_id: int, admin) -> dict:
    case = get_case_or_404(case_id)
    apply_transition(case, "publish")
    case.published_at = datetime.now(timezone.utc)
    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="CASE_PUBLISHED",
        actor_user_id=admin.id,
    )
    db.session.commit()
    logger.info("Case study published", extra={"case_id": case.id, "user_id": admin.id})

    _notify_contributor(
        case,
        type="CASE_PUBLISHED",
        title="Case Study Published",
        message=f'Your case study "{case.title}" has been published.',
        link=f"/case-studies/{case.id}",
    )
    return case.to_dict()


def reopen_case_study(case_id: int, admin) -> dict:
    """Send an APPROVED or REJECTED case back to DRAFT.

    Points already awarded are not revoked.
    """
    case = get_case_or_404(case_id)
    previous = apply_transition(case, "reopen")
    case.approver_id = None
    case.approved_at = None
    case.rejected_at = None
    case.rejected_by = None
    case.rejection_reason = None
    case.submitted_at = None
    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="CASE_REOPENED",
        actor_user_id=admin.id,
        details={"previous_status": previous},
    )
    db.session.commit()
    logger.info("Case study reopened from %s", previous, extra={"case_id": case.id, "user_id": admin.id})
    return case.to_dict()


def list_pending_approvals() -> list[dict]:
    """SUBMITTED cases, oldest submission first."""
    rows = db.session.execute(
        select(CaseStudy)
        .where(CaseStudy.status == "SUBMITTED")
        .order_by(CaseStudy.submitted_at.asc(), CaseStudy.id.asc())
    ).scalars().all()
    out = []
    for case in rows:
        d = case.to_dict()
        d["contributor_name"] = case.contributor.display_name if case.contributor else None
        out.append(d)
    return out
