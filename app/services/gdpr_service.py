"""GDPR service: right-to-erasure requests and data-portability export.

A user raises a deletion request; an admin processes or rejects it.
Processing anonymises the user row in place (case studies are kept for the
business record, still linked to the anonymised user) and deletes the
user's notifications.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, select

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.auth import User
from app.models.case_study import CaseStudy
from app.models.gdpr import (
    CLOSED_DELETION_STATUSES,
    DELETION_STATUSES,
    OPEN_DELETION_STATUSES,
    DeletionRequest,
)
from app.models.notification import Notification

logger = logging.getLogger(__name__)

ANONYMIZED_NAME = "Deleted User"
ANONYMIZED_EMAIL_DOMAIN = "anonymized.local"


def _get_request(request_id: int) -> DeletionRequest:
    req = db.session.get(DeletionRequest, request_id)
    if req is None:
        raise NotFoundError(resource="DeletionRequest", resource_id=request_id)
    return req


def create_deletion_request(user, reason: str | None = None) -> dict:
    """Open a deletion request; a user may have only one open at a time."""
    open_request = db.session.execute(
        select(DeletionRequest).where(
            DeletionRequest.user_id == user.id,
            DeletionRequest.status.in_(OPEN_DELETION_STATUSES),
        )
    ).scalar_one_or_none()
    if open_request is not None:
        raise ConflictError("DeletionRequest", "user_id", str(user.id))

    req = DeletionRequest(user_id=user.id, reason=(reason or "").strip() or None)
    db.session.add(req)
    db.session.flush()
    write_audit(
        entity_type="deletion_request",
        entity_id=req.id,
        action="GDPR_DELETION_REQUESTED",
        actor_user_id=user.id,
    )
    db.session.commit()
    logger.info("GDPR deletion requested", extra={"user_id": user.id})
    return req.to_dict()


def list_deletion_requests(status: str | None = None) -> list[dict]:
    stmt = select(DeletionRequest).order_by(DeletionRequest.requested_at.desc(), DeletionRequest.id.desc())
    if status:
        status = status.upper()
        if status not in DELETION_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}", details={"status": "invalid"})
        stmt = stmt.where(DeletionRequest.status == status)
    return [r.to_dict() for r in db.session.execute(stmt).scalars()]


def process_deletion_request(request_id: int, admin) -> dict:
    """Anonymise the requesting user and close the request."""
    req = _get_request(request_id)
    if req.status not in OPEN_DELETION_STATUSES:
        raise ValidationError(f"Request already {req.status.lower()}")

    user = db.session.get(User, req.user_id)
    deleted_notifications = db.session.execute(
        delete(Notification).where(Notification.user_id == req.user_id)
    ).rowcount
    kept_cases = db.session.execute(
        select(func.count(CaseStudy.id)).where(CaseStudy.contributor_id == req.user_id)
    ).scalar_one()

    if user is not None:
        user.name = ANONYMIZED_NAME
        user.email = f"deleted-{user.id}@{ANONYMIZED_EMAIL_DOMAIN}"
        user.region = None
        user.is_active = False

    req.status = "COMPLETED"
    req.processed_at = datetime.now(timezone.utc)
    req.processed_by = admin.id
    summary = {"notifications_deleted": deleted_notifications, "case_studies_retained": kept_cases}
    write_audit(
        entity_type="deletion_request",
        entity_id=req.id,
        action="GDPR_DELETION_PROCESSED",
        actor_user_id=admin.id,
        details={"user_id": req.user_id, **summary},
    )
    db.session.commit()
    logger.info("GDPR deletion processed", extra={"user_id": req.user_id})
    result = req.to_dict()
    result["summary"] = summary
    return result


def reject_deletion_request(request_id: int, admin, reason: str) -> dict:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required", details={"reason": "required"})
    req = _get_request(request_id)
    if req.status in CLOSED_DELETION_STATUSES:
        raise ValidationError("Request already processed")

    previous = req.status
    req.status = "REJECTED"
    req.processed_at = datetime.now(timezone.utc)
    req.processed_by = admin.id
    req.rejection_reason = reason
    write_audit(
        entity_type="deletion_request",
        entity_id=req.id,
        action="GDPR_DELETION_REJECTED",
        actor_user_id=admin.id,
        details={"previous_status": previous, "reason": reason},
    )
    db.session.commit()
    return req.to_dict()


def cancel_deletion_request(request_id: int, user) -> dict:
    """The requesting user may withdraw a request while it is PENDING."""
    req = _get_request(request_id)
    if req.user_id != user.id:
        raise ForbiddenError()
    if req.status != "PENDING":
        raise ValidationError("Only pending requests can be cancelled")

    req.status = "CANCELLED"
    req.processed_at = datetime.now(timezone.utc)
    write_audit(
        entity_type="deletion_request",
        entity_id=req.id,
        action="GDPR_DELETION_CANCELLED",
        actor_user_id=user.id,
    )
    db.session.commit()
    return req.to_dict()


def export_user_data(user) -> dict:
    """Everything held about ``user``, for data portability."""
    cases = db.session.execute(
        select(CaseStudy).where(CaseStudy.contributor_id == user.id).order_by(CaseStudy.id)
    ).scalars()
    notifications = db.session.execute(
        select(Notification).where(Notification.user_id == user.id).order_by(Notification.id)
    ).scalars()
    requests = db.session.execute(
        select(DeletionRequest).where(DeletionRequest.user_id == user.id).order_by(DeletionRequest.id)
    ).scalars()

    data = {
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "profile": user.to_dict(include_permissions=True),
        "case_studies": [c.to_dict(include_children=True) for c in cases],
        "notifications": [n.to_dict() for n in notifications],
        "deletion_requests": [r.to_dict() for r in requests],
    }
    write_audit(
        entity_type="user",
        entity_id=user.id,
        action="GDPR_DATA_EXPORTED",
        actor_user_id=user.id,
    )
    db.session.commit()
    return data
