"""CRM (Insightly) sync service.

Maps case studies onto Insightly opportunities through the gateway in
``app.integrations.insightly_gateway``.  Explicitly requested operations
raise IntegrationError on a gateway failure; ``batch_sync`` tallies
per-case failures and carries on.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from app.core.exceptions import IntegrationError, ValidationError
from app.integrations import insightly_gateway as ig
from app.models import db
from app.models.audit import write_audit
from app.models.case_study import CaseStudy
from app.services.case_study_service import get_case_or_404
from app.services.pdf_export_service import export_case_study_pdf, pdf_file_name

logger = logging.getLogger(__name__)

PROVIDER = "insightly"
PDF_PUSH_STATUSES = ("APPROVED", "PUBLISHED")
BATCH_SYNC_LIMIT = 50


def _gateway() -> ig.InsightlyGateway:
    return ig.insightly_gateway


def build_opportunity_payload(case: CaseStudy, organization_id: int | None) -> dict:
    details = "\n".join([
        f"Case Study ID: {case.id}",
        f"Type: {case.type}",
        f"Industry: {case.industry}",
        f"Location: {case.location}",
        f"Product: {case.wa_product}",
        f"Status: {case.status}",
    ])
    custom_fields = {
        "CaseStudyId": str(case.id),
        "Industry": case.industry,
        "Location": case.location,
    }
    return {
        "OPPORTUNITY_NAME": f"Case Study: {case.customer_name} - {case.component_workpiece}",
        "ORGANISATION_ID": organization_id,
        "PROBABILITY": 100 if case.status == "APPROVED" else 50,
        "BID_AMOUNT": float(case.solution_value_revenue or 0),
        "OPPORTUNITY_STATE": "Open",
        "PIPELINE_ID": None,
        "STAGE_ID": None,
        "OPPORTUNITY_DETAILS": details,
        "CUSTOMFIELDS": [
            {"CUSTOM_FIELD_ID": key, "FIELD_VALUE": value} for key, value in custom_fields.items()
        ],
    }


def _raise_on_failure(result, message: str, case_id: int | None = None) -> None:
    if result.ok:
        return
    logger.warning("%s: %s", message, result.error, extra={"case_id": case_id, "provider": PROVIDER})
    raise IntegrationError(PROVIDER, f"{message}: {result.error}", status_code=result.status_code)


# ═════════════════════════════════════════════════════════════════════════════
# Sync
# ═════════════════════════════════════════════════════════════════════════════

def sync_case_study(case_id: int, user) -> dict:
    """Create or update the case's opportunity and record the link.

    Raises:
        NotFoundError: unknown case.
        IntegrationError: the gateway call failed.
    """
    case = get_case_or_404(case_id)
    gateway = _gateway()

    orgs = gateway.search_organizations(case.customer_name)
    _raise_on_failure(orgs, "Organisation lookup failed", case.id)
    organization_id = orgs.data[0]["id"] if orgs.data else None

    payload = build_opportunity_payload(case, organization_id)
    created = case.insightly_opportunity_id is None
    if created:
        result = gateway.create_opportunity(payload)
        _raise_on_failure(result, "Failed to create opportunity", case.id)
        opportunity_id = (result.data or {}).get("OPPORTUNITY_ID")
        if not opportunity_id:
            raise IntegrationError(PROVIDER, "Opportunity response missing OPPORTUNITY_ID")
    else:
        opportunity_id = case.insightly_opportunity_id
        result = gateway.update_opportunity(opportunity_id, payload)
        _raise_on_failure(result, "Failed to update opportunity", case.id)

    case.insightly_opportunity_id = int(opportunity_id)
    case.insightly_synced_at = datetime.now(timezone.utc)
    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="CRM_SYNC",
        actor_user_id=user.id if user else None,
        details={
            "opportunity_id": case.insightly_opportunity_id,
            "created": created,
            "mock": result.mock,
        },
    )
    db.session.commit()
    logger.info(
        "Case study %s opportunity %s", "created" if created else "updated", opportunity_id,
        extra={"case_id": case.id, "provider": PROVIDER},
    )
    return {
        "success": True,
        "case_study_id": case.id,
        "opportunity_id": case.insightly_opportunity_id,
        "organization_id": organization_id,
        "created": created,
        "synced_at": case.insightly_synced_at.isoformat(),
        "mock": result.mock,
    }


def push_pdf_to_crm(case_id: int, user) -> dict:
    """Sync the case, then attach its PDF report to the opportunity."""
    case = get_case_or_404(case_id)
    if case.status not in PDF_PUSH_STATUSES:
        raise ValidationError(
            "Only approved or published case studies can be pushed to the CRM",
            details={"status": case.status},
        )

    sync = sync_case_study(case.id, user)
    pdf = export_case_study_pdf(case, user)
    result = _gateway().attach_file(sync["opportunity_id"], pdf, pdf_file_name(case))
    _raise_on_failure(result, "Failed to attach PDF", case.id)

    logger.info("PDF pushed to CRM", extra={"case_id": case.id, "provider": PROVIDER})
    return {
        **sync,
        "pdf_attached": True,
        "file_id": (result.data or {}).get("FILE_ATTACHMENT_ID"),
    }


def batch_sync(user, limit: int = BATCH_SYNC_LIMIT) -> dict:
    """Sync APPROVED cases that have no opportunity yet."""
    limit = max(1, min(int(limit), BATCH_SYNC_LIMIT))
    ids = db.session.execute(
        select(CaseStudy.id)
        .where(CaseStudy.status == "APPROVED", CaseStudy.insightly_opportunity_id.is_(None))
        .order_by(CaseStudy.approved_at.asc(), CaseStudy.id.asc())
        .limit(limit)
    ).scalars().all()

    synced, errors = 0, []
    for case_id in ids:
        try:
            sync_case_study(case_id, user)
            synced += 1
        except IntegrationError as exc:
            db.session.rollback()
            errors.append({"case_study_id": case_id, "error": str(exc)})

    logger.info("CRM batch sync: %d synced, %d failed", synced, len(errors), extra={"provider": PROVIDER})
    return {"total": len(ids), "synced": synced, "failed": len(errors), "errors": errors}


def get_sync_status(case_id: int) -> dict:
    case = get_case_or_404(case_id)
    return {
        "case_study_id": case.id,
        "synced": case.insightly_opportunity_id is not None,
        "opportunity_id": case.insightly_opportunity_id,
        "synced_at": case.insightly_synced_at.isoformat() if case.insightly_synced_at else None,
        "configured": _gateway().configured,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Lookups
# ═════════════════════════════════════════════════════════════════════════════

def search_organizations(query: str) -> list[dict]:
    result = _gateway().search_organizations(query)
    _raise_on_failure(result, "Organisation search failed")
    return result.data or []


def search_contacts(query: str) -> list[dict]:
    result = _gateway().search_contacts(query)
    _raise_on_failure(result, "Contact search failed")
    return result.data or []


def test_connection() -> dict:
    gateway = _gateway()
    result = gateway.test_connection()
    if result.ok:
        return {"success": True, "configured": True, "message": "Successfully connected to Insightly"}
    return {
        "success": False,
        "configured": gateway.configured,
        "message": result.error if not gateway.configured else f"Connection failed: {result.error}",
    }
