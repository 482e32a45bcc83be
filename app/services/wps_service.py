"""Welding procedure specification (WPS) service.

One WeldingProcedure per TECH or STAR case study, upserted by case.  Values
are free text; only ``wa_product_name`` and ``welding_process`` are
required.
"""

from __future__ import annotations

import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.case_study import WPS_FIELDS, WPS_REQUIRED_FIELDS, WeldingProcedure
from app.services.case_study_service import get_case_or_404
from app.services.permission import ensure_can_edit_case

logger = logging.getLogger(__name__)

WPS_CASE_TYPES = ("TECH", "STAR")


def _clean_layers(value) -> list[dict]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(layer, dict) for layer in value):
        raise ValidationError("layers must be a list of objects", details={"layers": "invalid"})
    return value


def save_wps(case_id: int, data: dict, user) -> dict:
    """Create or update the case's WPS.

    Raises:
        NotFoundError: unknown case.
        ForbiddenError: caller may not edit the case.
        ValidationError: APPLICATION case or missing required fields.
    """
    case = get_case_or_404(case_id)
    ensure_can_edit_case(case, user)
    if case.type not in WPS_CASE_TYPES:
        raise ValidationError("Welding procedures are only available for TECH and STAR case studies")

    wps = case.welding_procedure
    errors = {}
    for field in WPS_REQUIRED_FIELDS:
        value = data.get(field, getattr(wps, field) if wps else None)
        if value is None or not str(value).strip():
            errors[field] = f"{field} is required"
    if errors:
        raise ValidationError("Invalid welding procedure", details=errors)

    created = wps is None
    if created:
        wps = WeldingProcedure(case_study_id=case.id)
        db.session.add(wps)
        case.welding_procedure = wps

    for field in WPS_FIELDS:
        if field in data:
            value = data[field]
            setattr(wps, field, str(value).strip() if value not in (None, "") else None)
    if "layers" in data:
        wps.layers = _clean_layers(data["layers"])

    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="WPS_SAVED",
        actor_user_id=user.id,
        details={"created": created},
    )
    db.session.commit()
    logger.info("WPS %s", "created" if created else "updated", extra={"case_id": case.id, "user_id": user.id})
    return wps.to_dict()


def get_wps(case_id: int) -> dict | None:
    case = get_case_or_404(case_id)
    return case.welding_procedure.to_dict() if case.welding_procedure else None


def delete_wps(case_id: int, user) -> None:
    case = get_case_or_404(case_id)
    ensure_can_edit_case(case, user)
    if case.welding_procedure is None:
        raise NotFoundError(resource="WeldingProcedure", resource_id=case_id)
    db.session.delete(case.welding_procedure)
    case.welding_procedure = None
    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="WPS_DELETED",
        actor_user_id=user.id,
    )
    db.session.commit()
    logger.info("WPS deleted", extra={"case_id": case.id, "user_id": user.id})
