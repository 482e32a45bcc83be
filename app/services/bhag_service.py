"""BHAG progress service.

A solved challenge counts once: APPROVED cases are de-duplicated on
customer name, location, component and product (case-insensitive,
trimmed).  Progress is measured against the ``bhag_target`` system setting.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import select

from app.models import db
from app.models.case_study import CASE_TYPES, CaseStudy
from app.services.system_config_service import get_bhag_target

logger = logging.getLogger(__name__)

UNQUALIFIED = "UNQUALIFIED"


def unique_key(case: CaseStudy) -> str:
    parts = (case.customer_name, case.location, case.component_workpiece, case.wa_product)
    return "|".join((p or "").strip().lower() for p in parts)


def _breakdown(cases, label_of, key_name: str) -> list[dict]:
    groups: dict[str, set[str]] = defaultdict(set)
    for case in cases:
        groups[label_of(case)].add(unique_key(case))
    rows = [{key_name: label, "uniqueCount": len(keys)} for label, keys in groups.items()]
    return sorted(rows, key=lambda r: (-r["uniqueCount"], str(r[key_name])))


def get_bhag_progress() -> dict:
    cases = db.session.execute(
        select(CaseStudy).where(CaseStudy.status == "APPROVED")
    ).scalars().all()

    unique = {unique_key(c) for c in cases}
    target = get_bhag_target()
    percentage = min(100, round(len(unique) / target * 100))

    by_type = {t: set() for t in CASE_TYPES}
    for case in cases:
        by_type[case.type].add(unique_key(case))

    return {
        "uniqueCount": len(unique),
        "totalCount": len(cases),
        "target": target,
        "percentage": percentage,
        "byType": {t: len(keys) for t, keys in by_type.items()},
        "byRegion": _breakdown(cases, lambda c: c.location, "region"),
        "byIndustry": _breakdown(cases, lambda c: c.industry, "industry"),
        "byQualifier": _breakdown(cases, lambda c: c.qualifier_type or UNQUALIFIED, "qualifierType"),
    }
