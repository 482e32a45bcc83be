"""Case study translation service.

Narrative fields (problem description, previous solution, technical
advantages, solution) are translated through the TranslationGateway and
stored one row per (case, language, field) in ``case_study_translations``.

``auto_translate_on_submit`` runs after a submission has committed.  It is
best-effort: any failure is logged and the case stays SUBMITTED.
``translate_case_study`` is the explicit, on-demand variant and raises
IntegrationError when nothing could be translated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from app.core.exceptions import IntegrationError, NotFoundError, ValidationError
from app.integrations import translation_gateway as tg
from app.models import db
from app.models.audit import write_audit
from app.models.case_study import TRANSLATABLE_FIELDS, CaseStudy, CaseStudyTranslation

logger = logging.getLogger(__name__)

DEFAULT_TARGET_LANGUAGE = "en"


def _gateway():
    return tg.translation_gateway


def _get_case(case_id: int) -> CaseStudy:
    case = db.session.get(CaseStudy, case_id)
    if case is None:
        raise NotFoundError(resource="CaseStudy", resource_id=case_id)
    return case


def _store_translation(case: CaseStudy, language: str, field: str, text: str, provider: str) -> None:
    row = db.session.execute(
        select(CaseStudyTranslation).where(
            CaseStudyTranslation.case_study_id == case.id,
            CaseStudyTranslation.language == language,
            CaseStudyTranslation.field_name == field,
        )
    ).scalar_one_or_none()
    if row is None:
        row = CaseStudyTranslation(case_study_id=case.id, language=language, field_name=field)
        db.session.add(row)
    row.translated_text = text
    row.provider = provider
    row.translated_at = datetime.now(timezone.utc)


def _translate_fields(case: CaseStudy, target: str) -> dict:
    """Translate every non-empty narrative field; failed fields are skipped.

    Returns ``{"fields": {field: text}, "provider": str | None, "errors": {field: msg}}``.
    Rows are added to the session but not committed.
    """
    gateway = _gateway()
    translated: dict[str, str] = {}
    errors: dict[str, str] = {}
    provider = None
    for field in TRANSLATABLE_FIELDS:
        text = getattr(case, field)
        if not text or not text.strip():
            continue
        result = gateway.translate(text, target, case.original_language)
        if result.success and result.translated_text:
            translated[field] = result.translated_text
            provider = result.provider
            _store_translation(case, target, field, result.translated_text, result.provider)
        else:
            errors[field] = result.error or "Translation failed"
    return {"fields": translated, "provider": provider, "errors": errors}


# ═════════════════════════════════════════════════════════════════════════════
# Submit-time workflow
# ═════════════════════════════════════════════════════════════════════════════

def auto_translate_on_submit(case: CaseStudy) -> dict:
    """Detect the case language and store an English translation if needed.

    Idempotent: a case with ``translation_available`` set is left alone and
    the provider is not called.  Never raises.

    Returns:
        {"original_language": str | None, "was_translated": bool, "error"?: str}
    """
    if case.translation_available:
        return {"original_language": case.original_language, "was_translated": False}

    try:
        detection = _gateway().detect_language(case.problem_description or "")
        language = (
            detection.detected_language
            if detection.success and detection.detected_language
            else DEFAULT_TARGET_LANGUAGE
        )
        case.original_language = language

        if language == DEFAULT_TARGET_LANGUAGE:
            db.session.commit()
            logger.info("Case already in English, no translation needed", extra={"case_id": case.id})
            return {"original_language": language, "was_translated": False}

        outcome = _translate_fields(case, DEFAULT_TARGET_LANGUAGE)
        if not outcome["fields"]:
            db.session.commit()
            logger.warning(
                "Auto-translation produced no fields: %s", outcome["errors"],
                extra={"case_id": case.id},
            )
            return {
                "original_language": language,
                "was_translated": False,
                "error": "Translation failed",
            }

        case.translation_available = True
        db.session.commit()
        logger.info(
            "Auto-translated %d field(s) from %s", len(outcome["fields"]), language,
            extra={"case_id": case.id, "provider": outcome["provider"]},
        )
        return {"original_language": language, "was_translated": True}
    except Exception:
        db.session.rollback()
        logger.exception("Auto-translation failed", extra={"case_id": case.id})
        return {
            "original_language": case.original_language,
            "was_translated": False,
            "error": "Auto-translation failed",
        }


# ═════════════════════════════════════════════════════════════════════════════
# On-demand operations
# ═════════════════════════════════════════════════════════════════════════════

def translate_case_study(case_id: int, target_language: str, user=None) -> dict:
    """Translate a case's narrative fields into ``target_language``.

    Raises:
        NotFoundError: unknown case.
        ValidationError: unsupported language.
        IntegrationError: no field could be translated.
    """
    target = (target_language or "").strip().lower()
    if target not in tg.SUPPORTED_LANGUAGES:
        raise ValidationError(
            f"Unsupported language: {target_language!r}",
            details={"target_language": "unsupported"},
        )
    case = _get_case(case_id)

    outcome = _translate_fields(case, target)
    if not outcome["fields"]:
        db.session.rollback()
        raise IntegrationError(_gateway().provider_name, "Failed to translate case study")

    if target == DEFAULT_TARGET_LANGUAGE:
        case.translation_available = True
    write_audit(
        entity_type="case_study",
        entity_id=case.id,
        action="CASE_TRANSLATED",
        actor_user_id=user.id if user is not None else None,
        details={
            "language": target,
            "provider": outcome["provider"],
            "fields": sorted(outcome["fields"]),
        },
    )
    db.session.commit()
    logger.info(
        "Case translated to %s", target,
        extra={"case_id": case.id, "provider": outcome["provider"]},
    )
    return {
        "case_study_id": case.id,
        "target_language": target,
        "language_name": tg.SUPPORTED_LANGUAGES[target],
        "provider": outcome["provider"],
        "translated_fields": outcome["fields"],
        "failed_fields": outcome["errors"],
    }


def get_translation(case_id: int, language: str) -> dict:
    case = _get_case(case_id)
    language = (language or "").strip().lower()
    rows = [t for t in case.translations if t.language == language]
    if not rows:
        return {"case_study_id": case.id, "language": language, "has_translation": False}
    return {
        "case_study_id": case.id,
        "language": language,
        "has_translation": True,
        "provider": rows[0].provider,
        "translated_at": max(r.to_dict()["translated_at"] or "" for r in rows) or None,
        "fields": {r.field_name: r.translated_text for r in rows},
    }


def get_display_content(case: CaseStudy, language: str = DEFAULT_TARGET_LANGUAGE) -> dict:
    """Narrative fields in ``language`` where stored, originals otherwise."""
    stored = case.translations_by_language().get(language, {})
    content = {}
    for field in TRANSLATABLE_FIELDS:
        content[field] = stored.get(field) or getattr(case, field)
    return {
        "content": content,
        "is_translated": bool(stored),
        "language": language if stored else (case.original_language or DEFAULT_TARGET_LANGUAGE),
        "original_language": case.original_language or DEFAULT_TARGET_LANGUAGE,
    }


def detect_language(text: str) -> dict:
    return _gateway().detect_language(text).to_dict()


def translate_text(text: str, target_language: str, source_language: str | None = None) -> dict:
    if target_language not in tg.SUPPORTED_LANGUAGES:
        raise ValidationError(
            f"Unsupported language: {target_language!r}",
            details={"target_language": "unsupported"},
        )
    return _gateway().translate(text, target_language, source_language).to_dict()


def batch_translate(texts: list[str], target_language: str) -> list[dict]:
    if target_language not in tg.SUPPORTED_LANGUAGES:
        raise ValidationError(
            f"Unsupported language: {target_language!r}",
            details={"target_language": "unsupported"},
        )
    return [r.to_dict() for r in _gateway().batch_translate(texts, target_language)]


def supported_languages() -> list[dict]:
    return [{"code": code, "name": name} for code, name in tg.SUPPORTED_LANGUAGES.items()]
