"""System configuration service.

Admin-managed key/value settings.  Values are stored as text; typed readers
(``get_int_value``) fall back to the caller's default on missing or
malformed values so a bad edit never breaks approvals or BHAG reporting.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.system_config import DEFAULT_SYSTEM_CONFIG, SystemConfig

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 100


def get_config(key: str) -> SystemConfig | None:
    return db.session.get(SystemConfig, key)


def get_value(key: str, default: str | None = None) -> str | None:
    cfg = get_config(key)
    return cfg.value if cfg is not None else default


def get_int_value(key: str, default: int) -> int:
    raw = get_value(key)
    if raw is None:
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        logger.warning("System config %s has non-integer value %r; using %s", key, raw, default)
        return default


def list_configs() -> list[dict]:
    rows = db.session.execute(select(SystemConfig).order_by(SystemConfig.key)).scalars()
    return [c.to_dict() for c in rows]


def set_config(key: str, value, user, description: str | None = None) -> dict:
    """Create or update a setting and record who changed it.

    Raises:
        ValidationError: empty key, over-long key, or missing value.
    """
    key = (key or "").strip()
    if not key:
        raise ValidationError("key is required")
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(f"key must be ≤ {MAX_KEY_LENGTH} characters")
    if value is None:
        raise ValidationError("value is required")

    cfg = get_config(key)
    old_value = cfg.value if cfg is not None else None
    if cfg is None:
        cfg = SystemConfig(key=key)
        db.session.add(cfg)
    cfg.value = str(value)
    if description is not None:
        cfg.description = description
    elif cfg.description is None and key in DEFAULT_SYSTEM_CONFIG:
        cfg.description = DEFAULT_SYSTEM_CONFIG[key][1]
    cfg.updated_by = user.id if user is not None else None
    cfg.updated_at = datetime.now(timezone.utc)

    write_audit(
        entity_type="system_config",
        entity_id=key,
        action="CONFIG_UPDATED",
        actor_user_id=cfg.updated_by,
        details={"old_value": old_value, "new_value": cfg.value},
    )
    db.session.commit()
    logger.info("System config %s updated", key, extra={"user_id": cfg.updated_by})
    return cfg.to_dict()


def get_bhag_target() -> int:
    default = int(DEFAULT_SYSTEM_CONFIG["bhag_target"][0])
    target = get_int_value("bhag_target", default)
    return target if target > 0 else default


def seed_defaults() -> int:
    """Insert any missing default settings. Returns the number created."""
    created = 0
    for key, (value, description) in DEFAULT_SYSTEM_CONFIG.items():
        if get_config(key) is None:
            db.session.add(SystemConfig(key=key, value=value, description=description))
            created += 1
    return created
