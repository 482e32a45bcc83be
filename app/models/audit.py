"""
Case Study Builder
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for lifecycle events.
"""

import json
from datetime import UTC, datetime

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ACTIONS = {
    # Case study lifecycle
    "CASE_CREATED",
    "CASE_UPDATED",
    "CASE_DELETED",
    "CASE_SUBMITTED",
    "CASE_APPROVED",
    "CASE_REJECTED",
    "CASE_PUBLISHED",
    "CASE_REOPENED",
    "CASE_TRANSLATED",
    # Sub-records
    "WPS_SAVED",
    "WPS_DELETED",
    "COST_CALCULATION_SAVED",
    # Batch / export / integrations
    "BULK_IMPORT",
    "PDF_EXPORTED",
    "CRM_SYNC",
    # Administration
    "CONFIG_UPDATED",
    "USER_CREATED",
    "USER_ROLE_CHANGED",
    "USER_DEACTIVATED",
    # GDPR
    "GDPR_DELETION_REQUESTED",
    "GDPR_DELETION_PROCESSED",
    "GDPR_DELETION_REJECTED",
    "GDPR_DELETION_CANCELLED",
    "GDPR_DATA_EXPORTED",
}


class AuditLog(db.Model):
    """
    Immutable audit trail for every lifecycle event.

    One row per action.  ``details_json`` carries the event payload
    (changed fields, import tallies, provider names, ...).
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor_user_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="case_study | user | system_config | deletion_request | …",
    )
    entity_id = db.Column(db.String(64), nullable=False)

    action = db.Column(db.String(60), nullable=False)
    actor_user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="NULL for system-initiated entries",
    )

    details_json = db.Column(db.Text, default="{}")

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def details(self) -> dict:
        """Deserialise *details_json* to a Python dict."""
        try:
            return json.loads(self.details_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor_user_id: int | None = None,
    details: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_user_id=actor_user_id,
        details_json=json.dumps(details or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
