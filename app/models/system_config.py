"""
Case Study Builder
System configuration model.

Models:
    - SystemConfig: admin-managed key/value settings (BHAG target, point awards, ...)
"""

from datetime import datetime, timezone

from app.models import db


# key → (default value, description)
DEFAULT_SYSTEM_CONFIG = {
    "bhag_target": ("1000", "Unique approved case studies targeted by the BHAG"),
    "points_application": ("1", "Points awarded for an approved APPLICATION case"),
    "points_tech": ("2", "Points awarded for an approved TECH case"),
    "points_star": ("3", "Points awarded for an approved STAR case"),
}


class SystemConfig(db.Model):
    __tablename__ = "system_configs"

    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    description = db.Column(db.String(300))
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value,
            "description": self.description,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<SystemConfig {self.key}={self.value!r}>"
