"""
Case Study Builder
GDPR domain model.

Models:
    - DeletionRequest: right-to-erasure request raised by a user, processed by an admin
"""

from datetime import datetime, timezone

from app.models import db


DELETION_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "REJECTED", "CANCELLED")
OPEN_DELETION_STATUSES = ("PENDING", "PROCESSING")
CLOSED_DELETION_STATUSES = ("COMPLETED", "CANCELLED")


class DeletionRequest(db.Model):
    __tablename__ = "deletion_requests"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    reason = db.Column(db.Text)
    requested_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    processed_at = db.Column(db.DateTime(timezone=True))
    processed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    rejection_reason = db.Column(db.Text)

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_email": self.user.email if self.user else None,
            "status": self.status,
            "reason": self.reason,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "processed_by": self.processed_by,
            "rejection_reason": self.rejection_reason,
        }

    def __repr__(self):
        return f"<DeletionRequest {self.id}: user={self.user_id} {self.status}>"
