"""
Case Study Builder
Notification Service.

Central service for creating, broadcasting and querying in-app
notifications.  Creation helpers only ``flush``: the caller's transaction
decides whether the notification is kept.
"""

from datetime import datetime, timezone

from app.models import db
from app.models.auth import User
from app.models.notification import Notification


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, title, message="", type="SYSTEM", link=None):
        """
        Create a single notification record.

        Returns:
            The flushed Notification instance.
        """
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link=link,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def notify_role(roles, *, title, message="", type="SYSTEM", link=None,
                    exclude_user_id=None):
        """
        Send one notification to every active user holding any of ``roles``.

        Returns:
            List of created Notification instances.
        """
        q = User.query.filter(User.role.in_(list(roles)), User.is_active.is_(True))
        if exclude_user_id is not None:
            q = q.filter(User.id != exclude_user_id)
        notifications = []
        for user in q.all():
            notif = Notification(
                user_id=user.id,
                type=type,
                title=title,
                message=message,
                link=link,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.flush()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a user, newest first.
        """
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark a single notification as read. Returns None if not the user's."""
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.user_id != user_id:
            return None
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all notifications for a user as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count
