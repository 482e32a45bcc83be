"""
User Service — admin user management: listing, creation, role changes.

Login is delegated to the identity provider; this module only maintains the
user rows that bearer tokens resolve to.
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.auth import ROLE_CONTRIBUTOR, ROLES, User

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    try:
        return validate_email((email or "").strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"})


def _check_role(role: str) -> str:
    role = (role or "").strip().upper()
    if role not in ROLES:
        raise ValidationError(f"Invalid role: {role}", details={"role": f"must be one of {', '.join(ROLES)}"})
    return role


def get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def get_user_by_email(email: str) -> User | None:
    return db.session.execute(
        select(User).where(func.lower(User.email) == (email or "").strip().lower())
    ).scalar_one_or_none()


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(
    email: str,
    name: str | None = None,
    role: str = ROLE_CONTRIBUTOR,
    region: str | None = None,
    created_by=None,
) -> User:
    """Create a user. Emails are unique case-insensitively."""
    email = _normalize_email(email)
    role = _check_role(role)
    if get_user_by_email(email) is not None:
        raise ConflictError("User", "email", email)

    user = User(email=email, name=(name or "").strip() or None, role=role, region=region)
    db.session.add(user)
    db.session.flush()
    write_audit(
        entity_type="user",
        entity_id=user.id,
        action="USER_CREATED",
        actor_user_id=created_by.id if created_by else None,
        details={"email": email, "role": role},
    )
    db.session.commit()
    logger.info("User created with role %s", role, extra={"user_id": user.id})
    return user


def change_role(user_id: int, role: str, changed_by) -> User:
    user = get_user_or_404(user_id)
    role = _check_role(role)
    if user.id == changed_by.id and role != user.role:
        raise ValidationError("You cannot change your own role")

    previous = user.role
    if previous == role:
        return user
    user.role = role
    write_audit(
        entity_type="user",
        entity_id=user.id,
        action="USER_ROLE_CHANGED",
        actor_user_id=changed_by.id,
        details={"from": previous, "to": role},
    )
    db.session.commit()
    logger.info("User role changed %s -> %s", previous, role, extra={"user_id": user.id})
    return user


def deactivate_user(user_id: int, deactivated_by) -> User:
    """Deactivate a user; their tokens stop resolving."""
    user = get_user_or_404(user_id)
    if user.id == deactivated_by.id:
        raise ValidationError("You cannot deactivate your own account")
    if user.is_active:
        user.is_active = False
        write_audit(
            entity_type="user",
            entity_id=user.id,
            action="USER_DEACTIVATED",
            actor_user_id=deactivated_by.id,
        )
        db.session.commit()
        logger.info("User deactivated", extra={"user_id": user.id})
    return user


def list_users(role: str = None, active: bool | None = None, q: str = None,
               page: int = 1, per_page: int = 50) -> dict:
    """List users with pagination."""
    stmt = select(User)
    if role:
        stmt = stmt.where(User.role == _check_role(role))
    if active is not None:
        stmt = stmt.where(User.is_active.is_(active))
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(User.email.ilike(like) | User.name.ilike(like))

    total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    per_page = max(1, min(per_page, 100))
    page = max(1, page)
    users = db.session.execute(
        stmt.order_by(User.id).offset((page - 1) * per_page).limit(per_page)
    ).scalars()
    return {
        "items": [u.to_dict() for u in users],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
    }


def leaderboard(limit: int = 10) -> list[dict]:
    """Active contributors ranked by points."""
    users = db.session.execute(
        select(User)
        .where(User.is_active.is_(True), User.total_points > 0)
        .order_by(User.total_points.desc(), User.id)
        .limit(limit)
    ).scalars()
    return [
        {"id": u.id, "name": u.display_name, "region": u.region, "total_points": u.total_points}
        for u in users
    ]
