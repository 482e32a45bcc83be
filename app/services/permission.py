"""
Case study ownership rules.

Route decorators (``@require_roles``) decide *which roles* may reach an
endpoint; this module decides whether a given user may act on a given
case study once there.

Usage:
    from app.services.permission import ensure_can_edit_case

    ensure_can_edit_case(case, user)   # raises ForbiddenError
"""

from app.core.exceptions import ForbiddenError
from app.models.auth import APPROVERS, EXPORTERS, ROLE_ADMIN

# Statuses in which only approvers/admins may change a case
LOCKED_STATUSES = frozenset({"APPROVED", "PUBLISHED"})


def is_owner(case, user) -> bool:
    return user is not None and case.contributor_id == user.id


def can_edit_case(case, user) -> bool:
    """Owner, approver or admin; APPROVED/PUBLISHED cases are approver/admin only."""
    if user is None:
        return False
    if user.role in APPROVERS:
        return True
    if case.status in LOCKED_STATUSES:
        return False
    return is_owner(case, user) and user.can("edit:own_cases")


def can_delete_case(case, user) -> bool:
    if user is None:
        return False
    if user.role == ROLE_ADMIN:
        return True
    return is_owner(case, user) and user.can("delete:own_cases")


def can_export_case(case, user) -> bool:
    if user is None:
        return False
    return user.role in EXPORTERS or is_owner(case, user)


def ensure_can_edit_case(case, user) -> None:
    if not can_edit_case(case, user):
        raise ForbiddenError()


def ensure_can_delete_case(case, user) -> None:
    if not can_delete_case(case, user):
        raise ForbiddenError()


def ensure_can_export_case(case, user) -> None:
    if not can_export_case(case, user):
        raise ForbiddenError()
