"""
Capability-set decorator for route protection.

Each handler declares the roles it accepts exactly once, at entry:

    from app.models.auth import APPROVERS

    @approval_bp.route("/approvals/<int:case_id>/approve", methods=["POST"])
    @require_roles(*APPROVERS)
    def approve(case_id):
        ...

No user on the request → 401 ``{"error": "Unauthorized"}``.
User whose role is outside the set → 403 ``{"error": "Forbidden"}``.
Ownership rules (owner-or-approver) are enforced in the service layer.
"""

import functools
import logging

from flask import g, jsonify

logger = logging.getLogger(__name__)


def current_user():
    """Return the authenticated User for this request, or None."""
    return getattr(g, "current_user", None)


def require_roles(*roles: str):
    """
    Decorator: require an authenticated user whose role is one of ``roles``.

    Args:
        roles: Accepted role names, usually a capability set from
               ``app.models.auth`` unpacked with ``*``.
    """
    allowed = frozenset(roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return jsonify({"error": "Unauthorized"}), 401

            if user.role not in allowed:
                logger.warning(
                    "User %d denied: role '%s' not in %s on %s",
                    user.id, user.role, sorted(allowed), f.__name__,
                )
                return jsonify({"error": "Forbidden"}), 403

            return f(*args, **kwargs)
        return decorated
    return decorator
