"""
Auth Models — users, roles and capability sets.

Roles are a flat enum stored on the user row.  Each role maps to a fixed
permission set (ROLE_PERMISSIONS); endpoints declare the roles they accept
through the named capability sets below and ``@require_roles``.
"""

from datetime import datetime, timezone

from app.models import db


# ═══════════════════════════════════════════════════════════════
# ROLES & PERMISSIONS
# ═══════════════════════════════════════════════════════════════
ROLE_VIEWER = "VIEWER"
ROLE_CONTRIBUTOR = "CONTRIBUTOR"
ROLE_MARKETING = "MARKETING"
ROLE_IT_DEPARTMENT = "IT_DEPARTMENT"
ROLE_APPROVER = "APPROVER"
ROLE_ADMIN = "ADMIN"

# Ordered lowest → highest
ROLES = (
    ROLE_VIEWER,
    ROLE_CONTRIBUTOR,
    ROLE_MARKETING,
    ROLE_IT_DEPARTMENT,
    ROLE_APPROVER,
    ROLE_ADMIN,
)

_BASE_VIEW = {"view:cases", "view:library", "view:leaderboard", "like:cases"}

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_VIEWER: frozenset(_BASE_VIEW),
    ROLE_CONTRIBUTOR: frozenset(_BASE_VIEW | {
        "create:cases", "edit:own_cases", "delete:own_cases",
        "view:analytics", "upload:files", "comment:cases",
    }),
    ROLE_MARKETING: frozenset(_BASE_VIEW | {
        "view:analytics", "export:data", "access:marketing_panel", "comment:cases",
    }),
    ROLE_IT_DEPARTMENT: frozenset(_BASE_VIEW | {
        "view:analytics", "manage:system", "access:it_panel", "comment:cases",
    }),
    ROLE_APPROVER: frozenset(_BASE_VIEW | {
        "create:cases", "edit:own_cases", "delete:own_cases",
        "approve:cases", "reject:cases", "view:analytics",
        "export:data", "upload:files", "comment:cases",
    }),
    ROLE_ADMIN: frozenset(_BASE_VIEW | {
        "create:cases", "edit:own_cases", "edit:all_cases",
        "delete:own_cases", "delete:all_cases",
        "approve:cases", "reject:cases", "publish:cases",
        "view:analytics", "export:data",
        "manage:users", "manage:system",
        "access:admin_panel", "access:it_panel", "access:marketing_panel",
        "upload:files", "comment:cases",
    }),
}


def roles_with(permission: str) -> frozenset[str]:
    """Return every role whose permission set contains ``permission``."""
    return frozenset(r for r, perms in ROLE_PERMISSIONS.items() if permission in perms)


def has_permission(role: str | None, permission: str) -> bool:
    if not role:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


# Named capability sets used by route decorators
ALL_ROLES = frozenset(ROLES)
CASE_AUTHORS = roles_with("create:cases")
APPROVERS = roles_with("approve:cases")
EXPORTERS = roles_with("export:data")
SYSTEM_MANAGERS = roles_with("manage:system")
ADMINS = frozenset({ROLE_ADMIN})


# ═══════════════════════════════════════════════════════════════
# USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    name = db.Column(db.String(200))
    role = db.Column(db.String(30), nullable=False, default=ROLE_CONTRIBUTOR)
    region = db.Column(db.String(100))
    total_points = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    case_studies = db.relationship(
        "CaseStudy", back_populates="contributor", lazy="dynamic",
        foreign_keys="CaseStudy.contributor_id",
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email

    @property
    def permissions(self) -> list[str]:
        return sorted(ROLE_PERMISSIONS.get(self.role, frozenset()))

    def can(self, permission: str) -> bool:
        return has_permission(self.role, permission)

    def to_dict(self, include_permissions=False):
        d = {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "region": self.region,
            "total_points": self.total_points,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_permissions:
            d["permissions"] = self.permissions
        return d

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
