"""Role-based and tenant-based access control.

Role hierarchy: super_admin > company_admin > hr > employee
"""

from __future__ import annotations

from workvoice.auth.models import Role, User
from workvoice.moderation.errors import Unauthorized


def has_permission(user: User, required_role: Role) -> bool:
    """Check if a user's role meets or exceeds the required role level.

    Parameters
    ----------
    user:
        The authenticated user to check.
    required_role:
        The minimum role required.

    Returns
    -------
    bool
        True if user's role level >= required role level.
    """
    user_role = user.role if isinstance(user.role, Role) else Role(user.role)
    return user_role.level >= required_role.level


def require_role(user: User, role: Role) -> None:
    """Raise :class:`Unauthorized` unless *user* has at least *role*."""
    if not has_permission(user, role):
        raise Unauthorized(f"Requires role '{role.value}' or higher")


def require_moderator(user: User) -> None:
    require_role(user, Role.hr)


def require_company_access(user: User, company_id: str) -> None:
    """Super admins see every tenant; everyone else only their own."""
    if user.role is Role.super_admin:
        return
    if not company_id or user.company_id != company_id:
        raise Unauthorized("Cross-tenant access is not allowed")
