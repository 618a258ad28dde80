"""Auth domain models: platform users, roles and sessions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from workvoice.moderation.models import to_iso, utcnow


class Role(str, Enum):
    """Role hierarchy: super_admin > company_admin > hr > employee."""

    super_admin = "super_admin"
    company_admin = "company_admin"
    hr = "hr"
    employee = "employee"

    @property
    def level(self) -> int:
        """Return numeric level for comparison (higher = more privileges)."""
        return {
            Role.super_admin: 40,
            Role.company_admin: 30,
            Role.hr: 20,
            Role.employee: 10,
        }[self]

    @property
    def is_moderator(self) -> bool:
        return self.level >= Role.hr.level


class UserStatus(str, Enum):
    active = "active"
    suspended = "suspended"
    invited = "invited"


@dataclass
class User:
    """A platform user. Belongs to exactly one company (tenant)."""

    id: str
    username: str
    email: str = ""
    display_name: str = ""
    role: Role = Role.employee
    company_id: str = ""
    status: UserStatus = UserStatus.active
    suspended_at: str = ""
    suspended_until: str = ""
    suspension_reason: str = ""
    suspended_by: str = ""
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = to_iso(utcnow())
        if isinstance(self.role, str):
            self.role = Role(self.role)
        if isinstance(self.status, str):
            self.status = UserStatus(self.status)


@dataclass
class Session:
    """Represents an active user session."""

    id: str
    user_id: str
    token: str
    created_at: str = ""
    expires_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = to_iso(utcnow())
