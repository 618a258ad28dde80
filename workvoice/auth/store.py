"""File-based JSON storage for users and sessions.

Provides a DB-ready interface backed by JSON files under ``<data_dir>/auth/``.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Optional

from workvoice.auth.models import Role, Session, User, UserStatus
from workvoice.moderation.models import parse_iso, to_iso, utcnow
from workvoice.moderation.storage import JsonCollection


class UserStore:
    """File-based storage for users and sessions.

    Storage path: ``<data_dir>/auth/`` with:
    - ``users.json`` -- list of user dicts
    - ``sessions.json`` -- list of session dicts
    """

    def __init__(self, base_dir: str | Path, *, lock_timeout: float = 5.0) -> None:
        self._base = Path(base_dir)
        self._users = JsonCollection(self._base / "users.json", lock_timeout=lock_timeout)
        self._sessions = JsonCollection(self._base / "sessions.json", lock_timeout=lock_timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _user_from_dict(d: dict) -> User:
        role_val = d.get("role", "employee")
        try:
            role_val = Role(role_val)
        except ValueError:
            role_val = Role.employee
        return User(
            id=d["id"],
            username=d["username"],
            email=d.get("email", ""),
            display_name=d.get("display_name", ""),
            role=role_val,
            company_id=d.get("company_id", ""),
            status=UserStatus(d.get("status", "active")),
            suspended_at=d.get("suspended_at", ""),
            suspended_until=d.get("suspended_until", ""),
            suspension_reason=d.get("suspension_reason", ""),
            suspended_by=d.get("suspended_by", ""),
            created_at=d.get("created_at", ""),
        )

    @staticmethod
    def _user_to_dict(u: User) -> dict:
        return {
            "id": u.id,
            "username": u.username,
            "email": u.email,
            "display_name": u.display_name,
            "role": u.role.value,
            "company_id": u.company_id,
            "status": u.status.value,
            "suspended_at": u.suspended_at,
            "suspended_until": u.suspended_until,
            "suspension_reason": u.suspension_reason,
            "suspended_by": u.suspended_by,
            "created_at": u.created_at,
        }

    # ------------------------------------------------------------------
    # User CRUD
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> User:
        """Persist a new user. Returns the user."""
        self._users.append(self._user_to_dict(user))
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        d = self._users.get(user_id)
        return self._user_from_dict(d) if d else None

    def list_users(
        self,
        company_id: Optional[str] = None,
        roles: Optional[Iterable[Role]] = None,
    ) -> list[User]:
        wanted = {r.value for r in roles} if roles else None
        return [
            self._user_from_dict(d)
            for d in self._users.all()
            if (company_id is None or d.get("company_id") == company_id)
            and (wanted is None or d.get("role") in wanted)
        ]

    def set_suspension(
        self, user_id: str, *, until: str, reason: str, suspended_by: str = ""
    ) -> Optional[User]:
        """Mark a user suspended until *until*. Returns the user or None."""
        d = self._users.update(
            user_id,
            status=UserStatus.suspended.value,
            suspended_at=to_iso(utcnow()),
            suspended_until=until,
            suspension_reason=reason,
            suspended_by=suspended_by,
        )
        return self._user_from_dict(d) if d else None

    def clear_suspension(self, user_id: str) -> Optional[User]:
        d = self._users.update(user_id, status=UserStatus.active.value, suspended_until="")
        return self._user_from_dict(d) if d else None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: str, expires_in_hours: int = 24) -> Session:
        """Create a new session for a user."""
        now = utcnow()
        session = Session(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token=secrets.token_urlsafe(48),
            created_at=to_iso(now),
            expires_at=to_iso(now + timedelta(hours=expires_in_hours)),
        )
        self._sessions.append({
            "id": session.id,
            "user_id": session.user_id,
            "token": session.token,
            "created_at": session.created_at,
            "expires_at": session.expires_at,
        })
        return session

    def validate_session(self, token: str) -> Optional[User]:
        """Validate a session token and return the associated user, or None."""
        for d in self._sessions.all():
            if d["token"] == token:
                if d.get("expires_at") and parse_iso(d["expires_at"]) <= utcnow():
                    # Expired -- clean it up
                    self.delete_session(token)
                    return None
                return self.get_user(d["user_id"])
        return None

    def delete_session(self, token: str) -> bool:
        with self._sessions.transaction() as sessions:
            remaining = [d for d in sessions if d["token"] != token]
            removed = len(remaining) < len(sessions)
            sessions[:] = remaining
        return removed
