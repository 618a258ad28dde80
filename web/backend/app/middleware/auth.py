"""Auth middleware -- FastAPI dependencies for the service and the current user.

Requests authenticate with an ``Authorization: Bearer <session_token>``
header issued by ``POST /api/auth/login``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from workvoice.auth.models import User, UserStatus
from workvoice.moderation.service import ModerationService

# Shared service instance
_service: Optional[ModerationService] = None


def get_service() -> ModerationService:
    """Return the singleton ModerationService instance."""
    global _service
    if _service is None:
        _service = ModerationService()
    return _service


def set_service(service: Optional[ModerationService]) -> None:
    """Replace the shared service (tests, alternative settings)."""
    global _service
    _service = service


def require_active(user: User, service: ModerationService) -> User:
    """Return *user* unless the account is suspended (403).

    Lazy expiry gets a chance to end the suspension first.
    """
    if user.status is UserStatus.suspended:
        service.check_restrictions(user.id)
        refreshed = service.users.get_user(user.id)
        if refreshed is None or refreshed.status is UserStatus.suspended:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account suspended")
        user = refreshed
    return user


async def get_current_user(
    authorization: Optional[str] = Header(None),
    service: ModerationService = Depends(get_service),
) -> User:
    """FastAPI dependency that extracts and validates the current user.

    Raises ``401 Unauthorized`` if no valid session token is provided.
    """
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            user = service.users.validate_session(token)
            if user is not None:
                return require_active(user, service)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
