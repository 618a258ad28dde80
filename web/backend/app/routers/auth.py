"""Auth router -- session login, logout and the current user.

The user directory is owned by the wider platform; login here issues a
session for an existing user id (demo flow, no credential exchange).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from workvoice.auth.models import User
from workvoice.moderation.service import ModerationService
from web.backend.app.middleware.auth import get_current_user, get_service, require_active
from web.backend.app.models.api import LoginRequest, LoginResponse, UserResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _user_response(u: User) -> UserResponse:
    """Convert a domain User to a Pydantic UserResponse."""
    return UserResponse(
        id=u.id,
        username=u.username,
        email=u.email,
        display_name=u.display_name,
        role=u.role.value,
        company_id=u.company_id,
        status=u.status.value,
        suspended_until=u.suspended_until,
    )


@router.post("/login", response_model=LoginResponse, summary="Issue a session token")
async def login(body: LoginRequest, service: ModerationService = Depends(get_service)):
    user = service.users.get_user(body.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    user = require_active(user, service)
    session = service.users.create_session(user.id)
    return LoginResponse(token=session.token, user=_user_response(user))


@router.post("/logout", summary="End the current session")
async def logout(
    authorization: Optional[str] = Header(None),
    user: User = Depends(get_current_user),
    service: ModerationService = Depends(get_service),
):
    _, _, token = (authorization or "").partition(" ")
    service.users.delete_session(token)
    return {"status": "logged_out"}


@router.get("/me", response_model=UserResponse, summary="Current user")
async def me(user: User = Depends(get_current_user)):
    return _user_response(user)
