"""FastAPI routes for back-office sign-in."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from storefront.api.dependencies import get_auth_service, require_admin
from storefront.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    """Request schema for the login endpoint."""

    email: str = Field(description="Admin email address")
    password: str = Field(description="Admin password")


class SessionUser(BaseModel):
    id: str
    email: str | None = None
    role: str | None = None


class LoginResponse(BaseModel):
    """Response schema for a successful sign-in."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime
    user: SessionUser


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> LoginResponse:
    """Sign in to the back office.

    Raises:
        401 on bad credentials, 429 after too many failed attempts.
    """
    session = await auth.sign_in(body.email, body.password)
    return LoginResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
        user=SessionUser(id=session.user_id, email=session.email, role=session.role),
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    token: Annotated[str, Depends(require_admin)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> None:
    """Revoke the current admin session."""
    await auth.sign_out(token)
