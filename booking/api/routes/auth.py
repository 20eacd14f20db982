from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from booking.api.deps import CurrentIdentity, get_current_identity, refresh_header, unauthorized
from booking.api.schemas.auth import LoginRequest, RefreshRequest, SwitchRoleRequest, TokenPair
from booking.core.db import get_session
from booking.models.enums import Role
from booking.models.user import UserPublic
from booking.services.auth_service import (
    TokenTriple,
    login_user,
    refresh_tokens,
    restore_role,
    revoke_refresh_token,
    switch_role,
    user_to_public,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def _pair(tokens: TokenTriple) -> TokenPair:
    access, refresh, expires_in = tokens
    return TokenPair(access_token=access, refresh_token=refresh, expires_in=expires_in)


def _presented_refresh_token(
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshRequest | None = None,
) -> str | None:
    """X-Refresh-Token header wins over a ``refresh_token`` body field."""
    return x_refresh_token or (body.refresh_token if body else None)


@router.post("/login", response_model=TokenPair)
async def login(body: LoginRequest, session: AsyncSession = Depends(get_session)) -> TokenPair:
    tokens = await login_user(session, body.email, body.password)
    if tokens is None:
        raise unauthorized("Invalid email or password")
    return _pair(tokens)


@router.post("/refresh", response_model=TokenPair)
async def refresh(
    session: AsyncSession = Depends(get_session),
    token: str | None = Depends(_presented_refresh_token),
) -> TokenPair:
    """Rotate the refresh token. A switched role does not survive a refresh."""
    if not token:
        raise unauthorized("Refresh token required (header X-Refresh-Token or body refresh_token)")
    tokens = await refresh_tokens(session, token)
    if tokens is None:
        raise unauthorized("Invalid or expired refresh token")
    return _pair(tokens)


@router.post("/logout")
async def logout(
    session: AsyncSession = Depends(get_session),
    token: str | None = Depends(_presented_refresh_token),
) -> dict:
    if token:
        await revoke_refresh_token(session, token)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserPublic)
async def me(identity: CurrentIdentity = Depends(get_current_identity)) -> UserPublic:
    return user_to_public(identity.user, identity.principal)


@router.post("/switch-role", response_model=TokenPair)
async def switch_to_role(
    body: SwitchRoleRequest,
    session: AsyncSession = Depends(get_session),
    identity: CurrentIdentity = Depends(get_current_identity),
) -> TokenPair:
    """Act with less privilege for the lifetime of the returned access token."""
    return _pair(await switch_role(session, identity.user, Role.from_wire(body.role)))


@router.post("/restore-role", response_model=TokenPair)
async def restore_persisted_role(
    session: AsyncSession = Depends(get_session),
    identity: CurrentIdentity = Depends(get_current_identity),
) -> TokenPair:
    return _pair(await restore_role(session, identity.user))
