import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.config import settings
from booking.core.errors import PermissionDeniedError
from booking.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    verify_password,
)
from booking.models.enums import Role
from booking.models.refresh_token import RefreshToken
from booking.models.user import User, UserPublic
from booking.services.access import Principal, available_switch_roles, can_switch_role

logger = logging.getLogger(__name__)


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


def user_to_public(user: User, principal: Principal) -> UserPublic:
    return UserPublic(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role.wire,
        effective_role=principal.role.wire,
        is_role_switched=principal.effective.is_switched,
        available_roles=[r.wire for r in available_switch_roles(user.role)],
    )


# (access token, refresh token, access lifetime in seconds)
TokenTriple = tuple[str, str, int]


def _utc_naive() -> datetime:
    """Naive UTC datetime for DB columns that are TIMESTAMP WITHOUT TIME ZONE."""
    return datetime.now(UTC).replace(tzinfo=None)


async def issue_tokens(
    session: AsyncSession, user: User, switched_role: Role | None = None
) -> TokenTriple:
    """Sign a token pair and persist the refresh token's jti so it can be revoked.

    Only the access token carries ``switched_role``; refreshing always restores the
    persisted role.
    """
    access = create_access_token(
        user.id, switched_role=switched_role.wire if switched_role is not None else None
    )
    refresh = create_refresh_token(user.id)
    _, jti = decode_refresh_token(refresh)
    session.add(
        RefreshToken(
            user_id=user.id,
            jti=jti,
            expires_at=_utc_naive() + timedelta(days=settings.refresh_token_expire_days),
        )
    )
    await session.flush()
    return access, refresh, settings.access_token_expire_minutes * 60


async def login_user(session: AsyncSession, email: str, password: str) -> TokenTriple | None:
    user = await get_user_by_email(session, email)
    if user is None or not user.hashed_password:
        return None
    if not verify_password(password, user.hashed_password):
        logger.info("Failed login for user %s", user.id)
        return None
    return await issue_tokens(session, user)


async def _live_refresh_row(session: AsyncSession, refresh_token: str) -> RefreshToken | None:
    user_id, jti = decode_refresh_token(refresh_token)
    if not user_id or not jti:
        return None
    result = await session.execute(
        select(RefreshToken).where(
            RefreshToken.jti == jti,
            RefreshToken.user_id == int(user_id),
            RefreshToken.revoked == False,  # noqa: E712
            RefreshToken.expires_at > _utc_naive(),
        )
    )
    return result.scalar_one_or_none()


async def revoke_refresh_token(session: AsyncSession, refresh_token: str) -> bool:
    row = await _live_refresh_row(session, refresh_token)
    if row is None:
        return False
    row.revoked = True
    session.add(row)
    await session.flush()
    return True


async def refresh_tokens(session: AsyncSession, refresh_token: str) -> TokenTriple | None:
    """Rotate: the presented refresh token is revoked and a fresh pair issued."""
    row = await _live_refresh_row(session, refresh_token)
    if row is None:
        return None
    user = await session.get(User, row.user_id)
    if user is None:
        return None
    row.revoked = True
    session.add(row)
    return await issue_tokens(session, user)


async def switch_role(
    session: AsyncSession, user: User, target: Role
) -> TokenTriple:
    """Issue tokens acting as ``target`` for this session; ``user.role`` is untouched."""
    if not can_switch_role(user.role, target):
        logger.warning(
            "Rejected role switch for user %s: %s -> %s", user.id, user.role.wire, target.wire
        )
        raise PermissionDeniedError(
            f"Cannot switch from {user.role.wire} to {target.wire}",
            {"available_roles": [r.wire for r in available_switch_roles(user.role)]},
        )
    logger.info("User %s switched role %s -> %s", user.id, user.role.wire, target.wire)
    return await issue_tokens(session, user, switched_role=target)


async def restore_role(session: AsyncSession, user: User) -> TokenTriple:
    logger.info("User %s restored persisted role %s", user.id, user.role.wire)
    return await issue_tokens(session, user)
