from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.db import get_session
from booking.core.errors import BookingError
from booking.core.security import decode_access_token
from booking.models.enums import Role
from booking.models.user import User
from booking.services.access import Principal

security = HTTPBearer(auto_error=False)


def unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def refresh_header(x_refresh_token: str | None = Header(default=None, alias="X-Refresh-Token")) -> str | None:
    """Extract X-Refresh-Token header for logout/refresh endpoints."""
    return x_refresh_token


@dataclass(frozen=True)
class CurrentIdentity:
    user: User
    principal: Principal


async def get_current_identity(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> CurrentIdentity:
    """Resolve the bearer token to the stored user and its effective role for this request."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise unauthorized("Missing or invalid authorization header")
    claims = decode_access_token(credentials.credentials)
    if not claims:
        raise unauthorized("Invalid or expired token")
    try:
        uid = int(claims.subject)
    except ValueError:
        raise unauthorized("Invalid token")
    user = await session.get(User, uid)
    if not user:
        raise unauthorized("User not found")
    try:
        switched = Role.from_wire(claims.switched_role) if claims.switched_role else None
        principal = Principal.of(user.id, user.role, switched)
    except BookingError:
        # The persisted role changed since the token was issued
        raise unauthorized("Role switch no longer valid")
    return CurrentIdentity(user=user, principal=principal)


async def get_current_principal(
    identity: CurrentIdentity = Depends(get_current_identity),
) -> Principal:
    return identity.principal
