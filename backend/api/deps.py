"""
Threadcount API Dependencies

Dependency injection for DB sessions, auth, and agency (tenant) context.
"""

import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import AsyncSessionLocal

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

# Dev agency used when auth is bypassed in debug mode
DEV_AGENCY_ID = "00000000-0000-0000-0000-000000000001"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload. Bypassed in debug mode."""
    if settings.debug:
        return {
            "sub": "dev-user",
            "email": "dev@threadcount.local",
            "agency_id": DEV_AGENCY_ID,
        }

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def get_agency_id(user: dict = Depends(get_current_user)) -> uuid.UUID:
    """The agency every query and write in this request is scoped to."""
    agency_id = user.get("agency_id")
    if not agency_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No agency context",
        )
    try:
        return uuid.UUID(str(agency_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Malformed agency context",
        )


def get_actor(user: dict = Depends(get_current_user)) -> str:
    """Display identity recorded as requested_by / reviewed_by / recorded_by."""
    return str(user.get("email") or user.get("sub") or "unknown")
