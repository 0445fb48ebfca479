from typing import AsyncIterator, Awaitable, Callable

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import async_session
from .infrastructure.identity import HttpIdentityProvider, IdentityProvider, UnconfiguredIdentityProvider
from .usecases.engine import ReservationEngine
from .utils.auth import StaffSession, decode_access_token


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def get_engine(request: Request) -> ReservationEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="engine not started")
    return engine


def get_identity_provider(settings: Settings = Depends(get_settings)) -> IdentityProvider:
    if settings.identity_provider_url:
        return HttpIdentityProvider(settings.identity_provider_url)
    return UnconfiguredIdentityProvider()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_session(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> StaffSession:
    if authorization is None:
        raise _unauthorized("Authorization header required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Bearer token required")
    try:
        return decode_access_token(token.strip(), secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise _unauthorized("invalid or expired token") from exc


def require_capability(capability: str) -> Callable[..., Awaitable[StaffSession]]:
    async def dependency(session: StaffSession = Depends(get_current_session)) -> StaffSession:
        if not session.can(capability):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"missing capability {capability}")
        return session

    return dependency
