from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_current_session, get_identity_provider, get_session, require_capability
from ..infrastructure.identity import IdentityProvider, IdentityProviderError
from ..infrastructure.repositories import SqlAlchemySecurityEventRepository
from ..models import SecurityEventType
from ..schemas import LoginRequest, SecurityEventRead, TokenRead
from ..usecases import security as security_usecase
from ..utils.auth import CAP_SECURITY, StaffSession, create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])


async def _record(session: AsyncSession, settings: Settings, event: SecurityEventType, actor: str) -> None:
    repo = SqlAlchemySecurityEventRepository(session)
    async with session.begin():
        await security_usecase.record_event(
            repo,
            event=event,
            actor=actor,
            max_entries=settings.security_log_max_entries,
        )


@router.post("/login", response_model=TokenRead)
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> TokenRead:
    try:
        identity = await provider.authenticate(payload.username, payload.password)
    except IdentityProviderError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="identity provider unavailable")

    if identity is None:
        await _record(session, settings, SecurityEventType.LOGIN_FAILED, payload.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    await _record(session, settings, SecurityEventType.LOGIN_SUCCESS, payload.username)
    expires = timedelta(minutes=settings.session_timeout_minutes)
    token = create_access_token(
        subject=identity.id,
        name=identity.name,
        capabilities=identity.capabilities,
        secret=settings.auth_secret,
        algorithm=settings.auth_algorithm,
        expires_delta=expires,
    )
    return TokenRead(
        access_token=token,
        expires_in=int(expires.total_seconds()),
        name=identity.name,
        capabilities=sorted(identity.capabilities),
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    staff: StaffSession = Depends(get_current_session),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> None:
    await _record(session, settings, SecurityEventType.LOGOUT, staff.name or staff.subject)


@router.get("/security-events", response_model=List[SecurityEventRead])
async def list_security_events(
    limit: int = Query(default=100, ge=1, le=1000),
    staff: StaffSession = Depends(require_capability(CAP_SECURITY)),
    session: AsyncSession = Depends(get_session),
) -> list[SecurityEventRead]:
    events = await security_usecase.list_events(SqlAlchemySecurityEventRepository(session), limit=limit)
    return [SecurityEventRead.from_db(event=e) for e in events]
