from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ..deps import get_engine, require_capability
from ..domain.calendar import parse_date
from ..domain.errors import ReservationError
from ..models import Reservation, ReservationOrigin, ReservationStatus
from ..schemas import (
    DashboardRead,
    ReminderRead,
    ReservationCreate,
    ReservationRead,
    StatsRead,
    StatusUpdate,
    SummaryRead,
)
from ..usecases.engine import ReservationEngine
from ..utils.audit_log import AuditInitiator, emit_audit_log, status_change_action
from ..utils.auth import CAP_MANAGE, CAP_READ, StaffSession
from .errors import to_http_error

router = APIRouter(prefix="", tags=["reservations"])
staff_router = APIRouter(prefix="/staff/reservations", tags=["staff"])


def _audit_created(reservation: Reservation, *, initiator: AuditInitiator, actor: Optional[str]) -> None:
    try:
        emit_audit_log(
            action="reservation.created",
            initiator=initiator,
            actor=actor,
            reservation_id=reservation.id,
            reservation_date=reservation.date.isoformat(),
            reservation_time=reservation.time,
            guests=reservation.guests,
            status_from=None,
            status_to=reservation.status,
        )
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed")


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    engine: ReservationEngine = Depends(get_engine),
) -> ReservationRead:
    try:
        reservation = await engine.submit_reservation(payload.to_request())
    except ReservationError as exc:
        raise to_http_error(exc)

    _audit_created(reservation, initiator="customer", actor=None)
    return ReservationRead.from_db(reservation=reservation)


@staff_router.post("", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_manual_reservation(
    payload: ReservationCreate,
    engine: ReservationEngine = Depends(get_engine),
    staff: StaffSession = Depends(require_capability(CAP_MANAGE)),
) -> ReservationRead:
    try:
        reservation = await engine.submit_reservation(
            payload.to_request(),
            created_by=ReservationOrigin.MANAGER,
            confirm=True,
        )
    except ReservationError as exc:
        raise to_http_error(exc)

    _audit_created(reservation, initiator="staff", actor=staff.subject)
    return ReservationRead.from_db(reservation=reservation)


@staff_router.get("", response_model=DashboardRead)
async def list_reservations(
    date: str = Query(..., description="Calendar date (YYYY-MM-DD)"),
    q: Optional[str] = Query(default=None, max_length=255, description="Matches name, email, phone or id"),
    status_filter: Optional[ReservationStatus] = Query(default=None, alias="status"),
    engine: ReservationEngine = Depends(get_engine),
    staff: StaffSession = Depends(require_capability(CAP_READ)),
) -> DashboardRead:
    try:
        day = parse_date(date)
        rows, summary = await engine.list_reservations(day, search=q, status=status_filter)
    except ReservationError as exc:
        raise to_http_error(exc)
    return DashboardRead(
        date=day,
        summary=SummaryRead.from_domain(summary),
        reservations=[ReservationRead.from_db(reservation=r) for r in rows],
    )


@staff_router.get("/stats", response_model=StatsRead)
async def reservation_stats(
    start: str = Query(..., description="First calendar date (YYYY-MM-DD)"),
    end: str = Query(..., description="Last calendar date, inclusive"),
    engine: ReservationEngine = Depends(get_engine),
    staff: StaffSession = Depends(require_capability(CAP_READ)),
) -> StatsRead:
    try:
        first, last = parse_date(start), parse_date(end)
        summary = await engine.reservation_stats(first, last)
    except ReservationError as exc:
        raise to_http_error(exc)
    return StatsRead(start=first, end=last, summary=SummaryRead.from_domain(summary))


@staff_router.get("/{reservation_id}", response_model=ReservationRead)
async def get_reservation(
    reservation_id: int = Path(..., ge=1),
    engine: ReservationEngine = Depends(get_engine),
    staff: StaffSession = Depends(require_capability(CAP_READ)),
) -> ReservationRead:
    try:
        reservation = await engine.get_reservation(reservation_id)
    except ReservationError as exc:
        raise to_http_error(exc)
    return ReservationRead.from_db(reservation=reservation)


@staff_router.patch("/{reservation_id}/status", response_model=ReservationRead)
async def update_status(
    payload: StatusUpdate,
    reservation_id: int = Path(..., ge=1),
    engine: ReservationEngine = Depends(get_engine),
    staff: StaffSession = Depends(require_capability(CAP_MANAGE)),
) -> ReservationRead:
    try:
        updated, previous = await engine.set_status(reservation_id, payload.status)
    except ReservationError as exc:
        raise to_http_error(exc)

    if previous != updated.status:
        try:
            emit_audit_log(
                action=status_change_action(previous, updated.status),
                initiator="staff",
                actor=staff.subject,
                reservation_id=updated.id,
                reservation_date=updated.date.isoformat(),
                reservation_time=updated.time,
                guests=updated.guests,
                status_from=previous,
                status_to=updated.status,
            )
        except RuntimeError:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed")

    return ReservationRead.from_db(reservation=updated)


@staff_router.post("/{reservation_id}/reminder", response_model=ReminderRead)
async def send_reminder(
    reservation_id: int = Path(..., ge=1),
    engine: ReservationEngine = Depends(get_engine),
    staff: StaffSession = Depends(require_capability(CAP_MANAGE)),
) -> ReminderRead:
    try:
        reservation, outcome = await engine.send_reminder_now(reservation_id)
    except ReservationError as exc:
        raise to_http_error(exc)
    return ReminderRead(outcome=outcome.value, reservation=ReservationRead.from_db(reservation=reservation))
