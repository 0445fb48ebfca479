from datetime import date
from typing import Optional

from ..domain.calendar import SlotCalendar
from ..domain.errors import NotFoundError, ValidationError
from ..domain.repositories import ReservationRepository
from ..domain.services import (
    DashboardSummary,
    ValidBooking,
    check_capacity,
    filter_reservations,
    plan_transition,
    summarize,
)
from ..models import Reservation, ReservationOrigin, ReservationStatus
from .capacity import slot_snapshot


async def create_reservation(
    res_repo: ReservationRepository,
    calendar: SlotCalendar,
    *,
    booking: ValidBooking,
    status: ReservationStatus,
    created_by: ReservationOrigin,
) -> Reservation:
    """Check remaining capacity and persist. Caller must hold the slot lock inside a transaction."""
    await res_repo.lock_slot(booking.date, booking.time)
    snapshot = await slot_snapshot(res_repo, calendar, day=booking.date, time=booking.time)
    check_capacity(snapshot, guests=booking.guests)

    return await res_repo.create(
        customer_name=booking.customer_name,
        email=booking.email,
        phone=booking.phone,
        date=booking.date,
        time=booking.time,
        guests=booking.guests,
        special_requests=booking.special_requests,
        status=status,
        created_by=created_by,
    )


async def change_status(
    res_repo: ReservationRepository,
    calendar: SlotCalendar,
    *,
    reservation_id: int,
    target: ReservationStatus,
) -> tuple[Reservation, ReservationStatus]:
    """Apply a status transition. Returns the record and its previous status."""
    reservation = await res_repo.get_for_update(reservation_id)
    if reservation is None:
        raise NotFoundError("reservation not found")
    previous = reservation.status
    # Same status or a transition outside the state machine: return as-is
    if not plan_transition(previous, target):
        return reservation, previous

    if target == ReservationStatus.CONFIRMED:
        await res_repo.lock_slot(reservation.date, reservation.time)
        snapshot = await slot_snapshot(
            res_repo,
            calendar,
            day=reservation.date,
            time=reservation.time,
            exclude_id=reservation.id,
        )
        check_capacity(snapshot, guests=reservation.guests)

    updated = await res_repo.update_status(reservation, target)
    return updated, previous


async def get_reservation(res_repo: ReservationRepository, *, reservation_id: int) -> Reservation:
    reservation = await res_repo.get(reservation_id)
    if reservation is None:
        raise NotFoundError("reservation not found")
    return reservation


async def list_reservations(
    res_repo: ReservationRepository,
    *,
    day: date,
    search: Optional[str] = None,
    status: Optional[ReservationStatus] = None,
) -> tuple[list[Reservation], DashboardSummary]:
    rows = await res_repo.list_by_date(day)
    filtered = filter_reservations(rows, search=search, status=status)
    return filtered, summarize(filtered)


async def reservation_stats(res_repo: ReservationRepository, *, start: date, end: date) -> DashboardSummary:
    if end < start:
        raise ValidationError({"end": "end date must not be before start date"}, code="invalid_range")
    return summarize(await res_repo.list_between(start, end))
