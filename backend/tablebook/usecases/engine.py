from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..domain.calendar import SlotCalendar
from ..domain.errors import ValidationError
from ..domain.services import BookingRequest, DashboardSummary, validate_booking
from ..infrastructure.repositories import SqlAlchemyReservationRepository, storage_errors
from ..models import Reservation, ReservationOrigin, ReservationStatus
from ..utils.time import local_today
from . import capacity as capacity_usecase
from . import notifications as notification_usecase
from . import reminders as reminder_usecase
from . import reservations as reservation_usecase
from .locks import SlotLocks
from .notifications import CustomerMailer
from .reminders import RepoFactory, ReminderOutcome, ReminderScanResult


def build_calendar(settings: Settings) -> SlotCalendar:
    return SlotCalendar.from_config(
        settings.service_windows,
        interval_minutes=settings.slot_interval_minutes,
        max_capacity_per_slot=settings.max_capacity_per_slot,
        capacity_overrides=settings.slot_capacity_overrides,
    )


class ReservationEngine:
    """
    Entry point for booking and staff flows.

    Owns the per-slot locks and the transaction boundaries: a capacity check and
    the write it guards always run under the slot's lock inside one transaction
    that also holds the slot's row lock in the store, and the transaction commits
    before the lock is released. Customer emails go out only after the commit.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        sender: CustomerMailer,
        *,
        calendar: SlotCalendar | None = None,
        repo_factory: RepoFactory = SqlAlchemyReservationRepository,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.sender = sender
        self.calendar = calendar or build_calendar(settings)
        self.repo_factory = repo_factory
        self.locks = SlotLocks()
        self._today = today or (lambda: local_today(settings.restaurant_timezone))

    def today(self) -> date:
        return self._today()

    async def submit_reservation(
        self,
        request: BookingRequest,
        *,
        created_by: ReservationOrigin = ReservationOrigin.CUSTOMER,
        confirm: Optional[bool] = None,
    ) -> Reservation:
        booking = validate_booking(
            request,
            self.calendar,
            today=self.today(),
            max_guests=self.settings.max_guests_per_reservation,
            advance_booking_days=self.settings.advance_booking_days,
        )
        if confirm is None:
            confirm = self.settings.auto_confirm_bookings
        status = ReservationStatus.CONFIRMED if confirm else ReservationStatus.PENDING

        async with self.locks.hold(booking.date, booking.time):
            with storage_errors():
                async with self.session_factory() as session, session.begin():
                    reservation = await reservation_usecase.create_reservation(
                        self.repo_factory(session),
                        self.calendar,
                        booking=booking,
                        status=status,
                        created_by=created_by,
                    )
        await notification_usecase.notify_created(self.sender, reservation)
        return reservation

    async def set_status(
        self,
        reservation_id: int,
        target: ReservationStatus,
    ) -> tuple[Reservation, ReservationStatus]:
        current = await self.get_reservation(reservation_id)
        # date and time never change after creation, so the slot key is stable.
        async with self.locks.hold(current.date, current.time):
            with storage_errors():
                async with self.session_factory() as session, session.begin():
                    updated, previous = await reservation_usecase.change_status(
                        self.repo_factory(session),
                        self.calendar,
                        reservation_id=reservation_id,
                        target=target,
                    )
        await notification_usecase.notify_status_change(self.sender, updated, previous)
        return updated, previous

    async def get_reservation(self, reservation_id: int) -> Reservation:
        with storage_errors():
            async with self.session_factory() as session:
                return await reservation_usecase.get_reservation(
                    self.repo_factory(session), reservation_id=reservation_id
                )

    async def list_reservations(
        self,
        day: date,
        *,
        search: Optional[str] = None,
        status: Optional[ReservationStatus] = None,
    ) -> tuple[list[Reservation], DashboardSummary]:
        with storage_errors():
            async with self.session_factory() as session:
                return await reservation_usecase.list_reservations(
                    self.repo_factory(session), day=day, search=search, status=status
                )

    async def reservation_stats(self, start: date, end: date) -> DashboardSummary:
        with storage_errors():
            async with self.session_factory() as session:
                return await reservation_usecase.reservation_stats(self.repo_factory(session), start=start, end=end)

    async def remaining_capacity(self, day: date, time: str) -> int:
        with storage_errors():
            async with self.session_factory() as session:
                return await capacity_usecase.remaining_capacity(
                    self.repo_factory(session), self.calendar, day=day, time=time
                )

    async def availability(self, day: date, guests: int) -> List[Dict[str, Any]]:
        with storage_errors():
            async with self.session_factory() as session:
                return await capacity_usecase.list_availability(
                    self.repo_factory(session), self.calendar, day=day, guests=guests
                )

    async def send_reminder_now(self, reservation_id: int) -> tuple[Reservation, ReminderOutcome]:
        reservation = await self.get_reservation(reservation_id)
        if reservation.status != ReservationStatus.CONFIRMED:
            raise ValidationError(
                {"status": "reminders are only sent for confirmed reservations"}, code="not_confirmed"
            )
        if reservation.reminder_sent:
            return reservation, ReminderOutcome.SKIPPED
        outcome = await reminder_usecase.deliver_reminder(
            self.session_factory,
            self.repo_factory,
            self.sender,
            reservation,
            lease=self._reminder_lease(),
        )
        return await self.get_reservation(reservation_id), outcome

    async def scan_reminders(self) -> ReminderScanResult:
        return await reminder_usecase.scan_reminders(
            self.session_factory,
            self.repo_factory,
            self.sender,
            today=self.today(),
            lookahead_days=self.settings.reminder_lookahead_days,
            lease=self._reminder_lease(),
        )

    def _reminder_lease(self) -> timedelta:
        return timedelta(seconds=self.settings.reminder_claim_timeout_seconds)
