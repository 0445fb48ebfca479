from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Protocol

from ..models import Reservation, ReservationOrigin, ReservationStatus, SecurityEvent, SecurityEventType


class ReservationRepository(Protocol):
    async def create(
        self,
        *,
        customer_name: str,
        email: str,
        phone: str,
        date: date,
        time: str,
        guests: int,
        special_requests: str | None,
        status: ReservationStatus,
        created_by: ReservationOrigin,
    ) -> Reservation: ...

    async def get(self, reservation_id: int) -> Reservation | None: ...

    async def get_for_update(self, reservation_id: int) -> Reservation | None: ...

    async def list_by_date(self, day: date) -> list[Reservation]: ...

    async def sum_reserved(self, day: date, time: str, exclude_id: int | None = None) -> int: ...

    async def lock_slot(self, day: date, time: str) -> None:
        """Hold the slot's row lock until the surrounding transaction ends."""
        ...

    async def list_between(self, start: date, end: date) -> list[Reservation]: ...

    async def update_status(self, reservation: Reservation, status: ReservationStatus) -> Reservation: ...

    async def list_due_reminders(self, start: date, end: date) -> list[Reservation]: ...

    async def claim_reminder(self, reservation_id: int, *, now: datetime, lease: timedelta) -> bool: ...

    async def complete_reminder(self, reservation_id: int) -> bool: ...

    async def release_reminder(self, reservation_id: int) -> None: ...


class SecurityEventRepository(Protocol):
    async def append(self, event: SecurityEventType, actor: str, *, max_entries: int) -> SecurityEvent: ...

    async def list_recent(self, limit: int) -> list[SecurityEvent]: ...
