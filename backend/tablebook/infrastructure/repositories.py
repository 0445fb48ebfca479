from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Iterator, List

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import TransientStorageError
from ..domain.repositories import ReservationRepository, SecurityEventRepository
from ..models import Reservation, ReservationOrigin, ReservationStatus, SecurityEvent, SecurityEventType, SlotLock
from ..utils.time import utc_now_naive


@contextmanager
def storage_errors() -> Iterator[None]:
    """Translate connectivity failures from the driver into TransientStorageError."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        raise TransientStorageError("storage temporarily unavailable") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise TransientStorageError("storage connection lost") from exc
        raise


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
    ) -> Reservation:
        now = utc_now_naive()
        reservation = Reservation(
            customer_name=customer_name,
            email=email,
            phone=phone,
            date=date,
            time=time,
            guests=guests,
            special_requests=special_requests,
            status=status,
            created_by=created_by,
            reminder_sent=False,
            confirmed_at=now if status == ReservationStatus.CONFIRMED else None,
            created_at=now,
            updated_at=now,
        )
        self.session.add(reservation)
        with storage_errors():
            await self.session.flush()
        return reservation

    async def get(self, reservation_id: int) -> Reservation | None:
        with storage_errors():
            result = await self.session.scalar(select(Reservation).where(Reservation.id == reservation_id))
        return result if isinstance(result, Reservation) else None

    async def get_for_update(self, reservation_id: int) -> Reservation | None:
        stmt = select(Reservation).where(Reservation.id == reservation_id).with_for_update()
        with storage_errors():
            result = await self.session.scalar(stmt)
        return result if isinstance(result, Reservation) else None

    async def list_by_date(self, day: date) -> List[Reservation]:
        stmt = select(Reservation).where(Reservation.date == day).order_by(Reservation.time, Reservation.id)
        with storage_errors():
            rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def sum_reserved(self, day: date, time: str, exclude_id: int | None = None) -> int:
        stmt = select(func.coalesce(func.sum(Reservation.guests), 0)).where(
            Reservation.date == day,
            Reservation.time == time,
            Reservation.status != ReservationStatus.CANCELLED,
        )
        if exclude_id is not None:
            stmt = stmt.where(Reservation.id != exclude_id)
        with storage_errors():
            return int(await self.session.scalar(stmt) or 0)

    async def lock_slot(self, day: date, time: str) -> None:
        values = {"date": day, "time": time}
        if self.session.get_bind().dialect.name == "mysql":
            stmt = mysql_insert(SlotLock).values(**values)
            upsert = stmt.on_duplicate_key_update(time=stmt.inserted.time)
        else:
            upsert = sqlite_insert(SlotLock).values(**values).on_conflict_do_nothing()
        lock = select(SlotLock).where(SlotLock.date == day, SlotLock.time == time).with_for_update()
        with storage_errors():
            await self.session.execute(upsert)
            await self.session.execute(lock)

    async def list_between(self, start: date, end: date) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(Reservation.date >= start, Reservation.date <= end)
            .order_by(Reservation.date, Reservation.time, Reservation.id)
        )
        with storage_errors():
            rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def update_status(self, reservation: Reservation, status: ReservationStatus) -> Reservation:
        now = utc_now_naive()
        reservation.status = status
        reservation.updated_at = now
        if status == ReservationStatus.CONFIRMED:
            reservation.confirmed_at = now
            reservation.cancelled_at = None
        elif status == ReservationStatus.CANCELLED:
            reservation.cancelled_at = now
        self.session.add(reservation)
        with storage_errors():
            await self.session.flush()
        return reservation

    async def list_due_reminders(self, start: date, end: date) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(
                Reservation.status == ReservationStatus.CONFIRMED,
                Reservation.reminder_sent.is_(False),
                Reservation.date >= start,
                Reservation.date <= end,
            )
            .order_by(Reservation.date, Reservation.time, Reservation.id)
        )
        with storage_errors():
            rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def claim_reminder(self, reservation_id: int, *, now: datetime, lease: timedelta) -> bool:
        stmt = (
            update(Reservation)
            .where(
                Reservation.id == reservation_id,
                Reservation.status == ReservationStatus.CONFIRMED,
                Reservation.reminder_sent.is_(False),
                or_(
                    Reservation.reminder_claimed_at.is_(None),
                    Reservation.reminder_claimed_at < now - lease,
                ),
            )
            .values(reminder_claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        with storage_errors():
            result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def complete_reminder(self, reservation_id: int) -> bool:
        now = utc_now_naive()
        stmt = (
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.reminder_sent.is_(False))
            .values(reminder_sent=True, reminder_claimed_at=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        with storage_errors():
            result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def release_reminder(self, reservation_id: int) -> None:
        stmt = (
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.reminder_sent.is_(False))
            .values(reminder_claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        with storage_errors():
            await self.session.execute(stmt)


class SqlAlchemySecurityEventRepository(SecurityEventRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def append(self, event: SecurityEventType, actor: str, *, max_entries: int) -> SecurityEvent:
        entry = SecurityEvent(event=event, actor=actor, created_at=utc_now_naive())
        self.session.add(entry)
        with storage_errors():
            await self.session.flush()
            # Keep only the newest `max_entries` rows.
            keep = select(SecurityEvent.id).order_by(SecurityEvent.id.desc()).limit(max_entries).subquery()
            cutoff = await self.session.scalar(select(func.min(keep.c.id)))
            if cutoff is not None:
                await self.session.execute(
                    delete(SecurityEvent)
                    .where(SecurityEvent.id < cutoff)
                    .execution_options(synchronize_session=False)
                )
        return entry

    async def list_recent(self, limit: int) -> List[SecurityEvent]:
        stmt = select(SecurityEvent).order_by(SecurityEvent.id.desc()).limit(limit)
        with storage_errors():
            rows = await self.session.scalars(stmt)
        return list(rows.all())
