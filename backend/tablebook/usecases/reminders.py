"""
Reminder dispatch for upcoming confirmed reservations.

A reservation is reminded at most once. Each send is preceded by a claim, a
conditional UPDATE committed in its own transaction, so that concurrent scans
(in this process or another) never attempt the same reservation at once. The
notifier is awaited with no transaction open; the outcome is written back
afterwards: success sets ``reminder_sent``, failure releases the claim so the
next pass retries.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import StrEnum
from typing import Awaitable, Callable, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.errors import TransientStorageError
from ..domain.repositories import ReservationRepository
from ..infrastructure.repositories import storage_errors
from ..models import Reservation
from ..utils.audit_log import emit_audit_log
from ..utils.time import utc_now_naive

logger = logging.getLogger(__name__)

RepoFactory = Callable[[AsyncSession], ReservationRepository]


class ReminderSender(Protocol):
    async def send_reminder(self, reservation: Reservation) -> bool: ...


class ReminderOutcome(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ReminderScanResult:
    sent: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    def record(self, reservation_id: int, outcome: ReminderOutcome) -> None:
        getattr(self, outcome.value).append(reservation_id)


async def deliver_reminder(
    session_factory: async_sessionmaker[AsyncSession],
    repo_factory: RepoFactory,
    sender: ReminderSender,
    reservation: Reservation,
    *,
    lease: timedelta,
) -> ReminderOutcome:
    with storage_errors():
        async with session_factory() as session, session.begin():
            claimed = await repo_factory(session).claim_reminder(reservation.id, now=utc_now_naive(), lease=lease)
    if not claimed:
        return ReminderOutcome.SKIPPED

    try:
        delivered = await sender.send_reminder(reservation)
    except Exception:
        logger.exception("reminder dispatch raised for reservation %s", reservation.id)
        delivered = False

    with storage_errors():
        async with session_factory() as session, session.begin():
            repo = repo_factory(session)
            if delivered:
                await repo.complete_reminder(reservation.id)
            else:
                await repo.release_reminder(reservation.id)

    if not delivered:
        logger.warning("reminder for reservation %s not delivered; will retry", reservation.id)
        return ReminderOutcome.FAILED

    emit_audit_log(
        action="reservation.reminded",
        initiator="system",
        reservation_id=reservation.id,
        reservation_date=reservation.date.isoformat(),
        reservation_time=reservation.time,
        guests=reservation.guests,
        status_from=None,
        status_to=None,
    )
    return ReminderOutcome.SENT


async def scan_reminders(
    session_factory: async_sessionmaker[AsyncSession],
    repo_factory: RepoFactory,
    sender: ReminderSender,
    *,
    today: date,
    lookahead_days: int,
    lease: timedelta,
) -> ReminderScanResult:
    async with session_factory() as session:
        due = await repo_factory(session).list_due_reminders(today, today + timedelta(days=lookahead_days))

    result = ReminderScanResult()
    for reservation in due:
        try:
            outcome = await deliver_reminder(session_factory, repo_factory, sender, reservation, lease=lease)
        except TransientStorageError:
            logger.warning("storage unavailable while reminding reservation %s", reservation.id)
            outcome = ReminderOutcome.FAILED
        result.record(reservation.id, outcome)

    logger.info(
        "reminder scan done: %d sent, %d failed, %d skipped",
        len(result.sent),
        len(result.failed),
        len(result.skipped),
    )
    return result


class ReminderScheduler:
    """Runs a reminder scan now and then every ``interval_seconds`` until stopped."""

    def __init__(self, scan: Callable[[], Awaitable[ReminderScanResult]], *, interval_seconds: float) -> None:
        self._scan = scan
        self.interval_seconds = interval_seconds
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> ReminderScanResult | None:
        async with self._lock:
            try:
                return await self._scan()
            except TransientStorageError:
                logger.warning("storage unavailable; reminder scan postponed to next interval")
                return None

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("reminder scan failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="reminder-scheduler")
        logger.info("reminder scheduler started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("reminder scheduler stopped")
