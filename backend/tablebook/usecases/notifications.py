"""Customer emails sent after a booking or status change has been committed."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, Protocol

from ..models import Reservation, ReservationStatus
from .reminders import ReminderSender

logger = logging.getLogger(__name__)


class BookingNotifier(Protocol):
    async def send_confirmation(self, reservation: Reservation) -> bool: ...

    async def send_cancellation(self, reservation: Reservation) -> bool: ...


class CustomerMailer(ReminderSender, BookingNotifier, Protocol):
    """Sends every customer email: reminders, confirmations and cancellations."""


def _email_for_change(
    notifier: BookingNotifier, previous: ReservationStatus, current: ReservationStatus
) -> Optional[Callable[[Reservation], Awaitable[bool]]]:
    if previous == current:
        return None
    if current == ReservationStatus.CANCELLED:
        return notifier.send_cancellation
    if previous == ReservationStatus.PENDING and current == ReservationStatus.CONFIRMED:
        return notifier.send_confirmation
    return None


async def _deliver(send: Callable[[Reservation], Awaitable[bool]], reservation: Reservation, kind: str) -> bool:
    try:
        delivered = await send(reservation)
    except Exception:
        logger.exception("%s email raised for reservation %s", kind, reservation.id)
        return False
    if not delivered:
        logger.warning("%s email for reservation %s not delivered", kind, reservation.id)
    return delivered


async def notify_created(notifier: BookingNotifier, reservation: Reservation) -> bool:
    return await _deliver(notifier.send_confirmation, reservation, "confirmation")


async def notify_status_change(
    notifier: BookingNotifier, reservation: Reservation, previous: ReservationStatus
) -> Optional[bool]:
    """Send the email a transition calls for. Returns None when the transition sends nothing."""
    send = _email_for_change(notifier, previous, reservation.status)
    if send is None:
        return None
    kind = "cancellation" if reservation.status == ReservationStatus.CANCELLED else "confirmation"
    return await _deliver(send, reservation, kind)
