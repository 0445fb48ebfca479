from __future__ import annotations

import logging
from typing import Any

import httpx

from ..models import Reservation, ReservationStatus

logger = logging.getLogger(__name__)


def _when(reservation: Reservation) -> str:
    return f"{reservation.date.isoformat()} {reservation.time}"


def _party(reservation: Reservation) -> str:
    return "1 guest" if reservation.guests == 1 else f"{reservation.guests} guests"


def _message(kind: str, reservation: Reservation, *, subject: str, lines: list[str]) -> dict[str, Any]:
    return {
        "type": kind,
        "to": reservation.email,
        "subject": subject,
        "text": "\n".join(lines),
        "reservation_id": reservation.id,
    }


def reminder_message(reservation: Reservation, *, restaurant_name: str) -> dict[str, Any]:
    when = _when(reservation)
    lines = [
        f"Hello {reservation.customer_name},",
        "",
        f"This is a reminder of your table at {restaurant_name} on {when} for {_party(reservation)}.",
    ]
    if reservation.special_requests:
        lines.append(f"Your requests: {reservation.special_requests}")
    lines += ["", f"Reservation number: {reservation.id}. If your plans change, please call us."]
    return _message(
        "reminder", reservation, subject=f"Reminder: your reservation at {restaurant_name} ({when})", lines=lines
    )


def confirmation_message(reservation: Reservation, *, restaurant_name: str) -> dict[str, Any]:
    when = _when(reservation)
    if reservation.status == ReservationStatus.CONFIRMED:
        subject = f"Reservation confirmed at {restaurant_name} ({when})"
        opening = f"Your table at {restaurant_name} on {when} for {_party(reservation)} is confirmed."
    else:
        subject = f"Reservation received at {restaurant_name} ({when})"
        opening = (
            f"We have received your request for a table at {restaurant_name} on {when} "
            f"for {_party(reservation)}. We will confirm it shortly."
        )
    lines = [f"Hello {reservation.customer_name},", "", opening]
    if reservation.special_requests:
        lines.append(f"Your requests: {reservation.special_requests}")
    lines += ["", f"Reservation number: {reservation.id}."]
    return _message("confirmation", reservation, subject=subject, lines=lines)


def cancellation_message(reservation: Reservation, *, restaurant_name: str) -> dict[str, Any]:
    when = _when(reservation)
    lines = [
        f"Hello {reservation.customer_name},",
        "",
        f"Your reservation at {restaurant_name} on {when} for {_party(reservation)} has been cancelled.",
        "",
        f"Reservation number: {reservation.id}. Please call us if this is unexpected.",
    ]
    return _message(
        "cancellation", reservation, subject=f"Reservation cancelled at {restaurant_name} ({when})", lines=lines
    )


class HttpReminderSender:
    """Posts customer emails to an HTTP mail relay. Any 2xx counts as delivered."""

    def __init__(
        self,
        url: str,
        *,
        restaurant_name: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.restaurant_name = restaurant_name
        self.timeout = timeout
        self._transport = transport

    async def send_reminder(self, reservation: Reservation) -> bool:
        return await self._post(reminder_message(reservation, restaurant_name=self.restaurant_name), reservation)

    async def send_confirmation(self, reservation: Reservation) -> bool:
        return await self._post(confirmation_message(reservation, restaurant_name=self.restaurant_name), reservation)

    async def send_cancellation(self, reservation: Reservation) -> bool:
        return await self._post(cancellation_message(reservation, restaurant_name=self.restaurant_name), reservation)

    async def _post(self, message: dict[str, Any], reservation: Reservation) -> bool:
        kind = message["type"]
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=message)
        except httpx.TimeoutException:
            logger.warning("mail relay timeout sending %s for reservation %s", kind, reservation.id)
            return False
        except httpx.RequestError as exc:
            logger.warning("mail relay request error sending %s for reservation %s: %s", kind, reservation.id, exc)
            return False

        if response.is_success:
            logger.info("%s sent to %s for reservation %s", kind, reservation.email, reservation.id)
            return True
        logger.warning(
            "mail relay returned %s sending %s for reservation %s: %s",
            response.status_code,
            kind,
            reservation.id,
            response.text,
        )
        return False


class LoggingReminderSender:
    """Used when no mail relay is configured: writes each email to the log and reports success."""

    def __init__(self, *, restaurant_name: str) -> None:
        self.restaurant_name = restaurant_name

    async def send_reminder(self, reservation: Reservation) -> bool:
        return self._log(reminder_message(reservation, restaurant_name=self.restaurant_name))

    async def send_confirmation(self, reservation: Reservation) -> bool:
        return self._log(confirmation_message(reservation, restaurant_name=self.restaurant_name))

    async def send_cancellation(self, reservation: Reservation) -> bool:
        return self._log(cancellation_message(reservation, restaurant_name=self.restaurant_name))

    def _log(self, message: dict[str, Any]) -> bool:
        logger.info("%s (not sent, no relay configured) to %s: %s", message["type"], message["to"], message["subject"])
        return True
