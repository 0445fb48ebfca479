import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from ..models import Reservation, ReservationStatus
from .calendar import SlotCalendar, parse_date, parse_time
from .errors import AvailabilityError, InvalidDateError, SlotNotFoundError, ValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_SPECIAL_REQUESTS_LENGTH = 2000

ALLOWED_TRANSITIONS: frozenset[tuple[ReservationStatus, ReservationStatus]] = frozenset(
    {
        (ReservationStatus.PENDING, ReservationStatus.CONFIRMED),
        (ReservationStatus.PENDING, ReservationStatus.CANCELLED),
        (ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED),
        (ReservationStatus.CANCELLED, ReservationStatus.CONFIRMED),
    }
)


@dataclass(frozen=True)
class BookingRequest:
    """Raw booking input exactly as received. Every field may be missing or of the wrong type."""

    customer_name: object = None
    email: object = None
    phone: object = None
    date: object = None
    time: object = None
    guests: object = None
    special_requests: object = None


@dataclass(frozen=True)
class ValidBooking:
    customer_name: str
    email: str
    phone: str
    date: date
    time: str
    guests: int
    special_requests: Optional[str]


@dataclass(frozen=True)
class SlotSnapshot:
    capacity: int
    reserved: int

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.reserved, 0)


@dataclass(frozen=True)
class DashboardSummary:
    total: int
    confirmed: int
    pending: int
    cancelled: int
    total_guests: int
    average_party_size: float


def validate_booking(
    request: BookingRequest,
    calendar: SlotCalendar,
    *,
    today: date,
    max_guests: int,
    advance_booking_days: int,
) -> ValidBooking:
    """
    Check a booking request rule by rule and raise for the first rule that fails:
    field format, party size, slot membership. Capacity is checked later under the slot lock.
    """
    errors: dict[str, str] = {}
    name = _text(request.customer_name)
    email = _text(request.email)
    phone = _text(request.phone)
    time_value = _text(request.time)
    notes = _text(request.special_requests)

    if not name:
        errors["customer_name"] = "name is required"
    if not email:
        errors["email"] = "email is required"
    elif not EMAIL_PATTERN.match(email):
        errors["email"] = "email is not valid"
    if not phone:
        errors["phone"] = "phone is required"

    try:
        day = parse_date(request.date)
    except InvalidDateError as exc:
        errors.update(exc.errors)
        day = today
    if day < today:
        errors["date"] = "date is in the past"
    elif day > today + timedelta(days=advance_booking_days):
        errors["date"] = f"bookings open at most {advance_booking_days} days ahead"

    if not time_value:
        errors["time"] = "time is required"
    else:
        try:
            parse_time(time_value)
        except ValueError:
            errors["time"] = "time must be HH:MM"

    if request.special_requests is not None and not isinstance(request.special_requests, str):
        errors["special_requests"] = "special requests must be text"
    elif len(notes) > MAX_SPECIAL_REQUESTS_LENGTH:
        errors["special_requests"] = f"special requests must be at most {MAX_SPECIAL_REQUESTS_LENGTH} characters"

    if errors:
        raise ValidationError(errors, code="invalid_field")

    guests = request.guests
    if isinstance(guests, bool) or not isinstance(guests, int) or not 1 <= guests <= max_guests:
        raise ValidationError({"guests": f"guests must be between 1 and {max_guests}"}, code="invalid_guests")

    if not calendar.is_slot(day, time_value):
        raise SlotNotFoundError(time_value)

    return ValidBooking(
        customer_name=name,
        email=email,
        phone=phone,
        date=day,
        time=time_value,
        guests=guests,
        special_requests=notes or None,
    )


def _text(value: object) -> str:
    """Stripped string value; anything that is not a string counts as missing."""
    return value.strip() if isinstance(value, str) else ""


def check_capacity(snapshot: SlotSnapshot, *, guests: int) -> int:
    """Return remaining capacity after seating ``guests``; raise AvailabilityError if it does not fit."""
    if guests > snapshot.remaining:
        raise AvailabilityError(remaining=snapshot.remaining, requested=guests)
    return snapshot.remaining - guests


def plan_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    """Return True when the transition changes state. Same-status and unlisted transitions are no-ops."""
    return (current, target) in ALLOWED_TRANSITIONS


def matches_search(reservation: Reservation, term: str) -> bool:
    lowered = term.lower()
    return (
        lowered in reservation.customer_name.lower()
        or lowered in reservation.email.lower()
        or term in reservation.phone
        or term == str(reservation.id)
    )


def filter_reservations(
    reservations: Iterable[Reservation],
    *,
    search: Optional[str] = None,
    status: Optional[ReservationStatus] = None,
) -> list[Reservation]:
    term = (search or "").strip()
    return [
        r
        for r in reservations
        if (status is None or r.status == status) and (not term or matches_search(r, term))
    ]


def summarize(reservations: Iterable[Reservation]) -> DashboardSummary:
    items = list(reservations)
    active = [r for r in items if r.status != ReservationStatus.CANCELLED]
    total_guests = sum(r.guests for r in active)
    return DashboardSummary(
        total=len(items),
        confirmed=sum(1 for r in items if r.status == ReservationStatus.CONFIRMED),
        pending=sum(1 for r in items if r.status == ReservationStatus.PENDING),
        cancelled=sum(1 for r in items if r.status == ReservationStatus.CANCELLED),
        total_guests=total_guests,
        average_party_size=round(total_guests / len(active), 2) if active else 0.0,
    )
