from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_serializer

from .domain.services import BookingRequest, DashboardSummary
from .models import Reservation, ReservationOrigin, ReservationStatus, SecurityEvent, SecurityEventType


def _utc_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc).isoformat()


class SlotAvailability(BaseModel):
    time: str
    available: bool
    remaining: int
    max_capacity: int


class AvailabilityRead(BaseModel):
    date: date
    guests: int
    slots: List[SlotAvailability]


class ReservationCreate(BaseModel):
    # Untyped: the engine checks every field so errors come back in priority order.
    customer_name: Optional[Any] = None
    email: Optional[Any] = None
    phone: Optional[Any] = None
    date: Optional[Any] = None
    time: Optional[Any] = None
    guests: Optional[Any] = None
    special_requests: Optional[Any] = None

    def to_request(self) -> BookingRequest:
        return BookingRequest(
            customer_name=self.customer_name,
            email=self.email,
            phone=self.phone,
            date=self.date,
            time=self.time,
            guests=self.guests,
            special_requests=self.special_requests,
        )


class StatusUpdate(BaseModel):
    status: ReservationStatus


class ReservationRead(BaseModel):
    reservation_id: int
    customer_name: str
    email: str
    phone: str
    date: date
    time: str
    guests: int
    special_requests: Optional[str]
    status: ReservationStatus
    created_by: ReservationOrigin
    reminder_sent: bool
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @field_serializer("created_at", "confirmed_at", "cancelled_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return _utc_iso(dt)

    @classmethod
    def from_db(cls, *, reservation: Reservation) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            customer_name=reservation.customer_name,
            email=reservation.email,
            phone=reservation.phone,
            date=reservation.date,
            time=reservation.time,
            guests=reservation.guests,
            special_requests=reservation.special_requests,
            status=reservation.status,
            created_by=reservation.created_by,
            reminder_sent=reservation.reminder_sent,
            created_at=reservation.created_at,
            confirmed_at=reservation.confirmed_at,
            cancelled_at=reservation.cancelled_at,
        )


class SummaryRead(BaseModel):
    total: int
    confirmed: int
    pending: int
    cancelled: int
    total_guests: int
    average_party_size: float

    @classmethod
    def from_domain(cls, summary: DashboardSummary) -> "SummaryRead":
        return cls(
            total=summary.total,
            confirmed=summary.confirmed,
            pending=summary.pending,
            cancelled=summary.cancelled,
            total_guests=summary.total_guests,
            average_party_size=summary.average_party_size,
        )


class DashboardRead(BaseModel):
    date: date
    summary: SummaryRead
    reservations: List[ReservationRead]


class StatsRead(BaseModel):
    start: date
    end: date
    summary: SummaryRead


class ReminderRead(BaseModel):
    outcome: str
    reservation: ReservationRead


class ErrorBody(BaseModel):
    kind: str
    message: str
    code: Optional[str] = None
    errors: Dict[str, str] = Field(default_factory=dict)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenRead(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    name: str
    capabilities: List[str]


class SecurityEventRead(BaseModel):
    event: SecurityEventType
    actor: str
    timestamp: datetime

    @field_serializer("timestamp")
    def _ser_datetime(self, dt: datetime) -> Optional[str]:
        return _utc_iso(dt)

    @classmethod
    def from_db(cls, *, event: SecurityEvent) -> "SecurityEventRead":
        return cls(event=event.event, actor=event.actor, timestamp=event.created_at)
