from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping

from .errors import InvalidDateError

_TIME_FORMAT = "%H:%M"


def parse_time(value: str) -> datetime:
    """Parse ``HH:MM`` into a datetime on an arbitrary day. Raises ValueError."""
    if len(value) != 5:
        raise ValueError(f"time must be HH:MM, got {value!r}")
    return datetime.strptime(value, _TIME_FORMAT)


def parse_date(value: object) -> date:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        raise InvalidDateError()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateError()
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise InvalidDateError() from exc


@dataclass(frozen=True)
class ServiceWindow:
    first_seating: str
    last_seating: str

    @classmethod
    def parse(cls, raw: str) -> "ServiceWindow":
        start, sep, end = raw.partition("-")
        if not sep:
            raise ValueError(f"service window must be HH:MM-HH:MM, got {raw!r}")
        window = cls(first_seating=start.strip(), last_seating=end.strip())
        if parse_time(window.first_seating) > parse_time(window.last_seating):
            raise ValueError(f"service window starts after it ends: {raw!r}")
        return window

    def seatings(self, interval: timedelta) -> list[str]:
        current = parse_time(self.first_seating)
        last = parse_time(self.last_seating)
        times: list[str] = []
        while current <= last:
            times.append(current.strftime(_TIME_FORMAT))
            current += interval
        return times


@dataclass(frozen=True)
class SlotCalendar:
    """Static daily schedule of bookable seating times with a capacity per slot."""

    windows: tuple[ServiceWindow, ...]
    interval_minutes: int
    max_capacity_per_slot: int
    capacity_overrides: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.interval_minutes < 1:
            raise ValueError("interval_minutes must be >= 1")
        if self.max_capacity_per_slot < 1:
            raise ValueError("max_capacity_per_slot must be >= 1")
        object.__setattr__(self, "_slots", self._build_slots())

    @classmethod
    def from_config(
        cls,
        windows: Iterable[str],
        *,
        interval_minutes: int,
        max_capacity_per_slot: int,
        capacity_overrides: Mapping[str, int] | None = None,
    ) -> "SlotCalendar":
        return cls(
            windows=tuple(ServiceWindow.parse(w) for w in windows),
            interval_minutes=interval_minutes,
            max_capacity_per_slot=max_capacity_per_slot,
            capacity_overrides=dict(capacity_overrides or {}),
        )

    def _build_slots(self) -> tuple[str, ...]:
        step = timedelta(minutes=self.interval_minutes)
        times: set[str] = set()
        for window in self.windows:
            times.update(window.seatings(step))
        return tuple(sorted(times))

    def slots_for_date(self, day: date) -> list[str]:
        if isinstance(day, datetime) or not isinstance(day, date):
            raise InvalidDateError()
        return list(self._slots)  # type: ignore[attr-defined]

    def is_slot(self, day: date, time_value: str) -> bool:
        return time_value in self.slots_for_date(day)

    def capacity_for(self, time_value: str) -> int:
        return self.capacity_overrides.get(time_value, self.max_capacity_per_slot)
