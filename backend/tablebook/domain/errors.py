from __future__ import annotations


class ReservationError(Exception):
    """Base class for reservation domain errors."""


class ValidationError(ReservationError):
    """Malformed or missing input. ``errors`` maps field name to message in priority order."""

    code = "invalid"

    def __init__(self, errors: dict[str, str], *, code: str | None = None) -> None:
        self.errors = dict(errors)
        if code is not None:
            self.code = code
        super().__init__("; ".join(f"{field}: {message}" for field, message in self.errors.items()))

    @property
    def first_field(self) -> str | None:
        return next(iter(self.errors), None)


class InvalidDateError(ValidationError):
    code = "invalid_date"

    def __init__(self, message: str = "date must be a calendar date (YYYY-MM-DD)") -> None:
        super().__init__({"date": message})


class SlotNotFoundError(ValidationError):
    code = "slot_not_found"

    def __init__(self, time_value: str) -> None:
        self.time = time_value
        super().__init__({"time": f"{time_value} is not a bookable slot for this date"})


class AvailabilityError(ReservationError):
    def __init__(self, *, remaining: int, requested: int) -> None:
        self.remaining = remaining
        self.requested = requested
        super().__init__(f"not enough capacity: {remaining} seats left, {requested} requested")


class NotFoundError(ReservationError):
    pass


class TransientStorageError(ReservationError):
    pass
