from fastapi import APIRouter, Depends, Query

from ..deps import get_engine
from ..domain.calendar import parse_date
from ..domain.errors import ReservationError, ValidationError
from ..schemas import AvailabilityRead, SlotAvailability
from ..usecases.engine import ReservationEngine
from .errors import to_http_error

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/availability", response_model=AvailabilityRead)
async def list_availability(
    date: str = Query(..., description="Calendar date (YYYY-MM-DD)"),
    guests: int = Query(default=2, ge=1, description="Party size used to flag full slots"),
    engine: ReservationEngine = Depends(get_engine),
) -> AvailabilityRead:
    try:
        day = parse_date(date)
        if guests > engine.settings.max_guests_per_reservation:
            raise ValidationError(
                {"guests": f"guests must be between 1 and {engine.settings.max_guests_per_reservation}"},
                code="invalid_guests",
            )
        rows = await engine.availability(day, guests)
    except ReservationError as exc:
        raise to_http_error(exc)
    return AvailabilityRead(
        date=day,
        guests=guests,
        slots=[SlotAvailability(**row) for row in rows],
    )
