from datetime import date
from typing import Any, Dict, List

from ..domain.calendar import SlotCalendar
from ..domain.repositories import ReservationRepository
from ..domain.services import SlotSnapshot


async def slot_snapshot(
    res_repo: ReservationRepository,
    calendar: SlotCalendar,
    *,
    day: date,
    time: str,
    exclude_id: int | None = None,
) -> SlotSnapshot:
    reserved = await res_repo.sum_reserved(day, time, exclude_id=exclude_id)
    return SlotSnapshot(capacity=calendar.capacity_for(time), reserved=reserved)


async def remaining_capacity(
    res_repo: ReservationRepository,
    calendar: SlotCalendar,
    *,
    day: date,
    time: str,
    exclude_id: int | None = None,
) -> int:
    snapshot = await slot_snapshot(res_repo, calendar, day=day, time=time, exclude_id=exclude_id)
    return snapshot.remaining


async def has_capacity_for(
    res_repo: ReservationRepository,
    calendar: SlotCalendar,
    *,
    day: date,
    time: str,
    guests: int,
    exclude_id: int | None = None,
) -> bool:
    remaining = await remaining_capacity(res_repo, calendar, day=day, time=time, exclude_id=exclude_id)
    return guests <= remaining


async def list_availability(
    res_repo: ReservationRepository,
    calendar: SlotCalendar,
    *,
    day: date,
    guests: int,
) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    for time in calendar.slots_for_date(day):
        snapshot = await slot_snapshot(res_repo, calendar, day=day, time=time)
        items.append(
            {
                "time": time,
                "available": guests <= snapshot.remaining,
                "remaining": snapshot.remaining,
                "max_capacity": snapshot.capacity,
            }
        )
    return items
