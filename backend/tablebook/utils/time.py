from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_today(tz_name: str) -> date:
    """Calendar date at the restaurant, which is what bookings and reminders are keyed on."""
    return datetime.now(ZoneInfo(tz_name)).date()
