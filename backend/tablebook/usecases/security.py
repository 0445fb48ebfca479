from typing import List

from ..domain.repositories import SecurityEventRepository
from ..models import SecurityEvent, SecurityEventType


async def record_event(
    event_repo: SecurityEventRepository,
    *,
    event: SecurityEventType,
    actor: str,
    max_entries: int,
) -> SecurityEvent:
    """Append to the security log; only the newest ``max_entries`` entries are retained."""
    if max_entries < 1:
        raise ValueError("max_entries must be >= 1")
    return await event_repo.append(event, actor.strip() or "unknown", max_entries=max_entries)


async def list_events(event_repo: SecurityEventRepository, *, limit: int) -> List[SecurityEvent]:
    return await event_repo.list_recent(limit)
