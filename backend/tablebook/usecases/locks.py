from __future__ import annotations

import asyncio
from collections import Counter
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator

SlotKey = tuple[date, str]


class SlotLocks:
    """One asyncio.Lock per (date, time) slot, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[SlotKey, asyncio.Lock] = {}
        self._users: Counter[SlotKey] = Counter()

    @asynccontextmanager
    async def hold(self, day: date, time: str) -> AsyncIterator[None]:
        key = (day, time)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] <= 0:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
