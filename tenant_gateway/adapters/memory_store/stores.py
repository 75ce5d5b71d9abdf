"""Memory Store Implementations."""
from typing import Dict, List, Optional, Tuple
import asyncio
import json
import logging
import time

from tenant_gateway.domain.interfaces import StateStore

logger = logging.getLogger(__name__)


class MemoryStateStore(StateStore):
    """In-process StateStore for dev mode and tests.

    Expiry is lazy: a key past its deadline is dropped on the next access.
    Mutations are serialized by a single lock, which gives the same atomicity
    the Redis adapter gets from single commands and Lua scripts.
    """

    def __init__(self):
        # key -> (value, expires_at or None)
        self._values: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lists: Dict[str, Tuple[List[str], Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str):
        now = time.time()
        for table in (self._values, self._lists):
            entry = table.get(key)
            if entry is not None and entry[1] is not None and entry[1] <= now:
                del table[key]
        return self._values.get(key), self._lists.get(key)

    @staticmethod
    def _deadline(ttl: Optional[int]) -> Optional[float]:
        return time.time() + ttl if ttl else None

    async def get(self, key: str) -> Optional[str]:
        value, _ = self._live(key)
        return value[0] if value else None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        async with self._lock:
            self._lists.pop(key, None)
            self._values[key] = (value, self._deadline(ttl))

    async def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        async with self._lock:
            existing, listed = self._live(key)
            if existing or listed:
                return False
            self._values[key] = (value, self._deadline(ttl))
            return True

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._values.pop(key, None)
            self._lists.pop(key, None)

    async def incr(self, key: str) -> int:
        async with self._lock:
            existing, _ = self._live(key)
            if existing:
                count = int(existing[0]) + 1
                self._values[key] = (str(count), existing[1])
            else:
                count = 1
                self._values[key] = ("1", None)
            return count

    async def expire(self, key: str, seconds: int) -> None:
        async with self._lock:
            existing, listed = self._live(key)
            if existing:
                self._values[key] = (existing[0], self._deadline(seconds))
            elif listed:
                self._lists[key] = (listed[0], self._deadline(seconds))

    async def ttl(self, key: str) -> int:
        existing, listed = self._live(key)
        entry = existing or listed
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return max(0, int(round(entry[1] - time.time())))

    async def rpush(self, key: str, value: str) -> int:
        async with self._lock:
            _, listed = self._live(key)
            items, deadline = listed if listed else ([], None)
            items.append(value)
            self._lists[key] = (items, deadline)
            return len(items)

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        _, listed = self._live(key)
        if not listed:
            return []
        items = listed[0]
        stop = len(items) if end == -1 else end + 1
        return list(items[start:stop])

    async def decrement_field(self, key: str, field: str, amount: int = 1) -> Optional[int]:
        async with self._lock:
            existing, _ = self._live(key)
            if not existing:
                return None
            doc = json.loads(existing[0])
            current = int(doc.get(field) or 0)
            if current < amount:
                return None
            doc[field] = current - amount
            self._values[key] = (json.dumps(doc), existing[1])
            return doc[field]

    async def increment_field(self, key: str, field: str, amount: int = 1) -> Optional[int]:
        async with self._lock:
            existing, _ = self._live(key)
            if not existing:
                return None
            doc = json.loads(existing[0])
            doc[field] = int(doc.get(field) or 0) + amount
            self._values[key] = (json.dumps(doc), existing[1])
            return doc[field]

    async def ping(self) -> bool:
        return True
