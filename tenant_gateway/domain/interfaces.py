"""Domain interfaces for the shared state store."""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class StateStore(ABC):
    """Key-value store with per-key TTL, atomic counters and append-only lists.

    Values are strings (JSON documents for records). `ttl` follows Redis
    semantics: -2 when the key is missing, -1 when it has no expiry.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]: pass
    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None: pass
    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool: pass
    @abstractmethod
    async def delete(self, key: str) -> None: pass
    @abstractmethod
    async def incr(self, key: str) -> int: pass
    @abstractmethod
    async def expire(self, key: str, seconds: int) -> None: pass
    @abstractmethod
    async def ttl(self, key: str) -> int: pass
    @abstractmethod
    async def rpush(self, key: str, value: str) -> int: pass
    @abstractmethod
    async def lrange(self, key: str, start: int = 0, end: int = -1) -> List[str]: pass

    @abstractmethod
    async def decrement_field(self, key: str, field: str, amount: int = 1) -> Optional[int]:
        """Atomically subtract `amount` from an integer field of a JSON document.

        Applied only when the current value is at least `amount`. Returns the
        new value, or None when the key is missing or the value is too low.
        The key's TTL is preserved.
        """

    @abstractmethod
    async def increment_field(self, key: str, field: str, amount: int = 1) -> Optional[int]:
        """Atomically add `amount` to an integer field. None if the key is missing."""

    @abstractmethod
    async def ping(self) -> bool: pass


class RateLimitResult(BaseModel):
    allowed: bool
    count: int
    remaining: int
    reset_at: datetime
    limit: int
    window_seconds: int

    def headers(self) -> dict:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at.timestamp())),
        }
        if not self.allowed:
            retry_after = max(1, int(self.reset_at.timestamp() - datetime.now(self.reset_at.tzinfo).timestamp()))
            headers["Retry-After"] = str(retry_after)
        return headers
