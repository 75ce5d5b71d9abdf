"""Redis Store Implementations."""
from typing import List, Optional
import logging

import redis.asyncio as redis

from tenant_gateway.domain.interfaces import StateStore
from tenant_gateway.adapters.redis.client import get_redis

logger = logging.getLogger(__name__)

# Conditional decrement of a JSON field, atomic inside Redis.
# Returns {applied, value}; value is -1 when the key is missing.
DECREMENT_FIELD_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
if not raw then
    return {0, -1}
end
local doc = cjson.decode(raw)
local current = tonumber(doc[ARGV[1]]) or 0
local amount = tonumber(ARGV[2])
if current < amount then
    return {0, current}
end
doc[ARGV[1]] = current - amount
redis.call('SET', KEYS[1], cjson.encode(doc), 'KEEPTTL')
return {1, current - amount}
"""

INCREMENT_FIELD_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
if not raw then
    return {0, -1}
end
local doc = cjson.decode(raw)
local current = tonumber(doc[ARGV[1]]) or 0
doc[ARGV[1]] = current + tonumber(ARGV[2])
redis.call('SET', KEYS[1], cjson.encode(doc), 'KEEPTTL')
return {1, current + tonumber(ARGV[2])}
"""


class RedisStateStore(StateStore):
    def __init__(self, client: Optional[redis.Redis] = None):
        self._client = client

    async def _redis(self) -> redis.Redis:
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def get(self, key: str) -> Optional[str]:
        r = await self._redis()
        return await r.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        r = await self._redis()
        await r.set(key, value, ex=ttl)

    async def set_if_absent(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        r = await self._redis()
        return bool(await r.set(key, value, ex=ttl, nx=True))

    async def delete(self, key: str) -> None:
        r = await self._redis()
        await r.delete(key)

    async def incr(self, key: str) -> int:
        r = await self._redis()
        return int(await r.incr(key))

    async def expire(self, key: str, seconds: int) -> None:
        r = await self._redis()
        await r.expire(key, seconds)

    async def ttl(self, key: str) -> int:
        r = await self._redis()
        return int(await r.ttl(key))

    async def rpush(self, key: str, value: str) -> int:
        r = await self._redis()
        return int(await r.rpush(key, value))

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        r = await self._redis()
        return list(await r.lrange(key, start, end))

    async def decrement_field(self, key: str, field: str, amount: int = 1) -> Optional[int]:
        r = await self._redis()
        applied, value = await r.eval(DECREMENT_FIELD_SCRIPT, 1, key, field, amount)
        if not int(applied):
            return None
        return int(value)

    async def increment_field(self, key: str, field: str, amount: int = 1) -> Optional[int]:
        r = await self._redis()
        applied, value = await r.eval(INCREMENT_FIELD_SCRIPT, 1, key, field, amount)
        if not int(applied):
            return None
        return int(value)

    async def ping(self) -> bool:
        r = await self._redis()
        return bool(await r.ping())
