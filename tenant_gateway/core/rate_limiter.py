import math
import time
import logging
from datetime import datetime, timezone

from tenant_gateway.domain.interfaces import StateStore, RateLimitResult
from tenant_gateway.domain.keys import rate_window_key

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window request counter per (tenant, user).

    The counter key embeds the window bucket and expires after one window, so
    windows roll over purely by TTL; nothing ever resets a counter explicitly.
    Every call increments, including calls that end up rejected.
    """

    def __init__(self, store: StateStore):
        self.store = store

    @staticmethod
    def bucket(now: float, window_seconds: int) -> int:
        return int(now // window_seconds)

    async def hit(self, tenant_id: str, user_id: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = time.time()
        bucket = self.bucket(now, window_seconds)
        key = rate_window_key(tenant_id, user_id, bucket)

        current = await self.store.incr(key)
        if current == 1:
            await self.store.expire(key, window_seconds)
        else:
            # A crash between INCR and EXPIRE would leave the counter immortal
            ttl = await self.store.ttl(key)
            if ttl == -1:
                logger.warning(f"Rate window {key} had no TTL, repairing")
                await self.store.expire(key, window_seconds)

        window_end = (bucket + 1) * window_seconds
        reset_at = datetime.fromtimestamp(math.ceil(window_end), tz=timezone.utc)

        return RateLimitResult(
            allowed=current <= limit,
            count=current,
            remaining=max(0, limit - current),
            reset_at=reset_at,
            limit=limit,
            window_seconds=window_seconds,
        )
