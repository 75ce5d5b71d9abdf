"""Response cache for non-streaming completions."""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Tuple

from tenant_gateway.core.config import settings
from tenant_gateway.domain.interfaces import StateStore
from tenant_gateway.domain.keys import cache_key as build_cache_key
from tenant_gateway.domain.models import TenantConfig

logger = logging.getLogger(__name__)


@dataclass
class ProviderResponse:
    status_code: int
    body: bytes
    content_type: str = "application/json"


Fetch = Callable[[], Awaitable[ProviderResponse]]


class InFlightRegistry:
    """At most one upstream fetch per (tenant, cache key) inside this process.

    The first caller on a miss becomes the leader and runs the fetch; callers
    arriving while it runs await the leader's future instead of fetching.
    """

    def __init__(self):
        self._pending: Dict[Tuple[str, str], asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def join(self, key: Tuple[str, str]) -> Optional[asyncio.Future]:
        return self._pending.get(key)

    def lead(self, key: Tuple[str, str]) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        return future

    def finish(self, key: Tuple[str, str]) -> None:
        self._pending.pop(key, None)


def cache_applies(tenant: TenantConfig, stream: bool, key: Optional[str]) -> bool:
    """Streaming requests never touch the cache; neither do disabled tenants."""
    return (not stream) and bool(key) and tenant.caching.enabled


class ResponseCache:
    def __init__(self, store: StateStore, inflight: InFlightRegistry):
        self.store = store
        self.inflight = inflight

    async def lookup(self, tenant_id: str, key: str) -> Optional[ProviderResponse]:
        raw = await self.store.get(build_cache_key(tenant_id, key))
        if raw is None:
            return None
        return ProviderResponse(status_code=200, body=raw.encode("utf-8"))

    async def store_payload(self, tenant_id: str, key: str, payload: ProviderResponse, ttl: int) -> None:
        await self.store.set(build_cache_key(tenant_id, key), payload.body.decode("utf-8"), ttl=ttl)

    async def get_or_fetch(
        self, tenant: TenantConfig, key: str, fetch: Fetch
    ) -> Tuple[ProviderResponse, bool]:
        """Return (payload, hit). Only successful JSON responses are stored.

        If the leader is cancelled before it has a result, its followers go
        round again and one of them leads the next fetch.
        """
        tenant_id = tenant.tenant_id
        slot = (tenant_id, key)
        while True:
            cached = await self.lookup(tenant_id, key)
            if cached is not None:
                logger.info("cache_hit", extra={"tenant_id": tenant_id, "cache_key": key})
                return cached, True

            pending = self.inflight.join(slot)
            if pending is None:
                return await self._lead(tenant, key, fetch), False

            logger.info("cache_fetch_joined", extra={"tenant_id": tenant_id, "cache_key": key})
            try:
                # shield: a cancelled follower must not cancel the leader's fetch
                return await asyncio.shield(pending), False
            except asyncio.CancelledError:
                if not pending.cancelled() or asyncio.current_task().cancelling():
                    raise
                logger.info("cache_leader_cancelled", extra={"tenant_id": tenant_id, "cache_key": key})

    async def _lead(self, tenant: TenantConfig, key: str, fetch: Fetch) -> ProviderResponse:
        tenant_id = tenant.tenant_id
        slot = (tenant_id, key)
        ttl = tenant.caching.ttl_seconds(settings.DEFAULT_CACHE_TTL_SECONDS)
        future = self.inflight.lead(slot)
        try:
            payload = await fetch()
            if 200 <= payload.status_code < 300 and _is_json(payload.body):
                await self.store_payload(tenant_id, key, payload, ttl)
                logger.info("cache_miss_stored", extra={"tenant_id": tenant_id, "cache_key": key, "ttl": ttl})
            future.set_result(payload)
            return payload
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Followers re-raise it; mark retrieved so an unjoined future is not reported
            future.exception()
            raise
        finally:
            self.inflight.finish(slot)


def _is_json(body: bytes) -> bool:
    try:
        json.loads(body)
    except ValueError:
        return False
    return True
