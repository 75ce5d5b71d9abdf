"""Admission pipeline for completion requests.

Order per request: tenant -> credential -> budget -> rate -> provider
-> cache (buffered only) -> dispatch -> settle. Body shape is validated by
the request schema before any of this runs.
"""
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional, Union

from tenant_gateway.adapters.upstreams_ai.client import ProviderDispatcher, StreamProgress
from tenant_gateway.domain.cache import ResponseCache, ProviderResponse, cache_applies
from tenant_gateway.domain.credentials import CredentialValidator
from tenant_gateway.domain.models import CompletionRequest
from tenant_gateway.domain.quota import Admission, QuotaGuard
from tenant_gateway.domain.tenants import TenantResolver
from tenant_gateway.errors import ProviderUnconfigured
from tenant_gateway.utils.id import new_conversation_id

logger = logging.getLogger(__name__)


@dataclass
class BufferedResult:
    response: ProviderResponse
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class StreamedResult:
    chunks: AsyncIterator[str]
    headers: Dict[str, str] = field(default_factory=dict)


CompletionResult = Union[BufferedResult, StreamedResult]


class AdmissionPipeline:
    def __init__(
        self,
        tenants: TenantResolver,
        credentials: CredentialValidator,
        quota: QuotaGuard,
        cache: ResponseCache,
        dispatcher: ProviderDispatcher,
    ):
        self.tenants = tenants
        self.credentials = credentials
        self.quota = quota
        self.cache = cache
        self.dispatcher = dispatcher

    async def complete(
        self, tenant_id: str, authorization: Optional[str], request: CompletionRequest
    ) -> CompletionResult:
        tenant = await self.tenants.resolve(tenant_id)
        identity = await self.credentials.validate(authorization, tenant_id)
        admission = await self.quota.admit(identity, tenant)

        conversation_id = request.conversation_id or new_conversation_id()
        headers = admission.headers()
        headers["X-Conversation-Id"] = conversation_id

        try:
            provider = tenant.provider()
            if provider is None or not provider.api_key:
                raise ProviderUnconfigured()
            payload = request.upstream_payload(request.model or provider.default_model)

            if request.stream:
                progress = StreamProgress()
                chunks = self.dispatcher.stream(provider, payload, progress)
                return StreamedResult(
                    chunks=self._settle_after_stream(chunks, progress, admission, tenant_id),
                    headers=headers,
                )

            if cache_applies(tenant, request.stream, request.cache_key):
                response, hit = await self.cache.get_or_fetch(
                    tenant, request.cache_key, lambda: self.dispatcher.dispatch(provider, payload)
                )
                headers["X-Cache"] = "HIT" if hit else "MISS"
            else:
                response = await self.dispatcher.dispatch(provider, payload)
        except BaseException:
            await self.quota.release(admission)
            raise

        await self.quota.settle(admission)
        return BufferedResult(response=response, headers=headers)

    async def _settle_after_stream(
        self,
        chunks: AsyncIterator[str],
        progress: StreamProgress,
        admission: Admission,
        tenant_id: str,
    ) -> AsyncIterator[str]:
        """Pass chunks through; charge once the stream ends, however it ends."""
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            if not progress.sentinel_sent:
                logger.info("stream_cancelled", extra={"tenant_id": tenant_id, "chunks": progress.chunks})
                await chunks.aclose()
            if progress.upstream_reached:
                await self.quota.settle(admission)
            else:
                await self.quota.release(admission)
