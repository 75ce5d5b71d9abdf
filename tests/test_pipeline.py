"""Admission pipeline: charging a stream the caller abandons."""
import json
from unittest.mock import patch

import httpx
import pytest

from tenant_gateway.adapters.memory_store.stores import MemoryStateStore
from tenant_gateway.core.rate_limiter import RateLimiter
from tenant_gateway.domain.budgets.service import BudgetService
from tenant_gateway.domain.cache import InFlightRegistry, ResponseCache
from tenant_gateway.domain.credentials import CredentialValidator
from tenant_gateway.domain.keys import credential_key
from tenant_gateway.domain.models import CompletionRequest
from tenant_gateway.domain.pipeline import AdmissionPipeline, StreamedResult
from tenant_gateway.domain.quota import QuotaGuard
from tenant_gateway.domain.tenants import TenantResolver

from support import MockProvider, put_credential, put_tenant, tenant_document

STREAM_REQUEST = {"messages": [{"role": "user", "content": "Hi"}], "stream": True}
SSE_BODY = b'data: {"n": 1}\n\ndata: {"n": 2}\n\ndata: [DONE]\n\n'


class TrackedStream:
    """Wraps the dispatcher stream and records whether it was closed."""

    def __init__(self, inner):
        self.inner = inner
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        return await self.inner.__anext__()

    async def aclose(self):
        self.closed = True
        await self.inner.aclose()


async def build(provider):
    store = MemoryStateStore()
    await put_tenant(store, tenant_document())
    token = await put_credential(store, budget=10)
    dispatcher = provider.dispatcher()
    pipeline = AdmissionPipeline(
        TenantResolver(store),
        CredentialValidator(store),
        QuotaGuard(BudgetService(store), RateLimiter(store)),
        ResponseCache(store, InFlightRegistry()),
        dispatcher,
    )
    return store, token, dispatcher, pipeline


async def budget_of(store, token):
    return json.loads(await store.get(credential_key(token)))["remainingBudget"]


async def open_and_abandon(pipeline, dispatcher, token):
    streams = []
    original = dispatcher.stream

    def tracked(*args, **kwargs):
        streams.append(TrackedStream(original(*args, **kwargs)))
        return streams[-1]

    with patch.object(dispatcher, "stream", side_effect=tracked):
        result = await pipeline.complete("abc", f"Bearer {token}", CompletionRequest.model_validate(STREAM_REQUEST))
        assert isinstance(result, StreamedResult)
        first = await result.chunks.__anext__()
        await result.chunks.aclose()
    return first, streams[0]


@pytest.mark.asyncio
async def test_abandoned_stream_is_charged_once_upstream_answered():
    provider = MockProvider(lambda request: httpx.Response(
        200, content=SSE_BODY, headers={"content-type": "text/event-stream"}
    ))
    store, token, dispatcher, pipeline = await build(provider)

    first, upstream = await open_and_abandon(pipeline, dispatcher, token)

    assert first == 'data: {"n": 1}\n'
    assert upstream.closed is True
    assert await budget_of(store, token) == 9


@pytest.mark.asyncio
async def test_abandoned_stream_is_refunded_when_upstream_unreachable():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    store, token, dispatcher, pipeline = await build(MockProvider(refuse))

    first, upstream = await open_and_abandon(pipeline, dispatcher, token)

    assert "UPSTREAM_UNREACHABLE" in first
    assert upstream.closed is True
    assert await budget_of(store, token) == 10


@pytest.mark.asyncio
async def test_finished_stream_is_not_closed_again():
    provider = MockProvider(lambda request: httpx.Response(
        200, content=SSE_BODY, headers={"content-type": "text/event-stream"}
    ))
    store, token, dispatcher, pipeline = await build(provider)
    streams = []
    original = dispatcher.stream

    def tracked(*args, **kwargs):
        streams.append(TrackedStream(original(*args, **kwargs)))
        return streams[-1]

    with patch.object(dispatcher, "stream", side_effect=tracked):
        result = await pipeline.complete("abc", f"Bearer {token}", CompletionRequest.model_validate(STREAM_REQUEST))
        text = "".join([chunk async for chunk in result.chunks])

    assert text.count("data: [DONE]") == 1
    assert streams[0].closed is False
    assert await budget_of(store, token) == 9
