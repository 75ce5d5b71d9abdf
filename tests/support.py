"""Test helpers: tenant documents, credentials and a mock provider."""
import json
from typing import Any, Callable, Dict, List, Optional

import httpx

from tenant_gateway.adapters.memory_store.stores import MemoryStateStore
from tenant_gateway.adapters.upstreams_ai.client import ProviderDispatcher
from tenant_gateway.domain.credentials import CredentialIssuer
from tenant_gateway.domain.keys import session_history_key, tenant_config_key
from tenant_gateway.domain.models import HistoryEntry

TENANT_ID = "abc"
PROVIDER_URL = "https://provider.test/v1/chat/completions"
PROVIDER_KEY = "sk-test-provider-key-0001"

COMPLETION_BODY = {
    "id": "chatcmpl-1",
    "object": "chat.completion",
    "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hello!"}}],
}


def tenant_document(
    tenant_id: str = TENANT_ID,
    caching: bool = True,
    rate_limit: int = 10,
    window: int = 60,
    api_key: Optional[str] = PROVIDER_KEY,
) -> Dict[str, Any]:
    return {
        "tenantId": tenant_id,
        "userGroups": {
            "anonymous": {"tokenBudget": 100, "rateLimit": rate_limit, "rateLimitWindowSeconds": window},
            "premium": {"tokenBudget": 1000, "rateLimit": 500, "rateLimitWindowSeconds": window},
        },
        "providers": {
            "openai": {"endpointURL": PROVIDER_URL, "defaultModel": "gpt-4o", "apiKey": api_key},
        },
        "defaultProvider": "openai",
        "caching": {"enabled": caching, "defaultTTLSeconds": 86400},
    }


async def put_tenant(store: MemoryStateStore, document: Dict[str, Any]) -> None:
    await store.set(tenant_config_key(document["tenantId"]), json.dumps(document))


async def put_credential(
    store: MemoryStateStore,
    tenant_id: str = TENANT_ID,
    budget: int = 100,
    group: str = "anonymous",
    hours: int = 24,
    user_id: str = "user-1",
) -> str:
    token, _ = await CredentialIssuer(store).issue(tenant_id, user_id, group, budget, hours=hours)
    return token


class MockProvider:
    """Records calls and answers through an httpx.MockTransport."""

    def __init__(self, handler: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.calls: List[httpx.Request] = []
        self._handler = handler or (lambda request: httpx.Response(200, json=COMPLETION_BODY))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return self._handler(request)

    def payload(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.calls[index].content)

    def dispatcher(self) -> ProviderDispatcher:
        return ProviderDispatcher(timeout=5.0, transport=httpx.MockTransport(self))




async def read_history(store: MemoryStateStore, tenant_id: str, session_id: str) -> List[HistoryEntry]:
    raw = await store.lrange(session_history_key(tenant_id, session_id))
    return [HistoryEntry.model_validate_json(item) for item in raw]
