"""Records persisted in the shared state store and the request schemas."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StoreRecord(BaseModel):
    """Base for JSON records: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# --- Tenant configuration ---

class GroupPolicy(StoreRecord):
    token_budget: int = Field(alias="tokenBudget", ge=0)
    rate_limit: int = Field(alias="rateLimit", ge=0)
    rate_limit_window_seconds: int = Field(alias="rateLimitWindowSeconds", gt=0)
    expiration_hours: Optional[int] = Field(default=None, alias="expirationHours")


class ProviderEndpoint(StoreRecord):
    endpoint_url: str = Field(alias="endpointURL")
    default_model: Optional[str] = Field(default=None, alias="defaultModel")
    api_key: Optional[str] = Field(default=None, alias="apiKey")


class CachePolicy(StoreRecord):
    enabled: bool = False
    default_ttl_seconds: Optional[int] = Field(default=None, alias="defaultTTLSeconds", gt=0)

    def ttl_seconds(self, fallback: int) -> int:
        """Tenant TTL, or the gateway-wide default when the tenant sets none."""
        return self.default_ttl_seconds or fallback


class TenantConfig(StoreRecord):
    tenant_id: str = Field(alias="tenantId")
    user_groups: Dict[str, GroupPolicy] = Field(default_factory=dict, alias="userGroups")
    providers: Dict[str, ProviderEndpoint] = Field(default_factory=dict)
    default_provider: Optional[str] = Field(default=None, alias="defaultProvider")
    caching: CachePolicy = Field(default_factory=CachePolicy)
    realtime_token_budget: Optional[int] = Field(default=None, alias="realtimeTokenBudget")

    def group(self, name: str) -> Optional[GroupPolicy]:
        return self.user_groups.get(name)

    def provider(self) -> Optional[ProviderEndpoint]:
        """The default provider, or the only one configured."""
        if self.default_provider:
            return self.providers.get(self.default_provider)
        if len(self.providers) == 1:
            return next(iter(self.providers.values()))
        return None


# --- Credentials ---

class Credential(StoreRecord):
    tenant_id: str = Field(alias="tenantId")
    user_id: str = Field(alias="userId")
    group: str
    remaining_budget: int = Field(alias="remainingBudget")
    expires_at: datetime = Field(alias="expiresAt")

    @field_validator("expires_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


class Identity(BaseModel):
    """A validated caller. `token` is kept so the meter can address the credential."""

    token: str
    tenant_id: str
    user_id: str
    group: str
    remaining_budget: int
    expires_at: datetime


# --- Completion request ---

class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str = Field(min_length=1)
    content: Union[str, List[Any]]

    @field_validator("content")
    @classmethod
    def _non_empty(cls, v):
        if not v:
            raise ValueError("content must not be empty")
        return v


class CompletionRequest(BaseModel):
    """Body of `POST /{tenantId}/v1/completions`.

    Unknown fields (temperature, max_tokens, ...) are forwarded upstream untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    messages: List[ChatMessage] = Field(min_length=1)
    model: Optional[str] = None
    stream: bool = False
    cache_key: Optional[str] = Field(default=None, alias="cacheKey", min_length=1)
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")

    def upstream_payload(self, model: Optional[str]) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.model_extra or {})
        payload["messages"] = [m.model_dump(exclude_none=True) for m in self.messages]
        if model:
            payload["model"] = model
        payload["stream"] = self.stream
        return payload


# --- Realtime ---

class RealtimeInitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    backend: str
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    tools: Optional[List[Any]] = None
    tts_service: Optional[str] = Field(default=None, alias="ttsService")
    cache_key: Optional[str] = Field(default=None, alias="cacheKey")


class SessionState(StoreRecord):
    tenant_id: str = Field(alias="tenantId")
    backend: str
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    tools: Optional[List[Any]] = None
    tts_service: Optional[str] = Field(default=None, alias="ttsService")
    cache_key: Optional[str] = Field(default=None, alias="cacheKey")
    tokens_used: int = Field(default=0, alias="tokensUsed")
    created_at: datetime = Field(alias="createdAt")


class HistoryEntry(StoreRecord):
    role: str
    type: str
    content: str
    timestamp: int
