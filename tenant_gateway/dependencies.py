"""Dependency Injection Module."""
import logging
from typing import Optional

from fastapi import Depends

from tenant_gateway.core.config import settings
from tenant_gateway.core.rate_limiter import RateLimiter
from tenant_gateway.domain.interfaces import StateStore
from tenant_gateway.domain.budgets.service import BudgetService
from tenant_gateway.domain.cache import InFlightRegistry, ResponseCache
from tenant_gateway.domain.credentials import CredentialIssuer, CredentialValidator
from tenant_gateway.domain.pipeline import AdmissionPipeline
from tenant_gateway.domain.quota import QuotaGuard
from tenant_gateway.domain.realtime.backends import default_backends
from tenant_gateway.domain.realtime.session_manager import RealtimeSessionManager
from tenant_gateway.domain.tenants import TenantResolver
from tenant_gateway.adapters.upstreams_ai.client import ProviderDispatcher

logger = logging.getLogger(__name__)

_state_store: Optional[StateStore] = None
_dispatcher: Optional[ProviderDispatcher] = None
# In-flight cache fetches are shared by every request in this process
_INFLIGHT = InFlightRegistry()


def build_state_store(backend: Optional[str] = None) -> StateStore:
    backend = (backend or settings.STORE_BACKEND).lower()
    if backend == "redis":
        from tenant_gateway.adapters.redis.stores import RedisStateStore
        return RedisStateStore()
    if backend == "memory":
        from tenant_gateway.adapters.memory_store.stores import MemoryStateStore
        return MemoryStateStore()
    raise ValueError(f"Unknown STORE_BACKEND: {backend}")


def get_state_store() -> StateStore:
    global _state_store
    if _state_store is None:
        _state_store = build_state_store()
        logger.info(f"State store initialized: {type(_state_store).__name__}")
    return _state_store


def get_dispatcher() -> ProviderDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = ProviderDispatcher(timeout=settings.UPSTREAM_TIMEOUT_SECONDS)
    return _dispatcher


def get_tenant_resolver(store: StateStore = Depends(get_state_store)) -> TenantResolver:
    return TenantResolver(store)


def get_credential_validator(store: StateStore = Depends(get_state_store)) -> CredentialValidator:
    return CredentialValidator(store)


def get_credential_issuer(store: StateStore = Depends(get_state_store)) -> CredentialIssuer:
    return CredentialIssuer(store)


def get_quota_guard(store: StateStore = Depends(get_state_store)) -> QuotaGuard:
    return QuotaGuard(BudgetService(store), RateLimiter(store))


def get_response_cache(store: StateStore = Depends(get_state_store)) -> ResponseCache:
    return ResponseCache(store, _INFLIGHT)


def get_pipeline(
    tenants: TenantResolver = Depends(get_tenant_resolver),
    credentials: CredentialValidator = Depends(get_credential_validator),
    quota: QuotaGuard = Depends(get_quota_guard),
    cache: ResponseCache = Depends(get_response_cache),
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
) -> AdmissionPipeline:
    return AdmissionPipeline(tenants, credentials, quota, cache, dispatcher)


def get_session_manager(
    store: StateStore = Depends(get_state_store),
    tenants: TenantResolver = Depends(get_tenant_resolver),
    credentials: CredentialValidator = Depends(get_credential_validator),
) -> RealtimeSessionManager:
    return RealtimeSessionManager(
        store=store,
        tenants=tenants,
        credentials=credentials,
        backends=default_backends(settings.REALTIME_BACKENDS),
        default_budget=settings.REALTIME_DEFAULT_BUDGET,
    )
