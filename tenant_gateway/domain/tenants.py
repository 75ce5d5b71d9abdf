"""Tenant Resolver."""
import json
import logging

from pydantic import ValidationError as SchemaError

from tenant_gateway.domain.interfaces import StateStore
from tenant_gateway.domain.keys import tenant_config_key
from tenant_gateway.domain.models import TenantConfig
from tenant_gateway.errors import UnknownTenant, InternalError

logger = logging.getLogger(__name__)


def is_valid_tenant_id(tenant_id: str) -> bool:
    # Colons would break the store key layout and session ids
    return bool(tenant_id) and ":" not in tenant_id


class TenantResolver:
    """Loads a tenant's configuration. Pure lookup, never creates tenants."""

    def __init__(self, store: StateStore):
        self.store = store

    async def resolve(self, tenant_id: str) -> TenantConfig:
        if not is_valid_tenant_id(tenant_id):
            raise UnknownTenant()

        raw = await self.store.get(tenant_config_key(tenant_id))
        if raw is None:
            raise UnknownTenant()

        try:
            doc = json.loads(raw)
            doc.setdefault("tenantId", tenant_id)
            config = TenantConfig.model_validate(doc)
        except (ValueError, SchemaError) as e:
            logger.error(f"Stored config for tenant {tenant_id} is unreadable: {e}")
            raise InternalError("Tenant configuration is corrupt") from e

        logger.info("tenant_config_loaded", extra={
            "tenant_id": tenant_id,
            "groups": sorted(config.user_groups),
            "providers": sorted(config.providers),
            "caching_enabled": config.caching.enabled,
        })
        return config
