"""Explicit store seeding, run once by the process entry point or the CLI."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from tenant_gateway.config_loader import load_seed, resolve_api_key
from tenant_gateway.core.config import Settings
from tenant_gateway.domain.credentials import CredentialIssuer
from tenant_gateway.domain.interfaces import StateStore
from tenant_gateway.domain.keys import tenant_config_key
from tenant_gateway.domain.models import TenantConfig

logger = logging.getLogger(__name__)


def default_tenant_config() -> Dict[str, Any]:
    """Development tenant `abc`. Provider keys come from the environment."""
    window = 60
    return {
        "tenantId": "abc",
        "userGroups": {
            "anonymous": {"tokenBudget": 100, "rateLimit": 10, "rateLimitWindowSeconds": window},
            "google_logged_in": {"tokenBudget": 1000, "rateLimit": 50, "rateLimitWindowSeconds": window},
            "apple_logged_in": {"tokenBudget": 1000, "rateLimit": 50, "rateLimitWindowSeconds": window},
            "stripe_basic": {"tokenBudget": 5000, "rateLimit": 100, "rateLimitWindowSeconds": window},
            "stripe_premium": {"tokenBudget": 20000, "rateLimit": 500, "rateLimitWindowSeconds": window},
        },
        "providers": {
            "openai": {
                "endpointURL": "https://api.openai.com/v1/chat/completions",
                "defaultModel": "gpt-4o",
                "apiKey": resolve_api_key("env:OPENAI_API_KEY"),
            },
            "anthropic": {
                "endpointURL": "https://api.anthropic.com/v1/messages",
                "defaultModel": "claude-3-opus-20240229",
                "apiKey": resolve_api_key("env:ANTHROPIC_API_KEY"),
            },
        },
        "defaultProvider": "openai",
        "caching": {"enabled": True, "defaultTTLSeconds": 86400},
    }


@dataclass
class SeedReport:
    tenants_written: List[str] = field(default_factory=list)
    tenants_skipped: List[str] = field(default_factory=list)
    credentials_written: int = 0


async def seed_store(store: StateStore, seed: Dict[str, Any], force: bool = False) -> SeedReport:
    """Write tenant configs (and optional credentials) through the store interface.

    Existing tenant records are left alone unless `force` is set.
    """
    report = SeedReport()

    for raw in seed.get("tenants", []):
        tenant = TenantConfig.model_validate(raw)
        key = tenant_config_key(tenant.tenant_id)
        if force:
            await store.set(key, tenant.to_json())
            written = True
        else:
            written = await store.set_if_absent(key, tenant.to_json())

        if written:
            report.tenants_written.append(tenant.tenant_id)
        else:
            report.tenants_skipped.append(tenant.tenant_id)

    issuer = CredentialIssuer(store)
    for cred in seed.get("credentials", []):
        await issuer.issue(
            tenant_id=cred["tenantId"],
            user_id=cred["userId"],
            group=cred["group"],
            budget=cred["remainingBudget"],
            hours=cred.get("hours", 24),
            token=cred.get("token"),
        )
        report.credentials_written += 1

    logger.info("store_seeded", extra={
        "tenants_written": report.tenants_written,
        "tenants_skipped": report.tenants_skipped,
        "credentials_written": report.credentials_written,
    })
    return report


def startup_seed(settings: Settings) -> Optional[Dict[str, Any]]:
    """Seed document for application startup, or None when nothing should be seeded."""
    if settings.SEED_CONFIG_PATH:
        return load_seed(settings.SEED_CONFIG_PATH)
    if settings.SEED_DEFAULT_TENANT and settings.MODE != "prod":
        return {"tenants": [default_tenant_config()], "credentials": []}
    return None
