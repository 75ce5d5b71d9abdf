"""Credential validation and issuance."""
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError as SchemaError

from tenant_gateway.domain.interfaces import StateStore
from tenant_gateway.domain.keys import credential_key
from tenant_gateway.domain.models import Credential, Identity, TenantConfig
from tenant_gateway.errors import (
    MissingCredential, InvalidCredential, TenantMismatch, CredentialExpired, GroupUnconfigured
)
from tenant_gateway.utils.id import uuid7

logger = logging.getLogger(__name__)

BEARER_PATTERN = re.compile(r"^Bearer ([^\s]+)$")
DEFAULT_CREDENTIAL_HOURS = 24


def extract_bearer(authorization: Optional[str]) -> str:
    """Pull the token out of an `Authorization: Bearer <token>` header."""
    if not authorization:
        raise MissingCredential()
    match = BEARER_PATTERN.match(authorization.strip())
    if not match:
        raise MissingCredential()
    return match.group(1)


class CredentialValidator:
    """Resolves a bearer token to an Identity. Read-only."""

    def __init__(self, store: StateStore):
        self.store = store

    async def validate(self, authorization: Optional[str], tenant_id: str) -> Identity:
        token = extract_bearer(authorization)

        raw = await self.store.get(credential_key(token))
        if raw is None:
            logger.info("credential_rejected", extra={"tenant_id": tenant_id, "reason": "unknown"})
            raise InvalidCredential()

        try:
            credential = Credential.model_validate_json(raw)
        except SchemaError:
            logger.warning("credential_rejected", extra={"tenant_id": tenant_id, "reason": "unreadable"})
            raise InvalidCredential()

        if credential.tenant_id != tenant_id:
            logger.warning("credential_rejected", extra={
                "tenant_id": tenant_id, "credential_tenant": credential.tenant_id, "reason": "tenant_mismatch"
            })
            raise TenantMismatch()

        if credential.is_expired():
            logger.info("credential_rejected", extra={"tenant_id": tenant_id, "reason": "expired"})
            raise CredentialExpired()

        return Identity(
            token=token,
            tenant_id=credential.tenant_id,
            user_id=credential.user_id,
            group=credential.group,
            remaining_budget=credential.remaining_budget,
            expires_at=credential.expires_at,
        )


def generate_token(prefix: str = "gw_user") -> str:
    return f"{prefix}_{secrets.token_hex(16)}"


class CredentialIssuer:
    """Writes new credentials. Used by the anonymous endpoint, the CLI and seeding."""

    def __init__(self, store: StateStore):
        self.store = store

    async def issue(
        self,
        tenant_id: str,
        user_id: str,
        group: str,
        budget: int,
        hours: int = DEFAULT_CREDENTIAL_HOURS,
        token: Optional[str] = None,
    ) -> tuple[str, Credential]:
        token = token or generate_token()
        expires_at = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(hours=hours)
        credential = Credential(
            tenant_id=tenant_id,
            user_id=user_id,
            group=group,
            remaining_budget=budget,
            expires_at=expires_at,
        )
        await self.store.set(credential_key(token), credential.to_json(), ttl=max(1, hours * 3600))
        logger.info("credential_issued", extra={"tenant_id": tenant_id, "user_id": user_id, "group": group})
        return token, credential

    async def issue_anonymous(self, tenant: TenantConfig, default_hours: int) -> tuple[str, Credential]:
        policy = tenant.group("anonymous")
        if policy is None:
            raise GroupUnconfigured("Anonymous access is not configured for this tenant")
        return await self.issue(
            tenant_id=tenant.tenant_id,
            user_id=f"anonymous_{uuid7()}",
            group="anonymous",
            budget=policy.token_budget,
            hours=policy.expiration_hours or default_hours,
            token=generate_token("temp"),
        )
