"""Credential validation, issuance and tenant resolution."""
import json
import pytest
from datetime import datetime, timedelta, timezone

from tenant_gateway.adapters.memory_store.stores import MemoryStateStore
from tenant_gateway.domain.credentials import (
    CredentialIssuer, CredentialValidator, extract_bearer, generate_token
)
from tenant_gateway.domain.keys import credential_key, tenant_config_key
from tenant_gateway.domain.models import Credential, TenantConfig
from tenant_gateway.domain.tenants import TenantResolver
from tenant_gateway.errors import (
    CredentialExpired, GroupUnconfigured, InternalError, InvalidCredential,
    MissingCredential, TenantMismatch, UnknownTenant,
)

from support import put_credential, put_tenant, tenant_document


class TestExtractBearer:

    def test_valid_header(self):
        assert extract_bearer("Bearer gw_user_abc") == "gw_user_abc"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer", "Bearer a b", "bearer"])
    def test_missing_or_malformed(self, header):
        with pytest.raises(MissingCredential):
            extract_bearer(header)


class TestCredentialValidator:

    @pytest.mark.asyncio
    async def test_valid_credential(self):
        store = MemoryStateStore()
        token = await put_credential(store, budget=42, user_id="alice")

        identity = await CredentialValidator(store).validate(f"Bearer {token}", "abc")
        assert identity.user_id == "alice"
        assert identity.group == "anonymous"
        assert identity.remaining_budget == 42
        assert identity.token == token

    @pytest.mark.asyncio
    async def test_unknown_token(self):
        with pytest.raises(InvalidCredential):
            await CredentialValidator(MemoryStateStore()).validate("Bearer nope", "abc")

    @pytest.mark.asyncio
    async def test_unreadable_record(self):
        store = MemoryStateStore()
        await store.set(credential_key("broken"), json.dumps({"userId": "x"}))
        with pytest.raises(InvalidCredential):
            await CredentialValidator(store).validate("Bearer broken", "abc")

    @pytest.mark.asyncio
    async def test_tenant_mismatch(self):
        store = MemoryStateStore()
        token = await put_credential(store, tenant_id="xyz")
        with pytest.raises(TenantMismatch):
            await CredentialValidator(store).validate(f"Bearer {token}", "abc")

    @pytest.mark.asyncio
    async def test_expired_credential(self):
        store = MemoryStateStore()
        past = datetime.now(timezone.utc) - timedelta(minutes=5)
        record = Credential(
            tenant_id="abc", user_id="u", group="anonymous", remaining_budget=5, expires_at=past
        )
        await store.set(credential_key("old"), record.to_json())

        with pytest.raises(CredentialExpired):
            await CredentialValidator(store).validate("Bearer old", "abc")

    @pytest.mark.asyncio
    async def test_validation_is_read_only(self):
        store = MemoryStateStore()
        token = await put_credential(store, budget=7)
        before = await store.get(credential_key(token))

        await CredentialValidator(store).validate(f"Bearer {token}", "abc")
        assert await store.get(credential_key(token)) == before


class TestCredentialIssuer:

    @pytest.mark.asyncio
    async def test_issue_sets_lifetime_ttl(self):
        store = MemoryStateStore()
        token, credential = await CredentialIssuer(store).issue("abc", "bob", "premium", 500, hours=2)

        assert token.startswith("gw_user_")
        assert credential.remaining_budget == 500
        assert 7190 <= await store.ttl(credential_key(token)) <= 7200
        stored = json.loads(await store.get(credential_key(token)))
        assert stored["tenantId"] == "abc"
        assert stored["remainingBudget"] == 500
        assert stored["expiresAt"].endswith("Z") or stored["expiresAt"].endswith("+00:00")

    @pytest.mark.asyncio
    async def test_issue_anonymous_uses_group_budget(self):
        store = MemoryStateStore()
        tenant = TenantConfig.model_validate(tenant_document())

        token, credential = await CredentialIssuer(store).issue_anonymous(tenant, default_hours=24)
        assert token.startswith("temp_")
        assert credential.user_id.startswith("anonymous_")
        assert credential.group == "anonymous"
        assert credential.remaining_budget == 100

    @pytest.mark.asyncio
    async def test_issue_anonymous_requires_group(self):
        document = tenant_document()
        del document["userGroups"]["anonymous"]
        tenant = TenantConfig.model_validate(document)

        with pytest.raises(GroupUnconfigured):
            await CredentialIssuer(MemoryStateStore()).issue_anonymous(tenant, default_hours=24)

    def test_tokens_are_unique(self):
        assert len({generate_token() for _ in range(50)}) == 50


class TestTenantResolver:

    @pytest.mark.asyncio
    async def test_resolve(self):
        store = MemoryStateStore()
        await put_tenant(store, tenant_document())

        tenant = await TenantResolver(store).resolve("abc")
        assert tenant.tenant_id == "abc"
        assert tenant.group("anonymous").rate_limit == 10
        assert tenant.provider().endpoint_url.endswith("/chat/completions")
        assert tenant.caching.enabled is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tenant_id", ["missing", "", "a:b"])
    async def test_unknown_tenant(self, tenant_id):
        with pytest.raises(UnknownTenant):
            await TenantResolver(MemoryStateStore()).resolve(tenant_id)

    @pytest.mark.asyncio
    async def test_corrupt_config(self):
        store = MemoryStateStore()
        await store.set(tenant_config_key("abc"), "{not json")
        with pytest.raises(InternalError):
            await TenantResolver(store).resolve("abc")

    def test_single_provider_is_default(self):
        document = tenant_document()
        document["defaultProvider"] = None
        assert TenantConfig.model_validate(document).provider() is not None

        document["providers"]["other"] = {"endpointURL": "https://other.test", "apiKey": "k"}
        assert TenantConfig.model_validate(document).provider() is None
