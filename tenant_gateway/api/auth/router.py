"""Credential issuance for anonymous callers."""
from fastapi import APIRouter, Depends

from tenant_gateway.core.config import settings
from tenant_gateway.dependencies import get_credential_issuer, get_tenant_resolver
from tenant_gateway.domain.credentials import CredentialIssuer
from tenant_gateway.domain.tenants import TenantResolver

router = APIRouter()


@router.post("/{tenant_id}/auth/anonymous")
async def anonymous_login(
    tenant_id: str,
    tenants: TenantResolver = Depends(get_tenant_resolver),
    issuer: CredentialIssuer = Depends(get_credential_issuer),
):
    tenant = await tenants.resolve(tenant_id)
    token, credential = await issuer.issue_anonymous(tenant, settings.ANONYMOUS_CREDENTIAL_HOURS)
    return {
        "apiKey": token,
        "userId": credential.user_id,
        "group": credential.group,
        "remainingBudget": credential.remaining_budget,
        "expiresAt": credential.expires_at.isoformat(),
    }
