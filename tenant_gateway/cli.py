"""Operator CLI for the tenant gateway."""
import asyncio
import json
from typing import Optional

import click

from tenant_gateway.bootstrap import default_tenant_config, seed_store
from tenant_gateway.config_loader import load_seed
from tenant_gateway.dependencies import get_state_store
from tenant_gateway.domain.credentials import CredentialIssuer
from tenant_gateway.domain.keys import credential_key, tenant_config_key
from tenant_gateway.domain.models import TenantConfig


def _run(coro):
    return asyncio.run(coro)


@click.group()
def cli():
    """Tenant LLM Gateway CLI."""
    pass


@cli.command("seed")
@click.option("--config", "config_path", default=None, help="Seed JSON file (default: built-in tenant 'abc')")
@click.option("--force", is_flag=True, help="Overwrite existing tenant records")
def seed(config_path: Optional[str], force: bool):
    """Write tenant configuration records into the state store."""
    if config_path:
        try:
            document = load_seed(config_path)
        except (OSError, ValueError) as e:
            click.echo(f"Error: cannot load seed file: {e}", err=True)
            raise SystemExit(1)
    else:
        document = {"tenants": [default_tenant_config()], "credentials": []}

    report = _run(seed_store(get_state_store(), document, force=force))
    for tenant_id in report.tenants_written:
        click.echo(f"✓ Tenant '{tenant_id}' written")
    for tenant_id in report.tenants_skipped:
        click.echo(f"- Tenant '{tenant_id}' exists, skipped (use --force to overwrite)")
    if report.credentials_written:
        click.echo(f"✓ {report.credentials_written} credential(s) issued")


@cli.group()
def tenant():
    """Inspect tenant configuration."""
    pass


@tenant.command("show")
@click.argument("tenant_id")
def show_tenant(tenant_id: str):
    """Print a tenant's stored configuration."""
    raw = _run(get_state_store().get(tenant_config_key(tenant_id)))
    if raw is None:
        click.echo(f"Error: Tenant '{tenant_id}' not found", err=True)
        raise SystemExit(1)
    click.echo(json.dumps(json.loads(raw), indent=2))


@cli.group()
def credential():
    """Issue and inspect bearer credentials."""
    pass


@credential.command("issue")
@click.argument("tenant_id")
@click.option("--user", "user_id", required=True, help="User id the credential maps to")
@click.option("--group", required=True, help="User group (must exist in the tenant config)")
@click.option("--budget", type=int, default=None, help="Remaining budget (default: group tokenBudget)")
@click.option("--hours", type=int, default=24, show_default=True, help="Lifetime in hours")
def issue_credential(tenant_id: str, user_id: str, group: str, budget: Optional[int], hours: int):
    """Issue a credential for a user of a tenant."""
    async def _issue():
        store = get_state_store()
        raw = await store.get(tenant_config_key(tenant_id))
        if raw is None:
            raise click.ClickException(f"Tenant '{tenant_id}' not found")

        policy = TenantConfig.model_validate_json(raw).group(group)
        if policy is None:
            raise click.ClickException(f"Group '{group}' is not configured for tenant '{tenant_id}'")

        return await CredentialIssuer(store).issue(
            tenant_id=tenant_id,
            user_id=user_id,
            group=group,
            budget=policy.token_budget if budget is None else budget,
            hours=hours,
        )

    token, cred = _run(_issue())
    click.echo(f"✓ Credential issued for '{user_id}'")
    click.echo(json.dumps({"token": token, **json.loads(cred.to_json())}, indent=2))


@credential.command("show")
@click.argument("token")
def show_credential(token: str):
    """Print a stored credential."""
    raw = _run(get_state_store().get(credential_key(token)))
    if raw is None:
        click.echo("Error: Credential not found", err=True)
        raise SystemExit(1)
    click.echo(json.dumps(json.loads(raw), indent=2))


@cli.command("serve")
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", type=int, default=8000, show_default=True)
def serve(host: str, port: int):
    """Run the gateway with uvicorn."""
    import uvicorn
    uvicorn.run("tenant_gateway.main:app", host=host, port=port)


if __name__ == "__main__":
    cli()
