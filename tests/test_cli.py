import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from tenant_gateway.adapters.memory_store.stores import MemoryStateStore
from tenant_gateway.cli import cli


@pytest.fixture
def cli_store():
    store = MemoryStateStore()
    with patch("tenant_gateway.cli.get_state_store", return_value=store):
        yield store


@pytest.fixture
def runner():
    return CliRunner()


def test_seed_default_tenant(runner, cli_store):
    result = runner.invoke(cli, ["seed"])
    assert result.exit_code == 0
    assert "Tenant 'abc' written" in result.output

    again = runner.invoke(cli, ["seed"])
    assert "skipped" in again.output

    forced = runner.invoke(cli, ["seed", "--force"])
    assert "Tenant 'abc' written" in forced.output


def test_seed_from_file(runner, cli_store, tmp_path, monkeypatch):
    monkeypatch.setenv("ACME_PROVIDER_KEY", "sk-acme-0001")
    seed_file = tmp_path / "seed.json"
    seed_file.write_text(json.dumps({
        "tenants": [{
            "tenantId": "acme",
            "userGroups": {"anonymous": {"tokenBudget": 5, "rateLimit": 1, "rateLimitWindowSeconds": 60}},
            "providers": {"openai": {"endpointURL": "https://provider.test", "apiKey": "env:ACME_PROVIDER_KEY"}},
        }],
        "credentials": [{
            "tenantId": "acme", "userId": "ops", "group": "anonymous",
            "remainingBudget": 5, "token": "gw_user_fixed",
        }],
    }))

    result = runner.invoke(cli, ["seed", "--config", str(seed_file)])
    assert result.exit_code == 0
    assert "1 credential(s) issued" in result.output

    shown = runner.invoke(cli, ["tenant", "show", "acme"])
    assert json.loads(shown.output)["providers"]["openai"]["apiKey"] == "sk-acme-0001"

    cred = runner.invoke(cli, ["credential", "show", "gw_user_fixed"])
    assert json.loads(cred.output)["userId"] == "ops"


def test_seed_with_unreadable_file(runner, cli_store, tmp_path):
    result = runner.invoke(cli, ["seed", "--config", str(tmp_path / "missing.json")])
    assert result.exit_code == 1
    assert "cannot load seed file" in result.output


def test_tenant_show_unknown(runner, cli_store):
    result = runner.invoke(cli, ["tenant", "show", "nope"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_credential_issue_uses_group_budget(runner, cli_store):
    runner.invoke(cli, ["seed"])

    result = runner.invoke(cli, ["credential", "issue", "abc", "--user", "u1", "--group", "stripe_basic"])
    assert result.exit_code == 0
    issued = json.loads(result.output.split("\n", 1)[1])
    assert issued["remainingBudget"] == 5000
    assert issued["tenantId"] == "abc"

    shown = runner.invoke(cli, ["credential", "show", issued["token"]])
    assert json.loads(shown.output)["group"] == "stripe_basic"


def test_credential_issue_explicit_budget(runner, cli_store):
    runner.invoke(cli, ["seed"])
    result = runner.invoke(cli, [
        "credential", "issue", "abc", "--user", "u1", "--group", "anonymous", "--budget", "3",
    ])
    assert json.loads(result.output.split("\n", 1)[1])["remainingBudget"] == 3


def test_credential_issue_errors(runner, cli_store):
    result = runner.invoke(cli, ["credential", "issue", "nope", "--user", "u1", "--group", "anonymous"])
    assert result.exit_code != 0
    assert "Tenant 'nope' not found" in result.output

    runner.invoke(cli, ["seed"])
    result = runner.invoke(cli, ["credential", "issue", "abc", "--user", "u1", "--group", "gold"])
    assert result.exit_code != 0
    assert "Group 'gold' is not configured" in result.output


def test_credential_show_unknown(runner, cli_store):
    result = runner.invoke(cli, ["credential", "show", "missing"])
    assert result.exit_code == 1
