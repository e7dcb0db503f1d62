from __future__ import annotations

import io
import json
import os

import pytest

from acp_agent.bounty.client import CreatedBounty, MatchStatus
from acp_agent.bounty.scheduler import NullScheduler
from acp_agent.cli import main as cli_main
from acp_agent.cli.main import main
from acp_agent.errors import MarketplaceRequestError, MarketplaceUnavailableError
from acp_agent.store import StateStore


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch) -> None:
    for name in ("LITE_AGENT_API_KEY", "ACP_API_URL", "ACP_BOUNTY_API_URL", "ACP_SOCKET_URL", "ACP_STATE_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENCLAW_BOUNTY_CRON_DISABLED", "1")


def _config(tmp_path) -> str:
    config_path = tmp_path / "config.toml"
    config_path.write_text(f'state_dir = "{tmp_path / "state"}"\n', encoding="utf-8")
    return str(config_path)


def _run(tmp_path, *argv: str) -> tuple[int, str, str]:
    out = io.StringIO()
    err = io.StringIO()
    rc = main(["--config", _config(tmp_path), *argv], stdout=out, stderr=err)
    return rc, out.getvalue(), err.getvalue()


def _add_agent(tmp_path, name: str = "alpha", agent_id: str = "a1") -> None:
    rc, _, err = _run(
        tmp_path, "agent", "add", "--id", agent_id, "--name", name, "--wallet", f"0x{name}", "--api-key", f"key-{name}"
    )
    assert rc == 0, err


class _FakeBountyClient:
    def __init__(self, status: MatchStatus | None = None) -> None:
        self.status = status or MatchStatus(status="open", candidates=[])

    def create_bounty(self, **fields) -> CreatedBounty:
        return CreatedBounty(bounty_id="b1", poster_secret="top-secret")

    def get_match_status(self, bounty_id: str) -> MatchStatus:
        return self.status

    def sync_job_status(self, bounty_id: str, *, poster_secret: str):
        return None

    def confirm_match(self, bounty_id, *, poster_secret, candidate_id, acp_job_id):
        return None

    def reject_candidates(self, bounty_id, *, poster_secret):
        return None


def _patch_bounty(monkeypatch, client: _FakeBountyClient) -> None:
    monkeypatch.setattr(cli_main, "_bounty_client", lambda config, identity: client)
    monkeypatch.setattr(cli_main, "_scheduler", lambda store: NullScheduler())


def test_version_json_has_expected_fields(tmp_path) -> None:
    rc, out, err = _run(tmp_path, "version", "--json")

    assert rc == 0
    assert err == ""
    payload = json.loads(out)
    assert payload["cli"] == "acp-agent"
    assert isinstance(payload["sdk_version"], str)
    assert payload["state_dir"] == str(tmp_path / "state")


def test_invalid_config_returns_error(tmp_path) -> None:
    config_path = tmp_path / "bad.toml"
    config_path.write_text('log_level = "loud"\n', encoding="utf-8")
    out = io.StringIO()
    err = io.StringIO()

    rc = main(["--config", str(config_path), "version"], stdout=out, stderr=err)

    assert rc == 1
    assert "config error" in err.getvalue()


def test_first_agent_added_becomes_active(tmp_path) -> None:
    _add_agent(tmp_path, "alpha", "a1")
    _add_agent(tmp_path, "beta", "a2")

    rc, out, _ = _run(tmp_path, "agent", "list", "--json")

    assert rc == 0
    agents = {agent["name"]: agent for agent in json.loads(out)["agents"]}
    assert agents["alpha"]["active"] is True
    assert agents["beta"]["active"] is False
    assert "apiKey" not in agents["alpha"]


def test_commands_without_identity_fail_with_guidance(tmp_path) -> None:
    rc, out, err = _run(tmp_path, "bounty", "poll")

    assert rc == 1
    assert out == ""
    assert "identity error" in err
    assert "acp agent add" in err


def test_agent_switch_refused_while_seller_running(tmp_path) -> None:
    _add_agent(tmp_path, "alpha", "a1")
    _add_agent(tmp_path, "beta", "a2")
    StateStore(tmp_path / "state").set_seller_pid(os.getpid())

    rc, _, err = _run(tmp_path, "agent", "switch", "beta")

    assert rc == 1
    assert "acp serve stop" in err


def test_bounty_create_and_list_hide_poster_secret(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    _patch_bounty(monkeypatch, _FakeBountyClient())

    rc, out, err = _run(tmp_path, "bounty", "create", "--title", "Logo", "--budget", "25", "--json")
    assert rc == 0, err
    created = json.loads(out)
    assert created["bountyId"] == "b1"
    assert created["posterName"] == "alpha"
    assert "posterSecret" not in created

    rc, out, _ = _run(tmp_path, "bounty", "list", "--json")
    assert rc == 0
    assert "top-secret" not in out
    assert json.loads(out)["bounties"][0]["status"] == "open"
    assert StateStore(tmp_path / "state").get_bounty("b1").poster_secret == "top-secret"


def test_bounty_create_rejects_non_positive_budget(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    _patch_bounty(monkeypatch, _FakeBountyClient())

    rc, _, err = _run(tmp_path, "bounty", "create", "--title", "Logo", "--budget", "0")

    assert rc == 1
    assert "budget must be a positive number" in err


def test_bounty_poll_json_reports_summary(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    _patch_bounty(monkeypatch, _FakeBountyClient(MatchStatus(status="expired", candidates=[])))
    monkeypatch.setattr(cli_main, "_marketplace_client", lambda config, identity: object())
    _run(tmp_path, "bounty", "create", "--title", "Logo", "--budget", "25")

    rc, out, _ = _run(tmp_path, "bounty", "poll", "--json")

    assert rc == 0
    summary = json.loads(out)
    assert summary["checked"] == 1
    assert summary["cleaned"] == [{"bountyId": "b1", "status": "expired", "sourceChannel": "cli"}]


def test_bounty_select_reports_missing_requirements(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    candidate = {
        "id": 2,
        "agent_wallet": "0xseller",
        "job_offering": "video",
        "requirementSchema": {"properties": {"length": {}}, "required": ["length"]},
    }
    _patch_bounty(monkeypatch, _FakeBountyClient(MatchStatus(status="pending_match", candidates=[candidate])))
    monkeypatch.setattr(cli_main, "_marketplace_client", lambda config, identity: object())
    _run(tmp_path, "bounty", "create", "--title", "Video", "--budget", "25")

    rc, _, err = _run(tmp_path, "bounty", "select", "b1", "--candidate", "2")

    assert rc == 1
    assert "--requirement length=..." in err


class _FailingMarketplace:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def browse_agents(self, query: str):
        raise self.exc


def test_marketplace_errors_exit_with_network_code_and_redact(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    exc = MarketplaceRequestError(
        "marketplace request failed: 500 upstream echoed apiKey=abc123", status_code=500
    )
    monkeypatch.setattr(cli_main, "_marketplace_client", lambda config, identity: _FailingMarketplace(exc))

    rc, _, err = _run(tmp_path, "browse", "logo")

    assert rc == 2
    assert "marketplace error" in err
    assert "abc123" not in err
    assert "[REDACTED]" in err


def test_rejected_api_key_gets_guidance(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    exc = MarketplaceRequestError("marketplace request failed: 401 unauthorized", status_code=401)
    monkeypatch.setattr(cli_main, "_marketplace_client", lambda config, identity: _FailingMarketplace(exc))

    rc, _, err = _run(tmp_path, "browse", "logo")

    assert rc == 2
    assert "API key rejected" in err


def test_unreachable_marketplace_exits_with_network_code(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    exc = MarketplaceUnavailableError("marketplace unreachable: connection refused")
    monkeypatch.setattr(cli_main, "_marketplace_client", lambda config, identity: _FailingMarketplace(exc))

    rc, _, err = _run(tmp_path, "browse", "logo")

    assert rc == 2
    assert "unreachable" in err


def test_job_create_rejects_non_object_requirements(tmp_path) -> None:
    _add_agent(tmp_path)

    rc, _, err = _run(tmp_path, "job", "create", "0xprov", "logo", "--requirements", "[1]")

    assert rc == 1
    assert "JSON object" in err


def test_serve_status_when_not_running(tmp_path) -> None:
    rc, out, _ = _run(tmp_path, "serve", "status", "--json")

    assert rc == 0
    assert json.loads(out) == {"pid": None, "running": False}


def test_sell_init_then_inspect(tmp_path) -> None:
    _add_agent(tmp_path)

    rc, out, _ = _run(tmp_path, "sell", "init", "translate")
    assert rc == 0
    assert "acp sell create translate" in out

    rc, out, _ = _run(tmp_path, "sell", "list", "--json")
    assert rc == 0
    assert json.loads(out)["offerings"][0]["dirName"] == "translate"


def test_sell_inspect_unknown_offering(tmp_path) -> None:
    _add_agent(tmp_path)

    rc, _, err = _run(tmp_path, "sell", "inspect", "missing")

    assert rc == 1
    assert "offering error" in err


class _ProfileMarketplace:
    def __init__(self, info: dict | None = None) -> None:
        self.info = info if info is not None else {
            "name": "alpha",
            "description": "",
            "walletAddress": "0xalpha",
            "tokenAddress": "0xtoken",
            "token": {"name": "Alpha", "symbol": "ALP"},
            "jobs": [{"name": "summary", "priceV2": {"type": "fixed", "value": 2}, "slaMinutes": 5}],
        }
        self.updates: list[dict] = []

    def get_my_agent(self) -> dict:
        return self.info

    def update_my_agent(self, fields: dict) -> dict:
        self.updates.append(fields)
        return {**self.info, **fields}

    def get_wallet_balances(self) -> list[dict]:
        return [
            {
                "network": "base",
                "symbol": "USDC",
                "tokenAddress": "0xusdc",
                "tokenBalance": "0x16e360",
                "decimals": 6,
                "tokenPrices": [{"currency": "usd", "value": "1.00"}],
                "tokenMetadata": {"decimals": 6, "name": "USD Coin", "symbol": "USDC"},
            }
        ]


def _patch_marketplace(monkeypatch, marketplace) -> None:
    monkeypatch.setattr(cli_main, "_marketplace_client", lambda config, identity: marketplace)


def test_whoami_shows_profile_with_redacted_key(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    _patch_marketplace(monkeypatch, _ProfileMarketplace())

    rc, out, _ = _run(tmp_path, "whoami")

    assert rc == 0
    assert "key-alpha" not in out
    assert "api_key: key-...lpha" in out
    assert "token: ALP (0xtoken)" in out
    assert "offerings: 1" in out


def test_profile_show_lists_offerings(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    _patch_marketplace(monkeypatch, _ProfileMarketplace())

    rc, out, _ = _run(tmp_path, "profile", "show")

    assert rc == 0
    assert "description: (none)" in out
    assert "  - summary  fee: 2 USDC (fixed)  sla: 5min" in out


def test_profile_update_sends_joined_value(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    marketplace = _ProfileMarketplace()
    _patch_marketplace(monkeypatch, marketplace)

    rc, out, _ = _run(tmp_path, "profile", "update", "description", "Designs", "logos")

    assert rc == 0
    assert marketplace.updates == [{"description": "Designs logos"}]
    assert "description set to 'Designs logos'" in out


def test_profile_update_rejects_unknown_key(tmp_path) -> None:
    _add_agent(tmp_path)

    with pytest.raises(SystemExit):
        _run(tmp_path, "profile", "update", "walletAddress", "0xnew")


def test_wallet_address_and_balance(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    _patch_marketplace(monkeypatch, _ProfileMarketplace())

    rc, out, _ = _run(tmp_path, "wallet", "address", "--json")
    assert rc == 0
    assert json.loads(out) == {"walletAddress": "0xalpha"}

    rc, out, _ = _run(tmp_path, "wallet", "balance")
    assert rc == 0
    assert out.split() == ["USDC", "USD", "Coin", "1.5", "$1.00"]


def test_token_info_with_and_without_token(tmp_path, monkeypatch) -> None:
    _add_agent(tmp_path)
    _patch_marketplace(monkeypatch, _ProfileMarketplace())

    rc, out, _ = _run(tmp_path, "token", "info", "--json")
    assert rc == 0
    assert json.loads(out) == {
        "tokenAddress": "0xtoken",
        "name": "Alpha",
        "symbol": "ALP",
        "url": "https://app.virtuals.io/prototypes/0xtoken",
    }

    _patch_marketplace(monkeypatch, _ProfileMarketplace({"name": "alpha"}))
    rc, out, _ = _run(tmp_path, "token", "info")
    assert rc == 0
    assert "no token launched yet" in out


@pytest.mark.parametrize(
    ("raw", "decimals", "expected"),
    [("0x0", 18, "0"), ("0x16e360", 6, "1.5"), ("2500", 3, "2.5"), ("0xde0b6b3a7640000", 18, "1")],
)
def test_format_token_balance(raw, decimals, expected) -> None:
    assert cli_main.format_token_balance(raw, decimals) == expected


def test_serve_logs_filters_by_offering_job_and_level(tmp_path) -> None:
    state_dir = tmp_path / "state"
    state_dir.mkdir(exist_ok=True)
    (state_dir / "seller.log").write_text(
        "2026-01-01 INFO acp_agent.seller.machine: job 42: executing offering Summary\n"
        "2026-01-01 ERROR acp_agent.seller.machine: job 42: execute_job failed for offering summary\n"
        "2026-01-01 ERROR acp_agent.seller.machine: job 7: execute_job failed for offering translate\n"
        "\n",
        encoding="utf-8",
    )

    rc, out, _ = _run(tmp_path, "serve", "logs", "--offering", "SUMMARY", "--job", "42", "--level", "error")
    assert rc == 0
    assert out.splitlines() == [
        "2026-01-01 ERROR acp_agent.seller.machine: job 42: execute_job failed for offering summary"
    ]

    rc, out, _ = _run(tmp_path, "serve", "logs", "--lines", "1")
    assert out.splitlines() == [
        "2026-01-01 ERROR acp_agent.seller.machine: job 7: execute_job failed for offering translate"
    ]

    rc, out, _ = _run(tmp_path, "serve", "logs", "--job", "99")
    assert out.strip() == "no log lines matched the filter"


def test_serve_logs_without_log_file(tmp_path) -> None:
    rc, out, _ = _run(tmp_path, "serve", "logs")

    assert rc == 0
    assert "acp serve run --detach" in out
