"""Command-line interface for acp-agent."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import Callable, Sequence

from acp_agent.bounty.candidates import normalize_candidate, price_display
from acp_agent.bounty.client import BountyClient
from acp_agent.bounty.lifecycle import (
    cleanup_bounty,
    create_bounty,
    fetch_selectable_candidates,
    refresh_bounty_status,
    select_candidate,
)
from acp_agent.bounty.reconcile import reconcile_bounties
from acp_agent.bounty.scheduler import OpenClawCronScheduler
from acp_agent.cli.config import CLIConfig, ConfigError, load_cli_config
from acp_agent.client import API_KEY_ENV_VAR, MarketplaceClient
from acp_agent.errors import (
    BountyAPIError,
    CandidateSelectionError,
    IdentityError,
    InvalidHandlersError,
    MarketplaceRequestError,
    MarketplaceUnavailableError,
    MissingRequirementError,
    OfferingNotFoundError,
    OfferingValidationError,
    SellerAlreadyRunningError,
)
from acp_agent.identity import AgentIdentity, require_active_identity, switch_identity
from acp_agent.offerings import (
    delist_offering,
    describe_local_offerings,
    register_offering,
    scaffold_offering,
    validate_offering,
)
from acp_agent.offerings.registry import resolve_offering_dir
from acp_agent.seller.runtime import (
    LOG_TAIL_LINES,
    follow_seller_log,
    read_seller_log,
    run_seller_process,
    start_seller_daemon,
    stop_seller,
)
from acp_agent.store import StateStore

EXIT_SUCCESS = 0
EXIT_VALIDATION_ERROR = 1
EXIT_NETWORK_ERROR = 2

SELLER_LOG_FILENAME = "seller.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
PROFILE_KEYS = ("name", "description", "profilePic")
TOKEN_PAGE_URL = "https://app.virtuals.io/prototypes/{address}"

_SENSITIVE_FIELDS = (
    "poster_secret",
    "posterSecret",
    "x-api-key",
    "apiKey",
    "api_key",
    "secret",
    "token",
    "authorization",
)


def _sdk_version() -> str:
    try:
        return pkg_version("acp-agent")
    except PackageNotFoundError:
        return "0.0.0+local"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="acp")
    parser.add_argument(
        "--version",
        action="version",
        version=f"acp-agent {_sdk_version()}",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to CLI config TOML (default: ~/.acp_agent/config.toml)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    version = sub.add_parser("version", help="Show CLI version and endpoints")
    version.add_argument("--json", action="store_true", help="Print version details as JSON")

    agent = sub.add_parser("agent", help="Manage locally known agent identities")
    agent_sub = agent.add_subparsers(dest="agent_command", required=True)
    agent_list = agent_sub.add_parser("list", help="List agent profiles")
    agent_list.add_argument("--json", action="store_true")
    agent_add = agent_sub.add_parser("add", help="Record an agent profile")
    agent_add.add_argument("--id", required=True, help="Marketplace agent id")
    agent_add.add_argument("--name", required=True)
    agent_add.add_argument("--wallet", required=True, help="Agent wallet address")
    agent_add.add_argument("--api-key", required=True)
    agent_add.add_argument("--activate", action="store_true", help="Make it the active agent")
    agent_add.add_argument("--json", action="store_true")
    agent_switch = agent_sub.add_parser("switch", help="Change the active agent")
    agent_switch.add_argument("name")
    agent_switch.add_argument("--api-key", default=None)
    agent_switch.add_argument("--json", action="store_true")

    whoami = sub.add_parser("whoami", help="Show the active agent as the marketplace sees it")
    whoami.add_argument("--json", action="store_true")

    profile = sub.add_parser("profile", help="Marketplace profile of the active agent")
    profile_sub = profile.add_subparsers(dest="profile_command", required=True)
    profile_show = profile_sub.add_parser("show", help="Show the agent profile")
    profile_show.add_argument("--json", action="store_true")
    profile_update = profile_sub.add_parser("update", help="Update one profile field")
    profile_update.add_argument("key", choices=PROFILE_KEYS)
    profile_update.add_argument("value", nargs="+")
    profile_update.add_argument("--json", action="store_true")

    wallet = sub.add_parser("wallet", help="Agent wallet")
    wallet_sub = wallet.add_subparsers(dest="wallet_command", required=True)
    for name, help_text in (("address", "Show the wallet address"), ("balance", "Show token balances")):
        wallet_cmd = wallet_sub.add_parser(name, help=help_text)
        wallet_cmd.add_argument("--json", action="store_true")

    browse = sub.add_parser("browse", help="Search marketplace agents")
    browse.add_argument("query")
    browse.add_argument("--json", action="store_true")

    job = sub.add_parser("job", help="Buyer-side job operations")
    job_sub = job.add_subparsers(dest="job_command", required=True)
    job_create = job_sub.add_parser("create", help="Create a job against a provider offering")
    job_create.add_argument("wallet", help="Provider wallet address")
    job_create.add_argument("offering", help="Job offering name")
    job_create.add_argument(
        "--requirements",
        default=None,
        help="Service requirements as a JSON object",
    )
    job_create.add_argument("--json", action="store_true")
    job_status = job_sub.add_parser("status", help="Show a job")
    job_status.add_argument("job_id")
    job_status.add_argument("--json", action="store_true")
    for name, help_text in (("active", "List active jobs"), ("completed", "List completed jobs")):
        listing = job_sub.add_parser(name, help=help_text)
        listing.add_argument("--page", type=int, default=None)
        listing.add_argument("--page-size", type=int, default=None)
        listing.add_argument("--json", action="store_true")

    sell = sub.add_parser("sell", help="Manage offerings of the active agent")
    sell_sub = sell.add_subparsers(dest="sell_command", required=True)
    sell_init = sell_sub.add_parser("init", help="Scaffold offering.json and handlers.py")
    sell_init.add_argument("name")
    sell_create = sell_sub.add_parser("create", help="Validate and register an offering")
    sell_create.add_argument("name")
    sell_create.add_argument("--json", action="store_true")
    sell_delete = sell_sub.add_parser("delete", help="Delist an offering from the marketplace")
    sell_delete.add_argument("name")
    sell_list = sell_sub.add_parser("list", help="List local offerings")
    sell_list.add_argument("--json", action="store_true")
    sell_inspect = sell_sub.add_parser("inspect", help="Validate an offering without publishing")
    sell_inspect.add_argument("name")
    sell_inspect.add_argument("--json", action="store_true")

    serve = sub.add_parser("serve", help="Seller runtime")
    serve_sub = serve.add_subparsers(dest="serve_command", required=True)
    serve_run = serve_sub.add_parser("run", help="Serve jobs until interrupted")
    serve_run.add_argument(
        "--detach",
        action="store_true",
        help="Start in the background, logging to <state_dir>/seller.log",
    )
    serve_sub.add_parser("stop", help="Stop the running seller runtime")
    serve_status = serve_sub.add_parser("status", help="Show whether the seller is running")
    serve_status.add_argument("--json", action="store_true")
    serve_logs = serve_sub.add_parser("logs", help="Show recent seller log lines")
    serve_logs.add_argument("--follow", "-f", action="store_true", help="Keep printing new lines")
    serve_logs.add_argument("--offering", default=None, help="Only lines mentioning this offering")
    serve_logs.add_argument("--job", default=None, help="Only lines mentioning this job id")
    serve_logs.add_argument("--level", default=None, help="Only lines at this log level")
    serve_logs.add_argument("--lines", type=int, default=LOG_TAIL_LINES)

    bounty = sub.add_parser("bounty", help="Buyer-side bounties")
    bounty_sub = bounty.add_subparsers(dest="bounty_command", required=True)
    bounty_create = bounty_sub.add_parser("create", help="Post a bounty")
    bounty_create.add_argument("--title", required=True)
    bounty_create.add_argument("--budget", type=float, required=True, help="Budget in USD")
    bounty_create.add_argument("--description", default="")
    bounty_create.add_argument("--category", default="digital", help="digital or physical")
    bounty_create.add_argument("--tags", default="", help="Comma-separated tags")
    bounty_create.add_argument("--source-channel", default="cli")
    bounty_create.add_argument("--json", action="store_true")
    bounty_list = bounty_sub.add_parser("list", help="List locally tracked bounties")
    bounty_list.add_argument("--json", action="store_true")
    bounty_poll = bounty_sub.add_parser("poll", help="Run one reconciliation pass")
    bounty_poll.add_argument("--json", action="store_true")
    bounty_status = bounty_sub.add_parser("status", help="Sync and show one bounty")
    bounty_status.add_argument("bounty_id")
    bounty_status.add_argument("--json", action="store_true")
    bounty_select = bounty_sub.add_parser(
        "select",
        help="List candidates, or pick one (0 rejects all) and create its job",
    )
    bounty_select.add_argument("bounty_id")
    bounty_select.add_argument("--candidate", type=int, default=None)
    bounty_select.add_argument(
        "--requirement",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Value for a field of the candidate's requirement schema (repeatable)",
    )
    bounty_select.add_argument("--json", action="store_true")
    bounty_cleanup = bounty_sub.add_parser("cleanup", help="Remove a bounty from local state")
    bounty_cleanup.add_argument("bounty_id")

    token = sub.add_parser("token", help="Agent token operations")
    token_sub = token.add_subparsers(dest="token_command", required=True)
    token_launch = token_sub.add_parser("launch", help="Launch the active agent's token")
    token_launch.add_argument("--symbol", required=True)
    token_launch.add_argument("--description", required=True)
    token_launch.add_argument("--image-url", default=None)
    token_launch.add_argument("--json", action="store_true")
    token_info = token_sub.add_parser("info", help="Show the active agent's token")
    token_info.add_argument("--json", action="store_true")

    return parser


def _sanitize_error_text(value: str) -> str:
    redacted = value
    for field in _SENSITIVE_FIELDS:
        redacted = re.sub(
            rf"(?i)({re.escape(field)}[\"']?\s*[=:]\s*[\"']?)([^,\s\"']+)",
            r"\1[REDACTED]",
            redacted,
        )
    redacted = re.sub(
        r"(?i)([?&](?:secret|token|api_key|poster_secret)=)([^&\s]+)", r"\1[REDACTED]", redacted
    )
    return redacted


def _print_error(stderr, prefix: str, message: str, *, code: int) -> int:
    print(f"{prefix}: {_sanitize_error_text(message)}", file=stderr)
    return code


def _print_marketplace_error(stderr, exc: MarketplaceUnavailableError) -> int:
    prefix = "bounty error" if isinstance(exc, BountyAPIError) else "marketplace error"
    if isinstance(exc, MarketplaceRequestError) and exc.status_code == 401:
        return _print_error(
            stderr,
            prefix,
            f"API key rejected. Update it with `acp agent switch <name> --api-key ...` or "
            f"{API_KEY_ENV_VAR}.",
            code=EXIT_NETWORK_ERROR,
        )
    return _print_error(stderr, prefix, str(exc), code=EXIT_NETWORK_ERROR)


def _print_json(payload: object, stdout) -> None:
    print(json.dumps(payload, sort_keys=True, default=str), file=stdout)


def _print_fields(stdout, fields: Sequence[tuple[str, object]]) -> None:
    for key, value in fields:
        print(f"{key}: {value}", file=stdout)


def _store(config: CLIConfig) -> StateStore:
    return StateStore(config.state_dir)


def _active_identity(store: StateStore) -> AgentIdentity:
    env_key = os.getenv(API_KEY_ENV_VAR)
    return require_active_identity(store, api_key=env_key.strip() if env_key else None)


def _marketplace_client(config: CLIConfig, identity: AgentIdentity) -> MarketplaceClient:
    return MarketplaceClient(base_url=config.api_base, api_key=identity.api_key)


def _bounty_client(config: CLIConfig, identity: AgentIdentity) -> BountyClient:
    return BountyClient(base_url=config.bounty_api_base, api_key=identity.api_key)


def _scheduler(store: StateStore) -> OpenClawCronScheduler:
    return OpenClawCronScheduler(store=store)


def _run_version(*, config: CLIConfig, as_json: bool, stdout) -> int:
    payload = {
        "cli": "acp-agent",
        "sdk_version": _sdk_version(),
        "api_base": config.api_base,
        "bounty_api_base": config.bounty_api_base,
        "socket_url": config.socket_url,
        "state_dir": config.state_dir,
    }
    if as_json:
        _print_json(payload, stdout)
    else:
        print(f"acp-agent {payload['sdk_version']}", file=stdout)
        print(f"api: {payload['api_base']}", file=stdout)
        print(f"bounty api: {payload['bounty_api_base']}", file=stdout)
        print(f"socket: {payload['socket_url']}", file=stdout)
    return EXIT_SUCCESS


# -- agent --


def _run_agent_list(*, args, config: CLIConfig, stdout) -> int:
    agents = [
        {
            "id": agent.get("id"),
            "name": agent.get("name"),
            "walletAddress": agent.get("walletAddress"),
            "active": bool(agent.get("active")),
        }
        for agent in _store(config).list_agents()
    ]
    if args.json:
        _print_json({"agents": agents}, stdout)
        return EXIT_SUCCESS
    if not agents:
        print("no agents configured; run `acp agent add`", file=stdout)
        return EXIT_SUCCESS
    for agent in agents:
        marker = "*" if agent["active"] else " "
        print(f"{marker} {agent['name']} ({agent['walletAddress']})", file=stdout)
    return EXIT_SUCCESS


def _run_agent_add(*, args, config: CLIConfig, stdout, stderr) -> int:
    name = args.name.strip()
    wallet = args.wallet.strip()
    if not name or not wallet:
        return _print_error(
            stderr, "identity error", "name and wallet must not be empty", code=EXIT_VALIDATION_ERROR
        )
    store = _store(config)
    existing = store.find_agent_by_name(name)
    if existing is not None and existing.get("id") != args.id:
        return _print_error(
            stderr,
            "identity error",
            f"an agent named {name!r} already exists",
            code=EXIT_VALIDATION_ERROR,
        )
    store.upsert_agent(
        {
            "id": args.id,
            "name": name,
            "walletAddress": wallet,
            "apiKey": args.api_key,
            "active": bool(existing and existing.get("active")),
        }
    )
    active = False
    if args.activate or store.get_active_agent() is None:
        switch_identity(store, name, api_key=args.api_key)
        active = True
    payload = {"id": args.id, "name": name, "walletAddress": wallet, "active": active}
    if args.json:
        _print_json(payload, stdout)
    else:
        suffix = " (active)" if active else ""
        print(f"added agent {name}{suffix}", file=stdout)
    return EXIT_SUCCESS


def _run_agent_switch(*, args, config: CLIConfig, stdout, stderr) -> int:
    store = _store(config)
    try:
        identity = switch_identity(store, args.name, api_key=args.api_key)
    except SellerAlreadyRunningError as exc:
        return _print_error(
            stderr,
            "seller error",
            f"{exc}. Stop it with `acp serve stop` before switching agents.",
            code=EXIT_VALIDATION_ERROR,
        )
    if args.json:
        _print_json(
            {"id": identity.id, "name": identity.name, "walletAddress": identity.wallet_address},
            stdout,
        )
    else:
        print(f"active agent: {identity.name} ({identity.wallet_address})", file=stdout)
    return EXIT_SUCCESS


# -- profile / wallet --


def _redact_api_key(key: str | None) -> str:
    if not key or len(key) < 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"


def _token_display(info: dict) -> str:
    token = info.get("token") if isinstance(info.get("token"), dict) else {}
    address = info.get("tokenAddress")
    if token.get("symbol"):
        return f"{token['symbol']} ({address})"
    return address or "(none)"


def _offering_lines(info: dict) -> list[str]:
    lines = []
    for offering in info.get("jobs") or []:
        if not isinstance(offering, dict):
            continue
        price = offering.get("priceV2")
        if isinstance(price, dict):
            unit = " USDC" if price.get("type") == "fixed" else ""
            fee = f"{price.get('value')}{unit} ({price.get('type')})"
        else:
            fee = "-"
        lines.append(f"  - {offering.get('name')}  fee: {fee}  sla: {offering.get('slaMinutes')}min")
    return lines


def _run_whoami(*, args, config: CLIConfig, stdout) -> int:
    store = _store(config)
    identity = _active_identity(store)
    info = _marketplace_client(config, identity).get_my_agent()
    agent_count = len(store.list_agents())
    if args.json:
        _print_json({**info, "agentCount": agent_count}, stdout)
        return EXIT_SUCCESS
    _print_fields(
        stdout,
        [
            ("name", info.get("name", identity.name)),
            ("wallet", info.get("walletAddress", identity.wallet_address)),
            ("api_key", _redact_api_key(identity.api_key)),
            ("description", info.get("description") or "(none)"),
            ("token", _token_display(info)),
            ("offerings", len(info.get("jobs") or [])),
        ],
    )
    if agent_count > 1:
        print(f"{agent_count} saved agents; see `acp agent list`", file=stdout)
    return EXIT_SUCCESS


def _run_profile_show(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    info = _marketplace_client(config, identity).get_my_agent()
    if args.json:
        _print_json(info, stdout)
        return EXIT_SUCCESS
    _print_fields(
        stdout,
        [
            ("name", info.get("name")),
            ("description", info.get("description") or "(none)"),
            ("wallet", info.get("walletAddress")),
            ("token", _token_display(info)),
        ],
    )
    offerings = _offering_lines(info)
    if offerings:
        print("job offerings:", file=stdout)
        for line in offerings:
            print(line, file=stdout)
    return EXIT_SUCCESS


def _run_profile_update(*, args, config: CLIConfig, stdout) -> int:
    value = " ".join(args.value).strip()
    if not value:
        raise ValueError(f"profile {args.key} must not be empty")
    identity = _active_identity(_store(config))
    updated = _marketplace_client(config, identity).update_my_agent({args.key: value})
    if args.json:
        _print_json(updated, stdout)
    else:
        print(f"profile updated: {args.key} set to {value!r}", file=stdout)
    return EXIT_SUCCESS


def _run_wallet_address(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    info = _marketplace_client(config, identity).get_my_agent()
    address = info.get("walletAddress") or identity.wallet_address
    if args.json:
        _print_json({"walletAddress": address}, stdout)
    else:
        print(address, file=stdout)
    return EXIT_SUCCESS


def format_token_balance(raw: object, decimals: int) -> str:
    """Render an integer or hex base-unit balance as a decimal string."""
    text = str(raw).strip()
    try:
        value = int(text, 16) if text.lower().startswith("0x") else int(text)
    except ValueError:
        return text
    whole, remainder = divmod(value, 10**decimals)
    if not remainder:
        return str(whole)
    fraction = str(remainder).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{fraction}"


def _balance_row(item: dict) -> dict:
    metadata = item.get("tokenMetadata") if isinstance(item.get("tokenMetadata"), dict) else {}
    native = item.get("tokenAddress") is None
    decimals = metadata.get("decimals")
    if decimals is None:
        decimals = item.get("decimals")
    if decimals is None:
        decimals = 18
    prices = item.get("tokenPrices") or []
    price = prices[0].get("value") if prices and isinstance(prices[0], dict) else None
    return {
        "symbol": metadata.get("symbol") or item.get("symbol") or ("ETH" if native else "???"),
        "name": metadata.get("name") or ("Ether" if native else ""),
        "balance": format_token_balance(item.get("tokenBalance", "0"), int(decimals)),
        "price": price if price is not None else "-",
        "network": item.get("network"),
        "tokenAddress": item.get("tokenAddress"),
    }


def _run_wallet_balance(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    balances = _marketplace_client(config, identity).get_wallet_balances()
    if args.json:
        _print_json({"balances": balances}, stdout)
        return EXIT_SUCCESS
    if not balances:
        print("no tokens found", file=stdout)
        return EXIT_SUCCESS
    for row in (_balance_row(item) for item in balances):
        print(
            f"{row['symbol']:<8} {row['name']:<20} {row['balance']:>20}    ${row['price']}",
            file=stdout,
        )
    return EXIT_SUCCESS


# -- marketplace --


def _run_browse(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    agents = _marketplace_client(config, identity).browse_agents(args.query)
    if args.json:
        _print_json({"agents": agents}, stdout)
        return EXIT_SUCCESS
    if not agents:
        print(f"no agents found for {args.query!r}", file=stdout)
        return EXIT_SUCCESS
    for agent in agents:
        print(f"{agent.get('name')} ({agent.get('walletAddress')})", file=stdout)
        for offering in agent.get("jobs") or agent.get("jobOfferings") or []:
            if not isinstance(offering, dict):
                continue
            fee = offering.get("priceV2") or offering.get("price")
            print(f"  - {offering.get('name')}: {fee}", file=stdout)
    return EXIT_SUCCESS


def _parse_requirements(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise ValueError(f"--requirements must be a JSON object: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("--requirements must be a JSON object")
    return parsed


def _run_job_create(*, args, config: CLIConfig, stdout) -> int:
    requirements = _parse_requirements(args.requirements)
    identity = _active_identity(_store(config))
    job_id = _marketplace_client(config, identity).create_job(
        provider_wallet_address=args.wallet,
        job_offering_name=args.offering,
        service_requirements=requirements,
    )
    if args.json:
        _print_json({"jobId": job_id}, stdout)
    else:
        print(f"job created: {job_id}", file=stdout)
        print(f"track it with `acp job status {job_id}`", file=stdout)
    return EXIT_SUCCESS


def _run_job_status(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    job = _marketplace_client(config, identity).get_job(args.job_id)
    if args.json:
        _print_json(job, stdout)
        return EXIT_SUCCESS
    _print_fields(
        stdout,
        [
            ("job_id", job.get("id", args.job_id)),
            ("phase", job.get("phase")),
            ("provider", job.get("providerAddress")),
            ("client", job.get("clientAddress")),
            ("price", job.get("price")),
            ("deliverable", job.get("deliverable")),
        ],
    )
    return EXIT_SUCCESS


def _run_job_list(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    client = _marketplace_client(config, identity)
    fetch = client.list_active_jobs if args.job_command == "active" else client.list_completed_jobs
    jobs = fetch(page=args.page, page_size=args.page_size)
    if args.json:
        _print_json({"jobs": jobs}, stdout)
        return EXIT_SUCCESS
    if not jobs:
        print(f"no {args.job_command} jobs", file=stdout)
        return EXIT_SUCCESS
    for item in jobs:
        if isinstance(item, dict):
            print(f"{item.get('id')}: phase={item.get('phase')} price={item.get('price')}", file=stdout)
    return EXIT_SUCCESS


def _run_token_launch(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    result = _marketplace_client(config, identity).launch_token(
        symbol=args.symbol,
        description=args.description,
        image_url=args.image_url,
    )
    if args.json:
        _print_json(result, stdout)
    else:
        print(f"token {args.symbol} launched for {identity.name}", file=stdout)
    return EXIT_SUCCESS


def _run_token_info(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    info = _marketplace_client(config, identity).get_my_agent()
    address = info.get("tokenAddress")
    token = info.get("token") if isinstance(info.get("token"), dict) else {}
    payload = {
        "tokenAddress": address,
        "name": token.get("name"),
        "symbol": token.get("symbol"),
        "url": TOKEN_PAGE_URL.format(address=address) if address else None,
    }
    if args.json:
        _print_json(payload, stdout)
    elif not address:
        print("no token launched yet; use `acp token launch`", file=stdout)
    else:
        _print_fields(
            stdout,
            [
                ("name", payload["name"]),
                ("symbol", payload["symbol"]),
                ("address", address),
                ("url", payload["url"]),
            ],
        )
    return EXIT_SUCCESS


# -- sell --


def _print_validation_errors(stderr, exc: OfferingValidationError) -> int:
    print(f"offering error: {exc}", file=stderr)
    for error in exc.errors:
        print(f"  error: {error}", file=stderr)
    for warning in exc.warnings:
        print(f"  warning: {warning}", file=stderr)
    return EXIT_VALIDATION_ERROR


def _run_sell_init(*, args, config: CLIConfig, stdout, stderr) -> int:
    identity = _active_identity(_store(config))
    try:
        path = scaffold_offering(args.name, identity.dir_name, base_dir=config.offerings_dir)
    except FileExistsError as exc:
        return _print_error(stderr, "offering error", str(exc), code=EXIT_VALIDATION_ERROR)
    print(f"created {path}", file=stdout)
    print(f"edit offering.json and handlers.py, then run `acp sell create {args.name}`", file=stdout)
    return EXIT_SUCCESS


def _run_sell_create(*, args, config: CLIConfig, stdout, stderr) -> int:
    identity = _active_identity(_store(config))
    try:
        result = register_offering(
            args.name,
            identity.dir_name,
            client=_marketplace_client(config, identity),
            base_dir=config.offerings_dir,
        )
    except OfferingValidationError as exc:
        return _print_validation_errors(stderr, exc)
    for warning in result.warnings:
        print(f"warning: {warning}", file=stderr)
    if args.json:
        _print_json({"name": result.name, "offering": result.payload}, stdout)
    else:
        print(f"offering {result.name} registered", file=stdout)
        print("run `acp serve run` to start accepting jobs", file=stdout)
    return EXIT_SUCCESS


def _run_sell_delete(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    delist_offering(args.name, client=_marketplace_client(config, identity))
    print(f"offering {args.name} delisted; local files were kept", file=stdout)
    return EXIT_SUCCESS


def _run_sell_list(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    offerings = describe_local_offerings(identity.dir_name, base_dir=config.offerings_dir)
    if args.json:
        _print_json({"agent": identity.name, "offerings": offerings}, stdout)
        return EXIT_SUCCESS
    if not offerings:
        print(f"no local offerings for {identity.name}; run `acp sell init <name>`", file=stdout)
        return EXIT_SUCCESS
    for offering in offerings:
        print(
            f"{offering['name']}: {offering['jobFee']} ({offering['jobFeeType']}) "
            f"handlers={','.join(offering['handlers']) or '-'}",
            file=stdout,
        )
    return EXIT_SUCCESS


def _run_sell_inspect(*, args, config: CLIConfig, stdout) -> int:
    identity = _active_identity(_store(config))
    offering_dir = resolve_offering_dir(args.name, identity.dir_name, base_dir=config.offerings_dir)
    if not offering_dir.is_dir():
        raise OfferingNotFoundError(f"offering directory not found: {offering_dir}")
    report, _ = validate_offering(offering_dir)
    payload = {
        "name": args.name,
        "path": str(offering_dir),
        "valid": report.valid,
        "errors": report.errors,
        "warnings": report.warnings,
    }
    if args.json:
        _print_json(payload, stdout)
    else:
        print(f"{args.name}: {'valid' if report.valid else 'invalid'}", file=stdout)
        for error in report.errors:
            print(f"  error: {error}", file=stdout)
        for warning in report.warnings:
            print(f"  warning: {warning}", file=stdout)
    return EXIT_SUCCESS if report.valid else EXIT_VALIDATION_ERROR


# -- serve --


def _run_serve_run(*, args, config: CLIConfig, stdout, stderr) -> int:
    store = _store(config)
    identity = _active_identity(store)
    running = store.live_seller_pid()
    if running is not None:
        return _print_error(
            stderr,
            "seller error",
            f"seller runtime already running with pid {running}; run `acp serve stop` first",
            code=EXIT_VALIDATION_ERROR,
        )

    if args.detach:
        log_path = Path(config.state_dir) / SELLER_LOG_FILENAME
        pid = start_seller_daemon(log_path=log_path, config_path=args.config)
        print(f"seller runtime started (pid {pid}); logs: {log_path}", file=stdout)
        return EXIT_SUCCESS

    logging.basicConfig(level=config.log_level_value, format=LOG_FORMAT, stream=stderr)
    try:
        run_seller_process(
            identity,
            store=store,
            api_base=config.api_base,
            socket_url=config.socket_url,
            offerings_dir=config.offerings_dir,
        )
    except SellerAlreadyRunningError as exc:
        return _print_error(stderr, "seller error", str(exc), code=EXIT_VALIDATION_ERROR)
    return EXIT_SUCCESS


def _run_serve_stop(*, config: CLIConfig, stdout, stderr) -> int:
    try:
        pid = stop_seller(_store(config))
    except TimeoutError as exc:
        return _print_error(stderr, "seller error", str(exc), code=EXIT_VALIDATION_ERROR)
    except PermissionError as exc:
        return _print_error(stderr, "seller error", str(exc), code=EXIT_VALIDATION_ERROR)
    if pid is None:
        print("seller runtime is not running", file=stdout)
    else:
        print(f"seller runtime stopped (pid {pid})", file=stdout)
    return EXIT_SUCCESS


def _run_serve_status(*, args, config: CLIConfig, stdout) -> int:
    pid = _store(config).live_seller_pid()
    if args.json:
        _print_json({"running": pid is not None, "pid": pid}, stdout)
    elif pid is None:
        print("seller runtime is not running", file=stdout)
    else:
        print(f"seller runtime is running (pid {pid})", file=stdout)
    return EXIT_SUCCESS


def _run_serve_logs(*, args, config: CLIConfig, stdout) -> int:
    log_path = Path(config.state_dir) / SELLER_LOG_FILENAME
    if not log_path.is_file():
        print("no seller log yet; start the seller with `acp serve run --detach`", file=stdout)
        return EXIT_SUCCESS
    filters = {"offering": args.offering, "job": args.job, "level": args.level}
    lines = read_seller_log(log_path, limit=args.lines, **filters)
    for line in lines:
        print(line, file=stdout)
    if not lines and not args.follow:
        filtered = any(filters.values())
        print("no log lines matched the filter" if filtered else "seller log is empty", file=stdout)
    if args.follow:
        follow_seller_log(log_path, lambda line: print(line, file=stdout, flush=True), **filters)
    return EXIT_SUCCESS


# -- bounty --


def _run_bounty_create(*, args, config: CLIConfig, stdout) -> int:
    store = _store(config)
    identity = _active_identity(store)
    bounty = create_bounty(
        store=store,
        bounty_client=_bounty_client(config, identity),
        scheduler=_scheduler(store),
        title=args.title,
        budget=args.budget,
        poster_name=identity.name,
        description=args.description,
        category=args.category,
        tags=args.tags,
        source_channel=args.source_channel,
    )
    payload = bounty.to_dict()
    payload.pop("posterSecret", None)
    if args.json:
        _print_json(payload, stdout)
    else:
        _print_fields(
            stdout,
            [
                ("bounty_id", bounty.bounty_id),
                ("title", bounty.title),
                ("budget", bounty.budget),
                ("category", bounty.category),
                ("status", bounty.status),
            ],
        )
        print("candidates are checked by `acp bounty poll`", file=stdout)
    return EXIT_SUCCESS


def _run_bounty_list(*, args, config: CLIConfig, stdout) -> int:
    bounties = _store(config).list_bounties()
    if args.json:
        listed = []
        for bounty in bounties:
            item = bounty.to_dict()
            item.pop("posterSecret", None)
            listed.append(item)
        _print_json({"bounties": listed}, stdout)
        return EXIT_SUCCESS
    if not bounties:
        print("no active bounties", file=stdout)
        return EXIT_SUCCESS
    for bounty in bounties:
        job = f" job={bounty.acp_job_id}" if bounty.acp_job_id else ""
        print(f"{bounty.bounty_id}: {bounty.status} {bounty.title!r}{job}", file=stdout)
    return EXIT_SUCCESS


def _run_bounty_poll(*, args, config: CLIConfig, stdout) -> int:
    store = _store(config)
    identity = _active_identity(store)
    summary = reconcile_bounties(
        store=store,
        bounty_client=_bounty_client(config, identity),
        marketplace=_marketplace_client(config, identity),
        scheduler=_scheduler(store),
    )
    if args.json:
        _print_json(summary.to_dict(), stdout)
        return EXIT_SUCCESS
    _print_fields(
        stdout,
        [
            ("checked", summary.checked),
            ("pending_match", len(summary.pending_match)),
            ("claimed_jobs", len(summary.claimed_jobs)),
            ("cleaned", len(summary.cleaned)),
            ("errors", len(summary.errors)),
        ],
    )
    for entry in summary.pending_match:
        print(f"bounty {entry['bountyId']}: {len(entry['candidates'])} candidate(s)", file=stdout)
        for candidate in entry["candidates"]:
            print(
                f"  [{candidate['id']}] {candidate['agentName']} - {candidate['offeringName']} "
                f"({price_display(candidate)})",
                file=stdout,
            )
        print(f"  -> run: acp bounty select {entry['bountyId']} --candidate <id>", file=stdout)
    for entry in summary.claimed_jobs:
        print(
            f"bounty {entry['bountyId']}: job {entry['acpJobId']} phase {entry['jobPhase']}",
            file=stdout,
        )
    for entry in summary.cleaned:
        print(f"bounty {entry['bountyId']}: {entry['status']}", file=stdout)
    for entry in summary.errors:
        print(f"bounty {entry['bountyId']}: error: {entry['error']}", file=stdout)
    return EXIT_SUCCESS


def _run_bounty_status(*, args, config: CLIConfig, stdout) -> int:
    store = _store(config)
    identity = _active_identity(store)
    report = refresh_bounty_status(
        args.bounty_id,
        store=store,
        bounty_client=_bounty_client(config, identity),
        scheduler=_scheduler(store),
    )
    if args.json:
        payload = report.to_dict()
        payload["local"].pop("posterSecret", None)
        _print_json(payload, stdout)
        return EXIT_SUCCESS
    _print_fields(
        stdout,
        [
            ("bounty_id", report.bounty.bounty_id),
            ("status", report.remote.status),
            ("title", report.bounty.title),
            ("candidates", len(report.remote.candidates)),
        ],
    )
    if report.removed:
        print("local bounty record cleaned up (terminal status)", file=stdout)
    elif report.remote.is_pending_match:
        print(f"select a provider with `acp bounty select {args.bounty_id}`", file=stdout)
    return EXIT_SUCCESS


def _parse_requirement_answers(pairs: Sequence[str]) -> dict[str, str]:
    answers: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"--requirement must be KEY=VALUE, got {pair!r}")
        answers[key.strip()] = value
    return answers


def _run_bounty_select(*, args, config: CLIConfig, stdout, stderr) -> int:
    store = _store(config)
    identity = _active_identity(store)
    bounty_client = _bounty_client(config, identity)

    if args.candidate is None:
        _, candidates = fetch_selectable_candidates(
            args.bounty_id, store=store, bounty_client=bounty_client
        )
        normalized = [normalize_candidate(candidate) for candidate in candidates]
        if args.json:
            _print_json({"bountyId": args.bounty_id, "candidates": normalized}, stdout)
            return EXIT_SUCCESS
        for candidate in normalized:
            print(
                f"[{candidate['id']}] {candidate['agentName']} - {candidate['offeringName']} "
                f"({price_display(candidate)}) wallet={candidate['agentWallet']}",
                file=stdout,
            )
        print("[0] none of these candidates", file=stdout)
        print(f"choose with `acp bounty select {args.bounty_id} --candidate <id>`", file=stdout)
        return EXIT_SUCCESS

    try:
        result = select_candidate(
            args.bounty_id,
            args.candidate,
            _parse_requirement_answers(args.requirement),
            store=store,
            bounty_client=bounty_client,
            marketplace=_marketplace_client(config, identity),
        )
    except MissingRequirementError as exc:
        hints = " ".join(f"--requirement {key}=..." for key in exc.missing)
        return _print_error(stderr, "bounty error", f"{exc}; pass {hints}", code=EXIT_VALIDATION_ERROR)
    if args.json:
        _print_json(result.to_dict(), stdout)
    elif result.job_id is None:
        print("candidates rejected; bounty reopened for new matching", file=stdout)
    else:
        _print_fields(
            stdout,
            [
                ("bounty_id", result.bounty_id),
                ("candidate_id", result.candidate_id),
                ("acp_job_id", result.job_id),
                ("status", result.status),
            ],
        )
        print(f"monitor the job with `acp job status {result.job_id}`", file=stdout)
    return EXIT_SUCCESS


def _run_bounty_cleanup(*, args, config: CLIConfig, stdout) -> int:
    store = _store(config)
    if cleanup_bounty(args.bounty_id, store=store, scheduler=_scheduler(store)):
        print(f"cleaned up bounty {args.bounty_id}", file=stdout)
    else:
        print(f"bounty not found locally: {args.bounty_id}", file=stdout)
    return EXIT_SUCCESS


def _dispatch(args, config: CLIConfig, stdout, stderr) -> int:
    handlers: dict[tuple[str, str | None], Callable[[], int]] = {
        ("agent", "list"): lambda: _run_agent_list(args=args, config=config, stdout=stdout),
        ("agent", "add"): lambda: _run_agent_add(
            args=args, config=config, stdout=stdout, stderr=stderr
        ),
        ("agent", "switch"): lambda: _run_agent_switch(
            args=args, config=config, stdout=stdout, stderr=stderr
        ),
        ("whoami", None): lambda: _run_whoami(args=args, config=config, stdout=stdout),
        ("profile", "show"): lambda: _run_profile_show(args=args, config=config, stdout=stdout),
        ("profile", "update"): lambda: _run_profile_update(args=args, config=config, stdout=stdout),
        ("wallet", "address"): lambda: _run_wallet_address(args=args, config=config, stdout=stdout),
        ("wallet", "balance"): lambda: _run_wallet_balance(args=args, config=config, stdout=stdout),
        ("browse", None): lambda: _run_browse(args=args, config=config, stdout=stdout),
        ("job", "create"): lambda: _run_job_create(args=args, config=config, stdout=stdout),
        ("job", "status"): lambda: _run_job_status(args=args, config=config, stdout=stdout),
        ("job", "active"): lambda: _run_job_list(args=args, config=config, stdout=stdout),
        ("job", "completed"): lambda: _run_job_list(args=args, config=config, stdout=stdout),
        ("sell", "init"): lambda: _run_sell_init(
            args=args, config=config, stdout=stdout, stderr=stderr
        ),
        ("sell", "create"): lambda: _run_sell_create(
            args=args, config=config, stdout=stdout, stderr=stderr
        ),
        ("sell", "delete"): lambda: _run_sell_delete(args=args, config=config, stdout=stdout),
        ("sell", "list"): lambda: _run_sell_list(args=args, config=config, stdout=stdout),
        ("sell", "inspect"): lambda: _run_sell_inspect(args=args, config=config, stdout=stdout),
        ("serve", "run"): lambda: _run_serve_run(
            args=args, config=config, stdout=stdout, stderr=stderr
        ),
        ("serve", "stop"): lambda: _run_serve_stop(config=config, stdout=stdout, stderr=stderr),
        ("serve", "status"): lambda: _run_serve_status(args=args, config=config, stdout=stdout),
        ("serve", "logs"): lambda: _run_serve_logs(args=args, config=config, stdout=stdout),
        ("bounty", "create"): lambda: _run_bounty_create(args=args, config=config, stdout=stdout),
        ("bounty", "list"): lambda: _run_bounty_list(args=args, config=config, stdout=stdout),
        ("bounty", "poll"): lambda: _run_bounty_poll(args=args, config=config, stdout=stdout),
        ("bounty", "status"): lambda: _run_bounty_status(args=args, config=config, stdout=stdout),
        ("bounty", "select"): lambda: _run_bounty_select(
            args=args, config=config, stdout=stdout, stderr=stderr
        ),
        ("bounty", "cleanup"): lambda: _run_bounty_cleanup(
            args=args, config=config, stdout=stdout
        ),
        ("token", "launch"): lambda: _run_token_launch(args=args, config=config, stdout=stdout),
        ("token", "info"): lambda: _run_token_info(args=args, config=config, stdout=stdout),
    }
    subcommand = getattr(args, f"{args.command}_command", None)
    handler = handlers.get((args.command, subcommand))
    if handler is None:
        print("unknown command", file=stderr)
        return EXIT_VALIDATION_ERROR
    return handler()


def main(argv: Sequence[str] | None = None, *, stdout=sys.stdout, stderr=sys.stderr) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_cli_config(args.config)
    except ConfigError as exc:
        return _print_error(stderr, "config error", str(exc), code=EXIT_VALIDATION_ERROR)

    if args.command == "version":
        return _run_version(config=config, as_json=args.json, stdout=stdout)

    try:
        return _dispatch(args, config, stdout, stderr)
    except IdentityError as exc:
        return _print_error(stderr, "identity error", str(exc), code=EXIT_VALIDATION_ERROR)
    except SellerAlreadyRunningError as exc:
        return _print_error(stderr, "seller error", str(exc), code=EXIT_VALIDATION_ERROR)
    except (OfferingNotFoundError, InvalidHandlersError) as exc:
        return _print_error(stderr, "offering error", str(exc), code=EXIT_VALIDATION_ERROR)
    except CandidateSelectionError as exc:
        return _print_error(stderr, "bounty error", str(exc), code=EXIT_VALIDATION_ERROR)
    except MarketplaceUnavailableError as exc:
        return _print_marketplace_error(stderr, exc)
    except ValueError as exc:
        return _print_error(stderr, "validation error", str(exc), code=EXIT_VALIDATION_ERROR)


if __name__ == "__main__":
    raise SystemExit(main())
