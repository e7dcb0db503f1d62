"""Seller runtime process: one per machine, bound to one agent identity."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
import time
from functools import partial
from pathlib import Path
from typing import Any, Callable

from acp_agent.client import MarketplaceClient
from acp_agent.errors import MarketplaceUnavailableError, SellerAlreadyRunningError
from acp_agent.identity import AgentIdentity
from acp_agent.offerings.manage import has_local_files
from acp_agent.offerings.registry import list_offerings, load_offering
from acp_agent.seller.api import SellerApi
from acp_agent.seller.channel import DEFAULT_SOCKET_URL, JobEventChannel
from acp_agent.seller.machine import SellerStateMachine
from acp_agent.store import StateStore, is_process_running

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SECONDS = 2.0
STOP_POLL_INTERVAL = 0.2


def acquire_seller_slot(store: StateStore) -> int:
    running = store.live_seller_pid()
    own_pid = os.getpid()
    if running is not None and running != own_pid:
        raise SellerAlreadyRunningError(running)
    store.set_seller_pid(own_pid)
    return own_pid


def release_seller_slot(store: StateStore) -> None:
    if store.get_seller_pid() == os.getpid():
        store.clear_seller_pid()


def warn_unserved_offerings(
    client: MarketplaceClient,
    identity: AgentIdentity,
    *,
    offerings_dir: str | Path | None,
) -> list[str]:
    try:
        agent = client.get_my_agent()
    except MarketplaceUnavailableError as exc:
        logger.warning("could not list registered offerings for %s: %s", identity.name, exc)
        return []
    registered = [job.get("name") for job in agent.get("jobs") or [] if isinstance(job, dict)]
    if not registered:
        logger.warning("no offerings registered on ACP; run `acp sell create <name>` first")
        return []
    missing = [
        name
        for name in registered
        if name and not has_local_files(name, identity.dir_name, base_dir=offerings_dir)
    ]
    if missing:
        logger.warning(
            "no local files for %d registered offering(s): %s; jobs for these will fail",
            len(missing),
            ", ".join(missing),
        )
    return missing


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except (NotImplementedError, RuntimeError):  # pragma: no cover
            signal.signal(signum, lambda *_: loop.call_soon_threadsafe(stop.set))


async def serve(
    identity: AgentIdentity,
    *,
    client: MarketplaceClient,
    socket_url: str = DEFAULT_SOCKET_URL,
    offerings_dir: str | Path | None = None,
    stop: asyncio.Event | None = None,
    channel_factory: Callable[..., JobEventChannel] = JobEventChannel,
) -> None:
    stop = stop or asyncio.Event()
    _install_stop_handlers(stop)

    available = list_offerings(identity.dir_name, base_dir=offerings_dir)
    logger.info(
        "agent %s (dir %s); local offerings: %s",
        identity.name,
        identity.dir_name,
        ", ".join(available) if available else "(none)",
    )
    await asyncio.to_thread(warn_unserved_offerings, client, identity, offerings_dir=offerings_dir)

    machine = SellerStateMachine(
        actions=SellerApi(client),
        loader=partial(load_offering, agent_dir=identity.dir_name, base_dir=offerings_dir),
    )
    channel = channel_factory(
        url=socket_url,
        wallet_address=identity.wallet_address,
        on_new_task=machine.handle_event,
        on_evaluate=machine.handle_evaluation,
    )
    await channel.connect()
    logger.info("seller runtime is running; waiting for jobs")
    try:
        await stop.wait()
    finally:
        logger.info("shutting down seller runtime")
        await channel.close()


def run_seller_process(
    identity: AgentIdentity,
    *,
    store: StateStore,
    api_base: str,
    socket_url: str = DEFAULT_SOCKET_URL,
    offerings_dir: str | Path | None = None,
    client: MarketplaceClient | None = None,
    **serve_kwargs: Any,
) -> None:
    """Serve jobs for ``identity`` until SIGINT/SIGTERM.

    Raises :class:`SellerAlreadyRunningError` if another live runtime holds the
    PID record. The record is cleared on every exit path.
    """
    acquire_seller_slot(store)
    try:
        client = client or MarketplaceClient(base_url=api_base, api_key=identity.api_key)
        asyncio.run(
            serve(
                identity,
                client=client,
                socket_url=socket_url,
                offerings_dir=offerings_dir,
                **serve_kwargs,
            )
        )
    finally:
        release_seller_slot(store)


def start_seller_daemon(
    *,
    log_path: str | Path,
    config_path: str | None = None,
) -> int:
    """Spawn ``acp serve run`` detached, appending its output to ``log_path``."""
    log_file = Path(log_path)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    command = [sys.executable, "-m", "acp_agent.cli.main"]
    if config_path:
        command += ["--config", config_path]
    command += ["serve", "run"]
    with log_file.open("ab") as handle:
        process = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=handle,
            stderr=handle,
            start_new_session=True,
        )
    return process.pid


def stop_seller(store: StateStore, *, timeout: float = STOP_TIMEOUT_SECONDS) -> int | None:
    """SIGTERM the recorded seller; returns its pid, or None if none was running."""
    pid = store.live_seller_pid()
    if pid is None:
        return None
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        store.clear_seller_pid()
        return pid
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not is_process_running(pid):
            store.clear_seller_pid()
            return pid
        time.sleep(STOP_POLL_INTERVAL)
    raise TimeoutError(f"seller process {pid} did not stop within {timeout}s; try kill -9 {pid}")


LOG_TAIL_LINES = 50
LOG_FOLLOW_INTERVAL = 0.5


def log_line_matches(
    line: str,
    *,
    offering: str | None = None,
    job: str | None = None,
    level: str | None = None,
) -> bool:
    """Offering and level match case-insensitively; job ids match exactly."""
    lowered = line.lower()
    if offering and offering.lower() not in lowered:
        return False
    if job and job not in line:
        return False
    if level and level.lower() not in lowered:
        return False
    return True


def read_seller_log(
    log_path: Path,
    *,
    offering: str | None = None,
    job: str | None = None,
    level: str | None = None,
    limit: int = LOG_TAIL_LINES,
) -> list[str]:
    """Last ``limit`` lines of the seller log that pass the filters."""
    lines = log_path.read_text(encoding="utf-8", errors="replace").splitlines()
    matched = [
        line
        for line in lines
        if line.strip() and log_line_matches(line, offering=offering, job=job, level=level)
    ]
    return matched[-limit:] if limit > 0 else matched


def follow_seller_log(
    log_path: Path,
    emit: Callable[[str], Any],
    *,
    offering: str | None = None,
    job: str | None = None,
    level: str | None = None,
    interval: float = LOG_FOLLOW_INTERVAL,
) -> None:
    """Emit matching lines appended to the log until interrupted."""
    with log_path.open("r", encoding="utf-8", errors="replace") as handle:
        handle.seek(0, os.SEEK_END)
        pending = ""
        try:
            while True:
                chunk = handle.readline()
                if not chunk:
                    time.sleep(interval)
                    continue
                pending += chunk
                # The writer may be mid-line.
                if not pending.endswith("\n"):
                    continue
                line, pending = pending.rstrip("\n"), ""
                if log_line_matches(line, offering=offering, job=job, level=level):
                    emit(line)
        except KeyboardInterrupt:
            return
