from __future__ import annotations

import asyncio
import os

import pytest

from acp_agent.errors import MarketplaceUnavailableError, SellerAlreadyRunningError
from acp_agent.identity import AgentIdentity
from acp_agent.offerings import scaffold_offering
from acp_agent.seller import runtime
from acp_agent.store import StateStore

IDENTITY = AgentIdentity(id="a1", name="Alpha", wallet_address="0xalpha", api_key="key-a")


class _FakeClient:
    def __init__(self, jobs: list[dict] | None = None, *, fail: bool = False) -> None:
        self.jobs = jobs or []
        self.fail = fail

    def get_my_agent(self) -> dict:
        if self.fail:
            raise MarketplaceUnavailableError("marketplace unreachable")
        return {"name": "Alpha", "jobs": self.jobs}


class _FakeChannel:
    instances: list["_FakeChannel"] = []

    def __init__(self, *, url, wallet_address, on_new_task, on_evaluate) -> None:
        self.url = url
        self.wallet_address = wallet_address
        self.on_new_task = on_new_task
        self.on_evaluate = on_evaluate
        self.connected = False
        self.closed = False
        _FakeChannel.instances.append(self)

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.closed = True


def _preset_stop() -> asyncio.Event:
    stop = asyncio.Event()
    stop.set()
    return stop


def test_serve_connects_channel_for_wallet_and_closes_on_stop(tmp_path) -> None:
    _FakeChannel.instances.clear()

    async def scenario():
        await runtime.serve(
            IDENTITY,
            client=_FakeClient([{"name": "summary"}]),
            socket_url="https://acpx.example",
            offerings_dir=tmp_path,
            stop=_preset_stop(),
            channel_factory=_FakeChannel,
        )

    asyncio.run(scenario())

    [channel] = _FakeChannel.instances
    assert channel.url == "https://acpx.example"
    assert channel.wallet_address == "0xalpha"
    assert channel.connected and channel.closed


def test_warn_unserved_offerings_lists_missing_local_files(tmp_path) -> None:
    scaffold_offering("summary", IDENTITY.dir_name, base_dir=tmp_path)
    client = _FakeClient([{"name": "summary"}, {"name": "translate"}])

    assert runtime.warn_unserved_offerings(client, IDENTITY, offerings_dir=tmp_path) == ["translate"]


def test_warn_unserved_offerings_tolerates_unreachable_marketplace(tmp_path) -> None:
    missing = runtime.warn_unserved_offerings(_FakeClient(fail=True), IDENTITY, offerings_dir=tmp_path)
    assert missing == []


def test_run_seller_process_records_and_clears_pid(tmp_path, monkeypatch) -> None:
    store = StateStore(tmp_path)
    seen: list[int | None] = []

    async def fake_serve(identity, *, client, socket_url, offerings_dir, **kwargs):
        seen.append(store.get_seller_pid())

    monkeypatch.setattr(runtime, "serve", fake_serve)
    runtime.run_seller_process(
        IDENTITY, store=store, api_base="http://api", offerings_dir=tmp_path, client=_FakeClient()
    )

    assert seen == [os.getpid()]
    assert store.get_seller_pid() is None


def test_second_seller_is_refused(tmp_path, monkeypatch) -> None:
    store = StateStore(tmp_path)
    store.set_seller_pid(999_999)
    monkeypatch.setattr("acp_agent.store.is_process_running", lambda pid: True)

    with pytest.raises(SellerAlreadyRunningError) as excinfo:
        runtime.run_seller_process(IDENTITY, store=store, api_base="http://api", client=_FakeClient())

    assert excinfo.value.pid == 999_999
    assert store.get_seller_pid() == 999_999


def test_stale_pid_does_not_block_start(tmp_path, monkeypatch) -> None:
    store = StateStore(tmp_path)
    store.set_seller_pid(999_999)
    monkeypatch.setattr("acp_agent.store.is_process_running", lambda pid: pid == os.getpid())

    assert runtime.acquire_seller_slot(store) == os.getpid()
    runtime.release_seller_slot(store)
    assert store.get_seller_pid() is None


def test_stop_seller_without_runtime(tmp_path) -> None:
    assert runtime.stop_seller(StateStore(tmp_path)) is None


def test_stop_seller_signals_and_clears(tmp_path, monkeypatch) -> None:
    store = StateStore(tmp_path)
    store.set_seller_pid(999_999)
    signals: list[tuple[int, int]] = []
    monkeypatch.setattr("acp_agent.store.is_process_running", lambda pid: True)
    monkeypatch.setattr(runtime, "is_process_running", lambda pid: False)
    monkeypatch.setattr(runtime.os, "kill", lambda pid, sig: signals.append((pid, sig)))

    assert runtime.stop_seller(store) == 999_999
    assert signals == [(999_999, runtime.signal.SIGTERM)]
    assert store.get_seller_pid() is None


def test_stop_seller_times_out(tmp_path, monkeypatch) -> None:
    store = StateStore(tmp_path)
    store.set_seller_pid(999_999)
    monkeypatch.setattr("acp_agent.store.is_process_running", lambda pid: True)
    monkeypatch.setattr(runtime, "is_process_running", lambda pid: True)
    monkeypatch.setattr(runtime.os, "kill", lambda pid, sig: None)

    with pytest.raises(TimeoutError):
        runtime.stop_seller(store, timeout=0)
    assert store.get_seller_pid() == 999_999


def test_stop_seller_tolerates_process_exiting_before_signal(tmp_path, monkeypatch) -> None:
    store = StateStore(tmp_path)
    store.set_seller_pid(999_999)
    monkeypatch.setattr("acp_agent.store.is_process_running", lambda pid: True)

    def gone(pid, sig):
        raise ProcessLookupError(pid)

    monkeypatch.setattr(runtime.os, "kill", gone)

    assert runtime.stop_seller(store) == 999_999
    assert store.get_seller_pid() is None


def test_follow_seller_log_emits_only_new_matching_lines(tmp_path, monkeypatch) -> None:
    log_path = tmp_path / "seller.log"
    log_path.write_text("old ERROR job 42 summary\n", encoding="utf-8")
    sleeps: list[float] = []

    def fake_sleep(interval):
        sleeps.append(interval)
        if len(sleeps) == 1:
            with log_path.open("a", encoding="utf-8") as handle:
                handle.write("new ERROR job 42 summary\nnew INFO job 42 summary\npartial ERROR")
            return
        if len(sleeps) == 2:
            with log_path.open("a", encoding="utf-8") as handle:
                handle.write(" job 42 summary\n")
            return
        raise KeyboardInterrupt

    monkeypatch.setattr(runtime.time, "sleep", fake_sleep)
    emitted: list[str] = []

    runtime.follow_seller_log(log_path, emitted.append, job="42", level="error")

    assert emitted == ["new ERROR job 42 summary", "partial ERROR job 42 summary"]


def test_log_line_matches_job_exactly_and_level_loosely() -> None:
    line = "2026-01-01 WARNING acp_agent.seller.machine: job 42: offering Summary"
    assert runtime.log_line_matches(line, offering="summary", level="warning", job="42")
    assert not runtime.log_line_matches(line, job="43")
    assert not runtime.log_line_matches(line, level="error")
