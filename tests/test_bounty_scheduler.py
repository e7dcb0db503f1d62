from __future__ import annotations

import subprocess

from acp_agent.bounty.models import Bounty
from acp_agent.bounty.scheduler import (
    CRON_JOB_ID_SETTING,
    OpenClawCronScheduler,
    parse_cron_job_id,
)
from acp_agent.store import StateStore


class _Runner:
    def __init__(self, output: str = '{"id": "job-1"}', *, fail_remove: bool = False) -> None:
        self.calls: list[list[str]] = []
        self.output = output
        self.fail_remove = fail_remove

    def __call__(self, args: list[str]) -> str:
        self.calls.append(args)
        if args[0] == "remove" and self.fail_remove:
            raise subprocess.CalledProcessError(1, ["openclaw", "cron", *args])
        return self.output


def test_parse_cron_job_id_from_json_or_text() -> None:
    assert parse_cron_job_id('{"jobId": 12}') == "12"
    assert (
        parse_cron_job_id("created job 3f2b1c4d-aaaa-bbbb-cccc-0123456789ab ok")
        == "3f2b1c4d-aaaa-bbbb-cccc-0123456789ab"
    )
    assert parse_cron_job_id("nothing here") is None


def test_ensure_registers_once(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("OPENCLAW_BOUNTY_CRON_DISABLED", raising=False)
    monkeypatch.setenv("OPENCLAW_BOUNTY_CRON_SCHEDULE", "*/5 * * * *")
    store = StateStore(tmp_path)
    runner = _Runner()
    scheduler = OpenClawCronScheduler(store, runner=runner)

    assert scheduler.ensure() is True
    assert scheduler.ensure() is False

    assert len(runner.calls) == 1
    assert runner.calls[0][0] == "add"
    assert runner.calls[0][runner.calls[0].index("--cron") + 1] == "*/5 * * * *"
    assert store.get_setting(CRON_JOB_ID_SETTING) == "job-1"


def test_disabled_scheduler_never_runs(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("OPENCLAW_BOUNTY_CRON_DISABLED", "1")
    runner = _Runner()
    scheduler = OpenClawCronScheduler(StateStore(tmp_path), runner=runner)

    assert scheduler.ensure() is False
    assert scheduler.remove_if_unused() is False
    assert runner.calls == []


def test_remove_only_when_no_bounties_remain(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("OPENCLAW_BOUNTY_CRON_DISABLED", raising=False)
    store = StateStore(tmp_path)
    store.set_setting(CRON_JOB_ID_SETTING, "job-1")
    store.put_bounty(Bounty(bounty_id="b1", poster_secret="s", title="t"))
    runner = _Runner(fail_remove=True)
    scheduler = OpenClawCronScheduler(store, runner=runner)

    assert scheduler.remove_if_unused() is False
    assert runner.calls == []

    store.delete_bounty("b1")
    assert scheduler.remove_if_unused() is True
    assert runner.calls == [["remove", "job-1"]]
    assert store.get_setting(CRON_JOB_ID_SETTING) is None
