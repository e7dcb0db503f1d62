from __future__ import annotations

import pytest

from acp_agent.bounty.client import MatchStatus
from acp_agent.bounty.models import Bounty
from acp_agent.bounty.reconcile import job_phase_label, reconcile_bounties, terminal_status_for_phase
from acp_agent.errors import BountyAPIError, MarketplaceUnavailableError
from acp_agent.store import StateStore


class _BountyRemote:
    def __init__(self, statuses: dict[str, MatchStatus] | None = None, *, failing: set[str] | None = None) -> None:
        self.statuses = statuses or {}
        self.failing = failing or set()
        self.fetched: list[str] = []
        self.synced: list[str] = []

    def get_match_status(self, bounty_id: str) -> MatchStatus:
        self.fetched.append(bounty_id)
        if bounty_id in self.failing:
            raise BountyAPIError("bounty API request failed: 502 bad gateway", status_code=502)
        return self.statuses.get(bounty_id, MatchStatus(status="open", candidates=[]))

    def sync_job_status(self, bounty_id: str, *, poster_secret: str):
        self.synced.append(bounty_id)
        return {"ok": True}


class _Jobs:
    def __init__(self, jobs: dict[str, dict] | None = None, *, failing: set[str] | None = None) -> None:
        self.jobs = jobs or {}
        self.failing = failing or set()

    def get_job(self, job_id):
        if str(job_id) in self.failing:
            raise MarketplaceUnavailableError("marketplace unreachable")
        return self.jobs[str(job_id)]


class _Scheduler:
    def __init__(self) -> None:
        self.teardowns = 0

    def ensure(self) -> bool:
        return False

    def remove_if_unused(self) -> bool:
        self.teardowns += 1
        return False


def _bounty(bounty_id: str, **overrides) -> Bounty:
    fields = {"bounty_id": bounty_id, "poster_secret": f"secret-{bounty_id}", "title": f"Task {bounty_id}"}
    fields.update(overrides)
    return Bounty(**fields)


def _poll(store, remote, jobs=None, scheduler=None):
    return reconcile_bounties(
        store=store,
        bounty_client=remote,
        marketplace=jobs or _Jobs(),
        scheduler=scheduler or _Scheduler(),
    )


@pytest.mark.parametrize(
    ("phase", "expected"),
    [("COMPLETED", "fulfilled"), ("REJECTED", "rejected"), ("EXPIRED", "expired")],
)
def test_terminal_status_for_phase(phase, expected) -> None:
    assert terminal_status_for_phase(phase) == expected


def test_job_phase_label_accepts_numbers_and_names() -> None:
    assert job_phase_label(4) == "COMPLETED"
    assert job_phase_label("transaction") == "TRANSACTION"
    assert job_phase_label("weird") == "WEIRD"


@pytest.mark.parametrize(("phase", "status"), [(4, "fulfilled"), (5, "rejected"), (6, "expired")])
def test_claimed_bounty_with_terminal_job_is_cleaned(tmp_path, phase, status) -> None:
    store = StateStore(tmp_path)
    store.put_bounty(_bounty("b1", status="claimed", acp_job_id="55", source_channel="telegram"))
    remote = _BountyRemote()

    summary = _poll(store, remote, _Jobs({"55": {"id": 55, "phase": phase}}))

    assert summary.cleaned == [{"bountyId": "b1", "status": status, "sourceChannel": "telegram"}]
    assert remote.synced == ["b1"]
    assert store.get_bounty("b1") is None


def test_claimed_bounty_in_progress_is_reported(tmp_path) -> None:
    store = StateStore(tmp_path)
    store.put_bounty(_bounty("b1", status="claimed", acp_job_id="55"))

    summary = _poll(store, _BountyRemote(), _Jobs({"55": {"phase": 2, "deliverable": "draft"}}))

    assert summary.claimed_jobs == [
        {
            "bountyId": "b1",
            "acpJobId": "55",
            "title": "Task b1",
            "jobPhase": "TRANSACTION",
            "deliverable": "draft",
        }
    ]
    assert store.get_bounty("b1") is not None


def test_job_fetch_failure_is_reported(tmp_path) -> None:
    store = StateStore(tmp_path)
    store.put_bounty(_bounty("b1", status="claimed", acp_job_id="55"))

    summary = _poll(store, _BountyRemote(), _Jobs(failing={"55"}))

    assert summary.errors == [{"bountyId": "b1", "error": "Failed to fetch ACP job 55 status"}]
    assert store.get_bounty("b1").status == "claimed"


def test_one_failing_bounty_does_not_stop_the_pass(tmp_path) -> None:
    store = StateStore(tmp_path)
    for index in range(1, 11):
        store.put_bounty(_bounty(f"b{index}"))
    remote = _BountyRemote(failing={"b5"})

    summary = _poll(store, remote)

    assert summary.checked == 10
    assert remote.fetched == [f"b{index}" for index in range(1, 11)]
    assert len(summary.errors) == 1
    assert summary.errors[0]["bountyId"] == "b5"
    assert len(store.list_bounties()) == 10


def test_pending_match_is_reported_once(tmp_path) -> None:
    store = StateStore(tmp_path)
    store.put_bounty(_bounty("b1", budget=25.0, description="60s clip"))
    candidate = {
        "id": 3,
        "agent_name": "Studio",
        "agent_wallet": "0xstudio",
        "job_offering": "video",
        "price": 20,
        "priceType": "fixed",
    }
    remote = _BountyRemote({"b1": MatchStatus(status="pending_match", candidates=[candidate])})

    first = _poll(store, remote)
    second = _poll(store, remote)

    assert len(first.pending_match) == 1
    entry = first.pending_match[0]
    assert entry["bountyId"] == "b1"
    assert entry["budget"] == 25.0
    assert entry["candidates"][0]["agentName"] == "Studio"
    assert entry["candidates"][0]["offeringName"] == "video"
    assert second.pending_match == []
    assert second.needs_attention is False
    stored = store.get_bounty("b1")
    assert stored.status == "pending_match"
    assert stored.notified_pending_match is True


def test_pending_match_without_candidates_is_not_reported(tmp_path) -> None:
    store = StateStore(tmp_path)
    store.put_bounty(_bounty("b1"))
    remote = _BountyRemote({"b1": MatchStatus(status="pending_match", candidates=[])})

    summary = _poll(store, remote)

    assert summary.pending_match == []
    assert store.get_bounty("b1").notified_pending_match is False


def test_terminal_remote_status_cleans_unclaimed_bounty(tmp_path) -> None:
    store = StateStore(tmp_path)
    store.put_bounty(_bounty("b1"))
    remote = _BountyRemote({"b1": MatchStatus(status="expired", candidates=[])})

    summary = _poll(store, remote)

    assert summary.cleaned == [{"bountyId": "b1", "status": "expired"}]
    assert store.list_bounties() == []


def test_teardown_runs_after_every_pass(tmp_path) -> None:
    scheduler = _Scheduler()

    summary = _poll(StateStore(tmp_path), _BountyRemote(), scheduler=scheduler)

    assert scheduler.teardowns == 1
    assert summary.to_dict() == {
        "checked": 0,
        "pendingMatch": [],
        "claimedJobs": [],
        "cleaned": [],
        "errors": [],
    }
