"""Single reconciliation pass over locally persisted bounties.

The pass is triggered from outside (``acp bounty poll`` on a cron) and reports
what changed through a :class:`PollSummary`; it sends no notifications of its
own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from acp_agent.bounty.candidates import normalize_candidate
from acp_agent.bounty.client import MatchStatus
from acp_agent.bounty.models import Bounty
from acp_agent.bounty.scheduler import PollScheduler
from acp_agent.store import StateStore
from acp_agent.types import TERMINAL_BOUNTY_STATUSES, JobPhase, parse_job_phase

logger = logging.getLogger(__name__)


class BountyRemote(Protocol):
    def get_match_status(self, bounty_id: str) -> MatchStatus: ...

    def sync_job_status(self, bounty_id: str, *, poster_secret: str) -> Any: ...


class JobLookup(Protocol):
    def get_job(self, job_id: str | int) -> dict: ...


@dataclass
class PollSummary:
    checked: int = 0
    pending_match: list[dict[str, Any]] = field(default_factory=list)
    claimed_jobs: list[dict[str, Any]] = field(default_factory=list)
    cleaned: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        return bool(self.pending_match or self.claimed_jobs or self.cleaned or self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "pendingMatch": list(self.pending_match),
            "claimedJobs": list(self.claimed_jobs),
            "cleaned": list(self.cleaned),
            "errors": list(self.errors),
        }


def job_phase_label(raw: Any) -> str:
    phase = parse_job_phase(raw)
    if phase is not None:
        return phase.name
    return str(raw if raw is not None else "").strip().upper()


def terminal_status_for_phase(phase_label: str) -> str:
    return "fulfilled" if phase_label == JobPhase.COMPLETED.name else phase_label.lower()


def _with_channel(entry: dict[str, Any], bounty: Bounty) -> dict[str, Any]:
    if bounty.source_channel:
        entry["sourceChannel"] = bounty.source_channel
    return entry


_TERMINAL_PHASE_NAMES = {phase.name for phase in JobPhase if phase.is_terminal}


def _reconcile_claimed(
    bounty: Bounty,
    summary: PollSummary,
    *,
    store: StateStore,
    bounty_client: BountyRemote,
    marketplace: JobLookup,
) -> None:
    try:
        job = marketplace.get_job(bounty.acp_job_id)
    except Exception as exc:
        logger.warning(
            "bounty %s: failed to fetch ACP job %s: %s", bounty.bounty_id, bounty.acp_job_id, exc
        )
        summary.errors.append(
            {
                "bountyId": bounty.bounty_id,
                "error": f"Failed to fetch ACP job {bounty.acp_job_id} status",
            }
        )
        return

    phase = job_phase_label(job.get("phase"))
    deliverable = job.get("deliverable")

    if phase in _TERMINAL_PHASE_NAMES:
        if bounty.poster_secret:
            try:
                bounty_client.sync_job_status(bounty.bounty_id, poster_secret=bounty.poster_secret)
            except Exception as exc:
                logger.info("bounty %s: job-status sync failed: %s", bounty.bounty_id, exc)
        status = terminal_status_for_phase(phase)
        store.delete_bounty(bounty.bounty_id)
        logger.info("bounty %s: job %s ended as %s", bounty.bounty_id, bounty.acp_job_id, status)
        summary.cleaned.append(
            _with_channel({"bountyId": bounty.bounty_id, "status": status}, bounty)
        )
        return

    store.put_bounty(bounty)
    entry: dict[str, Any] = {
        "bountyId": bounty.bounty_id,
        "acpJobId": bounty.acp_job_id,
        "title": bounty.title,
        "jobPhase": phase,
    }
    if deliverable is not None:
        entry["deliverable"] = deliverable
    summary.claimed_jobs.append(_with_channel(entry, bounty))


def _reconcile_unclaimed(
    bounty: Bounty,
    summary: PollSummary,
    *,
    store: StateStore,
    bounty_client: BountyRemote,
) -> None:
    remote = bounty_client.get_match_status(bounty.bounty_id)
    status = remote.status.lower()

    if status in TERMINAL_BOUNTY_STATUSES:
        store.delete_bounty(bounty.bounty_id)
        logger.info("bounty %s: remote status %s, local record removed", bounty.bounty_id, status)
        summary.cleaned.append(
            _with_channel({"bountyId": bounty.bounty_id, "status": status}, bounty)
        )
        return

    newly_matched = (
        status == "pending_match" and bool(remote.candidates) and not bounty.notified_pending_match
    )
    changes: dict[str, Any] = {"status": remote.status or bounty.status}
    if newly_matched:
        changes["notified_pending_match"] = True
    store.put_bounty(bounty.evolve(**changes))

    if newly_matched:
        logger.info(
            "bounty %s: %d candidate(s) ready for selection",
            bounty.bounty_id,
            len(remote.candidates),
        )
        summary.pending_match.append(
            _with_channel(
                {
                    "bountyId": bounty.bounty_id,
                    "title": bounty.title,
                    "description": bounty.description,
                    "budget": bounty.budget,
                    "candidates": [normalize_candidate(c) for c in remote.candidates],
                },
                bounty,
            )
        )


def reconcile_bounties(
    *,
    store: StateStore,
    bounty_client: BountyRemote,
    marketplace: JobLookup,
    scheduler: PollScheduler,
) -> PollSummary:
    summary = PollSummary()
    for bounty in store.list_bounties():
        summary.checked += 1
        try:
            if bounty.is_claimed:
                _reconcile_claimed(
                    bounty,
                    summary,
                    store=store,
                    bounty_client=bounty_client,
                    marketplace=marketplace,
                )
            else:
                _reconcile_unclaimed(bounty, summary, store=store, bounty_client=bounty_client)
        except Exception as exc:
            logger.warning("bounty %s: reconciliation failed: %s", bounty.bounty_id, exc)
            summary.errors.append({"bountyId": bounty.bounty_id, "error": str(exc)})

    try:
        scheduler.remove_if_unused()
    except Exception as exc:
        logger.info("bounty poll teardown failed: %s", exc)
    return summary
