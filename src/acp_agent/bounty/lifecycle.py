"""Operator-driven bounty actions: create, status refresh, candidate selection, cleanup."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from acp_agent.bounty.candidates import (
    candidate_field,
    collect_requirements,
    parse_candidate_id,
    requirement_schema,
)
from acp_agent.bounty.client import CreatedBounty, MatchStatus
from acp_agent.bounty.models import Bounty
from acp_agent.bounty.scheduler import PollScheduler
from acp_agent.errors import CandidateSelectionError
from acp_agent.store import StateStore
from acp_agent.types import TERMINAL_BOUNTY_STATUSES, normalize_bounty_category

logger = logging.getLogger(__name__)

REJECT_ALL_CANDIDATES = 0
DEFAULT_SOURCE_CHANNEL = "cli"


class BountyBackend(Protocol):
    def create_bounty(
        self,
        *,
        title: str,
        description: str,
        budget: float,
        category: str,
        tags: str = "",
        poster_email: str | None = None,
    ) -> CreatedBounty: ...

    def get_match_status(self, bounty_id: str) -> MatchStatus: ...

    def confirm_match(
        self, bounty_id: str, *, poster_secret: str, candidate_id: int, acp_job_id: str
    ) -> Any: ...

    def reject_candidates(self, bounty_id: str, *, poster_secret: str) -> Any: ...

    def sync_job_status(self, bounty_id: str, *, poster_secret: str) -> Any: ...


class JobCreator(Protocol):
    def create_job(
        self,
        *,
        provider_wallet_address: str,
        job_offering_name: str,
        service_requirements: dict | None = None,
    ) -> str: ...


@dataclass(frozen=True)
class SelectionResult:
    bounty_id: str
    status: str
    candidate_id: int | None = None
    job_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"bountyId": self.bounty_id, "status": self.status}
        if self.candidate_id is not None:
            out["candidateId"] = self.candidate_id
        if self.job_id is not None:
            out["acpJobId"] = self.job_id
        return out


@dataclass(frozen=True)
class BountyStatusReport:
    bounty: Bounty
    remote: MatchStatus
    removed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "bountyId": self.bounty.bounty_id,
            "local": self.bounty.to_dict(),
            "remote": {"status": self.remote.status, "candidates": self.remote.candidates},
            "removed": self.removed,
        }


def _require_local(store: StateStore, bounty_id: str) -> Bounty:
    bounty = store.get_bounty(bounty_id)
    if bounty is None:
        raise CandidateSelectionError(f"bounty not found in local state: {bounty_id}")
    return bounty


def _teardown_quietly(scheduler: PollScheduler) -> None:
    try:
        scheduler.remove_if_unused()
    except Exception as exc:
        logger.info("bounty poll teardown failed: %s", exc)


def create_bounty(
    *,
    store: StateStore,
    bounty_client: BountyBackend,
    scheduler: PollScheduler,
    title: str,
    budget: float,
    poster_name: str,
    description: str = "",
    category: str = "digital",
    tags: str = "",
    source_channel: str | None = DEFAULT_SOURCE_CHANNEL,
) -> Bounty:
    title = (title or "").strip()
    if not title:
        raise ValueError("bounty title is required")
    if not isinstance(budget, (int, float)) or not math.isfinite(budget) or budget <= 0:
        raise ValueError("budget must be a positive number")
    category = normalize_bounty_category(category)
    description = (description or "").strip() or title

    created = bounty_client.create_bounty(
        title=title,
        description=description,
        budget=float(budget),
        category=category,
        tags=tags,
    )
    bounty = Bounty(
        bounty_id=created.bounty_id,
        poster_secret=created.poster_secret,
        title=title,
        description=description,
        budget=float(budget),
        category=category,
        tags=tags,
        status="open",
        poster_name=poster_name,
        source_channel=source_channel or None,
    )
    store.put_bounty(bounty)
    logger.info("bounty %s created (%s)", bounty.bounty_id, title)

    try:
        scheduler.ensure()
    except Exception as exc:
        logger.warning("bounty %s: could not register the poll trigger: %s", bounty.bounty_id, exc)
    return bounty


def refresh_bounty_status(
    bounty_id: str,
    *,
    store: StateStore,
    bounty_client: BountyBackend,
    scheduler: PollScheduler,
) -> BountyStatusReport:
    """Sync and fetch remote status; terminal bounties are removed locally."""
    bounty = _require_local(store, bounty_id)
    if bounty.poster_secret:
        try:
            bounty_client.sync_job_status(bounty_id, poster_secret=bounty.poster_secret)
        except Exception as exc:
            logger.warning("bounty %s: job-status sync failed: %s", bounty_id, exc)

    remote = bounty_client.get_match_status(bounty_id)
    updated = bounty.evolve(status=remote.status or bounty.status)
    removed = remote.status.lower() in TERMINAL_BOUNTY_STATUSES
    if removed:
        store.delete_bounty(bounty_id)
        logger.info("bounty %s: remote status %s, local record removed", bounty_id, remote.status)
        _teardown_quietly(scheduler)
    else:
        store.put_bounty(updated)
    return BountyStatusReport(bounty=updated, remote=remote, removed=removed)


def fetch_selectable_candidates(
    bounty_id: str,
    *,
    store: StateStore,
    bounty_client: BountyBackend,
) -> tuple[Bounty, list[dict]]:
    bounty = _require_local(store, bounty_id)
    if not bounty.poster_secret:
        raise CandidateSelectionError(f"bounty {bounty_id} has no poster secret")
    remote = bounty_client.get_match_status(bounty_id)
    if remote.status.lower() != "pending_match":
        raise CandidateSelectionError(
            f"bounty {bounty_id} is not pending_match (current status: {remote.status or 'unknown'})"
        )
    if not remote.candidates:
        raise CandidateSelectionError(f"bounty {bounty_id} has no candidates")
    return bounty, remote.candidates


def select_candidate(
    bounty_id: str,
    candidate_id: int | None,
    answered_requirements: Mapping[str, Any] | None = None,
    *,
    store: StateStore,
    bounty_client: BountyBackend,
    marketplace: JobCreator,
) -> SelectionResult:
    """Claim a bounty for one candidate, or reject all of them.

    ``candidate_id`` of ``None`` or ``0`` rejects the current candidates and
    reopens the bounty. If the job is created but confirm-match fails, the job
    stays on the marketplace and the bounty stays unclaimed locally.
    """
    bounty, candidates = fetch_selectable_candidates(
        bounty_id, store=store, bounty_client=bounty_client
    )

    if candidate_id is None or candidate_id == REJECT_ALL_CANDIDATES:
        bounty_client.reject_candidates(bounty_id, poster_secret=bounty.poster_secret)
        store.put_bounty(
            bounty.evolve(
                status="open",
                selected_candidate_id=None,
                acp_job_id=None,
                notified_pending_match=False,
            )
        )
        logger.info("bounty %s: candidates rejected, reopened for matching", bounty_id)
        return SelectionResult(bounty_id=bounty_id, status="open")

    selected = next((c for c in candidates if parse_candidate_id(c.get("id")) == candidate_id), None)
    if selected is None:
        raise CandidateSelectionError(f"candidate {candidate_id} is not offered for bounty {bounty_id}")

    wallet = candidate_field(selected, "wallet")
    if not wallet:
        raise CandidateSelectionError(
            f"candidate {candidate_id} is missing a provider wallet (agent_wallet/walletAddress)"
        )
    offering = candidate_field(selected, "offering")
    if not offering:
        raise CandidateSelectionError(
            f"candidate {candidate_id} is missing a job offering (job_offering/offeringName)"
        )
    requirements = collect_requirements(requirement_schema(selected), answered_requirements)

    job_id = marketplace.create_job(
        provider_wallet_address=wallet,
        job_offering_name=offering,
        service_requirements=requirements,
    )
    logger.info("bounty %s: created ACP job %s for candidate %s", bounty_id, job_id, candidate_id)

    try:
        bounty_client.confirm_match(
            bounty_id,
            poster_secret=bounty.poster_secret,
            candidate_id=candidate_id,
            acp_job_id=job_id,
        )
    except Exception as exc:
        logger.error(
            "bounty %s: ACP job %s exists but confirm-match failed: %s", bounty_id, job_id, exc
        )
        raise CandidateSelectionError(
            f"ACP job {job_id} was created but confirm-match failed for bounty {bounty_id}: {exc}. "
            f"Run `acp bounty status {bounty_id}` to reconcile."
        ) from exc

    store.put_bounty(
        bounty.evolve(status="claimed", selected_candidate_id=candidate_id, acp_job_id=job_id)
    )
    return SelectionResult(
        bounty_id=bounty_id, status="claimed", candidate_id=candidate_id, job_id=job_id
    )


def cleanup_bounty(bounty_id: str, *, store: StateStore, scheduler: PollScheduler) -> bool:
    removed = store.delete_bounty(bounty_id)
    if removed:
        logger.info("bounty %s: local record removed", bounty_id)
        _teardown_quietly(scheduler)
    return removed
