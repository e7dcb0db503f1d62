"""Shared enums and literals for the marketplace domain."""

from __future__ import annotations

from enum import IntEnum
from typing import Literal


class JobPhase(IntEnum):
    REQUEST = 0
    NEGOTIATION = 1
    TRANSACTION = 2
    EVALUATION = 3
    COMPLETED = 4
    REJECTED = 5
    EXPIRED = 6

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_PHASES


TERMINAL_JOB_PHASES = frozenset({JobPhase.COMPLETED, JobPhase.REJECTED, JobPhase.EXPIRED})


def parse_job_phase(value: object) -> JobPhase | None:
    """Accept either the numeric phase or its name (any case)."""
    if isinstance(value, JobPhase):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            return JobPhase(value)
        except ValueError:
            return None
    if isinstance(value, str):
        raw = value.strip()
        if raw.isdigit():
            return parse_job_phase(int(raw))
        return JobPhase.__members__.get(raw.upper())
    return None


FeeKind = Literal["fixed", "percentage"]
ALLOWED_FEE_KINDS: tuple[FeeKind, ...] = ("fixed", "percentage")

PERCENTAGE_FEE_MIN = 0.001
PERCENTAGE_FEE_MAX = 0.99

BountyStatus = Literal["open", "pending_match", "claimed", "fulfilled", "expired", "rejected"]
TERMINAL_BOUNTY_STATUSES: frozenset[str] = frozenset({"fulfilled", "expired", "rejected"})

BountyCategory = Literal["digital", "physical"]
ALLOWED_BOUNTY_CATEGORIES: tuple[BountyCategory, ...] = ("digital", "physical")


def normalize_bounty_category(value: str) -> str:
    normalized = (value or "").strip().lower() or "digital"
    if normalized not in ALLOWED_BOUNTY_CATEGORIES:
        raise ValueError('category must be "digital" or "physical"')
    return normalized


__all__ = [
    "JobPhase",
    "TERMINAL_JOB_PHASES",
    "parse_job_phase",
    "FeeKind",
    "ALLOWED_FEE_KINDS",
    "PERCENTAGE_FEE_MIN",
    "PERCENTAGE_FEE_MAX",
    "BountyStatus",
    "TERMINAL_BOUNTY_STATUSES",
    "BountyCategory",
    "ALLOWED_BOUNTY_CATEGORIES",
    "normalize_bounty_category",
]
