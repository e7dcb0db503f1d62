"""Locally persisted bounty record."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

# Local attribute name -> persisted JSON key.
_FIELD_KEYS = {
    "bounty_id": "bountyId",
    "created_at": "createdAt",
    "status": "status",
    "title": "title",
    "description": "description",
    "budget": "budget",
    "category": "category",
    "tags": "tags",
    "poster_name": "posterName",
    "poster_secret": "posterSecret",
    "selected_candidate_id": "selectedCandidateId",
    "acp_job_id": "acpJobId",
    "notified_pending_match": "notifiedPendingMatch",
    "source_channel": "sourceChannel",
}
_OPTIONAL_FIELDS = ("selected_candidate_id", "acp_job_id", "source_channel")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Bounty:
    bounty_id: str
    poster_secret: str
    title: str
    description: str = ""
    budget: float = 0.0
    category: str = "digital"
    tags: str = ""
    status: str = "open"
    poster_name: str = ""
    created_at: str = field(default_factory=_utc_now_iso)
    selected_candidate_id: int | None = None
    acp_job_id: str | None = None
    notified_pending_match: bool = False
    source_channel: str | None = None

    @property
    def is_claimed(self) -> bool:
        return self.status.lower() == "claimed" and bool(self.acp_job_id)

    def evolve(self, **changes: Any) -> "Bounty":
        if "poster_secret" in changes and changes["poster_secret"] != self.poster_secret:
            raise ValueError(f"poster secret of bounty {self.bounty_id} is immutable")
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        raw = asdict(self)
        out: dict[str, Any] = {}
        for attr, key in _FIELD_KEYS.items():
            value = raw[attr]
            if attr in _OPTIONAL_FIELDS and value is None:
                continue
            out[key] = value
        return out

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Bounty":
        bounty_id = payload.get("bountyId")
        if bounty_id is None or str(bounty_id).strip() == "":
            raise ValueError("bounty record is missing bountyId")
        kwargs: dict[str, Any] = {}
        for attr, key in _FIELD_KEYS.items():
            if key in payload and payload[key] is not None:
                kwargs[attr] = payload[key]
        kwargs["bounty_id"] = str(bounty_id)
        kwargs["poster_secret"] = str(payload.get("posterSecret") or "")
        kwargs["title"] = str(payload.get("title") or "")
        kwargs["status"] = str(kwargs.get("status", "open"))
        kwargs["notified_pending_match"] = bool(kwargs.get("notified_pending_match", False))
        if "acp_job_id" in kwargs:
            kwargs["acp_job_id"] = str(kwargs["acp_job_id"])
        if "budget" in kwargs:
            kwargs["budget"] = float(kwargs["budget"])
        return cls(**kwargs)
