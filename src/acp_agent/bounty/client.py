"""Client for the bounty marketplace HTTP API."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from acp_agent.client import API_KEY_ENV_VAR, API_KEY_HEADER, build_session, send_request, unwrap_data
from acp_agent.errors import BountyAPIError, MarketplaceRequestError, MarketplaceUnavailableError

DEFAULT_BOUNTY_API_BASE = "https://bounty.virtuals.io/api/v1"

_BOUNTY_ID_KEYS = ("id", "bounty_id", "bountyId")
_POSTER_SECRET_KEYS = ("poster_secret", "posterSecret")


def _first_present(node: Any, keys: tuple[str, ...]) -> Any:
    if not isinstance(node, dict):
        return None
    for key in keys:
        value = node.get(key)
        if value not in (None, ""):
            return value
    return None


@dataclass(frozen=True)
class CreatedBounty:
    bounty_id: str
    poster_secret: str
    raw: Any = None


@dataclass(frozen=True)
class MatchStatus:
    status: str
    candidates: list[dict]
    raw: Any = None

    @property
    def is_pending_match(self) -> bool:
        return self.status.lower() == "pending_match"


@dataclass
class BountyClient:
    base_url: str = DEFAULT_BOUNTY_API_BASE
    api_key: str | None = None
    timeout: float = 30.0
    retries: int = 2

    def __post_init__(self) -> None:
        self._session = build_session(self.retries, error_cls=BountyAPIError)
        if self.api_key is None:
            env_api_key = os.getenv(API_KEY_ENV_VAR)
            self.api_key = env_api_key.strip() or None if env_api_key else None

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, *, json_payload: dict | None = None) -> Any:
        headers = {API_KEY_HEADER: self.api_key} if self.api_key else None
        try:
            body = send_request(
                self._session,
                method,
                self._url(path),
                json_payload=json_payload,
                params=None,
                headers=headers,
                timeout=self.timeout,
                service="bounty API",
            )
        except MarketplaceRequestError as exc:
            raise BountyAPIError(
                str(exc), status_code=exc.status_code, detail=exc.detail, body=exc.body
            ) from exc
        except MarketplaceUnavailableError as exc:
            raise BountyAPIError(str(exc)) from exc
        return unwrap_data(body)

    @staticmethod
    def _bounty_path(bounty_id: str, action: str) -> str:
        return f"/bounties/{quote(str(bounty_id), safe='')}/{action}"

    def create_bounty(
        self,
        *,
        title: str,
        description: str,
        budget: float,
        category: str,
        tags: str = "",
        poster_email: str | None = None,
    ) -> CreatedBounty:
        payload: dict[str, Any] = {
            "title": title,
            "description": description,
            "budget": budget,
            "category": category,
            "tags": tags,
        }
        if poster_email:
            payload["poster_email"] = poster_email
        body = self._request("POST", "/bounties/", json_payload=payload)

        node = body.get("bounty") if isinstance(body, dict) else None
        if not isinstance(node, dict):
            node = body
        bounty_id = _first_present(node, _BOUNTY_ID_KEYS) or _first_present(body, _BOUNTY_ID_KEYS)
        poster_secret = _first_present(body, _POSTER_SECRET_KEYS) or _first_present(
            node, _POSTER_SECRET_KEYS
        )
        if bounty_id is None or poster_secret is None:
            raise BountyAPIError("invalid create bounty response: missing id or poster_secret")
        return CreatedBounty(bounty_id=str(bounty_id), poster_secret=str(poster_secret), raw=body)

    def get_match_status(self, bounty_id: str) -> MatchStatus:
        body = self._request("GET", self._bounty_path(bounty_id, "match-status"))
        if not isinstance(body, dict):
            body = {}
        candidates = body.get("candidates")
        return MatchStatus(
            status=str(body.get("status") or ""),
            candidates=[c for c in candidates if isinstance(c, dict)]
            if isinstance(candidates, list)
            else [],
            raw=body,
        )

    def confirm_match(
        self,
        bounty_id: str,
        *,
        poster_secret: str,
        candidate_id: int,
        acp_job_id: str,
    ) -> Any:
        return self._request(
            "POST",
            self._bounty_path(bounty_id, "confirm-match"),
            json_payload={
                "poster_secret": poster_secret,
                "candidate_id": candidate_id,
                "acp_job_id": acp_job_id,
            },
        )

    def reject_candidates(self, bounty_id: str, *, poster_secret: str) -> Any:
        return self._request(
            "POST",
            self._bounty_path(bounty_id, "reject-candidates"),
            json_payload={"poster_secret": poster_secret},
        )

    def sync_job_status(self, bounty_id: str, *, poster_secret: str) -> Any:
        return self._request(
            "POST",
            self._bounty_path(bounty_id, "job-status"),
            json_payload={"poster_secret": poster_secret},
        )
