"""Typed client for the ACP marketplace HTTP API."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from acp_agent.errors import MarketplaceRequestError, MarketplaceUnavailableError

API_KEY_ENV_VAR = "LITE_AGENT_API_KEY"
API_KEY_HEADER = "x-api-key"
DEFAULT_API_BASE = "https://claw-api.virtuals.io"


def build_session(retries: int, *, error_cls: type[Exception] = MarketplaceUnavailableError):
    try:
        import requests
        from requests.adapters import HTTPAdapter
        from urllib3.util.retry import Retry
    except Exception as exc:  # pragma: no cover
        raise error_cls(f"requests stack unavailable: {exc}") from exc

    session = requests.Session()
    retry = Retry(
        total=max(0, int(retries)),
        connect=max(0, int(retries)),
        read=max(0, int(retries)),
        status=max(0, int(retries)),
        status_forcelist=(429, 500, 502, 503, 504),
        backoff_factor=0.2,
        allowed_methods=("GET", "POST", "PUT", "DELETE"),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def unwrap_data(body: Any) -> Any:
    """Strip the `{"data": ...}` envelope both marketplaces wrap responses in."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def send_request(
    session,
    method: str,
    url: str,
    *,
    json_payload: dict | None,
    params: dict | None,
    headers: dict | None,
    timeout: float,
    service: str,
) -> Any:
    try:
        response = session.request(
            method,
            url,
            json=json_payload,
            params=params,
            headers=headers,
            timeout=timeout,
        )
    except Exception as exc:
        raise MarketplaceUnavailableError(f"{service} unreachable: {exc}") from exc

    if response.status_code >= 400:
        body: object | None = None
        detail: object | None = None
        try:
            body = response.json()
        except Exception:
            body = None
        if isinstance(body, dict):
            detail = body.get("message") or body.get("detail") or body.get("error")
        if isinstance(detail, str):
            message = f"{service} request failed: {response.status_code} {detail}"
        else:
            message = f"{service} request failed: {response.status_code} {response.text}"
        raise MarketplaceRequestError(
            message,
            status_code=response.status_code,
            detail=detail,
            body=body,
        )
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except Exception as exc:
        raise MarketplaceUnavailableError(f"{service} returned invalid JSON") from exc


@dataclass
class MarketplaceClient:
    base_url: str = DEFAULT_API_BASE
    api_key: str | None = None
    timeout: float = 30.0
    retries: int = 2

    def __post_init__(self) -> None:
        self._session = build_session(self.retries)
        if self.api_key is None:
            env_api_key = os.getenv(API_KEY_ENV_VAR)
            self.api_key = env_api_key.strip() or None if env_api_key else None

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_payload: dict | None = None,
        params: dict | None = None,
    ) -> Any:
        headers = {API_KEY_HEADER: self.api_key} if self.api_key else None
        return send_request(
            self._session,
            method,
            self._url(path),
            json_payload=json_payload,
            params=params,
            headers=headers,
            timeout=self.timeout,
            service="marketplace",
        )

    # -- agent --

    def get_my_agent(self) -> dict:
        return unwrap_data(self._request("GET", "/acp/me")) or {}

    def update_my_agent(self, fields: dict) -> dict:
        return unwrap_data(self._request("PUT", "/acp/me", json_payload=fields)) or {}

    def get_wallet_balances(self) -> list[dict]:
        balances = unwrap_data(self._request("GET", "/acp/wallet-balances"))
        if not isinstance(balances, list):
            return []
        return [item for item in balances if isinstance(item, dict)]

    def browse_agents(self, query: str) -> list[dict]:
        agents = unwrap_data(self._request("GET", "/acp/agents", params={"query": query}))
        return agents if isinstance(agents, list) else []

    def launch_token(
        self,
        *,
        symbol: str,
        description: str,
        image_url: str | None = None,
    ) -> dict:
        payload = {"symbol": symbol, "description": description}
        if image_url:
            payload["imageUrl"] = image_url
        return unwrap_data(self._request("POST", "/acp/me/tokens", json_payload=payload)) or {}

    # -- jobs (buyer side) --

    def create_job(
        self,
        *,
        provider_wallet_address: str,
        job_offering_name: str,
        service_requirements: dict | None = None,
    ) -> str:
        body = self._request(
            "POST",
            "/acp/jobs",
            json_payload={
                "providerWalletAddress": provider_wallet_address,
                "jobOfferingName": job_offering_name,
                "serviceRequirements": service_requirements or {},
            },
        )
        data = unwrap_data(body)
        job_id = data.get("jobId") if isinstance(data, dict) else None
        if job_id is None and isinstance(body, dict):
            job_id = body.get("jobId")
        if job_id is None or str(job_id) == "":
            raise MarketplaceUnavailableError("create job response did not include a jobId")
        return str(job_id)

    def get_job(self, job_id: str | int) -> dict:
        job = unwrap_data(self._request("GET", f"/acp/jobs/{quote(str(job_id), safe='')}"))
        if not isinstance(job, dict):
            raise MarketplaceUnavailableError(f"job not found: {job_id}")
        return job

    def list_active_jobs(self, *, page: int | None = None, page_size: int | None = None) -> list:
        return self._list_jobs("/acp/jobs/active", page=page, page_size=page_size)

    def list_completed_jobs(
        self, *, page: int | None = None, page_size: int | None = None
    ) -> list:
        return self._list_jobs("/acp/jobs/completed", page=page, page_size=page_size)

    def _list_jobs(self, path: str, *, page: int | None, page_size: int | None) -> list:
        params: dict[str, int] = {}
        if page is not None:
            params["page"] = page
        if page_size is not None:
            params["pageSize"] = page_size
        jobs = unwrap_data(self._request("GET", path, params=params or None))
        return jobs if isinstance(jobs, list) else []

    # -- offerings --

    def create_job_offering(self, offering: dict) -> dict:
        return unwrap_data(
            self._request("POST", "/acp/job-offerings", json_payload={"data": offering})
        ) or {}

    def delete_job_offering(self, offering_name: str) -> None:
        self._request("DELETE", f"/acp/job-offerings/{quote(offering_name, safe='')}")

    # -- provider (seller side) actions --

    def accept_or_reject_job(self, job_id: str | int, *, accept: bool, reason: str) -> None:
        self._request(
            "POST",
            f"/acp/providers/jobs/{job_id}/accept",
            json_payload={"accept": accept, "reason": reason},
        )

    def request_payment(
        self,
        job_id: str | int,
        *,
        content: str,
        payable_detail: dict | None = None,
    ) -> None:
        payload: dict[str, Any] = {"content": content}
        if payable_detail is not None:
            payload["payableDetail"] = payable_detail
        self._request("POST", f"/acp/providers/jobs/{job_id}/requirement", json_payload=payload)

    def deliver_job(
        self,
        job_id: str | int,
        *,
        deliverable: object,
        payable_detail: dict | None = None,
    ) -> None:
        payload: dict[str, Any] = {"deliverable": deliverable}
        if payable_detail is not None:
            payload["payableDetail"] = payable_detail
        self._request("POST", f"/acp/providers/jobs/{job_id}/deliverable", json_payload=payload)


__all__ = ["MarketplaceClient", "DEFAULT_API_BASE", "unwrap_data"]
