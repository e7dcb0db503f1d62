from __future__ import annotations

import json
import types

import pytest

from acp_agent.bounty.client import BountyClient, MatchStatus
from acp_agent.client import MarketplaceClient
from acp_agent.errors import BountyAPIError, MarketplaceRequestError, MarketplaceUnavailableError


def _response(status_code: int, body=None, text: str = ""):
    content = json.dumps(body).encode() if body is not None else b""

    def _json():
        if body is None:
            raise ValueError("no body")
        return body

    return types.SimpleNamespace(status_code=status_code, content=content, text=text, json=_json)


def _capture(client, responses):
    captured: list[dict] = []
    queue = list(responses)

    def fake_request(method, url, *, json=None, params=None, headers=None, timeout=None):  # noqa: ANN001
        captured.append(
            {"method": method, "url": url, "json": json, "params": params, "headers": headers}
        )
        return queue.pop(0)

    client._session.request = fake_request
    return captured


def test_request_sends_api_key_header_and_unwraps_data() -> None:
    client = MarketplaceClient(base_url="http://localhost:9000/", api_key="key-1", timeout=0.1)
    captured = _capture(client, [_response(200, {"data": {"name": "alpha", "jobs": []}})])

    agent = client.get_my_agent()

    assert agent == {"name": "alpha", "jobs": []}
    assert captured[0]["url"] == "http://localhost:9000/acp/me"
    assert captured[0]["headers"] == {"x-api-key": "key-1"}


def test_api_key_falls_back_to_environment(monkeypatch) -> None:
    monkeypatch.setenv("LITE_AGENT_API_KEY", " env-key ")
    client = MarketplaceClient(base_url="http://localhost:9000")
    assert client.api_key == "env-key"


def test_create_job_posts_provider_and_offering() -> None:
    client = MarketplaceClient(base_url="http://api", api_key="k")
    captured = _capture(client, [_response(200, {"data": {"jobId": 314}})])

    job_id = client.create_job(
        provider_wallet_address="0xprov",
        job_offering_name="logo",
        service_requirements={"brand": "acme"},
    )

    assert job_id == "314"
    assert captured[0]["method"] == "POST"
    assert captured[0]["url"] == "http://api/acp/jobs"
    assert captured[0]["json"] == {
        "providerWalletAddress": "0xprov",
        "jobOfferingName": "logo",
        "serviceRequirements": {"brand": "acme"},
    }


def test_create_job_without_job_id_raises() -> None:
    client = MarketplaceClient(base_url="http://api", api_key="k")
    _capture(client, [_response(200, {"data": {}})])

    with pytest.raises(MarketplaceUnavailableError):
        client.create_job(provider_wallet_address="0x", job_offering_name="x")


def test_provider_actions_use_expected_paths() -> None:
    client = MarketplaceClient(base_url="http://api", api_key="k")
    captured = _capture(client, [_response(204), _response(200, {}), _response(200, {})])

    client.accept_or_reject_job(7, accept=False, reason="Validation failed")
    client.request_payment(7, content="pay", payable_detail={"amount": 1})
    client.deliver_job(7, deliverable="result")

    assert [(c["method"], c["url"]) for c in captured] == [
        ("POST", "http://api/acp/providers/jobs/7/accept"),
        ("POST", "http://api/acp/providers/jobs/7/requirement"),
        ("POST", "http://api/acp/providers/jobs/7/deliverable"),
    ]
    assert captured[0]["json"] == {"accept": False, "reason": "Validation failed"}
    assert captured[1]["json"] == {"content": "pay", "payableDetail": {"amount": 1}}
    assert captured[2]["json"] == {"deliverable": "result"}


def test_profile_and_wallet_endpoints() -> None:
    client = MarketplaceClient(base_url="http://api", api_key="k")
    captured = _capture(
        client,
        [
            _response(200, {"data": {"name": "alpha", "description": "logos"}}),
            _response(200, {"data": [{"symbol": "USDC", "tokenBalance": "0x0"}, "junk"]}),
        ],
    )

    assert client.update_my_agent({"description": "logos"})["description"] == "logos"
    assert client.get_wallet_balances() == [{"symbol": "USDC", "tokenBalance": "0x0"}]
    assert [(c["method"], c["url"]) for c in captured] == [
        ("PUT", "http://api/acp/me"),
        ("GET", "http://api/acp/wallet-balances"),
    ]
    assert captured[0]["json"] == {"description": "logos"}


def test_offering_endpoints_wrap_and_quote() -> None:
    client = MarketplaceClient(base_url="http://api", api_key="k")
    captured = _capture(client, [_response(200, {"data": {"id": 1}}), _response(204)])

    client.create_job_offering({"name": "logo design"})
    client.delete_job_offering("logo design")

    assert captured[0]["json"] == {"data": {"name": "logo design"}}
    assert captured[1]["method"] == "DELETE"
    assert captured[1]["url"] == "http://api/acp/job-offerings/logo%20design"


def test_list_jobs_passes_paging_params() -> None:
    client = MarketplaceClient(base_url="http://api", api_key="k")
    captured = _capture(client, [_response(200, {"data": [{"id": 1}]}), _response(200, {"data": None})])

    assert client.list_active_jobs(page=2, page_size=5) == [{"id": 1}]
    assert client.list_completed_jobs() == []
    assert captured[0]["params"] == {"page": 2, "pageSize": 5}
    assert captured[1]["params"] is None


def test_http_error_is_structured() -> None:
    client = MarketplaceClient(base_url="http://api", api_key="k")
    _capture(client, [_response(404, {"message": "job not found"})])

    with pytest.raises(MarketplaceRequestError) as excinfo:
        client.get_job(99)

    assert excinfo.value.status_code == 404
    assert excinfo.value.detail == "job not found"
    assert "404 job not found" in str(excinfo.value)


def test_transport_error_is_unavailable() -> None:
    client = MarketplaceClient(base_url="http://api", api_key="k")

    def boom(*args, **kwargs):  # noqa: ANN002, ANN003
        raise ConnectionError("refused")

    client._session.request = boom

    with pytest.raises(MarketplaceUnavailableError, match="unreachable"):
        client.get_my_agent()


def test_bounty_create_accepts_nested_id_and_secret_aliases() -> None:
    client = BountyClient(base_url="http://bounty/api/v1", api_key="k")
    captured = _capture(
        client,
        [_response(200, {"data": {"bounty": {"bounty_id": 17}, "posterSecret": "s3cret"}})],
    )

    created = client.create_bounty(
        title="Music video", description="60s clip", budget=50, category="digital", tags="video"
    )

    assert (created.bounty_id, created.poster_secret) == ("17", "s3cret")
    assert captured[0]["url"] == "http://bounty/api/v1/bounties/"
    assert captured[0]["json"]["budget"] == 50
    assert captured[0]["headers"] == {"x-api-key": "k"}


def test_bounty_create_without_secret_raises() -> None:
    client = BountyClient(base_url="http://bounty", api_key="k")
    _capture(client, [_response(200, {"id": "b1"})])

    with pytest.raises(BountyAPIError):
        client.create_bounty(title="t", description="d", budget=1, category="digital")


def test_bounty_match_status_and_actions() -> None:
    client = BountyClient(base_url="http://bounty", api_key="k")
    captured = _capture(
        client,
        [
            _response(200, {"data": {"status": "pending_match", "candidates": [{"id": 1}, "junk"]}}),
            _response(200, {"ok": True}),
            _response(200, {"ok": True}),
            _response(200, {"ok": True}),
        ],
    )

    status = client.get_match_status("b 1")
    client.confirm_match("b1", poster_secret="s", candidate_id=1, acp_job_id="55")
    client.reject_candidates("b1", poster_secret="s")
    client.sync_job_status("b1", poster_secret="s")

    assert status.is_pending_match
    assert status.candidates == [{"id": 1}]
    assert [c["url"] for c in captured] == [
        "http://bounty/bounties/b%201/match-status",
        "http://bounty/bounties/b1/confirm-match",
        "http://bounty/bounties/b1/reject-candidates",
        "http://bounty/bounties/b1/job-status",
    ]
    assert captured[1]["json"] == {"poster_secret": "s", "candidate_id": 1, "acp_job_id": "55"}


@pytest.mark.parametrize("status", ["pending_match", "PENDING_MATCH", "Pending_Match"])
def test_pending_match_status_ignores_case(status) -> None:
    assert MatchStatus(status=status, candidates=[]).is_pending_match
    assert not MatchStatus(status="open", candidates=[]).is_pending_match


def test_bounty_http_error_maps_to_bounty_error() -> None:
    client = BountyClient(base_url="http://bounty", api_key="k")
    _capture(client, [_response(500, {"detail": "boom"})])

    with pytest.raises(BountyAPIError) as excinfo:
        client.get_match_status("b1")

    assert excinfo.value.status_code == 500
