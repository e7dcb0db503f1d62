"""Async adapter exposing the marketplace provider actions to the state machine."""

from __future__ import annotations

import asyncio
import json
import logging

from acp_agent.client import MarketplaceClient

logger = logging.getLogger(__name__)


class SellerApi:
    """Runs the blocking :class:`MarketplaceClient` calls off the event loop."""

    def __init__(self, client: MarketplaceClient) -> None:
        self._client = client

    async def accept_or_reject(self, job_id: int | str, *, accept: bool, reason: str) -> None:
        logger.info("job %s: accept_or_reject accept=%s reason=%s", job_id, accept, reason)
        await asyncio.to_thread(
            self._client.accept_or_reject_job, job_id, accept=accept, reason=reason
        )

    async def request_payment(
        self,
        job_id: int | str,
        *,
        content: str,
        payable_detail: dict | None = None,
    ) -> None:
        logger.info("job %s: request_payment content=%s", job_id, content)
        await asyncio.to_thread(
            self._client.request_payment,
            job_id,
            content=content,
            payable_detail=payable_detail,
        )

    async def deliver(
        self,
        job_id: int | str,
        *,
        deliverable: object,
        payable_detail: dict | None = None,
    ) -> None:
        if isinstance(deliverable, str):
            rendered = deliverable
        else:
            rendered = json.dumps(deliverable, default=str)
        if payable_detail:
            logger.info(
                "job %s: deliver deliverable=%s transfer=%s @ %s",
                job_id,
                rendered,
                payable_detail.get("amount"),
                payable_detail.get("tokenAddress"),
            )
        else:
            logger.info("job %s: deliver deliverable=%s", job_id, rendered)
        await asyncio.to_thread(
            self._client.deliver_job,
            job_id,
            deliverable=deliverable,
            payable_detail=payable_detail,
        )
