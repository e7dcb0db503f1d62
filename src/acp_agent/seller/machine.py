"""Seller-side job state machine.

Every decision is derived from the pushed event plus a fresh offering load;
nothing is remembered between events. Re-delivered events therefore replay
the same marketplace calls, and concurrent events for different jobs never
share mutable state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from acp_agent.errors import InvalidHandlersError, OfferingNotFoundError
from acp_agent.offerings.registry import LoadedOffering, call_handler
from acp_agent.seller.events import JobEvent
from acp_agent.types import JobPhase

logger = logging.getLogger(__name__)

INVALID_OFFERING_REASON = "Invalid offering name"
UNAVAILABLE_OFFERING_REASON = "Offering unavailable"
VALIDATION_FAILED_REASON = "Validation failed"
ACCEPT_REASON = "Job accepted"
DEFAULT_PAYMENT_MESSAGE = "Request accepted"

OfferingLoader = Callable[[str], LoadedOffering]


class SellerActions(Protocol):
    async def accept_or_reject(self, job_id: int | str, *, accept: bool, reason: str) -> None: ...

    async def request_payment(
        self,
        job_id: int | str,
        *,
        content: str,
        payable_detail: dict | None = None,
    ) -> None: ...

    async def deliver(
        self,
        job_id: int | str,
        *,
        deliverable: object,
        payable_detail: dict | None = None,
    ) -> None: ...


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    reason: str | None = None


def normalize_validation(result: Any) -> ValidationOutcome:
    """Fold the two validate_requirements conventions into one shape.

    Handlers may return a plain bool or a ``{"valid": bool, "reason": str}``
    mapping.
    """
    if isinstance(result, bool):
        return ValidationOutcome(valid=result)
    if isinstance(result, Mapping) and "valid" in result:
        reason = result.get("reason")
        return ValidationOutcome(
            valid=bool(result["valid"]),
            reason=str(reason) if reason not in (None, "") else None,
        )
    raise TypeError(
        "validate_requirements must return a bool or a {'valid': bool, 'reason': str} mapping, "
        f"got {type(result).__name__}"
    )


@dataclass(frozen=True)
class FundsRequest:
    amount: float
    token_address: str
    recipient: str
    content: str | None = None

    def payable_detail(self) -> dict:
        return {
            "amount": self.amount,
            "tokenAddress": self.token_address,
            "recipient": self.recipient,
        }


def normalize_funds_request(result: Any) -> FundsRequest:
    if not isinstance(result, Mapping):
        raise TypeError(
            f"request_additional_funds must return a mapping, got {type(result).__name__}"
        )
    missing = [key for key in ("amount", "tokenAddress", "recipient") if result.get(key) is None]
    if missing:
        raise ValueError("request_additional_funds result is missing " + ", ".join(missing))
    content = result.get("content")
    return FundsRequest(
        amount=result["amount"],
        token_address=str(result["tokenAddress"]),
        recipient=str(result["recipient"]),
        content=str(content) if content else None,
    )


def normalize_execute_result(result: Any) -> tuple[object, dict | None]:
    if isinstance(result, Mapping) and "deliverable" in result:
        payable = result.get("payableDetail")
        if payable is not None and not isinstance(payable, Mapping):
            raise TypeError("execute_job payableDetail must be a mapping")
        return result["deliverable"], dict(payable) if payable is not None else None
    return result, None


class SellerStateMachine:
    def __init__(self, *, actions: SellerActions, loader: OfferingLoader) -> None:
        self._actions = actions
        self._loader = loader

    async def handle_event(self, event: JobEvent) -> None:
        logger.info(
            "job %s event phase=%s client=%s price=%s",
            event.id,
            event.phase_name,
            event.client_address,
            event.price,
        )
        if event.phase == JobPhase.REQUEST:
            await self._handle_request(event)
            return
        if event.phase == JobPhase.TRANSACTION:
            await self._handle_transaction(event)
            return
        logger.info("job %s in phase %s; no action needed", event.id, event.phase_name)

    async def handle_evaluation(self, event: JobEvent) -> None:
        logger.info(
            "job %s evaluation event (phase %s); evaluation is handled by the buyer side",
            event.id,
            event.phase_name,
        )

    async def _load(self, job_id: int | str, offering_name: str) -> LoadedOffering | None:
        try:
            return await asyncio.to_thread(self._loader, offering_name)
        except (OfferingNotFoundError, InvalidHandlersError) as exc:
            logger.error("job %s: offering %s could not be loaded: %s", job_id, offering_name, exc)
        except Exception:
            logger.exception("job %s: unexpected error loading offering %s", job_id, offering_name)
        return None

    async def _call(self, label: str, job_id: int | str, action, **kwargs: Any) -> bool:
        try:
            await action(job_id, **kwargs)
        except Exception:
            logger.exception("job %s: marketplace %s call failed", job_id, label)
            return False
        return True

    async def _reject(self, job_id: int | str, reason: str) -> bool:
        logger.info("job %s: rejecting (%s)", job_id, reason)
        return await self._call(
            "reject", job_id, self._actions.accept_or_reject, accept=False, reason=reason
        )

    async def _handle_request(self, event: JobEvent) -> None:
        job_id = event.id
        if event.pending_negotiation_memo() is None:
            logger.debug("job %s: no negotiation memo awaiting signature", job_id)
            return

        offering_name = event.offering_name()
        requirements = event.requirements()
        if not offering_name:
            await self._reject(job_id, INVALID_OFFERING_REASON)
            return

        offering = await self._load(job_id, offering_name)
        if offering is None:
            await self._reject(job_id, UNAVAILABLE_OFFERING_REASON)
            return
        handlers = offering.handlers

        if handlers.validate is not None:
            try:
                outcome = normalize_validation(
                    await call_handler(handlers.validate, requirements)
                )
            except Exception:
                logger.exception(
                    "job %s: validate_requirements failed for offering %s", job_id, offering_name
                )
                return
            if not outcome.valid:
                reason = outcome.reason or VALIDATION_FAILED_REASON
                logger.info(
                    "job %s: validation failed for offering %s: %s", job_id, offering_name, reason
                )
                await self._reject(job_id, reason)
                return

        accepted = await self._call(
            "accept", job_id, self._actions.accept_or_reject, accept=True, reason=ACCEPT_REASON
        )
        if not accepted:
            return

        funds: FundsRequest | None = None
        try:
            if offering.config.required_funds and handlers.request_funds is not None:
                funds = normalize_funds_request(
                    await call_handler(handlers.request_funds, requirements)
                )
            if handlers.request_payment is not None:
                message = str(await call_handler(handlers.request_payment, requirements))
            elif funds is not None and funds.content:
                message = funds.content
            else:
                message = DEFAULT_PAYMENT_MESSAGE
        except Exception:
            logger.exception(
                "job %s: payment handlers failed for offering %s", job_id, offering_name
            )
            return

        # A failure here leaves the job accepted without a payment request;
        # the marketplace expires it.
        await self._call(
            "request payment",
            job_id,
            self._actions.request_payment,
            content=message,
            payable_detail=funds.payable_detail() if funds is not None else None,
        )

    async def _handle_transaction(self, event: JobEvent) -> None:
        job_id = event.id
        offering_name = event.offering_name()
        if not offering_name:
            logger.warning("job %s in TRANSACTION but no offering resolved; skipping", job_id)
            return

        offering = await self._load(job_id, offering_name)
        if offering is None:
            logger.error("job %s: delivery failed, offering %s unavailable", job_id, offering_name)
            return

        logger.info("job %s: executing offering %s", job_id, offering_name)
        try:
            deliverable, payable_detail = normalize_execute_result(
                await call_handler(offering.handlers.execute, event.requirements())
            )
        except Exception:
            logger.exception("job %s: execute_job failed for offering %s", job_id, offering_name)
            return

        delivered = await self._call(
            "deliver",
            job_id,
            self._actions.deliver,
            deliverable=deliverable,
            payable_detail=payable_detail,
        )
        if delivered:
            logger.info("job %s: delivered", job_id)
