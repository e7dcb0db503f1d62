"""Tolerant field extraction for bounty match candidates.

The bounty marketplace has shipped several candidate shapes; every accepted
spelling of a logical field lives in ``CANDIDATE_FIELD_ALIASES``, tried in
order.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from acp_agent.errors import MissingRequirementError

CANDIDATE_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "wallet": (
        "agent_wallet",
        "agentWallet",
        "agent_wallet_address",
        "agentWalletAddress",
        "walletAddress",
        "providerWalletAddress",
        "provider_address",
    ),
    "offering": (
        "job_offering",
        "jobOffering",
        "offeringName",
        "jobOfferingName",
        "offering_name",
        "name",
    ),
    "agent_name": ("agent_name", "agentName", "name"),
    "price": ("price", "job_offering_price", "jobOfferingPrice", "job_fee", "jobFee", "fee"),
    "price_type": ("priceType", "price_type", "jobFeeType", "job_fee_type"),
    "requirement_schema": ("requirementSchema", "requirement_schema", "requirement"),
}

UNKNOWN_AGENT_NAME = "(unknown)"


def candidate_field(candidate: Mapping[str, Any], field: str) -> str | None:
    """First non-blank string value among the aliases of ``field``."""
    for key in CANDIDATE_FIELD_ALIASES[field]:
        value = candidate.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _candidate_value(candidate: Mapping[str, Any], field: str) -> Any:
    for key in CANDIDATE_FIELD_ALIASES[field]:
        value = candidate.get(key)
        if value is not None:
            return value
    return None


def parse_candidate_id(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def requirement_schema(candidate: Mapping[str, Any]) -> dict | None:
    schema = _candidate_value(candidate, "requirement_schema")
    return schema if isinstance(schema, dict) else None


def price_display(candidate: Mapping[str, Any]) -> str:
    price = _candidate_value(candidate, "price")
    price_type = _candidate_value(candidate, "price_type")
    if price is None:
        return "Unknown"
    kind = str(price_type).lower() if price_type is not None else ""
    if kind == "fixed":
        return f"{price} USDC"
    if kind == "percentage":
        return f"{price} ({kind})"
    return f"{price} {price_type}" if price_type is not None else str(price)


def normalize_candidate(candidate: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "id": candidate.get("id"),
        "agentName": candidate_field(candidate, "agent_name") or UNKNOWN_AGENT_NAME,
        "agentWallet": candidate_field(candidate, "wallet") or "",
        "offeringName": candidate_field(candidate, "offering") or "",
        "price": _candidate_value(candidate, "price"),
        "priceType": _candidate_value(candidate, "price_type"),
        "requirementSchema": _candidate_value(candidate, "requirement_schema"),
    }


def requirement_fields(schema: Mapping[str, Any] | None) -> list[tuple[str, bool, str]]:
    """``(key, required, description)`` for each property in a JSON-schema-like mapping."""
    if not schema:
        return []
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return []
    required = {key for key in schema.get("required") or [] if isinstance(key, str)}
    fields = []
    for key, prop in properties.items():
        description = prop.get("description") if isinstance(prop, dict) else None
        fields.append(
            (
                key,
                key in required,
                description.strip() if isinstance(description, str) else "",
            )
        )
    return fields


def collect_requirements(
    schema: Mapping[str, Any] | None,
    answers: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Build service requirements from supplied answers.

    Every required key must have a non-blank answer; all missing keys are
    reported together. Optional keys without an answer are sent as ``""``.
    """
    answers = answers or {}
    collected: dict[str, Any] = {}
    missing: list[str] = []
    for key, required, _ in requirement_fields(schema):
        value = answers.get(key)
        if isinstance(value, str):
            value = value.strip()
        if value is None or value == "":
            if required:
                missing.append(key)
                continue
            value = ""
        collected[key] = value
    if missing:
        raise MissingRequirementError(missing)
    return collected
