"""Scaffold, register and delist offerings for the active agent."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from acp_agent.errors import OfferingNotFoundError, OfferingValidationError
from acp_agent.offerings.registry import (
    CONFIG_FILENAME,
    HANDLERS_FILENAME,
    list_offerings,
    offerings_root,
    resolve_offering_dir,
)
from acp_agent.offerings.schemas import OfferingConfig, build_offering_payload
from acp_agent.offerings.validation import detect_handlers, validate_offering

logger = logging.getLogger(__name__)

HANDLERS_TEMPLATE = '''"""Handlers for the {name} offering."""


# Required: implement your service logic here.
async def execute_job(request: dict) -> dict:
    return {{"deliverable": "replace with your result"}}


# Optional: return True/False or {{"valid": bool, "reason": str}}.
def validate_requirements(request: dict):
    return {{"valid": True}}


# Optional: custom message sent with the payment request.
def request_payment(request: dict) -> str:
    return "Request accepted"
'''


class OfferingPublisher(Protocol):
    def create_job_offering(self, offering: dict) -> dict: ...

    def delete_job_offering(self, offering_name: str) -> None: ...


@dataclass(frozen=True)
class RegistrationResult:
    name: str
    payload: dict
    warnings: list[str] = field(default_factory=list)
    response: dict | None = None


def scaffold_offering(
    offering_name: str,
    agent_dir: str,
    *,
    base_dir: str | Path | None = None,
) -> Path:
    offering_dir = resolve_offering_dir(offering_name, agent_dir, base_dir=base_dir)
    if offering_dir.exists():
        raise FileExistsError(f"offering directory already exists: {offering_dir}")
    offering_dir.mkdir(parents=True)

    config = {
        "name": offering_name,
        "description": "",
        "jobFee": None,
        "jobFeeType": None,
        "requiredFunds": None,
        "requirement": {},
    }
    (offering_dir / CONFIG_FILENAME).write_text(
        json.dumps(config, indent=2) + "\n", encoding="utf-8"
    )
    (offering_dir / HANDLERS_FILENAME).write_text(
        HANDLERS_TEMPLATE.format(name=offering_name), encoding="utf-8"
    )
    return offering_dir


def register_offering(
    offering_name: str,
    agent_dir: str,
    *,
    client: OfferingPublisher,
    base_dir: str | Path | None = None,
) -> RegistrationResult:
    offering_dir = resolve_offering_dir(offering_name, agent_dir, base_dir=base_dir)
    if not offering_dir.is_dir():
        raise OfferingNotFoundError(f"offering directory not found: {offering_dir}")

    report, data = validate_offering(offering_dir)
    if not report.valid or data is None:
        logger.info(
            "offering %s rejected at registration: %d error(s)",
            offering_name,
            len(report.errors),
        )
        raise OfferingValidationError(offering_name, report.errors, report.warnings)

    try:
        config = OfferingConfig.model_validate(data)
    except ValidationError as exc:
        errors = [
            f"{CONFIG_FILENAME}: {'.'.join(map(str, error['loc']))}: {error['msg']}"
            for error in exc.errors()
        ]
        raise OfferingValidationError(offering_name, errors, report.warnings) from exc
    payload = build_offering_payload(config).model_dump(by_alias=True)
    response = client.create_job_offering(payload)
    logger.info("registered offering %s", offering_name)
    return RegistrationResult(
        name=offering_name,
        payload=payload,
        warnings=report.warnings,
        response=response,
    )


def delist_offering(offering_name: str, *, client: OfferingPublisher) -> None:
    client.delete_job_offering(offering_name)
    logger.info("delisted offering %s", offering_name)


def describe_local_offerings(
    agent_dir: str,
    *,
    base_dir: str | Path | None = None,
) -> list[dict]:
    root = offerings_root(agent_dir, base_dir=base_dir)
    described: list[dict] = []
    for dir_name in list_offerings(agent_dir, base_dir=base_dir):
        config_path = root / dir_name / CONFIG_FILENAME
        try:
            raw = json.loads(config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            continue
        if not isinstance(raw, dict):
            continue
        described.append(
            {
                "dirName": dir_name,
                "name": raw.get("name") or dir_name,
                "description": raw.get("description") or "",
                "jobFee": raw.get("jobFee") if raw.get("jobFee") is not None else 0,
                "jobFeeType": raw.get("jobFeeType") or "fixed",
                "requiredFunds": bool(raw.get("requiredFunds")),
                "handlers": detect_handlers(root / dir_name / HANDLERS_FILENAME),
            }
        )
    return described


def has_local_files(
    offering_name: str,
    agent_dir: str,
    *,
    base_dir: str | Path | None = None,
) -> bool:
    try:
        offering_dir = resolve_offering_dir(offering_name, agent_dir, base_dir=base_dir)
    except OfferingNotFoundError:
        return False
    return (offering_dir / CONFIG_FILENAME).is_file() and (
        offering_dir / HANDLERS_FILENAME
    ).is_file()
