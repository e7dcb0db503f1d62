"""Registration-time checks for offering config and handler modules."""

from __future__ import annotations

import ast
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from acp_agent.offerings.registry import (
    CONFIG_FILENAME,
    EXECUTE_HANDLER,
    HANDLERS_FILENAME,
    REQUEST_FUNDS_HANDLER,
    REQUEST_PAYMENT_HANDLER,
    VALIDATE_HANDLER,
)
from acp_agent.types import ALLOWED_FEE_KINDS, PERCENTAGE_FEE_MAX, PERCENTAGE_FEE_MIN


@dataclass
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def extend(self, other: "ValidationReport") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def validate_offering_data(data: Any) -> ValidationReport:
    report = ValidationReport()
    if not isinstance(data, dict):
        report.errors.append(f"{CONFIG_FILENAME}: must contain a JSON object")
        return report

    if not _non_empty_string(data.get("name")):
        report.errors.append(
            f'{CONFIG_FILENAME}: "name" is required; set it to a non-empty string '
            "matching the directory name"
        )
    if not _non_empty_string(data.get("description")):
        report.errors.append(
            f'{CONFIG_FILENAME}: "description" is required; describe what this service '
            "does for buyers"
        )

    fee = data.get("jobFee")
    fee_type = data.get("jobFeeType")
    required_funds = data.get("requiredFunds")

    if fee is None:
        report.errors.append(f'{CONFIG_FILENAME}: "jobFee" is required; set it to a number')
    elif not _is_number(fee):
        report.errors.append(f'{CONFIG_FILENAME}: "jobFee" must be a number')

    if fee_type is None:
        report.errors.append(
            f'{CONFIG_FILENAME}: "jobFeeType" is required ("fixed" or "percentage")'
        )
    elif fee_type not in ALLOWED_FEE_KINDS:
        report.errors.append(
            f'{CONFIG_FILENAME}: "jobFeeType" must be either "fixed" or "percentage"'
        )

    if _is_number(fee) and fee_type == "fixed":
        if fee < 0:
            report.errors.append(
                f'{CONFIG_FILENAME}: "jobFee" must be a non-negative number '
                "(fee in USDC per job) for fixed fee type"
            )
        elif fee == 0:
            report.warnings.append(
                f'{CONFIG_FILENAME}: "jobFee" is 0; jobs will pay no fee to seller'
            )
    if _is_number(fee) and fee_type == "percentage":
        if not PERCENTAGE_FEE_MIN <= fee <= PERCENTAGE_FEE_MAX:
            report.errors.append(
                f'{CONFIG_FILENAME}: "jobFee" must be >= {PERCENTAGE_FEE_MIN} and '
                f"<= {PERCENTAGE_FEE_MAX} (decimal, eg. 50% = 0.5) for percentage fee type"
            )

    if required_funds is None:
        report.errors.append(
            f'{CONFIG_FILENAME}: "requiredFunds" is required; true if the job needs a '
            "token transfer beyond the fee, false otherwise"
        )
    elif not isinstance(required_funds, bool):
        report.errors.append(f'{CONFIG_FILENAME}: "requiredFunds" must be true or false')
    elif fee_type == "percentage" and required_funds is False:
        report.errors.append(
            f'{CONFIG_FILENAME}: percentage fees are taken from transferred funds, so '
            '"requiredFunds" must be true when "jobFeeType" is "percentage"'
        )

    sla = data.get("slaMinutes")
    if sla is not None and (not isinstance(sla, int) or isinstance(sla, bool) or sla < 1):
        report.errors.append(f'{CONFIG_FILENAME}: "slaMinutes" must be a positive integer')

    requirement = data.get("requirement")
    if requirement is not None and not isinstance(requirement, dict):
        report.errors.append(f'{CONFIG_FILENAME}: "requirement" must be a JSON object schema')

    deliverable = data.get("deliverable")
    if deliverable is not None and not isinstance(deliverable, str):
        report.errors.append(f'{CONFIG_FILENAME}: "deliverable" must be a string')

    return report


def validate_offering_config(path: str | Path) -> tuple[ValidationReport, dict | None]:
    config_path = Path(path)
    report = ValidationReport()
    if not config_path.is_file():
        report.errors.append(f"{CONFIG_FILENAME} not found at {config_path}")
        return report, None
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        report.errors.append(f"invalid JSON in {CONFIG_FILENAME}: {exc}")
        return report, None
    report.extend(validate_offering_data(data))
    return report, data if isinstance(data, dict) else None


def exported_names(source: str) -> set[str]:
    """Top-level names a handler module defines, without executing it."""
    tree = ast.parse(source)
    names: set[str] = set()
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            names.add(node.name)
        elif isinstance(node, ast.Assign):
            for target in node.targets:
                if isinstance(target, ast.Name):
                    names.add(target.id)
        elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
            names.add(node.target.id)
        elif isinstance(node, ast.ImportFrom):
            for alias in node.names:
                names.add(alias.asname or alias.name)
    return names


def validate_handler_source(source: str, required_funds: bool | None) -> ValidationReport:
    report = ValidationReport()
    try:
        names = exported_names(source)
    except SyntaxError as exc:
        report.errors.append(f"{HANDLERS_FILENAME}: syntax error: {exc}")
        return report

    if EXECUTE_HANDLER not in names:
        report.errors.append(
            f'{HANDLERS_FILENAME}: must define an "{EXECUTE_HANDLER}" function; this is the '
            "required handler that runs your service logic"
        )
    if VALIDATE_HANDLER not in names:
        report.warnings.append(
            f'{HANDLERS_FILENAME}: optional "{VALIDATE_HANDLER}" handler not found; '
            "requests will be accepted without validation"
        )

    has_funds = REQUEST_FUNDS_HANDLER in names
    if required_funds is True and not has_funds:
        report.errors.append(
            f'{HANDLERS_FILENAME}: "requiredFunds" is true in {CONFIG_FILENAME}; must define '
            f'"{REQUEST_FUNDS_HANDLER}" to specify the token transfer details'
        )
    if required_funds is False and has_funds:
        report.errors.append(
            f'{HANDLERS_FILENAME}: "requiredFunds" is false in {CONFIG_FILENAME}; must NOT '
            f'define "{REQUEST_FUNDS_HANDLER}" (remove it, or set requiredFunds to true)'
        )
    return report


def validate_handlers(path: str | Path, required_funds: bool | None) -> ValidationReport:
    handlers_path = Path(path)
    if not handlers_path.is_file():
        return ValidationReport(errors=[f"{HANDLERS_FILENAME} not found at {handlers_path}"])
    try:
        source = handlers_path.read_text(encoding="utf-8")
    except OSError as exc:
        return ValidationReport(errors=[f"cannot read {HANDLERS_FILENAME}: {exc}"])
    return validate_handler_source(source, required_funds)


def detect_handlers(path: str | Path) -> list[str]:
    handlers_path = Path(path)
    if not handlers_path.is_file():
        return []
    try:
        names = exported_names(handlers_path.read_text(encoding="utf-8"))
    except (OSError, SyntaxError):
        return []
    ordered = (EXECUTE_HANDLER, VALIDATE_HANDLER, REQUEST_PAYMENT_HANDLER, REQUEST_FUNDS_HANDLER)
    return [name for name in ordered if name in names]


def validate_offering(offering_dir: str | Path) -> tuple[ValidationReport, dict | None]:
    """Check config and handlers together, collecting every violation."""
    directory = Path(offering_dir)
    report, data = validate_offering_config(directory / CONFIG_FILENAME)
    required_funds = data.get("requiredFunds") if data else None
    if not isinstance(required_funds, bool):
        required_funds = None
    report.extend(validate_handlers(directory / HANDLERS_FILENAME, required_funds))
    return report, data
