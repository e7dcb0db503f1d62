"""Per-agent offering lookup and handler loading.

Offerings live at ``<offerings_dir>/<agent-dir>/<offering>/`` as an
``offering.json`` config plus a ``handlers.py`` module. The handler module is
imported fresh on every call so a long-lived seller runtime always serves the
code currently on disk.
"""

from __future__ import annotations

import asyncio
import importlib.machinery
import importlib.util
import inspect
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

from pydantic import ValidationError

from acp_agent.errors import InvalidHandlersError, OfferingNotFoundError
from acp_agent.offerings.schemas import OfferingConfig

logger = logging.getLogger(__name__)

DEFAULT_OFFERINGS_DIR = Path.home() / ".acp_agent" / "offerings"
CONFIG_FILENAME = "offering.json"
HANDLERS_FILENAME = "handlers.py"

EXECUTE_HANDLER = "execute_job"
VALIDATE_HANDLER = "validate_requirements"
REQUEST_PAYMENT_HANDLER = "request_payment"
REQUEST_FUNDS_HANDLER = "request_additional_funds"


@dataclass(frozen=True)
class OfferingHandlers:
    """Capability table for one offering; only ``execute`` is mandatory."""

    execute: Callable[[dict], Any]
    validate: Callable[[dict], Any] | None = None
    request_payment: Callable[[dict], Any] | None = None
    request_funds: Callable[[dict], Any] | None = None

    def capabilities(self) -> list[str]:
        names = [EXECUTE_HANDLER]
        if self.validate is not None:
            names.append(VALIDATE_HANDLER)
        if self.request_payment is not None:
            names.append(REQUEST_PAYMENT_HANDLER)
        if self.request_funds is not None:
            names.append(REQUEST_FUNDS_HANDLER)
        return names


@dataclass(frozen=True)
class LoadedOffering:
    config: OfferingConfig
    handlers: OfferingHandlers
    path: Path


def offerings_root(agent_dir: str, *, base_dir: str | Path | None = None) -> Path:
    return Path(base_dir or DEFAULT_OFFERINGS_DIR) / agent_dir


def resolve_offering_dir(
    offering_name: str,
    agent_dir: str,
    *,
    base_dir: str | Path | None = None,
) -> Path:
    root = offerings_root(agent_dir, base_dir=base_dir).resolve()
    name = offering_name.strip()
    if not name or name in {".", ".."}:
        raise OfferingNotFoundError(f"invalid offering name: {offering_name!r}")
    candidate = (root / name).resolve()
    # Names are slugs; anything resolving outside the agent's own directory
    # would be a cross-identity lookup.
    if candidate.parent != root:
        raise OfferingNotFoundError(
            f"offering {offering_name!r} is outside the agent directory {root}"
        )
    return candidate


def list_offerings(agent_dir: str, *, base_dir: str | Path | None = None) -> list[str]:
    root = offerings_root(agent_dir, base_dir=base_dir)
    if not root.is_dir():
        return []
    return sorted(entry.name for entry in root.iterdir() if entry.is_dir())


def read_offering_config(offering_dir: Path) -> OfferingConfig:
    config_path = offering_dir / CONFIG_FILENAME
    if not config_path.is_file():
        raise OfferingNotFoundError(f"{CONFIG_FILENAME} not found: {config_path}")
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise OfferingNotFoundError(f"unreadable {CONFIG_FILENAME}: {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise OfferingNotFoundError(f"{CONFIG_FILENAME} must contain an object: {config_path}")
    try:
        return OfferingConfig.model_validate(raw)
    except ValidationError as exc:
        raise OfferingNotFoundError(f"corrupted {CONFIG_FILENAME}: {config_path}: {exc}") from exc


class _FreshSourceLoader(importlib.machinery.SourceFileLoader):
    """Compiles from source on every load.

    The bytecode cache keys on mtime and size, which an in-place edit of
    handlers.py can leave unchanged.
    """

    def get_code(self, fullname: str) -> Any:
        return self.source_to_code(self.get_data(self.path), self.path)


def _import_handler_module(handlers_path: Path, module_label: str) -> Any:
    module_name = f"acp_agent_offering_{module_label}_{uuid4().hex}"
    loader = _FreshSourceLoader(module_name, str(handlers_path))
    spec = importlib.util.spec_from_file_location(module_name, handlers_path, loader=loader)
    if spec is None:
        raise OfferingNotFoundError(f"cannot import handlers module: {handlers_path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        loader.exec_module(module)
    except Exception as exc:
        raise OfferingNotFoundError(f"failed to import {handlers_path}: {exc}") from exc
    finally:
        sys.modules.pop(module_name, None)
    return module


def _optional_callable(module: Any, name: str) -> Callable | None:
    value = getattr(module, name, None)
    return value if callable(value) else None


def handlers_from_module(module: Any, *, offering_name: str) -> OfferingHandlers:
    execute = _optional_callable(module, EXECUTE_HANDLER)
    if execute is None:
        raise InvalidHandlersError(
            f"{HANDLERS_FILENAME} in {offering_name!r} must define an {EXECUTE_HANDLER} function"
        )
    return OfferingHandlers(
        execute=execute,
        validate=_optional_callable(module, VALIDATE_HANDLER),
        request_payment=_optional_callable(module, REQUEST_PAYMENT_HANDLER),
        request_funds=_optional_callable(module, REQUEST_FUNDS_HANDLER),
    )


def load_offering(
    offering_name: str,
    agent_dir: str,
    *,
    base_dir: str | Path | None = None,
) -> LoadedOffering:
    offering_dir = resolve_offering_dir(offering_name, agent_dir, base_dir=base_dir)
    if not offering_dir.is_dir():
        raise OfferingNotFoundError(f"offering directory not found: {offering_dir}")

    config = read_offering_config(offering_dir)

    handlers_path = offering_dir / HANDLERS_FILENAME
    if not handlers_path.is_file():
        raise OfferingNotFoundError(f"{HANDLERS_FILENAME} not found: {handlers_path}")
    module = _import_handler_module(handlers_path, offering_dir.name.replace("-", "_"))
    handlers = handlers_from_module(module, offering_name=offering_name)
    logger.debug(
        "loaded offering %s from %s (handlers: %s)",
        offering_name,
        offering_dir,
        ", ".join(handlers.capabilities()),
    )
    return LoadedOffering(config=config, handlers=handlers, path=offering_dir)


async def call_handler(handler: Callable[..., Any], *args: Any) -> Any:
    """Invoke a handler that may be a plain function or a coroutine function.

    Plain functions run in a worker thread so a blocking handler stalls only
    the job it serves.
    """
    if inspect.iscoroutinefunction(handler):
        return await handler(*args)
    result = await asyncio.to_thread(handler, *args)
    if inspect.isawaitable(result):
        result = await result
    return result
