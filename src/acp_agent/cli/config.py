"""Configuration helpers for the acp CLI."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from acp_agent.bounty.client import DEFAULT_BOUNTY_API_BASE
from acp_agent.client import DEFAULT_API_BASE
from acp_agent.seller.channel import DEFAULT_SOCKET_URL

DEFAULT_STATE_DIR = Path.home() / ".acp_agent"
DEFAULT_CONFIG_PATH = DEFAULT_STATE_DIR / "config.toml"

API_BASE_ENV_VAR = "ACP_API_URL"
BOUNTY_API_BASE_ENV_VAR = "ACP_BOUNTY_API_URL"
SOCKET_URL_ENV_VAR = "ACP_SOCKET_URL"
STATE_DIR_ENV_VAR = "ACP_STATE_DIR"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class CLIConfig:
    api_base: str = DEFAULT_API_BASE
    bounty_api_base: str = DEFAULT_BOUNTY_API_BASE
    socket_url: str = DEFAULT_SOCKET_URL
    state_dir: str = str(DEFAULT_STATE_DIR)
    offerings_dir: str = str(DEFAULT_STATE_DIR / "offerings")
    log_level: str = "INFO"

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)


class ConfigError(ValueError):
    """Raised when CLI config is invalid."""


def _load_toml(path: Path) -> dict[str, Any]:
    raw = path.read_text(encoding="utf-8")

    try:  # Python 3.11+
        import tomllib  # type: ignore[attr-defined]
        try:
            return tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc
    except ModuleNotFoundError:
        try:
            import tomli
        except ModuleNotFoundError as exc:
            raise ConfigError("toml parser unavailable; install tomli for Python < 3.11") from exc
        try:
            return tomli.loads(raw)
        except tomli.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc


def _setting(source: dict[str, Any], key: str, default: str, env_var: str | None = None) -> str:
    env_value = os.getenv(env_var) if env_var else None
    if env_value and env_value.strip():
        return env_value.strip()
    value = str(source.get(key, default)).strip()
    if not value:
        raise ConfigError(f"{key} must not be empty")
    return value


def _url_setting(source: dict[str, Any], key: str, default: str, env_var: str) -> str:
    value = _setting(source, key, default, env_var)
    if not value.startswith(("http://", "https://")):
        raise ConfigError(f"{key} must be an http(s) URL")
    return value.rstrip("/")


def load_cli_config(path: str | Path | None = None) -> CLIConfig:
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    parsed = _load_toml(config_path) if config_path.exists() else {}
    section = parsed.get("cli")
    if isinstance(section, dict):
        source = section
    elif section is None:
        source = parsed
    else:
        raise ConfigError("[cli] must be a table")

    state_dir = _setting(source, "state_dir", str(DEFAULT_STATE_DIR), STATE_DIR_ENV_VAR)
    offerings_dir = _setting(source, "offerings_dir", str(Path(state_dir) / "offerings"))

    log_level = str(source.get("log_level", "INFO")).strip().upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigError("log_level must be one of: " + ", ".join(sorted(_LOG_LEVELS)))

    return CLIConfig(
        api_base=_url_setting(source, "api_base", DEFAULT_API_BASE, API_BASE_ENV_VAR),
        bounty_api_base=_url_setting(
            source, "bounty_api_base", DEFAULT_BOUNTY_API_BASE, BOUNTY_API_BASE_ENV_VAR
        ),
        socket_url=_url_setting(source, "socket_url", DEFAULT_SOCKET_URL, SOCKET_URL_ENV_VAR),
        state_dir=str(Path(state_dir).expanduser()),
        offerings_dir=str(Path(offerings_dir).expanduser()),
        log_level=log_level,
    )
