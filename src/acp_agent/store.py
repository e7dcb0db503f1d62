"""Local durable state: agent profiles, seller PID and bounty records."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from acp_agent.bounty.models import Bounty

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path.home() / ".acp_agent"
CONFIG_FILENAME = "config.json"
BOUNTIES_FILENAME = "active-bounties.json"

API_KEY_FIELD = "LITE_AGENT_API_KEY"
SELLER_PID_FIELD = "SELLER_PID"
AGENTS_FIELD = "agents"


class JsonDocument:
    """A JSON object read and rewritten as a whole on every access.

    Missing, unreadable or non-object files read as ``{}`` so a crash mid-write
    never leaves the CLI unable to start.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable state file %s: %s", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("ignoring non-object state file %s", self.path)
            return {}
        return payload

    def save(self, payload: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def is_process_running(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class StateStore:
    def __init__(
        self,
        state_dir: str | Path | None = None,
        *,
        config_path: str | Path | None = None,
        bounties_path: str | Path | None = None,
    ) -> None:
        root = Path(state_dir) if state_dir else DEFAULT_STATE_DIR
        self.config = JsonDocument(config_path or root / CONFIG_FILENAME)
        self.bounties = JsonDocument(bounties_path or root / BOUNTIES_FILENAME)

    # -- bounties --

    def _read_bounties(self) -> list[Bounty]:
        raw = self.bounties.load().get("bounties")
        if not isinstance(raw, list):
            return []
        records: list[Bounty] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                records.append(Bounty.from_dict(item))
            except (TypeError, ValueError) as exc:
                logger.warning("skipping malformed bounty record: %s", exc)
        return records

    def _write_bounties(self, records: list[Bounty]) -> None:
        self.bounties.save({"bounties": [record.to_dict() for record in records]})

    def list_bounties(self) -> list[Bounty]:
        return self._read_bounties()

    def get_bounty(self, bounty_id: str) -> Bounty | None:
        for record in self._read_bounties():
            if record.bounty_id == bounty_id:
                return record
        return None

    def get_bounty_by_job_id(self, job_id: str) -> Bounty | None:
        for record in self._read_bounties():
            if record.acp_job_id == str(job_id):
                return record
        return None

    def put_bounty(self, bounty: Bounty) -> None:
        records = self._read_bounties()
        for index, record in enumerate(records):
            if record.bounty_id == bounty.bounty_id:
                if record.poster_secret and bounty.poster_secret != record.poster_secret:
                    raise ValueError(f"poster secret of bounty {bounty.bounty_id} is immutable")
                records[index] = bounty
                break
        else:
            records.append(bounty)
        self._write_bounties(records)

    def delete_bounty(self, bounty_id: str) -> bool:
        records = self._read_bounties()
        remaining = [record for record in records if record.bounty_id != bounty_id]
        if len(remaining) == len(records):
            return False
        self._write_bounties(remaining)
        return True

    # -- seller process id --

    def get_seller_pid(self) -> int | None:
        raw = self.config.load().get(SELLER_PID_FIELD)
        if isinstance(raw, bool) or not isinstance(raw, int):
            return None
        return raw

    def set_seller_pid(self, pid: int) -> None:
        payload = self.config.load()
        payload[SELLER_PID_FIELD] = int(pid)
        self.config.save(payload)

    def clear_seller_pid(self) -> None:
        payload = self.config.load()
        if SELLER_PID_FIELD in payload:
            del payload[SELLER_PID_FIELD]
            self.config.save(payload)

    def live_seller_pid(self) -> int | None:
        """Recorded seller PID if that process is alive; stale records are dropped."""
        pid = self.get_seller_pid()
        if pid is None:
            return None
        if is_process_running(pid):
            return pid
        logger.info("clearing stale seller pid %s", pid)
        self.clear_seller_pid()
        return None

    # -- agent profiles --

    def list_agents(self) -> list[dict[str, Any]]:
        agents = self.config.load().get(AGENTS_FIELD)
        if not isinstance(agents, list):
            return []
        return [agent for agent in agents if isinstance(agent, dict)]

    def get_active_agent(self) -> dict[str, Any] | None:
        for agent in self.list_agents():
            if agent.get("active"):
                return agent
        return None

    def find_agent_by_name(self, name: str) -> dict[str, Any] | None:
        lowered = name.strip().lower()
        for agent in self.list_agents():
            if str(agent.get("name", "")).lower() == lowered:
                return agent
        return None

    def upsert_agent(self, agent: dict[str, Any]) -> None:
        payload = self.config.load()
        agents = [a for a in self.list_agents() if a.get("id") != agent.get("id")]
        agents.append(agent)
        payload[AGENTS_FIELD] = agents
        self.config.save(payload)

    def activate_agent(self, agent_id: str, api_key: str) -> None:
        payload = self.config.load()
        agents = []
        for agent in self.list_agents():
            is_target = agent.get("id") == agent_id
            updated = dict(agent)
            updated["active"] = is_target
            if is_target:
                updated["apiKey"] = api_key
            agents.append(updated)
        payload[AGENTS_FIELD] = agents
        payload[API_KEY_FIELD] = api_key
        self.config.save(payload)

    def get_api_key(self) -> str | None:
        raw = self.config.load().get(API_KEY_FIELD)
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
        return None

    # -- misc settings --

    def get_setting(self, key: str) -> Any:
        return self.config.load().get(key)

    def set_setting(self, key: str, value: Any) -> None:
        payload = self.config.load()
        if value is None:
            payload.pop(key, None)
        else:
            payload[key] = value
        self.config.save(payload)
