"""Active agent identity: the credential context threaded through API calls."""

from __future__ import annotations

import re
from dataclasses import dataclass

from acp_agent.errors import IdentityError, SellerAlreadyRunningError
from acp_agent.store import StateStore

_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9_-]+")


def sanitize_agent_name(name: str) -> str:
    """Directory-safe form of an agent name, used to scope offerings per identity."""
    cleaned = _UNSAFE_NAME_CHARS.sub("-", name.strip().lower()).strip("-")
    return cleaned or "default"


@dataclass(frozen=True)
class AgentIdentity:
    id: str
    name: str
    wallet_address: str
    api_key: str | None = None

    @property
    def dir_name(self) -> str:
        return sanitize_agent_name(self.name)

    @classmethod
    def from_record(cls, record: dict) -> "AgentIdentity":
        return cls(
            id=str(record.get("id", "")),
            name=str(record.get("name", "")),
            wallet_address=str(record.get("walletAddress", "")),
            api_key=record.get("apiKey") or None,
        )


def require_active_identity(store: StateStore, *, api_key: str | None = None) -> AgentIdentity:
    active = store.get_active_agent()
    if active is None:
        names = [str(agent.get("name")) for agent in store.list_agents()]
        if names:
            raise IdentityError(
                "no active agent selected. Available agents: "
                + ", ".join(names)
                + ". Run `acp agent switch <agent-name>` to select one."
            )
        raise IdentityError("no agents configured. Run `acp agent add` to register one.")

    identity = AgentIdentity.from_record(active)
    effective_key = api_key or identity.api_key or store.get_api_key()
    if not effective_key:
        raise IdentityError(f"active agent {identity.name!r} has no API key")
    if not identity.wallet_address:
        raise IdentityError(f"active agent {identity.name!r} has no wallet address")
    return AgentIdentity(
        id=identity.id,
        name=identity.name,
        wallet_address=identity.wallet_address,
        api_key=effective_key,
    )


def switch_identity(store: StateStore, name: str, *, api_key: str | None = None) -> AgentIdentity:
    """Make ``name`` the active agent.

    Refused while a seller runtime is alive: that process holds the previous
    agent's credential and would keep serving jobs under it.
    """
    target = store.find_agent_by_name(name)
    if target is None:
        names = ", ".join(str(agent.get("name")) for agent in store.list_agents()) or "(none)"
        raise IdentityError(f"agent {name!r} not found. Available: {names}")

    running_pid = store.live_seller_pid()
    if running_pid is not None:
        raise SellerAlreadyRunningError(running_pid)

    key = api_key or target.get("apiKey")
    if not key:
        raise IdentityError(f"agent {name!r} has no stored API key; pass one explicitly")
    store.activate_agent(str(target.get("id")), str(key))
    return AgentIdentity.from_record({**target, "apiKey": key})
