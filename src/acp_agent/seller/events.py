"""Job lifecycle event payloads pushed by the marketplace socket."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from acp_agent.types import JobPhase, parse_job_phase


class JobMemo(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Union[int, str]
    next_phase: Optional[JobPhase] = Field(default=None, alias="nextPhase")
    content: str = ""
    status: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @field_validator("next_phase", mode="before")
    @classmethod
    def _coerce_phase(cls, value: Any) -> JobPhase | None:
        return parse_job_phase(value)

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        return json.dumps(value)


class JobEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Union[int, str]
    phase: Optional[JobPhase] = None
    memos: List[JobMemo] = Field(default_factory=list)
    memo_to_sign: Optional[Union[int, str]] = Field(default=None, alias="memoToSign")
    client_address: Optional[str] = Field(default=None, alias="clientAddress")
    provider_address: Optional[str] = Field(default=None, alias="providerAddress")
    price: Optional[Union[float, str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator("phase", mode="before")
    @classmethod
    def _coerce_phase(cls, value: Any) -> JobPhase | None:
        return parse_job_phase(value)

    @field_validator("memos", mode="before")
    @classmethod
    def _coerce_memos(cls, value: Any) -> list:
        return value if isinstance(value, list) else []

    @property
    def phase_name(self) -> str:
        return self.phase.name if self.phase is not None else "UNKNOWN"

    def memo_by_id(self, memo_id: int | str | None) -> JobMemo | None:
        if memo_id is None:
            return None
        for memo in self.memos:
            if str(memo.id) == str(memo_id):
                return memo
        return None

    def negotiation_memo(self) -> JobMemo | None:
        for memo in self.memos:
            if memo.next_phase == JobPhase.NEGOTIATION:
                return memo
        return None

    def pending_negotiation_memo(self) -> JobMemo | None:
        """The memo awaiting our signature, if it is the request -> negotiation one."""
        memo = self.memo_by_id(self.memo_to_sign)
        if memo is None or memo.next_phase != JobPhase.NEGOTIATION:
            return None
        return memo

    def _negotiation_content(self) -> dict | None:
        memo = self.negotiation_memo()
        if memo is None:
            return None
        try:
            content = json.loads(memo.content)
        except ValueError:
            return None
        return content if isinstance(content, dict) else None

    def offering_name(self) -> str | None:
        content = self._negotiation_content()
        if content is None:
            return None
        name = content.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        return None

    def requirements(self) -> dict:
        content = self._negotiation_content()
        if content is None:
            return {}
        requirement = content.get("requirement")
        return requirement if isinstance(requirement, dict) else {}
