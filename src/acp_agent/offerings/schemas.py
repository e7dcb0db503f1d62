"""Offering config and registration payload schemas."""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SLA_MINUTES = 5
DEFAULT_DELIVERABLE = "string"


class PriceV2(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["fixed", "percentage"]
    value: float


class OfferingConfig(BaseModel):
    """Parsed ``offering.json``.

    Lenient on purpose: strict field checks happen at registration time in
    :mod:`acp_agent.offerings.validation`; a registered offering is trusted
    when it is loaded to serve a job.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = ""
    description: str = ""
    job_fee: float = Field(default=0.0, alias="jobFee")
    job_fee_type: str = Field(default="fixed", alias="jobFeeType")
    required_funds: bool = Field(default=False, alias="requiredFunds")
    requirement: Dict[str, Any] = Field(default_factory=dict)
    sla_minutes: int = Field(default=DEFAULT_SLA_MINUTES, alias="slaMinutes")
    deliverable: str = DEFAULT_DELIVERABLE
    price_v2: Optional[PriceV2] = Field(default=None, alias="priceV2")

    @field_validator("requirement", "sla_minutes", "deliverable", mode="before")
    @classmethod
    def _null_means_default(cls, value: Any, info) -> Any:
        if value is not None:
            return value
        if info.field_name == "requirement":
            return {}
        if info.field_name == "sla_minutes":
            return DEFAULT_SLA_MINUTES
        return DEFAULT_DELIVERABLE


class JobOfferingPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: str
    description: str
    price_v2: PriceV2 = Field(..., alias="priceV2")
    sla_minutes: int = Field(DEFAULT_SLA_MINUTES, alias="slaMinutes", ge=1)
    required_funds: bool = Field(..., alias="requiredFunds")
    requirement: Dict[str, Any] = Field(default_factory=dict)
    deliverable: str = DEFAULT_DELIVERABLE


def build_offering_payload(config: OfferingConfig) -> JobOfferingPayload:
    price = config.price_v2 or PriceV2(type=config.job_fee_type, value=config.job_fee)
    return JobOfferingPayload(
        name=config.name,
        description=config.description,
        price_v2=price,
        sla_minutes=config.sla_minutes,
        required_funds=config.required_funds,
        requirement=config.requirement,
        deliverable=config.deliverable,
    )
