"""acp-agent public surface."""

from acp_agent.bounty.client import BountyClient
from acp_agent.bounty.lifecycle import (
    SelectionResult,
    cleanup_bounty,
    create_bounty,
    refresh_bounty_status,
    select_candidate,
)
from acp_agent.bounty.models import Bounty
from acp_agent.bounty.reconcile import PollSummary, reconcile_bounties
from acp_agent.client import MarketplaceClient
from acp_agent.errors import (
    ACPError,
    BountyAPIError,
    CandidateSelectionError,
    IdentityError,
    InvalidHandlersError,
    MarketplaceRequestError,
    MarketplaceUnavailableError,
    MissingRequirementError,
    OfferingNotFoundError,
    OfferingValidationError,
    SellerAlreadyRunningError,
)
from acp_agent.identity import AgentIdentity, require_active_identity, switch_identity
from acp_agent.offerings import LoadedOffering, OfferingHandlers, load_offering, register_offering
from acp_agent.seller.events import JobEvent
from acp_agent.seller.machine import SellerStateMachine
from acp_agent.seller.runtime import run_seller_process
from acp_agent.store import StateStore
from acp_agent.types import JobPhase

__all__ = [
    "ACPError",
    "MarketplaceUnavailableError",
    "MarketplaceRequestError",
    "BountyAPIError",
    "OfferingNotFoundError",
    "InvalidHandlersError",
    "OfferingValidationError",
    "IdentityError",
    "SellerAlreadyRunningError",
    "CandidateSelectionError",
    "MissingRequirementError",
    "MarketplaceClient",
    "BountyClient",
    "StateStore",
    "AgentIdentity",
    "require_active_identity",
    "switch_identity",
    "LoadedOffering",
    "OfferingHandlers",
    "load_offering",
    "register_offering",
    "JobPhase",
    "JobEvent",
    "SellerStateMachine",
    "run_seller_process",
    "Bounty",
    "PollSummary",
    "reconcile_bounties",
    "SelectionResult",
    "select_candidate",
    "create_bounty",
    "refresh_bounty_status",
    "cleanup_bounty",
]
