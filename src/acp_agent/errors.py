"""Error types for acp-agent."""

from __future__ import annotations


class ACPError(RuntimeError):
    """Base error for acp-agent."""


class MarketplaceUnavailableError(ACPError):
    """Marketplace could not be reached."""


class MarketplaceRequestError(MarketplaceUnavailableError):
    """Marketplace returned a structured HTTP error response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: object | None = None,
        body: object | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.body = body


class BountyAPIError(MarketplaceRequestError):
    """Bounty marketplace call failed or returned an unusable payload."""


class OfferingNotFoundError(ACPError):
    """Offering files are missing or unreadable for the active agent."""


class InvalidHandlersError(ACPError):
    """Offering handler module does not expose the required capabilities."""


class OfferingValidationError(ACPError):
    """Offering failed registration checks; carries every violation found."""

    def __init__(
        self,
        offering_name: str,
        errors: list[str],
        warnings: list[str] | None = None,
    ) -> None:
        super().__init__(
            f"offering {offering_name!r} failed validation with {len(errors)} error(s)"
        )
        self.offering_name = offering_name
        self.errors = list(errors)
        self.warnings = list(warnings or [])


class IdentityError(ACPError):
    """No usable agent identity is configured."""


class SellerAlreadyRunningError(ACPError):
    """A seller runtime is already alive on this machine."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"seller runtime already running with pid {pid}")
        self.pid = pid


class CandidateSelectionError(ACPError):
    """Bounty candidate selection cannot proceed."""


class MissingRequirementError(CandidateSelectionError):
    """Required buyer requirement values were not supplied."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__("missing required requirement(s): " + ", ".join(missing))
        self.missing = list(missing)
