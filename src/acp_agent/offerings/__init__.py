from acp_agent.offerings.manage import (
    RegistrationResult,
    delist_offering,
    describe_local_offerings,
    has_local_files,
    register_offering,
    scaffold_offering,
)
from acp_agent.offerings.registry import (
    DEFAULT_OFFERINGS_DIR,
    LoadedOffering,
    OfferingHandlers,
    list_offerings,
    load_offering,
    offerings_root,
)
from acp_agent.offerings.schemas import JobOfferingPayload, OfferingConfig, PriceV2
from acp_agent.offerings.validation import (
    ValidationReport,
    validate_handler_source,
    validate_handlers,
    validate_offering,
    validate_offering_config,
    validate_offering_data,
)

__all__ = [
    "DEFAULT_OFFERINGS_DIR",
    "LoadedOffering",
    "OfferingHandlers",
    "OfferingConfig",
    "PriceV2",
    "JobOfferingPayload",
    "ValidationReport",
    "RegistrationResult",
    "load_offering",
    "list_offerings",
    "offerings_root",
    "validate_offering",
    "validate_offering_config",
    "validate_offering_data",
    "validate_handlers",
    "validate_handler_source",
    "register_offering",
    "delist_offering",
    "scaffold_offering",
    "describe_local_offerings",
    "has_local_files",
]
