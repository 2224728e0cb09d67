"""Type definitions and constants shared across stackwire."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import SpecValidationError

# Constants
COMPLIANCE_FRAMEWORKS = ("baseline", "moderate", "high")
REGULATED_FRAMEWORKS = frozenset({"moderate", "high"})
RESTRICTED_ENVIRONMENTS = frozenset({"prod", "production"})
# Environment names that share the defaults of another name.
ENVIRONMENT_ALIASES = {"production": "prod"}
ACCESS_LEVELS = ("read", "write", "readwrite", "admin")
NAME_PATTERN = r"^[a-z][a-z0-9-]{0,62}$"
ENV_VAR_PATTERN = r"^[A-Z][A-Z0-9_]*$"


# Type aliases
ConfigMap = dict[str, Any]
EnvMap = dict[str, str]
CapabilityMap = dict[str, dict[str, Any]]
Errors = list[str]


class LifecycleState(str, Enum):
    """Component lifecycle. Transitions are strictly sequential."""

    CREATED = "created"
    CONFIGURED = "configured"
    SYNTHESIZED = "synthesized"
    BOUND = "bound"


@dataclass
class ComponentContext:
    """Service-wide context a component is resolved against."""

    service_name: str
    environment: str
    compliance_framework: str
    region: str
    account: str
    scope: Any = None  # provisioning collaborator
    network: Any | None = None
    governance_overrides: dict[str, ConfigMap] = field(default_factory=dict)
    manifest_governance: dict[str, ConfigMap] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.compliance_framework not in COMPLIANCE_FRAMEWORKS:
            raise SpecValidationError(
                f"Unknown compliance framework '{self.compliance_framework}'. "
                f"Expected one of: {', '.join(COMPLIANCE_FRAMEWORKS)}",
                path="compliance_framework",
            )

    @property
    def is_regulated(self) -> bool:
        return self.compliance_framework in REGULATED_FRAMEWORKS

    @property
    def is_restricted(self) -> bool:
        """Restricted contexts refuse manifest attempts to disable governance flags."""
        return self.environment in RESTRICTED_ENVIRONMENTS or self.compliance_framework == "high"
