"""Layered configuration resolution for components."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

import structlog
from pydantic import BaseModel, ValidationError

from .errors import ConfigSchemaError, GovernanceViolationError
from .models import ConfigurationLayer
from .types import ENVIRONMENT_ALIASES

if TYPE_CHECKING:
    from .models import ComponentSpec
    from .types import ComponentContext, ConfigMap

logger = structlog.get_logger(__name__)

FALLBACK_PRIORITY = 10
COMPLIANCE_PRIORITY = 20
ENVIRONMENT_PRIORITY = 30
COMPONENT_CONFIG_PRIORITY = 40
MANIFEST_OVERRIDES_PRIORITY = 50
GOVERNANCE_PRIORITY = 60

# Layers authored by the service team; governance checks inspect these.
MANIFEST_LAYERS = ("component-config", "manifest-overrides", "manifest-governance", "component-policy")
# Only these may leave a governance flag disabled in a restricted context.
TRUSTED_LAYERS = ("hardcoded-fallbacks", "compliance-defaults", "environment-defaults", "governance-overrides")


def deep_merge(base: ConfigMap, override: ConfigMap) -> ConfigMap:
    """Merge `override` onto `base` without mutating either.

    Nested maps merge key by key. Lists and scalars from `override` replace
    the base value outright. A None in `override` never replaces a value.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if value is None:
            continue
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def get_path(config: ConfigMap, dotted: str) -> Any:
    """Return the value at a dotted path, or None when any segment is absent."""
    current: Any = config
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def _collect_keys(config: ConfigMap, prefix: str = "") -> list[str]:
    keys = []
    for key, value in config.items():
        full_key = f"{prefix}.{key}" if prefix else key
        keys.append(full_key)
        if isinstance(value, dict):
            keys.extend(_collect_keys(value, full_key))
    return keys


def _format_loc(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc)


@dataclass
class LayerConflict:
    """A dotted key defined by more than one layer."""

    key: str
    values: list[tuple[str, Any]]
    winner: str


class ConfigBuilder:
    """Merges ordered configuration layers into one validated configuration.

    Subclasses declare the schema and per-layer defaults as class data:

    - ``schema``: pydantic model validating the merged result
    - ``fallbacks``: hardcoded lowest-priority defaults
    - ``compliance_defaults``: one entry per compliance framework
    - ``environment_defaults``: entries keyed by environment name
    - ``governance_flags``: dotted boolean paths a manifest may not turn off
      in restricted contexts
    """

    component_type: ClassVar[str] = ""
    schema: ClassVar[type[BaseModel]]
    fallbacks: ClassVar[ConfigMap] = {}
    compliance_defaults: ClassVar[dict[str, ConfigMap]] = {}
    environment_defaults: ClassVar[dict[str, ConfigMap]] = {}
    governance_flags: ClassVar[tuple[str, ...]] = ("monitoring.enabled",)

    def __init__(self, context: ComponentContext, spec: ComponentSpec):
        self.context = context
        self.spec = spec
        self._extra_layers: list[ConfigurationLayer] = []

    def add_layer(self, name: str, priority: int, config: ConfigMap) -> ConfigBuilder:
        """Contribute an additional layer. Equal priorities keep insertion order."""
        self._extra_layers.append(ConfigurationLayer(name=name, priority=priority, config=config))
        return self

    def get_compliance_defaults(self) -> ConfigMap:
        framework = self.context.compliance_framework
        if framework == "high":
            return self.compliance_defaults.get("high", {})
        elif framework == "moderate":
            return self.compliance_defaults.get("moderate", {})
        else:
            return self.compliance_defaults.get("baseline", {})

    def get_environment_defaults(self) -> ConfigMap:
        environment = ENVIRONMENT_ALIASES.get(self.context.environment, self.context.environment)
        return self.environment_defaults.get(environment, {})

    def get_manifest_governance(self) -> ConfigMap:
        return self.context.manifest_governance.get(self.spec.type, {})

    def get_governance_overrides(self) -> ConfigMap:
        """Platform policy for this component type."""
        return self.context.governance_overrides.get(self.spec.type, {})

    def layers(self) -> list[ConfigurationLayer]:
        """All layers in ascending priority order."""
        layers = [
            ConfigurationLayer(name="hardcoded-fallbacks", priority=FALLBACK_PRIORITY, config=self.fallbacks),
            ConfigurationLayer(name="compliance-defaults", priority=COMPLIANCE_PRIORITY, config=self.get_compliance_defaults()),
            ConfigurationLayer(name="environment-defaults", priority=ENVIRONMENT_PRIORITY, config=self.get_environment_defaults()),
            ConfigurationLayer(name="component-config", priority=COMPONENT_CONFIG_PRIORITY, config=self.spec.config),
            ConfigurationLayer(name="manifest-overrides", priority=MANIFEST_OVERRIDES_PRIORITY, config=self.spec.overrides),
            ConfigurationLayer(name="manifest-governance", priority=GOVERNANCE_PRIORITY, config=self.get_manifest_governance()),
            ConfigurationLayer(name="component-policy", priority=GOVERNANCE_PRIORITY, config=self.spec.policy),
            # Platform policy merges last within its priority.
            ConfigurationLayer(name="governance-overrides", priority=GOVERNANCE_PRIORITY, config=self.get_governance_overrides()),
        ]
        layers.extend(self._extra_layers)
        return sorted(layers, key=lambda layer: layer.priority)

    def merge(self, layers: list[ConfigurationLayer] | None = None) -> ConfigMap:
        """Merge layers without validation."""
        merged: ConfigMap = {}
        for layer in layers if layers is not None else self.layers():
            merged = deep_merge(merged, layer.config)
        return merged

    def build(self) -> ConfigMap:
        """Merge, enforce governance, derive defaults and validate."""
        layers = self.layers()
        merged = self.merge(layers)

        self._enforce_governance(layers, merged)
        normalised = self.normalise(merged)
        validated = self._validate(normalised)
        self.check(validated)

        logger.debug(
            "config_resolved",
            component=self.spec.name,
            component_type=self.spec.type,
            layers=[layer.name for layer in layers if layer.config],
        )
        return validated

    def normalise(self, config: ConfigMap) -> ConfigMap:
        """Complete partially specified structures with derived defaults."""
        return config

    def check(self, config: ConfigMap) -> None:
        """Cross-field validation on the validated configuration."""

    def fail(self, path: str, message: str) -> ConfigSchemaError:
        return ConfigSchemaError(f"{self.spec.name}: {path}: {message}", path=path, component=self.spec.name)

    def _validate(self, config: ConfigMap) -> ConfigMap:
        try:
            model = self.schema.model_validate(config)
        except ValidationError as e:
            first = e.errors()[0]
            path = _format_loc(first["loc"])
            raise self.fail(path, first["msg"]) from e
        return model.model_dump(by_alias=True, exclude_none=True)

    def _enforce_governance(self, layers: list[ConfigurationLayer], merged: ConfigMap) -> None:
        """Reject manifest attempts to disable governance flags in restricted contexts.

        Any manifest layer setting a flag to false fails. The merged result is
        then checked as well: a disabled flag must come from a trusted layer.
        """
        if not self.context.is_restricted:
            return
        for layer in layers:
            if layer.name not in MANIFEST_LAYERS:
                continue
            for flag in self.governance_flags:
                if get_path(layer.config, flag) is False:
                    raise self._governance_violation(flag, layer.name)

        for flag in self.governance_flags:
            if get_path(merged, flag) is not False:
                continue
            winner = [layer.name for layer in layers if get_path(layer.config, flag) is not None][-1]
            if winner not in TRUSTED_LAYERS:
                raise self._governance_violation(flag, winner)

    def _governance_violation(self, flag: str, layer: str) -> GovernanceViolationError:
        return GovernanceViolationError(
            f"{self.spec.name}: '{flag}' cannot be disabled in environment "
            f"'{self.context.environment}' under the "
            f"'{self.context.compliance_framework}' framework",
            path=flag,
            layer=layer,
            component=self.spec.name,
        )

    def build_summary(self) -> list[LayerConflict]:
        """Report every dotted key that more than one layer defines."""
        layers = [layer for layer in self.layers() if layer.config]
        keys: list[str] = []
        for layer in layers:
            for key in _collect_keys(layer.config):
                if key not in keys:
                    keys.append(key)

        conflicts = []
        for key in keys:
            values = [
                (layer.name, get_path(layer.config, key))
                for layer in layers
                if get_path(layer.config, key) is not None
            ]
            # Map-valued keys merge rather than conflict.
            scalar_values = [(name, value) for name, value in values if not isinstance(value, dict)]
            if len(scalar_values) > 1:
                conflicts.append(LayerConflict(key=key, values=scalar_values, winner=scalar_values[-1][0]))
        return conflicts
