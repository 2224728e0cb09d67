"""Binding engine: strategies that wire a source component to a target capability."""

from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Iterator

import structlog

from .capabilities import load_capability
from .errors import (
    CapabilityMissingError,
    NoBinderStrategyError,
    NotSynthesizedError,
    RegistryLockedError,
    UnsupportedAccessLevelError,
)
from .types import ACCESS_LEVELS

if TYPE_CHECKING:
    from .capabilities import CapabilityContract
    from .components import Component
    from .models import BindingDirective
    from .types import EnvMap

logger = structlog.get_logger(__name__)


@dataclass
class PolicyStatement:
    effect: str
    actions: list[str]
    resources: list[str]
    conditions: dict[str, dict[str, Any]] = field(default_factory=dict)
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"effect": self.effect, "actions": self.actions, "resources": self.resources}
        if self.conditions:
            data["conditions"] = self.conditions
        if self.description:
            data["description"] = self.description
        return data


@dataclass
class NetworkRule:
    type: str
    peer: str
    port: int
    protocol: str = "tcp"
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "peer": self.peer,
            "port": self.port,
            "protocol": self.protocol,
            "description": self.description,
        }


@dataclass
class BindingResult:
    """What a binding contributes to its source component."""

    environment_variables: EnvMap = field(default_factory=dict)
    access_policies: list[PolicyStatement] = field(default_factory=list)
    network_rules: list[NetworkRule] = field(default_factory=list)
    additional_config: dict[str, Any] = field(default_factory=dict)

    def actions(self) -> list[str]:
        """Every action granted by the binding, in statement order."""
        return [action for statement in self.access_policies for action in statement.actions]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "environmentVariables": dict(self.environment_variables),
            "accessPolicies": [statement.to_dict() for statement in self.access_policies],
            "networkRules": [rule.to_dict() for rule in self.network_rules],
        }
        if self.additional_config:
            data["additionalConfig"] = self.additional_config
        return data


@dataclass
class BindingContext:
    source: Component
    target: Component
    directive: BindingDirective
    environment: str
    compliance_framework: str
    region: str
    account: str

    @property
    def capability(self) -> str:
        return self.directive.capability

    @property
    def access(self) -> str:
        return self.directive.access

    @property
    def options(self) -> dict[str, Any]:
        return self.directive.options


def validate_access(access: str) -> str:
    if access not in ACCESS_LEVELS:
        raise UnsupportedAccessLevelError(access, ACCESS_LEVELS)
    return access


class BinderStrategy(ABC):
    """Wires one family of (source type, capability) pairs."""

    compatibility: ClassVar[tuple[tuple[str, str], ...]] = ()

    # Subclasses map read/write to their minimal action sets.
    read_actions: ClassVar[tuple[str, ...]] = ()
    write_actions: ClassVar[tuple[str, ...]] = ()
    service_prefix: ClassVar[str] = ""

    def can_handle(self, source_type: str, capability: str) -> bool:
        return (source_type, capability) in self.compatibility

    @abstractmethod
    def bind(self, context: BindingContext) -> BindingResult:
        """Compute the binding and wire it onto the target's constructs."""

    def actions_for(self, access: str) -> list[str]:
        """Minimal action set for an access level."""
        validate_access(access)
        if access == "read":
            return list(self.read_actions)
        if access == "write":
            return list(self.write_actions)
        if access == "readwrite":
            return list(dict.fromkeys(self.read_actions + self.write_actions))
        logger.warning("admin_access_granted", service=self.service_prefix)
        return [f"{self.service_prefix}:*"]

    def capability_of(self, context: BindingContext) -> CapabilityContract:
        """Look up and parse the target capability, failing fast if it is absent."""
        capabilities = context.target.get_capabilities()
        data = capabilities.get(context.capability)
        if data is None:
            raise CapabilityMissingError(
                context.target.name,
                context.capability,
                reason=f"exposes {', '.join(sorted(capabilities)) or 'nothing'}",
            )
        return load_capability(context.target.name, context.capability, data)

    @staticmethod
    def env_name(context: BindingContext, key: str, default: str) -> str:
        return context.directive.env.get(key, default)


class BinderRegistry:
    """Ordered strategy list. Registration order decides overlapping pairs."""

    def __init__(self) -> None:
        self._strategies: list[BinderStrategy] = []
        self._lock_depth = 0

    @property
    def locked(self) -> bool:
        return self._lock_depth > 0

    def register(self, strategy: BinderStrategy) -> None:
        if self.locked:
            raise RegistryLockedError("binder registry", type(strategy).__name__)
        self._strategies.append(strategy)

    def find(self, source_type: str, capability: str) -> BinderStrategy | None:
        for strategy in self._strategies:
            if strategy.can_handle(source_type, capability):
                return strategy
        return None

    def registered_pairs(self) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        for strategy in self._strategies:
            pairs.extend(pair for pair in strategy.compatibility if pair not in pairs)
        return pairs

    @contextlib.contextmanager
    def resolution(self) -> Iterator[BinderRegistry]:
        self._lock_depth += 1
        try:
            yield self
        finally:
            self._lock_depth -= 1


class ComponentBinder:
    """Dispatches binding contexts to the first strategy that accepts them."""

    def __init__(self, registry: BinderRegistry):
        self.registry = registry

    def bind(self, context: BindingContext) -> BindingResult:
        validate_access(context.access)
        if not context.target.is_synthesized:
            raise NotSynthesizedError(context.target.name, context.target.state.value, "bind")

        strategy = self.registry.find(context.source.type, context.capability)
        if strategy is None:
            raise NoBinderStrategyError(context.source.type, context.capability, self.registry.registered_pairs())

        result = strategy.bind(context)
        logger.info(
            "binding_resolved",
            source=context.source.name,
            target=context.target.name,
            capability=context.capability,
            access=context.access,
            strategy=type(strategy).__name__,
        )
        return result
