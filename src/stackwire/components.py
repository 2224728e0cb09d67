"""Components, component creators and the component-type registry."""

from __future__ import annotations

import contextlib
import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterator

import structlog

from .capabilities import validate_capability
from .errors import (
    LifecycleError,
    NotSynthesizedError,
    RegistryLockedError,
    SpecValidationError,
    UnknownComponentTypeError,
)
from .types import LifecycleState

if TYPE_CHECKING:
    from .binders import BindingResult
    from .config_builder import ConfigBuilder
    from .models import ComponentSpec
    from .provisioning import Construct
    from .types import CapabilityMap, ComponentContext, ConfigMap, EnvMap

logger = structlog.get_logger(__name__)

_SYNTHESIZED_STATES = (LifecycleState.SYNTHESIZED, LifecycleState.BOUND)


class Component:
    """A component instance moving through CREATED -> CONFIGURED -> SYNTHESIZED -> BOUND."""

    def __init__(self, spec: ComponentSpec, context: ComponentContext, creator: ComponentCreator):
        self.spec = spec
        self.context = context
        self.creator = creator
        self.config: ConfigMap | None = None
        self.state = LifecycleState.CREATED
        self.bindings: list[BindingResult] = []
        self._capabilities: CapabilityMap = {}
        self._constructs: dict[str, Construct] = {}
        self._synthesizing = False

    def __repr__(self) -> str:
        return f"Component(name={self.name!r}, type={self.type!r}, state={self.state.value})"

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def type(self) -> str:
        return self.spec.type

    @property
    def is_synthesized(self) -> bool:
        return self.state in _SYNTHESIZED_STATES

    def configure(self) -> ConfigMap:
        """Resolve the layered configuration. Repeated calls return the same result."""
        if self.config is not None:
            return self.config
        builder = self.creator.builder(self.context, self.spec)
        self.config = builder.build()
        self.state = LifecycleState.CONFIGURED
        logger.debug("component_configured", component=self.name, component_type=self.type)
        return self.config

    def synth(self) -> None:
        """Provision constructs and publish capabilities.

        Synthesizing an already synthesized component is a no-op.
        """
        if self.is_synthesized:
            return
        if self.state is not LifecycleState.CONFIGURED:
            raise LifecycleError(self.name, self.state.value, "synthesize")

        self._synthesizing = True
        try:
            self.creator.synthesize(self)
        finally:
            self._synthesizing = False
        self.state = LifecycleState.SYNTHESIZED
        logger.info(
            "component_synthesized",
            component=self.name,
            component_type=self.type,
            capabilities=sorted(self._capabilities),
            constructs=sorted(self._constructs),
        )

    def register_capability(self, key: str, data: dict[str, Any]) -> None:
        if not self._synthesizing:
            raise LifecycleError(self.name, self.state.value, f"register capability '{key}' on")
        if key in self._capabilities:
            raise LifecycleError(self.name, self.state.value, f"re-register capability '{key}' on")
        self._capabilities[key] = validate_capability(self.name, key, data)

    def register_construct(self, handle: str, construct: Construct) -> None:
        if not self._synthesizing:
            raise LifecycleError(self.name, self.state.value, f"register construct '{handle}' on")
        self._constructs[handle] = construct

    def get_capabilities(self) -> CapabilityMap:
        self._require_synthesized("get_capabilities")
        return copy.deepcopy(self._capabilities)

    def get_construct(self, handle: str) -> Construct | None:
        """Return the construct registered under `handle`, or None if there is none."""
        self._require_synthesized("get_construct")
        return self._constructs.get(handle)

    def construct_handles(self) -> list[str]:
        return list(self._constructs)

    def apply_binding(self, result: BindingResult) -> None:
        self._require_synthesized("apply_binding")
        self.bindings.append(result)
        self.state = LifecycleState.BOUND

    @property
    def environment(self) -> EnvMap:
        """Environment variables contributed by every applied binding."""
        env: EnvMap = {}
        for result in self.bindings:
            env.update(result.environment_variables)
        return env

    def artifact(self) -> dict[str, Any]:
        """Serializable view of the component for plans and reports."""
        data: dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "state": self.state.value,
            "config": self.config or {},
        }
        if self.is_synthesized:
            data["capabilities"] = self.get_capabilities()
            data["constructs"] = {handle: c.to_dict() for handle, c in self._constructs.items()}
        if self.bindings:
            data["environment"] = self.environment
            data["bindings"] = [result.to_dict() for result in self.bindings]
        return data

    def _require_synthesized(self, operation: str) -> None:
        if not self.is_synthesized:
            raise NotSynthesizedError(self.name, self.state.value, operation)


@dataclass
class ComponentCreator:
    """Everything needed to produce components of one type."""

    component_type: str
    builder: type[ConfigBuilder]
    synthesize: Callable[[Component], None]
    capabilities: tuple[str, ...] = ()
    description: str = ""

    def process_component(self, spec: ComponentSpec, context: ComponentContext) -> Component:
        if spec.type != self.component_type:
            raise SpecValidationError(
                f"Creator for '{self.component_type}' cannot process component "
                f"'{spec.name}' of type '{spec.type}'",
                path=f"{spec.name}.type",
            )
        for index, directive in enumerate(spec.binds):
            if not directive.capability.strip():
                raise SpecValidationError(
                    f"Component '{spec.name}' bind #{index} has an empty capability",
                    path=f"{spec.name}.binds.{index}.capability",
                )
        return Component(spec, context, self)


@dataclass
class ComponentRegistry:
    """Maps component type names to their creators."""

    _creators: dict[str, ComponentCreator] = field(default_factory=dict)
    _lock_depth: int = 0

    @property
    def locked(self) -> bool:
        return self._lock_depth > 0

    def register(self, creator: ComponentCreator) -> None:
        if self.locked:
            raise RegistryLockedError("component registry", creator.component_type)
        if creator.component_type in self._creators:
            raise ValueError(f"Component type '{creator.component_type}' is already registered")
        self._creators[creator.component_type] = creator

    def get(self, component_type: str) -> ComponentCreator:
        try:
            return self._creators[component_type]
        except KeyError:
            raise UnknownComponentTypeError(component_type, list(self._creators)) from None

    def types(self) -> list[str]:
        return sorted(self._creators)

    def create_component(self, spec: ComponentSpec, context: ComponentContext) -> Component:
        return self.get(spec.type).process_component(spec, context)

    @contextlib.contextmanager
    def resolution(self) -> Iterator[ComponentRegistry]:
        """Forbid registration while a manifest is being resolved."""
        self._lock_depth += 1
        try:
            yield self
        finally:
            self._lock_depth -= 1
