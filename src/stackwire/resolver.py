"""Resolve a set of component specs into synthesized, bound components."""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Sequence

import structlog

from .binders import BindingContext, ComponentBinder, validate_access
from .errors import CapabilityMissingError, CyclicDependencyError, SpecValidationError

if TYPE_CHECKING:
    from .binders import BinderRegistry, BindingResult
    from .components import Component, ComponentRegistry
    from .models import BindingDirective, ComponentSpec
    from .provisioning import Construct
    from .types import ComponentContext

logger = structlog.get_logger(__name__)


@dataclass
class BindEdge:
    """`source` depends on `target` through `directive`."""

    source: str
    target: str
    directive: BindingDirective


@dataclass
class AppliedBinding:
    source: str
    target: str
    capability: str
    access: str
    result: BindingResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "capability": self.capability,
            "access": self.access,
            **self.result.to_dict(),
        }


@dataclass
class ResolutionResult:
    components: dict[str, Component]
    order: list[str]
    bindings: list[AppliedBinding] = field(default_factory=list)
    scope: Any = None

    def component(self, name: str) -> Component:
        return self.components[name]

    def artifacts(self) -> list[dict[str, Any]]:
        """Component artifacts in synthesis order."""
        return [self.components[name].artifact() for name in self.order]

    def constructs(self) -> dict[str, dict[str, Construct]]:
        """Construct handles per component, for patching."""
        result: dict[str, dict[str, Construct]] = {}
        for name in self.order:
            component = self.components[name]
            result[name] = {handle: component.get_construct(handle) for handle in component.construct_handles()}
        return result


PatchHook = Callable[[ResolutionResult], None]


def _find_cycle(remaining: list[str], depends_on: dict[str, list[str]]) -> list[str]:
    """Walk dependency edges among `remaining` until a node repeats."""
    members = set(remaining)
    path: list[str] = []
    seen: dict[str, int] = {}
    node = remaining[0]
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = next(target for target in depends_on[node] if target in members)
    return path[seen[node]:]


class ResolverEngine:
    """Instantiate, configure, order, synthesize and bind components."""

    def __init__(
        self,
        component_registry: ComponentRegistry,
        binder_registry: BinderRegistry,
        patcher: PatchHook | None = None,
    ):
        self.component_registry = component_registry
        self.binder_registry = binder_registry
        self.patcher = patcher

    def resolve(self, specs: Sequence[ComponentSpec], context: ComponentContext) -> ResolutionResult:
        self._check_unique_names(specs)
        # Each resolution provisions into its own scope.
        if context.scope is not None:
            context = replace(context, scope=context.scope.fork())

        with self.component_registry.resolution(), self.binder_registry.resolution():
            components: dict[str, Component] = {}
            for spec in specs:
                components[spec.name] = self.component_registry.create_component(spec, context)
            for component in components.values():
                component.configure()

            edges = self.build_graph(components)
            order = self.topological_order(components, edges)

            # Results are committed only once every binding succeeded.
            binder = ComponentBinder(self.binder_registry)
            pending: list[AppliedBinding] = []
            for name in order:
                component = components[name]
                component.synth()
                for edge in edges:
                    if edge.source != name:
                        continue
                    binding_context = BindingContext(
                        source=component,
                        target=components[edge.target],
                        directive=edge.directive,
                        environment=context.environment,
                        compliance_framework=context.compliance_framework,
                        region=context.region,
                        account=context.account,
                    )
                    result = binder.bind(binding_context)
                    pending.append(
                        AppliedBinding(
                            source=edge.source,
                            target=edge.target,
                            capability=edge.directive.capability,
                            access=edge.directive.access,
                            result=result,
                        )
                    )

            for applied in pending:
                components[applied.source].apply_binding(applied.result)

            resolution = ResolutionResult(components=components, order=order, bindings=pending, scope=context.scope)
            if self.patcher is not None:
                self.patcher(resolution)

        logger.info(
            "manifest_resolved",
            service=context.service_name,
            components=len(components),
            bindings=len(pending),
            order=order,
        )
        return resolution

    def build_graph(self, components: dict[str, Component]) -> list[BindEdge]:
        edges = []
        for component in components.values():
            for index, directive in enumerate(component.spec.binds):
                validate_access(directive.access)
                target = self._resolve_target(component, index, directive, components)
                if directive.capability not in target.creator.capabilities:
                    raise CapabilityMissingError(
                        target.name,
                        directive.capability,
                        reason=f"type '{target.type}' exposes {', '.join(target.creator.capabilities) or 'nothing'}",
                    )
                edges.append(BindEdge(source=component.name, target=target.name, directive=directive))
        return edges

    def topological_order(self, components: dict[str, Component], edges: list[BindEdge]) -> list[str]:
        """Kahn's algorithm; ready components are taken in manifest order."""
        position = {name: index for index, name in enumerate(components)}
        depends_on: dict[str, list[str]] = {name: [] for name in components}
        dependents: dict[str, list[str]] = {name: [] for name in components}
        for edge in edges:
            if edge.target not in depends_on[edge.source]:
                depends_on[edge.source].append(edge.target)
                dependents[edge.target].append(edge.source)

        indegree = {name: len(targets) for name, targets in depends_on.items()}
        ready = [(position[name], name) for name, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)

        order = []
        while ready:
            _, name = heapq.heappop(ready)
            order.append(name)
            for dependent in dependents[name]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heapq.heappush(ready, (position[dependent], dependent))

        if len(order) < len(components):
            remaining = [name for name in components if name not in order]
            raise CyclicDependencyError(_find_cycle(remaining, depends_on))
        return order

    @staticmethod
    def _check_unique_names(specs: Sequence[ComponentSpec]) -> None:
        seen = set()
        for index, spec in enumerate(specs):
            if spec.name in seen:
                raise SpecValidationError(
                    f"Duplicate component name: '{spec.name}'",
                    path=f"components.{index}.name",
                )
            seen.add(spec.name)

    @staticmethod
    def _resolve_target(
        source: Component,
        index: int,
        directive: BindingDirective,
        components: dict[str, Component],
    ) -> Component:
        if directive.to is not None:
            target = components.get(directive.to)
            if target is None:
                raise CapabilityMissingError(
                    directive.to,
                    directive.capability,
                    reason=f"no component named '{directive.to}' in the manifest (bound from '{source.name}')",
                )
            return target

        selector = directive.select
        if selector is None:
            raise SpecValidationError(
                f"{source.name}: binding {index} names no target",
                path=f"{source.name}.binds.{index}",
            )
        matches = [
            component
            for component in components.values()
            if component.name != source.name and selector.matches(component.type, component.spec.labels)
        ]
        if not matches:
            raise CapabilityMissingError(
                directive.describe_target(),
                directive.capability,
                reason=f"no component matches the selector of '{source.name}'",
            )
        if len(matches) > 1:
            raise SpecValidationError(
                f"Selector {directive.describe_target()} of '{source.name}' is ambiguous: "
                f"{', '.join(match.name for match in matches)}",
                path=f"{source.name}.binds.{index}.select",
            )
        return matches[0]
