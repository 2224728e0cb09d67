"""Error taxonomy for stackwire.

Every error raised by the resolution pipeline derives from StackwireError and
carries the structured context (paths, known types, registered pairs, cycle
members) that callers are expected to surface verbatim.
"""

from __future__ import annotations

from typing import Any, Sequence


class StackwireError(Exception):
    """Base class for all resolution errors."""

    kind = "stackwire_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Return a machine-readable representation of the error."""
        return {"kind": self.kind, "message": self.message, **self.context}


class SpecValidationError(StackwireError):
    """A component spec or manifest is malformed."""

    kind = "spec_validation"

    def __init__(self, message: str, path: str = ""):
        super().__init__(message, path=path)
        self.path = path


class ConfigSchemaError(StackwireError):
    """The merged configuration failed schema validation."""

    kind = "config_schema"

    def __init__(self, message: str, path: str, component: str | None = None):
        super().__init__(message, path=path, component=component)
        self.path = path
        self.component = component


class GovernanceViolationError(ConfigSchemaError):
    """A manifest layer tried to disable a governance-critical flag."""

    kind = "governance_violation"

    def __init__(self, message: str, path: str, layer: str, component: str | None = None):
        super().__init__(message, path=path, component=component)
        self.layer = layer
        self.context["layer"] = layer


class UnknownComponentTypeError(StackwireError):
    kind = "unknown_component_type"

    def __init__(self, component_type: str, known_types: Sequence[str]):
        known = sorted(known_types)
        super().__init__(
            f"Component type '{component_type}' not found. "
            f"Registered types: {', '.join(known) or '<none>'}",
            component_type=component_type,
            known_types=known,
        )
        self.component_type = component_type
        self.known_types = known


class CapabilityMissingError(StackwireError):
    kind = "capability_missing"

    def __init__(self, target: str, capability: str, reason: str | None = None):
        message = f"Target '{target}' does not expose capability '{capability}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, target=target, capability=capability)
        self.target = target
        self.capability = capability


class CapabilityContractError(StackwireError):
    """Capability data does not match the published contract for its key."""

    kind = "capability_contract"

    def __init__(self, component: str, capability: str, path: str, reason: str):
        super().__init__(
            f"Capability '{capability}' of '{component}' violates its contract at '{path}': {reason}",
            component=component,
            capability=capability,
            path=path,
        )
        self.component = component
        self.capability = capability
        self.path = path


class UnsupportedAccessLevelError(StackwireError):
    kind = "unsupported_access_level"

    def __init__(self, access: str, allowed: Sequence[str]):
        super().__init__(
            f"Invalid access level: {access}. Valid values: {', '.join(allowed)}",
            access=access,
            allowed=list(allowed),
        )
        self.access = access


class NoBinderStrategyError(StackwireError):
    kind = "no_binder_strategy"

    def __init__(self, source_type: str, capability: str, registered_pairs: Sequence[tuple[str, str]]):
        pairs = [f"{src} -> {cap}" for src, cap in registered_pairs]
        super().__init__(
            f"No binder strategy for '{source_type}' -> '{capability}'. "
            f"Registered pairs: {'; '.join(pairs) or '<none>'}",
            source_type=source_type,
            capability=capability,
            registered_pairs=[list(pair) for pair in registered_pairs],
        )
        self.source_type = source_type
        self.capability = capability
        self.registered_pairs = list(registered_pairs)


class NotSynthesizedError(StackwireError):
    kind = "not_synthesized"

    def __init__(self, component: str, state: str, operation: str):
        super().__init__(
            f"Component '{component}' is {state}; {operation} requires a synthesized component. "
            f"Call synth() first.",
            component=component,
            state=state,
            operation=operation,
        )
        self.component = component
        self.state = state


class CyclicDependencyError(StackwireError):
    kind = "cyclic_dependency"

    def __init__(self, cycle: Sequence[str]):
        members = list(cycle)
        super().__init__(
            f"Bind graph contains a cycle: {' -> '.join(members + members[:1])}",
            cycle=members,
        )
        self.cycle = members


class RegistryLockedError(StackwireError):
    """A registry was modified while a manifest was being resolved."""

    kind = "registry_locked"

    def __init__(self, registry: str, entry: str):
        super().__init__(
            f"Cannot register '{entry}' in {registry}: resolution in progress",
            registry=registry,
            entry=entry,
        )


class LifecycleError(StackwireError):
    """A component operation was attempted out of lifecycle order."""

    kind = "lifecycle"

    def __init__(self, component: str, state: str, operation: str):
        super().__init__(
            f"Cannot {operation} component '{component}' in state {state}",
            component=component,
            state=state,
            operation=operation,
        )
        self.component = component
        self.state = state


class ProvisioningConflictError(StackwireError):
    """Two constructs were provisioned under the same logical id."""

    kind = "provisioning_conflict"

    def __init__(self, logical_id: str):
        super().__init__(f"Construct '{logical_id}' already exists in this provisioning scope", logical_id=logical_id)
        self.logical_id = logical_id
