"""Semantic validation for stackwire manifests."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .types import ACCESS_LEVELS, ENV_VAR_PATTERN

if TYPE_CHECKING:
    from .components import ComponentRegistry
    from .models import Manifest
    from .types import Errors

_ENV_VAR_RE = re.compile(ENV_VAR_PATTERN)


def semantic_validate(manifest: Manifest, strict: bool = False, registry: ComponentRegistry | None = None) -> Errors:
    """
    Perform semantic validation on a manifest.

    Args:
        manifest: The manifest to validate
        strict: Whether to perform strict validation
        registry: Component registry used to check component types

    Returns:
        A list of validation errors, empty if valid
    """
    errors = []

    errors.extend(validate_unique_component_names(manifest))
    errors.extend(validate_bind_targets(manifest))
    errors.extend(validate_access_levels(manifest))
    errors.extend(validate_env_overrides(manifest))

    if registry is not None:
        errors.extend(validate_component_types(manifest, registry))

    if strict:
        errors.extend(validate_strict_rules(manifest))

    return errors


def validate_unique_component_names(manifest: Manifest) -> Errors:
    errors = []
    seen_names = set()

    for component in manifest.components:
        if component.name in seen_names:
            errors.append(f"Duplicate component name: '{component.name}'")
        else:
            seen_names.add(component.name)

    return errors


def validate_bind_targets(manifest: Manifest) -> Errors:
    """Validate that every bind directive can find exactly one target."""
    errors = []
    names = {component.name for component in manifest.components}

    for component in manifest.components:
        for directive in component.binds:
            if directive.to is not None:
                if directive.to not in names:
                    errors.append(
                        f"Component '{component.name}' binds to unknown component '{directive.to}' "
                        f"for capability '{directive.capability}'"
                    )
                elif directive.to == component.name:
                    errors.append(f"Component '{component.name}' binds to itself")
                continue

            matches = [
                other.name
                for other in manifest.components
                if other.name != component.name and directive.select.matches(other.type, other.labels)
            ]
            if not matches:
                errors.append(
                    f"Component '{component.name}' selector {directive.describe_target()} matches no component"
                )
            elif len(matches) > 1:
                errors.append(
                    f"Component '{component.name}' selector {directive.describe_target()} is ambiguous: "
                    f"{', '.join(matches)}"
                )

    return errors


def validate_access_levels(manifest: Manifest) -> Errors:
    errors = []

    for component in manifest.components:
        for directive in component.binds:
            if directive.access not in ACCESS_LEVELS:
                errors.append(
                    f"Component '{component.name}' uses invalid access level '{directive.access}'. "
                    f"Valid values: {', '.join(ACCESS_LEVELS)}"
                )

    return errors


def validate_env_overrides(manifest: Manifest) -> Errors:
    """
    Validate environment variable override names.

    Rules:
    - names must be uppercase letters, digits and underscores
    - names must start with a letter
    - a component must not receive the same name from two bindings
    """
    errors = []

    for component in manifest.components:
        assigned: dict[str, str] = {}
        for directive in component.binds:
            for key, env_name in directive.env.items():
                if not _ENV_VAR_RE.match(env_name):
                    errors.append(
                        f"Component '{component.name}' env override '{key}' has invalid name '{env_name}'"
                    )
                    continue
                target = directive.describe_target()
                if env_name in assigned and assigned[env_name] != target:
                    errors.append(
                        f"Component '{component.name}' assigns '{env_name}' from both "
                        f"'{assigned[env_name]}' and '{target}'"
                    )
                assigned[env_name] = target

    return errors


def validate_component_types(manifest: Manifest, registry: ComponentRegistry) -> Errors:
    errors = []
    known = registry.types()

    for component in manifest.components:
        if component.type not in known:
            errors.append(
                f"Component '{component.name}' has unknown type '{component.type}'. "
                f"Registered types: {', '.join(known)}"
            )

    return errors


def validate_strict_rules(manifest: Manifest) -> Errors:
    """
    Additional strict validation rules.

    Rules:
    - the manifest names an owner
    - every component carries at least one label
    - a component with several binds to the same capability names its env variables explicitly
    - admin access is not used
    """
    errors = []

    if not manifest.owner:
        errors.append("Manifest has no owner")

    for component in manifest.components:
        if not component.labels:
            errors.append(f"Component '{component.name}' has no labels")

        capability_counts: dict[str, int] = {}
        for directive in component.binds:
            capability_counts[directive.capability] = capability_counts.get(directive.capability, 0) + 1

        for directive in component.binds:
            if capability_counts[directive.capability] > 1 and not directive.env:
                errors.append(
                    f"Component '{component.name}' binds '{directive.capability}' more than once; "
                    f"bind to {directive.describe_target()} must set explicit env names"
                )
            if directive.access == "admin":
                errors.append(
                    f"Component '{component.name}' requests admin access to {directive.describe_target()}"
                )

    return errors
