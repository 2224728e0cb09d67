"""Manifest loading and end-to-end resolution for stackwire."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from dotenv import set_key
from pydantic import ValidationError

from .catalog import create_component_registry
from .errors import SpecValidationError
from .models import Manifest
from .provisioning import InMemoryProvisioner
from .resolver import ResolverEngine
from .strategies import create_binder_registry
from .types import ComponentContext, ConfigMap

if TYPE_CHECKING:
    from .binders import BinderRegistry
    from .components import ComponentRegistry
    from .config_builder import LayerConflict
    from .models import ConfigurationLayer
    from .provisioning import Provisioner
    from .resolver import PatchHook, ResolutionResult


@dataclass
class ResolutionReport:
    """Resolved manifest with human and machine readable summaries."""

    manifest: Manifest
    context: ComponentContext
    result: ResolutionResult
    text_summary: str
    json_summary: dict


@dataclass
class ComponentExplanation:
    """How one component's configuration was assembled."""

    name: str
    type: str
    layers: list[ConfigurationLayer]
    conflicts: list[LayerConflict]
    config: dict[str, Any]


def load_manifest(path: Path) -> Manifest:
    """Load a YAML manifest from file."""
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise SpecValidationError(f"{path}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise SpecValidationError(f"{path}: manifest must be a mapping")
    return parse_manifest(data)


def parse_manifest(data: dict[str, Any]) -> Manifest:
    try:
        return Manifest(**data)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in first["loc"])
        raise SpecValidationError(f"{loc}: {first['msg']}", path=loc) from e


def build_context(
    manifest: Manifest,
    *,
    environment: str | None = None,
    provisioner: Provisioner | None = None,
    governance_overrides: dict[str, ConfigMap] | None = None,
) -> ComponentContext:
    """Build the component context for a manifest.

    `governance_overrides` is trusted platform policy. The manifest's own
    `governance` section is authored by the service team and is checked like
    any other manifest layer.
    """
    if provisioner is None:
        provisioner = InMemoryProvisioner(account=manifest.account, region=manifest.region)

    return ComponentContext(
        service_name=manifest.service,
        environment=environment or manifest.environment,
        compliance_framework=manifest.compliance_framework,
        region=manifest.region,
        account=manifest.account,
        scope=provisioner,
        governance_overrides=governance_overrides or {},
        manifest_governance=manifest.governance,
        extra={"owner": manifest.owner} if manifest.owner else {},
    )


def resolve_manifest(
    manifest: Manifest,
    *,
    environment: str | None = None,
    component_registry: ComponentRegistry | None = None,
    binder_registry: BinderRegistry | None = None,
    patcher: PatchHook | None = None,
    governance_overrides: dict[str, ConfigMap] | None = None,
) -> ResolutionReport:
    """Resolve every component of a manifest and summarize the outcome."""
    context = build_context(manifest, environment=environment, governance_overrides=governance_overrides)
    engine = ResolverEngine(
        component_registry or create_component_registry(),
        binder_registry or create_binder_registry(),
        patcher=patcher,
    )
    result = engine.resolve(manifest.components, context)

    return ResolutionReport(
        manifest=manifest,
        context=context,
        result=result,
        text_summary=_generate_text_summary(manifest, context, result),
        json_summary=_generate_json_summary(manifest, context, result),
    )


def explain_component(
    manifest: Manifest,
    name: str,
    *,
    environment: str | None = None,
    component_registry: ComponentRegistry | None = None,
) -> ComponentExplanation:
    """Show the layers behind a component's configuration without synthesizing it."""
    spec = next((spec for spec in manifest.components if spec.name == name), None)
    if spec is None:
        raise SpecValidationError(f"No component named '{name}' in manifest", path="components")

    registry = component_registry or create_component_registry()
    context = build_context(manifest, environment=environment)
    creator = registry.get(spec.type)
    builder = creator.builder(context, spec)
    return ComponentExplanation(
        name=spec.name,
        type=spec.type,
        layers=builder.layers(),
        conflicts=builder.build_summary(),
        config=builder.build(),
    )


def write_env_files(result: ResolutionResult, directory: Path) -> list[Path]:
    """Write one dotenv file per component that received environment variables."""
    directory.mkdir(parents=True, exist_ok=True)
    written = []
    for name in result.order:
        environment = result.component(name).environment
        if not environment:
            continue
        env_file = directory / f"{name}.env"
        env_file.write_text("")
        for key, value in environment.items():
            set_key(env_file, key, value)
        written.append(env_file)
    return written


def _generate_text_summary(manifest: Manifest, context: ComponentContext, result: ResolutionResult) -> str:
    """Generate human-readable text summary."""
    lines = []

    lines.append("=== Context ===")
    lines.append(f"service: {manifest.service}")
    lines.append(f"environment: {context.environment}")
    lines.append(f"compliance: {context.compliance_framework}")
    lines.append(f"region: {context.region}")

    lines.append("\n=== Synthesis Order ===")
    for index, name in enumerate(result.order, start=1):
        component = result.component(name)
        lines.append(f"{index}. {name} ({component.type}) -> {', '.join(component.get_capabilities()) or '-'}")

    lines.append("\n=== Bindings ===")
    if not result.bindings:
        lines.append("(none)")
    for applied in result.bindings:
        lines.append(f"{applied.source} -> {applied.target} [{applied.capability}, {applied.access}]")
        for key, value in applied.result.environment_variables.items():
            lines.append(f"  {key}={value}")
        for action in applied.result.actions():
            lines.append(f"  allow {action}")

    return "\n".join(lines)


def _generate_json_summary(manifest: Manifest, context: ComponentContext, result: ResolutionResult) -> dict:
    """Generate machine-readable JSON summary."""
    return {
        "manifest": {
            "version": manifest.version,
            "service": manifest.service,
            "owner": manifest.owner,
        },
        "context": {
            "environment": context.environment,
            "complianceFramework": context.compliance_framework,
            "region": context.region,
            "account": context.account,
        },
        "order": result.order,
        "components": result.artifacts(),
        "bindings": [applied.to_dict() for applied in result.bindings],
    }
