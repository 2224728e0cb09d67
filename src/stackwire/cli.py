"""Command-line interface for stackwire."""

from __future__ import annotations

import json
import sys
from pathlib import Path  # noqa: TC003

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .catalog import create_component_registry
from .core import explain_component, load_manifest, resolve_manifest, write_env_files
from .errors import StackwireError
from .logging_config import configure_logging
from .validation import semantic_validate

app = typer.Typer(help="Resolve component manifests into configured, bound infrastructure plans")
console = Console()


def _setup(verbose: bool, quiet: bool, json_output: bool = False) -> None:
    if verbose and quiet:
        console.print("[red]Error: --verbose and --quiet cannot be used together[/red]")
        sys.exit(1)
    level = "DEBUG" if verbose else "ERROR" if quiet else None
    configure_logging(level=level, json_output=json_output)


def _fail(error: StackwireError, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps({"error": error.to_dict()}, indent=2))
    else:
        console.print(f"Error: {error}", style="red", markup=False)
    sys.exit(1)


@app.command()
def plan(
    manifest_file: Path = typer.Argument(..., help="Path to YAML manifest"),
    environment: str | None = typer.Option(None, "--env", "-e", help="Override the manifest environment"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
    env_out: Path | None = typer.Option(None, "--env-out", help="Write one .env file per bound component here"),
    strict: bool = typer.Option(False, "--strict", help="Enable strict validation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Enable quiet mode (minimal output)"),
) -> None:
    """Resolve a manifest and show the resulting plan."""
    _setup(verbose, quiet, json_output)
    try:
        manifest = load_manifest(manifest_file)

        if strict:
            semantic_errors = semantic_validate(manifest, strict=True, registry=create_component_registry())
            if semantic_errors:
                console.print("[red]Strict validation failed:[/red]")
                for error in semantic_errors:
                    console.print(f"  • {error}", style="red", markup=False)
                sys.exit(1)

        report = resolve_manifest(manifest, environment=environment)
    except StackwireError as e:
        _fail(e, json_output)
        return

    if env_out is not None:
        written = write_env_files(report.result, env_out)
        if verbose and not json_output:
            for env_file in written:
                console.print(f"[blue]Wrote {env_file}[/blue]")

    if json_output:
        typer.echo(json.dumps(report.json_summary, indent=2))
    elif not quiet:
        console.print(Panel(report.text_summary, title=f"Plan: {manifest.service}"))
    else:
        console.print(f"{len(report.result.order)} components, {len(report.result.bindings)} bindings")


@app.command()
def validate(
    manifest_file: Path = typer.Argument(..., help="Path to YAML manifest"),
    strict: bool = typer.Option(False, "--strict", help="Enable strict validation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Enable quiet mode (minimal output)"),
) -> None:
    """Validate a manifest without writing anything."""
    _setup(verbose, quiet)
    try:
        manifest = load_manifest(manifest_file)

        if verbose:
            console.print(f"[blue]Loaded manifest from {manifest_file}[/blue]")
            console.print(f"Service: {manifest.service}")
            console.print(f"Components: {len(manifest.components)}")

        semantic_errors = semantic_validate(manifest, strict=strict, registry=create_component_registry())
        if semantic_errors:
            console.print("[red]Semantic validation failed:[/red]")
            for error in semantic_errors:
                console.print(f"  • {error}", style="red", markup=False)
            sys.exit(1)

        if verbose:
            console.print("[blue]Performing resolution...[/blue]")
        resolve_manifest(manifest)
    except StackwireError as e:
        console.print(f"Validation error: {e}", style="red", markup=False)
        sys.exit(1)

    if not quiet:
        if strict:
            console.print("[green]✓ Manifest is valid (strict mode)[/green]")
        else:
            console.print("[green]✓ Manifest is valid[/green]")


@app.command()
def explain(
    manifest_file: Path = typer.Argument(..., help="Path to YAML manifest"),
    component: str | None = typer.Argument(None, help="Component to explain; all components when omitted"),
    environment: str | None = typer.Option(None, "--env", "-e", help="Override the manifest environment"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Enable quiet mode (minimal output)"),
) -> None:
    """Explain how component configurations are assembled."""
    _setup(verbose, quiet)
    try:
        manifest = load_manifest(manifest_file)
        names = [component] if component else [spec.name for spec in manifest.components]
        explanations = [explain_component(manifest, name, environment=environment) for name in names]
    except StackwireError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        sys.exit(1)

    for explanation in explanations:
        _display_explanation(explanation, show_config=verbose or component is not None)


@app.command()
def print_schema(
    component_type: str | None = typer.Option(None, "--type", "-t", help="Print the config schema of a component type"),
) -> None:
    """Print the JSON schema for manifests or component configurations."""
    from .models import Manifest

    if component_type is None:
        schema = Manifest.model_json_schema()
    else:
        try:
            creator = create_component_registry().get(component_type)
        except StackwireError as e:
            console.print(f"Error: {e}", style="red", markup=False)
            sys.exit(1)
        schema = creator.builder.schema.model_json_schema(by_alias=True)

    typer.echo(json.dumps(schema, indent=2))


def _display_explanation(explanation, show_config: bool = False) -> None:
    """Display the layers and conflicts behind one component configuration."""
    layers_table = Table(title=f"{explanation.name} ({explanation.type})")
    layers_table.add_column("Priority", style="cyan")
    layers_table.add_column("Layer", style="magenta")
    layers_table.add_column("Keys", style="green")

    for layer in explanation.layers:
        layers_table.add_row(
            str(layer.priority),
            layer.name,
            ", ".join(sorted(layer.config)) or "-",
        )

    console.print(layers_table)

    if explanation.conflicts:
        conflicts_table = Table(title="Overridden values")
        conflicts_table.add_column("Key", style="cyan")
        conflicts_table.add_column("Values", style="yellow")
        conflicts_table.add_column("Winner", style="green")

        for conflict in explanation.conflicts:
            conflicts_table.add_row(
                conflict.key,
                "; ".join(f"{name}={value!r}" for name, value in conflict.values),
                conflict.winner,
            )

        console.print(conflicts_table)

    if show_config:
        console.print("\n[bold]Resolved configuration:[/bold]")
        console.print(json.dumps(explanation.config, indent=2), markup=False, highlight=False)


if __name__ == "__main__":
    app()
