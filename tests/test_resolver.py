"""Tests for manifest resolution."""

import pytest

from stackwire.core import load_manifest
from stackwire.errors import (
    CapabilityMissingError,
    CyclicDependencyError,
    NoBinderStrategyError,
    ProvisioningConflictError,
    RegistryLockedError,
    SpecValidationError,
)
from stackwire.models import ComponentSpec
from stackwire.provisioning import InMemoryProvisioner
from stackwire.resolver import ResolverEngine
from stackwire.strategies import LambdaToQueueStrategy
from stackwire.types import LifecycleState


@pytest.fixture
def engine(component_registry, binder_registry):
    return ResolverEngine(component_registry, binder_registry)


def _specs(*specs):
    return [ComponentSpec(**spec) for spec in specs]


def test_resolves_sample_manifest(engine, manifest_file, make_context):
    """Test end-to-end resolution of a manifest with explicit and selector binds."""
    manifest = load_manifest(manifest_file)

    result = engine.resolve(manifest.components, make_context())

    assert result.order == ["orders-db", "jobs", "api", "worker"]
    assert result.component("api").state is LifecycleState.BOUND
    assert result.component("worker").state is LifecycleState.BOUND
    assert result.component("jobs").state is LifecycleState.SYNTHESIZED

    api_env = result.component("api").environment
    assert api_env["DB_NAME"] == "orders_db"
    assert api_env["JOBS_QUEUE_URL"] == "https://sqs.us-east-1.amazonaws.com/123456789012/orders-jobs"
    assert result.component("worker").environment["QUEUE_URL"] == api_env["JOBS_QUEUE_URL"]
    assert [(b.source, b.target, b.capability) for b in result.bindings] == [
        ("api", "orders-db", "db:postgres"),
        ("api", "jobs", "queue:sqs"),
        ("worker", "jobs", "queue:sqs"),
    ]


def test_missing_target_names_target_and_capability(engine, make_context):
    """Test that a bind to an absent component raises before anything is synthesized."""
    context = make_context()
    specs = _specs(
        {
            "name": "worker",
            "type": "lambda-worker",
            "binds": [{"to": "ghost-queue", "capability": "queue:sqs", "access": "read"}],
        }
    )

    with pytest.raises(CapabilityMissingError) as exc_info:
        engine.resolve(specs, context)

    assert exc_info.value.target == "ghost-queue"
    assert exc_info.value.capability == "queue:sqs"
    assert context.scope.constructs == {}


def test_cycle_rejected_before_synthesis(engine, make_context):
    """Test that cyclic binds are reported with their members and nothing is provisioned."""
    context = make_context()
    specs = _specs(
        {"name": "alpha", "type": "lambda-api", "binds": [{"to": "beta", "capability": "lambda:function", "access": "read"}]},
        {"name": "beta", "type": "lambda-api", "binds": [{"to": "alpha", "capability": "lambda:function", "access": "read"}]},
        {"name": "jobs", "type": "sqs-queue"},
    )

    with pytest.raises(CyclicDependencyError) as exc_info:
        engine.resolve(specs, context)

    assert exc_info.value.cycle == ["alpha", "beta"]
    assert "alpha -> beta -> alpha" in str(exc_info.value)
    assert context.scope.constructs == {}


def test_self_binding_is_a_cycle(engine, make_context):
    """Test that a component cannot depend on itself."""
    specs = _specs(
        {"name": "alpha", "type": "lambda-api", "binds": [{"to": "alpha", "capability": "lambda:function", "access": "read"}]},
    )

    with pytest.raises(CyclicDependencyError) as exc_info:
        engine.resolve(specs, make_context())

    assert exc_info.value.cycle == ["alpha"]


def test_independent_components_keep_manifest_order(engine, make_context):
    """Test that ties in the topological order follow the manifest."""
    specs = _specs(
        {"name": "zeta", "type": "s3-bucket"},
        {"name": "alpha", "type": "sqs-queue"},
        {"name": "mid", "type": "dynamodb-table"},
    )

    assert engine.resolve(specs, make_context()).order == ["zeta", "alpha", "mid"]


def test_dependencies_synthesized_first(engine, make_context):
    """Test that targets precede sources regardless of manifest position."""
    specs = _specs(
        {"name": "api", "type": "lambda-api", "binds": [{"to": "carts", "capability": "dynamodb:table", "access": "readwrite"}]},
        {"name": "carts", "type": "dynamodb-table"},
    )

    result = engine.resolve(specs, make_context())

    assert result.order == ["carts", "api"]
    assert result.component("api").environment["TABLE_NAME"] == "orders-carts"


def test_duplicate_names_rejected(engine, make_context):
    """Test that component names must be unique."""
    specs = _specs({"name": "jobs", "type": "sqs-queue"}, {"name": "jobs", "type": "s3-bucket"})

    with pytest.raises(SpecValidationError) as exc_info:
        engine.resolve(specs, make_context())

    assert exc_info.value.path == "components.1.name"


def test_selector_without_match(engine, make_context):
    """Test that a selector matching nothing is a missing capability."""
    specs = _specs(
        {"name": "jobs", "type": "sqs-queue", "labels": {"tier": "bulk"}},
        {
            "name": "worker",
            "type": "lambda-worker",
            "binds": [{"select": {"type": "sqs-queue", "with_labels": {"tier": "urgent"}}, "capability": "queue:sqs", "access": "read"}],
        },
    )

    with pytest.raises(CapabilityMissingError) as exc_info:
        engine.resolve(specs, make_context())

    assert exc_info.value.target == "sqs-queue[tier=urgent]"


def test_ambiguous_selector(engine, make_context):
    """Test that a selector matching several components is rejected."""
    specs = _specs(
        {"name": "jobs", "type": "sqs-queue"},
        {"name": "events", "type": "sqs-queue"},
        {
            "name": "worker",
            "type": "lambda-worker",
            "binds": [{"select": {"type": "sqs-queue"}, "capability": "queue:sqs", "access": "read"}],
        },
    )

    with pytest.raises(SpecValidationError) as exc_info:
        engine.resolve(specs, make_context())

    assert exc_info.value.path == "worker.binds.0.select"


def test_capability_not_offered_by_target_type(engine, make_context):
    """Test that binding for a capability the target type never exposes fails before synthesis."""
    context = make_context()
    specs = _specs(
        {"name": "files", "type": "s3-bucket"},
        {"name": "worker", "type": "lambda-worker", "binds": [{"to": "files", "capability": "queue:sqs", "access": "read"}]},
    )

    with pytest.raises(CapabilityMissingError) as exc_info:
        engine.resolve(specs, context)

    assert exc_info.value.target == "files"
    assert context.scope.constructs == {}


def test_no_strategy_leaves_sources_unbound(engine, make_context):
    """Test that a failing binding prevents every binding from being committed."""
    captured = {}

    def _record(component):
        captured[component.name] = component
        return component

    specs = _specs(
        {"name": "jobs", "type": "sqs-queue"},
        {"name": "api", "type": "lambda-api", "binds": [{"to": "jobs", "capability": "queue:sqs", "access": "write"}]},
        {"name": "alpha", "type": "lambda-api"},
        {"name": "worker", "type": "lambda-worker", "binds": [{"to": "alpha", "capability": "lambda:function", "access": "read"}]},
    )
    original = engine.component_registry.create_component
    engine.component_registry.create_component = lambda spec, context: _record(original(spec, context))

    with pytest.raises(NoBinderStrategyError):
        engine.resolve(specs, make_context())

    assert captured["api"].state is LifecycleState.SYNTHESIZED
    assert captured["api"].bindings == []


def test_registries_locked_while_resolving(engine, make_context):
    """Test that the patch hook runs while both registries are locked."""
    attempts = []

    def _patch(result):
        try:
            engine.binder_registry.register(LambdaToQueueStrategy())
        except RegistryLockedError as e:
            attempts.append(e)

    engine.patcher = _patch
    engine.resolve(_specs({"name": "jobs", "type": "sqs-queue"}), make_context())

    assert len(attempts) == 1
    engine.binder_registry.register(LambdaToQueueStrategy())


def test_patch_hook_receives_constructs(engine, make_context):
    """Test that the patch hook can reach every construct handle."""
    seen = {}

    def _patch(result):
        seen.update(result.constructs())

    engine.patcher = _patch
    engine.resolve(_specs({"name": "jobs", "type": "sqs-queue"}), make_context("moderate"))

    assert set(seen["jobs"]) == {"kmsKey", "deadLetterQueue", "main"}
    assert seen["jobs"]["main"].attributes["redrivePolicy"]["maxReceiveCount"] == 5


def test_resolution_is_deterministic(component_registry, binder_registry, manifest_file, make_context):
    """Test that resolving the same manifest twice yields identical artifacts."""
    manifest = load_manifest(manifest_file)

    first = ResolverEngine(component_registry, binder_registry).resolve(manifest.components, make_context())
    second = ResolverEngine(component_registry, binder_registry).resolve(manifest.components, make_context())

    assert first.artifacts() == second.artifacts()
    assert [b.to_dict() for b in first.bindings] == [b.to_dict() for b in second.bindings]


def test_same_context_resolves_twice(engine, manifest_file, make_context):
    """Test that resolving with one context object twice yields identical artifacts."""
    manifest = load_manifest(manifest_file)
    context = make_context("moderate")

    first = engine.resolve(manifest.components, context)
    second = engine.resolve(manifest.components, context)

    assert first.artifacts() == second.artifacts()
    assert [b.to_dict() for b in first.bindings] == [b.to_dict() for b in second.bindings]
    assert first.scope is not second.scope
    assert "jobs-main" in second.scope.constructs
    assert context.scope.constructs == {}


def test_duplicate_construct_is_typed_error():
    """Test that provisioning one logical id twice in a scope raises a stackwire error."""
    provisioner = InMemoryProvisioner(account="123456789012", region="us-east-1")
    provisioner.create("jobs", "main", "sqs-queue", {})

    with pytest.raises(ProvisioningConflictError) as exc_info:
        provisioner.create("jobs", "main", "sqs-queue", {})

    assert exc_info.value.logical_id == "jobs-main"
    assert exc_info.value.to_dict()["kind"] == "provisioning_conflict"
