"""Tests for layered configuration resolution."""

import pytest

from stackwire.builders import (
    DynamoDbTableBuilder,
    LambdaApiBuilder,
    RdsPostgresBuilder,
    S3BucketBuilder,
    SqsQueueBuilder,
)
from stackwire.config_builder import deep_merge
from stackwire.errors import ConfigSchemaError, GovernanceViolationError
from stackwire.models import ComponentSpec


def _spec(component_type, **fields):
    return ComponentSpec(name=fields.pop("name", "item"), type=component_type, **fields)


def test_deep_merge_nested_maps():
    """Test that nested maps merge key by key."""
    assert deep_merge({"a": {"x": 1}}, {"a": {"y": 2}}) == {"a": {"x": 1, "y": 2}}


def test_deep_merge_none_never_overrides():
    """Test that None in a higher layer leaves the lower value in place."""
    merged = deep_merge({"a": {"x": 1}, "b": 2}, {"a": {"x": None}, "b": None})
    assert merged == {"a": {"x": 1}, "b": 2}


def test_deep_merge_replaces_lists_and_scalars():
    """Test that lists and scalars are replaced wholesale."""
    merged = deep_merge({"tags": ["a", "b"], "size": 1}, {"tags": ["c"], "size": 2})
    assert merged == {"tags": ["c"], "size": 2}


def test_deep_merge_does_not_mutate_inputs():
    """Test that merging leaves both inputs untouched."""
    base = {"a": {"x": 1}}
    override = {"a": {"y": 2}}
    deep_merge(base, override)
    assert base == {"a": {"x": 1}}
    assert override == {"a": {"y": 2}}


def test_autoscaling_bounds_derived_from_base_capacity(make_context):
    """Test that a maximum-only auto-scaling block gets its minimum and target filled in."""
    spec = _spec(
        "dynamodb-table",
        config={
            "billingMode": "provisioned",
            "readCapacity": 5,
            "writeCapacity": 5,
            "autoScaling": {"maxReadCapacity": 200},
        },
    )

    config = DynamoDbTableBuilder(make_context(), spec).build()

    assert config["autoScaling"] == {
        "minReadCapacity": 5,
        "maxReadCapacity": 200,
        "targetUtilizationPercent": 70,
    }


def test_autoscaling_explicit_values_kept(make_context):
    """Test that explicit auto-scaling values are not replaced by derived ones."""
    spec = _spec(
        "dynamodb-table",
        config={
            "billingMode": "provisioned",
            "readCapacity": 4,
            "writeCapacity": 2,
            "autoScaling": {"minWriteCapacity": 3, "targetUtilizationPercent": 50},
        },
    )

    config = DynamoDbTableBuilder(make_context(), spec).build()

    assert config["autoScaling"] == {
        "minWriteCapacity": 3,
        "maxWriteCapacity": 20,
        "targetUtilizationPercent": 50,
    }


def test_autoscaling_requires_provisioned_billing(make_context):
    """Test that auto-scaling on an on-demand table is rejected."""
    spec = _spec("dynamodb-table", config={"autoScaling": {"maxReadCapacity": 10}})

    with pytest.raises(ConfigSchemaError) as exc_info:
        DynamoDbTableBuilder(make_context(), spec).build()

    assert exc_info.value.path == "autoScaling"


def test_autoscaling_minimum_above_maximum(make_context):
    """Test that inverted bounds are rejected with the offending path."""
    spec = _spec(
        "dynamodb-table",
        config={
            "billingMode": "provisioned",
            "readCapacity": 5,
            "writeCapacity": 5,
            "autoScaling": {"minReadCapacity": 50, "maxReadCapacity": 10},
        },
    )

    with pytest.raises(ConfigSchemaError) as exc_info:
        DynamoDbTableBuilder(make_context(), spec).build()

    assert exc_info.value.path == "autoScaling.minReadCapacity"


def test_dynamodb_fallback_partition_key(make_context):
    """Test that tables without a partition key get the fallback key."""
    config = DynamoDbTableBuilder(make_context(), _spec("dynamodb-table", name="carts")).build()

    assert config["partitionKey"] == {"name": "id", "type": "string"}
    assert config["tableName"] == "orders-carts"
    assert config["billingMode"] == "pay-per-request"


def test_manifest_overrides_beat_component_config(make_context):
    """Test that overrides take precedence over component config."""
    spec = _spec("sqs-queue", config={"visibilityTimeout": 60}, overrides={"visibilityTimeout": 90})

    config = SqsQueueBuilder(make_context(), spec).build()

    assert config["visibilityTimeout"] == 90


def test_governance_overrides_win(make_context):
    """Test that platform governance overrides beat every manifest layer."""
    context = make_context(governance_overrides={"sqs-queue": {"visibilityTimeout": 120}})
    spec = _spec("sqs-queue", config={"visibilityTimeout": 60}, overrides={"visibilityTimeout": 90})

    config = SqsQueueBuilder(context, spec).build()

    assert config["visibilityTimeout"] == 120


def test_component_policy_merges_with_platform_governance(make_context):
    """Test that component policy merges with the platform block, which wins on conflicts."""
    context = make_context(governance_overrides={"sqs-queue": {"visibilityTimeout": 120, "tags": {"owner": "platform"}}})
    spec = _spec("sqs-queue", policy={"visibilityTimeout": 30, "tags": {"cost-center": "42"}})

    config = SqsQueueBuilder(context, spec).build()

    assert config["visibilityTimeout"] == 120
    assert config["tags"] == {"owner": "platform", "cost-center": "42"}


def test_precedence_independent_of_registration_order(make_context):
    """Test that extra layers are merged by priority, not by registration order."""
    spec = _spec("sqs-queue")
    builder = SqsQueueBuilder(make_context(), spec)
    builder.add_layer("late-high", 45, {"visibilityTimeout": 300})
    builder.add_layer("early-low", 35, {"visibilityTimeout": 200})

    assert builder.build()["visibilityTimeout"] == 300


def test_equal_priority_layers_keep_insertion_order(make_context):
    """Test that the later of two equal-priority layers wins."""
    builder = SqsQueueBuilder(make_context(), _spec("sqs-queue"))
    builder.add_layer("first", 45, {"visibilityTimeout": 100})
    builder.add_layer("second", 45, {"visibilityTimeout": 200})

    assert builder.build()["visibilityTimeout"] == 200


def test_schema_error_reports_dotted_path(make_context):
    """Test that schema failures name the offending field."""
    spec = _spec("sqs-queue", config={"deadLetterQueue": {"maxReceiveCount": 0}})

    with pytest.raises(ConfigSchemaError) as exc_info:
        SqsQueueBuilder(make_context(), spec).build()

    assert exc_info.value.path == "deadLetterQueue.maxReceiveCount"
    assert exc_info.value.component == "item"


def test_unknown_config_key_rejected(make_context):
    """Test that undeclared keys fail validation."""
    spec = _spec("s3-bucket", config={"versioning": True})

    with pytest.raises(ConfigSchemaError) as exc_info:
        S3BucketBuilder(make_context(), spec).build()

    assert exc_info.value.path == "versioning"


def test_free_form_maps_accept_any_key(make_context):
    """Test that tags and environment accept arbitrary keys."""
    spec = _spec(
        "lambda-api",
        config={"tags": {"any-key": "v"}, "environment": {"FEATURE_FLAG": "on"}},
    )

    config = LambdaApiBuilder(make_context(), spec).build()

    assert config["tags"] == {"any-key": "v"}
    assert config["environment"] == {"FEATURE_FLAG": "on"}


def test_governance_violation_in_production(make_context):
    """Test that a manifest cannot disable monitoring in production."""
    spec = _spec("sqs-queue", config={"monitoring": {"enabled": False}})

    with pytest.raises(GovernanceViolationError) as exc_info:
        SqsQueueBuilder(make_context(environment="prod"), spec).build()

    assert exc_info.value.path == "monitoring.enabled"
    assert exc_info.value.layer == "component-config"
    assert isinstance(exc_info.value, ConfigSchemaError)


def test_governance_violation_under_high_framework(make_context):
    """Test that the high framework restricts overrides outside production too."""
    spec = _spec("s3-bucket", overrides={"blockPublicAccess": False})

    with pytest.raises(GovernanceViolationError) as exc_info:
        S3BucketBuilder(make_context(compliance_framework="high"), spec).build()

    assert exc_info.value.path == "blockPublicAccess"
    assert exc_info.value.layer == "manifest-overrides"


def test_component_policy_cannot_disable_governance_flags(make_context):
    """Test that a component policy block is checked like any manifest layer."""
    spec = _spec("rds-postgres", name="orders-db", policy={"monitoring": {"enabled": False}})

    with pytest.raises(GovernanceViolationError) as exc_info:
        RdsPostgresBuilder(make_context(environment="prod"), spec).build()

    assert exc_info.value.path == "monitoring.enabled"
    assert exc_info.value.layer == "component-policy"


def test_manifest_governance_cannot_disable_governance_flags(make_context):
    """Test that the manifest governance section is not trusted as platform policy."""
    context = make_context(
        environment="prod",
        manifest_governance={"rds-postgres": {"deletionProtection": False}},
    )

    with pytest.raises(GovernanceViolationError) as exc_info:
        RdsPostgresBuilder(context, _spec("rds-postgres", name="orders-db")).build()

    assert exc_info.value.path == "deletionProtection"
    assert exc_info.value.layer == "manifest-governance"


def test_platform_governance_may_disable_flags(make_context):
    """Test that trusted platform policy can still turn a flag off."""
    context = make_context(
        environment="prod",
        governance_overrides={"sqs-queue": {"monitoring": {"enabled": False}}},
    )

    config = SqsQueueBuilder(context, _spec("sqs-queue")).build()

    assert config["monitoring"]["enabled"] is False


def test_merged_result_rejects_untrusted_disabled_flag(make_context):
    """Test that a flag left disabled by an added layer is rejected after merging."""
    builder = SqsQueueBuilder(make_context(environment="prod"), _spec("sqs-queue"))
    builder.add_layer("team-extras", 55, {"monitoring": {"enabled": False}})

    with pytest.raises(GovernanceViolationError) as exc_info:
        builder.build()

    assert exc_info.value.layer == "team-extras"


def test_production_alias_gets_prod_defaults(make_context):
    """Test that 'production' picks up the same environment defaults as 'prod'."""
    config = RdsPostgresBuilder(make_context(environment="production"), _spec("rds-postgres")).build()

    assert config["multiAz"] is True
    assert config["instanceClass"] == "db.r6g.large"


def test_monitoring_can_be_disabled_in_unrestricted_context(make_context):
    """Test that a moderate dev context accepts a disabled monitoring flag."""
    spec = _spec("sqs-queue", config={"monitoring": {"enabled": False}})

    config = SqsQueueBuilder(make_context(compliance_framework="moderate"), spec).build()

    assert config["monitoring"]["enabled"] is False


def test_compliance_defaults_raise_retention(make_context):
    """Test that stricter frameworks never lower retention or switch monitoring off."""
    cases = [
        (SqsQueueBuilder, "sqs-queue", "messageRetentionSeconds"),
        (RdsPostgresBuilder, "rds-postgres", "backupRetentionDays"),
        (LambdaApiBuilder, "lambda-api", "logRetentionDays"),
        (S3BucketBuilder, "s3-bucket", "accessLogging"),
    ]

    for builder_class, component_type, key in cases:
        configs = [
            builder_class(make_context(compliance_framework=framework), _spec(component_type)).build()
            for framework in ("baseline", "moderate", "high")
        ]

        values = [c[key]["retentionDays"] if key == "accessLogging" else c[key] for c in configs]
        assert values == sorted(values), component_type
        monitoring = [c["monitoring"]["enabled"] for c in configs]
        assert monitoring == sorted(monitoring), component_type
        if "encryption" in configs[2]:
            assert configs[2]["encryption"]["type"] == "customer-managed"


def test_sqs_compliance_tiers(make_context):
    """Test the concrete queue defaults for each framework."""
    baseline = SqsQueueBuilder(make_context("baseline"), _spec("sqs-queue")).build()
    moderate = SqsQueueBuilder(make_context("moderate"), _spec("sqs-queue")).build()
    high = SqsQueueBuilder(make_context("high"), _spec("sqs-queue")).build()

    assert baseline["messageRetentionSeconds"] == 345600
    assert baseline["deadLetterQueue"]["enabled"] is False
    assert moderate["messageRetentionSeconds"] == 604800
    assert moderate["encryption"]["type"] == "customer-managed"
    assert high["messageRetentionSeconds"] == 1209600
    assert high["encryption"]["keyRotation"] is True
    assert high["deadLetterQueue"]["enabled"] is True


def test_postgres_db_name_derived_from_component_name(make_context):
    """Test that a missing database name is derived from the component name."""
    config = RdsPostgresBuilder(make_context(), _spec("rds-postgres", name="orders-db")).build()

    assert config["dbName"] == "orders_db"
    assert config["port"] == 5432


def test_imported_key_requires_customer_managed_encryption(make_context):
    """Test the cross-field check on imported KMS keys."""
    spec = _spec("rds-postgres", config={"encryption": {"kmsKeyArn": "arn:aws:kms:us-east-1:1:key/x"}})

    with pytest.raises(ConfigSchemaError) as exc_info:
        RdsPostgresBuilder(make_context(), spec).build()

    assert exc_info.value.path == "encryption.kmsKeyArn"


def test_environment_defaults_apply(make_context):
    """Test that production defaults are layered in."""
    config = RdsPostgresBuilder(make_context(environment="prod"), _spec("rds-postgres")).build()

    assert config["multiAz"] is True
    assert config["instanceClass"] == "db.r6g.large"
    assert config["monitoring"]["enabled"] is True


def test_build_summary_reports_overridden_keys(make_context):
    """Test that the summary lists every layer that set a key and the winner."""
    spec = _spec("sqs-queue", config={"visibilityTimeout": 60}, overrides={"visibilityTimeout": 90})

    conflicts = {c.key: c for c in SqsQueueBuilder(make_context(), spec).build_summary()}

    conflict = conflicts["visibilityTimeout"]
    assert conflict.values == [
        ("hardcoded-fallbacks", 30),
        ("component-config", 60),
        ("manifest-overrides", 90),
    ]
    assert conflict.winner == "manifest-overrides"
    # Map-valued keys merge and are never reported themselves.
    assert "monitoring" not in conflicts
