"""Built-in component types.

Each type pairs a config builder with a synthesis function. Synthesis records
constructs on the context's provisioning collaborator and publishes the
capabilities other components bind against.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .builders import (
    DynamoDbTableBuilder,
    LambdaApiBuilder,
    LambdaWorkerBuilder,
    RdsPostgresBuilder,
    S3BucketBuilder,
    SqsQueueBuilder,
)
from .components import ComponentCreator, ComponentRegistry
from .errors import SpecValidationError

if TYPE_CHECKING:
    from .components import Component
    from .provisioning import Provisioner


def _scope(component: Component) -> Provisioner:
    scope = component.context.scope
    if scope is None:
        raise SpecValidationError(
            f"Component '{component.name}' cannot be synthesized without a provisioning scope",
            path="scope",
        )
    return scope


def _resource_name(component: Component) -> str:
    return f"{component.context.service_name}-{component.name}"


def _kms_key(component: Component, scope: Provisioner, service: str) -> str | None:
    """Return the key ARN protecting the component, creating the key if needed."""
    encryption = component.config["encryption"]
    if encryption["type"] != "customer-managed":
        return None
    if "kmsKeyArn" in encryption:
        return encryption["kmsKeyArn"]
    key = scope.create(
        component.name,
        "kmsKey",
        "kms-key",
        {
            "keyArn": scope.arn("kms", f"key/{_resource_name(component)}"),
            "enableKeyRotation": encryption["keyRotation"],
            "service": service,
        },
    )
    component.register_construct("kmsKey", key)
    return key.attributes["keyArn"]


def synthesize_lambda(component: Component) -> None:
    scope = _scope(component)
    config = component.config
    name = _resource_name(component)
    role_arn = f"arn:aws:iam::{scope.account}:role/{name}-role"

    function = scope.create(
        component.name,
        "main",
        "lambda-function",
        {
            "functionName": name,
            "functionArn": scope.arn("lambda", f"function:{name}"),
            "roleArn": role_arn,
            "runtime": config["runtime"],
            "handler": config["handler"],
            "memorySize": config["memorySize"],
            "timeout": config["timeout"],
            "architecture": config["architecture"],
            "tracing": config["tracing"],
        },
    )
    for key, value in config["environment"].items():
        function.add_environment(key, value)
    function.add_environment("LOG_LEVEL", config["logLevel"])
    component.register_construct("main", function)

    log_group = scope.create(
        component.name,
        "logGroup",
        "log-group",
        {"logGroupName": f"/aws/lambda/{name}", "retentionInDays": config["logRetentionDays"]},
    )
    component.register_construct("logGroup", log_group)

    capability = {
        "functionArn": function.attributes["functionArn"],
        "functionName": name,
        "roleArn": role_arn,
    }
    if config["vpc"]["enabled"]:
        security_group = scope.create(
            component.name,
            "securityGroup",
            "security-group",
            {"groupId": f"sg-{name}", "subnetGroup": config["vpc"]["subnetGroup"]},
        )
        component.register_construct("securityGroup", security_group)
        capability["securityGroupId"] = security_group.attributes["groupId"]

    component.register_capability("lambda:function", capability)


def synthesize_postgres(component: Component) -> None:
    scope = _scope(component)
    config = component.config
    name = _resource_name(component)
    kms_key_arn = _kms_key(component, scope, "rds")

    security_group = scope.create(component.name, "securityGroup", "security-group", {"groupId": f"sg-{name}"})
    component.register_construct("securityGroup", security_group)

    secret = scope.create(
        component.name,
        "secret",
        "secret",
        {"secretArn": scope.arn("secretsmanager", f"secret:{name}-credentials")},
    )
    component.register_construct("secret", secret)

    instance = scope.create(
        component.name,
        "main",
        "rds-instance",
        {
            "instanceArn": scope.arn("rds", f"db:{name}"),
            "endpoint": f"{name}.{scope.region}.rds.amazonaws.com",
            "port": config["port"],
            "dbName": config["dbName"],
            "engineVersion": config["engineVersion"],
            "instanceClass": config["instanceClass"],
            "multiAz": config["multiAz"],
            "backupRetentionDays": config["backupRetentionDays"],
            "deletionProtection": config["deletionProtection"],
            "storageEncrypted": True,
            "kmsKeyArn": kms_key_arn,
        },
    )
    component.register_construct("main", instance)

    component.register_capability(
        "db:postgres",
        {
            "host": instance.attributes["endpoint"],
            "port": config["port"],
            "dbName": config["dbName"],
            "secretArn": secret.attributes["secretArn"],
            "sgId": security_group.attributes["groupId"],
            "instanceArn": instance.attributes["instanceArn"],
        },
    )


def _dead_letter_name(queue_name: str) -> str:
    if queue_name.endswith(".fifo"):
        return f"{queue_name[:-len('.fifo')]}-dlq.fifo"
    return f"{queue_name}-dlq"


def synthesize_queue(component: Component) -> None:
    scope = _scope(component)
    config = component.config
    queue_name = config["queueName"]
    kms_key_arn = _kms_key(component, scope, "sqs")

    capability = {
        "queueUrl": scope.queue_url(queue_name),
        "queueArn": scope.arn("sqs", queue_name),
        "queueName": queue_name,
        "region": scope.region,
        "kmsKeyArn": kms_key_arn,
    }

    redrive = None
    if config["deadLetterQueue"]["enabled"]:
        dlq_name = _dead_letter_name(queue_name)
        dlq = scope.create(
            component.name,
            "deadLetterQueue",
            "sqs-queue",
            {
                "queueName": dlq_name,
                "queueUrl": scope.queue_url(dlq_name),
                "queueArn": scope.arn("sqs", dlq_name),
                "messageRetentionSeconds": 1209600,
            },
        )
        component.register_construct("deadLetterQueue", dlq)
        redrive = {"deadLetterTargetArn": dlq.attributes["queueArn"], "maxReceiveCount": config["deadLetterQueue"]["maxReceiveCount"]}
        capability["deadLetterQueue"] = {"url": dlq.attributes["queueUrl"], "arn": dlq.attributes["queueArn"]}

    queue = scope.create(
        component.name,
        "main",
        "sqs-queue",
        {
            "queueName": queue_name,
            "queueUrl": capability["queueUrl"],
            "queueArn": capability["queueArn"],
            "fifo": config["fifo"],
            "visibilityTimeout": config["visibilityTimeout"],
            "messageRetentionSeconds": config["messageRetentionSeconds"],
            "kmsKeyArn": kms_key_arn,
            "redrivePolicy": redrive,
        },
    )
    component.register_construct("main", queue)
    component.register_capability("queue:sqs", capability)


def synthesize_bucket(component: Component) -> None:
    scope = _scope(component)
    config = component.config
    bucket_name = config["bucketName"]
    kms_key_arn = _kms_key(component, scope, "s3")

    bucket = scope.create(
        component.name,
        "main",
        "s3-bucket",
        {
            "bucketName": bucket_name,
            "bucketArn": f"arn:aws:s3:::{bucket_name}",
            "versioned": config["versioned"],
            "blockPublicAccess": config["blockPublicAccess"],
            "enforceSsl": config["enforceSsl"],
            "kmsKeyArn": kms_key_arn,
        },
    )
    component.register_construct("main", bucket)

    if config["accessLogging"]["enabled"]:
        log_bucket_name = f"{bucket_name}-logs"[:63]
        log_bucket = scope.create(
            component.name,
            "accessLogBucket",
            "s3-bucket",
            {
                "bucketName": log_bucket_name,
                "bucketArn": f"arn:aws:s3:::{log_bucket_name}",
                "expirationDays": config["accessLogging"]["retentionDays"],
            },
        )
        component.register_construct("accessLogBucket", log_bucket)

    component.register_capability(
        "bucket:s3",
        {
            "bucketName": bucket_name,
            "bucketArn": bucket.attributes["bucketArn"],
            "region": scope.region,
            "kmsKeyArn": kms_key_arn,
        },
    )


def synthesize_table(component: Component) -> None:
    scope = _scope(component)
    config = component.config
    table_name = config["tableName"]
    table_arn = scope.arn("dynamodb", f"table/{table_name}")
    kms_key_arn = _kms_key(component, scope, "dynamodb")
    stream_arn = f"{table_arn}/stream/latest" if config["stream"]["enabled"] else None

    table = scope.create(
        component.name,
        "main",
        "dynamodb-table",
        {
            "tableName": table_name,
            "tableArn": table_arn,
            "billingMode": config["billingMode"],
            "partitionKey": config["partitionKey"],
            "sortKey": config.get("sortKey"),
            "autoScaling": config.get("autoScaling"),
            "pointInTimeRecovery": config["pointInTimeRecovery"],
            "streamArn": stream_arn,
            "kmsKeyArn": kms_key_arn,
        },
    )
    component.register_construct("main", table)

    component.register_capability(
        "dynamodb:table",
        {
            "tableName": table_name,
            "tableArn": table_arn,
            "streamArn": stream_arn,
            "billingMode": config["billingMode"],
            "region": scope.region,
            "kmsKeyArn": kms_key_arn,
        },
    )


BUILTIN_CREATORS = (
    ComponentCreator(
        component_type="lambda-api",
        builder=LambdaApiBuilder,
        synthesize=synthesize_lambda,
        capabilities=("lambda:function",),
        description="Lambda function serving an HTTP API",
    ),
    ComponentCreator(
        component_type="lambda-worker",
        builder=LambdaWorkerBuilder,
        synthesize=synthesize_lambda,
        capabilities=("lambda:function",),
        description="Lambda function processing background work",
    ),
    ComponentCreator(
        component_type="rds-postgres",
        builder=RdsPostgresBuilder,
        synthesize=synthesize_postgres,
        capabilities=("db:postgres",),
        description="PostgreSQL database instance",
    ),
    ComponentCreator(
        component_type="sqs-queue",
        builder=SqsQueueBuilder,
        synthesize=synthesize_queue,
        capabilities=("queue:sqs",),
        description="SQS queue with optional dead-letter queue",
    ),
    ComponentCreator(
        component_type="s3-bucket",
        builder=S3BucketBuilder,
        synthesize=synthesize_bucket,
        capabilities=("bucket:s3",),
        description="S3 bucket",
    ),
    ComponentCreator(
        component_type="dynamodb-table",
        builder=DynamoDbTableBuilder,
        synthesize=synthesize_table,
        capabilities=("dynamodb:table",),
        description="DynamoDB table",
    ),
)


def create_component_registry() -> ComponentRegistry:
    """Return a fresh registry holding the built-in component types."""
    registry = ComponentRegistry()
    for creator in BUILTIN_CREATORS:
        registry.register(creator)
    return registry
