"""Configuration builders and schemas for the built-in component types."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config_builder import ConfigBuilder
from .types import ConfigMap


class ConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class MonitoringConfig(ConfigModel):
    enabled: bool = False
    alarm_email: str | None = None


class EncryptionConfig(ConfigModel):
    type: Literal["aws-managed", "customer-managed"] = "aws-managed"
    # An imported key. Lower layers cannot be cleared by a None here.
    kms_key_arn: str | None = None
    key_rotation: bool = False


# Lambda


class VpcConfig(ConfigModel):
    enabled: bool = False
    subnet_group: str = "private"


class ApiConfig(ConfigModel):
    auth_type: Literal["NONE", "IAM", "JWT"] = "IAM"
    cors_origins: list[str] = Field(default_factory=list)


class LambdaConfig(ConfigModel):
    runtime: str = "python3.12"
    handler: str = "app.handler"
    memory_size: int = Field(512, ge=128, le=10240)
    timeout: int = Field(30, ge=1, le=900)
    architecture: Literal["x86_64", "arm64"] = "arm64"
    reserved_concurrency: int | None = Field(None, ge=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_retention_days: int = Field(14, ge=1)
    tracing: Literal["Active", "PassThrough"] = "PassThrough"
    vpc: VpcConfig = Field(default_factory=VpcConfig)
    api: ApiConfig | None = None
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    environment: dict[str, str] = Field(default_factory=dict)
    tags: dict[str, str] = Field(default_factory=dict)


class LambdaApiBuilder(ConfigBuilder):
    component_type = "lambda-api"
    schema = LambdaConfig
    fallbacks = {
        "runtime": "python3.12",
        "handler": "app.handler",
        "memorySize": 512,
        "timeout": 30,
        "architecture": "arm64",
        "logRetentionDays": 14,
        "tracing": "PassThrough",
        "monitoring": {"enabled": False},
        "api": {"authType": "IAM", "corsOrigins": []},
    }
    compliance_defaults = {
        "baseline": {
            "logRetentionDays": 14,
            "tracing": "PassThrough",
            "monitoring": {"enabled": False},
        },
        "moderate": {
            "logRetentionDays": 90,
            "tracing": "Active",
            "monitoring": {"enabled": True},
        },
        "high": {
            "logRetentionDays": 400,
            "tracing": "Active",
            "vpc": {"enabled": True},
            "monitoring": {"enabled": True},
        },
    }
    environment_defaults = {
        "dev": {"logLevel": "DEBUG"},
        "staging": {"logLevel": "INFO"},
        "prod": {"logLevel": "WARNING", "monitoring": {"enabled": True}},
    }

    def check(self, config: ConfigMap) -> None:
        reserved = config.get("reservedConcurrency")
        if reserved == 0 and self.context.environment in ("prod", "production"):
            raise self.fail("reservedConcurrency", "a reserved concurrency of 0 disables the function")


class LambdaWorkerBuilder(LambdaApiBuilder):
    component_type = "lambda-worker"
    fallbacks = {key: value for key, value in LambdaApiBuilder.fallbacks.items() if key != "api"}

    def check(self, config: ConfigMap) -> None:
        super().check(config)
        if "api" in config:
            raise self.fail("api", "lambda-worker does not serve an API")


# RDS Postgres


class PostgresConfig(ConfigModel):
    engine_version: str = "16.3"
    instance_class: str = "db.t4g.micro"
    allocated_storage: int = Field(20, ge=20, le=65536)
    db_name: str = Field(..., pattern=r"^[a-zA-Z][a-zA-Z0-9_]{0,62}$")
    port: int = Field(5432, ge=1150, le=65535)
    multi_az: bool = False
    backup_retention_days: int = Field(7, ge=0, le=35)
    deletion_protection: bool = False
    performance_insights: bool = False
    encryption: EncryptionConfig = Field(default_factory=EncryptionConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    tags: dict[str, str] = Field(default_factory=dict)


class RdsPostgresBuilder(ConfigBuilder):
    component_type = "rds-postgres"
    schema = PostgresConfig
    fallbacks = {
        "engineVersion": "16.3",
        "instanceClass": "db.t4g.micro",
        "allocatedStorage": 20,
        "port": 5432,
        "multiAz": False,
        "backupRetentionDays": 7,
        "deletionProtection": False,
        "encryption": {"type": "aws-managed"},
        "monitoring": {"enabled": False},
    }
    compliance_defaults = {
        "baseline": {
            "backupRetentionDays": 7,
            "encryption": {"type": "aws-managed"},
            "monitoring": {"enabled": False},
        },
        "moderate": {
            "backupRetentionDays": 30,
            "deletionProtection": True,
            "performanceInsights": True,
            "encryption": {"type": "customer-managed"},
            "monitoring": {"enabled": True},
        },
        "high": {
            "backupRetentionDays": 35,
            "multiAz": True,
            "deletionProtection": True,
            "performanceInsights": True,
            "encryption": {"type": "customer-managed", "keyRotation": True},
            "monitoring": {"enabled": True},
        },
    }
    environment_defaults = {
        "staging": {"instanceClass": "db.t4g.medium"},
        "prod": {
            "instanceClass": "db.r6g.large",
            "multiAz": True,
            "deletionProtection": True,
            "monitoring": {"enabled": True},
        },
    }
    governance_flags = ("monitoring.enabled", "deletionProtection")

    def normalise(self, config: ConfigMap) -> ConfigMap:
        if not config.get("dbName"):
            config = {**config, "dbName": self.spec.name.replace("-", "_")}
        return config

    def check(self, config: ConfigMap) -> None:
        encryption = config["encryption"]
        if "kmsKeyArn" in encryption and encryption["type"] != "customer-managed":
            raise self.fail("encryption.kmsKeyArn", "an imported key requires encryption type 'customer-managed'")


# SQS


class DeadLetterQueueConfig(ConfigModel):
    enabled: bool = False
    max_receive_count: int = Field(5, ge=1, le=1000)


class QueueConfig(ConfigModel):
    queue_name: str | None = None
    fifo: bool = False
    content_based_deduplication: bool = False
    visibility_timeout: int = Field(30, ge=0, le=43200)
    message_retention_seconds: int = Field(345600, ge=60, le=1209600)
    dead_letter_queue: DeadLetterQueueConfig = Field(default_factory=DeadLetterQueueConfig)
    encryption: EncryptionConfig = Field(default_factory=EncryptionConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    tags: dict[str, str] = Field(default_factory=dict)


class SqsQueueBuilder(ConfigBuilder):
    component_type = "sqs-queue"
    schema = QueueConfig
    fallbacks = {
        "fifo": False,
        "visibilityTimeout": 30,
        "messageRetentionSeconds": 345600,
        "deadLetterQueue": {"enabled": False, "maxReceiveCount": 5},
        "encryption": {"type": "aws-managed"},
        "monitoring": {"enabled": False},
    }
    compliance_defaults = {
        "baseline": {
            "messageRetentionSeconds": 345600,
            "encryption": {"type": "aws-managed"},
            "monitoring": {"enabled": False},
        },
        "moderate": {
            "messageRetentionSeconds": 604800,
            "deadLetterQueue": {"enabled": True},
            "encryption": {"type": "customer-managed"},
            "monitoring": {"enabled": True},
        },
        "high": {
            "messageRetentionSeconds": 1209600,
            "deadLetterQueue": {"enabled": True, "maxReceiveCount": 3},
            "encryption": {"type": "customer-managed", "keyRotation": True},
            "monitoring": {"enabled": True},
        },
    }
    environment_defaults = {
        "prod": {"monitoring": {"enabled": True}},
    }

    def normalise(self, config: ConfigMap) -> ConfigMap:
        if config.get("queueName"):
            return config
        name = f"{self.context.service_name}-{self.spec.name}"
        if config.get("fifo"):
            name = f"{name}.fifo"
        return {**config, "queueName": name}

    def check(self, config: ConfigMap) -> None:
        if config["contentBasedDeduplication"] and not config["fifo"]:
            raise self.fail("contentBasedDeduplication", "only FIFO queues support content-based deduplication")
        if config["fifo"] != config["queueName"].endswith(".fifo"):
            raise self.fail("queueName", "FIFO queue names must end in '.fifo' and standard queue names must not")


# S3


class AccessLoggingConfig(ConfigModel):
    enabled: bool = False
    retention_days: int = Field(90, ge=1)


class BucketLifecycleConfig(ConfigModel):
    expire_noncurrent_days: int | None = Field(None, ge=1)
    transition_to_ia_days: int | None = Field(None, ge=30)


class BucketConfig(ConfigModel):
    bucket_name: str | None = Field(None, pattern=r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")
    versioned: bool = False
    block_public_access: bool = True
    enforce_ssl: bool = True
    access_logging: AccessLoggingConfig = Field(default_factory=AccessLoggingConfig)
    lifecycle: BucketLifecycleConfig = Field(default_factory=BucketLifecycleConfig)
    encryption: EncryptionConfig = Field(default_factory=EncryptionConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    tags: dict[str, str] = Field(default_factory=dict)


class S3BucketBuilder(ConfigBuilder):
    component_type = "s3-bucket"
    schema = BucketConfig
    fallbacks = {
        "versioned": False,
        "blockPublicAccess": True,
        "enforceSsl": True,
        "accessLogging": {"enabled": False, "retentionDays": 90},
        "encryption": {"type": "aws-managed"},
        "monitoring": {"enabled": False},
    }
    compliance_defaults = {
        "baseline": {
            "versioned": False,
            "encryption": {"type": "aws-managed"},
            "accessLogging": {"enabled": False, "retentionDays": 90},
            "monitoring": {"enabled": False},
        },
        "moderate": {
            "versioned": True,
            "encryption": {"type": "customer-managed"},
            "accessLogging": {"enabled": True, "retentionDays": 365},
            "monitoring": {"enabled": True},
        },
        "high": {
            "versioned": True,
            "encryption": {"type": "customer-managed", "keyRotation": True},
            "accessLogging": {"enabled": True, "retentionDays": 2555},
            "monitoring": {"enabled": True},
        },
    }
    environment_defaults = {
        "prod": {"versioned": True, "monitoring": {"enabled": True}},
    }
    governance_flags = ("monitoring.enabled", "blockPublicAccess", "enforceSsl")

    def normalise(self, config: ConfigMap) -> ConfigMap:
        if config.get("bucketName"):
            return config
        name = f"{self.context.service_name}-{self.spec.name}-{self.context.account}".lower()
        return {**config, "bucketName": name}

    def check(self, config: ConfigMap) -> None:
        if "expireNoncurrentDays" in config["lifecycle"] and not config["versioned"]:
            raise self.fail("lifecycle.expireNoncurrentDays", "noncurrent versions only exist on versioned buckets")


# DynamoDB


class AttributeConfig(ConfigModel):
    name: str = Field(..., pattern=r"^[a-zA-Z0-9_.-]+$")
    type: Literal["string", "number", "binary"] = "string"


class AutoScalingConfig(ConfigModel):
    min_read_capacity: int | None = Field(None, ge=1)
    max_read_capacity: int | None = Field(None, ge=1)
    min_write_capacity: int | None = Field(None, ge=1)
    max_write_capacity: int | None = Field(None, ge=1)
    target_utilization_percent: int | None = Field(None, ge=20, le=90)


class StreamConfig(ConfigModel):
    enabled: bool = False
    view_type: Literal["keys-only", "new-image", "old-image", "new-and-old-images"] = "new-and-old-images"


class BackupConfig(ConfigModel):
    enabled: bool = False
    retention_days: int = Field(7, ge=1)


class TableConfig(ConfigModel):
    table_name: str
    partition_key: AttributeConfig
    sort_key: AttributeConfig | None = None
    billing_mode: Literal["pay-per-request", "provisioned"] = "pay-per-request"
    read_capacity: int | None = Field(None, ge=1)
    write_capacity: int | None = Field(None, ge=1)
    auto_scaling: AutoScalingConfig | None = None
    table_class: Literal["standard", "infrequent-access"] = "standard"
    point_in_time_recovery: bool = False
    stream: StreamConfig = Field(default_factory=StreamConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    encryption: EncryptionConfig = Field(default_factory=EncryptionConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    tags: dict[str, str] = Field(default_factory=dict)


DEFAULT_CAPACITY = 5
DEFAULT_TARGET_UTILIZATION = 70


class DynamoDbTableBuilder(ConfigBuilder):
    component_type = "dynamodb-table"
    schema = TableConfig
    fallbacks = {
        "partitionKey": {"name": "id", "type": "string"},
        "billingMode": "pay-per-request",
        "tableClass": "standard",
        "pointInTimeRecovery": False,
        "stream": {"enabled": False, "viewType": "new-and-old-images"},
        "backup": {"enabled": False, "retentionDays": 7},
        "encryption": {"type": "aws-managed"},
        "monitoring": {"enabled": False},
    }
    compliance_defaults = {
        "baseline": {
            "pointInTimeRecovery": False,
            "encryption": {"type": "aws-managed"},
            "monitoring": {"enabled": False},
        },
        "moderate": {
            "pointInTimeRecovery": True,
            "backup": {"enabled": True, "retentionDays": 35},
            "encryption": {"type": "customer-managed"},
            "monitoring": {"enabled": True},
        },
        "high": {
            "pointInTimeRecovery": True,
            "backup": {"enabled": True, "retentionDays": 90},
            "encryption": {"type": "customer-managed", "keyRotation": True},
            "monitoring": {"enabled": True},
        },
    }
    environment_defaults = {
        "prod": {"pointInTimeRecovery": True, "monitoring": {"enabled": True}},
    }
    governance_flags = ("monitoring.enabled", "pointInTimeRecovery")

    def normalise(self, config: ConfigMap) -> ConfigMap:
        config = dict(config)
        if not config.get("tableName"):
            config["tableName"] = f"{self.context.service_name}-{self.spec.name}"
        if config.get("billingMode") != "provisioned":
            return config

        config.setdefault("readCapacity", DEFAULT_CAPACITY)
        config.setdefault("writeCapacity", DEFAULT_CAPACITY)
        scaling = config.get("autoScaling")
        if not isinstance(scaling, dict) or not scaling:
            return config

        scaling = dict(scaling)
        # Only dimensions the manifest mentions are completed.
        for dimension, base in (("Read", config["readCapacity"]), ("Write", config["writeCapacity"])):
            min_key, max_key = f"min{dimension}Capacity", f"max{dimension}Capacity"
            if min_key in scaling or max_key in scaling:
                scaling.setdefault(min_key, base)
                scaling.setdefault(max_key, base * 10)
        scaling.setdefault("targetUtilizationPercent", DEFAULT_TARGET_UTILIZATION)
        config["autoScaling"] = scaling
        return config

    def check(self, config: ConfigMap) -> None:
        provisioned = config["billingMode"] == "provisioned"
        if not provisioned:
            for key in ("readCapacity", "writeCapacity", "autoScaling"):
                if key in config:
                    raise self.fail(key, "only valid with billingMode 'provisioned'")
            return

        scaling = config.get("autoScaling", {})
        for dimension in ("Read", "Write"):
            low = scaling.get(f"min{dimension}Capacity")
            high = scaling.get(f"max{dimension}Capacity")
            if low is not None and high is not None and low > high:
                raise self.fail(
                    f"autoScaling.min{dimension}Capacity",
                    f"minimum {low} exceeds maximum {high}",
                )
