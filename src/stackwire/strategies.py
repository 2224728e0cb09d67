"""Built-in binder strategies for compute components."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from .binders import BinderRegistry, BinderStrategy, BindingResult, NetworkRule, PolicyStatement

if TYPE_CHECKING:
    from .binders import BindingContext

COMPUTE_TYPES = ("lambda-api", "lambda-worker")


def _compute_pairs(capability: str) -> tuple[tuple[str, str], ...]:
    return tuple((source_type, capability) for source_type in COMPUTE_TYPES)


class ComputeBinderStrategy(BinderStrategy):
    """Shared wiring for compute sources: hardening and direct grants."""

    kms_service: ClassVar[str] = ""

    def principal(self, context: BindingContext) -> str:
        function = context.source.get_construct("main")
        if function is None:
            return context.source.name
        return function.attributes.get("roleArn", context.source.name)

    def harden(
        self,
        context: BindingContext,
        statements: list[PolicyStatement],
        kms_key_arn: str | None,
    ) -> list[PolicyStatement]:
        """Apply compliance hardening to every statement. Each tier adds to the one below it."""
        statements = list(statements)
        framework = context.compliance_framework
        if framework in ("moderate", "high") and kms_key_arn:
            statements.append(
                PolicyStatement(
                    effect="Allow",
                    actions=["kms:Decrypt", "kms:GenerateDataKey"],
                    resources=[kms_key_arn],
                    conditions={
                        "StringEquals": {"kms:ViaService": f"{self.kms_service}.{context.region}.amazonaws.com"},
                    },
                    description="Use the customer-managed key only through the bound service",
                )
            )

        endpoint = context.options.get("vpcEndpoint", "vpce-*")
        for statement in statements:
            statement.conditions.setdefault("Bool", {})["aws:SecureTransport"] = "true"
            if framework == "high":
                statement.conditions.setdefault("StringLike", {})["aws:SourceVpce"] = endpoint
        return statements

    def wire(self, context: BindingContext, statements: list[PolicyStatement]) -> None:
        """Grant the statements on the target's constructs."""
        principal = self.principal(context)
        main = context.target.get_construct("main")
        key = context.target.get_construct("kmsKey")
        for statement in statements:
            if statement.actions and statement.actions[0].startswith("kms:"):
                if key is not None:
                    key.grant(principal, statement.actions)
            elif main is not None:
                main.grant(principal, statement.actions)


class LambdaToQueueStrategy(ComputeBinderStrategy):
    compatibility = _compute_pairs("queue:sqs")
    service_prefix = "sqs"
    kms_service = "sqs"
    read_actions = ("sqs:ReceiveMessage", "sqs:DeleteMessage", "sqs:GetQueueAttributes", "sqs:GetQueueUrl")
    write_actions = ("sqs:SendMessage", "sqs:GetQueueAttributes", "sqs:GetQueueUrl")

    def bind(self, context: BindingContext) -> BindingResult:
        queue = self.capability_of(context)
        statement = PolicyStatement(
            effect="Allow",
            actions=self.actions_for(context.access),
            resources=[queue.queue_arn],
            description=f"{context.access} access to queue {queue.queue_name}",
        )
        statements = [statement]
        if context.options.get("deadLetterQueue") and context.source.type == "lambda-worker":
            statements.append(
                PolicyStatement(
                    effect="Allow",
                    actions=["sqs:GetQueueAttributes", "sqs:ChangeMessageVisibility"],
                    resources=[queue.queue_arn],
                    description="Return failed messages for redrive",
                )
            )
        statements = self.harden(context, statements, queue.kms_key_arn)
        self.wire(context, statements)

        env = {
            self.env_name(context, "queueUrl", "QUEUE_URL"): queue.queue_url,
            self.env_name(context, "queueArn", "QUEUE_ARN"): queue.queue_arn,
        }
        if queue.dead_letter_queue is not None:
            env[self.env_name(context, "deadLetterQueueUrl", "DLQ_URL")] = queue.dead_letter_queue.url
        return BindingResult(environment_variables=env, access_policies=statements)


class LambdaToPostgresStrategy(ComputeBinderStrategy):
    compatibility = _compute_pairs("db:postgres")
    service_prefix = "secretsmanager"
    kms_service = "secretsmanager"
    # Every access level needs the credentials; the database enforces the rest.
    read_actions = ("secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret")
    write_actions = ("secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret")

    def bind(self, context: BindingContext) -> BindingResult:
        db = self.capability_of(context)
        statement = PolicyStatement(
            effect="Allow",
            actions=self.actions_for(context.access),
            resources=[db.secret_arn],
            description=f"Read credentials for database {db.db_name}",
        )
        statements = [statement]
        iam_auth = context.options.get("iamAuth")
        if iam_auth:
            username = iam_auth.get("username", "lambda_user") if isinstance(iam_auth, dict) else "lambda_user"
            statements.append(
                PolicyStatement(
                    effect="Allow",
                    actions=["rds-db:connect"],
                    resources=[f"{db.instance_arn.replace(':rds:', ':rds-db:')}/{username}"],
                    description="IAM database authentication",
                )
            )
        statements = self.harden(context, statements, None)

        secret = context.target.get_construct("secret")
        if secret is not None:
            secret.grant(self.principal(context), statement.actions)

        peer = context.source.get_capabilities().get("lambda:function", {}).get("securityGroupId", context.source.name)
        rule = NetworkRule(
            type="ingress",
            peer=peer,
            port=db.port,
            description=f"Allow connection from {context.source.name}",
        )
        security_group = context.target.get_construct("securityGroup")
        if security_group is not None:
            security_group.allow_from(rule.peer, rule.port, rule.description)

        env = {
            self.env_name(context, "host", "DB_HOST"): db.host,
            self.env_name(context, "port", "DB_PORT"): str(db.port),
            self.env_name(context, "dbName", "DB_NAME"): db.db_name,
            self.env_name(context, "secretArn", "DB_SECRET_ARN"): db.secret_arn,
        }
        return BindingResult(environment_variables=env, access_policies=statements, network_rules=[rule])


class LambdaToBucketStrategy(ComputeBinderStrategy):
    compatibility = _compute_pairs("bucket:s3")
    service_prefix = "s3"
    kms_service = "s3"
    read_actions = ("s3:GetObject", "s3:GetObjectVersion", "s3:ListBucket")
    write_actions = ("s3:PutObject", "s3:DeleteObject", "s3:AbortMultipartUpload")

    def bind(self, context: BindingContext) -> BindingResult:
        bucket = self.capability_of(context)
        statement = PolicyStatement(
            effect="Allow",
            actions=self.actions_for(context.access),
            resources=[bucket.bucket_arn, f"{bucket.bucket_arn}/*"],
            description=f"{context.access} access to bucket {bucket.bucket_name}",
        )
        statements = self.harden(context, [statement], bucket.kms_key_arn)
        self.wire(context, statements)

        env = {
            self.env_name(context, "bucketName", "BUCKET_NAME"): bucket.bucket_name,
            self.env_name(context, "bucketArn", "BUCKET_ARN"): bucket.bucket_arn,
        }
        return BindingResult(environment_variables=env, access_policies=statements)


class LambdaToTableStrategy(ComputeBinderStrategy):
    compatibility = _compute_pairs("dynamodb:table")
    service_prefix = "dynamodb"
    kms_service = "dynamodb"
    read_actions = (
        "dynamodb:GetItem",
        "dynamodb:BatchGetItem",
        "dynamodb:Query",
        "dynamodb:Scan",
        "dynamodb:ConditionCheckItem",
        "dynamodb:DescribeTable",
    )
    write_actions = (
        "dynamodb:PutItem",
        "dynamodb:UpdateItem",
        "dynamodb:DeleteItem",
        "dynamodb:BatchWriteItem",
        "dynamodb:DescribeTable",
    )
    stream_actions = (
        "dynamodb:DescribeStream",
        "dynamodb:GetRecords",
        "dynamodb:GetShardIterator",
        "dynamodb:ListStreams",
    )

    def bind(self, context: BindingContext) -> BindingResult:
        table = self.capability_of(context)
        statement = PolicyStatement(
            effect="Allow",
            actions=self.actions_for(context.access),
            resources=[table.table_arn, f"{table.table_arn}/index/*"],
            description=f"{context.access} access to table {table.table_name}",
        )
        statements = [statement]
        env = {
            self.env_name(context, "tableName", "TABLE_NAME"): table.table_name,
            self.env_name(context, "tableArn", "TABLE_ARN"): table.table_arn,
        }
        if table.stream_arn is not None and context.access in ("read", "readwrite"):
            statements.append(
                PolicyStatement(
                    effect="Allow",
                    actions=list(self.stream_actions),
                    resources=[table.stream_arn],
                    description=f"Consume the stream of table {table.table_name}",
                )
            )
            env[self.env_name(context, "streamArn", "TABLE_STREAM_ARN")] = table.stream_arn
        statements = self.harden(context, statements, table.kms_key_arn)
        self.wire(context, statements)

        return BindingResult(environment_variables=env, access_policies=statements)


def create_binder_registry() -> BinderRegistry:
    """Return a fresh registry holding the built-in strategies."""
    registry = BinderRegistry()
    registry.register(LambdaToQueueStrategy())
    registry.register(LambdaToPostgresStrategy())
    registry.register(LambdaToBucketStrategy())
    registry.register(LambdaToTableStrategy())
    return registry
