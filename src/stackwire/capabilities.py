"""Capability contracts published by synthesized components.

Each capability key maps to a pydantic model. Producers validate the data
they register and consumers validate what they read back, so a strategy never
has to guess at the shape of a payload.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from .errors import CapabilityContractError


class CapabilityContract(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True, frozen=True)


class PostgresCapability(CapabilityContract):
    host: str
    port: int
    db_name: str
    secret_arn: str
    sg_id: str
    instance_arn: str


class DeadLetterQueue(CapabilityContract):
    url: str
    arn: str


class QueueCapability(CapabilityContract):
    queue_url: str
    queue_arn: str
    queue_name: str
    region: str
    dead_letter_queue: DeadLetterQueue | None = None
    kms_key_arn: str | None = None


class BucketCapability(CapabilityContract):
    bucket_name: str
    bucket_arn: str
    region: str
    kms_key_arn: str | None = None


class TableCapability(CapabilityContract):
    table_name: str
    table_arn: str
    stream_arn: str | None = None
    billing_mode: str
    region: str
    kms_key_arn: str | None = None


class FunctionCapability(CapabilityContract):
    function_arn: str
    function_name: str
    role_arn: str
    security_group_id: str | None = None


CAPABILITY_CONTRACTS: dict[str, type[CapabilityContract]] = {
    "db:postgres": PostgresCapability,
    "queue:sqs": QueueCapability,
    "bucket:s3": BucketCapability,
    "dynamodb:table": TableCapability,
    "lambda:function": FunctionCapability,
}


def validate_capability(component: str, key: str, data: dict[str, Any]) -> dict[str, Any]:
    """Check `data` against the contract for `key` and return its canonical form.

    Keys without a published contract are passed through unchanged.
    """
    contract = CAPABILITY_CONTRACTS.get(key)
    if contract is None:
        return dict(data)
    try:
        model = contract.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        path = ".".join(str(part) for part in first["loc"])
        raise CapabilityContractError(component, key, path, first["msg"]) from e
    return model.model_dump(by_alias=True, exclude_none=True)


def load_capability(component: str, key: str, data: dict[str, Any]) -> CapabilityContract:
    """Parse capability data into its contract model on the consumer side."""
    contract = CAPABILITY_CONTRACTS.get(key)
    if contract is None:
        raise CapabilityContractError(component, key, "", "no contract is published for this capability")
    try:
        return contract.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        path = ".".join(str(part) for part in first["loc"])
        raise CapabilityContractError(component, key, path, first["msg"]) from e
