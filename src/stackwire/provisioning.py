"""In-memory provisioning collaborator.

Synthesis records the resources a component would provision as `Construct`
objects. Identifiers are derived from the account, region, service and
component names so that two resolutions of the same manifest produce the same
output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from .errors import ProvisioningConflictError


@dataclass
class Grant:
    grantee: str
    actions: list[str]


@dataclass
class IngressRule:
    peer: str
    port: int
    description: str = ""


@dataclass
class Construct:
    """A provisioned resource registered under a handle on its component."""

    handle: str
    resource_type: str
    logical_id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    grants: list[Grant] = field(default_factory=list)
    ingress: list[IngressRule] = field(default_factory=list)
    environment: dict[str, str] = field(default_factory=dict)

    def grant(self, grantee: str, actions: list[str]) -> None:
        self.grants.append(Grant(grantee=grantee, actions=list(actions)))

    def allow_from(self, peer: str, port: int, description: str = "") -> None:
        self.ingress.append(IngressRule(peer=peer, port=port, description=description))

    def add_environment(self, name: str, value: str) -> None:
        self.environment[name] = value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "handle": self.handle,
            "resourceType": self.resource_type,
            "logicalId": self.logical_id,
            "attributes": self.attributes,
        }
        if self.grants:
            data["grants"] = [{"grantee": g.grantee, "actions": g.actions} for g in self.grants]
        if self.ingress:
            data["ingress"] = [
                {"peer": rule.peer, "port": rule.port, "description": rule.description}
                for rule in self.ingress
            ]
        if self.environment:
            data["environment"] = dict(self.environment)
        return data


class Provisioner(Protocol):
    """Protocol for provisioning collaborators."""

    account: str
    region: str

    def arn(self, service: str, resource: str) -> str:
        """Build an ARN for a resource in this account and region."""
        ...

    def queue_url(self, queue_name: str) -> str:
        ...

    def create(self, owner: str, handle: str, resource_type: str, attributes: dict[str, Any]) -> Construct:
        """Record a new resource owned by component `owner`."""
        ...

    def fork(self) -> Provisioner:
        """Return an empty scope for the same account and region."""
        ...


class InMemoryProvisioner:
    """Provisioner that keeps constructs in a dict and fabricates identifiers."""

    def __init__(self, account: str, region: str):
        self.account = account
        self.region = region
        self.constructs: dict[str, Construct] = {}

    def fork(self) -> InMemoryProvisioner:
        return InMemoryProvisioner(account=self.account, region=self.region)

    def arn(self, service: str, resource: str) -> str:
        return f"arn:aws:{service}:{self.region}:{self.account}:{resource}"

    def queue_url(self, queue_name: str) -> str:
        return f"https://sqs.{self.region}.amazonaws.com/{self.account}/{queue_name}"

    def create(self, owner: str, handle: str, resource_type: str, attributes: dict[str, Any]) -> Construct:
        logical_id = f"{owner}-{handle}"
        if logical_id in self.constructs:
            raise ProvisioningConflictError(logical_id)
        construct = Construct(
            handle=handle,
            resource_type=resource_type,
            logical_id=logical_id,
            attributes=dict(attributes),
        )
        self.constructs[logical_id] = construct
        return construct
