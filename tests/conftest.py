"""Shared fixtures for stackwire tests."""

import pytest

from stackwire.catalog import create_component_registry
from stackwire.models import ComponentSpec
from stackwire.provisioning import InMemoryProvisioner
from stackwire.strategies import create_binder_registry
from stackwire.types import ComponentContext

SAMPLE_MANIFEST = """
version: "1"
service: orders
owner: platform-team
compliance_framework: baseline
environment: dev
components:
  - name: orders-db
    type: rds-postgres
    labels: {tier: data}
  - name: jobs
    type: sqs-queue
    labels: {tier: messaging}
  - name: api
    type: lambda-api
    labels: {tier: edge}
    binds:
      - to: orders-db
        capability: db:postgres
        access: readwrite
      - select: {type: sqs-queue, with_labels: {tier: messaging}}
        capability: queue:sqs
        access: write
        env: {queueUrl: JOBS_QUEUE_URL}
  - name: worker
    type: lambda-worker
    labels: {tier: compute}
    binds:
      - to: jobs
        capability: queue:sqs
        access: read
"""


@pytest.fixture
def make_context():
    """Factory for component contexts with a fresh in-memory provisioner."""

    def _make(compliance_framework="baseline", environment="dev", governance_overrides=None, manifest_governance=None):
        return ComponentContext(
            service_name="orders",
            environment=environment,
            compliance_framework=compliance_framework,
            region="us-east-1",
            account="123456789012",
            scope=InMemoryProvisioner(account="123456789012", region="us-east-1"),
            governance_overrides=governance_overrides or {},
            manifest_governance=manifest_governance or {},
        )

    return _make


@pytest.fixture
def component_registry():
    return create_component_registry()


@pytest.fixture
def binder_registry():
    return create_binder_registry()


@pytest.fixture
def synthesized(component_registry):
    """Create, configure and synthesize a component from a plain spec dict."""

    def _synthesize(spec, context):
        component = component_registry.create_component(ComponentSpec(**spec), context)
        component.configure()
        component.synth()
        return component

    return _synthesize


@pytest.fixture
def manifest_file(tmp_path):
    """Write the sample manifest to a temporary file."""
    path = tmp_path / "stackwire.yaml"
    path.write_text(SAMPLE_MANIFEST)
    return path
