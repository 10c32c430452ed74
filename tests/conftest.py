"""Pulumi mocks and fixtures shared by the stack tests."""

from __future__ import annotations

import importlib.util
import json
from pathlib import Path

import pulumi
import pytest

PROJECT = "cflt-bigquery-sink"
INFRA_DIR = Path(__file__).resolve().parents[1] / "infra"

ENVIRONMENT = "confluentcloud:index/environment:Environment"
KAFKA_CLUSTER = "confluentcloud:index/kafkaCluster:KafkaCluster"
SERVICE_ACCOUNT = "confluentcloud:index/serviceAccount:ServiceAccount"
ROLE_BINDING = "confluentcloud:index/roleBinding:RoleBinding"
API_KEY = "confluentcloud:index/apiKey:ApiKey"
KAFKA_TOPIC = "confluentcloud:index/kafkaTopic:KafkaTopic"
KSQL_CLUSTER = "confluentcloud:index/ksqlCluster:KsqlCluster"
CONNECTOR = "confluentcloud:index/connector:Connector"
BIGQUERY_DATASET = "gcp:bigquery/dataset:Dataset"
GCP_PROVIDER = "pulumi:providers:gcp"
GET_SCHEMA_REGISTRY = (
    "confluentcloud:index/getSchemaRegistryCluster:getSchemaRegistryCluster"
)

SCHEMA_REGISTRY = {
    "id": "lsrc-test",
    "apiVersion": "srcm/v3",
    "kind": "Cluster",
    "displayName": "Stream Governance Package",
    "resourceName": "crn://confluent.cloud/organization=org-test/environment=env-test/schema-registry=lsrc-test",
    "restEndpoint": "https://psrc-test.europe-west3.gcp.confluent.cloud",
}


class StackMocks(pulumi.runtime.Mocks):
    """Echo inputs back as state and fill in the attributes Confluent Cloud computes."""

    def __init__(self):
        self.resources: list[pulumi.runtime.MockResourceArgs] = []
        self.calls: list[pulumi.runtime.MockCallArgs] = []

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.resources.append(args)
        resource_id = f"{args.name}-id"
        outputs = dict(args.inputs)
        if args.typ == ENVIRONMENT:
            outputs["resourceName"] = (
                f"crn://confluent.cloud/organization=org-test/environment={resource_id}"
            )
        elif args.typ == KAFKA_CLUSTER:
            outputs.update(
                apiVersion="cmk/v2",
                kind="Cluster",
                bootstrapEndpoint=f"SASL_SSL://{resource_id}.gcp.confluent.cloud:9092",
                restEndpoint=f"https://{resource_id}.gcp.confluent.cloud:443",
                rbacCrn=f"crn://confluent.cloud/organization=org-test/cloud-cluster={resource_id}",
            )
        elif args.typ == SERVICE_ACCOUNT:
            outputs.update(apiVersion="iam/v2", kind="ServiceAccount")
        elif args.typ == API_KEY:
            outputs["secret"] = f"{args.name}-secret"
        elif args.typ == KSQL_CLUSTER:
            outputs["restEndpoint"] = f"https://{resource_id}.gcp.confluent.cloud:443"
        return [resource_id, outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        self.calls.append(args)
        if args.token == GET_SCHEMA_REGISTRY:
            return dict(SCHEMA_REGISTRY)
        return {}

    def of_type(self, typ: str) -> list[pulumi.runtime.MockResourceArgs]:
        return [r for r in self.resources if r.typ == typ]

    def named(self, name: str) -> pulumi.runtime.MockResourceArgs:
        matches = [r for r in self.resources if r.name == name]
        assert len(matches) == 1, f"expected one resource named {name}, got {len(matches)}"
        return matches[0]


def deploy(build):
    """Run ``build`` on the mocked engine and wait for every registration."""
    result = {}

    @pulumi.runtime.test
    def run():
        result["value"] = build()

    run()
    return result.get("value")


def load_program():
    spec = importlib.util.spec_from_file_location(
        "stack_program", INFRA_DIR / "__main__.py"
    )
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def credentials_file(tmp_path: Path) -> Path:
    path = tmp_path / "gcp-credentials.json"
    path.write_text(
        json.dumps(
            {
                "type": "service_account",
                "project_id": "test-project",
                "client_email": "sink@test-project.iam.gserviceaccount.com",
            }
        )
    )
    return path


@pytest.fixture
def mocks() -> StackMocks:
    stack_mocks = StackMocks()
    pulumi.runtime.set_mocks(stack_mocks, project=PROJECT, stack="test", preview=False)
    return stack_mocks


@pytest.fixture
def configure(mocks: StackMocks, credentials_file: Path):
    """Set the stack configuration; call again with overrides to change it."""
    base = {
        f"{PROJECT}:resourcePrefix": "test",
        "gcp:credentials": str(credentials_file),
        "gcp:project": "test-project",
        "gcp:region": "europe-west3",
        "kafka:topics": "['orders', 'payments']",
    }

    def apply(overrides: dict[str, str] | None = None, drop: tuple[str, ...] = ()):
        config = {**base, **(overrides or {})}
        for key in drop:
            config.pop(key, None)
        pulumi.runtime.set_all_config(config)

    apply()
    return apply


@pytest.fixture
def dependency_edges(monkeypatch: pytest.MonkeyPatch):
    """Record the explicit depends_on edges of every resource, keyed by resource name."""
    names: dict[int, str] = {}
    edges: dict[str, list] = {}
    original_init = pulumi.CustomResource.__init__

    def recording_init(self, t, name, props=None, opts=None, *args, **kwargs):
        names[id(self)] = name
        depends_on = opts.depends_on if opts is not None else None
        edges[name] = list(depends_on or [])
        original_init(self, t, name, props, opts, *args, **kwargs)

    monkeypatch.setattr(pulumi.CustomResource, "__init__", recording_init)

    def resolve() -> dict[str, set[str]]:
        return {
            name: {names[id(dep)] for dep in deps} for name, deps in edges.items()
        }

    return resolve


@pytest.fixture
def protected_resources(monkeypatch: pytest.MonkeyPatch):
    """Record the protect option every resource is declared with, keyed by resource name."""
    protected: dict[str, bool] = {}
    original_init = pulumi.CustomResource.__init__

    def recording_init(self, t, name, props=None, opts=None, *args, **kwargs):
        protected[name] = bool(opts is not None and opts.protect)
        original_init(self, t, name, props, opts, *args, **kwargs)

    monkeypatch.setattr(pulumi.CustomResource, "__init__", recording_init)
    return lambda: dict(protected)
