import json
import os
import pulumi
import pulumi_confluentcloud as confluentcloud
import resources_manager as resources

BIGQUERY_SINK_DEFAULTS = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), "connect_bigquery_default.json"
)


def create_environment(rsm: resources.ResourcesManager):
    """Create a Confluent Cloud Environment with Stream Governance enabled."""

    environment = confluentcloud.Environment(
        f"{rsm.resource_prefix}-ccloud-env-bigquery-sink",
        opts=pulumi.ResourceOptions(protect=rsm.protect_resources),
        display_name=f"{rsm.resource_prefix}-bigquery-sink",
        stream_governance={
            "package": rsm.stream_governance_package,
        },
    )
    rsm.cflt_environment = environment


def create_kafka_cluster(rsm: resources.ResourcesManager):
    """Create the Confluent Cloud Kafka cluster next to the BigQuery dataset."""

    assert rsm.cflt_environment, "Confluent Environment not defined"

    # exactly one of basic/standard must be set
    cluster_type = {rsm.kafka_cluster_type: {}}
    kafka_cluster = confluentcloud.KafkaCluster(
        f"{rsm.resource_prefix}-ccloud-cluster-bigquery-sink",
        opts=pulumi.ResourceOptions(protect=rsm.protect_resources),
        display_name=f"{rsm.resource_prefix}-bigquery-sink",
        availability=rsm.kafka_availability,
        cloud=rsm.kafka_cloud,
        region=rsm.kafka_region,
        environment={
            "id": rsm.cflt_environment.id,
        },
        **cluster_type,
    )
    pulumi.export("kafka_bootstrap_endpoint", kafka_cluster.bootstrap_endpoint)
    pulumi.export("kafka_rest_endpoint", kafka_cluster.rest_endpoint)
    rsm.cflt_kafka_cluster = kafka_cluster


def lookup_schema_registry(rsm: resources.ResourcesManager):
    """Read the Schema Registry cluster Stream Governance provisions for the environment."""

    assert rsm.cflt_environment, "Confluent Environment not defined"
    assert rsm.cflt_kafka_cluster, "Confluent Kafka Cluster not defined"

    # the registry only exists once the first cluster of the environment is up
    schema_registry = confluentcloud.get_schema_registry_cluster_output(
        environment={
            "id": rsm.cflt_environment.id,
        },
        opts=pulumi.InvokeOutputOptions(depends_on=[rsm.cflt_kafka_cluster]),
    )
    pulumi.export("schema_registry_id", schema_registry.id)
    pulumi.export("schema_registry_rest_endpoint", schema_registry.rest_endpoint)
    rsm.cflt_schema_registry = schema_registry


def _subjects_crn(schema_registry) -> pulumi.Output[str]:
    return schema_registry.resource_name.apply(lambda crn: f"{crn}/subject=*")


def create_app_manager(rsm: resources.ResourcesManager):
    """Create the service account owning topics and connectors, with its role bindings and API keys."""

    assert rsm.cflt_environment, "Confluent Environment not defined"
    assert rsm.cflt_kafka_cluster, "Confluent Kafka Cluster not defined"
    assert rsm.cflt_schema_registry, "Confluent Schema Registry not defined"

    app_manager_name = f"{rsm.resource_prefix}-app-manager"
    app_manager = confluentcloud.ServiceAccount(
        app_manager_name,
        opts=pulumi.ResourceOptions(protect=rsm.protect_resources),
        display_name=app_manager_name,
        description=f"{rsm.resource_prefix} Service account managing topics and connectors",
    )

    cluster_admin_role = confluentcloud.RoleBinding(
        f"{app_manager_name}-cluster-admin",
        opts=pulumi.ResourceOptions(protect=rsm.protect_resources),
        principal=app_manager.id.apply(lambda id: f"User:{id}"),
        role_name="CloudClusterAdmin",
        crn_pattern=rsm.cflt_kafka_cluster.rbac_crn,
    )

    subject_write_role = confluentcloud.RoleBinding(
        f"{app_manager_name}-subject-write",
        opts=pulumi.ResourceOptions(protect=rsm.protect_resources),
        principal=app_manager.id.apply(lambda id: f"User:{id}"),
        role_name="DeveloperWrite",
        crn_pattern=_subjects_crn(rsm.cflt_schema_registry),
    )

    # keys are only usable once the granting role binding exists
    kafka_api_key = confluentcloud.ApiKey(
        f"{app_manager_name}-kafka-api-key",
        opts=pulumi.ResourceOptions(
            protect=rsm.protect_resources, depends_on=[cluster_admin_role]
        ),
        display_name=f"{app_manager_name}-kafka-api-key",
        description=f"Kafka API Key that is owned by '{app_manager_name}' service account",
        owner=confluentcloud.ApiKeyOwnerArgs(
            id=app_manager.id,
            api_version=app_manager.api_version,
            kind=app_manager.kind,
        ),
        managed_resource={
            "id": rsm.cflt_kafka_cluster.id,
            "api_version": rsm.cflt_kafka_cluster.api_version,
            "kind": rsm.cflt_kafka_cluster.kind,
            "environment": {"id": rsm.cflt_environment.id},
        },
    )

    schema_registry_api_key = confluentcloud.ApiKey(
        f"{app_manager_name}-schema-registry-api-key",
        opts=pulumi.ResourceOptions(
            protect=rsm.protect_resources, depends_on=[subject_write_role]
        ),
        display_name=f"{app_manager_name}-schema-registry-api-key",
        description=f"Schema Registry API Key that is owned by '{app_manager_name}' service account",
        owner=confluentcloud.ApiKeyOwnerArgs(
            id=app_manager.id,
            api_version=app_manager.api_version,
            kind=app_manager.kind,
        ),
        managed_resource={
            "id": rsm.cflt_schema_registry.id,
            "api_version": rsm.cflt_schema_registry.api_version,
            "kind": rsm.cflt_schema_registry.kind,
            "environment": {"id": rsm.cflt_environment.id},
        },
    )

    pulumi.export("app_manager_kafka_api_key", kafka_api_key.id)
    pulumi.export(
        "app_manager_kafka_api_secret", pulumi.Output.secret(kafka_api_key.secret)
    )
    pulumi.export("app_manager_schema_registry_api_key", schema_registry_api_key.id)
    pulumi.export(
        "app_manager_schema_registry_api_secret",
        pulumi.Output.secret(schema_registry_api_key.secret),
    )

    rsm.cflt_app_manager_service_account = app_manager
    rsm.cflt_app_manager_cluster_admin_role = cluster_admin_role
    rsm.cflt_app_manager_subject_write_role = subject_write_role
    rsm.cflt_app_manager_kafka_api_key = kafka_api_key
    rsm.cflt_app_manager_schema_registry_api_key = schema_registry_api_key


def create_topic(rsm: resources.ResourcesManager, topic_name: str):
    assert rsm.cflt_kafka_cluster, "Confluent Kafka Cluster not defined"
    assert rsm.cflt_app_manager_kafka_api_key, "Confluent Kafka API Key not defined"

    topic = confluentcloud.KafkaTopic(
        f"{rsm.resource_prefix}-{topic_name}-topic",
        opts=pulumi.ResourceOptions(protect=rsm.protect_resources),
        topic_name=topic_name,
        partitions_count=rsm.kafka_partitions_count,
        config={
            "cleanup.policy": "delete",
        },
        rest_endpoint=rsm.cflt_kafka_cluster.rest_endpoint,
        kafka_cluster={
            "id": rsm.cflt_kafka_cluster.id,
        },
        credentials={
            "key": rsm.cflt_app_manager_kafka_api_key.id,
            "secret": rsm.cflt_app_manager_kafka_api_key.secret,
        },
    )
    rsm.cflt_topics.append(topic)


def create_ksqldb_cluster(rsm: resources.ResourcesManager):
    """Create a ksqlDB cluster running as its own service account."""

    assert rsm.cflt_environment, "Confluent Environment not defined"
    assert rsm.cflt_kafka_cluster, "Confluent Kafka Cluster not defined"
    assert rsm.cflt_schema_registry, "Confluent Schema Registry not defined"

    ksql_name = f"{rsm.resource_prefix}-ksql"
    ksql_service_account = confluentcloud.ServiceAccount(
        ksql_name,
        opts=pulumi.ResourceOptions(protect=rsm.protect_resources),
        display_name=ksql_name,
        description=f"{rsm.resource_prefix} Service account for the ksqlDB cluster",
    )

    cluster_admin_role = confluentcloud.RoleBinding(
        f"{ksql_name}-cluster-admin",
        opts=pulumi.ResourceOptions(protect=rsm.protect_resources),
        principal=ksql_service_account.id.apply(lambda id: f"User:{id}"),
        role_name="CloudClusterAdmin",
        crn_pattern=rsm.cflt_kafka_cluster.rbac_crn,
    )

    # ksqlDB registers schemas for the streams and tables it creates
    subject_owner_role = confluentcloud.RoleBinding(
        f"{ksql_name}-subject-owner",
        opts=pulumi.ResourceOptions(protect=rsm.protect_resources),
        principal=ksql_service_account.id.apply(lambda id: f"User:{id}"),
        role_name="ResourceOwner",
        crn_pattern=_subjects_crn(rsm.cflt_schema_registry),
    )

    ksql_cluster = confluentcloud.KsqlCluster(
        f"{rsm.resource_prefix}-ccloud-ksqldb",
        opts=pulumi.ResourceOptions(
            protect=rsm.protect_resources,
            depends_on=[cluster_admin_role, subject_owner_role],
        ),
        display_name=f"{rsm.resource_prefix}-ksqldb",
        csu=rsm.ksqldb_csu,
        kafka_cluster={
            "id": rsm.cflt_kafka_cluster.id,
        },
        credential_identity={
            "id": ksql_service_account.id,
        },
        environment={
            "id": rsm.cflt_environment.id,
        },
    )
    pulumi.export("ksqldb_rest_endpoint", ksql_cluster.rest_endpoint)

    rsm.cflt_ksql_service_account = ksql_service_account
    rsm.cflt_ksql_cluster_admin_role = cluster_admin_role
    rsm.cflt_ksql_subject_owner_role = subject_owner_role
    rsm.cflt_ksql_cluster = ksql_cluster


def create_datagen_connector(rsm: resources.ResourcesManager):
    """Create a Datagen source connector feeding sample records into the first topic."""

    if not rsm.datagen_quickstart:
        pulumi.log.info("No datagen quickstart configured, skipping Datagen connector.")
        return

    assert rsm.cflt_environment, "Confluent Environment not defined"
    assert rsm.cflt_kafka_cluster, "Confluent Kafka Cluster not defined"
    assert rsm.cflt_app_manager_service_account, (
        "Confluent App Manager Service Account not defined"
    )
    assert rsm.cflt_app_manager_cluster_admin_role, (
        "Confluent App Manager Cluster Admin Role not defined"
    )
    assert rsm.cflt_app_manager_subject_write_role, (
        "Confluent App Manager Subject Write Role not defined"
    )
    assert rsm.cflt_topics, "Confluent Kafka Topics not defined"

    topic_name = rsm.kafka_topics[0]
    datagen_connector = confluentcloud.Connector(
        f"{rsm.resource_prefix}-ccloud-datagen-connector",
        opts=pulumi.ResourceOptions(
            protect=rsm.protect_resources,
            depends_on=[
                rsm.cflt_app_manager_cluster_admin_role,
                rsm.cflt_app_manager_subject_write_role,
                *rsm.cflt_topics,
            ],
        ),
        kafka_cluster={
            "id": rsm.cflt_kafka_cluster.id,
        },
        environment={
            "id": rsm.cflt_environment.id,
        },
        config_nonsensitive={
            "connector.class": "DatagenSource",
            "name": f"{rsm.resource_prefix}-datagen-{topic_name}",
            "kafka.auth.mode": "SERVICE_ACCOUNT",
            "kafka.service.account.id": rsm.cflt_app_manager_service_account.id,
            "kafka.topic": topic_name,
            "output.data.format": "AVRO",
            "quickstart": rsm.datagen_quickstart,
            "tasks.max": "1",
        },
    )
    pulumi.export("datagen_connector_id", datagen_connector.id)
    rsm.cflt_datagen_connector = datagen_connector


def create_bigquery_sink_connector(rsm: resources.ResourcesManager):
    """Create the fully managed connector streaming the topics into BigQuery."""

    # assert dependencies
    assert rsm.gcp_bigquery_dataset, "GCP BigQuery Dataset not defined"
    assert rsm.cflt_environment, "Confluent Environment not defined"
    assert rsm.cflt_kafka_cluster, "Confluent Kafka Cluster not defined"
    assert rsm.cflt_app_manager_service_account, (
        "Confluent App Manager Service Account not defined"
    )
    assert rsm.cflt_app_manager_cluster_admin_role, (
        "Confluent App Manager Cluster Admin Role not defined"
    )
    assert rsm.cflt_app_manager_subject_write_role, (
        "Confluent App Manager Subject Write Role not defined"
    )
    assert rsm.cflt_topics, "Confluent Kafka Topics not defined"

    sink_config = {}
    # load defaults
    with open(BIGQUERY_SINK_DEFAULTS, "r") as f:
        # add to it instead of replacing it
        sink_config = json.load(f)["config"]

    # Set required values
    sink_config["name"] = f"{rsm.resource_prefix}-bigquery-sink-connector"
    sink_config["topics"] = ",".join(rsm.kafka_topics)

    # Kafka auth
    sink_config["kafka.auth.mode"] = "SERVICE_ACCOUNT"
    sink_config["kafka.service.account.id"] = rsm.cflt_app_manager_service_account.id

    # BigQuery destination
    sink_config["project"] = rsm.gcp_project
    sink_config["datasets"] = rsm.gcp_bigquery_dataset.dataset_id

    bigquery_sink_connector = confluentcloud.Connector(
        f"{rsm.resource_prefix}-ccloud-bigquery-sink-connector",
        opts=pulumi.ResourceOptions(
            protect=rsm.protect_resources,
            depends_on=[
                rsm.cflt_app_manager_cluster_admin_role,
                rsm.cflt_app_manager_subject_write_role,
                *rsm.cflt_topics,
            ],
        ),
        kafka_cluster={
            "id": rsm.cflt_kafka_cluster.id,
        },
        environment={
            "id": rsm.cflt_environment.id,
        },
        config_sensitive={"keyfile": rsm.gcp_credentials_json()},
        config_nonsensitive=sink_config,
    )
    pulumi.export("bigquery_sink_connector_id", bigquery_sink_connector.id)
    rsm.cflt_bigquery_sink_connector = bigquery_sink_connector
