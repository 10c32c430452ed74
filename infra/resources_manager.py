import ast
import re
from typing import Optional

import pulumi
import pulumi_confluentcloud as confluentcloud
import pulumi_gcp as gcp

BIGQUERY_DATASET_ID_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,1024}$")
KAFKA_CLUSTER_TYPES = ("basic", "standard")


class ResourcesManager:
    """
    Read stack configuration and track declared resources
    """

    def __init__(self):
        cfg = pulumi.Config()
        self.resource_prefix: str = cfg.get("resourcePrefix") or "demo"
        self.protect_resources: bool = cfg.get_bool("protectResources") or False
        self.default_labels: dict[str, str] = ast.literal_eval(
            cfg.get("defaultLabels") or "{}"
        )
        # GCP provider
        gcpConfig = pulumi.Config("gcp")
        self.gcp_credentials_path: str = gcpConfig.require("credentials")
        self.gcp_project: str = gcpConfig.require("project")
        self.gcp_region: str = gcpConfig.get("region") or "us-central1"
        self.gcp_zone: str = gcpConfig.get("zone") or f"{self.gcp_region}-a"
        # BigQuery
        bqConfig = pulumi.Config("bigquery")
        self.bq_dataset_id: str = bqConfig.get("datasetId") or (
            f"{self.resource_prefix}_stream_sink".replace("-", "_")
        )
        self.bq_friendly_name: str = bqConfig.get("friendlyName") or self.bq_dataset_id
        self.bq_location: str = bqConfig.get("location") or self.gcp_region
        delete_contents = bqConfig.get_bool("deleteContentsOnDestroy")
        self.bq_delete_contents_on_destroy: bool = (
            True if delete_contents is None else delete_contents
        )
        # Kafka
        kafkaConfig = pulumi.Config("kafka")
        self.kafka_cluster_type: str = (kafkaConfig.get("clusterType") or "basic").lower()
        self.kafka_availability: str = kafkaConfig.get("availability") or "SINGLE_ZONE"
        self.kafka_cloud: str = kafkaConfig.get("cloud") or "GCP"
        self.kafka_region: str = kafkaConfig.get("region") or self.gcp_region
        self.kafka_topics: list[str] = ast.literal_eval(
            kafkaConfig.get("topics") or "['orders']"
        )
        self.kafka_partitions_count: int = int(
            kafkaConfig.get("partitionsCount") or "1"
        )
        self.stream_governance_package: str = (
            kafkaConfig.get("streamGovernancePackage") or "ESSENTIALS"
        )
        # ksqlDB
        ksqlConfig = pulumi.Config("ksqldb")
        self.ksqldb_csu: int = int(ksqlConfig.get("csu") or "1")
        # Datagen, disabled unless a quickstart is configured
        self.datagen_quickstart: str = pulumi.Config("datagen").get("quickstart") or ""

        self._validate()

        # GCP resources
        self.gcp_provider: Optional[gcp.Provider] = None
        self.gcp_bigquery_dataset: Optional[gcp.bigquery.Dataset] = None
        # CFLT resources
        self.cflt_environment: Optional[confluentcloud.Environment] = None
        self.cflt_kafka_cluster: Optional[confluentcloud.KafkaCluster] = None
        self.cflt_schema_registry: Optional[
            pulumi.Output[confluentcloud.GetSchemaRegistryClusterResult]
        ] = None
        self.cflt_app_manager_service_account: Optional[
            confluentcloud.ServiceAccount
        ] = None
        self.cflt_app_manager_cluster_admin_role: Optional[
            confluentcloud.RoleBinding
        ] = None
        self.cflt_app_manager_subject_write_role: Optional[
            confluentcloud.RoleBinding
        ] = None
        self.cflt_app_manager_kafka_api_key: Optional[confluentcloud.ApiKey] = None
        self.cflt_app_manager_schema_registry_api_key: Optional[
            confluentcloud.ApiKey
        ] = None
        self.cflt_topics: list[confluentcloud.KafkaTopic] = []
        self.cflt_ksql_service_account: Optional[confluentcloud.ServiceAccount] = None
        self.cflt_ksql_cluster_admin_role: Optional[confluentcloud.RoleBinding] = None
        self.cflt_ksql_subject_owner_role: Optional[confluentcloud.RoleBinding] = None
        self.cflt_ksql_cluster: Optional[confluentcloud.KsqlCluster] = None
        self.cflt_datagen_connector: Optional[confluentcloud.Connector] = None
        self.cflt_bigquery_sink_connector: Optional[confluentcloud.Connector] = None

    def _validate(self):
        if not BIGQUERY_DATASET_ID_PATTERN.match(self.bq_dataset_id):
            raise ValueError(
                f"Invalid BigQuery dataset id '{self.bq_dataset_id}': "
                "only letters, numbers and underscores are allowed"
            )
        if self.kafka_cluster_type not in KAFKA_CLUSTER_TYPES:
            raise ValueError(
                f"Unsupported Kafka cluster type '{self.kafka_cluster_type}', "
                f"expected one of {', '.join(KAFKA_CLUSTER_TYPES)}"
            )
        if not isinstance(self.kafka_topics, list) or not self.kafka_topics:
            raise ValueError(
                f"Kafka topics must be a non-empty list, got {self.kafka_topics!r}"
            )
        for topic_name in self.kafka_topics:
            if not isinstance(topic_name, str) or not topic_name:
                raise ValueError(f"Invalid Kafka topic name {topic_name!r}")
        if len(set(self.kafka_topics)) != len(self.kafka_topics):
            raise ValueError(f"Duplicate Kafka topic names in {self.kafka_topics}")
        if self.kafka_partitions_count < 1:
            raise ValueError("Kafka partitionsCount must be at least 1")
        if self.ksqldb_csu < 1:
            raise ValueError("ksqlDB csu must be at least 1")
        pulumi.log.debug(
            f"Stack '{self.resource_prefix}': project={self.gcp_project} "
            f"region={self.gcp_region} dataset={self.bq_dataset_id} "
            f"topics={self.kafka_topics}"
        )

    def gcp_credentials_json(self) -> str:
        """Read the GCP service account key file."""
        with open(self.gcp_credentials_path, "r") as f:
            return f.read()
