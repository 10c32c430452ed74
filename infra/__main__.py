"""Orchestrator: declare the Confluent Cloud to BigQuery streaming stack.
Factories run in dependency order so each one finds what it references on the ResourcesManager.
"""

import resources_manager as resources
import resources_confluent as cflt
import resources_gcp as gcp


def main():
    rsm = resources.ResourcesManager()

    gcp.create_provider(rsm)
    gcp.create_bigquery_dataset(rsm)

    cflt.create_environment(rsm)
    cflt.create_kafka_cluster(rsm)
    cflt.lookup_schema_registry(rsm)
    cflt.create_app_manager(rsm)

    for topic_name in rsm.kafka_topics:
        cflt.create_topic(rsm, topic_name)

    cflt.create_ksqldb_cluster(rsm)
    cflt.create_datagen_connector(rsm)
    cflt.create_bigquery_sink_connector(rsm)

    return rsm


if __name__ == "__main__":
    main()
