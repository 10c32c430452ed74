import pulumi
import pulumi_gcp as gcp
import resources_manager as resources


def create_provider(rsm: resources.ResourcesManager):
    """Create the GCP provider from the stack variables."""

    provider = gcp.Provider(
        f"{rsm.resource_prefix}-gcp-provider",
        credentials=pulumi.Output.secret(rsm.gcp_credentials_json()),
        project=rsm.gcp_project,
        region=rsm.gcp_region,
        zone=rsm.gcp_zone,
    )
    rsm.gcp_provider = provider


def create_bigquery_dataset(rsm: resources.ResourcesManager):
    """Create the BigQuery dataset the sink connector writes into."""

    assert rsm.gcp_provider, "GCP Provider not defined"

    dataset = gcp.bigquery.Dataset(
        f"{rsm.resource_prefix}-bq-dataset",
        opts=pulumi.ResourceOptions(
            protect=rsm.protect_resources, provider=rsm.gcp_provider
        ),
        dataset_id=rsm.bq_dataset_id,
        friendly_name=rsm.bq_friendly_name,
        description=f"{rsm.resource_prefix} tables streamed from Confluent Cloud",
        location=rsm.bq_location,
        delete_contents_on_destroy=rsm.bq_delete_contents_on_destroy,
        labels={
            **(rsm.default_labels),
            "purpose": "confluent-bigquery-sink",
        },
    )
    pulumi.export("bigquery_dataset_id", dataset.dataset_id)
    rsm.gcp_bigquery_dataset = dataset
