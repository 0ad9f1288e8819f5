"""Dagster Definitions - Repository Configuration.

Defines jobs, resources, schedules and sensors for background artifact
work: deferred byte transfer of placeholder artifacts and the daily sweep
of expired provider locators.
"""

from dagster import (
    DefaultScheduleStatus,
    Definitions,
    EnvVar,
    ScheduleDefinition,
)

from libs.models import ArtifactSettings

from .jobs import sweep_stale_locators_job, transfer_artifact_job
from .resources import MetadataResource, MinIOResource, OpenAIResource
from .sensors import pending_transfer_sensor


# =============================================================================
# Schedules
# =============================================================================

sweep_stale_locators_schedule = ScheduleDefinition(
    name="sweep_stale_locators_schedule",
    job=sweep_stale_locators_job,
    cron_schedule="0 3 * * *",
    run_config={
        "ops": {
            "sweep_stale_locators": {
                "config": {"locator_ttl_hours": ArtifactSettings().locator_ttl_hours}
            }
        }
    },
    default_status=DefaultScheduleStatus.RUNNING,
    description="Daily sweep of provider sandbox locators past their TTL",
)


# =============================================================================
# Definitions
# =============================================================================

defs = Definitions(
    jobs=[
        transfer_artifact_job,
        sweep_stale_locators_job,
    ],
    resources={
        "openai": OpenAIResource(
            api_key=EnvVar("OPENAI_API_KEY"),
        ),
        "minio": MinIOResource(
            endpoint=EnvVar("MINIO_ENDPOINT"),
            access_key=EnvVar("MINIO_ROOT_USER"),
            secret_key=EnvVar("MINIO_ROOT_PASSWORD"),
            use_ssl=False,
            bucket="assistant-artifacts",
        ),
        "metadata": MetadataResource(
            connection_string=EnvVar("METADATA_DATABASE_URL"),
        ),
    },
    schedules=[sweep_stale_locators_schedule],
    sensors=[pending_transfer_sensor],
)
