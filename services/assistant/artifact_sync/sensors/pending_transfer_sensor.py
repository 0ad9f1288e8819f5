"""Pending transfer sensor.

Polls artifact metadata for PENDING placeholders and requests one
transfer_artifact_job run per artifact. Dagster skips run keys it has
already launched, so a placeholder is only requested once.
"""

from dagster import (
    DefaultSensorStatus,
    RunRequest,
    SensorEvaluationContext,
    SkipReason,
    sensor,
)

from libs.errors import ArtifactSyncError
from libs.models import ArtifactRecord

from ..resources import MetadataResource

TRANSFER_JOB_NAME = "transfer_artifact_job"
MAX_REQUESTS_PER_TICK = 50


def build_transfer_run_request(record: ArtifactRecord) -> RunRequest:
    """
    Build the RunRequest for one pending artifact.

    The artifact id goes in as the transfer_artifact op input.
    """
    return RunRequest(
        run_key=f"transfer:{record.id}",
        job_name=TRANSFER_JOB_NAME,
        run_config={
            "ops": {
                "transfer_artifact": {
                    "inputs": {"artifact_id": {"value": record.id}},
                }
            }
        },
        tags={
            "artifact_id": record.id,
            "thread_id": record.thread_id,
            "filename": record.filename,
        },
    )


@sensor(
    minimum_interval_seconds=30,
    default_status=DefaultSensorStatus.RUNNING,
    name="pending_transfer_sensor",
    job_name=TRANSFER_JOB_NAME,
    description="Requests byte transfer for placeholder artifacts found in assistant output",
)
def pending_transfer_sensor(context: SensorEvaluationContext, metadata: MetadataResource):
    """
    Yield a RunRequest per PENDING artifact with a provider file id.

    Yields:
        RunRequest: One per pending artifact (run_key "transfer:{id}")
        SkipReason: Nothing pending, or the metadata store is unavailable
    """
    try:
        pending = metadata.list_pending_transfers(limit=MAX_REQUESTS_PER_TICK)
    except ArtifactSyncError as e:
        context.log.error(f"Failed to list pending transfers: {e}")
        yield SkipReason(f"Error listing pending transfers: {e}")
        return

    if not pending:
        yield SkipReason("No pending artifact transfers")
        return

    for record in pending:
        context.log.info(
            f"Requesting transfer for artifact {record.id} "
            f"({record.filename}, thread {record.thread_id})"
        )
        yield build_transfer_run_request(record)
