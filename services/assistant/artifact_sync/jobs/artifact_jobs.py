"""Background artifact jobs (op-based).

transfer_artifact_job is triggered per artifact by pending_transfer_sensor;
sweep_stale_locators_job runs on the daily schedule in definitions.py.
"""

from dagster import job

from ..ops import sweep_stale_locators, transfer_artifact


@job(
    name="transfer_artifact_job",
    description="Copies a placeholder artifact's bytes from the provider to MinIO and commits its metadata",
)
def transfer_artifact_job():
    """
    Transfer one PENDING artifact.

    The artifact id is passed as an op input to transfer_artifact via run config.
    """
    transfer_artifact()


@job(
    name="sweep_stale_locators_job",
    description="Clears expired provider sandbox locators from artifact metadata",
)
def sweep_stale_locators_job():
    sweep_stale_locators()
