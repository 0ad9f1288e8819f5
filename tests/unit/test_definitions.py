# =============================================================================
# Unit Tests: Dagster Definitions
# =============================================================================

from services.assistant.artifact_sync.definitions import defs, sweep_stale_locators_schedule
from services.assistant.artifact_sync.sensors.pending_transfer_sensor import TRANSFER_JOB_NAME


def test_jobs_are_registered():
    assert defs.get_job_def(TRANSFER_JOB_NAME).name == TRANSFER_JOB_NAME
    assert defs.get_job_def("sweep_stale_locators_job").name == "sweep_stale_locators_job"


def test_sweep_schedule():
    assert sweep_stale_locators_schedule.cron_schedule == "0 3 * * *"
    assert sweep_stale_locators_schedule.job_name == "sweep_stale_locators_job"
