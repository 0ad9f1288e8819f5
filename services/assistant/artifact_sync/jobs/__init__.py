"""Dagster Jobs - Executable Workflows."""

from .artifact_jobs import sweep_stale_locators_job, transfer_artifact_job

__all__ = ["sweep_stale_locators_job", "transfer_artifact_job"]
