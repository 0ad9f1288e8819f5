"""Dagster Ops - Reusable Computation Units."""

from .sweep_op import SweepConfig, sweep_stale_locators
from .transfer_op import transfer_artifact

__all__ = [
    "SweepConfig",
    "sweep_stale_locators",
    "transfer_artifact",
]
