"""Dagster Sensors - Event-Driven Job Triggers."""

from .pending_transfer_sensor import pending_transfer_sensor

__all__ = ["pending_transfer_sensor"]
