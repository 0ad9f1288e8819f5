# =============================================================================
# Sweep Op - Clear Expired Transient Locators
# =============================================================================
# Provider sandbox locators stop resolving once the provider expires them.
# Records keep their durable URL; only the locator is cleared.
# =============================================================================

from datetime import datetime, timedelta, timezone
from typing import Optional

from dagster import Config, OpExecutionContext, op


class SweepConfig(Config):
    """Run config for sweep_stale_locators."""

    locator_ttl_hours: int = 48


def _sweep_stale_locators(metadata, ttl_hours: int, log, now: Optional[datetime] = None) -> int:
    """
    Core logic for clearing expired locators.

    This function is extracted for easier unit testing without Dagster context.

    Returns:
        Number of records updated
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=ttl_hours)

    log.info(f"Clearing transient locators created before {cutoff.isoformat()}")
    cleared = metadata.clear_stale_locators(cutoff)
    log.info(f"Cleared {cleared} stale locator(s)")
    return cleared


@op(required_resource_keys={"metadata"})
def sweep_stale_locators(context: OpExecutionContext, config: SweepConfig) -> int:
    """Clear transient locators older than the configured TTL."""
    return _sweep_stale_locators(
        metadata=context.resources.metadata,
        ttl_hours=config.locator_ttl_hours,
        log=context.log,
    )
