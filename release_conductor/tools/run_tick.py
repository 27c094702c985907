# release_conductor/tools/run_tick.py
"""
run_tick tool implementation.

Runs one scheduler pass on demand (for an external cron or for operators).
"""

import logging

from release_conductor.models.responses import TickResponse
from release_conductor.orchestration.scheduler import ReleaseScheduler

logger = logging.getLogger(__name__)


async def run_tick(scheduler: ReleaseScheduler) -> dict:
    """
    Run one scheduler tick.

    Per-release errors are reported in the response, not raised.

    Returns:
        TickResponse as camelCase dict
    """
    result = await scheduler.tick()
    response = TickResponse(
        success=result.success,
        processed_count=result.processed_count,
        skipped_locked=result.skipped_locked,
        created_releases=result.created_releases,
        errors=result.errors,
        duration_seconds=round(result.duration_seconds, 3),
    )
    return response.model_dump(by_alias=True)
