# release_conductor/tools/list_releases.py
"""
list_releases tool implementation.
"""

import logging

from release_conductor.models.responses import ListReleasesResponse, ReleaseSummary
from release_conductor.models.store import ReleaseStore

logger = logging.getLogger(__name__)


async def list_releases(store: ReleaseStore, tenant_id: str | None = None) -> dict:
    """
    List releases, newest first.

    Args:
        store: Release storage instance
        tenant_id: Restrict to one tenant

    Returns:
        ListReleasesResponse as camelCase dict
    """
    records = await store.list_releases(tenant_id)

    summaries = [
        ReleaseSummary(
            release_id=record.release_id,
            tenant_id=record.tenant_id,
            version=record.version,
            status=record.status.value,
            phase=record.current_phase,
            kickoff_date=record.kickoff_date.isoformat() if record.kickoff_date else None,
            created_at=record.created_at.isoformat(),
        )
        for record in records
    ]

    response = ListReleasesResponse(releases=summaries, total=len(summaries))
    logger.info(f"Listed {len(summaries)} releases")
    return response.model_dump(by_alias=True)
