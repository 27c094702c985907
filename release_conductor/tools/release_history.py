# release_conductor/tools/release_history.py
"""
release_history tool implementation.

Returns the activity log of a release and of its tasks and cycles.
"""

import logging

from fastmcp.exceptions import ToolError

from release_conductor.models.responses import ActivityEntryView, HistoryResponse
from release_conductor.models.store import ReleaseStore
from release_conductor.validation.sanitize import sanitize_release_id

logger = logging.getLogger(__name__)


async def release_history(release_id: str, store: ReleaseStore, limit: int = 200) -> dict:
    """
    Activity log for a release, oldest first.

    Args:
        release_id: Release identifier
        store: Release storage instance
        limit: Most recent entries to return

    Returns:
        HistoryResponse as camelCase dict
    """
    sanitized_id = sanitize_release_id(release_id)
    release = await store.get_release(sanitized_id)
    if release is None:
        raise ToolError(f"Release '{sanitized_id}' not found.")

    entity_ids = {sanitized_id}
    entity_ids.update(t.task_id for t in await store.list_tasks(sanitized_id))
    entity_ids.update(c.cycle_id for c in await store.list_cycles(sanitized_id))

    entries = [
        e for e in await store.list_activity(tenant_id=release.tenant_id) if e.entity_id in entity_ids
    ]
    if limit > 0:
        entries = entries[-limit:]

    views = [
        ActivityEntryView(
            entry_id=e.entry_id,
            entity_type=e.entity_type.value,
            entity_id=e.entity_id,
            activity_type=e.activity_type.value,
            previous_value=e.previous_value,
            new_value=e.new_value,
            actor=e.actor,
            created_at=e.created_at.isoformat(),
        )
        for e in entries
    ]
    return HistoryResponse(release_id=sanitized_id, entries=views).model_dump(by_alias=True)
