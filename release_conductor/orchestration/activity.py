# release_conductor/orchestration/activity.py
"""
Append-only activity log recorder.

A failed write never rolls back the transition it describes: it is logged
with traceback and counted so the degradation is visible.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

from release_conductor.models.enums import ActivityType, EntityType
from release_conductor.models.records import ActivityLogEntry, generate_id, utc_now
from release_conductor.models.store import ReleaseStore

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def _plain(value: Any) -> Any:
    """Reduce enums and datetimes to JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class ActivityRecorder:
    """Writes ActivityLogEntry records to the store."""

    def __init__(self, store: ReleaseStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock
        self.failed_writes = 0

    async def record(
        self,
        entity_type: EntityType,
        entity_id: str,
        tenant_id: str,
        transition_type: ActivityType,
        previous_value: Any,
        new_value: Any,
        actor: str = SYSTEM_ACTOR,
    ) -> bool:
        """
        Append one transition to the activity log.

        Args:
            entity_type: Kind of entity that changed
            entity_id: Identifier of that entity
            tenant_id: Owning tenant
            transition_type: Typed delta label
            previous_value: Value before the transition (None for creations)
            new_value: Value after the transition
            actor: User id or "system"

        Returns:
            True if the entry was stored, False if the write failed
        """
        entry = ActivityLogEntry(
            entry_id=generate_id(),
            entity_type=entity_type,
            entity_id=entity_id,
            tenant_id=tenant_id,
            activity_type=transition_type,
            previous_value=_plain(previous_value),
            new_value=_plain(new_value),
            actor=actor,
            created_at=self._clock(),
        )

        try:
            await self._store.append_activity(entry)
        except Exception:
            self.failed_writes += 1
            logger.error(
                f"Activity log write failed for {entity_type.value} {entity_id} "
                f"({transition_type.value}); total failed writes: {self.failed_writes}",
                exc_info=True,
            )
            return False

        return True
