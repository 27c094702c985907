# release_conductor/models/memory_store.py
"""
In-memory release storage.

Single-process only: lease checks are atomic because no await happens between
check and set. Used by tests and by ad-hoc embedding of the engine.
"""

import copy
import logging
from dataclasses import fields, replace
from datetime import datetime, timedelta

from release_conductor.models.enums import TERMINAL_RELEASE_STATUSES, CronStatus, Stage
from release_conductor.models.records import (
    ActivityLogEntry,
    RegressionCycle,
    Release,
    ReleaseSchedule,
    Task,
    utc_now,
    validate_release,
)
from release_conductor.models.store import ReleaseStore

logger = logging.getLogger(__name__)


def _apply(record, kind: str, record_id: str, kwargs: dict):
    """Return a copy of `record` with `kwargs` applied, rejecting unknown fields."""
    valid_fields = {f.name for f in fields(record)}
    invalid = set(kwargs) - valid_fields
    if invalid:
        raise ValueError(f"Invalid field names for {kind} {record_id}: {invalid}")
    return replace(record, **kwargs)


class InMemoryReleaseStore(ReleaseStore):
    """
    Simple in-memory release storage.

    Returns deep copies so callers never mutate stored state by accident.
    """

    def __init__(self) -> None:
        """Initialize empty store."""
        self._releases: dict[str, Release] = {}
        self._tasks: dict[str, Task] = {}
        self._cycles: dict[str, RegressionCycle] = {}
        self._schedules: dict[str, ReleaseSchedule] = {}
        self._activity: list[ActivityLogEntry] = []
        self._locks: dict[str, tuple[str, datetime]] = {}
        logger.info("Initialized InMemoryReleaseStore")

    async def add_release(self, release: Release) -> None:
        if release.release_id in self._releases:
            raise ValueError(f"Release {release.release_id} already exists")

        validate_release(release)
        self._releases[release.release_id] = copy.deepcopy(release)
        logger.info(f"Added release {release.release_id} to store")

    async def get_release(self, release_id: str) -> Release | None:
        release = self._releases.get(release_id)
        return copy.deepcopy(release) if release else None

    async def list_releases(self, tenant_id: str | None = None) -> list[Release]:
        releases = [
            r for r in self._releases.values() if tenant_id is None or r.tenant_id == tenant_id
        ]
        return copy.deepcopy(sorted(releases, key=lambda r: r.created_at, reverse=True))

    async def list_active_releases(self) -> list[Release]:
        active = [
            r
            for r in self._releases.values()
            if r.status not in TERMINAL_RELEASE_STATUSES
            and r.cron_status in (CronStatus.PENDING, CronStatus.RUNNING)
        ]
        return copy.deepcopy(sorted(active, key=lambda r: r.created_at))

    async def update_release(self, release_id: str, **kwargs) -> Release:
        release = self._releases.get(release_id)
        if not release:
            raise ValueError(f"Release {release_id} not found")

        kwargs.setdefault("updated_at", utc_now())
        updated = _apply(release, "release", release_id, kwargs)
        validate_release(updated)
        self._releases[release_id] = updated
        logger.debug(f"Updated release {release_id}: {list(kwargs.keys())}")
        return copy.deepcopy(updated)

    async def add_tasks(self, tasks: list[Task]) -> None:
        for task in tasks:
            if task.task_id in self._tasks:
                raise ValueError(f"Task {task.task_id} already exists")
        for task in tasks:
            self._tasks[task.task_id] = copy.deepcopy(task)

    async def get_task(self, task_id: str) -> Task | None:
        task = self._tasks.get(task_id)
        return copy.deepcopy(task) if task else None

    async def list_tasks(
        self,
        release_id: str,
        stage: Stage | None = None,
        cycle_id: str | None = None,
    ) -> list[Task]:
        tasks = [
            t
            for t in self._tasks.values()
            if t.release_id == release_id
            and (stage is None or t.stage == stage)
            and (cycle_id is None or t.cycle_id == cycle_id)
        ]
        return copy.deepcopy(sorted(tasks, key=lambda t: t.sequence))

    async def update_task(self, task_id: str, **kwargs) -> Task:
        task = self._tasks.get(task_id)
        if not task:
            raise ValueError(f"Task {task_id} not found")

        kwargs.setdefault("updated_at", utc_now())
        updated = _apply(task, "task", task_id, kwargs)
        self._tasks[task_id] = updated
        return copy.deepcopy(updated)

    async def add_cycle(self, cycle: RegressionCycle) -> None:
        if cycle.cycle_id in self._cycles:
            raise ValueError(f"Cycle {cycle.cycle_id} already exists")
        self._cycles[cycle.cycle_id] = copy.deepcopy(cycle)

    async def list_cycles(self, release_id: str) -> list[RegressionCycle]:
        cycles = [c for c in self._cycles.values() if c.release_id == release_id]
        return copy.deepcopy(sorted(cycles, key=lambda c: c.sequence))

    async def update_cycle(self, cycle_id: str, **kwargs) -> RegressionCycle:
        cycle = self._cycles.get(cycle_id)
        if not cycle:
            raise ValueError(f"Cycle {cycle_id} not found")

        updated = _apply(cycle, "cycle", cycle_id, kwargs)
        self._cycles[cycle_id] = updated
        return copy.deepcopy(updated)

    async def get_schedule(self, config_id: str) -> ReleaseSchedule | None:
        schedule = self._schedules.get(config_id)
        return copy.deepcopy(schedule) if schedule else None

    async def save_schedule(self, schedule: ReleaseSchedule) -> None:
        self._schedules[schedule.config_id] = replace(schedule, updated_at=utc_now())

    async def append_activity(self, entry: ActivityLogEntry) -> None:
        self._activity.append(entry)

    async def list_activity(
        self, entity_id: str | None = None, tenant_id: str | None = None
    ) -> list[ActivityLogEntry]:
        return [
            e
            for e in self._activity
            if (entity_id is None or e.entity_id == entity_id)
            and (tenant_id is None or e.tenant_id == tenant_id)
        ]

    async def acquire_lock(
        self, resource_id: str, owner: str, ttl_seconds: float, now: datetime
    ) -> bool:
        held = self._locks.get(resource_id)
        if held is not None:
            holder, expires_at = held
            if holder != owner and expires_at > now:
                return False

        self._locks[resource_id] = (owner, now + timedelta(seconds=ttl_seconds))
        return True

    async def release_lock(self, resource_id: str, owner: str) -> None:
        held = self._locks.get(resource_id)
        if held is not None and held[0] == owner:
            del self._locks[resource_id]
