# tests/unit/test_activity.py
"""Unit tests for the activity log recorder."""

import logging
from datetime import datetime, timezone

import pytest
from conftest import T0

from release_conductor.models.enums import ActivityType, EntityType, StageStatus
from release_conductor.models.memory_store import InMemoryReleaseStore
from release_conductor.orchestration.activity import ActivityRecorder


class FailingStore(InMemoryReleaseStore):
    async def append_activity(self, entry):
        raise OSError("disk full")


@pytest.mark.asyncio
async def test_record_stores_plain_values(store, clock):
    recorder = ActivityRecorder(store, clock=clock)

    stored = await recorder.record(
        EntityType.RELEASE,
        "rel00000001",
        "tenant-1",
        ActivityType.STAGE_STATUS,
        {"stage": 1, "status": StageStatus.PENDING},
        {"stage": 1, "status": StageStatus.IN_PROGRESS, "at": datetime(2026, 3, 2, tzinfo=timezone.utc)},
        actor="alice",
    )

    assert stored is True
    entry = (await store.list_activity())[0]
    assert entry.previous_value == {"stage": 1, "status": "PENDING"}
    assert entry.new_value == {"stage": 1, "status": "IN_PROGRESS", "at": "2026-03-02T00:00:00+00:00"}
    assert entry.actor == "alice"
    assert entry.created_at == T0


@pytest.mark.asyncio
async def test_default_actor_is_system(store):
    recorder = ActivityRecorder(store)

    await recorder.record(
        EntityType.TASK, "task00000001", "tenant-1", ActivityType.TASK_STATUS, None, "PENDING"
    )

    assert (await store.list_activity())[0].actor == "system"


@pytest.mark.asyncio
async def test_failed_write_is_counted_not_raised(caplog):
    recorder = ActivityRecorder(FailingStore())

    with caplog.at_level(logging.ERROR):
        stored = await recorder.record(
            EntityType.RELEASE, "rel00000001", "tenant-1", ActivityType.PHASE, None, "KICKOFF"
        )

    assert stored is False
    assert recorder.failed_writes == 1
    assert "Activity log write failed" in caplog.text


@pytest.mark.asyncio
async def test_list_activity_filters(store):
    recorder = ActivityRecorder(store)
    await recorder.record(EntityType.RELEASE, "rel-a-000001", "tenant-1", ActivityType.PHASE, None, "KICKOFF")
    await recorder.record(EntityType.RELEASE, "rel-b-000001", "tenant-2", ActivityType.PHASE, None, "KICKOFF")

    assert len(await store.list_activity()) == 2
    assert [e.entity_id for e in await store.list_activity(entity_id="rel-a-000001")] == ["rel-a-000001"]
    assert [e.tenant_id for e in await store.list_activity(tenant_id="tenant-2")] == ["tenant-2"]
