# tests/unit/test_sqlite_store.py
"""
Unit tests for SQLiteReleaseStore persistence.

Tests CRUD operations, record validation, lease locks, schedules and
activity-log serialization.
"""

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from conftest import T0, in_regression, make_release

from release_conductor.errors import ErrorKind, InvalidStateError
from release_conductor.models.enums import (
    ActivityType,
    CronStatus,
    EntityType,
    PauseType,
    Platform,
    RegressionCycleStatus,
    ReleaseStatus,
    Stage,
    TaskStatus,
    TaskType,
)
from release_conductor.models.records import (
    ActivityLogEntry,
    RegressionCycle,
    RegressionSlot,
    ReleaseSchedule,
    Task,
)
from release_conductor.models.sqlite_store import SQLiteReleaseStore


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteReleaseStore:
    """Create and initialize a test SQLite store."""
    store = SQLiteReleaseStore(str(tmp_path / "test_releases.db"))
    await store.initialize()
    return store


@pytest.mark.asyncio
async def test_release_roundtrip(store: SQLiteReleaseStore):
    """Test adding a release and retrieving it preserves all fields."""
    release = make_release(
        kickoff_reminder_date=T0 - timedelta(days=1),
        target_release_date=T0 + timedelta(days=5),
        upcoming_regressions=[RegressionSlot(T0 + timedelta(days=1), automation_runs=True)],
        auto_transition_to_stage3=True,
        created_by="alice",
    )
    await store.add_release(release)

    retrieved = await store.get_release(release.release_id)

    assert retrieved is not None
    assert retrieved.platform_targets == release.platform_targets
    assert retrieved.upcoming_regressions == release.upcoming_regressions
    assert retrieved.kickoff_date == T0
    assert retrieved.kickoff_reminder_date == release.kickoff_reminder_date
    assert retrieved.target_release_date == release.target_release_date
    assert retrieved.status == ReleaseStatus.PENDING
    assert retrieved.cron == release.cron
    assert retrieved.auto_transition_to_stage2 is True
    assert retrieved.auto_transition_to_stage3 is True
    assert retrieved.created_by == "alice"
    assert retrieved.created_at == release.created_at
    assert retrieved.updated_at is not None  # Auto-set on add


@pytest.mark.asyncio
async def test_add_duplicate_release_raises_error(store: SQLiteReleaseStore):
    await store.add_release(make_release())

    with pytest.raises(ValueError, match="already exists"):
        await store.add_release(make_release())


@pytest.mark.asyncio
async def test_add_inconsistent_release_raises_error(store: SQLiteReleaseStore):
    """A paused cron status needs a pause reason."""
    with pytest.raises(InvalidStateError):
        await store.add_release(make_release(cron_status=CronStatus.PAUSED))

    assert await store.get_release("rel00000001") is None


@pytest.mark.asyncio
async def test_get_returns_none_for_unknown_release(store: SQLiteReleaseStore):
    assert await store.get_release("nonexistent") is None


@pytest.mark.asyncio
async def test_list_releases_newest_first_and_by_tenant(store: SQLiteReleaseStore):
    await store.add_release(make_release("rel-old-0001", created_at=T0 - timedelta(days=3)))
    await store.add_release(make_release("rel-new-0001", created_at=T0))
    await store.add_release(make_release("rel-other-01", tenant_id="tenant-2"))

    assert [r.release_id for r in await store.list_releases("tenant-1")] == [
        "rel-new-0001",
        "rel-old-0001",
    ]
    assert len(await store.list_releases()) == 3


@pytest.mark.asyncio
async def test_list_active_releases(store: SQLiteReleaseStore):
    """Only non-terminal releases with a running or pending cron are active."""
    await store.add_release(make_release("rel-pending1", created_at=T0 - timedelta(days=2)))
    await store.add_release(in_regression(release_id="rel-running1"))
    await store.add_release(
        in_regression(
            release_id="rel-paused01",
            cron_status=CronStatus.PAUSED,
            pause_type=PauseType.USER_REQUESTED,
        )
    )
    await store.add_release(
        make_release(
            "rel-archive1", status=ReleaseStatus.ARCHIVED, cron_status=CronStatus.COMPLETED
        )
    )

    active = await store.list_active_releases()

    assert [r.release_id for r in active] == ["rel-pending1", "rel-running1"]


@pytest.mark.asyncio
async def test_update_release(store: SQLiteReleaseStore):
    await store.add_release(make_release())

    updated = await store.update_release(
        "rel00000001",
        cron_status=CronStatus.PAUSED,
        pause_type=PauseType.TASK_FAILURE,
        current_phase="PAUSED_BY_FAILURE",
    )

    assert updated.pause_type == PauseType.TASK_FAILURE
    retrieved = await store.get_release("rel00000001")
    assert retrieved.cron_status == CronStatus.PAUSED
    assert retrieved.current_phase == "PAUSED_BY_FAILURE"


@pytest.mark.asyncio
async def test_update_release_rejects_inconsistent_pause(store: SQLiteReleaseStore):
    await store.add_release(make_release())

    with pytest.raises(InvalidStateError):
        await store.update_release("rel00000001", pause_type=PauseType.USER_REQUESTED)

    assert (await store.get_release("rel00000001")).pause_type == PauseType.NONE


@pytest.mark.asyncio
async def test_update_release_errors(store: SQLiteReleaseStore):
    with pytest.raises(ValueError, match="not found"):
        await store.update_release("nonexistent", status=ReleaseStatus.IN_PROGRESS)

    await store.add_release(make_release())
    with pytest.raises(ValueError, match="Invalid field names"):
        await store.update_release("rel00000001", invalid_field="value")


@pytest.mark.asyncio
async def test_tasks_roundtrip_and_filters(store: SQLiteReleaseStore):
    await store.add_release(make_release())
    fork = Task(
        task_id="taskfork0001",
        release_id="rel00000001",
        stage=Stage.KICKOFF,
        task_type=TaskType.FORK_BRANCH,
        sequence=1,
    )
    build = Task(
        task_id="taskbuild001",
        release_id="rel00000001",
        stage=Stage.KICKOFF,
        task_type=TaskType.TRIGGER_PRE_REGRESSION_BUILDS,
        sequence=2,
        depends_on=["taskfork0001"],
        optional=True,
        platform=Platform.IOS,
        params={"ticket_ids": ["PROJ-1"]},
    )
    rc = Task(
        task_id="taskrctag001",
        release_id="rel00000001",
        stage=Stage.REGRESSION,
        task_type=TaskType.CREATE_RC_TAG,
        sequence=1,
        cycle_id="cycle0000001",
    )
    await store.add_tasks([build, fork, rc])

    kickoff = await store.list_tasks("rel00000001", stage=Stage.KICKOFF)
    assert [t.task_id for t in kickoff] == ["taskfork0001", "taskbuild001"]
    assert kickoff[1].depends_on == ["taskfork0001"]
    assert kickoff[1].optional is True
    assert kickoff[1].platform == Platform.IOS
    assert kickoff[1].params == {"ticket_ids": ["PROJ-1"]}

    by_cycle = await store.list_tasks("rel00000001", cycle_id="cycle0000001")
    assert [t.task_id for t in by_cycle] == ["taskrctag001"]


@pytest.mark.asyncio
async def test_update_task_failure_fields(store: SQLiteReleaseStore):
    await store.add_release(make_release())
    await store.add_tasks(
        [
            Task(
                task_id="taskfork0001",
                release_id="rel00000001",
                stage=Stage.KICKOFF,
                task_type=TaskType.FORK_BRANCH,
                sequence=1,
            )
        ]
    )

    await store.update_task(
        "taskfork0001",
        status=TaskStatus.FAILED,
        error_kind=ErrorKind.REJECTION,
        error_message="repository archived",
        external_data={"branch": "release/1.3.0"},
        dispatched_at=T0,
    )

    task = await store.get_task("taskfork0001")
    assert task.status == TaskStatus.FAILED
    assert task.error_kind == ErrorKind.REJECTION
    assert task.error_message == "repository archived"
    assert task.external_data == {"branch": "release/1.3.0"}
    assert task.dispatched_at == T0


@pytest.mark.asyncio
async def test_add_tasks_is_all_or_nothing(store: SQLiteReleaseStore):
    await store.add_release(make_release())
    task = Task(
        task_id="taskfork0001",
        release_id="rel00000001",
        stage=Stage.KICKOFF,
        task_type=TaskType.FORK_BRANCH,
        sequence=1,
    )
    await store.add_tasks([task])

    other = Task(
        task_id="taskother001",
        release_id="rel00000001",
        stage=Stage.KICKOFF,
        task_type=TaskType.SEND_KICKOFF_MESSAGE,
        sequence=2,
    )
    with pytest.raises(ValueError, match="already exists"):
        await store.add_tasks([other, task])

    assert await store.get_task("taskother001") is None


@pytest.mark.asyncio
async def test_cycles(store: SQLiteReleaseStore):
    await store.add_release(in_regression())
    for sequence in (2, 1):
        await store.add_cycle(
            RegressionCycle(
                cycle_id=f"cycle000000{sequence}",
                release_id="rel00000001",
                sequence=sequence,
                tag=f"RC{sequence}",
                scheduled_at=T0,
                automation_runs=sequence == 2,
            )
        )

    await store.update_cycle(
        "cycle0000001", status=RegressionCycleStatus.DONE, completed_at=T0 + timedelta(hours=2)
    )

    cycles = await store.list_cycles("rel00000001")
    assert [c.tag for c in cycles] == ["RC1", "RC2"]
    assert cycles[0].status == RegressionCycleStatus.DONE
    assert cycles[0].completed_at == T0 + timedelta(hours=2)
    assert cycles[1].status == RegressionCycleStatus.NOT_STARTED
    assert cycles[1].automation_runs is True


@pytest.mark.asyncio
async def test_schedule_upsert(store: SQLiteReleaseStore):
    assert await store.get_schedule("mobile-app") is None

    await store.save_schedule(ReleaseSchedule("mobile-app", "tenant-1", date(2026, 3, 2)))
    await store.save_schedule(
        ReleaseSchedule(
            "mobile-app",
            "tenant-1",
            date(2026, 3, 16),
            last_created_release_id="rel00000001",
        )
    )

    schedule = await store.get_schedule("mobile-app")
    assert schedule.next_kickoff_date == date(2026, 3, 16)
    assert schedule.last_created_release_id == "rel00000001"
    assert schedule.enabled is True
    assert schedule.updated_at is not None


@pytest.mark.asyncio
async def test_activity_values_are_json(store: SQLiteReleaseStore):
    for n, (previous, new) in enumerate([(None, {"version": "1.3.0"}), ("PENDING", "IN_PROGRESS")]):
        await store.append_activity(
            ActivityLogEntry(
                entry_id=f"entry{n}",
                entity_type=EntityType.RELEASE,
                entity_id="rel00000001",
                tenant_id="tenant-1",
                activity_type=ActivityType.RELEASE_STATUS,
                previous_value=previous,
                new_value=new,
                actor="system",
                created_at=T0,
            )
        )

    entries = await store.list_activity(entity_id="rel00000001")

    assert [(e.previous_value, e.new_value) for e in entries] == [
        (None, {"version": "1.3.0"}),
        ("PENDING", "IN_PROGRESS"),
    ]
    assert entries[0].created_at == T0
    assert await store.list_activity(tenant_id="tenant-2") == []


class TestLocks:
    @pytest.mark.asyncio
    async def test_held_lock_blocks_other_owner(self, store: SQLiteReleaseStore):
        assert await store.acquire_lock("release:rel00000001", "a", 60, T0)
        assert not await store.acquire_lock("release:rel00000001", "b", 60, T0)

    @pytest.mark.asyncio
    async def test_owner_can_reacquire(self, store: SQLiteReleaseStore):
        assert await store.acquire_lock("release:rel00000001", "a", 60, T0)
        assert await store.acquire_lock("release:rel00000001", "a", 60, T0 + timedelta(seconds=30))

    @pytest.mark.asyncio
    async def test_expired_lock_is_taken_over(self, store: SQLiteReleaseStore):
        await store.acquire_lock("release:rel00000001", "a", 60, T0)

        assert await store.acquire_lock("release:rel00000001", "b", 60, T0 + timedelta(seconds=61))
        assert not await store.acquire_lock("release:rel00000001", "a", 60, T0 + timedelta(seconds=62))

    @pytest.mark.asyncio
    async def test_release_only_by_owner(self, store: SQLiteReleaseStore):
        await store.acquire_lock("release:rel00000001", "a", 60, T0)

        await store.release_lock("release:rel00000001", "b")
        assert not await store.acquire_lock("release:rel00000001", "b", 60, T0)

        await store.release_lock("release:rel00000001", "a")
        assert await store.acquire_lock("release:rel00000001", "b", 60, T0)
