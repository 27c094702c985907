# tests/unit/test_memory_store.py
"""Unit tests for InMemoryReleaseStore."""

from datetime import timedelta

import pytest
from conftest import T0, make_release

from release_conductor.errors import InvalidStateError
from release_conductor.models.enums import CronStatus, PauseType, ReleaseStatus, StageStatus


@pytest.mark.asyncio
async def test_returned_records_are_copies(store):
    """Mutating a returned release never changes stored state."""
    await store.add_release(make_release())

    release = await store.get_release("rel00000001")
    release.branch = "release/9.9.9"

    assert (await store.get_release("rel00000001")).branch == "release/1.3.0"


@pytest.mark.asyncio
async def test_add_duplicate_raises_error(store):
    await store.add_release(make_release())

    with pytest.raises(ValueError, match="already exists"):
        await store.add_release(make_release())


@pytest.mark.asyncio
async def test_update_validates_release(store):
    await store.add_release(make_release())

    with pytest.raises(InvalidStateError, match="not completed"):
        await store.update_release("rel00000001", status=ReleaseStatus.SUBMITTED)

    with pytest.raises(ValueError, match="Invalid field names"):
        await store.update_release("rel00000001", bogus=1)

    with pytest.raises(ValueError, match="not found"):
        await store.update_release("nonexistent", status=ReleaseStatus.IN_PROGRESS)


@pytest.mark.asyncio
async def test_update_sets_updated_at(store):
    await store.add_release(make_release())

    updated = await store.update_release(
        "rel00000001", status=ReleaseStatus.IN_PROGRESS, stage1_status=StageStatus.IN_PROGRESS
    )

    assert updated.updated_at is not None
    assert updated.stages.stage1 == StageStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_active_releases_oldest_first(store):
    await store.add_release(make_release("rel-newer-01", created_at=T0))
    await store.add_release(make_release("rel-older-01", created_at=T0 - timedelta(days=5)))
    await store.add_release(
        make_release(
            "rel-paused01", cron_status=CronStatus.PAUSED, pause_type=PauseType.USER_REQUESTED
        )
    )

    active = await store.list_active_releases()

    assert [r.release_id for r in active] == ["rel-older-01", "rel-newer-01"]


class TestLocks:
    @pytest.mark.asyncio
    async def test_lease_semantics(self, store):
        assert await store.acquire_lock("release:x", "a", 60, T0)
        assert not await store.acquire_lock("release:x", "b", 60, T0 + timedelta(seconds=59))
        assert await store.acquire_lock("release:x", "a", 60, T0 + timedelta(seconds=30))
        assert await store.acquire_lock("release:x", "b", 60, T0 + timedelta(seconds=91))

    @pytest.mark.asyncio
    async def test_release_by_owner(self, store):
        await store.acquire_lock("release:x", "a", 60, T0)
        await store.acquire_lock("release:y", "a", 60, T0)

        await store.release_lock("release:x", "b")
        assert not await store.acquire_lock("release:x", "b", 60, T0)

        await store.release_lock("release:x", "a")
        assert await store.acquire_lock("release:x", "b", 60, T0)
        assert not await store.acquire_lock("release:y", "b", 60, T0)
