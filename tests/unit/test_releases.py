# tests/unit/test_releases.py
"""Unit tests for release creation and version resolution."""

from datetime import date, datetime, timezone

import pytest
from conftest import T0, make_config, make_release

from release_conductor.models.enums import (
    ActivityType,
    CronStatus,
    Platform,
    ReleaseStatus,
    ReleaseType,
)
from release_conductor.models.records import PlatformTarget
from release_conductor.orchestration.releases import (
    advance_schedule,
    create_release,
    create_scheduled_release,
    initial_schedule,
    latest_versions,
)


@pytest.mark.asyncio
async def test_manual_release_defaults(context, release_config, store):
    """A manual release kicks off now with the configured initial versions."""
    release = await create_release(context, release_config, actor="alice")

    assert release.status == ReleaseStatus.PENDING
    assert release.cron_status == CronStatus.PENDING
    assert release.kickoff_date == T0
    assert release.version == "1.0.0"
    assert release.branch == "release/1.0.0"
    assert release.base_branch == "main"
    assert release.created_by == "alice"
    assert release.upcoming_regressions == []
    assert await store.get_release(release.release_id) is not None


@pytest.mark.asyncio
async def test_creation_is_logged(context, release_config, store):
    release = await create_release(context, release_config, actor="alice")

    entries = await store.list_activity(entity_id=release.release_id)
    assert entries[0].activity_type == ActivityType.RELEASE_CREATED
    assert entries[0].previous_value is None
    assert entries[0].new_value["version"] == "1.0.0"
    assert entries[0].actor == "alice"


@pytest.mark.asyncio
async def test_second_release_bumps_from_latest(context, release_config):
    await create_release(context, release_config)

    second = await create_release(context, release_config, release_type=ReleaseType.MAJOR)

    assert second.version == "2.0.0"
    assert second.release_type == ReleaseType.MAJOR


@pytest.mark.asyncio
async def test_explicit_versions_override(context, release_config):
    release = await create_release(
        context, release_config, versions={"IOS": "3.1.0", "ANDROID": "3.0.5"}
    )

    by_platform = {t.platform: t.version for t in release.platform_targets}
    assert by_platform == {Platform.ANDROID: "3.0.5", Platform.IOS: "3.1.0"}


@pytest.mark.asyncio
async def test_archived_releases_do_not_count(context, release_config, store):
    await store.add_release(
        make_release(
            release_id="archived0001",
            status=ReleaseStatus.ARCHIVED,
            cron_status=CronStatus.COMPLETED,
            platform_targets=[PlatformTarget(Platform.ANDROID, "PLAY_STORE", "5.0.0")],
        )
    )
    await store.add_release(make_release(release_id="active000001"))

    latest = await latest_versions(context, release_config)

    assert latest == {("ANDROID", "PLAY_STORE"): "1.3.0", ("IOS", "APP_STORE"): "1.3.0"}


@pytest.mark.asyncio
async def test_other_configurations_do_not_count(context, release_config, store):
    await store.add_release(make_release(release_config_id="other-app"))

    assert await latest_versions(context, release_config) == {}


@pytest.mark.asyncio
async def test_scheduled_release_dates(context):
    config = make_config(
        scheduling={
            "first_kickoff_date": "2026-03-02",
            "timezone": "Europe/Berlin",
            "target_release_offset_days": 3,
            "regression_slots": [{"offset_days": 1, "automation_runs": True}],
        }
    )

    release = await create_scheduled_release(context, config, date(2026, 3, 2))

    # Berlin is UTC+1 in early March
    assert release.kickoff_date == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    assert release.kickoff_reminder_date == datetime(2026, 2, 27, 8, 0, tzinfo=timezone.utc)
    assert release.target_release_date == datetime(2026, 3, 5, 17, 0, tzinfo=timezone.utc)
    assert len(release.upcoming_regressions) == 1
    assert release.upcoming_regressions[0].scheduled_at == datetime(
        2026, 3, 3, 9, 0, tzinfo=timezone.utc
    )
    assert release.upcoming_regressions[0].automation_runs is True
    assert release.created_by == "system"


@pytest.mark.asyncio
async def test_scheduled_release_requires_schedule(context, release_config):
    with pytest.raises(ValueError, match="has no schedule"):
        await create_scheduled_release(context, release_config, date(2026, 3, 2))


def test_initial_schedule_rolls_to_working_day():
    config = make_config(
        scheduling={"first_kickoff_date": "2026-03-07", "target_release_offset_days": 5}
    )

    schedule = initial_schedule(config)

    assert schedule.next_kickoff_date == date(2026, 3, 9)
    assert schedule.tenant_id == "tenant-1"
    assert advance_schedule(schedule, config) == date(2026, 3, 23)
