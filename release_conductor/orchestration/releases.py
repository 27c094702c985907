# release_conductor/orchestration/releases.py
"""
Release creation, manual and from a configured cadence.

Versions are resolved per platform target: the configured initial version
for the first release, afterwards the higher of the initial version and the
bumped latest version of that target.
"""

import logging
from datetime import date, datetime

from release_conductor.models.enums import (
    ActivityType,
    EntityType,
    ReleaseStatus,
    ReleaseType,
)
from release_conductor.models.records import (
    PlatformTarget,
    RegressionSlot,
    Release,
    ReleaseSchedule,
    generate_id,
)
from release_conductor.models.release_config import ReleaseConfiguration, SchedulingConfig
from release_conductor.orchestration.context import OrchestrationContext
from release_conductor.orchestration.schedule import (
    add_working_days,
    calculate_kickoff_date,
    calculate_kickoff_reminder_date,
    calculate_next_kickoff_date,
    calculate_regression_slot_dates,
    calculate_target_release_date,
    local_date,
)
from release_conductor.orchestration.versioning import (
    highest_version,
    release_branch_name,
    resolve_version_for_first_scheduled_release,
)

logger = logging.getLogger(__name__)


async def latest_versions(
    context: OrchestrationContext, config: ReleaseConfiguration
) -> dict[tuple[str, str], str]:
    """Highest version shipped so far per (platform, target) for one configuration."""
    seen: dict[tuple[str, str], list[str]] = {}
    for release in await context.store.list_releases(config.tenant_id):
        if release.release_config_id != config.config_id:
            continue
        if release.status == ReleaseStatus.ARCHIVED:
            continue
        for target in release.platform_targets:
            seen.setdefault((target.platform.value, target.target), []).append(target.version)
    return {key: highest_version(versions) for key, versions in seen.items()}


async def resolve_platform_targets(
    context: OrchestrationContext,
    config: ReleaseConfiguration,
    release_type: ReleaseType,
) -> list[PlatformTarget]:
    latest = await latest_versions(context, config)
    return [
        PlatformTarget(
            platform=target.platform,
            target=target.target,
            version=resolve_version_for_first_scheduled_release(
                target.initial_version,
                latest.get((target.platform.value, target.target)),
                release_type,
            ),
        )
        for target in config.platform_targets
    ]


def _scheduled_dates(scheduling: SchedulingConfig, kickoff_day: date) -> dict:
    wd, tz = scheduling.working_days, scheduling.timezone
    slot_times = calculate_regression_slot_dates(
        kickoff_day,
        [(slot.offset_days, slot.time) for slot in scheduling.regression_slots],
        wd,
        tz,
    )
    return {
        "kickoff_date": calculate_kickoff_date(kickoff_day, scheduling.kickoff_time, wd, tz),
        "kickoff_reminder_date": calculate_kickoff_reminder_date(
            kickoff_day,
            scheduling.kickoff_reminder_offset_days,
            scheduling.kickoff_reminder_time,
            wd,
            tz,
        ),
        "target_release_date": calculate_target_release_date(
            kickoff_day,
            scheduling.target_release_offset_days,
            scheduling.target_release_time,
            wd,
            tz,
        ),
        "upcoming_regressions": [
            RegressionSlot(scheduled_at=at, automation_runs=slot.automation_runs)
            for at, slot in zip(slot_times, scheduling.regression_slots)
        ],
    }


async def create_release(
    context: OrchestrationContext,
    config: ReleaseConfiguration,
    actor: str = "system",
    release_type: ReleaseType | None = None,
    kickoff_date: datetime | None = None,
    versions: dict[str, str] | None = None,
) -> Release:
    """
    Create a PENDING release from a configuration.

    Args:
        context: Orchestration context
        config: Release configuration to instantiate
        actor: User id or "system"
        release_type: Override the configured release type
        kickoff_date: When the scheduler should start it (default: now)
        versions: Explicit version per platform name (e.g. {"IOS": "2.0.0"})

    Returns:
        The stored Release
    """
    release_type = release_type or config.release_type
    targets = await resolve_platform_targets(context, config, release_type)
    if versions:
        targets = [
            PlatformTarget(t.platform, t.target, versions.get(t.platform.value, t.version))
            for t in targets
        ]

    kickoff_date = kickoff_date or context.clock()
    dates: dict = {"kickoff_date": kickoff_date}
    if config.scheduling is not None:
        dates = _scheduled_dates(
            config.scheduling, local_date(kickoff_date, config.scheduling.timezone)
        )
        dates["kickoff_date"] = kickoff_date

    release = Release(
        release_id=generate_id(),
        tenant_id=config.tenant_id,
        release_config_id=config.config_id,
        release_type=release_type,
        platform_targets=targets,
        branch=release_branch_name(targets[0].version),
        base_branch=config.base_branch,
        auto_transition_to_stage2=config.auto_transition_to_stage2,
        auto_transition_to_stage3=config.auto_transition_to_stage3,
        created_by=actor,
        created_at=context.clock(),
        **dates,
    )
    return await _store_new_release(context, release, actor)


async def create_scheduled_release(
    context: OrchestrationContext,
    config: ReleaseConfiguration,
    kickoff_day: date,
) -> Release:
    """Create the release for one cadence occurrence (local kickoff date)."""
    if config.scheduling is None:
        raise ValueError(f"Release configuration {config.config_id} has no schedule")

    targets = await resolve_platform_targets(context, config, config.release_type)
    release = Release(
        release_id=generate_id(),
        tenant_id=config.tenant_id,
        release_config_id=config.config_id,
        release_type=config.release_type,
        platform_targets=targets,
        branch=release_branch_name(targets[0].version),
        base_branch=config.base_branch,
        auto_transition_to_stage2=config.auto_transition_to_stage2,
        auto_transition_to_stage3=config.auto_transition_to_stage3,
        created_at=context.clock(),
        **_scheduled_dates(config.scheduling, kickoff_day),
    )
    return await _store_new_release(context, release, "system")


async def _store_new_release(
    context: OrchestrationContext, release: Release, actor: str
) -> Release:
    await context.store.add_release(release)
    await context.activity.record(
        EntityType.RELEASE,
        release.release_id,
        release.tenant_id,
        ActivityType.RELEASE_CREATED,
        None,
        {
            "version": release.version,
            "branch": release.branch,
            "kickoff_date": release.kickoff_date,
        },
        actor,
    )
    logger.info(
        f"Created release {release.release_id} ({release.version}) for tenant "
        f"{release.tenant_id}, kickoff {release.kickoff_date}"
    )
    return release


def initial_schedule(config: ReleaseConfiguration) -> ReleaseSchedule:
    scheduling = config.scheduling
    return ReleaseSchedule(
        config_id=config.config_id,
        tenant_id=config.tenant_id,
        next_kickoff_date=add_working_days(
            scheduling.first_kickoff_date, 0, scheduling.working_days
        ),
    )


def advance_schedule(schedule: ReleaseSchedule, config: ReleaseConfiguration) -> date:
    """Next kickoff date after `schedule.next_kickoff_date` on the configured cadence."""
    scheduling = config.scheduling
    return calculate_next_kickoff_date(
        schedule.next_kickoff_date, scheduling.frequency, scheduling.working_days
    )
