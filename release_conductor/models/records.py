# release_conductor/models/records.py
"""
Persisted records for releases, tasks, regression cycles, schedules and the
activity log.

Internal models (NOT Pydantic). Stores serialize them; tools convert them to
response models.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any
from uuid import uuid4

from release_conductor.errors import ErrorKind, InvalidStateError
from release_conductor.models.enums import (
    ActivityType,
    CronStatus,
    EntityType,
    PauseType,
    Platform,
    RegressionCycleStatus,
    ReleaseStatus,
    ReleaseType,
    Stage,
    StageStatus,
    TaskStatus,
    TaskType,
)


def generate_id() -> str:
    """Generate a 12-char hex identifier."""
    return uuid4().hex[:12]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PlatformTarget:
    """One platform/distribution-target pair and the version it ships."""

    platform: Platform
    target: str
    version: str

    def to_dict(self) -> dict[str, str]:
        return {"platform": self.platform.value, "target": self.target, "version": self.version}

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "PlatformTarget":
        return cls(platform=Platform(data["platform"]), target=data["target"], version=data["version"])


@dataclass(frozen=True)
class RegressionSlot:
    """A scheduled regression cycle that has not been started yet."""

    scheduled_at: datetime
    automation_runs: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "scheduled_at": self.scheduled_at.isoformat(),
            "automation_runs": self.automation_runs,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RegressionSlot":
        return cls(
            scheduled_at=datetime.fromisoformat(data["scheduled_at"]),
            automation_runs=bool(data.get("automation_runs", False)),
        )


@dataclass(frozen=True)
class StageStatuses:
    stage1: StageStatus
    stage2: StageStatus
    stage3: StageStatus

    def for_stage(self, stage: Stage) -> StageStatus:
        return getattr(self, f"stage{stage.number}")


@dataclass(frozen=True)
class CronControl:
    status: CronStatus
    pause_type: PauseType


@dataclass
class Release:
    """
    One version-bump cycle for one tenant/app.

    Stage statuses and the cron-control block are stored flat so stores can
    update them by field name; `stages` and `cron` give read-only views.
    """

    release_id: str
    tenant_id: str
    release_config_id: str | None
    release_type: ReleaseType
    platform_targets: list[PlatformTarget]
    branch: str
    base_branch: str
    status: ReleaseStatus = ReleaseStatus.PENDING
    stage1_status: StageStatus = StageStatus.PENDING
    stage2_status: StageStatus = StageStatus.PENDING
    stage3_status: StageStatus = StageStatus.PENDING
    cron_status: CronStatus = CronStatus.PENDING
    pause_type: PauseType = PauseType.NONE
    kickoff_date: datetime | None = None
    kickoff_reminder_date: datetime | None = None
    target_release_date: datetime | None = None
    upcoming_regressions: list[RegressionSlot] = field(default_factory=list)
    auto_transition_to_stage2: bool = True
    auto_transition_to_stage3: bool = False
    current_phase: str | None = None  # Cached last-derived Phase value
    created_by: str = "system"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None

    @property
    def stages(self) -> StageStatuses:
        return StageStatuses(self.stage1_status, self.stage2_status, self.stage3_status)

    @property
    def cron(self) -> CronControl:
        return CronControl(self.cron_status, self.pause_type)

    @property
    def version(self) -> str:
        """Display version: the first platform target's version."""
        return self.platform_targets[0].version if self.platform_targets else ""


def validate_release(release: Release) -> None:
    """
    Enforce the invariants every persisted release must satisfy.

    Raises:
        InvalidStateError: If pause type and cron status disagree, or a
            submitted/completed release has an unfinished stage
    """
    paused = release.cron_status == CronStatus.PAUSED
    has_pause_reason = release.pause_type != PauseType.NONE
    if paused != has_pause_reason:
        raise InvalidStateError(
            f"Release {release.release_id}: pause type {release.pause_type.value} "
            f"inconsistent with cron status {release.cron_status.value}"
        )

    if release.status in (ReleaseStatus.SUBMITTED, ReleaseStatus.COMPLETED):
        unfinished = [
            name
            for name, status in (
                ("stage1", release.stage1_status),
                ("stage2", release.stage2_status),
                ("stage3", release.stage3_status),
            )
            if status != StageStatus.COMPLETED
        ]
        if unfinished:
            raise InvalidStateError(
                f"Release {release.release_id} is {release.status.value} "
                f"but {', '.join(unfinished)} not completed"
            )


@dataclass
class Task:
    """One unit of orchestrated work inside a stage."""

    task_id: str
    release_id: str
    stage: Stage
    task_type: TaskType
    sequence: int
    status: TaskStatus = TaskStatus.PENDING
    depends_on: list[str] = field(default_factory=list)
    optional: bool = False
    cycle_id: str | None = None
    platform: Platform | None = None
    params: dict[str, Any] = field(default_factory=dict)
    external_id: str | None = None
    external_data: dict[str, Any] | None = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    retry_count: int = 0
    dispatched_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None

    @property
    def required(self) -> bool:
        return not self.optional


@dataclass
class RegressionCycle:
    """One regression-testing iteration inside stage 2."""

    cycle_id: str
    release_id: str
    sequence: int
    tag: str
    scheduled_at: datetime
    status: RegressionCycleStatus = RegressionCycleStatus.NOT_STARTED
    automation_runs: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class ReleaseSchedule:
    """Cadence bookkeeping for one scheduled release configuration."""

    config_id: str
    tenant_id: str
    next_kickoff_date: date
    last_created_release_id: str | None = None
    enabled: bool = True
    updated_at: datetime | None = None


@dataclass(frozen=True)
class ActivityLogEntry:
    """Immutable audit record of one state transition."""

    entry_id: str
    entity_type: EntityType
    entity_id: str
    tenant_id: str
    activity_type: ActivityType
    previous_value: Any
    new_value: Any
    actor: str
    created_at: datetime
