# release_conductor/models/release_config.py
"""
Pydantic models for tenant Release Configurations.

Read-only input to the engine. Validation here is the only place scheduling
offsets are checked, so an invalid configuration never reaches the scheduler.
"""

from datetime import date
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from release_conductor.models.enums import (
    BuildUploadMode,
    Platform,
    ReleaseFrequency,
    ReleaseType,
    WorkflowKind,
)
from release_conductor.orchestration.schedule import parse_time_of_day
from release_conductor.orchestration.versioning import is_valid_version


def _check_time(value: str) -> str:
    parsed = parse_time_of_day(value)
    return parsed.strftime("%H:%M")


class PlatformTargetConfig(BaseModel):
    """One platform/target pair and the version its first release ships."""

    model_config = ConfigDict(extra="ignore")

    platform: Platform
    target: str = Field(description="Distribution target, e.g. PLAY_STORE or APP_STORE")
    initial_version: str = Field(description="Version of the first scheduled release")

    @field_validator("initial_version")
    @classmethod
    def _valid_version(cls, value: str) -> str:
        if not is_valid_version(value):
            raise ValueError(f"'{value}' is not a semantic version")
        return value


class RegressionSlotConfig(BaseModel):
    """A regression cycle slot, offset in working days from kickoff."""

    model_config = ConfigDict(extra="ignore")

    offset_days: int = Field(ge=0, description="Working days after kickoff")
    time: str = Field(default="10:00", description="Local start time (HH:MM)")
    automation_runs: bool = Field(
        default=False, description="Trigger automation runs after regression builds"
    )

    @field_validator("time")
    @classmethod
    def _valid_time(cls, value: str) -> str:
        return _check_time(value)


class SchedulingConfig(BaseModel):
    """Release cadence for scheduled releases."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(default=True, description="Create releases on this cadence")
    frequency: ReleaseFrequency = Field(default=ReleaseFrequency.BIWEEKLY)
    first_kickoff_date: date = Field(description="Local date of the first kickoff")
    kickoff_time: str = Field(default="10:00", description="Local kickoff time (HH:MM)")
    kickoff_reminder_offset_days: int = Field(
        default=1, ge=0, description="Working days before kickoff to send the reminder"
    )
    kickoff_reminder_time: str = Field(default="09:00")
    target_release_offset_days: int = Field(
        ge=0, description="Working days from kickoff to target release"
    )
    target_release_time: str = Field(default="18:00")
    creation_advance_days: int = Field(
        default=2, ge=0, description="Working days before kickoff the release is created"
    )
    working_days: list[int] = Field(
        default_factory=lambda: [0, 1, 2, 3, 4],
        description="Working weekdays, Monday=0 (empty = every day)",
    )
    timezone: str = Field(default="UTC", description="IANA timezone for all local times")
    regression_slots: list[RegressionSlotConfig] = Field(default_factory=list)

    @field_validator("kickoff_time", "kickoff_reminder_time", "target_release_time")
    @classmethod
    def _valid_time(cls, value: str) -> str:
        return _check_time(value)

    @field_validator("working_days")
    @classmethod
    def _valid_weekdays(cls, value: list[int]) -> list[int]:
        invalid = [day for day in value if day not in range(7)]
        if invalid:
            raise ValueError(f"Working days must be 0-6 (Monday=0), got {invalid}")
        return sorted(set(value))

    @field_validator("timezone")
    @classmethod
    def _valid_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{value}'") from e
        return value

    @model_validator(mode="after")
    def _slots_before_target(self) -> "SchedulingConfig":
        for slot in self.regression_slots:
            if slot.offset_days > self.target_release_offset_days:
                raise ValueError(
                    f"Regression slot offset {slot.offset_days} exceeds target release "
                    f"offset {self.target_release_offset_days}"
                )
        return self


class IntegrationToggle(BaseModel):
    """Whether an optional integration is used and whether it gates stage completion."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    gates_completion: bool = True


class ChatToggle(IntegrationToggle):
    """Chat notifications are informational unless configured to gate."""

    gates_completion: bool = False


class IntegrationsConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    test_management: IntegrationToggle = Field(default_factory=IntegrationToggle)
    ticketing: IntegrationToggle = Field(default_factory=IntegrationToggle)
    chat: ChatToggle = Field(default_factory=ChatToggle)


class WorkflowMapping(BaseModel):
    """Maps a workflow purpose on one platform to a CI workflow reference."""

    model_config = ConfigDict(extra="ignore")

    kind: WorkflowKind
    platform: Platform
    workflow_ref: str


class ReleaseConfiguration(BaseModel):
    """Tenant-defined template for releases of one app."""

    model_config = ConfigDict(extra="ignore")

    config_id: str
    tenant_id: str
    name: str = ""
    repo: str = Field(description="SCM repository identifier")
    base_branch: str = Field(default="main")
    release_type: ReleaseType = Field(default=ReleaseType.MINOR)
    platform_targets: list[PlatformTargetConfig] = Field(min_length=1)
    build_upload_mode: BuildUploadMode = Field(default=BuildUploadMode.CI_CD)
    pre_regression_builds: bool = Field(
        default=True, description="Trigger pre-regression builds during kickoff"
    )
    workflows: list[WorkflowMapping] = Field(default_factory=list)
    integrations: IntegrationsConfig = Field(default_factory=IntegrationsConfig)
    scheduling: SchedulingConfig | None = None
    auto_transition_to_stage2: bool = True
    auto_transition_to_stage3: bool = False

    @property
    def platforms(self) -> list[Platform]:
        """Distinct platforms in configuration order."""
        seen: list[Platform] = []
        for target in self.platform_targets:
            if target.platform not in seen:
                seen.append(target.platform)
        return seen

    def workflow_for(self, kind: WorkflowKind, platform: Platform) -> str | None:
        for mapping in self.workflows:
            if mapping.kind == kind and mapping.platform == platform:
                return mapping.workflow_ref
        return None
