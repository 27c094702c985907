# release_conductor/models/responses.py
"""
Pydantic response models for tool outputs.

Field names are snake_case in Python and camelCase on the wire; tools return
`model.model_dump(by_alias=True)`.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReleaseRef(CamelModel):
    id: str = Field(description="Release identifier")
    status: str = Field(description="Overall release status")
    version: str = Field(description="Display version (first platform target)")
    tenant_id: str = Field(description="Owning tenant")


class StagesView(CamelModel):
    stage1: str = Field(description="Kickoff stage status")
    stage2: str = Field(description="Regression stage status")
    stage3: str = Field(description="Pre-release stage status")


class CronView(CamelModel):
    status: str = Field(description="Cron status (PENDING/RUNNING/PAUSED/COMPLETED)")
    pause_type: str = Field(description="Why cron progress is halted (NONE if running)")


class RegressionView(CamelModel):
    """Progress of stage 2."""

    current_cycle: str | None = Field(default=None, description="Tag of the latest cycle")
    cycle_status: str | None = Field(default=None, description="Status of the latest cycle")
    completed_cycles: int = Field(default=0, description="Cycles DONE or ABANDONED")
    total_cycles: int = Field(default=0, description="Cycles created plus remaining slots")
    next_cycle_at: str | None = Field(
        default=None, description="Start time of the next regression slot (ISO format)"
    )


class FailureView(CamelModel):
    """The failing task behind a PAUSED_BY_FAILURE release."""

    task_id: str
    task_type: str
    error_kind: str | None = None
    error_message: str | None = None
    retry_count: int = 0


class ReleaseStatusResponse(CamelModel):
    """Response from release_status tool."""

    release: ReleaseRef
    stages: StagesView
    cron: CronView
    current_phase: str = Field(description="Derived display phase")
    display_text: str = Field(description="Human-readable phase label")
    regression: RegressionView | None = Field(
        default=None, description="Regression progress (null before stage 2)"
    )
    actions: list[str] = Field(default_factory=list, description="Legal user actions")
    can_archive: bool = Field(description="Whether ARCHIVE is currently legal")
    failure: FailureView | None = Field(
        default=None, description="Failing required task when paused by failure"
    )


class TaskView(CamelModel):
    task_id: str
    stage: str
    task_type: str
    status: str
    sequence: int
    optional: bool
    platform: str | None = None
    cycle_id: str | None = None
    external_id: str | None = None
    error_kind: str | None = None
    error_message: str | None = None
    retry_count: int = 0


class TaskListResponse(CamelModel):
    release_id: str
    tasks: list[TaskView] = Field(default_factory=list)


class ActionResponse(CamelModel):
    """Response from release_action tool."""

    release_id: str
    action: str = Field(description="Action that was applied")
    phase: str = Field(description="Phase after the action")
    display_text: str
    message: str = Field(description="Human-readable outcome")


class ReleaseSummary(CamelModel):
    """Summary information for a single release (used in list_releases)."""

    release_id: str
    tenant_id: str
    version: str
    status: str
    phase: str | None = Field(default=None, description="Cached display phase")
    kickoff_date: str | None = Field(default=None, description="Kickoff (ISO format)")
    created_at: str = Field(description="Creation timestamp (ISO format)")


class ListReleasesResponse(CamelModel):
    """Response from list_releases tool."""

    releases: list[ReleaseSummary] = Field(default_factory=list)
    total: int = Field(description="Total number of releases")


class CreateReleaseResponse(CamelModel):
    """Response from create_release tool."""

    release_id: str
    version: str
    branch: str
    status: str
    kickoff_date: str | None = None
    next_steps: str = Field(
        default="The scheduler starts the release at its kickoff date; "
        "use release_status to follow it",
    )


class TickResponse(CamelModel):
    """Response from run_tick tool."""

    success: bool
    processed_count: int
    skipped_locked: int
    created_releases: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    duration_seconds: float


class ActivityEntryView(CamelModel):
    entry_id: str
    entity_type: str
    entity_id: str
    activity_type: str
    previous_value: object | None = None
    new_value: object | None = None
    actor: str
    created_at: str


class HistoryResponse(CamelModel):
    """Response from release_history tool."""

    release_id: str
    entries: list[ActivityEntryView] = Field(default_factory=list)
