# release_conductor/models/enums.py
"""
Closed enumerations for release, stage, cron, task and cycle state.

Values are persisted verbatim, so renaming a member is a schema change.
"""

from enum import Enum


class ReleaseStatus(Enum):
    """Overall release lifecycle status."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"
    SUBMITTED = "SUBMITTED"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


TERMINAL_RELEASE_STATUSES = frozenset({ReleaseStatus.COMPLETED, ReleaseStatus.ARCHIVED})


class StageStatus(Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class CronStatus(Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"


class PauseType(Enum):
    """Why cron-driven progress on a release is halted."""

    NONE = "NONE"
    AWAITING_STAGE_TRIGGER = "AWAITING_STAGE_TRIGGER"
    USER_REQUESTED = "USER_REQUESTED"
    TASK_FAILURE = "TASK_FAILURE"


class Stage(Enum):
    """The three sequential stages of a release."""

    KICKOFF = "KICKOFF"
    REGRESSION = "REGRESSION"
    PRE_RELEASE = "PRE_RELEASE"

    @property
    def number(self) -> int:
        return _STAGE_NUMBERS[self]

    @property
    def status_field(self) -> str:
        """Name of the Release attribute holding this stage's status."""
        return f"stage{self.number}_status"


_STAGE_NUMBERS = {Stage.KICKOFF: 1, Stage.REGRESSION: 2, Stage.PRE_RELEASE: 3}


class TaskStatus(Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    AWAITING_CALLBACK = "AWAITING_CALLBACK"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


DONE_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.SKIPPED})


class TaskType(Enum):
    """Orchestrated work items. Each maps to exactly one collaborator call."""

    # Stage 1: kickoff
    FORK_BRANCH = "FORK_BRANCH"
    CREATE_PROJECT_MANAGEMENT_TICKET = "CREATE_PROJECT_MANAGEMENT_TICKET"
    CREATE_TEST_SUITE = "CREATE_TEST_SUITE"
    TRIGGER_PRE_REGRESSION_BUILDS = "TRIGGER_PRE_REGRESSION_BUILDS"
    SEND_KICKOFF_MESSAGE = "SEND_KICKOFF_MESSAGE"

    # Stage 2: per regression cycle
    CREATE_RC_TAG = "CREATE_RC_TAG"
    TRIGGER_REGRESSION_BUILDS = "TRIGGER_REGRESSION_BUILDS"
    TRIGGER_AUTOMATION_RUNS = "TRIGGER_AUTOMATION_RUNS"
    CREATE_TEST_RUN = "CREATE_TEST_RUN"
    SEND_REGRESSION_BUILD_MESSAGE = "SEND_REGRESSION_BUILD_MESSAGE"

    # Stage 3: pre-release
    CREATE_RELEASE_TAG = "CREATE_RELEASE_TAG"
    TRIGGER_TEST_FLIGHT_BUILD = "TRIGGER_TEST_FLIGHT_BUILD"
    CREATE_AAB_BUILD = "CREATE_AAB_BUILD"
    CHECK_PROJECT_RELEASE_APPROVAL = "CHECK_PROJECT_RELEASE_APPROVAL"
    SEND_PRE_RELEASE_MESSAGE = "SEND_PRE_RELEASE_MESSAGE"


class RegressionCycleStatus(Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    ABANDONED = "ABANDONED"


TERMINAL_CYCLE_STATUSES = frozenset(
    {RegressionCycleStatus.DONE, RegressionCycleStatus.ABANDONED}
)


class ReleaseType(Enum):
    MAJOR = "MAJOR"
    MINOR = "MINOR"
    HOTFIX = "HOTFIX"


class Platform(Enum):
    ANDROID = "ANDROID"
    IOS = "IOS"
    WEB = "WEB"


class Phase(Enum):
    """UI-facing derived label summarizing release state."""

    NOT_STARTED = "NOT_STARTED"
    KICKOFF = "KICKOFF"
    AWAITING_REGRESSION = "AWAITING_REGRESSION"
    REGRESSION_CYCLE_STARTING = "REGRESSION_CYCLE_STARTING"
    REGRESSION_CYCLE_RUNNING = "REGRESSION_CYCLE_RUNNING"
    REGRESSION_AWAITING_NEXT_CYCLE = "REGRESSION_AWAITING_NEXT_CYCLE"
    AWAITING_PRE_RELEASE = "AWAITING_PRE_RELEASE"
    PRE_RELEASE = "PRE_RELEASE"
    SUBMITTED_PENDING_APPROVAL = "SUBMITTED_PENDING_APPROVAL"
    PAUSED_BY_USER = "PAUSED_BY_USER"
    PAUSED_BY_FAILURE = "PAUSED_BY_FAILURE"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class Action(Enum):
    """User actions exposed to the UI layer."""

    START = "START"
    PAUSE = "PAUSE"
    RESUME = "RESUME"
    TRIGGER_STAGE_2 = "TRIGGER_STAGE_2"
    TRIGGER_STAGE_3 = "TRIGGER_STAGE_3"
    RETRY_TASK = "RETRY_TASK"
    SKIP_TASK = "SKIP_TASK"
    ABANDON_CYCLE = "ABANDON_CYCLE"
    SKIP_REMAINING_CYCLES = "SKIP_REMAINING_CYCLES"
    COMPLETE = "COMPLETE"
    ARCHIVE = "ARCHIVE"


class EntityType(Enum):
    RELEASE = "RELEASE"
    TASK = "TASK"
    REGRESSION_CYCLE = "REGRESSION_CYCLE"
    SCHEDULE = "SCHEDULE"


class ActivityType(Enum):
    """Typed delta recorded in the activity log."""

    RELEASE_CREATED = "RELEASE_CREATED"
    RELEASE_STATUS = "RELEASE_STATUS"
    STAGE_STATUS = "STAGE_STATUS"
    CRON_STATUS = "CRON_STATUS"
    PAUSE_TYPE = "PAUSE_TYPE"
    PHASE = "PHASE"
    TASK_STATUS = "TASK_STATUS"
    CYCLE_CREATED = "CYCLE_CREATED"
    CYCLE_STATUS = "CYCLE_STATUS"
    REGRESSION_SLOTS = "REGRESSION_SLOTS"
    SCHEDULE_ADVANCED = "SCHEDULE_ADVANCED"


class ReleaseFrequency(Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    TRIWEEKLY = "TRIWEEKLY"
    MONTHLY = "MONTHLY"


class BuildUploadMode(Enum):
    """How builds reach the stores: triggered CI workflows or manual uploads."""

    CI_CD = "CI_CD"
    MANUAL = "MANUAL"


class WorkflowKind(Enum):
    """CI workflow purposes a release configuration maps to workflow refs."""

    PRE_REGRESSION = "PRE_REGRESSION"
    REGRESSION = "REGRESSION"
    AUTOMATION = "AUTOMATION"
    TEST_FLIGHT = "TEST_FLIGHT"
    AAB = "AAB"
