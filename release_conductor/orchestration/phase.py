# release_conductor/orchestration/phase.py
"""
Phase derivation as an ordered decision table.

Each row is (predicate, phase, display-text template, legal actions). Rows
are evaluated top to bottom and the first match wins; the predicates are
mutually exclusive once the input passes validation. Pure and deterministic.
"""

from collections.abc import Callable
from dataclasses import dataclass

from release_conductor.errors import InvalidStateError
from release_conductor.models.enums import (
    TERMINAL_CYCLE_STATUSES,
    TERMINAL_RELEASE_STATUSES,
    Action,
    CronStatus,
    PauseType,
    Phase,
    RegressionCycleStatus,
    ReleaseStatus,
    StageStatus,
)
from release_conductor.models.records import CronControl, Release, StageStatuses


@dataclass(frozen=True)
class CycleSnapshot:
    """What the phase table needs to know about the latest regression cycle."""

    status: RegressionCycleStatus
    tag: str
    has_next_cycle: bool
    completed_cycles: int = 0
    total_cycles: int = 0


@dataclass(frozen=True)
class PhaseInput:
    release_status: ReleaseStatus
    stages: StageStatuses
    cron: CronControl
    cycle: CycleSnapshot | None


@dataclass(frozen=True)
class PhaseRule:
    predicate: Callable[[PhaseInput], bool]
    phase: Phase
    display_text: str
    actions: tuple[Action, ...]


@dataclass(frozen=True)
class PhaseResult:
    phase: Phase
    display_text: str
    actions: tuple[Action, ...]
    can_archive: bool


def _status(status: ReleaseStatus) -> Callable[[PhaseInput], bool]:
    return lambda i: i.release_status == status


def _paused_by(pause_type: PauseType) -> Callable[[PhaseInput], bool]:
    return lambda i: i.release_status == ReleaseStatus.PAUSED and i.cron.pause_type == pause_type


def _cycle_starting(i: PhaseInput) -> bool:
    return i.stages.stage2 == StageStatus.IN_PROGRESS and (
        i.cycle is None or i.cycle.status == RegressionCycleStatus.NOT_STARTED
    )


def _awaiting_next_cycle(i: PhaseInput) -> bool:
    return (
        i.stages.stage2 == StageStatus.IN_PROGRESS
        and i.cycle is not None
        and i.cycle.status in TERMINAL_CYCLE_STATUSES
        and i.cycle.has_next_cycle
    )


PHASE_TABLE: tuple[PhaseRule, ...] = (
    PhaseRule(_status(ReleaseStatus.ARCHIVED), Phase.ARCHIVED, "Archived", ()),
    PhaseRule(_status(ReleaseStatus.COMPLETED), Phase.COMPLETED, "Completed", ()),
    PhaseRule(
        _status(ReleaseStatus.SUBMITTED),
        Phase.SUBMITTED_PENDING_APPROVAL,
        "Submitted - Pending Approval",
        (Action.COMPLETE,),
    ),
    PhaseRule(
        _paused_by(PauseType.USER_REQUESTED),
        Phase.PAUSED_BY_USER,
        "Paused by User",
        (Action.RESUME,),
    ),
    PhaseRule(
        _paused_by(PauseType.TASK_FAILURE),
        Phase.PAUSED_BY_FAILURE,
        "Paused - Task Failed",
        (Action.RETRY_TASK, Action.SKIP_TASK),
    ),
    PhaseRule(_status(ReleaseStatus.PENDING), Phase.NOT_STARTED, "Not Started", (Action.START,)),
    PhaseRule(
        lambda i: i.stages.stage1 == StageStatus.IN_PROGRESS,
        Phase.KICKOFF,
        "Kickoff",
        (Action.PAUSE,),
    ),
    PhaseRule(
        lambda i: i.stages.stage1 == StageStatus.COMPLETED and i.stages.stage2 == StageStatus.PENDING,
        Phase.AWAITING_REGRESSION,
        "Awaiting Regression",
        (Action.TRIGGER_STAGE_2,),
    ),
    PhaseRule(
        _cycle_starting,
        Phase.REGRESSION_CYCLE_STARTING,
        "Regression - Starting {cycle_tag}",
        (Action.PAUSE, Action.ABANDON_CYCLE),
    ),
    PhaseRule(
        _awaiting_next_cycle,
        Phase.REGRESSION_AWAITING_NEXT_CYCLE,
        "Awaiting Next Cycle ({completed}/{total} cycles done)",
        (Action.PAUSE, Action.SKIP_REMAINING_CYCLES),
    ),
    PhaseRule(
        lambda i: i.stages.stage2 == StageStatus.IN_PROGRESS,
        Phase.REGRESSION_CYCLE_RUNNING,
        "Regression - {cycle_tag} ({completed}/{total} cycles done)",
        (Action.PAUSE, Action.ABANDON_CYCLE),
    ),
    PhaseRule(
        lambda i: i.stages.stage2 == StageStatus.COMPLETED and i.stages.stage3 == StageStatus.PENDING,
        Phase.AWAITING_PRE_RELEASE,
        "Awaiting Pre-Release",
        (Action.TRIGGER_STAGE_3,),
    ),
    PhaseRule(
        lambda i: i.stages.stage3 == StageStatus.IN_PROGRESS,
        Phase.PRE_RELEASE,
        "Pre-Release",
        (Action.PAUSE,),
    ),
)


def _validate(i: PhaseInput) -> None:
    """Raise InvalidStateError for inputs the table is not defined for."""
    status, stages, cron = i.release_status, i.stages, i.cron

    if (cron.pause_type != PauseType.NONE) != (cron.status == CronStatus.PAUSED):
        raise InvalidStateError(
            f"Pause type {cron.pause_type.value} inconsistent with cron status {cron.status.value}"
        )

    if status in (ReleaseStatus.SUBMITTED, ReleaseStatus.COMPLETED) and any(
        s != StageStatus.COMPLETED for s in (stages.stage1, stages.stage2, stages.stage3)
    ):
        raise InvalidStateError(f"Release is {status.value} with incomplete stages")

    user_or_failure = (PauseType.USER_REQUESTED, PauseType.TASK_FAILURE)
    if status == ReleaseStatus.PAUSED and cron.pause_type not in user_or_failure:
        raise InvalidStateError(
            f"Release is PAUSED with pause type {cron.pause_type.value}"
        )
    if status == ReleaseStatus.IN_PROGRESS and cron.pause_type in user_or_failure:
        raise InvalidStateError(
            f"Release is IN_PROGRESS but paused with {cron.pause_type.value}"
        )

    if status == ReleaseStatus.PENDING and (
        any(s != StageStatus.PENDING for s in (stages.stage1, stages.stage2, stages.stage3))
    ):
        raise InvalidStateError("Release is PENDING but a stage has started")

    if stages.stage2 != StageStatus.PENDING and stages.stage1 != StageStatus.COMPLETED:
        raise InvalidStateError("Stage 2 started before stage 1 completed")
    if stages.stage3 != StageStatus.PENDING and stages.stage2 != StageStatus.COMPLETED:
        raise InvalidStateError("Stage 3 started before stage 2 completed")


def derive_phase(
    release_status: ReleaseStatus,
    stages: StageStatuses,
    cron: CronControl,
    cycle: CycleSnapshot | None = None,
) -> PhaseResult:
    """
    Map persisted state to a display phase and its legal actions.

    ARCHIVE is legal from every non-terminal phase and is reported through
    `can_archive` rather than in `actions`.

    Raises:
        InvalidStateError: If the state is internally inconsistent or no row matches
    """
    phase_input = PhaseInput(release_status, stages, cron, cycle)
    _validate(phase_input)

    for rule in PHASE_TABLE:
        if rule.predicate(phase_input):
            text = rule.display_text.format(
                cycle_tag=cycle.tag if cycle else "next cycle",
                completed=cycle.completed_cycles if cycle else 0,
                total=cycle.total_cycles if cycle else 0,
            )
            return PhaseResult(
                phase=rule.phase,
                display_text=text,
                actions=rule.actions,
                can_archive=release_status not in TERMINAL_RELEASE_STATUSES,
            )

    raise InvalidStateError(
        f"No phase for release status {release_status.value}, stages "
        f"{stages.stage1.value}/{stages.stage2.value}/{stages.stage3.value}"
    )


def derive_release_phase(release: Release, cycle: CycleSnapshot | None = None) -> PhaseResult:
    return derive_phase(release.status, release.stages, release.cron, cycle)
