# release_conductor/orchestration/transitions.py
"""
Release, cycle and task state writes.

Every status change goes through ReleaseTransitions so it is validated by the
store, recorded in the activity log, and followed by a recompute of the
cached display phase.
"""

import logging
from typing import Any

from release_conductor.errors import ConfigurationError, InvalidStateError
from release_conductor.models.enums import (
    TERMINAL_CYCLE_STATUSES,
    ActivityType,
    CronStatus,
    EntityType,
    PauseType,
    RegressionCycleStatus,
    ReleaseStatus,
    Stage,
    StageStatus,
    TaskStatus,
)
from release_conductor.models.records import (
    RegressionCycle,
    RegressionSlot,
    Release,
    Task,
    generate_id,
)
from release_conductor.models.release_config import ReleaseConfiguration
from release_conductor.orchestration.context import OrchestrationContext
from release_conductor.orchestration.phase import (
    CycleSnapshot,
    PhaseResult,
    derive_release_phase,
)
from release_conductor.orchestration.task_plan import build_stage_tasks
from release_conductor.orchestration.versioning import cycle_tag

logger = logging.getLogger(__name__)

_TRACKED_FIELDS = {
    "status": ActivityType.RELEASE_STATUS,
    "stage1_status": ActivityType.STAGE_STATUS,
    "stage2_status": ActivityType.STAGE_STATUS,
    "stage3_status": ActivityType.STAGE_STATUS,
    "cron_status": ActivityType.CRON_STATUS,
    "pause_type": ActivityType.PAUSE_TYPE,
    "upcoming_regressions": ActivityType.REGRESSION_SLOTS,
}

_STAGES_IN_ORDER = (Stage.KICKOFF, Stage.REGRESSION, Stage.PRE_RELEASE)


def active_stage(release: Release) -> Stage | None:
    """The stage currently IN_PROGRESS, if any."""
    for stage in _STAGES_IN_ORDER:
        if release.stages.for_stage(stage) == StageStatus.IN_PROGRESS:
            return stage
    return None


def next_stage(stage: Stage) -> Stage | None:
    index = _STAGES_IN_ORDER.index(stage)
    return _STAGES_IN_ORDER[index + 1] if index + 1 < len(_STAGES_IN_ORDER) else None


def latest_cycle(cycles: list[RegressionCycle]) -> RegressionCycle | None:
    return max(cycles, key=lambda c: c.sequence) if cycles else None


def cycle_snapshot(release: Release, cycles: list[RegressionCycle]) -> CycleSnapshot | None:
    """Summarize the latest regression cycle for phase derivation."""
    latest = latest_cycle(cycles)
    if latest is None:
        return None
    return CycleSnapshot(
        status=latest.status,
        tag=latest.tag,
        has_next_cycle=bool(release.upcoming_regressions),
        completed_cycles=sum(1 for c in cycles if c.status in TERMINAL_CYCLE_STATUSES),
        total_cycles=len(cycles) + len(release.upcoming_regressions),
    )


def _activity_value(field_name: str, value: Any) -> Any:
    if field_name == "upcoming_regressions":
        return [slot.to_dict() for slot in value]
    if field_name.startswith("stage"):
        return {"stage": int(field_name[5]), "status": value.value}
    return value


class ReleaseTransitions:
    """Validated, audited state writes for one OrchestrationContext."""

    def __init__(self, context: OrchestrationContext) -> None:
        self._ctx = context

    @property
    def store(self):
        return self._ctx.store

    async def apply(self, release: Release, actor: str = "system", **changes) -> Release:
        """
        Persist `changes` on a release, log each tracked delta, refresh the phase.

        Raises:
            InvalidStateError: If the merged release violates an invariant
        """
        updated = await self.store.update_release(release.release_id, **changes)

        for field_name, activity_type in _TRACKED_FIELDS.items():
            if field_name not in changes:
                continue
            before, after = getattr(release, field_name), getattr(updated, field_name)
            if before != after:
                await self._ctx.activity.record(
                    EntityType.RELEASE,
                    release.release_id,
                    release.tenant_id,
                    activity_type,
                    _activity_value(field_name, before),
                    _activity_value(field_name, after),
                    actor,
                )

        return await self.refresh_phase(updated, actor)

    async def derive(self, release: Release) -> PhaseResult:
        cycles = await self.store.list_cycles(release.release_id)
        return derive_release_phase(release, cycle_snapshot(release, cycles))

    async def refresh_phase(self, release: Release, actor: str = "system") -> Release:
        """Recompute the display phase and cache it when it changed."""
        phase = (await self.derive(release)).phase.value
        if phase == release.current_phase:
            return release

        updated = await self.store.update_release(release.release_id, current_phase=phase)
        await self._ctx.activity.record(
            EntityType.RELEASE,
            release.release_id,
            release.tenant_id,
            ActivityType.PHASE,
            release.current_phase,
            phase,
            actor,
        )
        logger.info(f"Release {release.release_id} phase {release.current_phase} -> {phase}")
        return updated

    # -- stages ----------------------------------------------------------------

    async def enter_stage(
        self,
        release: Release,
        stage: Stage,
        config: ReleaseConfiguration | None,
        actor: str = "system",
        **extra,
    ) -> Release:
        """
        Move a release into `stage` and create the stage's tasks.

        Regression tasks are created per cycle, so entering stage 2 only makes
        sure at least one regression slot exists.

        Raises:
            ConfigurationError: If the release configuration is missing
        """
        if config is None:
            raise ConfigurationError(
                f"Release configuration {release.release_config_id} not found; "
                f"cannot enter {stage.value} for release {release.release_id}"
            )

        changes: dict[str, Any] = {
            stage.status_field: StageStatus.IN_PROGRESS,
            "status": ReleaseStatus.IN_PROGRESS,
            "cron_status": CronStatus.RUNNING,
            "pause_type": PauseType.NONE,
            **extra,
        }

        if stage == Stage.REGRESSION:
            cycles = await self.store.list_cycles(release.release_id)
            if not cycles and not release.upcoming_regressions:
                changes["upcoming_regressions"] = [RegressionSlot(scheduled_at=self._ctx.clock())]
        else:
            kickoff_tasks = None
            if stage == Stage.PRE_RELEASE:
                kickoff_tasks = await self.store.list_tasks(release.release_id, stage=Stage.KICKOFF)
            tasks = build_stage_tasks(release, stage, config, kickoff_tasks=kickoff_tasks)
            await self.store.add_tasks(tasks)
            logger.info(
                f"Release {release.release_id} entering {stage.value} with {len(tasks)} task(s)"
            )

        return await self.apply(release, actor, **changes)

    async def complete_stage(
        self, release: Release, stage: Stage, config: ReleaseConfiguration | None
    ) -> Release:
        """
        Mark `stage` COMPLETED and move on.

        Stage 3 completion submits the release. Otherwise the next stage is
        entered when its auto-transition flag is set, else the release waits
        for a manual trigger.
        """
        completed = {stage.status_field: StageStatus.COMPLETED}
        following = next_stage(stage)

        if following is None:
            logger.info(f"Release {release.release_id} submitted")
            return await self.apply(
                release,
                status=ReleaseStatus.SUBMITTED,
                cron_status=CronStatus.COMPLETED,
                pause_type=PauseType.NONE,
                **completed,
            )

        auto = (
            release.auto_transition_to_stage2
            if following == Stage.REGRESSION
            else release.auto_transition_to_stage3
        )
        if auto:
            return await self.enter_stage(release, following, config, **completed)

        logger.info(
            f"Release {release.release_id} completed {stage.value}; awaiting manual trigger"
        )
        return await self.apply(
            release,
            cron_status=CronStatus.PAUSED,
            pause_type=PauseType.AWAITING_STAGE_TRIGGER,
            **completed,
        )

    # -- pause / resume --------------------------------------------------------

    async def pause(self, release: Release, pause_type: PauseType, actor: str = "system") -> Release:
        if pause_type in (PauseType.NONE, PauseType.AWAITING_STAGE_TRIGGER):
            raise InvalidStateError(f"Cannot pause a release with pause type {pause_type.value}")
        return await self.apply(
            release,
            actor,
            status=ReleaseStatus.PAUSED,
            cron_status=CronStatus.PAUSED,
            pause_type=pause_type,
        )

    async def resume(self, release: Release, actor: str = "system") -> Release:
        return await self.apply(
            release,
            actor,
            status=ReleaseStatus.IN_PROGRESS,
            cron_status=CronStatus.RUNNING,
            pause_type=PauseType.NONE,
        )

    # -- cycles ----------------------------------------------------------------

    async def create_cycle(
        self,
        release: Release,
        slot: RegressionSlot,
        config: ReleaseConfiguration | None,
        actor: str = "system",
    ) -> tuple[Release, RegressionCycle]:
        """Turn a due regression slot into a NOT_STARTED cycle with its tasks."""
        if config is None:
            raise ConfigurationError(
                f"Release configuration {release.release_config_id} not found; "
                f"cannot start a regression cycle for release {release.release_id}"
            )

        cycles = await self.store.list_cycles(release.release_id)
        sequence = len(cycles) + 1
        cycle = RegressionCycle(
            cycle_id=generate_id(),
            release_id=release.release_id,
            sequence=sequence,
            tag=cycle_tag(sequence),
            scheduled_at=slot.scheduled_at,
            automation_runs=slot.automation_runs,
            created_at=self._ctx.clock(),
        )
        await self.store.add_cycle(cycle)
        await self.store.add_tasks(build_stage_tasks(release, Stage.REGRESSION, config, cycle=cycle))
        await self._ctx.activity.record(
            EntityType.REGRESSION_CYCLE,
            cycle.cycle_id,
            release.tenant_id,
            ActivityType.CYCLE_CREATED,
            None,
            {"tag": cycle.tag, "scheduled_at": slot.scheduled_at},
            actor,
        )
        logger.info(f"Release {release.release_id} created regression cycle {cycle.tag}")

        remaining = list(release.upcoming_regressions)
        remaining.remove(slot)
        release = await self.apply(release, actor, upcoming_regressions=remaining)
        return release, cycle

    async def set_cycle_status(
        self,
        release: Release,
        cycle: RegressionCycle,
        status: RegressionCycleStatus,
        actor: str = "system",
    ) -> RegressionCycle:
        if cycle.status in TERMINAL_CYCLE_STATUSES:
            raise InvalidStateError(
                f"Cycle {cycle.tag} of release {release.release_id} is already {cycle.status.value}"
            )

        now = self._ctx.clock()
        changes: dict[str, Any] = {"status": status}
        if status == RegressionCycleStatus.IN_PROGRESS:
            changes["started_at"] = now
        elif status in TERMINAL_CYCLE_STATUSES:
            changes["completed_at"] = now

        updated = await self.store.update_cycle(cycle.cycle_id, **changes)
        await self._ctx.activity.record(
            EntityType.REGRESSION_CYCLE,
            cycle.cycle_id,
            release.tenant_id,
            ActivityType.CYCLE_STATUS,
            cycle.status,
            status,
            actor,
        )
        logger.info(
            f"Release {release.release_id} cycle {cycle.tag}: {cycle.status.value} -> {status.value}"
        )
        return updated

    # -- tasks -----------------------------------------------------------------

    async def set_task_status(
        self,
        release: Release,
        task: Task,
        status: TaskStatus,
        actor: str = "system",
        **changes,
    ) -> Task:
        updated = await self.store.update_task(task.task_id, status=status, **changes)
        if task.status != status:
            await self._ctx.activity.record(
                EntityType.TASK,
                task.task_id,
                release.tenant_id,
                ActivityType.TASK_STATUS,
                task.status,
                status,
                actor,
            )
        return updated

    async def reset_for_retry(self, release: Release, task: Task, actor: str = "system") -> Task:
        """FAILED -> PENDING with retry count + 1 and the error cleared."""
        if task.status != TaskStatus.FAILED:
            raise InvalidStateError(
                f"Task {task.task_id} is {task.status.value}; only FAILED tasks can be retried"
            )
        return await self.set_task_status(
            release,
            task,
            TaskStatus.PENDING,
            actor,
            retry_count=task.retry_count + 1,
            error_kind=None,
            error_message=None,
            dispatched_at=None,
        )
