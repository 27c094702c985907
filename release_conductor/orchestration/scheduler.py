# release_conductor/orchestration/scheduler.py
"""
Cron-driven scheduler loop.

One `tick()` scans in-flight releases, each under a store lease lock so that
concurrent scheduler instances never double-dispatch, and then creates any
scheduled releases that have come due. Per-release errors are collected into
the TickResult and never abort the tick.
"""

import logging
import os
import time
from dataclasses import dataclass, field

from release_conductor.config.schema import ConductorConfig
from release_conductor.errors import ErrorKind
from release_conductor.models.enums import (
    TERMINAL_CYCLE_STATUSES,
    TERMINAL_RELEASE_STATUSES,
    ActivityType,
    CronStatus,
    EntityType,
    PauseType,
    RegressionCycleStatus,
    ReleaseStatus,
    Stage,
    TaskStatus,
    TaskType,
)
from release_conductor.models.records import (
    RegressionCycle,
    Release,
    ReleaseSchedule,
    Task,
    generate_id,
)
from release_conductor.models.release_config import ReleaseConfiguration
from release_conductor.orchestration.context import OrchestrationContext
from release_conductor.orchestration.executor import TaskContext, TaskExecutor, TaskResult
from release_conductor.orchestration.releases import (
    advance_schedule,
    create_scheduled_release,
    initial_schedule,
)
from release_conductor.orchestration.retry import run_with_retry
from release_conductor.orchestration.schedule import is_release_creation_due, local_date
from release_conductor.orchestration.sequencer import (
    awaiting_tasks,
    eligible_tasks,
    failed_required_tasks,
    is_stage_complete,
)
from release_conductor.orchestration.task_plan import is_manual_upload
from release_conductor.orchestration.transitions import (
    ReleaseTransitions,
    active_stage,
    latest_cycle,
)

logger = logging.getLogger(__name__)

# Human approval and manual uploads have no service-level deadline
_TIMEOUT_EXEMPT = frozenset({TaskType.CHECK_PROJECT_RELEASE_APPROVAL})


def release_lock_key(release_id: str) -> str:
    return f"release:{release_id}"


def schedule_lock_key(config_id: str) -> str:
    return f"schedule:{config_id}"


@dataclass
class TickResult:
    """Outcome of one scheduler pass."""

    success: bool = True
    processed_count: int = 0
    skipped_locked: int = 0
    created_releases: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


class ReleaseScheduler:
    """Drives releases forward one tick at a time."""

    def __init__(self, context: OrchestrationContext, config: ConductorConfig) -> None:
        self._ctx = context
        self._config = config
        self._executor = TaskExecutor(context)
        self._transitions = ReleaseTransitions(context)

    @property
    def instance_id(self) -> str:
        return self._config.scheduler.instance_id

    def lease_owner(self) -> str:
        """
        Lock owner token for one tick.

        Leases are re-entrant for their owner, so every tick gets its own token:
        a worker tick, an on-demand run_tick and a cron tick on the same host
        must exclude each other.
        """
        return f"{self.instance_id}:{os.getpid()}:{generate_id()}"

    async def tick(self) -> TickResult:
        """
        Run one scheduler pass over every active release.

        Returns:
            TickResult with counts, collected errors and duration
        """
        started = time.monotonic()
        result = TickResult()
        owner = self.lease_owner()

        for release in await self._ctx.store.list_active_releases():
            await self._process_locked(release.release_id, result, owner)

        if self._config.scheduler.create_scheduled_releases:
            await self._create_scheduled_releases(result, owner)

        result.success = not result.errors
        result.duration_seconds = time.monotonic() - started
        logger.info(
            f"Tick finished: processed={result.processed_count} "
            f"skipped_locked={result.skipped_locked} created={len(result.created_releases)} "
            f"errors={len(result.errors)} in {result.duration_seconds:.2f}s"
        )
        return result

    async def _process_locked(self, release_id: str, result: TickResult, owner: str) -> None:
        key = release_lock_key(release_id)
        store = self._ctx.store
        acquired = await store.acquire_lock(
            key, owner, self._config.scheduler.lock_ttl_seconds, self._ctx.clock()
        )
        if not acquired:
            logger.info(f"Release {release_id} is locked by another instance, skipping")
            result.skipped_locked += 1
            return

        try:
            if await self.process_release(release_id):
                result.processed_count += 1
        except Exception as e:
            logger.error(f"Error processing release {release_id}: {e}", exc_info=True)
            result.errors.append(f"release {release_id}: {type(e).__name__}: {e}")
        finally:
            await store.release_lock(key, owner)

    async def process_release(self, release_id: str) -> bool:
        """
        Advance one release. Caller must hold the release lock.

        Returns:
            True if the release was in a state the scheduler acts on
        """
        release = await self._ctx.store.get_release(release_id)
        if release is None:
            return False
        if release.status in TERMINAL_RELEASE_STATUSES:
            return False
        if release.cron_status not in (CronStatus.PENDING, CronStatus.RUNNING):
            # Paused releases are skipped entirely
            return False

        config = None
        if release.release_config_id:
            config = await self._ctx.release_configs.get(release.release_config_id)

        now = self._ctx.clock()
        if release.status == ReleaseStatus.PENDING:
            if release.kickoff_date is None or release.kickoff_date > now:
                await self._transitions.refresh_phase(release)
                return True
            logger.info(f"Kickoff reached for release {release_id}, starting")
            await self._transitions.enter_stage(release, Stage.KICKOFF, config)
            return True

        stage = active_stage(release)
        if stage is None:
            await self._transitions.refresh_phase(release)
            return True

        cycle = None
        if stage == Stage.REGRESSION:
            release, cycle = await self._advance_cycle(release, config)
            if cycle is None or cycle.status in TERMINAL_CYCLE_STATUSES:
                await self._finish_regression_if_done(release, config)
                return True

        tasks = await self._stage_tasks(release, stage, cycle)
        await self._fail_stale_dispatches(release, config, tasks, cycle)
        await self._poll_awaiting(release, config, tasks, cycle)
        cycle = await self._dispatch_eligible(release, config, stage, cycle)
        tasks = await self._stage_tasks(release, stage, cycle)

        failed = failed_required_tasks(tasks)
        if failed:
            logger.warning(
                f"Release {release_id} paused: required task(s) failed "
                f"{[t.task_type.value for t in failed]}"
            )
            await self._transitions.pause(release, PauseType.TASK_FAILURE)
            return True

        if not is_stage_complete(tasks):
            await self._transitions.refresh_phase(release)
            return True

        if stage == Stage.REGRESSION:
            await self._transitions.set_cycle_status(release, cycle, RegressionCycleStatus.DONE)
            release = await self._ctx.store.get_release(release_id)
            await self._finish_regression_if_done(release, config)
            return True

        await self._transitions.complete_stage(release, stage, config)
        return True

    async def _stage_tasks(
        self, release: Release, stage: Stage, cycle: RegressionCycle | None
    ) -> list[Task]:
        if stage == Stage.REGRESSION:
            return await self._ctx.store.list_tasks(
                release.release_id, stage=stage, cycle_id=cycle.cycle_id
            )
        return await self._ctx.store.list_tasks(release.release_id, stage=stage)

    # -- regression cycles -------------------------------------------------------

    async def _advance_cycle(
        self, release: Release, config: ReleaseConfiguration | None
    ) -> tuple[Release, RegressionCycle | None]:
        """
        Return the cycle to work on, creating one from a due slot when the
        previous cycle is terminal (or there is none yet).
        """
        cycles = await self._ctx.store.list_cycles(release.release_id)
        latest = latest_cycle(cycles)
        if latest is not None and latest.status not in TERMINAL_CYCLE_STATUSES:
            return release, latest

        now = self._ctx.clock()
        due = sorted(
            (slot for slot in release.upcoming_regressions if slot.scheduled_at <= now),
            key=lambda s: s.scheduled_at,
        )
        if not due:
            return release, latest

        return await self._transitions.create_cycle(release, due[0], config)

    async def _finish_regression_if_done(
        self, release: Release, config: ReleaseConfiguration | None
    ) -> None:
        """Stage 2 is complete once the latest cycle is terminal and no slots remain."""
        cycles = await self._ctx.store.list_cycles(release.release_id)
        latest = latest_cycle(cycles)
        if release.upcoming_regressions or (
            latest is not None and latest.status not in TERMINAL_CYCLE_STATUSES
        ):
            await self._transitions.refresh_phase(release)
            return
        await self._transitions.complete_stage(release, Stage.REGRESSION, config)

    # -- tasks -------------------------------------------------------------------

    def _timed_out(self, task: Task) -> bool:
        if task.task_type in _TIMEOUT_EXEMPT or task.dispatched_at is None:
            return False
        if is_manual_upload(task):
            return False
        elapsed = (self._ctx.clock() - task.dispatched_at).total_seconds()
        return elapsed >= self._config.scheduler.callback_timeout_seconds

    async def _fail_stale_dispatches(
        self,
        release: Release,
        config: ReleaseConfiguration | None,
        tasks: list[Task],
        cycle: RegressionCycle | None,
    ) -> None:
        """
        Fail tasks left IN_PROGRESS longer than the callback timeout.

        Only a process that died mid-dispatch leaves a task IN_PROGRESS; the
        failure is transient, so the release pauses and RETRY_TASK or SKIP_TASK
        decides what happens next.
        """
        timeout = self._config.scheduler.callback_timeout_seconds
        for task in tasks:
            if task.status != TaskStatus.IN_PROGRESS or task.dispatched_at is None:
                continue
            if (self._ctx.clock() - task.dispatched_at).total_seconds() < timeout:
                continue
            logger.warning(f"Task {task.task_id} stuck IN_PROGRESS since {task.dispatched_at}")
            tc = TaskContext(release=release, task=task, config=config, cycle=cycle)
            await self._executor.fail_task(
                tc, ErrorKind.TRANSIENT, f"Dispatch did not finish within {timeout:.0f}s"
            )

    async def _poll_awaiting(
        self,
        release: Release,
        config: ReleaseConfiguration | None,
        tasks: list[Task],
        cycle: RegressionCycle | None,
    ) -> None:
        for task in awaiting_tasks(tasks):
            tc = TaskContext(release=release, task=task, config=config, cycle=cycle)
            result = await self._executor.poll_task(tc)
            if result.status == TaskStatus.AWAITING_CALLBACK and self._timed_out(result.task):
                timeout = self._config.scheduler.callback_timeout_seconds
                await self._executor.fail_task(
                    tc, ErrorKind.TIMEOUT, f"No callback within {timeout:.0f}s of dispatch"
                )

    async def _attempt(self, tc: TaskContext) -> TaskResult:
        task = await self._ctx.store.get_task(tc.task.task_id)
        if task.status == TaskStatus.FAILED:
            task = await self._transitions.reset_for_retry(tc.release, task)
        tc.task = task
        return await self._executor.execute_task(tc)

    async def _dispatch_eligible(
        self,
        release: Release,
        config: ReleaseConfiguration | None,
        stage: Stage,
        cycle: RegressionCycle | None,
    ) -> RegressionCycle | None:
        """
        Dispatch eligible tasks in sequence order until none are left.

        Stops after a required task fails; the caller pauses the release.
        """
        while True:
            eligible = eligible_tasks(await self._stage_tasks(release, stage, cycle))
            if not eligible:
                return cycle

            if cycle is not None and cycle.status == RegressionCycleStatus.NOT_STARTED:
                cycle = await self._transitions.set_cycle_status(
                    release, cycle, RegressionCycleStatus.IN_PROGRESS
                )

            for task in eligible:
                tc = TaskContext(release=release, task=task, config=config, cycle=cycle)
                result = await run_with_retry(self._config.retry, self._attempt, tc)
                if result.failed and result.task.required:
                    return cycle

    # -- scheduled release creation ---------------------------------------------

    async def _create_scheduled_releases(self, result: TickResult, owner: str) -> None:
        store = self._ctx.store
        for config in await self._ctx.release_configs.list_all():
            if config.scheduling is None or not config.scheduling.enabled:
                continue

            key = schedule_lock_key(config.config_id)
            acquired = await store.acquire_lock(
                key, owner, self._config.scheduler.lock_ttl_seconds, self._ctx.clock()
            )
            if not acquired:
                result.skipped_locked += 1
                continue

            try:
                created = await self._create_if_due(config)
                if created is not None:
                    result.created_releases.append(created.release_id)
            except Exception as e:
                logger.error(
                    f"Error creating scheduled release for {config.config_id}: {e}", exc_info=True
                )
                result.errors.append(f"schedule {config.config_id}: {type(e).__name__}: {e}")
            finally:
                await store.release_lock(key, owner)

    async def _create_if_due(self, config: ReleaseConfiguration) -> Release | None:
        scheduling = config.scheduling
        schedule = await self._ctx.store.get_schedule(config.config_id)
        if schedule is None:
            schedule = initial_schedule(config)
            await self._ctx.store.save_schedule(schedule)
        if not schedule.enabled:
            return None

        today = local_date(self._ctx.clock(), scheduling.timezone)

        while schedule.next_kickoff_date < today:
            logger.warning(
                f"Missed kickoff {schedule.next_kickoff_date} for {config.config_id}; "
                f"advancing schedule"
            )
            await self._advance(schedule, config, None)

        if not is_release_creation_due(
            today,
            schedule.next_kickoff_date,
            scheduling.creation_advance_days,
            scheduling.working_days,
        ):
            return None

        release = await create_scheduled_release(self._ctx, config, schedule.next_kickoff_date)
        await self._advance(schedule, config, release.release_id)
        return release

    async def _advance(
        self,
        schedule: ReleaseSchedule,
        config: ReleaseConfiguration,
        created_release_id: str | None,
    ) -> None:
        previous = schedule.next_kickoff_date
        schedule.next_kickoff_date = advance_schedule(schedule, config)
        if created_release_id is not None:
            schedule.last_created_release_id = created_release_id
        schedule.updated_at = self._ctx.clock()
        await self._ctx.store.save_schedule(schedule)
        await self._ctx.activity.record(
            EntityType.SCHEDULE,
            config.config_id,
            config.tenant_id,
            ActivityType.SCHEDULE_ADVANCED,
            previous.isoformat(),
            schedule.next_kickoff_date.isoformat(),
        )
