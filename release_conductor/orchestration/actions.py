# release_conductor/orchestration/actions.py
"""
User actions on a release and the status read model.

Actions are validated against the current phase's legal action set (ARCHIVE
against `can_archive`) and applied under the same lease lock the scheduler
uses, so an action never interleaves with a tick on the same release.
"""

import logging
from contextlib import asynccontextmanager

from release_conductor.errors import ActionNotAllowedError, ReleaseNotFoundError
from release_conductor.models.enums import (
    TERMINAL_CYCLE_STATUSES,
    TERMINAL_RELEASE_STATUSES,
    Action,
    CronStatus,
    Phase,
    PauseType,
    RegressionCycleStatus,
    ReleaseStatus,
    Stage,
    StageStatus,
    TaskStatus,
)
from release_conductor.models.records import Release, Task, generate_id
from release_conductor.models.responses import (
    CronView,
    FailureView,
    RegressionView,
    ReleaseRef,
    ReleaseStatusResponse,
    StagesView,
)
from release_conductor.orchestration.context import OrchestrationContext
from release_conductor.orchestration.phase import derive_release_phase
from release_conductor.orchestration.scheduler import release_lock_key
from release_conductor.orchestration.sequencer import failed_required_tasks
from release_conductor.orchestration.task_plan import is_manual_upload
from release_conductor.orchestration.transitions import (
    ReleaseTransitions,
    cycle_snapshot,
    latest_cycle,
)

logger = logging.getLogger(__name__)

_TASK_ACTIONS = frozenset({Action.RETRY_TASK, Action.SKIP_TASK})
_SKIPPABLE = frozenset({TaskStatus.FAILED, TaskStatus.AWAITING_CALLBACK})


class ReleaseActions:
    """Applies user actions and builds status responses."""

    def __init__(self, context: OrchestrationContext, lock_ttl_seconds: float = 300.0) -> None:
        self._ctx = context
        self._transitions = ReleaseTransitions(context)
        self._lock_ttl = lock_ttl_seconds

    async def _load(self, release_id: str) -> Release:
        release = await self._ctx.store.get_release(release_id)
        if release is None:
            raise ReleaseNotFoundError(f"Release '{release_id}' not found")
        return release

    async def apply(
        self,
        release_id: str,
        action: Action,
        actor: str,
        task_id: str | None = None,
    ) -> Release:
        """
        Apply a user action.

        Args:
            release_id: Target release
            action: Action to apply
            actor: User id recorded in the activity log
            task_id: Target task for RETRY_TASK and SKIP_TASK

        Returns:
            The release after the action

        Raises:
            ReleaseNotFoundError: If the release (or task) does not exist
            ActionNotAllowedError: If the action is illegal right now
        """
        async with self._release_lease(release_id):
            release = await self._load(release_id)
            phase = await self._transitions.derive(release)

            if action == Action.ARCHIVE:
                if not phase.can_archive:
                    raise ActionNotAllowedError(
                        f"Release '{release_id}' is {release.status.value} and cannot be archived"
                    )
            elif action not in phase.actions:
                allowed = ", ".join(a.value for a in phase.actions) or "none"
                raise ActionNotAllowedError(
                    f"{action.value} is not allowed in phase {phase.phase.value} "
                    f"(allowed: {allowed})"
                )

            if action in _TASK_ACTIONS and not task_id:
                raise ActionNotAllowedError(f"{action.value} requires a task id")

            logger.info(f"Applying {action.value} to release {release_id} by {actor}")
            return await self._dispatch(release, action, actor, task_id)

    async def upload_build(
        self, release_id: str, task_id: str, artifact: str, actor: str
    ) -> Task:
        """
        Attach a manually uploaded build to the task waiting for it.

        The task completes; the next tick dispatches whatever depended on it.

        Args:
            release_id: Owning release
            task_id: Manual-upload build task in AWAITING_CALLBACK
            artifact: Location of the uploaded build (URL or store path)
            actor: User id recorded in the activity log

        Raises:
            ReleaseNotFoundError: If the release or task does not exist
            ActionNotAllowedError: If the task is not waiting for an upload
        """
        async with self._release_lease(release_id):
            release = await self._load(release_id)
            if release.status in TERMINAL_RELEASE_STATUSES:
                raise ActionNotAllowedError(
                    f"Release '{release_id}' is {release.status.value}; uploads are closed"
                )
            task = await self._task(release, task_id)
            if not is_manual_upload(task):
                raise ActionNotAllowedError(
                    f"Task '{task_id}' ({task.task_type.value}) does not take manual uploads"
                )
            if task.status != TaskStatus.AWAITING_CALLBACK:
                raise ActionNotAllowedError(
                    f"Task '{task_id}' is {task.status.value}; uploads are accepted only "
                    f"while it is AWAITING_CALLBACK"
                )

            logger.info(f"Build for task {task_id} of release {release_id} uploaded by {actor}")
            return await self._transitions.set_task_status(
                release,
                task,
                TaskStatus.COMPLETED,
                actor,
                external_id=artifact,
                external_data={
                    **(task.external_data or {}),
                    "artifact": artifact,
                    "uploaded_by": actor,
                },
                completed_at=self._ctx.clock(),
            )

    @asynccontextmanager
    async def _release_lease(self, release_id: str):
        """Hold the release lease for the duration of a user operation."""
        owner = f"action:{generate_id()}"
        key = release_lock_key(release_id)
        store = self._ctx.store
        if not await store.acquire_lock(key, owner, self._lock_ttl, self._ctx.clock()):
            raise ActionNotAllowedError(
                f"Release '{release_id}' is being processed by the scheduler; try again shortly"
            )
        try:
            yield
        finally:
            await store.release_lock(key, owner)

    async def _dispatch(
        self, release: Release, action: Action, actor: str, task_id: str | None
    ) -> Release:
        t = self._transitions

        if action == Action.START:
            return await t.enter_stage(release, Stage.KICKOFF, await self._config(release), actor)
        if action == Action.PAUSE:
            return await t.pause(release, PauseType.USER_REQUESTED, actor)
        if action == Action.RESUME:
            return await t.resume(release, actor)
        if action == Action.TRIGGER_STAGE_2:
            return await t.enter_stage(
                release, Stage.REGRESSION, await self._config(release), actor
            )
        if action == Action.TRIGGER_STAGE_3:
            return await t.enter_stage(
                release, Stage.PRE_RELEASE, await self._config(release), actor
            )
        if action == Action.RETRY_TASK:
            task = await self._task(release, task_id)
            if task.status != TaskStatus.FAILED:
                raise ActionNotAllowedError(
                    f"Task '{task_id}' is {task.status.value}; only FAILED tasks can be retried"
                )
            await t.reset_for_retry(release, task, actor)
            return await self._resume_if_unblocked(release, actor)
        if action == Action.SKIP_TASK:
            task = await self._task(release, task_id)
            if task.status not in _SKIPPABLE:
                raise ActionNotAllowedError(
                    f"Task '{task_id}' is {task.status.value}; only FAILED or "
                    f"AWAITING_CALLBACK tasks can be skipped"
                )
            await t.set_task_status(
                release, task, TaskStatus.SKIPPED, actor, completed_at=self._ctx.clock()
            )
            return await self._resume_if_unblocked(release, actor)
        if action == Action.ABANDON_CYCLE:
            return await self._abandon_cycle(release, actor)
        if action == Action.SKIP_REMAINING_CYCLES:
            return await t.apply(release, actor, upcoming_regressions=[])
        if action == Action.COMPLETE:
            return await t.apply(release, actor, status=ReleaseStatus.COMPLETED)
        if action == Action.ARCHIVE:
            return await t.apply(
                release,
                actor,
                status=ReleaseStatus.ARCHIVED,
                cron_status=CronStatus.COMPLETED,
                pause_type=PauseType.NONE,
            )
        raise ActionNotAllowedError(f"Unsupported action {action.value}")

    async def _config(self, release: Release):
        if not release.release_config_id:
            return None
        return await self._ctx.release_configs.get(release.release_config_id)

    async def _task(self, release: Release, task_id: str) -> Task:
        task = await self._ctx.store.get_task(task_id)
        if task is None or task.release_id != release.release_id:
            raise ReleaseNotFoundError(
                f"Task '{task_id}' not found in release '{release.release_id}'"
            )
        return task

    async def _live_tasks(self, release: Release) -> list[Task]:
        """Release tasks outside abandoned regression cycles."""
        cycles = await self._ctx.store.list_cycles(release.release_id)
        abandoned = {c.cycle_id for c in cycles if c.status == RegressionCycleStatus.ABANDONED}
        tasks = await self._ctx.store.list_tasks(release.release_id)
        return [t for t in tasks if t.cycle_id not in abandoned]

    async def _resume_if_unblocked(self, release: Release, actor: str) -> Release:
        release = await self._load(release.release_id)
        if failed_required_tasks(await self._live_tasks(release)):
            return await self._transitions.refresh_phase(release, actor)
        logger.info(f"Release {release.release_id} has no failed required tasks; resuming")
        return await self._transitions.resume(release, actor)

    async def _abandon_cycle(self, release: Release, actor: str) -> Release:
        """
        Abandon the running cycle; with no running cycle, drop the next slot.

        Tasks of an abandoned cycle are left as they are and never dispatched
        or polled again.
        """
        cycles = await self._ctx.store.list_cycles(release.release_id)
        latest = latest_cycle(cycles)
        if latest is not None and latest.status not in TERMINAL_CYCLE_STATUSES:
            await self._transitions.set_cycle_status(
                release, latest, RegressionCycleStatus.ABANDONED, actor
            )
            return await self._transitions.refresh_phase(release, actor)

        if release.upcoming_regressions:
            remaining = sorted(release.upcoming_regressions, key=lambda s: s.scheduled_at)[1:]
            return await self._transitions.apply(release, actor, upcoming_regressions=remaining)

        raise ActionNotAllowedError(
            f"Release '{release.release_id}' has no regression cycle to abandon"
        )

    # -- read model --------------------------------------------------------------

    async def get_release_status(self, release_id: str) -> ReleaseStatusResponse:
        """
        Build the status view of a release.

        Raises:
            ReleaseNotFoundError: If the release does not exist
        """
        release = await self._load(release_id)
        cycles = await self._ctx.store.list_cycles(release_id)
        snapshot = cycle_snapshot(release, cycles)
        phase = derive_release_phase(release, snapshot)

        regression = None
        if release.stage2_status != StageStatus.PENDING or cycles:
            upcoming = sorted(release.upcoming_regressions, key=lambda s: s.scheduled_at)
            regression = RegressionView(
                current_cycle=snapshot.tag if snapshot else None,
                cycle_status=snapshot.status.value if snapshot else None,
                completed_cycles=snapshot.completed_cycles if snapshot else 0,
                total_cycles=snapshot.total_cycles if snapshot else len(upcoming),
                next_cycle_at=upcoming[0].scheduled_at.isoformat() if upcoming else None,
            )

        failure = None
        if phase.phase == Phase.PAUSED_BY_FAILURE:
            failed = failed_required_tasks(await self._live_tasks(release))
            if failed:
                task = failed[0]
                failure = FailureView(
                    task_id=task.task_id,
                    task_type=task.task_type.value,
                    error_kind=task.error_kind.value if task.error_kind else None,
                    error_message=task.error_message,
                    retry_count=task.retry_count,
                )

        return ReleaseStatusResponse(
            release=ReleaseRef(
                id=release.release_id,
                status=release.status.value,
                version=release.version,
                tenant_id=release.tenant_id,
            ),
            stages=StagesView(
                stage1=release.stage1_status.value,
                stage2=release.stage2_status.value,
                stage3=release.stage3_status.value,
            ),
            cron=CronView(status=release.cron_status.value, pause_type=release.pause_type.value),
            current_phase=phase.phase.value,
            display_text=phase.display_text,
            regression=regression,
            actions=[a.value for a in phase.actions],
            can_archive=phase.can_archive,
            failure=failure,
        )
