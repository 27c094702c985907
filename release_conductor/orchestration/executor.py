# release_conductor/orchestration/executor.py
"""
Task executor: one task, one collaborator call.

Dispatch moves a PENDING task to COMPLETED, AWAITING_CALLBACK (CI builds,
test runs, pending approvals, manual build uploads) or FAILED with a classified
ErrorKind. Polling asks the external system once about an AWAITING_CALLBACK
task.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from release_conductor.errors import (
    ConfigurationError,
    ErrorKind,
    ExternalRejection,
    InvalidStateError,
    classify_error,
)
from release_conductor.integrations.base import RunStatus, TicketStatus
from release_conductor.models.enums import (
    ActivityType,
    EntityType,
    Platform,
    TaskStatus,
    TaskType,
    WorkflowKind,
)
from release_conductor.models.records import RegressionCycle, Release, Task
from release_conductor.models.release_config import ReleaseConfiguration
from release_conductor.orchestration.context import OrchestrationContext
from release_conductor.orchestration.task_plan import is_manual_upload
from release_conductor.orchestration.versioning import rc_tag_name, release_tag_name

logger = logging.getLogger(__name__)

_WORKFLOW_KINDS = {
    TaskType.TRIGGER_PRE_REGRESSION_BUILDS: WorkflowKind.PRE_REGRESSION,
    TaskType.TRIGGER_REGRESSION_BUILDS: WorkflowKind.REGRESSION,
    TaskType.TRIGGER_AUTOMATION_RUNS: WorkflowKind.AUTOMATION,
    TaskType.TRIGGER_TEST_FLIGHT_BUILD: WorkflowKind.TEST_FLIGHT,
    TaskType.CREATE_AAB_BUILD: WorkflowKind.AAB,
}

_MESSAGE_TASKS = frozenset(
    {
        TaskType.SEND_KICKOFF_MESSAGE,
        TaskType.SEND_REGRESSION_BUILD_MESSAGE,
        TaskType.SEND_PRE_RELEASE_MESSAGE,
    }
)


@dataclass
class TaskContext:
    """Everything the executor needs to run one task."""

    release: Release
    task: Task
    config: ReleaseConfiguration | None
    cycle: RegressionCycle | None = None


@dataclass(frozen=True)
class TaskResult:
    task: Task

    @property
    def status(self) -> TaskStatus:
        return self.task.status

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.task.error_kind

    @property
    def failed(self) -> bool:
        return self.task.status == TaskStatus.FAILED


@dataclass
class _Outcome:
    status: TaskStatus
    external_id: str | None = None
    external_data: dict[str, Any] = field(default_factory=dict)


def _version_for(release: Release, platform: Platform | None) -> str:
    for target in release.platform_targets:
        if target.platform == platform:
            return target.version
    return release.version


class TaskExecutor:
    """Executes and polls tasks against the collaborators in an OrchestrationContext."""

    def __init__(self, context: OrchestrationContext) -> None:
        self._ctx = context

    async def _transition(
        self, tc: TaskContext, status: TaskStatus, actor: str, **fields
    ) -> Task:
        previous = tc.task.status
        tc.task = await self._ctx.store.update_task(tc.task.task_id, status=status, **fields)
        if status != previous:
            await self._ctx.activity.record(
                EntityType.TASK,
                tc.task.task_id,
                tc.release.tenant_id,
                ActivityType.TASK_STATUS,
                previous,
                status,
                actor,
            )
        return tc.task

    async def execute_task(self, task_context: TaskContext, actor: str = "system") -> TaskResult:
        """
        Dispatch one PENDING task.

        Returns:
            TaskResult wrapping the persisted task after the attempt

        Raises:
            InvalidStateError: If the task is not PENDING
        """
        task = task_context.task
        if task.status != TaskStatus.PENDING:
            raise InvalidStateError(
                f"Task {task.task_id} is {task.status.value}, only PENDING tasks are dispatched"
            )

        await self._transition(
            task_context,
            TaskStatus.IN_PROGRESS,
            actor,
            dispatched_at=self._ctx.clock(),
            error_kind=None,
            error_message=None,
        )

        try:
            outcome = await self._dispatch(task_context)
        except InvalidStateError:
            raise
        except asyncio.CancelledError:
            # Collaborator state is unknown here
            await self._fail(
                task_context, ErrorKind.TRANSIENT, "Dispatch interrupted before it finished", actor
            )
            raise
        except Exception as e:
            return TaskResult(await self._fail(task_context, classify_error(e), e, actor))

        completed_at = self._ctx.clock() if outcome.status == TaskStatus.COMPLETED else None
        task = await self._transition(
            task_context,
            outcome.status,
            actor,
            external_id=outcome.external_id,
            external_data=outcome.external_data,
            completed_at=completed_at,
        )
        logger.info(
            f"Task {task.task_id} ({task.task_type.value}) of release {task.release_id} "
            f"-> {task.status.value}"
        )
        return TaskResult(task)

    async def _fail(
        self, tc: TaskContext, kind: ErrorKind, error: BaseException | str, actor: str
    ) -> Task:
        task = tc.task
        message = str(error) or type(error).__name__
        logger.warning(
            f"Task {task.task_id} ({task.task_type.value}) of release {task.release_id} "
            f"failed [{kind.value}]: {message}"
        )
        return await self._transition(
            tc,
            TaskStatus.FAILED,
            actor,
            error_kind=kind,
            error_message=message,
        )

    async def fail_task(
        self, task_context: TaskContext, kind: ErrorKind, message: str, actor: str = "system"
    ) -> TaskResult:
        """Force a task to FAILED (callback timeouts, abandoned dispatches)."""
        return TaskResult(await self._fail(task_context, kind, message, actor))

    async def poll_task(self, task_context: TaskContext) -> TaskResult:
        """
        Ask the external system once about an AWAITING_CALLBACK task.

        Completed runs complete the task, failed or cancelled runs fail it as
        a rejection, anything still running leaves it untouched. A transient
        error while polling also leaves it untouched.
        """
        task = task_context.task
        if task.status != TaskStatus.AWAITING_CALLBACK:
            raise InvalidStateError(
                f"Task {task.task_id} is {task.status.value}, not AWAITING_CALLBACK"
            )

        try:
            status = await self._poll(task_context)
        except InvalidStateError:
            raise
        except Exception as e:
            kind = classify_error(e)
            if kind == ErrorKind.TRANSIENT:
                logger.warning(f"Polling task {task.task_id} failed transiently: {e}")
                return TaskResult(task)
            return TaskResult(await self._fail(task_context, kind, e, "system"))

        if status == RunStatus.COMPLETED:
            task = await self._transition(
                task_context, TaskStatus.COMPLETED, "system", completed_at=self._ctx.clock()
            )
        elif status in (RunStatus.FAILED, RunStatus.CANCELLED):
            task = await self._fail(
                task_context,
                ErrorKind.REJECTION,
                f"External run {task.external_id} finished as {status.value}",
                "system",
            )
        return TaskResult(task)

    # -- dispatch ------------------------------------------------------------

    async def _dispatch(self, tc: TaskContext) -> _Outcome:
        task, release, config = tc.task, tc.release, tc.config
        if config is None:
            raise ConfigurationError(
                f"Release {release.release_id} has no release configuration; "
                f"cannot run {task.task_type.value}"
            )
        tenant = release.tenant_id

        if is_manual_upload(task):
            # Completed by ReleaseActions.upload_build, not by a collaborator
            return _Outcome(
                TaskStatus.AWAITING_CALLBACK,
                None,
                {"awaiting": "manual_upload", "version": _version_for(release, task.platform)},
            )

        if task.task_type == TaskType.FORK_BRANCH:
            ref = await self._ctx.scm.fork_branch(
                tenant, config.repo, release.base_branch, release.branch
            )
            return _Outcome(TaskStatus.COMPLETED, ref, {"branch": release.branch})

        if task.task_type == TaskType.CREATE_PROJECT_MANAGEMENT_TICKET:
            ticket_ids = await self._ctx.ticketing.create_tickets(
                tenant, config.config_id, release.release_id, f"Release {release.version}"
            )
            return _Outcome(
                TaskStatus.COMPLETED,
                ticket_ids[0] if ticket_ids else None,
                {"ticket_ids": list(ticket_ids)},
            )

        if task.task_type == TaskType.CREATE_TEST_SUITE:
            suite_id = await self._ctx.test_management.create_test_run(
                tenant, config.config_id, release.release_id, f"Release {release.version}"
            )
            return _Outcome(TaskStatus.COMPLETED, suite_id)

        if task.task_type in (TaskType.CREATE_RC_TAG, TaskType.CREATE_RELEASE_TAG):
            if task.task_type == TaskType.CREATE_RC_TAG:
                if tc.cycle is None:
                    raise InvalidStateError(f"RC tag task {task.task_id} has no regression cycle")
                tag = rc_tag_name(release.version, tc.cycle.sequence)
            else:
                tag = release_tag_name(release.version)
            ref = await self._ctx.scm.create_release_tag(tenant, config.repo, release.branch, tag)
            return _Outcome(TaskStatus.COMPLETED, ref, {"tag": tag})

        if task.task_type in _WORKFLOW_KINDS:
            return await self._trigger_workflow(tc, config, _WORKFLOW_KINDS[task.task_type])

        if task.task_type == TaskType.CREATE_TEST_RUN:
            name = f"{release.version} {tc.cycle.tag if tc.cycle else ''}".strip()
            run_id = await self._ctx.test_management.create_test_run(
                tenant, config.config_id, release.release_id, name
            )
            return _Outcome(TaskStatus.AWAITING_CALLBACK, run_id, {"name": name})

        if task.task_type in _MESSAGE_TASKS:
            return await self._send_message(tc, config)

        if task.task_type == TaskType.CHECK_PROJECT_RELEASE_APPROVAL:
            ticket_ids = list(task.params.get("ticket_ids", []))
            status = await self._ticket_approval(tenant, ticket_ids)
            if status == RunStatus.COMPLETED:
                return _Outcome(TaskStatus.COMPLETED, None, {"ticket_ids": ticket_ids})
            return _Outcome(TaskStatus.AWAITING_CALLBACK, None, {"ticket_ids": ticket_ids})

        raise InvalidStateError(f"No dispatcher for task type {task.task_type.value}")

    async def _trigger_workflow(
        self, tc: TaskContext, config: ReleaseConfiguration, kind: WorkflowKind
    ) -> _Outcome:
        task, release = tc.task, tc.release
        if task.platform is None:
            raise InvalidStateError(f"Build task {task.task_id} has no platform")

        workflow_ref = config.workflow_for(kind, task.platform)
        if workflow_ref is None:
            raise ConfigurationError(
                f"No {kind.value} workflow configured for {task.platform.value} "
                f"in release configuration {config.config_id}"
            )

        params = {
            "release_id": release.release_id,
            "branch": release.branch,
            "version": _version_for(release, task.platform),
            "platform": task.platform.value,
        }
        if tc.cycle is not None:
            params["cycle_tag"] = tc.cycle.tag
        run_id = await self._ctx.cicd.trigger(release.tenant_id, workflow_ref, params)
        return _Outcome(
            TaskStatus.AWAITING_CALLBACK, run_id, {"workflow_ref": workflow_ref, **params}
        )

    async def _send_message(self, tc: TaskContext, config: ReleaseConfiguration) -> _Outcome:
        task, release = tc.task, tc.release
        params = {
            "release_id": release.release_id,
            "version": release.version,
            "branch": release.branch,
            **task.params,
        }
        deliveries = await self._ctx.messaging.send_message(
            config.config_id, task.task_type, params, task.platform
        )
        if not any(result.delivered for result in deliveries.values()):
            details = "; ".join(
                f"{channel}: {result.detail or 'not delivered'}"
                for channel, result in deliveries.items()
            )
            raise ExternalRejection(f"Message not delivered to any channel ({details or 'no channels'})")
        return _Outcome(
            TaskStatus.COMPLETED,
            None,
            {channel: result.delivered for channel, result in deliveries.items()},
        )

    async def _ticket_approval(self, tenant_id: str, ticket_ids: list[str]) -> RunStatus:
        if not ticket_ids:
            raise ConfigurationError(
                "No project management tickets recorded for this release; nothing to approve"
            )
        statuses = [
            await self._ctx.ticketing.get_ticket_status(tenant_id, ticket_id)
            for ticket_id in ticket_ids
        ]
        if TicketStatus.REJECTED in statuses:
            raise ExternalRejection(f"Release approval rejected on tickets {ticket_ids}")
        if all(status == TicketStatus.APPROVED for status in statuses):
            return RunStatus.COMPLETED
        return RunStatus.PENDING

    # -- polling -------------------------------------------------------------

    async def _poll(self, tc: TaskContext) -> RunStatus:
        task, tenant = tc.task, tc.release.tenant_id

        if task.task_type == TaskType.CHECK_PROJECT_RELEASE_APPROVAL:
            return await self._ticket_approval(tenant, list(task.params.get("ticket_ids", [])))

        if is_manual_upload(task):
            return RunStatus.PENDING

        if task.external_id is None:
            raise InvalidStateError(f"Awaiting task {task.task_id} has no external id")

        if task.task_type == TaskType.CREATE_TEST_RUN:
            return await self._ctx.test_management.get_test_run_status(tenant, task.external_id)
        if task.task_type in _WORKFLOW_KINDS:
            return await self._ctx.cicd.get_run_status(tenant, task.external_id)

        raise InvalidStateError(f"Task type {task.task_type.value} never awaits a callback")
