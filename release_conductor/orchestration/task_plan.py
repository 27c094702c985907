# release_conductor/orchestration/task_plan.py
"""
Which tasks a stage contains, in what order, with which dependency edges.

Optional integrations add tasks only when enabled; whether those tasks gate
stage completion comes from the integration's `gates_completion` flag. With
manual build upload the build tasks are planned as manual-upload tasks: they
wait in AWAITING_CALLBACK until a build is uploaded for them.
"""

from dataclasses import dataclass, field
from typing import Any

from release_conductor.models.enums import (
    BuildUploadMode,
    Platform,
    Stage,
    TaskStatus,
    TaskType,
)
from release_conductor.models.records import RegressionCycle, Release, Task, generate_id
from release_conductor.models.release_config import IntegrationToggle, ReleaseConfiguration


@dataclass(frozen=True)
class TaskTemplate:
    task_type: TaskType
    depends_on: tuple[TaskType, ...] = ()
    optional: bool = False
    platform: Platform | None = None
    params: dict[str, Any] = field(default_factory=dict)


MANUAL_UPLOAD_PARAM = "manual_upload"


def is_manual_upload(task: Task) -> bool:
    return bool(task.params.get(MANUAL_UPLOAD_PARAM))


def _optional(toggle: IntegrationToggle) -> bool:
    return not toggle.gates_completion


def _build_params(config: ReleaseConfiguration) -> dict[str, Any]:
    if config.build_upload_mode == BuildUploadMode.MANUAL:
        return {MANUAL_UPLOAD_PARAM: True}
    return {}


def _per_platform(
    task_type: TaskType, config: ReleaseConfiguration, depends_on: tuple[TaskType, ...] = ()
) -> list[TaskTemplate]:
    return [
        TaskTemplate(
            task_type, depends_on=depends_on, platform=platform, params=_build_params(config)
        )
        for platform in config.platforms
    ]


def kickoff_templates(config: ReleaseConfiguration) -> list[TaskTemplate]:
    integrations = config.integrations
    templates = [TaskTemplate(TaskType.FORK_BRANCH)]

    if integrations.ticketing.enabled:
        templates.append(
            TaskTemplate(
                TaskType.CREATE_PROJECT_MANAGEMENT_TICKET,
                optional=_optional(integrations.ticketing),
            )
        )
    if integrations.test_management.enabled:
        templates.append(
            TaskTemplate(TaskType.CREATE_TEST_SUITE, optional=_optional(integrations.test_management))
        )
    if config.pre_regression_builds:
        templates.extend(
            _per_platform(TaskType.TRIGGER_PRE_REGRESSION_BUILDS, config, (TaskType.FORK_BRANCH,))
        )
    if integrations.chat.enabled:
        templates.append(
            TaskTemplate(
                TaskType.SEND_KICKOFF_MESSAGE,
                depends_on=(TaskType.FORK_BRANCH,),
                optional=_optional(integrations.chat),
            )
        )
    return templates


def regression_templates(
    config: ReleaseConfiguration, cycle: RegressionCycle
) -> list[TaskTemplate]:
    integrations = config.integrations
    templates = [TaskTemplate(TaskType.CREATE_RC_TAG, params={"cycle_sequence": cycle.sequence})]
    templates.extend(
        _per_platform(TaskType.TRIGGER_REGRESSION_BUILDS, config, (TaskType.CREATE_RC_TAG,))
    )

    # Automation runs are CI workflows; manual-upload releases have none
    if cycle.automation_runs and config.build_upload_mode == BuildUploadMode.CI_CD:
        templates.extend(
            TaskTemplate(
                TaskType.TRIGGER_AUTOMATION_RUNS,
                depends_on=(TaskType.TRIGGER_REGRESSION_BUILDS,),
                optional=True,
                platform=platform,
            )
            for platform in config.platforms
        )

    builds_done = (TaskType.TRIGGER_REGRESSION_BUILDS, TaskType.CREATE_RC_TAG)
    if integrations.test_management.enabled:
        templates.append(
            TaskTemplate(
                TaskType.CREATE_TEST_RUN,
                depends_on=builds_done,
                optional=_optional(integrations.test_management),
                params={"cycle_tag": cycle.tag},
            )
        )
    if integrations.chat.enabled:
        templates.append(
            TaskTemplate(
                TaskType.SEND_REGRESSION_BUILD_MESSAGE,
                depends_on=builds_done,
                optional=_optional(integrations.chat),
                params={"cycle_tag": cycle.tag},
            )
        )
    return templates


def pre_release_templates(
    config: ReleaseConfiguration, ticket_ids: list[str]
) -> list[TaskTemplate]:
    integrations = config.integrations
    templates = [TaskTemplate(TaskType.CREATE_RELEASE_TAG)]

    if Platform.IOS in config.platforms:
        templates.append(
            TaskTemplate(
                TaskType.TRIGGER_TEST_FLIGHT_BUILD,
                depends_on=(TaskType.CREATE_RELEASE_TAG,),
                platform=Platform.IOS,
                params=_build_params(config),
            )
        )
    if Platform.ANDROID in config.platforms:
        templates.append(
            TaskTemplate(
                TaskType.CREATE_AAB_BUILD,
                depends_on=(TaskType.CREATE_RELEASE_TAG,),
                platform=Platform.ANDROID,
                params=_build_params(config),
            )
        )

    if integrations.ticketing.enabled:
        templates.append(
            TaskTemplate(
                TaskType.CHECK_PROJECT_RELEASE_APPROVAL,
                depends_on=(TaskType.CREATE_RELEASE_TAG,),
                optional=_optional(integrations.ticketing),
                params={"ticket_ids": ticket_ids},
            )
        )
    if integrations.chat.enabled:
        templates.append(
            TaskTemplate(
                TaskType.SEND_PRE_RELEASE_MESSAGE,
                depends_on=(
                    TaskType.CREATE_RELEASE_TAG,
                    TaskType.TRIGGER_TEST_FLIGHT_BUILD,
                    TaskType.CREATE_AAB_BUILD,
                ),
                optional=_optional(integrations.chat),
            )
        )
    return templates


def materialize(
    release: Release,
    stage: Stage,
    templates: list[TaskTemplate],
    cycle_id: str | None = None,
) -> list[Task]:
    """
    Turn templates into PENDING Task records with resolved dependency ids.

    A dependency on a task type resolves to every task of that type in the
    same plan; types that were not planned (disabled integrations, no
    platform for a build) are dropped.
    """
    ids = [generate_id() for _ in templates]
    ids_by_type: dict[TaskType, list[str]] = {}
    for template, task_id in zip(templates, ids):
        ids_by_type.setdefault(template.task_type, []).append(task_id)

    tasks = []
    for sequence, (template, task_id) in enumerate(zip(templates, ids), start=1):
        depends_on = [
            dep_id for dep_type in template.depends_on for dep_id in ids_by_type.get(dep_type, [])
        ]
        tasks.append(
            Task(
                task_id=task_id,
                release_id=release.release_id,
                stage=stage,
                task_type=template.task_type,
                sequence=sequence,
                status=TaskStatus.PENDING,
                depends_on=depends_on,
                optional=template.optional,
                cycle_id=cycle_id,
                platform=template.platform,
                params=dict(template.params),
            )
        )
    return tasks


def build_stage_tasks(
    release: Release,
    stage: Stage,
    config: ReleaseConfiguration,
    cycle: RegressionCycle | None = None,
    kickoff_tasks: list[Task] | None = None,
) -> list[Task]:
    """
    Build the task list for entering `stage`.

    Args:
        release: Owning release
        stage: Stage being entered
        config: The release's configuration
        cycle: The regression cycle (required for Stage.REGRESSION)
        kickoff_tasks: Stage 1 tasks, used to carry ticket ids into stage 3
    """
    if stage == Stage.KICKOFF:
        return materialize(release, stage, kickoff_templates(config))

    if stage == Stage.REGRESSION:
        if cycle is None:
            raise ValueError("Regression tasks are built per cycle")
        return materialize(release, stage, regression_templates(config, cycle), cycle.cycle_id)

    ticket_ids: list[str] = []
    for task in kickoff_tasks or []:
        if task.task_type == TaskType.CREATE_PROJECT_MANAGEMENT_TICKET and task.external_data:
            ticket_ids.extend(task.external_data.get("ticket_ids", []))
    return materialize(release, stage, pre_release_templates(config, ticket_ids))
