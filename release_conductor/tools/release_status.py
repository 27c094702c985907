# release_conductor/tools/release_status.py
"""
release_status and release_tasks tool implementations.
"""

import logging

from fastmcp.exceptions import ToolError

from release_conductor.errors import InvalidStateError, ReleaseNotFoundError
from release_conductor.models.records import Task
from release_conductor.models.responses import TaskListResponse, TaskView
from release_conductor.models.store import ReleaseStore
from release_conductor.orchestration.actions import ReleaseActions
from release_conductor.validation.sanitize import sanitize_release_id

logger = logging.getLogger(__name__)


async def release_status(release_id: str, actions: ReleaseActions) -> dict:
    """
    Get the derived phase, legal actions and progress of a release.

    Args:
        release_id: Release identifier
        actions: ReleaseActions bound to the store

    Returns:
        ReleaseStatusResponse as camelCase dict

    Raises:
        ToolError: If the ID is invalid, the release is unknown, or its
            persisted state is inconsistent
    """
    sanitized_id = sanitize_release_id(release_id)

    try:
        response = await actions.get_release_status(sanitized_id)
    except ReleaseNotFoundError:
        raise ToolError(
            f"Release '{sanitized_id}' not found. Use list_releases to see available releases."
        )
    except InvalidStateError as e:
        logger.error(f"Release {sanitized_id} has inconsistent state: {e}")
        raise ToolError(f"Release '{sanitized_id}' is in an inconsistent state: {e}")

    logger.info(f"Status for {sanitized_id}: {response.current_phase}")
    return response.model_dump(by_alias=True)


def task_view(task: Task) -> TaskView:
    return TaskView(
        task_id=task.task_id,
        stage=task.stage.value,
        task_type=task.task_type.value,
        status=task.status.value,
        sequence=task.sequence,
        optional=task.optional,
        platform=task.platform.value if task.platform else None,
        cycle_id=task.cycle_id,
        external_id=task.external_id,
        error_kind=task.error_kind.value if task.error_kind else None,
        error_message=task.error_message,
        retry_count=task.retry_count,
    )


async def release_tasks(release_id: str, store: ReleaseStore) -> dict:
    """List every task of a release in stage and sequence order."""
    sanitized_id = sanitize_release_id(release_id)

    release = await store.get_release(sanitized_id)
    if release is None:
        raise ToolError(f"Release '{sanitized_id}' not found.")

    views = [task_view(task) for task in await store.list_tasks(sanitized_id)]
    return TaskListResponse(release_id=sanitized_id, tasks=views).model_dump(by_alias=True)
