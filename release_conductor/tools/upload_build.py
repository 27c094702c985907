# release_conductor/tools/upload_build.py
"""
upload_build tool implementation.

Hands a manually uploaded build to the build task waiting for it (releases
configured with build_upload_mode MANUAL).
"""

import logging

from fastmcp.exceptions import ToolError

from release_conductor.errors import ActionNotAllowedError, ReleaseNotFoundError
from release_conductor.orchestration.actions import ReleaseActions
from release_conductor.tools.release_status import task_view
from release_conductor.validation.sanitize import (
    sanitize_actor,
    sanitize_artifact,
    sanitize_release_id,
)

logger = logging.getLogger(__name__)


async def upload_build(
    release_id: str,
    task_id: str,
    artifact: str,
    actor: str,
    actions: ReleaseActions,
) -> dict:
    """
    Complete a manual-upload build task with the uploaded build.

    Returns:
        The completed task as a camelCase TaskView dict

    Raises:
        ToolError: If input is invalid or the task is not waiting for an upload
    """
    sanitized_id = sanitize_release_id(release_id)
    sanitized_task = sanitize_release_id(task_id, label="task")
    artifact = sanitize_artifact(artifact)
    actor = sanitize_actor(actor)

    try:
        task = await actions.upload_build(sanitized_id, sanitized_task, artifact, actor)
    except ReleaseNotFoundError as e:
        raise ToolError(str(e))
    except ActionNotAllowedError as e:
        raise ToolError(f"Cannot upload a build for task '{sanitized_task}': {e}")

    logger.info(f"Upload for {sanitized_task} of {sanitized_id} accepted from {actor}")
    return task_view(task).model_dump(by_alias=True)
