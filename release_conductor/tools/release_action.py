# release_conductor/tools/release_action.py
"""
release_action tool implementation.

Applies a user action (pause, resume, retry_task, ...) to a release.
"""

import logging

from fastmcp.exceptions import ToolError

from release_conductor.errors import (
    ActionNotAllowedError,
    ConfigurationError,
    InvalidStateError,
    ReleaseNotFoundError,
)
from release_conductor.models.responses import ActionResponse
from release_conductor.orchestration.actions import ReleaseActions
from release_conductor.validation.sanitize import (
    parse_action,
    sanitize_actor,
    sanitize_release_id,
)

logger = logging.getLogger(__name__)


async def release_action(
    release_id: str,
    action: str,
    actor: str,
    actions: ReleaseActions,
    task_id: str | None = None,
) -> dict:
    """
    Apply a user action to a release.

    Args:
        release_id: Release identifier
        action: Action name (START, PAUSE, RESUME, TRIGGER_STAGE_2, ...)
        actor: User id recorded in the activity log
        actions: ReleaseActions bound to the store
        task_id: Target task for RETRY_TASK / SKIP_TASK

    Returns:
        ActionResponse as camelCase dict

    Raises:
        ToolError: If input is invalid or the action is not allowed now
    """
    sanitized_id = sanitize_release_id(release_id)
    parsed = parse_action(action)
    actor = sanitize_actor(actor)
    sanitized_task = sanitize_release_id(task_id, label="task") if task_id else None

    try:
        await actions.apply(sanitized_id, parsed, actor, task_id=sanitized_task)
        status = await actions.get_release_status(sanitized_id)
    except ReleaseNotFoundError as e:
        raise ToolError(str(e))
    except (ActionNotAllowedError, ConfigurationError) as e:
        raise ToolError(f"Cannot {parsed.value} release '{sanitized_id}': {e}")
    except InvalidStateError as e:
        logger.error(f"{parsed.value} on {sanitized_id} hit inconsistent state: {e}")
        raise ToolError(f"Release '{sanitized_id}' is in an inconsistent state: {e}")

    response = ActionResponse(
        release_id=sanitized_id,
        action=parsed.value,
        phase=status.current_phase,
        display_text=status.display_text,
        message=f"{parsed.value} applied; release is now {status.display_text}",
    )
    logger.info(f"Applied {parsed.value} to {sanitized_id} by {actor}")
    return response.model_dump(by_alias=True)
