# release_conductor/validation/sanitize.py
"""
Input sanitization and validation utilities for tool inputs.
"""

import logging
import re
from datetime import datetime, timezone

from fastmcp.exceptions import ToolError

from release_conductor.models.enums import Action, ReleaseType

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{8,64}$")
_CONFIG_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]{1,64}$")


def sanitize_release_id(release_id: str, label: str = "release") -> str:
    """
    Sanitize and validate a release (or task) ID.

    IDs must be 8-64 alphanumeric characters, hyphens or underscores.

    Raises:
        ToolError: If the ID format is invalid
    """
    cleaned = release_id.strip()
    if not _ID_PATTERN.match(cleaned):
        raise ToolError(
            f"Invalid {label} ID '{release_id}': must be 8-64 alphanumeric characters, "
            f"hyphens or underscores"
        )
    return cleaned


def sanitize_config_id(config_id: str) -> str:
    cleaned = config_id.strip()
    if not _CONFIG_ID_PATTERN.match(cleaned):
        raise ToolError(
            f"Invalid release configuration ID '{config_id}': must be 1-64 characters "
            f"of letters, digits, '.', '_' or '-'"
        )
    return cleaned


def sanitize_actor(actor: str, max_length: int = 128) -> str:
    """
    Validate the acting user id recorded in the activity log.

    Raises:
        ToolError: If the actor is empty
    """
    cleaned = actor.strip()
    if not cleaned:
        raise ToolError("Actor cannot be empty")
    if len(cleaned) > max_length:
        logger.warning(f"Actor truncated from {len(cleaned)} to {max_length} characters")
        cleaned = cleaned[:max_length]
    return cleaned


def sanitize_artifact(artifact: str, max_length: int = 2048) -> str:
    """
    Validate the location (URL or storage path) of a manually uploaded build.

    Raises:
        ToolError: If the location is empty, too long or spans several lines
    """
    cleaned = artifact.strip()
    if not cleaned:
        raise ToolError("Build location cannot be empty")
    if len(cleaned) > max_length:
        raise ToolError(f"Build location exceeds {max_length} characters")
    if any(ch in cleaned for ch in "\r\n"):
        raise ToolError("Build location must be a single line")
    return cleaned


def parse_action(value: str) -> Action:
    """Parse an action name case-insensitively ("pause", "RETRY_TASK", "retry-task")."""
    normalized = value.strip().upper().replace("-", "_")
    try:
        return Action(normalized)
    except ValueError:
        valid = ", ".join(a.value for a in Action)
        raise ToolError(f"Unknown action '{value}'. Must be one of: {valid}")


def parse_release_type(value: str | None) -> ReleaseType | None:
    if value is None:
        return None
    try:
        return ReleaseType(value.strip().upper())
    except ValueError:
        valid = ", ".join(t.value for t in ReleaseType)
        raise ToolError(f"Unknown release type '{value}'. Must be one of: {valid}")


def parse_kickoff(value: str | None) -> datetime | None:
    """
    Parse an ISO-8601 kickoff timestamp. Naive values are taken as UTC.

    Raises:
        ToolError: If the value is not ISO-8601
    """
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        raise ToolError(f"Invalid kickoff date '{value}': expected ISO-8601")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
