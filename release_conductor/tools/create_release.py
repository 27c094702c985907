# release_conductor/tools/create_release.py
"""
create_release tool implementation.

Creates a PENDING release from a release configuration. The scheduler starts
it when its kickoff date arrives.
"""

import logging

from fastmcp.exceptions import ToolError

from release_conductor.errors import ConfigurationError
from release_conductor.models.responses import CreateReleaseResponse
from release_conductor.orchestration.context import OrchestrationContext
from release_conductor.orchestration.releases import create_release as create_release_record
from release_conductor.orchestration.versioning import is_valid_version
from release_conductor.validation.sanitize import (
    parse_kickoff,
    parse_release_type,
    sanitize_actor,
    sanitize_config_id,
)

logger = logging.getLogger(__name__)


async def create_release(
    config_id: str,
    context: OrchestrationContext,
    actor: str = "system",
    release_type: str | None = None,
    kickoff_date: str | None = None,
    versions: dict[str, str] | None = None,
) -> dict:
    """
    Create a release manually.

    Args:
        config_id: Release configuration to instantiate
        context: Orchestration context
        actor: User id recorded in the activity log
        release_type: MAJOR / MINOR / HOTFIX (default: configured type)
        kickoff_date: ISO-8601 kickoff (default: now)
        versions: Explicit version per platform, e.g. {"IOS": "2.0.0"}

    Returns:
        CreateReleaseResponse as camelCase dict

    Raises:
        ToolError: If input is invalid or the configuration is unknown
    """
    sanitized_config = sanitize_config_id(config_id)
    actor = sanitize_actor(actor)
    parsed_type = parse_release_type(release_type)
    kickoff = parse_kickoff(kickoff_date)

    if versions:
        invalid = {k: v for k, v in versions.items() if not is_valid_version(v)}
        if invalid:
            raise ToolError(f"Invalid versions: {invalid}")
        versions = {k.strip().upper(): v for k, v in versions.items()}

    try:
        config = await context.release_configs.get(sanitized_config)
    except ConfigurationError as e:
        raise ToolError(f"Could not load release configurations: {e}")
    if config is None:
        raise ToolError(f"Release configuration '{sanitized_config}' not found")

    release = await create_release_record(
        context,
        config,
        actor=actor,
        release_type=parsed_type,
        kickoff_date=kickoff,
        versions=versions,
    )

    response = CreateReleaseResponse(
        release_id=release.release_id,
        version=release.version,
        branch=release.branch,
        status=release.status.value,
        kickoff_date=release.kickoff_date.isoformat() if release.kickoff_date else None,
    )
    logger.info(f"Created release {release.release_id} from {sanitized_config} by {actor}")
    return response.model_dump(by_alias=True)
