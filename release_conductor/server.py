# release_conductor/server.py
"""
FastMCP server instance with tool registration.

configure_logging() is called first to prevent stdout pollution: the stdio
transport owns stdout, so all logging goes to stderr as JSON.
"""

from release_conductor.logging_config import configure_logging

configure_logging()

import logging

from fastmcp import FastMCP

from release_conductor.background.lifecycle import ServerLifecycle, build_context
from release_conductor.config.loader import load_config
from release_conductor.config.schema import ConductorConfig
from release_conductor.tools.create_release import create_release as _create_release
from release_conductor.tools.list_releases import list_releases as _list_releases
from release_conductor.tools.release_action import release_action as _release_action
from release_conductor.tools.release_history import release_history as _release_history
from release_conductor.tools.release_status import release_status as _release_status
from release_conductor.tools.release_status import release_tasks as _release_tasks
from release_conductor.tools.run_tick import run_tick as _run_tick
from release_conductor.tools.upload_build import upload_build as _upload_build

logger = logging.getLogger(__name__)

mcp = FastMCP("release-conductor")

_config = load_config()
logging.getLogger().setLevel(_config.logging.level)
logger.info(f"Loaded configuration: instance={_config.scheduler.instance_id}")

# Lifecycle manager (initialized by __main__.py)
_lifecycle: ServerLifecycle | None = None


def get_lifecycle() -> ServerLifecycle:
    """
    Get the lifecycle manager.

    Raises:
        RuntimeError: If lifecycle not initialized (should never happen)
    """
    if _lifecycle is None:
        raise RuntimeError("Server lifecycle not initialized. Call initialize_lifecycle() first.")
    return _lifecycle


async def initialize_lifecycle(config: ConductorConfig | None = None) -> None:
    """
    Initialize the server lifecycle (DB + worker + signals).

    Must be called before any tool calls. Called by __main__.py on startup.
    """
    global _lifecycle

    actual_config = config or _config
    context = build_context(actual_config)
    _lifecycle = ServerLifecycle(context, actual_config)
    await _lifecycle.startup()

    logger.info("Lifecycle initialized: SQLite + scheduler worker + signals ready")


@mcp.tool()
async def list_releases(tenant_id: str | None = None) -> dict:
    """List releases (newest first) with their status and display phase."""
    return await _list_releases(get_lifecycle().context.store, tenant_id=tenant_id)


@mcp.tool()
async def release_status(release_id: str) -> dict:
    """Get a release's derived phase, legal actions, regression progress and failure details."""
    return await _release_status(release_id, get_lifecycle().actions)


@mcp.tool()
async def release_tasks(release_id: str) -> dict:
    """List all tasks of a release with status and error details."""
    return await _release_tasks(release_id, get_lifecycle().context.store)


@mcp.tool()
async def release_action(
    release_id: str, action: str, actor: str, task_id: str | None = None
) -> dict:
    """Apply a user action (START, PAUSE, RESUME, TRIGGER_STAGE_2, RETRY_TASK, ...) to a release."""
    return await _release_action(
        release_id, action, actor, get_lifecycle().actions, task_id=task_id
    )


@mcp.tool()
async def create_release(
    config_id: str,
    actor: str,
    release_type: str | None = None,
    kickoff_date: str | None = None,
    versions: dict[str, str] | None = None,
) -> dict:
    """Create a release from a release configuration. Starts automatically at its kickoff date."""
    return await _create_release(
        config_id,
        get_lifecycle().context,
        actor=actor,
        release_type=release_type,
        kickoff_date=kickoff_date,
        versions=versions,
    )


@mcp.tool()
async def upload_build(release_id: str, task_id: str, artifact: str, actor: str) -> dict:
    """Complete a build task of a MANUAL-upload release with the uploaded build's location."""
    return await _upload_build(release_id, task_id, artifact, actor, get_lifecycle().actions)


@mcp.tool()
async def release_history(release_id: str, limit: int = 200) -> dict:
    """Get the activity log of a release, its tasks and its regression cycles."""
    return await _release_history(release_id, get_lifecycle().context.store, limit=limit)


@mcp.tool()
async def run_tick() -> dict:
    """Run one scheduler pass now instead of waiting for the next interval."""
    return await _run_tick(get_lifecycle().scheduler)


logger.info("MCP server initialized with 8 tools")
