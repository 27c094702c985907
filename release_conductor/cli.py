# release_conductor/cli.py
"""
CLI interface for release-conductor.

Thin presentation layer over the tools/ service layer.
All commands delegate to the same functions that MCP wraps.
"""

import asyncio
import json

import typer

app = typer.Typer(
    name="release-conductor",
    help="Release orchestration: stages, regression cycles and a cron-driven scheduler.",
    no_args_is_help=True,
)


def _run(coro):
    """Run async function from sync CLI context."""
    return asyncio.run(coro)


def _configure_cli_logging() -> None:
    from release_conductor.config.loader import load_config
    from release_conductor.logging_config import configure_logging

    configure_logging(load_config().logging.level, json_format=False)


async def _get_context():
    """Open the configured store and release configurations (no worker)."""
    from release_conductor.background.lifecycle import build_context
    from release_conductor.config.loader import load_config

    config = load_config()
    context = build_context(config)
    await context.store.initialize()
    return context, config


def _phase_color(phase: str | None) -> str:
    """Return ANSI color for a display phase."""
    if not phase:
        return typer.colors.WHITE
    if phase.startswith("PAUSED_BY_FAILURE"):
        return typer.colors.RED
    if phase.startswith("PAUSED") or phase.startswith("AWAITING"):
        return typer.colors.MAGENTA
    if phase in ("COMPLETED", "SUBMITTED_PENDING_APPROVAL"):
        return typer.colors.GREEN
    if phase in ("NOT_STARTED", "ARCHIVED"):
        return typer.colors.CYAN
    return typer.colors.YELLOW


_TASK_COLORS = {
    "COMPLETED": "green",
    "SKIPPED": "cyan",
    "FAILED": "red",
    "AWAITING_CALLBACK": "magenta",
    "IN_PROGRESS": "yellow",
    "PENDING": "white",
}


@app.command()
def tick():
    """Run one scheduler pass (for an external cron) and exit."""
    from release_conductor.orchestration.scheduler import ReleaseScheduler
    from release_conductor.tools.run_tick import run_tick

    _configure_cli_logging()

    async def _tick():
        context, config = await _get_context()
        try:
            return await run_tick(ReleaseScheduler(context, config))
        finally:
            await context.store.close()

    result = _run(_tick())
    color = typer.colors.GREEN if result["success"] else typer.colors.RED
    typer.echo(
        typer.style(
            f"Processed {result['processedCount']} release(s), "
            f"skipped {result['skippedLocked']} locked, "
            f"created {len(result['createdReleases'])} in {result['durationSeconds']:.2f}s",
            fg=color,
        )
    )
    for error in result["errors"]:
        typer.echo(typer.style(f"  {error}", fg=typer.colors.RED), err=True)
    if not result["success"]:
        raise typer.Exit(1)


@app.command("run")
def run_worker():
    """Run the scheduler loop in the foreground. Ctrl+C to stop."""
    from release_conductor.background.lifecycle import ServerLifecycle, build_context
    from release_conductor.config.loader import load_config

    _configure_cli_logging()
    config = load_config()

    async def _run_worker():
        lifecycle = ServerLifecycle(build_context(config), config)
        await lifecycle.startup(register_signals=False)
        typer.echo(
            f"Scheduler running every {config.scheduler.interval_seconds:.0f}s... (Ctrl+C to stop)\n"
        )
        try:
            while True:
                await asyncio.sleep(1)
        except (KeyboardInterrupt, asyncio.CancelledError):
            pass
        finally:
            typer.echo("\nShutting down...")
            await lifecycle.shutdown()

    try:
        _run(_run_worker())
    except KeyboardInterrupt:
        pass


@app.command("list")
def list_cmd(tenant: str = typer.Option(None, "--tenant", "-t", help="Only this tenant")):
    """List releases, newest first."""
    from release_conductor.tools.list_releases import list_releases

    async def _list():
        context, _ = await _get_context()
        try:
            return await list_releases(context.store, tenant_id=tenant)
        finally:
            await context.store.close()

    result = _run(_list())
    releases = result["releases"]

    if not releases:
        typer.echo("No releases found.")
        return

    typer.echo(f"{'RELEASE ID':<14} {'VERSION':<10} {'PHASE':<32} {'TENANT':<12} KICKOFF")
    typer.echo("-" * 90)
    for r in releases:
        phase = r["phase"] or r["status"]
        typer.echo(
            f"{r['releaseId']:<14} {r['version']:<10} "
            + typer.style(f"{phase:<32} ", fg=_phase_color(phase))
            + f"{r['tenantId']:<12} {r['kickoffDate'] or '-'}"
        )


@app.command()
def status(release_id: str = typer.Argument(..., help="Release ID to check")):
    """Show the phase, legal actions and progress of a release."""
    from release_conductor.orchestration.actions import ReleaseActions
    from release_conductor.tools.release_status import release_status

    async def _status():
        context, _ = await _get_context()
        try:
            return await release_status(release_id, ReleaseActions(context))
        finally:
            await context.store.close()

    try:
        result = _run(_status())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    release, stages, cron = result["release"], result["stages"], result["cron"]
    typer.echo(f"Release:  {release['id']} ({release['version']}, tenant {release['tenantId']})")
    typer.echo(
        typer.style(
            f"Phase:    {result['currentPhase']} - {result['displayText']}",
            fg=_phase_color(result["currentPhase"]),
        )
    )
    typer.echo(f"Status:   {release['status']}")
    typer.echo(f"Stages:   {stages['stage1']} / {stages['stage2']} / {stages['stage3']}")
    typer.echo(f"Cron:     {cron['status']} (pause: {cron['pauseType']})")
    if result.get("regression"):
        reg = result["regression"]
        typer.echo(
            f"Cycles:   {reg['completedCycles']}/{reg['totalCycles']} done"
            + (f", current {reg['currentCycle']} {reg['cycleStatus']}" if reg["currentCycle"] else "")
            + (f", next at {reg['nextCycleAt']}" if reg["nextCycleAt"] else "")
        )
    actions = result["actions"] + (["ARCHIVE"] if result["canArchive"] else [])
    typer.echo(f"Actions:  {', '.join(actions) or '-'}")
    if result.get("failure"):
        failure = result["failure"]
        typer.echo(
            typer.style(
                f"Failure:  {failure['taskType']} ({failure['taskId']}) "
                f"[{failure['errorKind']}] {failure['errorMessage']}",
                fg=typer.colors.RED,
            )
        )


@app.command()
def tasks(release_id: str = typer.Argument(..., help="Release ID")):
    """List the tasks of a release."""
    from rich.console import Console
    from rich.table import Table

    from release_conductor.tools.release_status import release_tasks

    async def _tasks():
        context, _ = await _get_context()
        try:
            return await release_tasks(release_id, context.store)
        finally:
            await context.store.close()

    try:
        result = _run(_tasks())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    table = Table(title=f"Tasks of {result['releaseId']}")
    table.add_column("Task ID", style="dim")
    table.add_column("Stage")
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Platform")
    table.add_column("Status")
    table.add_column("Error")
    for t in result["tasks"]:
        optional = " (optional)" if t["optional"] else ""
        table.add_row(
            t["taskId"],
            t["stage"],
            str(t["sequence"]),
            t["taskType"] + optional,
            t["platform"] or "",
            f"[{_TASK_COLORS.get(t['status'], 'white')}]{t['status']}[/]",
            f"[{t['errorKind']}] {t['errorMessage']}" if t["errorKind"] else "",
        )
    Console().print(table)


@app.command()
def create(
    config_id: str = typer.Argument(..., help="Release configuration ID"),
    actor: str = typer.Option("cli", "--actor", help="User recorded in the activity log"),
    release_type: str = typer.Option(None, "--type", help="MAJOR, MINOR or HOTFIX"),
    kickoff: str = typer.Option(None, "--kickoff", help="ISO-8601 kickoff (default: now)"),
):
    """Create a release from a release configuration."""
    from release_conductor.tools.create_release import create_release

    async def _create():
        context, _ = await _get_context()
        try:
            return await create_release(
                config_id, context, actor=actor, release_type=release_type, kickoff_date=kickoff
            )
        finally:
            await context.store.close()

    try:
        result = _run(_create())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(
        f"Created release {result['releaseId']} ({result['version']}) on {result['branch']}, "
        f"kickoff {result['kickoffDate']}."
    )


@app.command()
def action(
    release_id: str = typer.Argument(..., help="Release ID"),
    name: str = typer.Argument(..., help="Action: start, pause, resume, trigger_stage_2, ..."),
    task_id: str = typer.Option(None, "--task", help="Task ID for retry_task / skip_task"),
    actor: str = typer.Option("cli", "--actor", help="User recorded in the activity log"),
):
    """Apply a user action to a release."""
    from release_conductor.orchestration.actions import ReleaseActions
    from release_conductor.tools.release_action import release_action

    async def _action():
        context, config = await _get_context()
        try:
            actions = ReleaseActions(context, lock_ttl_seconds=config.scheduler.lock_ttl_seconds)
            return await release_action(release_id, name, actor, actions, task_id=task_id)
        finally:
            await context.store.close()

    try:
        result = _run(_action())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(typer.style(result["message"], fg=_phase_color(result["phase"])))


@app.command()
def upload(
    release_id: str = typer.Argument(..., help="Release ID"),
    task_id: str = typer.Argument(..., help="Build task waiting for a manual upload"),
    artifact: str = typer.Argument(..., help="Location (URL or storage path) of the build"),
    actor: str = typer.Option("cli", "--actor", help="User recorded in the activity log"),
):
    """Hand a manually uploaded build to the task waiting for it."""
    from release_conductor.orchestration.actions import ReleaseActions
    from release_conductor.tools.upload_build import upload_build

    async def _upload():
        context, config = await _get_context()
        try:
            actions = ReleaseActions(context, lock_ttl_seconds=config.scheduler.lock_ttl_seconds)
            return await upload_build(release_id, task_id, artifact, actor, actions)
        finally:
            await context.store.close()

    try:
        result = _run(_upload())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(
        typer.style(
            f"{result['taskType']} ({result['platform'] or 'all platforms'}) completed "
            f"with {result['externalId']}",
            fg="green",
        )
    )


@app.command()
def history(
    release_id: str = typer.Argument(..., help="Release ID"),
    limit: int = typer.Option(50, "--limit", "-n", help="Most recent entries to show"),
):
    """Show the activity log of a release."""
    from rich.console import Console
    from rich.table import Table

    from release_conductor.tools.release_history import release_history

    async def _history():
        context, _ = await _get_context()
        try:
            return await release_history(release_id, context.store, limit=limit)
        finally:
            await context.store.close()

    try:
        result = _run(_history())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    table = Table(title=f"Activity of {result['releaseId']}")
    table.add_column("When", style="dim")
    table.add_column("Entity")
    table.add_column("Change")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Actor")
    for e in result["entries"]:
        table.add_row(
            e["createdAt"],
            f"{e['entityType']} {e['entityId']}",
            e["activityType"],
            json.dumps(e["previousValue"]) if e["previousValue"] is not None else "",
            json.dumps(e["newValue"]) if e["newValue"] is not None else "",
            e["actor"],
        )
    Console().print(table)


@app.command()
def serve():
    """Start the MCP server on stdio."""
    from release_conductor.__main__ import main

    asyncio.run(main())


if __name__ == "__main__":
    app()
