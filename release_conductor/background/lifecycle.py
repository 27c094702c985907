# release_conductor/background/lifecycle.py
"""
Server lifecycle management.

Coordinates startup (DB initialization, signals, worker) and shutdown.
"""

import logging
from pathlib import Path

from release_conductor.background.signals import setup_signal_handlers
from release_conductor.background.worker import SchedulerWorker
from release_conductor.config.loader import resolve_db_path, resolve_release_configs_path
from release_conductor.config.schema import ConductorConfig
from release_conductor.integrations.release_configs import YamlReleaseConfigRepository
from release_conductor.models.sqlite_store import SQLiteReleaseStore
from release_conductor.orchestration.actions import ReleaseActions
from release_conductor.orchestration.context import OrchestrationContext
from release_conductor.orchestration.scheduler import ReleaseScheduler

logger = logging.getLogger(__name__)


def build_context(
    config: ConductorConfig, config_path: Path | None = None, **collaborators
) -> OrchestrationContext:
    """
    Wire the SQLite store and YAML release configurations into a context.

    Args:
        config: Root configuration
        config_path: Location of config.yaml (locates release_configs.yaml)
        **collaborators: Integration implementations (scm, cicd, ...);
            unset integrations fail their tasks with a configuration error
    """
    store = SQLiteReleaseStore(str(resolve_db_path(config)))
    release_configs = YamlReleaseConfigRepository(resolve_release_configs_path(config, config_path))
    return OrchestrationContext(store=store, release_configs=release_configs, **collaborators)


class ServerLifecycle:
    """
    Server lifecycle coordinator.

    Manages:
        - Database initialization on startup
        - Scheduler worker lifecycle
        - Signal handler registration
        - Graceful shutdown
    """

    def __init__(self, context: OrchestrationContext, config: ConductorConfig) -> None:
        self._context = context
        self._config = config
        self._scheduler = ReleaseScheduler(context, config)
        self._actions = ReleaseActions(context, lock_ttl_seconds=config.scheduler.lock_ttl_seconds)
        self._worker = SchedulerWorker(
            self._scheduler, interval_seconds=config.scheduler.interval_seconds
        )
        self._shutdown_tasks: list = []
        logger.info(f"Created ServerLifecycle (instance={config.scheduler.instance_id})")

    @property
    def context(self) -> OrchestrationContext:
        return self._context

    @property
    def scheduler(self) -> ReleaseScheduler:
        return self._scheduler

    @property
    def actions(self) -> ReleaseActions:
        return self._actions

    @property
    def worker(self) -> SchedulerWorker:
        return self._worker

    async def startup(self, register_signals: bool = True) -> None:
        """
        Start the server lifecycle.

        Steps:
            1. Initialize database schema
            2. Register signal handlers for graceful shutdown
            3. Start the scheduler worker

        Leases left behind by a crashed process are not touched here; they
        expire after lock_ttl_seconds and the next tick takes them over.
        """
        logger.info("Starting server lifecycle...")
        await self._context.store.initialize()

        if register_signals:
            self._shutdown_tasks = setup_signal_handlers(self.shutdown)

        await self._worker.start()
        logger.info("Server lifecycle started: worker running")

    async def shutdown(self) -> None:
        """
        Stop the worker, then close the store (WAL checkpoint).

        Cancelling the worker interrupts its tick; the tick fails any task it
        was dispatching and releases its leases on the way out.
        """
        logger.info("Shutting down server lifecycle...")
        if self._worker.running:
            await self._worker.stop()
        await self._context.store.close()
        logger.info("Server lifecycle shutdown complete")
