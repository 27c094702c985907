# release_conductor/background/signals.py
"""
SIGINT/SIGTERM handling for the long-running server.

Both signals run the lifecycle's shutdown coroutine exactly once: the worker
is cancelled (an interrupted dispatch fails its task as transient and the tick
releases its leases) and the store is closed.
"""

import asyncio
import logging
import signal
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _log_shutdown_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.warning("Shutdown was cancelled before it finished")
    elif task.exception() is not None:
        logger.error("Shutdown failed", exc_info=task.exception())
    else:
        logger.info("Shutdown complete")


def setup_signal_handlers(shutdown: Callable[[], Awaitable[None]]) -> list[asyncio.Task]:
    """
    Route shutdown signals to the given coroutine function.

    The loop-based handler is used where the platform supports it; Windows
    (ProactorEventLoop) falls back to signal.signal().

    Args:
        shutdown: Coroutine function performing the graceful shutdown

    Returns:
        List that receives the shutdown task once a signal arrives
    """
    loop = asyncio.get_running_loop()
    shutdown_tasks: list[asyncio.Task] = []

    def _trigger(sig_name: str) -> None:
        if shutdown_tasks:
            logger.info(f"Received {sig_name} again, shutdown already in progress")
            return
        logger.info(f"Received {sig_name}, shutting down gracefully...")
        task = loop.create_task(shutdown())
        task.add_done_callback(_log_shutdown_outcome)
        shutdown_tasks.append(task)

    def _signal_callback(sig_num, frame) -> None:
        loop.call_soon_threadsafe(_trigger, signal.Signals(sig_num).name)

    try:
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, _trigger, sig.name)
        logger.info("Signal handlers registered (loop-based)")
    except NotImplementedError:
        for sig in SHUTDOWN_SIGNALS:
            signal.signal(sig, _signal_callback)
        logger.info("Signal handlers registered (signal.signal fallback)")

    return shutdown_tasks
