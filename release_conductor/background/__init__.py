"""
Background scheduling.

Exports:
    - SchedulerWorker: Periodic scheduler tick driver
    - setup_signal_handlers: Graceful shutdown signal handling
    - ServerLifecycle: Startup recovery and shutdown coordination
"""

from release_conductor.background.lifecycle import ServerLifecycle, build_context
from release_conductor.background.signals import setup_signal_handlers
from release_conductor.background.worker import SchedulerWorker

__all__ = ["SchedulerWorker", "setup_signal_handlers", "ServerLifecycle", "build_context"]
