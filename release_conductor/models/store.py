# release_conductor/models/store.py
"""
Release store protocol definition.

Defines the abstract interface that both InMemoryReleaseStore and
SQLiteReleaseStore implement. The orchestration engine depends only on this.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from release_conductor.models.enums import Stage
    from release_conductor.models.records import (
        ActivityLogEntry,
        RegressionCycle,
        Release,
        ReleaseSchedule,
        Task,
    )


class ReleaseStore(ABC):
    """
    Abstract base class for release storage implementations.

    Every release write is validated against the release invariants before
    it is persisted.
    """

    async def initialize(self) -> None:
        """Prepare the store for use (schema creation, recovery). No-op by default."""

    async def close(self) -> None:
        """Release resources held by the store. No-op by default."""

    # -- releases ----------------------------------------------------------

    @abstractmethod
    async def add_release(self, release: "Release") -> None:
        """
        Add a release record to the store.

        Args:
            release: Release to add

        Raises:
            ValueError: If release_id already exists
            InvalidStateError: If the release violates an invariant
        """

    @abstractmethod
    async def get_release(self, release_id: str) -> "Release | None":
        """
        Get a release by ID.

        Returns:
            Release if found, None otherwise
        """

    @abstractmethod
    async def list_releases(self, tenant_id: str | None = None) -> "list[Release]":
        """
        List releases, newest first.

        Args:
            tenant_id: Restrict to one tenant (None = all tenants)
        """

    @abstractmethod
    async def list_active_releases(self) -> "list[Release]":
        """
        List releases the scheduler should look at on a tick.

        Returns:
            Non-terminal releases whose cron status is PENDING or RUNNING,
            oldest first
        """

    @abstractmethod
    async def update_release(self, release_id: str, **kwargs) -> "Release":
        """
        Update fields on an existing release.

        Args:
            release_id: Release identifier
            **kwargs: Fields to update

        Returns:
            The updated Release

        Raises:
            ValueError: If release_id doesn't exist or a field name is invalid
            InvalidStateError: If the merged release violates an invariant
        """

    # -- tasks -------------------------------------------------------------

    @abstractmethod
    async def add_tasks(self, tasks: "list[Task]") -> None:
        """
        Add task records in one write.

        Raises:
            ValueError: If any task_id already exists
        """

    @abstractmethod
    async def get_task(self, task_id: str) -> "Task | None":
        """Get a task by ID, or None."""

    @abstractmethod
    async def list_tasks(
        self,
        release_id: str,
        stage: "Stage | None" = None,
        cycle_id: str | None = None,
    ) -> "list[Task]":
        """
        List a release's tasks ordered by sequence index.

        Args:
            release_id: Owning release
            stage: Restrict to one stage
            cycle_id: Restrict to one regression cycle
        """

    @abstractmethod
    async def update_task(self, task_id: str, **kwargs) -> "Task":
        """
        Update fields on an existing task.

        Returns:
            The updated Task

        Raises:
            ValueError: If task_id doesn't exist or a field name is invalid
        """

    # -- regression cycles -------------------------------------------------

    @abstractmethod
    async def add_cycle(self, cycle: "RegressionCycle") -> None:
        """Add a regression cycle. Raises ValueError on duplicate id."""

    @abstractmethod
    async def list_cycles(self, release_id: str) -> "list[RegressionCycle]":
        """List a release's regression cycles ordered by sequence."""

    @abstractmethod
    async def update_cycle(self, cycle_id: str, **kwargs) -> "RegressionCycle":
        """Update fields on a regression cycle. Raises ValueError if unknown."""

    # -- schedules ---------------------------------------------------------

    @abstractmethod
    async def get_schedule(self, config_id: str) -> "ReleaseSchedule | None":
        """Get the cadence bookkeeping for a release configuration."""

    @abstractmethod
    async def save_schedule(self, schedule: "ReleaseSchedule") -> None:
        """Insert or replace the cadence bookkeeping for a configuration."""

    # -- activity log ------------------------------------------------------

    @abstractmethod
    async def append_activity(self, entry: "ActivityLogEntry") -> None:
        """Append an activity log entry. Entries are never updated or deleted."""

    @abstractmethod
    async def list_activity(
        self, entity_id: str | None = None, tenant_id: str | None = None
    ) -> "list[ActivityLogEntry]":
        """List activity entries oldest first, optionally filtered."""

    # -- leases ------------------------------------------------------------

    @abstractmethod
    async def acquire_lock(
        self, resource_id: str, owner: str, ttl_seconds: float, now: datetime
    ) -> bool:
        """
        Try to take the lease on a resource.

        Succeeds when the resource is unlocked, its lease expired, or the
        caller already owns it. Check and set happen atomically.

        Args:
            resource_id: Lock key (e.g. "release:<id>")
            owner: Scheduler instance identifier
            ttl_seconds: Lease duration
            now: Current time (UTC)

        Returns:
            True if the caller now holds the lease
        """

    @abstractmethod
    async def release_lock(self, resource_id: str, owner: str) -> None:
        """Drop the lease if (and only if) `owner` holds it."""
