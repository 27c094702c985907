"""
Data models for release-conductor.

Provides internal release records, store implementations and Pydantic
response models.
"""

from release_conductor.models.memory_store import InMemoryReleaseStore
from release_conductor.models.records import (
    ActivityLogEntry,
    PlatformTarget,
    RegressionCycle,
    RegressionSlot,
    Release,
    ReleaseSchedule,
    Task,
    generate_id,
)
from release_conductor.models.responses import (
    ActionResponse,
    CreateReleaseResponse,
    ListReleasesResponse,
    ReleaseStatusResponse,
    ReleaseSummary,
    TickResponse,
)
from release_conductor.models.sqlite_store import SQLiteReleaseStore
from release_conductor.models.store import ReleaseStore

__all__ = [
    # Records
    "Release",
    "Task",
    "RegressionCycle",
    "RegressionSlot",
    "PlatformTarget",
    "ReleaseSchedule",
    "ActivityLogEntry",
    "generate_id",
    # Stores
    "ReleaseStore",
    "InMemoryReleaseStore",
    "SQLiteReleaseStore",
    # Response models
    "ReleaseStatusResponse",
    "ActionResponse",
    "ReleaseSummary",
    "ListReleasesResponse",
    "CreateReleaseResponse",
    "TickResponse",
]
