# release_conductor/models/sqlite_store.py
"""
SQLite-backed release persistence.

Provides async CRUD operations with WAL mode and IMMEDIATE transactions so
several scheduler instances can share one database file. The lease table is
the per-release mutation discipline across those instances.
"""

import json
import logging
from dataclasses import fields, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

import aiosqlite

from release_conductor.errors import ErrorKind
from release_conductor.models.enums import (
    ActivityType,
    CronStatus,
    EntityType,
    PauseType,
    Platform,
    RegressionCycleStatus,
    ReleaseStatus,
    ReleaseType,
    Stage,
    StageStatus,
    TaskStatus,
    TaskType,
)
from release_conductor.models.records import (
    ActivityLogEntry,
    PlatformTarget,
    RegressionCycle,
    RegressionSlot,
    Release,
    ReleaseSchedule,
    Task,
    utc_now,
    validate_release,
)
from release_conductor.models.schema import init_db
from release_conductor.models.store import ReleaseStore

logger = logging.getLogger(__name__)


def _encode(value: Any) -> Any:
    """Convert a record field value to its column representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, list):
        return json.dumps([item.to_dict() if hasattr(item, "to_dict") else item for item in value])
    if isinstance(value, dict):
        return json.dumps(value)
    return value


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _columns(record, id_field: str) -> dict[str, Any]:
    """Map a record to {column: encoded value}; the id field becomes `id`."""
    return {
        ("id" if f.name == id_field else f.name): _encode(getattr(record, f.name))
        for f in fields(record)
    }


def _apply(record, id_field: str, record_id: str, kwargs: dict):
    valid_fields = {f.name for f in fields(record)} - {id_field}
    invalid = set(kwargs) - valid_fields
    if invalid:
        raise ValueError(f"Invalid field names: {invalid}")
    return replace(record, **kwargs)


class SQLiteReleaseStore(ReleaseStore):
    """
    Async SQLite-backed release storage.

    Features:
        - WAL mode for concurrent reads/writes
        - IMMEDIATE transactions for write safety
        - Lease locks via compare-and-set inside one IMMEDIATE transaction
        - No persistent connections (avoids resource leaks)
    """

    def __init__(self, db_path: str) -> None:
        """
        Initialize SQLite release store.

        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        logger.info(f"Created SQLiteReleaseStore with path: {db_path}")

    @property
    def db_path(self) -> str:
        return self._db_path

    async def initialize(self) -> None:
        """Initialize database schema."""
        await init_db(self._db_path)

    async def close(self) -> None:
        """
        Checkpoint WAL and close database.

        Truncates WAL file to avoid unbounded growth.
        """
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                logger.info("WAL checkpoint completed")
        except aiosqlite.Error as e:
            logger.warning(f"WAL checkpoint failed: {e}")

    async def _insert(self, table: str, rows: list[dict[str, Any]], kind: str) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute("BEGIN IMMEDIATE")

            try:
                for row in rows:
                    cursor = await db.execute(f"SELECT id FROM {table} WHERE id = ?", (row["id"],))
                    if await cursor.fetchone():
                        raise ValueError(f"{kind} {row['id']} already exists")

                    columns = ", ".join(row)
                    placeholders = ", ".join("?" for _ in row)
                    await db.execute(
                        f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                        tuple(row.values()),
                    )

                await db.commit()

            except Exception:
                await db.rollback()
                raise

    async def _fetch_one(self, sql: str, params: tuple) -> aiosqlite.Row | None:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            return await cursor.fetchone()

    async def _fetch_all(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            return list(await cursor.fetchall())

    async def _update(self, table: str, record_id: str, kind: str, id_field: str, to_record, kwargs: dict, validate=None):
        """
        Read-modify-write one row inside an IMMEDIATE transaction.

        Only the columns named in `kwargs` are written.
        """
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("BEGIN IMMEDIATE")

            try:
                cursor = await db.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,))
                row = await cursor.fetchone()
                if not row:
                    raise ValueError(f"{kind} {record_id} not found")

                updated = _apply(to_record(row), id_field, record_id, kwargs)
                if validate is not None:
                    validate(updated)

                if kwargs:
                    encoded = _columns(updated, id_field)
                    set_parts = [f"{key} = ?" for key in kwargs]
                    values = [encoded[key] for key in kwargs]
                    values.append(record_id)  # For WHERE clause

                    sql = f"UPDATE {table} SET {', '.join(set_parts)} WHERE id = ?"
                    await db.execute(sql, values)

                await db.commit()
                return updated

            except Exception:
                await db.rollback()
                raise

    # -- releases ----------------------------------------------------------

    async def add_release(self, release: Release) -> None:
        validate_release(release)
        if release.updated_at is None:
            release = replace(release, updated_at=utc_now())
        await self._insert("releases", [_columns(release, "release_id")], "Release")
        logger.info(f"Added release {release.release_id} to SQLite store")

    async def get_release(self, release_id: str) -> Release | None:
        row = await self._fetch_one("SELECT * FROM releases WHERE id = ?", (release_id,))
        return self._row_to_release(row) if row else None

    async def list_releases(self, tenant_id: str | None = None) -> list[Release]:
        if tenant_id is None:
            rows = await self._fetch_all("SELECT * FROM releases ORDER BY created_at DESC")
        else:
            rows = await self._fetch_all(
                "SELECT * FROM releases WHERE tenant_id = ? ORDER BY created_at DESC",
                (tenant_id,),
            )
        return [self._row_to_release(row) for row in rows]

    async def list_active_releases(self) -> list[Release]:
        rows = await self._fetch_all(
            """
            SELECT * FROM releases
            WHERE status NOT IN (?, ?) AND cron_status IN (?, ?)
            ORDER BY created_at ASC
            """,
            (
                ReleaseStatus.COMPLETED.value,
                ReleaseStatus.ARCHIVED.value,
                CronStatus.PENDING.value,
                CronStatus.RUNNING.value,
            ),
        )
        return [self._row_to_release(row) for row in rows]

    async def update_release(self, release_id: str, **kwargs) -> Release:
        kwargs.setdefault("updated_at", utc_now())
        updated = await self._update(
            "releases", release_id, "Release", "release_id",
            self._row_to_release, kwargs, validate=validate_release,
        )
        logger.debug(f"Updated release {release_id}: {list(kwargs.keys())}")
        return updated

    # -- tasks -------------------------------------------------------------

    async def add_tasks(self, tasks: list[Task]) -> None:
        now = utc_now()
        rows = [
            _columns(task if task.updated_at else replace(task, updated_at=now), "task_id")
            for task in tasks
        ]
        await self._insert("tasks", rows, "Task")

    async def get_task(self, task_id: str) -> Task | None:
        row = await self._fetch_one("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return self._row_to_task(row) if row else None

    async def list_tasks(
        self,
        release_id: str,
        stage: Stage | None = None,
        cycle_id: str | None = None,
    ) -> list[Task]:
        clauses = ["release_id = ?"]
        params: list[Any] = [release_id]
        if stage is not None:
            clauses.append("stage = ?")
            params.append(stage.value)
        if cycle_id is not None:
            clauses.append("cycle_id = ?")
            params.append(cycle_id)

        rows = await self._fetch_all(
            f"SELECT * FROM tasks WHERE {' AND '.join(clauses)} ORDER BY sequence ASC",
            tuple(params),
        )
        return [self._row_to_task(row) for row in rows]

    async def update_task(self, task_id: str, **kwargs) -> Task:
        kwargs.setdefault("updated_at", utc_now())
        return await self._update("tasks", task_id, "Task", "task_id", self._row_to_task, kwargs)

    # -- regression cycles -------------------------------------------------

    async def add_cycle(self, cycle: RegressionCycle) -> None:
        await self._insert("regression_cycles", [_columns(cycle, "cycle_id")], "Cycle")

    async def list_cycles(self, release_id: str) -> list[RegressionCycle]:
        rows = await self._fetch_all(
            "SELECT * FROM regression_cycles WHERE release_id = ? ORDER BY sequence ASC",
            (release_id,),
        )
        return [self._row_to_cycle(row) for row in rows]

    async def update_cycle(self, cycle_id: str, **kwargs) -> RegressionCycle:
        return await self._update(
            "regression_cycles", cycle_id, "Cycle", "cycle_id", self._row_to_cycle, kwargs
        )

    # -- schedules ---------------------------------------------------------

    async def get_schedule(self, config_id: str) -> ReleaseSchedule | None:
        row = await self._fetch_one(
            "SELECT * FROM release_schedules WHERE config_id = ?", (config_id,)
        )
        if not row:
            return None

        return ReleaseSchedule(
            config_id=row["config_id"],
            tenant_id=row["tenant_id"],
            next_kickoff_date=date.fromisoformat(row["next_kickoff_date"]),
            last_created_release_id=row["last_created_release_id"],
            enabled=bool(row["enabled"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    async def save_schedule(self, schedule: ReleaseSchedule) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute("BEGIN IMMEDIATE")

            try:
                await db.execute(
                    """
                    INSERT OR REPLACE INTO release_schedules (
                        config_id, tenant_id, next_kickoff_date,
                        last_created_release_id, enabled, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        schedule.config_id,
                        schedule.tenant_id,
                        schedule.next_kickoff_date.isoformat(),
                        schedule.last_created_release_id,
                        1 if schedule.enabled else 0,
                        utc_now().isoformat(),
                    ),
                )
                await db.commit()

            except Exception:
                await db.rollback()
                raise

    # -- activity log ------------------------------------------------------

    async def append_activity(self, entry: ActivityLogEntry) -> None:
        row = _columns(entry, "entry_id")
        for key in ("previous_value", "new_value"):
            value = getattr(entry, key)
            row[key] = None if value is None else json.dumps(value, default=str)
        await self._insert("activity_log", [row], "Activity entry")

    async def list_activity(
        self, entity_id: str | None = None, tenant_id: str | None = None
    ) -> list[ActivityLogEntry]:
        clauses = []
        params: list[Any] = []
        if entity_id is not None:
            clauses.append("entity_id = ?")
            params.append(entity_id)
        if tenant_id is not None:
            clauses.append("tenant_id = ?")
            params.append(tenant_id)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self._fetch_all(
            f"SELECT * FROM activity_log {where} ORDER BY created_at ASC, rowid ASC",
            tuple(params),
        )
        return [
            ActivityLogEntry(
                entry_id=row["id"],
                entity_type=EntityType(row["entity_type"]),
                entity_id=row["entity_id"],
                tenant_id=row["tenant_id"],
                activity_type=ActivityType(row["activity_type"]),
                previous_value=json.loads(row["previous_value"]) if row["previous_value"] else None,
                new_value=json.loads(row["new_value"]) if row["new_value"] else None,
                actor=row["actor"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    # -- leases ------------------------------------------------------------

    async def acquire_lock(
        self, resource_id: str, owner: str, ttl_seconds: float, now: datetime
    ) -> bool:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute("BEGIN IMMEDIATE")

            try:
                cursor = await db.execute(
                    "SELECT owner, expires_at FROM locks WHERE resource_id = ?", (resource_id,)
                )
                row = await cursor.fetchone()
                if row is not None:
                    holder, expires_at = row[0], datetime.fromisoformat(row[1])
                    if holder != owner and expires_at > now:
                        await db.rollback()
                        return False

                await db.execute(
                    """
                    INSERT INTO locks (resource_id, owner, acquired_at, expires_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(resource_id) DO UPDATE SET
                        owner = excluded.owner,
                        acquired_at = excluded.acquired_at,
                        expires_at = excluded.expires_at
                    """,
                    (
                        resource_id,
                        owner,
                        now.isoformat(),
                        (now + timedelta(seconds=ttl_seconds)).isoformat(),
                    ),
                )
                await db.commit()
                return True

            except Exception:
                await db.rollback()
                raise

    async def release_lock(self, resource_id: str, owner: str) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "DELETE FROM locks WHERE resource_id = ? AND owner = ?", (resource_id, owner)
            )
            await db.commit()

    # -- row mappers -------------------------------------------------------

    def _row_to_release(self, row: aiosqlite.Row) -> Release:
        return Release(
            release_id=row["id"],
            tenant_id=row["tenant_id"],
            release_config_id=row["release_config_id"],
            release_type=ReleaseType(row["release_type"]),
            platform_targets=[PlatformTarget.from_dict(d) for d in json.loads(row["platform_targets"])],
            branch=row["branch"],
            base_branch=row["base_branch"],
            status=ReleaseStatus(row["status"]),
            stage1_status=StageStatus(row["stage1_status"]),
            stage2_status=StageStatus(row["stage2_status"]),
            stage3_status=StageStatus(row["stage3_status"]),
            cron_status=CronStatus(row["cron_status"]),
            pause_type=PauseType(row["pause_type"]),
            kickoff_date=_parse_dt(row["kickoff_date"]),
            kickoff_reminder_date=_parse_dt(row["kickoff_reminder_date"]),
            target_release_date=_parse_dt(row["target_release_date"]),
            upcoming_regressions=[
                RegressionSlot.from_dict(d) for d in json.loads(row["upcoming_regressions"])
            ],
            auto_transition_to_stage2=bool(row["auto_transition_to_stage2"]),
            auto_transition_to_stage3=bool(row["auto_transition_to_stage3"]),
            current_phase=row["current_phase"],
            created_by=row["created_by"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def _row_to_task(self, row: aiosqlite.Row) -> Task:
        return Task(
            task_id=row["id"],
            release_id=row["release_id"],
            stage=Stage(row["stage"]),
            task_type=TaskType(row["task_type"]),
            sequence=row["sequence"],
            status=TaskStatus(row["status"]),
            depends_on=json.loads(row["depends_on"]),
            optional=bool(row["optional"]),
            cycle_id=row["cycle_id"],
            platform=Platform(row["platform"]) if row["platform"] else None,
            params=json.loads(row["params"]),
            external_id=row["external_id"],
            external_data=json.loads(row["external_data"]) if row["external_data"] else None,
            error_kind=ErrorKind(row["error_kind"]) if row["error_kind"] else None,
            error_message=row["error_message"],
            retry_count=row["retry_count"],
            dispatched_at=_parse_dt(row["dispatched_at"]),
            completed_at=_parse_dt(row["completed_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def _row_to_cycle(self, row: aiosqlite.Row) -> RegressionCycle:
        return RegressionCycle(
            cycle_id=row["id"],
            release_id=row["release_id"],
            sequence=row["sequence"],
            tag=row["tag"],
            scheduled_at=datetime.fromisoformat(row["scheduled_at"]),
            status=RegressionCycleStatus(row["status"]),
            automation_runs=bool(row["automation_runs"]),
            started_at=_parse_dt(row["started_at"]),
            completed_at=_parse_dt(row["completed_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
