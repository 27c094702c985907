# release_conductor/models/schema.py
"""
Database schema definition for SQLite release persistence.

Provides DDL for tables, indexes, and schema initialization.
"""

import logging

import aiosqlite

logger = logging.getLogger(__name__)

# Schema version for future migrations
SCHEMA_VERSION = 1

RELEASES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS releases (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    release_config_id TEXT,
    release_type TEXT NOT NULL CHECK(release_type IN ('MAJOR', 'MINOR', 'HOTFIX')),
    platform_targets TEXT NOT NULL,
    branch TEXT NOT NULL,
    base_branch TEXT NOT NULL,
    status TEXT NOT NULL CHECK(status IN ('PENDING', 'IN_PROGRESS', 'PAUSED', 'SUBMITTED', 'COMPLETED', 'ARCHIVED')),
    stage1_status TEXT NOT NULL,
    stage2_status TEXT NOT NULL,
    stage3_status TEXT NOT NULL,
    cron_status TEXT NOT NULL CHECK(cron_status IN ('PENDING', 'RUNNING', 'PAUSED', 'COMPLETED')),
    pause_type TEXT NOT NULL,
    kickoff_date TEXT,
    kickoff_reminder_date TEXT,
    target_release_date TEXT,
    upcoming_regressions TEXT NOT NULL DEFAULT '[]',
    auto_transition_to_stage2 INTEGER NOT NULL DEFAULT 1,
    auto_transition_to_stage3 INTEGER NOT NULL DEFAULT 0,
    current_phase TEXT,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

TASKS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    release_id TEXT NOT NULL REFERENCES releases(id),
    stage TEXT NOT NULL,
    task_type TEXT NOT NULL,
    sequence INTEGER NOT NULL,
    status TEXT NOT NULL CHECK(status IN ('PENDING', 'IN_PROGRESS', 'AWAITING_CALLBACK', 'COMPLETED', 'FAILED', 'SKIPPED')),
    depends_on TEXT NOT NULL DEFAULT '[]',
    optional INTEGER NOT NULL DEFAULT 0,
    cycle_id TEXT,
    platform TEXT,
    params TEXT NOT NULL DEFAULT '{}',
    external_id TEXT,
    external_data TEXT,
    error_kind TEXT,
    error_message TEXT,
    retry_count INTEGER NOT NULL DEFAULT 0,
    dispatched_at TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

CYCLES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS regression_cycles (
    id TEXT PRIMARY KEY,
    release_id TEXT NOT NULL REFERENCES releases(id),
    sequence INTEGER NOT NULL,
    tag TEXT NOT NULL,
    scheduled_at TEXT NOT NULL,
    status TEXT NOT NULL CHECK(status IN ('NOT_STARTED', 'IN_PROGRESS', 'DONE', 'ABANDONED')),
    automation_runs INTEGER NOT NULL DEFAULT 0,
    started_at TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL,
    UNIQUE(release_id, sequence)
)
"""

SCHEDULES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS release_schedules (
    config_id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    next_kickoff_date TEXT NOT NULL,
    last_created_release_id TEXT,
    enabled INTEGER NOT NULL DEFAULT 1,
    updated_at TEXT NOT NULL
)
"""

ACTIVITY_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS activity_log (
    id TEXT PRIMARY KEY,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    tenant_id TEXT NOT NULL,
    activity_type TEXT NOT NULL,
    previous_value TEXT,
    new_value TEXT,
    actor TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""

LOCKS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS locks (
    resource_id TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    acquired_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
)
"""

INDEX_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_releases_cron ON releases(cron_status, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_release ON tasks(release_id, sequence)",
    "CREATE INDEX IF NOT EXISTS idx_cycles_release ON regression_cycles(release_id, sequence)",
    "CREATE INDEX IF NOT EXISTS idx_activity_entity ON activity_log(entity_id, created_at)",
]


async def _get_schema_version(db: aiosqlite.Connection) -> int:
    """
    Get current schema version from database.

    Returns:
        Schema version (0 if no version table exists)
    """
    try:
        cursor = await db.execute("SELECT version FROM schema_version LIMIT 1")
        row = await cursor.fetchone()
        return row[0] if row else 0
    except aiosqlite.OperationalError:
        return 0


async def _set_schema_version(db: aiosqlite.Connection, version: int) -> None:
    await db.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER)")
    await db.execute("DELETE FROM schema_version")
    await db.execute("INSERT INTO schema_version (version) VALUES (?)", (version,))


async def init_db(db_path: str) -> None:
    """
    Initialize database schema with WAL mode and optimal settings.

    Args:
        db_path: Path to SQLite database file

    Settings:
        - WAL mode: Concurrent reads + writes from several scheduler instances
        - synchronous=NORMAL: Good durability/performance balance
        - busy_timeout=5000ms: Retry on SQLITE_BUSY
        - foreign_keys=ON: Enforce constraints
    """
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute("PRAGMA synchronous=NORMAL")
        await db.execute("PRAGMA busy_timeout=5000")
        await db.execute("PRAGMA foreign_keys=ON")

        for ddl in (
            RELEASES_TABLE_SQL,
            TASKS_TABLE_SQL,
            CYCLES_TABLE_SQL,
            SCHEDULES_TABLE_SQL,
            ACTIVITY_TABLE_SQL,
            LOCKS_TABLE_SQL,
        ):
            await db.execute(ddl)
        for index in INDEX_SQL:
            await db.execute(index)

        current_version = await _get_schema_version(db)
        if current_version < SCHEMA_VERSION:
            await _set_schema_version(db, SCHEMA_VERSION)
            logger.info(f"New database initialized at v{SCHEMA_VERSION}")
        elif current_version > SCHEMA_VERSION:
            logger.warning(
                f"Database schema v{current_version} is newer than supported v{SCHEMA_VERSION}"
            )

        await db.commit()

        logger.info(f"Initialized database at {db_path} (schema v{SCHEMA_VERSION})")
