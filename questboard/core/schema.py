"""SQLite schema (code-first) for quests, tasks and retry allowances."""

import logging

from questboard.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema, in dependency order
COLLECTIONS = [
    "quests",
    "tasks",
    "retry_allowances",
]

TASK_STATUSES = ("not_started", "in_progress", "pending", "completed")

_TABLES = {
    "quests": """
        CREATE TABLE IF NOT EXISTS quests (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL,
            is_main INTEGER NOT NULL DEFAULT 0,
            quarter TEXT NOT NULL,
            completed INTEGER NOT NULL DEFAULT 0,
            progress INTEGER NOT NULL DEFAULT 0 CHECK (progress BETWEEN 0 AND 100),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "tasks": f"""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            quest_id TEXT NOT NULL REFERENCES quests (id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN {TASK_STATUSES!r}),
            due_date TEXT,
            completed_at TEXT,
            verified INTEGER NOT NULL DEFAULT 0,
            proof_url TEXT,
            points_awarded INTEGER NOT NULL DEFAULT 0,
            verification_notes TEXT,
            retry_notes TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "retry_allowances": """
        CREATE TABLE IF NOT EXISTS retry_allowances (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            period TEXT NOT NULL,
            remaining INTEGER NOT NULL CHECK (remaining >= 0),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (owner_id, period)
        )
    """,
}

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_quests_owner_quarter ON quests (owner_id, quarter)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_owner_quest ON tasks (owner_id, quest_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_owner_status ON tasks (owner_id, status, verified)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not exist yet."""
    conn = await db_client.get_connection(db_path=db_path)
    for collection in COLLECTIONS:
        await conn.execute(_TABLES[collection])
    for index_sql in _INDEXES:
        await conn.execute(index_sql)
    await conn.commit()
    logger.info("Schema initialized", extra={"collections": COLLECTIONS})
