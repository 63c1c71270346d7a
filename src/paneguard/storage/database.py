"""SQLite audit log of commands run through the guard."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from paneguard.errors import StorageError
from paneguard.storage.models import ExecutionResult

logger = logging.getLogger(__name__)

_db: aiosqlite.Connection | None = None


async def init_db(db_path: str) -> None:
    """Initialize database and create tables."""
    global _db
    resolved = Path(db_path).expanduser().resolve()
    try:
        resolved.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(resolved))
    except (OSError, aiosqlite.Error) as e:
        raise StorageError(f"Failed to open database {resolved}: {e}") from e

    try:
        await _create_schema(db)
    except aiosqlite.Error as e:
        await db.close()
        raise StorageError(f"Failed to initialize database {resolved}: {e}") from e

    _db = db
    logger.info("Database initialized: %s", resolved)


async def _create_schema(db: aiosqlite.Connection) -> None:
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode = WAL")

    await db.execute("""
        CREATE TABLE IF NOT EXISTS commands (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            pane_id TEXT NOT NULL,
            command TEXT NOT NULL,
            output TEXT DEFAULT '',
            exit_code INTEGER,
            risk_level TEXT,
            approval TEXT NOT NULL
                CHECK(approval IN ('preapproved', 'unconfirmed', 'confirmed', 'edited')),
            execution_time_ms INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    await db.execute("CREATE INDEX IF NOT EXISTS idx_commands_created_at ON commands(created_at)")
    await db.commit()


async def get_db() -> aiosqlite.Connection:
    """Get the database connection."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database closed")


async def save_command(result: ExecutionResult) -> None:
    """Append an executed command to the audit log. Never raises."""
    record = result.record
    assessment = result.outcome.assessment
    try:
        db = await get_db()
        await db.execute(
            """INSERT INTO commands (pane_id, command, output, exit_code, risk_level, approval, execution_time_ms)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                result.pane_id,
                result.outcome.final_command,
                record.output if record else "",
                record.exit_code if record else None,
                assessment.level.value if assessment else None,
                result.outcome.approval.value,
                result.execution_time_ms,
            ),
        )
        await db.commit()
    except Exception:
        logger.exception("Failed to save command history")


async def get_recent_commands(limit: int = 10) -> list[dict]:
    """Get recent command history, newest first."""
    db = await get_db()
    cursor = await db.execute(
        "SELECT pane_id, command, exit_code, risk_level, approval, execution_time_ms, created_at "
        "FROM commands ORDER BY id DESC LIMIT ?",
        (limit,),
    )
    rows = await cursor.fetchall()
    return [dict(row) for row in rows]
