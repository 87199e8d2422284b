"""SQLite database management for finished exchanges."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from shellpane.storage.models import (
    AttributedPayload,
    Exchange,
    ImagePayload,
    Payload,
    StructuredPayload,
    payload_text,
)

logger = logging.getLogger(__name__)

_db: aiosqlite.Connection | None = None


async def init_db(db_path: str) -> None:
    """Initialize database and create tables."""
    global _db
    resolved = Path(db_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(resolved))
    _db.row_factory = aiosqlite.Row
    await _db.execute("PRAGMA journal_mode = WAL")

    await _db.execute("""
        CREATE TABLE IF NOT EXISTS exchanges (
            row_id INTEGER PRIMARY KEY AUTOINCREMENT,
            exchange_id TEXT NOT NULL,
            stream TEXT DEFAULT 'stdout'
                CHECK(stream IN ('stdout', 'stderr')),
            prompt TEXT DEFAULT '',
            command TEXT NOT NULL,
            kind TEXT NOT NULL
                CHECK(kind IN ('attributed', 'plain', 'markdown', 'image')),
            output TEXT DEFAULT '',
            exit_status INTEGER,
            duration_ms INTEGER,
            created_at TIMESTAMP NOT NULL
        )
    """)
    await _db.execute("CREATE INDEX IF NOT EXISTS idx_exchanges_created_at ON exchanges(created_at)")
    await _db.commit()
    logger.info("Database initialized: %s", resolved)


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


def payload_kind(payload: Payload) -> str:
    if isinstance(payload, AttributedPayload):
        return "attributed"
    if isinstance(payload, StructuredPayload):
        return payload.format.value
    if isinstance(payload, ImagePayload):
        return "image"
    raise TypeError(f"Unknown payload: {payload!r}")


async def save_exchange(exchange: Exchange, stream: str = "stdout") -> None:
    """Save a finished exchange to history."""
    try:
        db = await get_db()
        await db.execute(
            """INSERT INTO exchanges
                   (exchange_id, stream, prompt, command, kind, output, exit_status, duration_ms, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                exchange.id,
                stream,
                exchange.prompt,
                exchange.command,
                payload_kind(exchange.payload),
                payload_text(exchange.payload),
                exchange.exit_status,
                exchange.duration_ms,
                exchange.created_at.isoformat(),
            ),
        )
        await db.commit()
    except Exception:
        logger.exception("Failed to save exchange history")


async def get_recent_exchanges(limit: int = 10, query: str | None = None, stream: str = "stdout") -> list[dict]:
    """Get recent exchanges, newest first, optionally filtered by command text."""
    db = await get_db()
    sql = (
        "SELECT exchange_id, prompt, command, kind, output, exit_status, duration_ms, created_at"
        " FROM exchanges WHERE stream = ?"
    )
    params: list[object] = [stream]
    if query:
        sql += " AND command LIKE ?"
        params.append(f"%{query}%")
    sql += " ORDER BY row_id DESC LIMIT ?"
    params.append(limit)

    cursor = await db.execute(sql, params)
    rows = await cursor.fetchall()
    return [dict(row) for row in rows]
