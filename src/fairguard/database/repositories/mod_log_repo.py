"""
Persistent storage for the append-only moderation log.

Entries are never updated except for the ``is_resolved`` flag, which only
moves from 0 to 1 (a schema trigger rejects the reverse).
"""

from __future__ import annotations

import json
from typing import List, Optional, Sequence, Tuple

import aiosqlite

from fairguard.datatypes.moderation_datatypes import LogType, ModerationLogEntry
from fairguard.util.logger import get_logger

logger = get_logger("mod_log_repo")


def _row_to_entry(row: aiosqlite.Row) -> ModerationLogEntry:
    analysis = None
    if row["ai_analysis"]:
        try:
            analysis = json.loads(row["ai_analysis"])
        except json.JSONDecodeError:
            logger.warning("[MOD LOG] Unreadable ai_analysis on log %s", row["id"])
    return ModerationLogEntry(
        id=row["id"],
        type=LogType(row["type"]),
        user_id=row["user_id"],
        moderator_id=row["moderator_id"],
        timestamp=row["timestamp"],
        reason=row["reason"],
        content=row["content"],
        context_snapshot=row["context_snapshot"],
        ai_analysis=analysis,
        is_resolved=bool(row["is_resolved"]),
    )


class ModLogRepo:
    """Low-level access to the ``mod_logs`` table."""

    @staticmethod
    async def insert(conn: aiosqlite.Connection, entry: ModerationLogEntry) -> None:
        await conn.execute(
            """
            INSERT INTO mod_logs
                (id, type, user_id, moderator_id, timestamp, reason, content,
                 context_snapshot, ai_analysis, is_resolved)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.type.value,
                entry.user_id,
                entry.moderator_id,
                entry.timestamp,
                entry.reason,
                entry.content,
                entry.context_snapshot,
                entry.ai_analysis_json(),
                int(entry.is_resolved),
            ),
        )

    @staticmethod
    async def mark_resolved(conn: aiosqlite.Connection, log_id: str) -> bool:
        """Flip ``is_resolved`` 0 -> 1. Returns False if the entry was already resolved or missing."""
        cursor = await conn.execute(
            "UPDATE mod_logs SET is_resolved = 1 WHERE id = ? AND is_resolved = 0",
            (log_id,),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def get(conn: aiosqlite.Connection, log_id: str) -> Optional[ModerationLogEntry]:
        cursor = await conn.execute("SELECT * FROM mod_logs WHERE id = ?", (log_id,))
        row = await cursor.fetchone()
        return _row_to_entry(row) if row else None

    @staticmethod
    async def count_by_moderator_on_user(
        conn: aiosqlite.Connection,
        moderator_id: str,
        user_id: str,
        log_type: LogType,
        since: int,
    ) -> int:
        """How many ``log_type`` entries ``moderator_id`` wrote about ``user_id`` since ``since``."""
        cursor = await conn.execute(
            """
            SELECT COUNT(*) FROM mod_logs
            WHERE moderator_id = ? AND user_id = ? AND type = ? AND timestamp >= ?
            """,
            (moderator_id, user_id, log_type.value, since),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def count_for_user(
        conn: aiosqlite.Connection,
        user_id: str,
        types: Sequence[LogType],
        since: int,
    ) -> int:
        if not types:
            return 0
        placeholders = ", ".join("?" for _ in types)
        cursor = await conn.execute(
            f"SELECT COUNT(*) FROM mod_logs WHERE user_id = ? AND type IN ({placeholders}) AND timestamp >= ?",
            (user_id, *[t.value for t in types], since),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def list_for_user(conn: aiosqlite.Connection, user_id: str, limit: int = 25) -> List[ModerationLogEntry]:
        """Most recent entries about ``user_id``, newest first."""
        cursor = await conn.execute(
            "SELECT * FROM mod_logs WHERE user_id = ? ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (user_id, limit),
        )
        return [_row_to_entry(row) for row in await cursor.fetchall()]

    @staticmethod
    async def list_recent(
        conn: aiosqlite.Connection,
        types: Sequence[LogType],
        limit: int = 10,
        user_id: Optional[str] = None,
    ) -> List[ModerationLogEntry]:
        """Newest ``types`` entries, optionally restricted to one subject user."""
        if not types:
            return []
        placeholders = ", ".join("?" for _ in types)
        query = f"SELECT * FROM mod_logs WHERE type IN ({placeholders})"
        params: list = [t.value for t in types]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY timestamp DESC, rowid DESC LIMIT ?"
        cursor = await conn.execute(query, (*params, limit))
        return [_row_to_entry(row) for row in await cursor.fetchall()]

    @staticmethod
    async def list_by_moderator(conn: aiosqlite.Connection, moderator_id: str, limit: int = 10) -> List[ModerationLogEntry]:
        cursor = await conn.execute(
            "SELECT * FROM mod_logs WHERE moderator_id = ? ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (moderator_id, limit),
        )
        return [_row_to_entry(row) for row in await cursor.fetchall()]

    # ------------------------------------------------------------------
    # Aggregates (analytics)
    # ------------------------------------------------------------------

    @staticmethod
    async def type_counts_since(
        conn: aiosqlite.Connection,
        types: Sequence[LogType],
        since: int,
        limit: int = 5,
    ) -> List[Tuple[LogType, int]]:
        """Entries per type strictly after ``since``, most frequent first."""
        if not types:
            return []
        placeholders = ", ".join("?" for _ in types)
        cursor = await conn.execute(
            f"""
            SELECT type, COUNT(*) AS count FROM mod_logs
            WHERE type IN ({placeholders}) AND timestamp > ?
            GROUP BY type
            ORDER BY count DESC, type
            LIMIT ?
            """,
            (*[t.value for t in types], since, limit),
        )
        return [(LogType(row["type"]), int(row["count"])) for row in await cursor.fetchall()]

    @staticmethod
    async def user_counts_since(
        conn: aiosqlite.Connection,
        types: Sequence[LogType],
        since: int,
        limit: int = 5,
    ) -> List[Tuple[str, int]]:
        if not types:
            return []
        placeholders = ", ".join("?" for _ in types)
        cursor = await conn.execute(
            f"""
            SELECT user_id, COUNT(*) AS count FROM mod_logs
            WHERE type IN ({placeholders}) AND timestamp > ?
            GROUP BY user_id
            ORDER BY count DESC, user_id
            LIMIT ?
            """,
            (*[t.value for t in types], since, limit),
        )
        return [(row["user_id"], int(row["count"])) for row in await cursor.fetchall()]

    @staticmethod
    async def hourly_counts_since(
        conn: aiosqlite.Connection,
        types: Sequence[LogType],
        since: int,
    ) -> List[Tuple[int, int]]:
        """``(UTC hour, count)`` for every hour of the day that has entries."""
        if not types:
            return []
        placeholders = ", ".join("?" for _ in types)
        cursor = await conn.execute(
            f"""
            SELECT (timestamp / 3600000) % 24 AS hour, COUNT(*) AS count FROM mod_logs
            WHERE type IN ({placeholders}) AND timestamp > ?
            GROUP BY hour
            ORDER BY hour
            """,
            (*[t.value for t in types], since),
        )
        return [(int(row["hour"]), int(row["count"])) for row in await cursor.fetchall()]
