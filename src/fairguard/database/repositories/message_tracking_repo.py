"""Per-message activity rows used for spam bursts and trust scoring."""

from __future__ import annotations

from typing import Optional

import aiosqlite


class MessageTrackingRepo:
    """Low-level access to ``message_tracking``."""

    @staticmethod
    async def record(
        conn: aiosqlite.Connection,
        user_id: str,
        channel_id: str,
        message_id: str,
        timestamp: int,
    ) -> None:
        await conn.execute(
            "INSERT INTO message_tracking (user_id, channel_id, message_id, timestamp) VALUES (?, ?, ?, ?)",
            (user_id, channel_id, message_id, timestamp),
        )

    @staticmethod
    async def count_in_channel_since(conn: aiosqlite.Connection, user_id: str, channel_id: str, since: int) -> int:
        cursor = await conn.execute(
            "SELECT COUNT(*) FROM message_tracking WHERE user_id = ? AND channel_id = ? AND timestamp >= ?",
            (user_id, channel_id, since),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def count_since(conn: aiosqlite.Connection, user_id: str, since: int) -> int:
        cursor = await conn.execute(
            "SELECT COUNT(*) FROM message_tracking WHERE user_id = ? AND timestamp >= ?",
            (user_id, since),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def first_seen(conn: aiosqlite.Connection, user_id: str) -> Optional[int]:
        cursor = await conn.execute("SELECT MIN(timestamp) FROM message_tracking WHERE user_id = ?", (user_id,))
        row = await cursor.fetchone()
        return int(row[0]) if row and row[0] is not None else None

    @staticmethod
    async def prune(conn: aiosqlite.Connection, before: int) -> int:
        cursor = await conn.execute("DELETE FROM message_tracking WHERE timestamp < ?", (before,))
        return cursor.rowcount
