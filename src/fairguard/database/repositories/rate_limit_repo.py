"""Persistent per-user command counters for the fixed-window rate limiter."""

from __future__ import annotations

from typing import Optional, Tuple

import aiosqlite


class RateLimitRepo:
    """Low-level access to ``command_rate_limits``."""

    @staticmethod
    async def get(conn: aiosqlite.Connection, user_id: str) -> Optional[Tuple[int, int]]:
        """Return ``(window_start, count)`` for ``user_id``, or None when unseen."""
        cursor = await conn.execute(
            "SELECT window_start, count FROM command_rate_limits WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        return (int(row[0]), int(row[1])) if row else None

    @staticmethod
    async def start_window(conn: aiosqlite.Connection, user_id: str, now: int) -> None:
        await conn.execute(
            """
            INSERT INTO command_rate_limits (user_id, window_start, count)
            VALUES (?, ?, 1)
            ON CONFLICT(user_id) DO UPDATE SET
                window_start = excluded.window_start,
                count        = 1
            """,
            (user_id, now),
        )

    @staticmethod
    async def increment(conn: aiosqlite.Connection, user_id: str) -> None:
        await conn.execute(
            "UPDATE command_rate_limits SET count = count + 1 WHERE user_id = ?",
            (user_id,),
        )

    @staticmethod
    async def prune(conn: aiosqlite.Connection, window_started_before: int) -> int:
        cursor = await conn.execute(
            "DELETE FROM command_rate_limits WHERE window_start < ?",
            (window_started_before,),
        )
        return cursor.rowcount
