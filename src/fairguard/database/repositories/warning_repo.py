"""
Persistent storage for individual warnings and the per-user active count.

``warning_records`` is the source of truth. ``warnings`` is a denormalized
cache that is rebuilt from the records inside the same transaction as every
insert or delete, and never holds a zero row.
"""

from __future__ import annotations

from typing import Iterable, List

import aiosqlite

from fairguard.datatypes.moderation_datatypes import WarningRecord


def _row_to_record(row: aiosqlite.Row) -> WarningRecord:
    return WarningRecord(
        id=row["id"],
        user_id=row["user_id"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        reason=row["reason"],
        moderator_id=row["moderator_id"],
        origin_log_id=row["origin_log_id"],
    )


class WarningRepo:
    """Low-level CRUD for ``warning_records`` and ``warnings``."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert_record(conn: aiosqlite.Connection, record: WarningRecord) -> None:
        await conn.execute(
            """
            INSERT INTO warning_records
                (id, user_id, created_at, expires_at, reason, moderator_id, origin_log_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.user_id,
                record.created_at,
                record.expires_at,
                record.reason,
                record.moderator_id,
                record.origin_log_id,
            ),
        )

    @staticmethod
    async def delete_expired(conn: aiosqlite.Connection, now: int) -> List[str]:
        """Delete every record with ``expires_at < now`` and return the affected user ids."""
        cursor = await conn.execute(
            "SELECT DISTINCT user_id FROM warning_records WHERE expires_at < ?",
            (now,),
        )
        users = [row[0] for row in await cursor.fetchall()]
        if users:
            await conn.execute("DELETE FROM warning_records WHERE expires_at < ?", (now,))
        return users

    @staticmethod
    async def delete_records(conn: aiosqlite.Connection, record_ids: Iterable[str]) -> int:
        ids = list(record_ids)
        if not ids:
            return 0
        await conn.executemany("DELETE FROM warning_records WHERE id = ?", [(rid,) for rid in ids])
        return len(ids)

    @staticmethod
    async def sync_count(conn: aiosqlite.Connection, user_id: str, now: int) -> int:
        """Rebuild the cached count for ``user_id`` from its live records."""
        count = await WarningRepo.count_active(conn, user_id, now)
        if count == 0:
            await conn.execute("DELETE FROM warnings WHERE user_id = ?", (user_id,))
        else:
            await conn.execute(
                """
                INSERT INTO warnings (user_id, count, last_updated)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    count        = excluded.count,
                    last_updated = excluded.last_updated
                """,
                (user_id, count, now),
            )
        return count

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def count_active(conn: aiosqlite.Connection, user_id: str, now: int) -> int:
        cursor = await conn.execute(
            "SELECT COUNT(*) FROM warning_records WHERE user_id = ? AND expires_at >= ?",
            (user_id, now),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def oldest_active_ids(conn: aiosqlite.Connection, user_id: str, now: int, limit: int) -> List[str]:
        """Ids of the ``limit`` oldest live records, oldest first."""
        cursor = await conn.execute(
            """
            SELECT id FROM warning_records
            WHERE user_id = ? AND expires_at >= ?
            ORDER BY created_at ASC, rowid ASC
            LIMIT ?
            """,
            (user_id, now, limit),
        )
        return [row[0] for row in await cursor.fetchall()]

    @staticmethod
    async def list_active(conn: aiosqlite.Connection, user_id: str, now: int) -> List[WarningRecord]:
        cursor = await conn.execute(
            """
            SELECT * FROM warning_records
            WHERE user_id = ? AND expires_at >= ?
            ORDER BY created_at ASC, rowid ASC
            """,
            (user_id, now),
        )
        return [_row_to_record(row) for row in await cursor.fetchall()]

    @staticmethod
    async def get_cached_count(conn: aiosqlite.Connection, user_id: str) -> int | None:
        """Value of the denormalized count row, or None when the user has no row."""
        cursor = await conn.execute("SELECT count FROM warnings WHERE user_id = ?", (user_id,))
        row = await cursor.fetchone()
        return int(row[0]) if row else None
