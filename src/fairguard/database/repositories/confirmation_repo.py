"""
Persistent storage for AI verdicts awaiting operator confirmation.

A confirmation is consumed by a conditional status update, so only one caller
can move a row out of ``pending``.
"""

from __future__ import annotations

import json
from typing import List, Optional

import aiosqlite

from fairguard.datatypes.moderation_datatypes import ConfirmationStatus, PendingConfirmation

SYSTEM_RESOLVER = "system"


def _row_to_confirmation(row: aiosqlite.Row) -> PendingConfirmation:
    return PendingConfirmation(
        id=row["id"],
        channel_id=row["channel_id"],
        message_id=row["message_id"],
        subject_user_id=row["subject_user_id"],
        status=ConfirmationStatus(row["status"]),
        created_at=row["created_at"],
        ai_verdict=json.loads(row["ai_verdict"]),
        context_snapshot=row["context_snapshot"],
        content=row["content"],
        matched_word=row["matched_word"],
        resolved_by=row["resolved_by"],
    )


class ConfirmationRepo:
    """Low-level access to the ``ai_confirmations`` table."""

    @staticmethod
    async def insert(conn: aiosqlite.Connection, confirmation: PendingConfirmation) -> None:
        await conn.execute(
            """
            INSERT INTO ai_confirmations
                (id, channel_id, message_id, subject_user_id, status, created_at,
                 ai_verdict, context_snapshot, content, matched_word)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                confirmation.id,
                confirmation.channel_id,
                confirmation.message_id,
                confirmation.subject_user_id,
                confirmation.status.value,
                confirmation.created_at,
                json.dumps(confirmation.ai_verdict, ensure_ascii=False),
                confirmation.context_snapshot,
                confirmation.content,
                confirmation.matched_word,
            ),
        )

    @staticmethod
    async def get(conn: aiosqlite.Connection, confirmation_id: str) -> Optional[PendingConfirmation]:
        cursor = await conn.execute("SELECT * FROM ai_confirmations WHERE id = ?", (confirmation_id,))
        row = await cursor.fetchone()
        return _row_to_confirmation(row) if row else None

    @staticmethod
    async def consume(
        conn: aiosqlite.Connection,
        confirmation_id: str,
        status: ConfirmationStatus,
        resolved_by: str,
        now: int,
    ) -> bool:
        """Move a pending row to ``status``. Returns False if it was not pending."""
        cursor = await conn.execute(
            """
            UPDATE ai_confirmations
            SET status = ?, resolved_by = ?, resolved_at = ?
            WHERE id = ? AND status = 'pending'
            """,
            (status.value, resolved_by, now, confirmation_id),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def reject_stale(conn: aiosqlite.Connection, created_before: int, now: int) -> int:
        """Reject every pending row created before ``created_before``."""
        cursor = await conn.execute(
            """
            UPDATE ai_confirmations
            SET status = 'rejected', resolved_by = ?, resolved_at = ?
            WHERE status = 'pending' AND created_at < ?
            """,
            (SYSTEM_RESOLVER, now, created_before),
        )
        return cursor.rowcount

    @staticmethod
    async def list_pending(conn: aiosqlite.Connection) -> List[PendingConfirmation]:
        cursor = await conn.execute(
            "SELECT * FROM ai_confirmations WHERE status = 'pending' ORDER BY created_at ASC"
        )
        return [_row_to_confirmation(row) for row in await cursor.fetchall()]
