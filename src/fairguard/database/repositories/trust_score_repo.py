"""Persistent storage for recomputed trust scores."""

from __future__ import annotations

from typing import Optional

import aiosqlite

from fairguard.datatypes.moderation_datatypes import TrustScore


class TrustScoreRepo:
    """Low-level access to ``user_trust_scores``; rows are overwritten, never accumulated."""

    @staticmethod
    async def get(conn: aiosqlite.Connection, user_id: str) -> Optional[TrustScore]:
        cursor = await conn.execute("SELECT * FROM user_trust_scores WHERE user_id = ?", (user_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return TrustScore(
            user_id=row["user_id"],
            score=row["score"],
            last_updated=row["last_updated"],
            warning_count_snapshot=row["warning_count_snapshot"],
            spam_ratio_snapshot=row["spam_ratio_snapshot"],
            first_seen=row["first_seen"],
        )

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, score: TrustScore) -> None:
        await conn.execute(
            """
            INSERT INTO user_trust_scores
                (user_id, score, last_updated, warning_count_snapshot, spam_ratio_snapshot, first_seen)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                score                  = excluded.score,
                last_updated           = excluded.last_updated,
                warning_count_snapshot = excluded.warning_count_snapshot,
                spam_ratio_snapshot    = excluded.spam_ratio_snapshot,
                first_seen             = excluded.first_seen
            """,
            (
                score.user_id,
                score.score,
                score.last_updated,
                score.warning_count_snapshot,
                score.spam_ratio_snapshot,
                score.first_seen,
            ),
        )
