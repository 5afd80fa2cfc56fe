"""
Trust score: a 0-100 reputation snapshot recomputed from scratch.

Score = 50
        - 10 per active warning
        - 5 per spam incident in the last 30 days
        + 0.1 per whole day since first seen (at most +20)
        + 1 per 100 messages in the last 30 days (at most +10)
rounded and clamped to [0, 100].  Every recalculation overwrites the row;
only ``first_seen`` carries over.
"""

from __future__ import annotations

import sqlite3

from fairguard.database.db_connection import ConnectionManager
from fairguard.database.repositories.message_tracking_repo import MessageTrackingRepo
from fairguard.database.repositories.mod_log_repo import ModLogRepo
from fairguard.database.repositories.trust_score_repo import TrustScoreRepo
from fairguard.datatypes.moderation_datatypes import SPAM_LOG_TYPES, TrustScore
from fairguard.errors import StorageError
from fairguard.moderation.warning_ledger import WarningLedger
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import MS_PER_DAY, Clock, days_to_ms, now_ms

logger = get_logger("trust_score")

BASE_SCORE = 50
MIN_SCORE = 0
MAX_SCORE = 100
WARNING_PENALTY = 10
SPAM_PENALTY = 5
TENURE_POINTS_PER_DAY = 0.1
TENURE_CAP = 20
MESSAGES_PER_POINT = 100
ACTIVITY_CAP = 10
LOOKBACK_DAYS = 30


def compute_score(active_warnings: int, spam_incidents: int, days_since_first_seen: int, recent_messages: int) -> int:
    score = float(BASE_SCORE)
    score -= active_warnings * WARNING_PENALTY
    score -= spam_incidents * SPAM_PENALTY
    score += min(days_since_first_seen * TENURE_POINTS_PER_DAY, TENURE_CAP)
    score += min(recent_messages // MESSAGES_PER_POINT, ACTIVITY_CAP)
    return max(MIN_SCORE, min(MAX_SCORE, round(score)))


class TrustScoreService:
    def __init__(
        self,
        db: ConnectionManager,
        ledger: WarningLedger,
        clock: Clock = now_ms,
        low_trust_threshold: int = 30,
    ) -> None:
        self.db = db
        self.ledger = ledger
        self.clock = clock
        self.low_trust_threshold = low_trust_threshold

    async def recalculate(self, user_id: str) -> TrustScore:
        """Recompute and persist the user's score."""
        active_warnings = await self.ledger.get_active_warning_count(user_id)
        now = self.clock()
        since = now - days_to_ms(LOOKBACK_DAYS)

        try:
            async with self.db.transaction() as conn:
                spam_incidents = await ModLogRepo.count_for_user(conn, user_id, SPAM_LOG_TYPES, since)
                recent_messages = await MessageTrackingRepo.count_since(conn, user_id, since)
                existing = await TrustScoreRepo.get(conn, user_id)
                if existing is not None:
                    first_seen = existing.first_seen
                else:
                    first_seen = min(await MessageTrackingRepo.first_seen(conn, user_id) or now, now)

                days = max(0, (now - first_seen) // MS_PER_DAY)
                trust = TrustScore(
                    user_id=user_id,
                    score=compute_score(active_warnings, spam_incidents, days, recent_messages),
                    last_updated=now,
                    warning_count_snapshot=active_warnings,
                    spam_ratio_snapshot=spam_incidents / max(recent_messages, 1),
                    first_seen=first_seen,
                )
                await TrustScoreRepo.upsert(conn, trust)
        except sqlite3.Error as exc:
            logger.error("[TRUST SCORE] Recalculation failed for user %s: %s", user_id, exc)
            raise StorageError("recalculate_trust_score", exc) from exc

        logger.debug("[TRUST SCORE] User %s scored %d", user_id, trust.score)
        return trust

    async def get_score(self, user_id: str) -> TrustScore:
        """Stored score, computing one first if the user has none."""
        async with self.db.read() as conn:
            existing = await TrustScoreRepo.get(conn, user_id)
        if existing is not None:
            return existing
        return await self.recalculate(user_id)

    async def is_low_trust(self, user_id: str) -> bool:
        return (await self.get_score(user_id)).score < self.low_trust_threshold
