"""
Read-only views over the moderation log for operators.

* ``user_history``: every entry about one user, newest first.
* ``recent_warnings``: the newest warning entries, server wide or for one user.
* ``moderator_activity``: what one moderator did recently, plus the users they
  warned repeatedly within that window.
* ``analytics_report``: warning statistics for the last N days (top types,
  top users, distribution over the UTC hours of the day, word detections).

Only committed entries are ever reported.
"""

from __future__ import annotations

import sqlite3
from collections import defaultdict
from typing import Dict, List, Optional

from fairguard.database.db_connection import ConnectionManager
from fairguard.database.repositories.mod_log_repo import ModLogRepo
from fairguard.datatypes.history_datatypes import AnalyticsReport, FrequentTarget, ModeratorActivity
from fairguard.datatypes.moderation_datatypes import (
    WARNING_LOG_TYPES,
    WORD_LOG_TYPES,
    LogType,
    ModerationLogEntry,
)
from fairguard.errors import StorageError
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import MS_PER_MINUTE, Clock, days_to_ms, now_ms
from fairguard.util.validation import validate_number, validate_user_id

logger = get_logger("moderation_history")

DEFAULT_LIMIT = 10
MAX_LIMIT = 50
TOP_N = 5
MAX_ANALYTICS_DAYS = 365


class ModerationHistory:
    def __init__(self, db: ConnectionManager, clock: Clock = now_ms) -> None:
        self.db = db
        self.clock = clock

    async def user_history(self, user_id: str, limit: int | str = DEFAULT_LIMIT) -> List[ModerationLogEntry]:
        """Every log entry about ``user_id`` (warnings, unwarns, timeouts...), newest first."""
        user_id = validate_user_id(user_id)
        limit = validate_number(limit, 1, MAX_LIMIT, "limit")
        try:
            async with self.db.read() as conn:
                return await ModLogRepo.list_for_user(conn, user_id, limit)
        except sqlite3.Error as exc:
            raise StorageError("user_history", exc) from exc

    async def recent_warnings(
        self,
        user_id: Optional[str] = None,
        limit: int | str = DEFAULT_LIMIT,
    ) -> List[ModerationLogEntry]:
        """Newest warning entries, manual and automatic alike."""
        if user_id is not None:
            user_id = validate_user_id(user_id)
        limit = validate_number(limit, 1, MAX_LIMIT, "limit")
        try:
            async with self.db.read() as conn:
                return await ModLogRepo.list_recent(conn, WARNING_LOG_TYPES, limit, user_id)
        except sqlite3.Error as exc:
            raise StorageError("recent_warnings", exc) from exc

    async def moderator_activity(self, moderator_id: str, limit: int | str = DEFAULT_LIMIT) -> ModeratorActivity:
        """
        The moderator's newest entries and the users they warned more than once among them.

        ``span_minutes`` of a frequent target is the time between the first
        and the last of those warns.
        """
        moderator_id = validate_user_id(moderator_id, "moderator_id")
        limit = validate_number(limit, 1, MAX_LIMIT, "limit")
        try:
            async with self.db.read() as conn:
                entries = await ModLogRepo.list_by_moderator(conn, moderator_id, limit)
        except sqlite3.Error as exc:
            raise StorageError("moderator_activity", exc) from exc

        warned: Dict[str, List[int]] = defaultdict(list)
        for entry in entries:
            if entry.type is LogType.WARN_MANUAL:
                warned[entry.user_id].append(entry.timestamp)

        frequent = [
            FrequentTarget(user_id, len(times), (max(times) - min(times)) // MS_PER_MINUTE)
            for user_id, times in warned.items()
            if len(times) >= 2
        ]
        frequent.sort(key=lambda t: (-t.count, t.user_id))
        if frequent:
            logger.info(
                "[MODERATION HISTORY] Moderator %s repeatedly warned %d user(s)", moderator_id, len(frequent)
            )
        return ModeratorActivity(moderator_id, entries, frequent)

    async def analytics_report(self, days: int | str = 30) -> AnalyticsReport:
        """Warning statistics over the last ``days`` days."""
        days = validate_number(days, 1, MAX_ANALYTICS_DAYS, "days")
        since = self.clock() - days_to_ms(days)
        try:
            async with self.db.read() as conn:
                top_types = await ModLogRepo.type_counts_since(conn, WARNING_LOG_TYPES, since, TOP_N)
                top_users = await ModLogRepo.user_counts_since(conn, WARNING_LOG_TYPES, since, TOP_N)
                hourly = await ModLogRepo.hourly_counts_since(conn, WARNING_LOG_TYPES, since)
                words = await ModLogRepo.type_counts_since(conn, WORD_LOG_TYPES, since, TOP_N)
        except sqlite3.Error as exc:
            logger.error("[MODERATION HISTORY] Analytics query failed: %s", exc)
            raise StorageError("analytics_report", exc) from exc

        return AnalyticsReport(
            period_days=days,
            since=since,
            top_types=top_types,
            top_users=top_users,
            hourly_distribution=hourly,
            word_detections=words,
        )
