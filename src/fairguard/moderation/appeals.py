"""
Appeal adjudication for moderation log entries.

Policy checks run first and never reach the classifier: the entry must exist
and be punitive, the appellant must be its subject, it must not be resolved
yet, and the deadline (counted from the entry's timestamp) must not have
passed.  An ACCEPTED verdict flips ``is_resolved`` and removes one warning in
a single transaction; the flip is conditional, so two concurrent accepted
appeals on the same entry reduce the ledger only once.
"""

from __future__ import annotations

import sqlite3

from fairguard.ai.classifier_gateway import ClassifierGateway
from fairguard.ai.prompts import build_appeal_prompt
from fairguard.configuration.app_configuration import AppConfig
from fairguard.database.db_connection import ConnectionManager
from fairguard.database.repositories.mod_log_repo import ModLogRepo
from fairguard.datatypes.moderation_datatypes import LogType
from fairguard.datatypes.outcome_datatypes import AppealKind, AppealOutcome
from fairguard.datatypes.verdict_datatypes import AppealVerdict, ClassificationUnavailable
from fairguard.errors import StorageError
from fairguard.moderation.warning_ledger import WarningLedger
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import MS_PER_DAY, Clock, days_to_ms, now_ms
from fairguard.util.validation import validate_log_id, validate_reason, validate_user_id

logger = get_logger("appeals")

APPEALABLE_LOG_TYPES = frozenset({
    LogType.BLACKLIST,
    LogType.AI_JUDGE,
    LogType.AI_JUDGE_CONFIRMED,
    LogType.SPAM,
    LogType.LONG_MESSAGE,
    LogType.SPAM_LONG,
    LogType.WARN_MANUAL,
    LogType.TIMEOUT,
})


class _AlreadyResolved(Exception):
    """Raised inside the ledger transaction to abort when another appeal won."""


class AppealAdjudicator:
    def __init__(
        self,
        db: ConnectionManager,
        config: AppConfig,
        ledger: WarningLedger,
        gateway: ClassifierGateway,
        clock: Clock = now_ms,
    ) -> None:
        self.db = db
        self.config = config
        self.ledger = ledger
        self.gateway = gateway
        self.clock = clock

    async def adjudicate_appeal(self, log_id: str, user_id: str, appeal_text: str) -> AppealOutcome:
        """
        Judge a user's appeal against one moderation log entry.

        Returns:
            ``AppealOutcome``; ``UNAVAILABLE`` is retryable and changes nothing.

        Raises:
            ValidationError: Malformed log id, user id or appeal text.
            LedgerError: Acceptance could not be committed; nothing changed.
        """
        log_id = validate_log_id(log_id)
        user_id = validate_user_id(user_id)
        appeal_text = validate_reason(appeal_text, "appeal_text")

        try:
            async with self.db.read() as conn:
                entry = await ModLogRepo.get(conn, log_id)
        except sqlite3.Error as exc:
            raise StorageError("load_appeal_log", exc) from exc

        if entry is None or entry.type not in APPEALABLE_LOG_TYPES:
            return AppealOutcome(AppealKind.NOT_FOUND, log_id)
        if entry.user_id != user_id:
            logger.info("[APPEAL] User %s tried to appeal log %s of user %s", user_id, log_id, entry.user_id)
            return AppealOutcome(AppealKind.NOT_SUBJECT, log_id)
        if entry.is_resolved:
            return AppealOutcome(AppealKind.ALREADY_RESOLVED, log_id)

        elapsed = self.clock() - entry.timestamp
        days_elapsed = max(0, elapsed // MS_PER_DAY)
        if elapsed > days_to_ms(self.config.appeal_deadline_days):
            return AppealOutcome(AppealKind.DEADLINE_EXCEEDED, log_id, days_elapsed=days_elapsed)

        verdict = await self.gateway.classify(
            build_appeal_prompt(entry.reason, appeal_text, entry.content, entry.context_snapshot),
            AppealVerdict,
        )
        if isinstance(verdict, ClassificationUnavailable):
            logger.warning("[APPEAL] Classifier unavailable for log %s: %s", log_id, verdict.reason)
            return AppealOutcome(AppealKind.UNAVAILABLE, log_id, reason=verdict.reason, days_elapsed=days_elapsed)

        if not verdict.accepted:
            logger.info("[APPEAL] Log %s appeal rejected: %s", log_id, verdict.reason)
            return AppealOutcome(AppealKind.REJECTED, log_id, reason=verdict.reason, days_elapsed=days_elapsed)

        async def resolve_log(conn) -> None:
            if not await ModLogRepo.mark_resolved(conn, log_id):
                raise _AlreadyResolved(log_id)

        try:
            remaining = await self.ledger.reduce_warning(user_id, 1, within_transaction=resolve_log)
        except _AlreadyResolved:
            return AppealOutcome(AppealKind.ALREADY_RESOLVED, log_id)

        logger.info("[APPEAL] Log %s appeal accepted; user %s now at %d warning(s)", log_id, user_id, remaining)
        return AppealOutcome(
            AppealKind.ACCEPTED,
            log_id,
            reason=verdict.reason,
            warning_count=remaining,
            days_elapsed=days_elapsed,
        )
