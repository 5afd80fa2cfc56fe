"""
Two-phase operator confirmation for AI graylist verdicts.

``stage_for_confirmation`` persists the verdict and returns its id; a later
``resolve`` call (from whatever UI the operators use) approves or rejects it.
The pending row is consumed by a conditional ``status = 'pending'`` update,
so when two operators resolve the same confirmation concurrently exactly one
wins and the other observes ``NOT_FOUND``.
"""

from __future__ import annotations

import sqlite3
from typing import List

from fairguard.database.db_connection import ConnectionManager
from fairguard.database.repositories.confirmation_repo import SYSTEM_RESOLVER, ConfirmationRepo
from fairguard.datatypes.moderation_datatypes import ConfirmationStatus, LogType, PendingConfirmation
from fairguard.datatypes.outcome_datatypes import ConfirmationKind, ConfirmationOutcome, OutcomeKind
from fairguard.datatypes.verdict_datatypes import SafetyVerdict
from fairguard.errors import StorageError
from fairguard.moderation.punishment import PunishmentExecutor
from fairguard.platform.chat_platform import ChatMessage
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import Clock, new_id, now_ms, seconds_to_ms
from fairguard.util.validation import validate_log_id

logger = get_logger("ai_confirmation")


class AIConfirmationService:
    def __init__(
        self,
        db: ConnectionManager,
        punisher: PunishmentExecutor,
        clock: Clock = now_ms,
        ttl_seconds: float = 86400,
    ) -> None:
        self.db = db
        self.punisher = punisher
        self.clock = clock
        self.ttl_ms = seconds_to_ms(ttl_seconds)

    async def stage_for_confirmation(
        self,
        message: ChatMessage,
        verdict: SafetyVerdict,
        context_snapshot: str,
        matched_word: str,
    ) -> PendingConfirmation:
        """Persist an UNSAFE verdict awaiting operator sign-off."""
        confirmation = PendingConfirmation(
            id=new_id(),
            channel_id=message.channel_id,
            message_id=message.id,
            subject_user_id=message.author_id,
            status=ConfirmationStatus.PENDING,
            created_at=self.clock(),
            ai_verdict=verdict.to_dict(),
            context_snapshot=context_snapshot,
            content=message.content,
            matched_word=matched_word,
        )
        try:
            async with self.db.transaction() as conn:
                await ConfirmationRepo.insert(conn, confirmation)
        except sqlite3.Error as exc:
            logger.error("[AI CONFIRMATION] Could not stage confirmation for message %s: %s", message.id, exc)
            raise StorageError("stage_confirmation", exc) from exc

        logger.info(
            "[AI CONFIRMATION] Staged %s for user %s (word '%s')",
            confirmation.id, confirmation.subject_user_id, matched_word,
        )
        return confirmation

    async def resolve(self, confirmation_id: str, approved: bool, moderator_id: str) -> ConfirmationOutcome:
        """
        Approve or reject a staged confirmation exactly once.

        Approval runs the punishment policy with ``AI_JUDGE_CONFIRMED`` and the
        approver as moderator.  Confirmations older than the TTL resolve as
        ``EXPIRED`` and are marked rejected.
        """
        confirmation_id = validate_log_id(confirmation_id, field="confirmation_id")
        now = self.clock()

        try:
            async with self.db.transaction() as conn:
                pending = await ConfirmationRepo.get(conn, confirmation_id)
                if pending is None or pending.status is not ConfirmationStatus.PENDING:
                    return ConfirmationOutcome(ConfirmationKind.NOT_FOUND, confirmation_id)
                if now - pending.created_at >= self.ttl_ms:
                    await ConfirmationRepo.consume(conn, confirmation_id, ConfirmationStatus.REJECTED, SYSTEM_RESOLVER, now)
                    logger.info("[AI CONFIRMATION] %s expired before resolution", confirmation_id)
                    return ConfirmationOutcome(ConfirmationKind.EXPIRED, confirmation_id)
                status = ConfirmationStatus.APPROVED if approved else ConfirmationStatus.REJECTED
                if not await ConfirmationRepo.consume(conn, confirmation_id, status, moderator_id, now):
                    return ConfirmationOutcome(ConfirmationKind.NOT_FOUND, confirmation_id)
        except sqlite3.Error as exc:
            logger.error("[AI CONFIRMATION] Could not resolve %s: %s", confirmation_id, exc)
            raise StorageError("resolve_confirmation", exc) from exc

        if not approved:
            logger.info("[AI CONFIRMATION] %s rejected by %s", confirmation_id, moderator_id)
            return ConfirmationOutcome(ConfirmationKind.REJECTED, confirmation_id)

        reason = str(pending.ai_verdict.get("reason") or f"graylisted word: {pending.matched_word}")
        punishment = await self.punisher.punish(
            user_id=pending.subject_user_id,
            channel_id=pending.channel_id,
            message_id=pending.message_id,
            content=pending.content,
            reason=reason,
            log_type=LogType.AI_JUDGE_CONFIRMED,
            context_snapshot=pending.context_snapshot,
            moderator_id=moderator_id,
            ai_analysis=pending.ai_verdict,
            matched_word=pending.matched_word,
        )
        if punishment.kind is OutcomeKind.ENFORCEMENT_FAILED:
            return ConfirmationOutcome(ConfirmationKind.ENFORCEMENT_FAILED, confirmation_id, punishment)

        logger.info("[AI CONFIRMATION] %s approved by %s", confirmation_id, moderator_id)
        return ConfirmationOutcome(ConfirmationKind.APPROVED, confirmation_id, punishment)

    async def sweep_stale(self) -> int:
        """Reject every pending confirmation older than the TTL."""
        now = self.clock()
        async with self.db.transaction() as conn:
            swept = await ConfirmationRepo.reject_stale(conn, now - self.ttl_ms, now)
        if swept:
            logger.info("[AI CONFIRMATION] Swept %d stale confirmation(s)", swept)
        return swept

    async def list_pending(self) -> List[PendingConfirmation]:
        async with self.db.read() as conn:
            return await ConfirmationRepo.list_pending(conn)
