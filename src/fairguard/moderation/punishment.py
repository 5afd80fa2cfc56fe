"""
Shared punishment policy for automatic and confirmed verdicts.

1. Read the user's active count *before* adding the new warning.  The user's
   ledger lock is held from this read until the warning is committed, so two
   concurrent violations see the counts 2 then 3, never 2 and 2.
2. Below the threshold: the message stays, a warning is added.
3. At or above the threshold: delete the message first.  A message that is
   already gone counts as removed; any other platform failure aborts without
   a warning, so nobody is punished without the removal being enforced.
4. The moderation log entry and the warning are committed in one
   transaction, so every ledger mutation has its audit entry.
5. Reaching the threshold exactly raises the operator alert flag.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fairguard.database.repositories.mod_log_repo import ModLogRepo
from fairguard.datatypes.moderation_datatypes import LogType, ModerationLogEntry
from fairguard.datatypes.outcome_datatypes import ModerationOutcome, OutcomeKind
from fairguard.errors import MessageAlreadyDeleted, PlatformError
from fairguard.moderation.warning_ledger import WarningLedger
from fairguard.platform.chat_platform import ChatPlatform
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import Clock, new_id, now_ms

logger = get_logger("punishment")

SYSTEM_MODERATOR = "system"


class PunishmentExecutor:
    def __init__(
        self,
        ledger: WarningLedger,
        platform: ChatPlatform,
        threshold: int = 3,
        clock: Clock = now_ms,
    ) -> None:
        self.ledger = ledger
        self.platform = platform
        self.threshold = threshold
        self.clock = clock

    async def punish(
        self,
        *,
        user_id: str,
        channel_id: str,
        message_id: str,
        content: str,
        reason: str,
        log_type: LogType,
        context_snapshot: str,
        moderator_id: str = SYSTEM_MODERATOR,
        ai_analysis: Optional[Dict[str, Any]] = None,
        matched_word: Optional[str] = None,
    ) -> ModerationOutcome:
        """
        Apply the warn or delete-and-warn policy to one offending message.

        Returns:
            ``PUNISHED`` with the new count, log id and flags, or
            ``ENFORCEMENT_FAILED`` when the required deletion was refused.

        Raises:
            LedgerError: The log entry and warning could not be committed.
        """
        async with self.ledger.user_lock(user_id) as held:
            current = await held.active_count()
            deleted = False

            if current >= self.threshold:
                try:
                    await self.platform.delete_message(channel_id, message_id)
                    deleted = True
                except MessageAlreadyDeleted:
                    logger.info("[PUNISHMENT] Message %s was already deleted", message_id)
                    deleted = True
                except PlatformError as exc:
                    logger.error(
                        "[PUNISHMENT] Could not delete message %s of user %s (%s); warning not issued: %s",
                        message_id, user_id, log_type, exc,
                    )
                    return ModerationOutcome(
                        OutcomeKind.ENFORCEMENT_FAILED,
                        reason=reason,
                        log_type=log_type,
                        matched_word=matched_word,
                        warning_count=current,
                        threshold=self.threshold,
                    )

            entry = ModerationLogEntry(
                id=new_id(),
                type=log_type,
                user_id=user_id,
                moderator_id=moderator_id,
                timestamp=self.clock(),
                reason=reason,
                content=content,
                context_snapshot=context_snapshot,
                ai_analysis=ai_analysis,
            )

            async def write_log(conn) -> None:
                await ModLogRepo.insert(conn, entry)

            count = await held.add_warning(reason, moderator_id, entry.id, within_transaction=write_log)

        operator_alert = count == self.threshold
        logger.info(
            "[PUNISHMENT] %s for user %s: count %d/%d, deleted=%s, alert=%s, log=%s",
            log_type, user_id, count, self.threshold, deleted, operator_alert, entry.id,
        )
        return ModerationOutcome(
            OutcomeKind.PUNISHED,
            reason=reason,
            log_type=log_type,
            matched_word=matched_word,
            log_id=entry.id,
            warning_count=count,
            threshold=self.threshold,
            message_deleted=deleted,
            operator_alert=operator_alert,
        )
