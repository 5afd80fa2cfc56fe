"""
Per-message moderation pipeline.

Stages, in order:

1. Blacklist: a contained blacklisted word is punished immediately with the
   reason "blacklisted word" and no classifier call.
2. Graylist: a contained graylisted word sends the message and its context to
   the classifier.  UNSAFE is punished, or staged for operator confirmation
   when confirmation mode is on.
3. Spam/length: independent of the word stages; runs when the message is
   longer than the limit or the author's recent message count in the channel
   reaches the burst threshold.  Deliberate deviation from fully independent
   stages: spam is not judged once a word stage deleted the message, so one
   removed message never costs two warnings.
4. Trust score refresh for the author, scheduled in the background so it
   never delays the verdict.

A classifier that is unavailable never leads to punishment: the stage reports
``UNAVAILABLE`` and the message is left alone.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Awaitable, Callable, Optional, Set

from fairguard.ai.classifier_gateway import ClassifierGateway
from fairguard.ai.prompts import build_graylist_prompt, build_spam_prompt
from fairguard.configuration.app_configuration import AppConfig
from fairguard.database.db_connection import ConnectionManager
from fairguard.database.repositories.message_tracking_repo import MessageTrackingRepo
from fairguard.datatypes.moderation_datatypes import LogType
from fairguard.datatypes.outcome_datatypes import ModerationOutcome, ModerationReport, OutcomeKind
from fairguard.datatypes.verdict_datatypes import (
    ClassificationUnavailable,
    SafetyVerdict,
    SpamKind,
    SpamVerdict,
)
from fairguard.errors import PlatformError, StorageError
from fairguard.moderation.ai_confirmation import AIConfirmationService
from fairguard.moderation.context import ContextFetcher
from fairguard.moderation.punishment import PunishmentExecutor
from fairguard.moderation.trust_score import TrustScoreService
from fairguard.moderation.word_lists import WordLists
from fairguard.platform.chat_platform import ChatMessage, ChatPlatform
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import Clock, days_to_ms, now_ms, seconds_to_ms

logger = get_logger("moderation_pipeline")

BLACKLIST_REASON = "blacklisted word"

SPAM_LOG_TYPE = {
    SpamKind.LONG_MESSAGE: LogType.LONG_MESSAGE,
    SpamKind.SPAM: LogType.SPAM,
    SpamKind.BOTH: LogType.SPAM_LONG,
}


class _LazyContext:
    """Fetches the context snapshot at most once per message."""

    def __init__(self, fetcher: ContextFetcher, message: ChatMessage, before: int, after: int) -> None:
        self._fetch: Callable[[], Awaitable[str]] = lambda: fetcher.fetch_context(message, before, after)
        self._value: Optional[str] = None

    async def get(self) -> str:
        if self._value is None:
            self._value = await self._fetch()
        return self._value


class ModerationPipeline:
    """
    Decision flow for inbound messages.

    Args:
        db: Store used for message tracking.
        config: Application configuration (thresholds, windows, context size).
        word_lists: Loaded black/graylists.
        gateway: Classifier gateway.
        punisher: Shared punishment policy.
        confirmations: Operator confirmation service for graylist verdicts.
        trust: Trust score service refreshed after every message.
        platform: Used for the admin exemption check.
        default_context_fetcher: Used when ``moderate_message`` gets none.
        clock: Millisecond clock.
    """

    def __init__(
        self,
        db: ConnectionManager,
        config: AppConfig,
        word_lists: WordLists,
        gateway: ClassifierGateway,
        punisher: PunishmentExecutor,
        confirmations: AIConfirmationService,
        trust: TrustScoreService,
        platform: ChatPlatform,
        default_context_fetcher: Optional[ContextFetcher] = None,
        clock: Clock = now_ms,
    ) -> None:
        self.db = db
        self.config = config
        self.word_lists = word_lists
        self.gateway = gateway
        self.punisher = punisher
        self.confirmations = confirmations
        self.trust = trust
        self.platform = platform
        self.default_context_fetcher = default_context_fetcher
        self.clock = clock
        self._background: Set[asyncio.Task] = set()

    async def moderate_message(
        self,
        message: ChatMessage,
        context_fetcher: Optional[ContextFetcher] = None,
    ) -> ModerationReport:
        """
        Run every stage for one inbound message.

        Returns:
            A ``ModerationReport`` with one outcome per stage that ran;
            ``report.outcome`` is the most severe of them.

        Raises:
            StorageError: Message tracking or a ledger mutation failed.
        """
        report = ModerationReport(message.id)
        if message.author_is_bot or not message.content:
            return report
        if await self._is_exempt(message.author_id):
            logger.debug("[PIPELINE] Skipping admin %s", message.author_id)
            return report

        fetcher = context_fetcher or self.default_context_fetcher
        if fetcher is None:
            raise ValueError("moderate_message needs a context fetcher")
        context = _LazyContext(fetcher, message, self.config.context_before, self.config.context_after)

        recent_count = await self._track_message(message)

        word_outcome = await self._check_words(message, context)
        if word_outcome is not None:
            report.outcomes.append(word_outcome)

        if word_outcome is None or not word_outcome.message_deleted:
            spam_outcome = await self._check_spam(message, recent_count, context)
            if spam_outcome is not None:
                report.outcomes.append(spam_outcome)

        self._schedule_trust_refresh(message.author_id)

        final = report.outcome
        if final.kind is not OutcomeKind.SAFE:
            logger.info(
                "[PIPELINE] Message %s by %s -> %s (%s)",
                message.id, message.author_id, final.kind, final.reason,
            )
        return report

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _check_words(self, message: ChatMessage, context: _LazyContext) -> Optional[ModerationOutcome]:
        blacklisted = self.word_lists.is_blacklisted(message.content)
        if blacklisted is not None:
            return await self.punisher.punish(
                user_id=message.author_id,
                channel_id=message.channel_id,
                message_id=message.id,
                content=message.content,
                reason=BLACKLIST_REASON,
                log_type=LogType.BLACKLIST,
                context_snapshot=await context.get(),
                matched_word=blacklisted,
            )

        graylisted = self.word_lists.match_graylist(message.content)
        if graylisted is None:
            return None

        snapshot = await context.get()
        verdict = await self.gateway.classify(
            build_graylist_prompt(graylisted, message.content, snapshot),
            SafetyVerdict,
        )
        if isinstance(verdict, ClassificationUnavailable):
            logger.warning("[PIPELINE] Graylist check unavailable for message %s: %s", message.id, verdict.reason)
            outcome = ModerationOutcome.unavailable(verdict.reason)
            outcome.matched_word = graylisted
            return outcome
        if not verdict.is_unsafe:
            return ModerationOutcome(OutcomeKind.SAFE, reason=verdict.reason, matched_word=graylisted)

        if self.config.ai_settings.confirmation_required:
            pending = await self.confirmations.stage_for_confirmation(message, verdict, snapshot, graylisted)
            return ModerationOutcome(
                OutcomeKind.PENDING_REVIEW,
                reason=verdict.reason,
                log_type=LogType.AI_JUDGE,
                matched_word=graylisted,
                confirmation=pending,
            )

        return await self.punisher.punish(
            user_id=message.author_id,
            channel_id=message.channel_id,
            message_id=message.id,
            content=message.content,
            reason=verdict.reason or f"graylisted word: {graylisted}",
            log_type=LogType.AI_JUDGE,
            context_snapshot=snapshot,
            ai_analysis=verdict.to_dict(),
            matched_word=graylisted,
        )

    async def _check_spam(
        self,
        message: ChatMessage,
        recent_count: int,
        context: _LazyContext,
    ) -> Optional[ModerationOutcome]:
        max_length = self.config.max_message_length
        burst_threshold = self.config.spam_message_count
        too_long = len(message.content) > max_length
        burst = recent_count >= burst_threshold
        if not (too_long or burst):
            return None

        snapshot = await context.get()
        verdict = await self.gateway.classify(
            build_spam_prompt(
                message.content,
                snapshot,
                message_length=len(message.content),
                max_length=max_length,
                recent_count=recent_count,
                count_threshold=burst_threshold,
                window_seconds=self.config.spam_time_window_seconds,
            ),
            SpamVerdict,
        )
        if isinstance(verdict, ClassificationUnavailable):
            logger.warning("[PIPELINE] Spam check unavailable for message %s: %s", message.id, verdict.reason)
            return ModerationOutcome.unavailable(verdict.reason)
        if not verdict.should_punish:
            logger.debug(
                "[PIPELINE] Spam check SAFE for %s (long=%s burst=%s): %s",
                message.id, too_long, burst, verdict.reason,
            )
            return ModerationOutcome.safe(verdict.reason)

        return await self.punisher.punish(
            user_id=message.author_id,
            channel_id=message.channel_id,
            message_id=message.id,
            content=message.content,
            reason=verdict.reason or "spam",
            log_type=SPAM_LOG_TYPE[verdict.kind],
            context_snapshot=snapshot,
            ai_analysis=verdict.to_dict(),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _is_exempt(self, user_id: str) -> bool:
        if user_id in self.config.admin_user_ids:
            return True
        try:
            return await self.platform.is_admin(user_id)
        except PlatformError as exc:
            logger.warning("[PIPELINE] Admin check failed for %s, moderating anyway: %s", user_id, exc)
            return False

    async def _track_message(self, message: ChatMessage) -> int:
        """Record the message and return the author's count in this channel within the spam window."""
        now = self.clock()
        since = now - seconds_to_ms(self.config.spam_time_window_seconds)
        try:
            async with self.db.transaction() as conn:
                await MessageTrackingRepo.record(conn, message.author_id, message.channel_id, message.id, now)
                return await MessageTrackingRepo.count_in_channel_since(
                    conn, message.author_id, message.channel_id, since
                )
        except sqlite3.Error as exc:
            logger.error("[PIPELINE] Message tracking failed for %s: %s", message.id, exc)
            raise StorageError("track_message", exc) from exc

    def _schedule_trust_refresh(self, user_id: str) -> None:
        task = asyncio.create_task(self._refresh_trust(user_id), name=f"fairguard-trust-{user_id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_trust(self, user_id: str) -> None:
        try:
            await self.trust.recalculate(user_id)
        except Exception:
            logger.exception("[PIPELINE] Trust score refresh failed for user %s", user_id)

    async def drain_background_tasks(self) -> None:
        """Wait for pending trust refreshes (used at shutdown and in tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def prune_message_tracking(self) -> int:
        """Drop activity rows older than the tracking retention window."""
        cutoff = self.clock() - days_to_ms(self.config.tracking_retention_days)
        async with self.db.transaction() as conn:
            removed = await MessageTrackingRepo.prune(conn, cutoff)
        if removed:
            logger.debug("[PIPELINE] Pruned %d message tracking rows", removed)
        return removed
