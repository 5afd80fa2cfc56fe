"""
Moderator-issued warnings with abuse-of-power arbitration.

Before a manual warn is committed the classifier judges whether it looks like
an abuse of power.  A flagged warn is not committed: it is parked in a
``TTLCache`` under a fresh key until a moderator confirms or cancels it, or it
expires.  Confirm and cancel both consume the key with an atomic ``pop``, so
of two racing decisions exactly one takes effect.

The abuse check is advisory.  When the classifier is unavailable the warn
proceeds, unlike the automatic pipeline which never punishes without a
verdict.

Manual timeouts go straight to the platform and are recorded as ``TIMEOUT``
log entries (appealable like warnings) without touching the warning ledger.
"""

from __future__ import annotations

import inspect
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from fairguard.ai.classifier_gateway import ClassifierGateway
from fairguard.ai.prompts import build_abuse_prompt
from fairguard.cache.pending_cache import TTLCache
from fairguard.configuration.app_configuration import AppConfig
from fairguard.database.db_connection import ConnectionManager
from fairguard.database.repositories.mod_log_repo import ModLogRepo
from fairguard.datatypes.moderation_datatypes import LogType, ModerationLogEntry, PendingWarn
from fairguard.datatypes.outcome_datatypes import ManualWarnKind, ManualWarnOutcome, TimeoutKind, TimeoutOutcome
from fairguard.datatypes.verdict_datatypes import AbuseVerdict, ClassificationUnavailable
from fairguard.errors import PlatformError, StorageError
from fairguard.moderation.warning_ledger import WarningLedger
from fairguard.platform.chat_platform import ChatPlatform
from fairguard.util.logger import get_logger
from fairguard.util.time_utils import MS_PER_HOUR, Clock, new_id, now_ms
from fairguard.util.validation import validate_number, validate_reason, validate_user_id

logger = get_logger("manual_moderation")

PendingWarnExpiredHook = Callable[[str, PendingWarn], Any]

MAX_UNWARN_AMOUNT = 100
MAX_TIMEOUT_SECONDS = 28 * 86400
MANUAL_TIMEOUT_REASON = "manual timeout"


@dataclass(slots=True)
class ManualWarnRequest:
    target_user_id: str
    moderator_id: str
    reason: str
    content: str = ""
    context_snapshot: str = ""
    source_channel_id: Optional[str] = None
    source_message_id: Optional[str] = None


@dataclass(slots=True)
class AbuseCheckResult:
    """Outcome of the abuse-of-power check.

    ``checked`` is False when the check was skipped (too little context) or the
    classifier was unavailable; ``is_abuse`` is then always False.
    """

    is_abuse: bool
    recent_warn_count: int
    checked: bool = True
    reason: str = ""
    concerns: List[str] = field(default_factory=list)
    verdict: Optional[AbuseVerdict] = None


class ManualModeration:
    def __init__(
        self,
        db: ConnectionManager,
        config: AppConfig,
        ledger: WarningLedger,
        gateway: ClassifierGateway,
        platform: ChatPlatform,
        clock: Clock = now_ms,
        pending: Optional[TTLCache[PendingWarn]] = None,
        on_pending_warn_expired: Optional[PendingWarnExpiredHook] = None,
    ) -> None:
        self.db = db
        self.config = config
        self.ledger = ledger
        self.gateway = gateway
        self.platform = platform
        self.clock = clock
        self.on_pending_warn_expired = on_pending_warn_expired
        self.pending: TTLCache[PendingWarn] = (
            pending if pending is not None else TTLCache(config.pending_warn_ttl_seconds, name="pending warn")
        )
        self.pending.on_expire = self._handle_expired

    # ------------------------------------------------------------------
    # Abuse arbitration
    # ------------------------------------------------------------------

    async def check_manual_warn_abuse(
        self,
        moderator_id: str,
        target_id: str,
        reason: str,
        content: str,
        context_snapshot: str,
    ) -> AbuseCheckResult:
        """Ask the classifier whether a manual warn looks like an abuse of power."""
        since = self.clock() - int(self.config.abuse_lookback_hours * MS_PER_HOUR)
        try:
            async with self.db.read() as conn:
                recent = await ModLogRepo.count_by_moderator_on_user(
                    conn, moderator_id, target_id, LogType.WARN_MANUAL, since
                )
        except sqlite3.Error as exc:
            raise StorageError("count_recent_manual_warns", exc) from exc

        if len(context_snapshot) < self.config.abuse_min_context_length:
            logger.debug("[ABUSE CHECK] Skipped for %s -> %s: context too short", moderator_id, target_id)
            return AbuseCheckResult(False, recent, checked=False)

        verdict = await self.gateway.classify(
            build_abuse_prompt(
                moderator_id,
                target_id,
                reason,
                content,
                context_snapshot,
                recent_warn_count=recent,
                repeat_threshold=self.config.abuse_repeat_threshold,
                lookback_hours=self.config.abuse_lookback_hours,
            ),
            AbuseVerdict,
        )
        if isinstance(verdict, ClassificationUnavailable):
            logger.warning(
                "[ABUSE CHECK] Classifier unavailable for %s -> %s, allowing warn: %s",
                moderator_id, target_id, verdict.reason,
            )
            return AbuseCheckResult(False, recent, checked=False, reason=verdict.reason)

        return AbuseCheckResult(
            verdict.is_abuse,
            recent,
            reason=verdict.reason,
            concerns=list(verdict.concerns),
            verdict=verdict,
        )

    # ------------------------------------------------------------------
    # Manual warn lifecycle
    # ------------------------------------------------------------------

    async def issue_manual_warn(self, request: ManualWarnRequest) -> ManualWarnOutcome:
        """
        Commit a moderator's warning, or park it for confirmation when flagged as abuse.

        Raises:
            ValidationError: Malformed user id or reason.
            LedgerError: The warning could not be committed.
        """
        target_id = validate_user_id(request.target_user_id, "target_user_id")
        moderator_id = validate_user_id(request.moderator_id, "moderator_id")
        reason = validate_reason(request.reason)

        if await self._is_admin(target_id):
            logger.info("[MANUAL WARN] %s tried to warn admin %s", moderator_id, target_id)
            return ManualWarnOutcome(ManualWarnKind.TARGET_IS_ADMIN)

        abuse = await self.check_manual_warn_abuse(
            moderator_id, target_id, reason, request.content, request.context_snapshot
        )
        if abuse.is_abuse:
            key = new_id()
            pending = PendingWarn(
                subject_user_id=target_id,
                moderator_id=moderator_id,
                reason=reason,
                content=request.content,
                context_snapshot=request.context_snapshot,
                source_channel_id=request.source_channel_id,
                source_message_id=request.source_message_id,
                abuse_reason=abuse.reason,
                concerns=list(abuse.concerns),
            )
            pending.expires_at = self.pending.set(key, pending)
            logger.warning(
                "[MANUAL WARN] Warn by %s on %s flagged as possible abuse; pending %s: %s",
                moderator_id, target_id, key, abuse.reason,
            )
            return ManualWarnOutcome(
                ManualWarnKind.PENDING_CONFIRMATION,
                threshold=self.config.warn_threshold,
                pending_key=key,
                pending=pending,
                abuse_reason=abuse.reason,
                concerns=list(abuse.concerns),
                recent_warn_count=abuse.recent_warn_count,
            )

        analysis = abuse.verdict.to_dict() if abuse.verdict is not None else None
        outcome = await self._commit_warn(
            target_id, moderator_id, reason, request.content, request.context_snapshot, analysis
        )
        outcome.recent_warn_count = abuse.recent_warn_count
        return outcome

    async def confirm_pending_warn(self, key: str, moderator_id: str) -> ManualWarnOutcome:
        """Commit a parked warn exactly once; a consumed or expired key yields ``NOT_FOUND``."""
        pending = self.pending.pop(key)
        if pending is None:
            return ManualWarnOutcome(ManualWarnKind.NOT_FOUND, pending_key=key)

        logger.info("[MANUAL WARN] Pending %s confirmed by %s", key, moderator_id)
        analysis = {
            "abuse_check": {"is_abuse": True, "reason": pending.abuse_reason, "concerns": list(pending.concerns)},
            "confirmed_by": moderator_id,
        }
        outcome = await self._commit_warn(
            pending.subject_user_id,
            pending.moderator_id,
            pending.reason,
            pending.content,
            pending.context_snapshot,
            analysis,
        )
        outcome.pending_key = key
        outcome.pending = pending
        return outcome

    async def cancel_pending_warn(self, key: str, moderator_id: str) -> ManualWarnOutcome:
        """Drop a parked warn without touching the ledger."""
        pending = self.pending.pop(key)
        if pending is None:
            return ManualWarnOutcome(ManualWarnKind.NOT_FOUND, pending_key=key)
        logger.info("[MANUAL WARN] Pending %s cancelled by %s", key, moderator_id)
        return ManualWarnOutcome(ManualWarnKind.CANCELLED, pending_key=key, pending=pending)

    async def unwarn(self, user_id: str, amount: int | str, moderator_id: str, reason: str = "") -> ManualWarnOutcome:
        """Remove ``amount`` of the user's oldest warnings and record an ``UNWARN`` entry."""
        user_id = validate_user_id(user_id)
        moderator_id = validate_user_id(moderator_id, "moderator_id")
        count = validate_number(amount, 1, MAX_UNWARN_AMOUNT, "amount")

        entry = ModerationLogEntry(
            id=new_id(),
            type=LogType.UNWARN,
            user_id=user_id,
            moderator_id=moderator_id,
            timestamp=self.clock(),
            reason=reason or f"removed {count} warning(s)",
        )

        async def write_log(conn) -> None:
            await ModLogRepo.insert(conn, entry)

        remaining = await self.ledger.reduce_warning(user_id, count, within_transaction=write_log)
        return ManualWarnOutcome(
            ManualWarnKind.COMMITTED,
            log_id=entry.id,
            warning_count=remaining,
            threshold=self.config.warn_threshold,
        )

    async def record_timeout(
        self,
        user_id: str,
        moderator_id: str,
        reason: str = "",
        duration_seconds: int | str | None = None,
    ) -> TimeoutOutcome:
        """
        Time a member out on the platform and record a ``TIMEOUT`` log entry.

        The ledger is not touched.  Nothing is logged unless the platform applied
        the timeout.

        Raises:
            ValidationError: Malformed ids, reason or duration.
            StorageError: The timeout was applied but its log entry could not be written.
        """
        user_id = validate_user_id(user_id)
        moderator_id = validate_user_id(moderator_id, "moderator_id")
        reason = validate_reason(reason) if reason else MANUAL_TIMEOUT_REASON
        if duration_seconds is None:
            duration = self.config.manual_timeout_seconds
        else:
            duration = validate_number(duration_seconds, 60, MAX_TIMEOUT_SECONDS, "duration_seconds")

        if await self._is_admin(user_id):
            logger.info("[MANUAL TIMEOUT] %s tried to time out admin %s", moderator_id, user_id)
            return TimeoutOutcome(TimeoutKind.TARGET_IS_ADMIN, user_id)

        try:
            await self.platform.timeout_member(user_id, duration, f"{reason} (by {moderator_id})")
        except PlatformError as exc:
            logger.error("[MANUAL TIMEOUT] Could not time out %s for %s: %s", user_id, moderator_id, exc)
            return TimeoutOutcome(TimeoutKind.ENFORCEMENT_FAILED, user_id, duration_seconds=duration, reason=str(exc))

        entry = ModerationLogEntry(
            id=new_id(),
            type=LogType.TIMEOUT,
            user_id=user_id,
            moderator_id=moderator_id,
            timestamp=self.clock(),
            reason=reason,
        )
        try:
            async with self.db.transaction() as conn:
                await ModLogRepo.insert(conn, entry)
        except sqlite3.Error as exc:
            logger.error("[MANUAL TIMEOUT] Timeout of %s applied but not logged: %s", user_id, exc)
            raise StorageError("record_timeout", exc) from exc

        logger.info("[MANUAL TIMEOUT] %s timed out %s for %ds (log %s)", moderator_id, user_id, duration, entry.id)
        return TimeoutOutcome(TimeoutKind.APPLIED, user_id, log_id=entry.id, duration_seconds=duration, reason=reason)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _commit_warn(
        self,
        target_id: str,
        moderator_id: str,
        reason: str,
        content: str,
        context_snapshot: str,
        analysis: Optional[dict],
    ) -> ManualWarnOutcome:
        entry = ModerationLogEntry(
            id=new_id(),
            type=LogType.WARN_MANUAL,
            user_id=target_id,
            moderator_id=moderator_id,
            timestamp=self.clock(),
            reason=reason,
            content=content,
            context_snapshot=context_snapshot,
            ai_analysis=analysis,
        )

        async def write_log(conn) -> None:
            await ModLogRepo.insert(conn, entry)

        count = await self.ledger.add_warning(target_id, reason, moderator_id, entry.id, within_transaction=write_log)
        threshold = self.config.warn_threshold
        logger.info("[MANUAL WARN] %s warned %s: %d/%d (log %s)", moderator_id, target_id, count, threshold, entry.id)
        return ManualWarnOutcome(
            ManualWarnKind.COMMITTED,
            log_id=entry.id,
            warning_count=count,
            threshold=threshold,
            operator_alert=count == threshold,
        )

    async def _is_admin(self, user_id: str) -> bool:
        if user_id in self.config.admin_user_ids:
            return True
        try:
            return await self.platform.is_admin(user_id)
        except PlatformError as exc:
            logger.warning("[MANUAL WARN] Admin check failed for %s: %s", user_id, exc)
            return False

    async def _handle_expired(self, key: str, pending: PendingWarn) -> None:
        logger.info("[MANUAL WARN] Pending %s for user %s expired", key, pending.subject_user_id)
        if self.on_pending_warn_expired is None:
            return
        try:
            result = self.on_pending_warn_expired(key, pending)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("[MANUAL WARN] Expiry hook failed for pending %s", key)

    def cleanup_expired_pending(self) -> int:
        return self.pending.cleanup()
