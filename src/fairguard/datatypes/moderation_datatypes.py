"""
Record types persisted by the moderation engine.

Each dataclass mirrors one table of the store (see ``db_schema``). Timestamps
are integer unix milliseconds throughout.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class LogType(Enum):
    """Kinds of entries in the append-only moderation log."""

    BLACKLIST = "BLACKLIST"
    AI_JUDGE = "AI_JUDGE"
    AI_JUDGE_CONFIRMED = "AI_JUDGE_CONFIRMED"
    SPAM = "SPAM"
    LONG_MESSAGE = "LONG_MESSAGE"
    SPAM_LONG = "SPAM_LONG"
    WARN_MANUAL = "WARN_MANUAL"
    UNWARN = "UNWARN"
    TIMEOUT = "TIMEOUT"
    ADDWORD = "ADDWORD"
    REMOVEWORD = "REMOVEWORD"

    def __str__(self) -> str:
        return self.value


SPAM_LOG_TYPES = (LogType.SPAM, LogType.LONG_MESSAGE, LogType.SPAM_LONG)

# Entries that were committed together with a warning
WARNING_LOG_TYPES = (
    LogType.BLACKLIST,
    LogType.AI_JUDGE,
    LogType.AI_JUDGE_CONFIRMED,
    *SPAM_LOG_TYPES,
    LogType.WARN_MANUAL,
)

WORD_LOG_TYPES = (LogType.BLACKLIST, LogType.AI_JUDGE, LogType.AI_JUDGE_CONFIRMED)


class ListType(Enum):
    """Which word list a banned word belongs to."""

    BLACK = "BLACK"
    GRAY = "GRAY"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "str | ListType") -> "ListType":
        """Accept ``ListType`` members or loose strings such as ``"gray"``/``"g"``."""
        if isinstance(value, ListType):
            return value
        normalized = str(value).strip().upper()
        if normalized in ("GRAY", "GREY", "G"):
            return cls.GRAY
        return cls.BLACK


class ConfirmationStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class WarningRecord:
    """A single warning; immutable once created, deleted on expiry or reduction."""

    id: str
    user_id: str
    created_at: int
    expires_at: int
    reason: str = ""
    moderator_id: str = ""
    origin_log_id: str = ""

    def is_active(self, now: int) -> bool:
        return self.expires_at >= now


@dataclass(slots=True)
class ModerationLogEntry:
    """Audit entry written for every moderation action.

    Only ``is_resolved`` may change after insertion, and only from False to True.
    """

    id: str
    type: LogType
    user_id: str
    moderator_id: str
    timestamp: int
    reason: str = ""
    content: str = ""
    context_snapshot: str = ""
    ai_analysis: Optional[Dict[str, Any]] = None
    is_resolved: bool = False

    def ai_analysis_json(self) -> Optional[str]:
        return json.dumps(self.ai_analysis, ensure_ascii=False) if self.ai_analysis is not None else None


@dataclass(slots=True, frozen=True)
class BannedWord:
    word: str
    list_type: ListType


@dataclass(slots=True)
class PendingConfirmation:
    """An AI graylist verdict staged for operator approval."""

    id: str
    channel_id: str
    message_id: str
    subject_user_id: str
    status: ConfirmationStatus
    created_at: int
    ai_verdict: Dict[str, Any]
    context_snapshot: str = ""
    content: str = ""
    matched_word: str = ""
    resolved_by: str = ""


@dataclass(slots=True)
class PendingWarn:
    """A manual warn flagged as possible abuse, held in memory until confirmed or cancelled."""

    subject_user_id: str
    moderator_id: str
    reason: str
    content: str
    context_snapshot: str
    source_channel_id: Optional[str] = None
    source_message_id: Optional[str] = None
    expires_at: float = 0.0
    abuse_reason: str = ""
    concerns: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TrustScore:
    """Recomputed trust snapshot for one user; overwritten on every recalculation."""

    user_id: str
    score: int
    last_updated: int
    warning_count_snapshot: int
    spam_ratio_snapshot: float
    first_seen: int
