"""
Typed results returned by the engine's operations.

"No violation" and policy refusals are first-class results rather than
exceptions, so callers branch on ``kind`` explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from fairguard.datatypes.moderation_datatypes import LogType, PendingConfirmation, PendingWarn


class OutcomeKind(Enum):
    PUNISHED = "punished"
    SAFE = "safe"
    UNAVAILABLE = "unavailable"
    PENDING_REVIEW = "pending_review"
    ENFORCEMENT_FAILED = "enforcement_failed"

    def __str__(self) -> str:
        return self.value


# Higher value wins when a message produced several stage outcomes
_SEVERITY = {
    OutcomeKind.SAFE: 0,
    OutcomeKind.UNAVAILABLE: 1,
    OutcomeKind.PENDING_REVIEW: 2,
    OutcomeKind.ENFORCEMENT_FAILED: 3,
    OutcomeKind.PUNISHED: 4,
}


@dataclass(slots=True)
class ModerationOutcome:
    """Result of one pipeline stage (word check or spam check).

    Punished outcomes carry everything a notice needs: the log id to appeal,
    the resulting count against the threshold and whether the message was
    removed or operators must be alerted.
    """

    kind: OutcomeKind
    reason: str = ""
    log_type: Optional[LogType] = None
    matched_word: Optional[str] = None
    log_id: Optional[str] = None
    warning_count: Optional[int] = None
    threshold: Optional[int] = None
    message_deleted: bool = False
    operator_alert: bool = False
    confirmation: Optional[PendingConfirmation] = None

    @classmethod
    def safe(cls, reason: str = "") -> "ModerationOutcome":
        return cls(OutcomeKind.SAFE, reason=reason)

    @classmethod
    def unavailable(cls, reason: str = "classification unavailable") -> "ModerationOutcome":
        return cls(OutcomeKind.UNAVAILABLE, reason=reason)

    @property
    def severity(self) -> int:
        return _SEVERITY[self.kind]


@dataclass(slots=True)
class ModerationReport:
    """Every stage outcome produced for a single inbound message."""

    message_id: str
    outcomes: List[ModerationOutcome] = field(default_factory=list)

    @property
    def outcome(self) -> ModerationOutcome:
        """The most severe stage outcome (SAFE when no stage ran)."""
        if not self.outcomes:
            return ModerationOutcome.safe()
        return max(self.outcomes, key=lambda o: o.severity)

    @property
    def punished(self) -> bool:
        return any(o.kind is OutcomeKind.PUNISHED for o in self.outcomes)


class ConfirmationKind(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ENFORCEMENT_FAILED = "enforcement_failed"


@dataclass(slots=True)
class ConfirmationOutcome:
    kind: ConfirmationKind
    confirmation_id: str
    punishment: Optional[ModerationOutcome] = None


class ManualWarnKind(Enum):
    COMMITTED = "committed"
    PENDING_CONFIRMATION = "pending_confirmation"
    TARGET_IS_ADMIN = "target_is_admin"
    CANCELLED = "cancelled"
    NOT_FOUND = "not_found"


@dataclass(slots=True)
class ManualWarnOutcome:
    kind: ManualWarnKind
    log_id: Optional[str] = None
    warning_count: Optional[int] = None
    threshold: Optional[int] = None
    operator_alert: bool = False
    pending_key: Optional[str] = None
    pending: Optional[PendingWarn] = None
    abuse_reason: str = ""
    concerns: List[str] = field(default_factory=list)
    recent_warn_count: int = 0


class AppealKind(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    NOT_SUBJECT = "not_subject"
    ALREADY_RESOLVED = "already_resolved"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    UNAVAILABLE = "unavailable"


@dataclass(slots=True)
class AppealOutcome:
    kind: AppealKind
    log_id: str
    reason: str = ""
    warning_count: Optional[int] = None
    days_elapsed: Optional[int] = None

    @property
    def retryable(self) -> bool:
        """Unavailable appeals may be resubmitted later; every other kind is final."""
        return self.kind is AppealKind.UNAVAILABLE


class WordMutationKind(Enum):
    ADDED = "added"
    MOVED = "moved"
    ALREADY_EXISTS = "already_exists"
    REMOVED = "removed"
    NOT_FOUND = "not_found"


@dataclass(slots=True)
class WordMutationOutcome:
    kind: WordMutationKind
    word: str
    log_id: Optional[str] = None


class TimeoutKind(Enum):
    APPLIED = "applied"
    TARGET_IS_ADMIN = "target_is_admin"
    ENFORCEMENT_FAILED = "enforcement_failed"


@dataclass(slots=True)
class TimeoutOutcome:
    """Result of a moderator-issued timeout; only ``APPLIED`` writes a ``TIMEOUT`` log."""

    kind: TimeoutKind
    user_id: str
    log_id: Optional[str] = None
    duration_seconds: Optional[int] = None
    reason: str = ""
