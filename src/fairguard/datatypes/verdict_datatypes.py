"""
Structured verdicts returned by the classifier gateway.

Each verdict type owns the JSON schema its payload must satisfy, a strict
constructor from a validated payload, and a lenient keyword fallback used when
the model answered in free text instead of JSON.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional


class SafetyLabel(Enum):
    SAFE = "SAFE"
    UNSAFE = "UNSAFE"


class SpamLabel(Enum):
    PUNISH = "PUNISH"
    SAFE = "SAFE"


class SpamKind(Enum):
    LONG_MESSAGE = "LONG_MESSAGE"
    SPAM = "SPAM"
    BOTH = "BOTH"


class AppealStatus(Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


FALLBACK_REASON = "Verdict recovered from an unstructured classifier response."


@dataclass(slots=True)
class SafetyVerdict:
    """Graylist judgement: is the flagged message an attack in context?"""

    label: SafetyLabel
    reason: str = ""
    recovered: bool = False

    SCHEMA: ClassVar[Dict[str, Any]] = {
        "type": "object",
        "properties": {
            "verdict": {"type": "string", "enum": ["SAFE", "UNSAFE"]},
            "reason": {"type": "string"},
        },
        "required": ["verdict"],
    }

    @property
    def is_unsafe(self) -> bool:
        return self.label is SafetyLabel.UNSAFE

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SafetyVerdict":
        return cls(label=SafetyLabel(payload["verdict"]), reason=str(payload.get("reason", "")))

    @classmethod
    def from_text(cls, text: str) -> Optional["SafetyVerdict"]:
        upper = text.upper()
        if "UNSAFE" in upper or "PUNISH" in upper:
            return cls(SafetyLabel.UNSAFE, FALLBACK_REASON, recovered=True)
        if "SAFE" in upper:
            return cls(SafetyLabel.SAFE, FALLBACK_REASON, recovered=True)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"verdict": self.label.value, "reason": self.reason}


@dataclass(slots=True)
class SpamVerdict:
    """Spam/long-message judgement."""

    label: SpamLabel
    reason: str = ""
    kind: SpamKind = SpamKind.BOTH
    recovered: bool = False

    SCHEMA: ClassVar[Dict[str, Any]] = {
        "type": "object",
        "properties": {
            "verdict": {"type": "string", "enum": ["PUNISH", "SAFE"]},
            "reason": {"type": "string"},
            "type": {"type": "string", "enum": ["LONG_MESSAGE", "SPAM", "BOTH"]},
        },
        "required": ["verdict"],
    }

    @property
    def should_punish(self) -> bool:
        return self.label is SpamLabel.PUNISH

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SpamVerdict":
        return cls(
            label=SpamLabel(payload["verdict"]),
            reason=str(payload.get("reason", "")),
            kind=SpamKind(payload.get("type", "BOTH")),
        )

    @classmethod
    def from_text(cls, text: str) -> Optional["SpamVerdict"]:
        upper = text.upper()
        if "PUNISH" in upper:
            if "BOTH" in upper or "SPAM_LONG" in upper:
                kind = SpamKind.BOTH
            elif "LONG_MESSAGE" in upper:
                kind = SpamKind.LONG_MESSAGE
            elif "SPAM" in upper:
                kind = SpamKind.SPAM
            else:
                kind = SpamKind.BOTH
            return cls(SpamLabel.PUNISH, FALLBACK_REASON, kind, recovered=True)
        if "SAFE" in upper:
            return cls(SpamLabel.SAFE, FALLBACK_REASON, recovered=True)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"verdict": self.label.value, "reason": self.reason, "type": self.kind.value}


_IS_ABUSE_RE = re.compile(r'"?is_abuse"?\s*[:=]\s*(true|false)', re.IGNORECASE)


@dataclass(slots=True)
class AbuseVerdict:
    """Abuse-of-power judgement for a moderator-issued warning."""

    is_abuse: bool
    reason: str = ""
    concerns: List[str] = field(default_factory=list)
    recovered: bool = False

    SCHEMA: ClassVar[Dict[str, Any]] = {
        "type": "object",
        "properties": {
            "is_abuse": {"type": "boolean"},
            "reason": {"type": "string"},
            "concerns": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["is_abuse"],
    }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AbuseVerdict":
        return cls(
            is_abuse=bool(payload["is_abuse"]),
            reason=str(payload.get("reason", "")),
            concerns=[str(c) for c in payload.get("concerns", [])],
        )

    @classmethod
    def from_text(cls, text: str) -> Optional["AbuseVerdict"]:
        match = _IS_ABUSE_RE.search(text)
        if match:
            return cls(match.group(1).lower() == "true", FALLBACK_REASON, recovered=True)
        upper = text.upper()
        if "NOT ABUSE" in upper or "NO ABUSE" in upper:
            return cls(False, FALLBACK_REASON, recovered=True)
        if "ABUSE" in upper:
            return cls(True, FALLBACK_REASON, recovered=True)
        if "SAFE" in upper:
            return cls(False, FALLBACK_REASON, recovered=True)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"is_abuse": self.is_abuse, "reason": self.reason, "concerns": list(self.concerns)}


@dataclass(slots=True)
class AppealVerdict:
    """Appeal adjudication."""

    status: AppealStatus
    reason: str = ""
    recovered: bool = False

    SCHEMA: ClassVar[Dict[str, Any]] = {
        "type": "object",
        "properties": {
            "status": {"type": "string", "enum": ["ACCEPTED", "REJECTED"]},
            "reason": {"type": "string"},
        },
        "required": ["status"],
    }

    @property
    def accepted(self) -> bool:
        return self.status is AppealStatus.ACCEPTED

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AppealVerdict":
        return cls(status=AppealStatus(payload["status"]), reason=str(payload.get("reason", "")))

    @classmethod
    def from_text(cls, text: str) -> Optional["AppealVerdict"]:
        upper = text.upper()
        if "REJECTED" in upper:
            return cls(AppealStatus.REJECTED, FALLBACK_REASON, recovered=True)
        if "ACCEPTED" in upper:
            return cls(AppealStatus.ACCEPTED, FALLBACK_REASON, recovered=True)
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "reason": self.reason}


@dataclass(slots=True, frozen=True)
class ClassificationUnavailable:
    """The classifier could not produce a verdict.

    Punitive callers treat this as "no action"; appeal adjudication reports it
    as a retryable failure.
    """

    reason: str
    retryable: bool = True
    attempts: int = 0

    def __bool__(self) -> bool:
        return False
