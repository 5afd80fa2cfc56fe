"""
Read models returned by the moderation history and analytics queries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from fairguard.datatypes.moderation_datatypes import LogType, ModerationLogEntry


@dataclass(slots=True, frozen=True)
class FrequentTarget:
    """A user one moderator warned repeatedly within the listed entries."""

    user_id: str
    count: int
    span_minutes: int


@dataclass(slots=True)
class ModeratorActivity:
    moderator_id: str
    entries: List[ModerationLogEntry] = field(default_factory=list)
    frequent_targets: List[FrequentTarget] = field(default_factory=list)


@dataclass(slots=True)
class AnalyticsReport:
    """Warning statistics over the last ``period_days`` days.

    Attributes:
        top_types: Most frequent warning log types with their counts.
        top_users: Most warned users with their counts.
        hourly_distribution: ``(hour, count)`` pairs in UTC, hours with no
            warning omitted, ordered by hour.
        word_detections: Counts of the word-list driven log types.
    """

    period_days: int
    since: int
    top_types: List[Tuple[LogType, int]] = field(default_factory=list)
    top_users: List[Tuple[str, int]] = field(default_factory=list)
    hourly_distribution: List[Tuple[int, int]] = field(default_factory=list)
    word_detections: List[Tuple[LogType, int]] = field(default_factory=list)
