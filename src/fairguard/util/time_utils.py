"""Clock and identifier helpers.

All persisted timestamps are integer unix milliseconds. Services accept a
``clock`` callable so tests can drive time explicitly.
"""

import time
import uuid
from typing import Callable

Clock = Callable[[], int]

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR


def now_ms() -> int:
    """Current wall-clock time in unix milliseconds."""
    return int(time.time() * MS_PER_SECOND)


def days_to_ms(days: float) -> int:
    return int(days * MS_PER_DAY)


def seconds_to_ms(seconds: float) -> int:
    return int(seconds * MS_PER_SECOND)


def new_id() -> str:
    """Random identifier used for log entries, warnings and confirmations (36 chars)."""
    return str(uuid.uuid4())
