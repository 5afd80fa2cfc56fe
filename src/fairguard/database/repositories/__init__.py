"""
Repositories for the FairGuard store.

Each repository is a class of static methods taking an open
``aiosqlite.Connection``; callers own the transaction boundary.
"""

from fairguard.database.repositories.banned_word_repo import BannedWordRepo
from fairguard.database.repositories.confirmation_repo import ConfirmationRepo
from fairguard.database.repositories.message_tracking_repo import MessageTrackingRepo
from fairguard.database.repositories.mod_log_repo import ModLogRepo
from fairguard.database.repositories.rate_limit_repo import RateLimitRepo
from fairguard.database.repositories.trust_score_repo import TrustScoreRepo
from fairguard.database.repositories.warning_repo import WarningRepo

__all__ = [
    "BannedWordRepo",
    "ConfirmationRepo",
    "MessageTrackingRepo",
    "ModLogRepo",
    "RateLimitRepo",
    "TrustScoreRepo",
    "WarningRepo",
]
