"""
Validation of moderator- and user-supplied input.

Every validator either returns the normalized value or raises
``ValidationError`` naming the field, so callers can reject a command before
touching the store or the classifier.
"""

from __future__ import annotations

import re

from fairguard.errors import ValidationError

USER_ID_PATTERN = re.compile(r"^\d{17,19}$")
LOG_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
# Hiragana, katakana (with the long vowel mark), common kanji, ASCII letters/digits, whitespace, - and _
WORD_PATTERN = re.compile(r"^[ぁ-んァ-ヶー一-龠a-zA-Z0-9\s\-_]+$")

MAX_REASON_LENGTH = 500
MAX_REASON_NEWLINES = 10
MAX_WORD_LENGTH = 100
MAX_LOG_ID_LENGTH = 36


def validate_user_id(user_id: object, field: str = "user_id") -> str:
    """Platform snowflake: 17 to 19 decimal digits."""
    value = str(user_id).strip() if user_id is not None else ""
    if not USER_ID_PATTERN.match(value):
        raise ValidationError(field, "must be a 17-19 digit numeric id")
    return value


def validate_reason(reason: object, field: str = "reason") -> str:
    if reason is None or not str(reason).strip():
        raise ValidationError(field, "must not be empty")
    value = str(reason).strip()
    if len(value) > MAX_REASON_LENGTH:
        raise ValidationError(field, f"must be at most {MAX_REASON_LENGTH} characters")
    if value.count("\n") > MAX_REASON_NEWLINES:
        raise ValidationError(field, f"must contain at most {MAX_REASON_NEWLINES} line breaks")
    return value


def validate_word(word: object, field: str = "word") -> str:
    """Return the word trimmed and lowercased."""
    if word is None or not str(word).strip():
        raise ValidationError(field, "must not be empty")
    value = str(word).strip()
    if len(value) > MAX_WORD_LENGTH:
        raise ValidationError(field, f"must be at most {MAX_WORD_LENGTH} characters")
    if not WORD_PATTERN.match(value):
        raise ValidationError(field, "contains unsupported characters")
    return value.lower()


def validate_log_id(log_id: object, field: str = "log_id") -> str:
    value = str(log_id).strip() if log_id is not None else ""
    if not value:
        raise ValidationError(field, "must not be empty")
    if len(value) > MAX_LOG_ID_LENGTH:
        raise ValidationError(field, f"must be at most {MAX_LOG_ID_LENGTH} characters")
    if not LOG_ID_PATTERN.match(value):
        raise ValidationError(field, "may only contain letters, digits, '-' and '_'")
    return value


def validate_number(value: object, minimum: int | None = None, maximum: int | None = None, field: str = "value") -> int:
    """Parse an integer and check it against optional inclusive bounds."""
    if isinstance(value, bool):
        raise ValidationError(field, "must be a number")
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(field, "must be a number") from None
    if minimum is not None and number < minimum:
        raise ValidationError(field, f"must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(field, f"must be at most {maximum}")
    return number
