"""Utilities for parsing classifier responses into typed verdicts."""

from __future__ import annotations

import json
import re
from typing import Any, Optional, Type, TypeVar

import jsonschema
from jsonschema import ValidationError

from fairguard.datatypes.verdict_datatypes import AbuseVerdict, AppealVerdict, SafetyVerdict, SpamVerdict
from fairguard.util.logger import get_logger

logger = get_logger("verdict_parsing")

Verdict = SafetyVerdict | SpamVerdict | AbuseVerdict | AppealVerdict
V = TypeVar("V", SafetyVerdict, SpamVerdict, AbuseVerdict, AppealVerdict)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def strip_code_fences(raw: str) -> str:
    return _FENCE_RE.sub("", raw).strip()


def _extract_json_payload(raw: str) -> Any:
    """Extract a JSON value from raw text, falling back to the outermost ``{...}`` span."""
    cleaned = strip_code_fences(raw)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        match = _OBJECT_RE.search(cleaned)
        if match:
            try:
                return json.loads(match.group(0))
            except json.JSONDecodeError:
                pass
        raise ValueError("Failed to extract JSON payload") from exc


def parse_verdict(response: str, verdict_type: Type[V]) -> Optional[V]:
    """Parse a classifier response into ``verdict_type``.

    Strict path: JSON payload validated against ``verdict_type.SCHEMA``.
    Lenient path: keyword scan of the raw text via ``verdict_type.from_text``.

    Returns:
        The verdict, or None when neither path recovers one (the caller retries).
    """
    try:
        payload = _extract_json_payload(response)
        jsonschema.validate(instance=payload, schema=verdict_type.SCHEMA)
        return verdict_type.from_payload(payload)
    except ValueError as exc:
        logger.debug("[PARSE] %s: no JSON payload (%s)", verdict_type.__name__, exc)
    except ValidationError as exc:
        logger.warning("[PARSE] %s: schema validation failed: %s", verdict_type.__name__, exc.message)

    verdict = verdict_type.from_text(strip_code_fences(response))
    if verdict is not None:
        logger.info("[PARSE] %s recovered by keyword fallback", verdict_type.__name__)
    return verdict
