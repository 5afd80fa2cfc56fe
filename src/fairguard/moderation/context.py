"""
Conversation context around a flagged message.

The context snapshot is the text the classifier judges and the text stored on
the moderation log, so it is built the same way everywhere: N messages
before, the target, N messages after, ordered by creation time, with the
target line marked.
"""

from __future__ import annotations

import asyncio
from typing import List, Protocol

from fairguard.errors import PlatformError
from fairguard.platform.chat_platform import ChatMessage, ChatPlatform
from fairguard.util.logger import get_logger

logger = get_logger("context_fetcher")

TARGET_MARKER = "[TARGET] "
CONTEXT_UNAVAILABLE = "(context unavailable)"


class ContextFetcher(Protocol):
    async def fetch_context(self, message: ChatMessage, before: int, after: int) -> str:
        ...


def format_context(messages: List[ChatMessage], target_id: str) -> str:
    """Render messages oldest first, one ``[author]: content`` line each, marking the target."""
    lines = []
    for msg in sorted(messages, key=lambda m: (m.created_at, m.id)):
        marker = TARGET_MARKER if msg.id == target_id else ""
        lines.append(f"{marker}[{msg.author_name}]: {msg.content}")
    return "\n".join(lines)


class PlatformContextFetcher:
    """``ContextFetcher`` that reads history through a ``ChatPlatform``.

    The three fetches run concurrently; a failed side is logged and skipped.
    If nothing at all can be fetched the fixed ``CONTEXT_UNAVAILABLE`` text is
    returned instead of raising.
    """

    def __init__(self, platform: ChatPlatform) -> None:
        self.platform = platform

    async def fetch_context(self, message: ChatMessage, before: int, after: int) -> str:
        results = await asyncio.gather(
            self.platform.fetch_messages_before(message.channel_id, message.id, before),
            self.platform.fetch_message(message.channel_id, message.id),
            self.platform.fetch_messages_after(message.channel_id, message.id, after),
            return_exceptions=True,
        )
        collected: List[ChatMessage] = []
        failures = 0
        for side, result in zip(("before", "target", "after"), results):
            if isinstance(result, PlatformError):
                failures += 1
                logger.warning("[CONTEXT] Could not fetch %s messages for %s: %s", side, message.id, result)
            elif isinstance(result, BaseException):
                failures += 1
                logger.error("[CONTEXT] Unexpected error fetching %s messages for %s: %s", side, message.id, result)
            elif isinstance(result, list):
                collected.extend(result)
            else:
                collected.append(result)

        if failures == len(results):
            return CONTEXT_UNAVAILABLE

        # The inbound message stands in for the target when it was already deleted
        if all(m.id != message.id for m in collected):
            collected.append(message)
        return format_context(collected, message.id)
