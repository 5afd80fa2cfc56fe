"""
Chat-platform capability consumed by the moderation engine.

The engine never talks to a platform SDK directly; it is handed an object
satisfying ``ChatPlatform`` and plain ``ChatMessage`` values.  Failures are
reported with the ``PlatformError`` family so "message already deleted" and
"permission denied" stay distinguishable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol, runtime_checkable


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """Platform-neutral snapshot of one chat message.

    Attributes:
        id: Message id.
        channel_id: Channel the message was posted in.
        author_id: Author's user id.
        author_name: Display tag of the author, used in context snapshots.
        content: Raw message text.
        created_at: Creation time in unix milliseconds.
        guild_id: Owning guild, when the message is not a DM.
        author_is_bot: True for messages written by bots or webhooks.
    """

    id: str
    channel_id: str
    author_id: str
    author_name: str
    content: str
    created_at: int
    guild_id: Optional[str] = None
    author_is_bot: bool = False


@runtime_checkable
class ChatPlatform(Protocol):
    """Operations the engine needs from the chat platform."""

    async def fetch_message(self, channel_id: str, message_id: str) -> ChatMessage:
        """Raises ``MessageAlreadyDeleted`` when the message is gone."""
        ...

    async def fetch_messages_before(self, channel_id: str, message_id: str, limit: int) -> List[ChatMessage]:
        ...

    async def fetch_messages_after(self, channel_id: str, message_id: str, limit: int) -> List[ChatMessage]:
        ...

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        """Raises ``MessageAlreadyDeleted``, ``PlatformPermissionError`` or ``PlatformError``."""
        ...

    async def is_admin(self, user_id: str) -> bool:
        ...

    async def timeout_member(self, user_id: str, duration_seconds: int, reason: str) -> None:
        """Raises ``PlatformPermissionError`` or ``PlatformError`` (also for unknown members)."""
        ...
