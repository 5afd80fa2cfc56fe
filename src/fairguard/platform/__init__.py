"""
Chat-platform boundary for FairGuard.

- **chat_platform.py**: the ``ChatPlatform`` protocol and ``ChatMessage``
  value type the engine is written against.
- **discord_platform.py**: ``DiscordPlatform``, the py-cord adapter, and
  ``to_chat_message`` for converting gateway events.
"""

from fairguard.platform.chat_platform import ChatMessage, ChatPlatform

__all__ = ["ChatMessage", "ChatPlatform"]
