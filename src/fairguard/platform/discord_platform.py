"""
py-cord implementation of ``ChatPlatform``.

Translates ``discord`` exceptions into the engine's platform errors:
``discord.NotFound`` becomes ``MessageAlreadyDeleted``, ``discord.Forbidden``
becomes ``PlatformPermissionError`` and any other ``discord.HTTPException``
becomes ``PlatformError``.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta
from typing import Iterable, Iterator, List, Optional

import discord

from fairguard.errors import MessageAlreadyDeleted, PlatformError, PlatformPermissionError
from fairguard.platform.chat_platform import ChatMessage
from fairguard.util.logger import get_logger

logger = get_logger("discord_platform")


def to_chat_message(message: discord.Message) -> ChatMessage:
    """Convert a py-cord message into the engine's ``ChatMessage``."""
    return ChatMessage(
        id=str(message.id),
        channel_id=str(message.channel.id),
        author_id=str(message.author.id),
        author_name=str(message.author),
        content=message.content or "",
        created_at=int(message.created_at.timestamp() * 1000),
        guild_id=str(message.guild.id) if message.guild else None,
        author_is_bot=bool(message.author.bot or message.webhook_id),
    )


@contextmanager
def _translate_errors(operation: str, target: str) -> Iterator[None]:
    try:
        yield
    except discord.NotFound as exc:
        raise MessageAlreadyDeleted(f"{operation}: {target} not found") from exc
    except discord.Forbidden as exc:
        logger.warning("[DISCORD] Missing permission for %s on %s", operation, target)
        raise PlatformPermissionError(f"{operation}: missing permission for {target}") from exc
    except discord.HTTPException as exc:
        logger.error("[DISCORD] %s failed for %s (status=%s): %s", operation, target, exc.status, exc.text)
        raise PlatformError(f"{operation}: {exc}") from exc


class DiscordPlatform:
    """
    Adapter exposing one guild of a py-cord client as a ``ChatPlatform``.

    Args:
        client: Connected ``discord.Client`` / ``discord.Bot``.
        guild_id: Guild whose members are checked for admin membership.
        admin_user_ids: User ids always treated as admins.
        admin_role_ids: Role ids granting admin status.
    """

    def __init__(
        self,
        client: discord.Client,
        guild_id: str,
        admin_user_ids: Iterable[str] = (),
        admin_role_ids: Iterable[str] = (),
    ) -> None:
        self.client = client
        self.guild_id = str(guild_id)
        self.admin_user_ids = frozenset(str(u) for u in admin_user_ids)
        self.admin_role_ids = frozenset(str(r) for r in admin_role_ids)

    async def _channel(self, channel_id: str) -> discord.abc.Messageable:
        channel = self.client.get_channel(int(channel_id))
        if channel is None:
            with _translate_errors("fetch_channel", f"channel {channel_id}"):
                channel = await self.client.fetch_channel(int(channel_id))
        return channel

    async def fetch_message(self, channel_id: str, message_id: str) -> ChatMessage:
        channel = await self._channel(channel_id)
        with _translate_errors("fetch_message", f"message {message_id}"):
            message = await channel.fetch_message(int(message_id))
        return to_chat_message(message)

    async def fetch_messages_before(self, channel_id: str, message_id: str, limit: int) -> List[ChatMessage]:
        if limit <= 0:
            return []
        channel = await self._channel(channel_id)
        with _translate_errors("history", f"channel {channel_id}"):
            history = channel.history(limit=limit, before=discord.Object(id=int(message_id)))
            return [to_chat_message(m) async for m in history]

    async def fetch_messages_after(self, channel_id: str, message_id: str, limit: int) -> List[ChatMessage]:
        if limit <= 0:
            return []
        channel = await self._channel(channel_id)
        with _translate_errors("history", f"channel {channel_id}"):
            history = channel.history(limit=limit, after=discord.Object(id=int(message_id)), oldest_first=True)
            return [to_chat_message(m) async for m in history]

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        channel = await self._channel(channel_id)
        with _translate_errors("delete_message", f"message {message_id}"):
            await channel.get_partial_message(int(message_id)).delete()
        logger.info("[DISCORD] Deleted message %s in channel %s", message_id, channel_id)

    async def _member(self, user_id: str) -> Optional[discord.Member]:
        """Member of the configured guild, or None when the guild or member is unknown."""
        if not self.guild_id:
            return None

        guild = self.client.get_guild(int(self.guild_id))
        if guild is None:
            logger.warning("[DISCORD] Guild %s is not cached", self.guild_id)
            return None

        member = guild.get_member(int(user_id))
        if member is None:
            try:
                member = await guild.fetch_member(int(user_id))
            except discord.NotFound:
                return None
            except discord.HTTPException as exc:
                raise PlatformError(f"fetch_member: {exc}") from exc
        return member

    async def is_admin(self, user_id: str) -> bool:
        """True when the user is a configured admin, holds an admin role or has Administrator."""
        if str(user_id) in self.admin_user_ids:
            return True

        member = await self._member(user_id)
        if member is None:
            return False
        if any(str(role.id) in self.admin_role_ids for role in member.roles):
            return True
        return bool(member.guild_permissions.administrator)

    async def timeout_member(self, user_id: str, duration_seconds: int, reason: str) -> None:
        member = await self._member(user_id)
        if member is None:
            raise PlatformError(f"timeout_member: member {user_id} not found in guild {self.guild_id or '-'}")
        with _translate_errors("timeout_member", f"member {user_id}"):
            await member.timeout_for(timedelta(seconds=duration_seconds), reason=reason)
        logger.info("[DISCORD] Timed out member %s for %ds", user_id, duration_seconds)
