from __future__ import annotations

from contextlib import asynccontextmanager

import discord
from discord.ext import commands

from controller.models import ChannelInfo
from controller.models import InboundMessage
from controller.models import ReactionEvent

_KIND_BY_TYPE = {
    discord.ChannelType.text: "text",
    discord.ChannelType.news: "text",
    discord.ChannelType.forum: "forum",
    discord.ChannelType.public_thread: "public_thread",
    discord.ChannelType.private_thread: "private_thread",
    discord.ChannelType.news_thread: "news_thread",
    discord.ChannelType.private: "dm",
}


def _display_name(user) -> str:
    for attr in ("display_name", "global_name", "name"):
        value = getattr(user, attr, None)
        if value:
            return str(value)
    return str(getattr(user, "id", "unknown"))


def channel_info(channel) -> ChannelInfo:
    kind = _KIND_BY_TYPE.get(getattr(channel, "type", None), "other")
    if isinstance(channel, discord.DMChannel):
        kind = "dm"
    guild = getattr(channel, "guild", None)
    parent_id = getattr(channel, "parent_id", None)
    return ChannelInfo(
        id=int(channel.id),
        kind=kind,
        parent_id=int(parent_id) if parent_id else None,
        guild_id=int(guild.id) if guild is not None else None,
        name=str(getattr(channel, "name", "") or ""),
    )


def inbound_from_message(message: discord.Message) -> InboundMessage:
    reference = getattr(message, "reference", None)
    guild = getattr(message, "guild", None)
    return InboundMessage(
        id=int(message.id),
        channel_id=int(message.channel.id),
        guild_id=int(guild.id) if guild is not None else None,
        author_id=int(message.author.id),
        author_name=_display_name(message.author),
        author_is_bot=bool(getattr(message.author, "bot", False)),
        content=message.content or "",
        mention_user_ids={int(u.id) for u in message.mentions},
        mention_role_ids={int(r) for r in (message.raw_role_mentions or [])},
        reference_channel_id=int(reference.channel_id) if reference and reference.channel_id else None,
        reference_message_id=int(reference.message_id) if reference and reference.message_id else None,
        created_at_unix=int(message.created_at.timestamp()),
    )


def reaction_from_payload(payload: discord.RawReactionActionEvent) -> ReactionEvent:
    member = getattr(payload, "member", None)
    return ReactionEvent(
        user_id=int(payload.user_id),
        channel_id=int(payload.channel_id),
        message_id=int(payload.message_id),
        guild_id=int(payload.guild_id) if payload.guild_id else None,
        emoji=str(payload.emoji),
        user_name=_display_name(member) if member is not None else "",
    )


class DiscordGateway:
    """discord.py adapter that speaks in plain IDs and normalized records."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @property
    def bot_user_id(self) -> int:
        if self.bot.user is None:
            raise RuntimeError("bot user is not ready")
        return int(self.bot.user.id)

    def guild_ids(self) -> list[int]:
        return [int(g.id) for g in self.bot.guilds]

    async def _channel(self, channel_id: int):
        channel = self.bot.get_channel(int(channel_id))
        if channel is None:
            channel = await self.bot.fetch_channel(int(channel_id))
        return channel

    async def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.bot.get_guild(int(guild_id))
        if guild is None:
            guild = await self.bot.fetch_guild(int(guild_id))
        return guild

    async def _member(self, guild: discord.Guild, user_id: int) -> discord.Member:
        member = guild.get_member(int(user_id))
        if member is None:
            member = await guild.fetch_member(int(user_id))
        return member

    async def fetch_channel(self, channel_id: int) -> ChannelInfo:
        return channel_info(await self._channel(channel_id))

    async def fetch_message(self, channel_id: int, message_id: int) -> InboundMessage:
        channel = await self._channel(channel_id)
        message = await channel.fetch_message(int(message_id))
        return inbound_from_message(message)

    async def fetch_history(
        self,
        channel_id: int,
        *,
        limit: int,
        after_message_id: int | None = None,
        oldest_first: bool = False,
    ) -> list[InboundMessage]:
        """Return up to ``limit`` messages after ``after_message_id``, newest first.

        With ``oldest_first`` the page holds the messages right after the anchor
        instead of the latest ones; the returned order is the same.
        """
        channel = await self._channel(channel_id)
        after = discord.Object(id=int(after_message_id)) if after_message_id else None
        out: list[InboundMessage] = []
        async for message in channel.history(limit=int(limit), after=after, oldest_first=oldest_first):
            out.append(inbound_from_message(message))
        if oldest_first:
            out.reverse()
        return out

    async def is_guild_member(self, guild_id: int, user_id: int) -> bool:
        guild = self.bot.get_guild(int(guild_id))
        if guild is None:
            return False
        if guild.get_member(int(user_id)) is not None:
            return True
        try:
            await guild.fetch_member(int(user_id))
        except discord.NotFound:
            return False
        return True

    async def member_role_ids(self, guild_id: int, user_id: int) -> set[int]:
        guild = await self._guild(guild_id)
        member = await self._member(guild, user_id)
        return {int(r.id) for r in member.roles}

    async def guild_roles(self, guild_id: int) -> dict[int, str]:
        guild = await self._guild(guild_id)
        roles = guild.roles or await guild.fetch_roles()
        return {int(r.id): str(r.name) for r in roles}

    async def send_message(self, channel_id: int, text: str) -> int:
        channel = await self._channel(channel_id)
        sent = await channel.send(text)
        return int(sent.id)

    async def send_reply(self, channel_id: int, message_id: int, text: str) -> int:
        channel = await self._channel(channel_id)
        target = channel.get_partial_message(int(message_id))
        sent = await target.reply(text, mention_author=False)
        return int(sent.id)

    async def start_thread(
        self,
        channel_id: int,
        title: str,
        *,
        auto_archive_minutes: int = 60,
        message_id: int | None = None,
    ) -> ChannelInfo:
        channel = await self._channel(channel_id)
        if message_id is not None:
            anchor = channel.get_partial_message(int(message_id))
            thread = await anchor.create_thread(name=title, auto_archive_duration=auto_archive_minutes)
        else:
            thread = await channel.create_thread(
                name=title,
                type=discord.ChannelType.public_thread,
                auto_archive_duration=auto_archive_minutes,
            )
        return channel_info(thread)

    async def add_reaction(self, channel_id: int, message_id: int, emoji: str) -> None:
        channel = await self._channel(channel_id)
        await channel.get_partial_message(int(message_id)).add_reaction(emoji)

    async def remove_reaction(self, channel_id: int, message_id: int, emoji: str, user_id: int) -> None:
        channel = await self._channel(channel_id)
        await channel.get_partial_message(int(message_id)).remove_reaction(emoji, discord.Object(id=int(user_id)))

    async def delete_message(self, channel_id: int, message_id: int) -> None:
        channel = await self._channel(channel_id)
        await channel.get_partial_message(int(message_id)).delete()

    @asynccontextmanager
    async def typing(self, channel_id: int):
        entered = None
        try:
            channel = await self._channel(channel_id)
            indicator = channel.typing()
            await indicator.__aenter__()
            entered = indicator
        except Exception as e:
            print(f"[Gateway] typing indicator unavailable channel={channel_id}: {e}")
        try:
            yield
        finally:
            if entered is not None:
                await entered.__aexit__(None, None, None)
