from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, List, Optional

import discord

from confirmations import CONFIRM_EMOJI, PendingConfirmations
from formatting import channel_type_label
from logging_utils import log_command, log_error
from repost_engine import RepostEngine
from webhook_sender import TRANSPORT_ERRORS, safe_send

# Channel kinds a repost can read from or write to
REPOSTABLE_KINDS = frozenset({discord.ChannelType.text, discord.ChannelType.group, discord.ChannelType.private})


@dataclass(frozen=True)
class RepostRequest:
    target: str
    webhook: bool = False
    direction_from: bool = False
    live: bool = False

    @property
    def direction(self) -> str:
        return "from" if self.direction_from else "to"

    @property
    def live_word(self) -> str:
        return " live " if self.live else " "


def _label(channel, fallback: str) -> str:
    return str(getattr(channel, "name", None) or fallback)


class DestinationResolver:
    """
    Turns the target of a repost command into channels and hands each one to
    the engine: channel id, then guild id (every channel), then a channel
    mention, then a name scan across everything the bot can see.
    """

    def __init__(self, *, bot, engine: RepostEngine, confirmations: PendingConfirmations):
        self.bot = bot
        self.engine = engine
        self.confirmations = confirmations

    # ---------------- lookups ----------------

    async def fetch_channel_by_id(self, target: str):
        if not target.isdigit():
            return None
        cid = int(target)
        channel = self.bot.get_channel(cid)
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(cid)
        except TRANSPORT_ERRORS:
            return None

    async def fetch_guild_by_id(self, target: str):
        if not target.isdigit():
            return None
        gid = int(target)
        guild = self.bot.get_guild(gid)
        if guild is not None:
            return guild
        try:
            return await self.bot.fetch_guild(gid)
        except TRANSPORT_ERRORS:
            return None

    def find_by_name(self, target: str) -> List[Any]:
        wanted = target.strip().lower()
        matches: List[Any] = []
        for channel in list(self.bot.get_all_channels()) + list(self.bot.private_channels):
            name = getattr(channel, "name", None)
            if name and name.lower() == wanted:
                matches.append(channel)
        return matches

    # ---------------- entry ----------------

    async def repost(self, message, request: RepostRequest, channel=None) -> None:
        if channel is None:
            channel = await self.fetch_channel_by_id(request.target)
        if channel is not None:
            await self.repost_channel(channel, message, request)
            return

        guild = await self.fetch_guild_by_id(request.target)
        if guild is not None:
            await self.repost_guild(guild, message, request)
            return

        mentions = list(getattr(message, "channel_mentions", None) or [])
        if mentions:
            await self.repost_channel(mentions[0], message, request)
            return

        matches = self.find_by_name(request.target)
        if len(matches) == 1:
            await self.repost_channel(matches[0], message, request)
        elif matches:
            await self.offer_matches(matches, message, request)
        else:
            await safe_send(message.channel, f"**Couldn't repost {request.direction} `{request.target}`!**")

    async def repost_guild(self, guild, message, request: RepostRequest) -> None:
        config = self.engine.config
        config.activate(message.channel.id)
        self.engine.persist()
        await self.engine.update_status()
        await safe_send(
            message.channel,
            f"**Reposting{request.live_word}{request.direction} `{_label(guild, request.target)}`!**",
        )
        channels = list(guild.channels)
        if not channels:
            try:
                channels = list(await guild.fetch_channels())
            except TRANSPORT_ERRORS as e:
                log_error(f"Guild channel listing failed guild_id={guild.id}", error=e)
                await safe_send(message.channel, f"**Couldn't read channels of `{_label(guild, request.target)}`!**")
                return
        for channel in channels:
            if not config.is_active(message.channel.id):
                break
            config.activate(channel.id)
            self.engine.persist()
            await self.repost_channel(channel, message, request)

    async def offer_matches(self, matches: List[Any], message, request: RepostRequest) -> None:
        """One card per candidate; a ✅ from the requester reposts with that channel."""
        await safe_send(message.channel, f"**Found {len(matches)} channels!**")
        me = self.bot.user
        for match in matches:
            card_embed = discord.Embed(timestamp=getattr(match, "created_at", None))
            card_embed.set_footer(
                text=f"{channel_type_label(match)} Channel",
                icon_url=me.display_avatar.url if me else None,
            )
            guild = getattr(match, "guild", None)
            recipient = getattr(match, "recipient", None)
            if guild is not None:
                card_embed.set_author(name=match.name, icon_url=guild.icon.url if guild.icon else None)
            elif recipient is not None:
                card_embed.set_author(
                    name=await self.engine.display_name(message.channel, match, recipient),
                    icon_url=recipient.display_avatar.url,
                )
            else:
                card_embed.set_author(name=_label(match, str(match.id)))
            card_embed.add_field(name="Channel ID", value=f"`{match.id}`", inline=False)

            card = await safe_send(message.channel, embed=card_embed)
            if card is None:
                continue
            try:
                await card.add_reaction(CONFIRM_EMOJI)
            except TRANSPORT_ERRORS as e:
                log_error(f"Could not react to candidate card channel_id={match.id}", error=e)
            self.confirmations.register(
                message_id=card.id,
                user_id=message.author.id,
                emoji=CONFIRM_EMOJI,
                callback=functools.partial(self.repost_channel, match, message, request),
            )

    # ---------------- guards ----------------

    def rejection(self, channel, message, request: RepostRequest) -> Optional[str]:
        """User-facing reason this repost cannot run, or None."""
        if channel.id == message.channel.id:
            return f"**Can't repost {request.direction} the same channel!**"
        if channel.type not in REPOSTABLE_KINDS:
            return f"**Can't repost {request.direction} {getattr(channel.type, 'name', channel.type)} channels!**"
        dest_kind = message.channel.type if request.direction_from else channel.type
        if request.webhook and dest_kind == discord.ChannelType.private:
            return "**Can't create webhooks on DM channels!**"
        if channel.type == discord.ChannelType.text and not request.direction_from:
            perms = channel.permissions_for(channel.guild.me)
            if not perms.send_messages:
                return f"**Can't repost to `{_label(channel, request.target)}` without permission!**"
        return None

    async def repost_channel(self, channel, message, request: RepostRequest) -> None:
        reason = self.rejection(channel, message, request)
        if reason is not None:
            await safe_send(message.channel, reason)
            return
        destination = message.channel if request.direction_from else channel
        source = channel if request.direction_from else message.channel
        await safe_send(
            message.channel,
            f"**Reposting{request.live_word}{request.direction} `{_label(channel, request.target)}`!**",
        )
        log_command(
            f"repost source={source.id} dest={destination.id} hook={request.webhook} live={request.live}",
            event="repost_request",
        )
        await self.engine.start(source=source, destination=destination, webhook=request.webhook, live=request.live)
