from __future__ import annotations

import datetime
from collections import Counter
from typing import Any, Iterable, List, Optional, Sequence

import discord

from config_store import RepostConfig, guild_key
from formatting import (
    apply_replacements,
    author_line,
    capitalize_first,
    is_inline_attachment,
    is_rich_embed,
    plural,
    replace_embed_text,
    system_line,
    system_suffix,
)
from logging_utils import log_error, log_repost, log_warn
import settings_store as cfg
from webhook_sender import TRANSPORT_ERRORS, RepostTarget, fetch_webhook, safe_send


class RepostEngine:
    """
    Copies messages from a source channel into a destination.

    Every send checks the shared `active` flags first, so `stop` (or a flag
    toggle) ends a running walk at the next send or page boundary.
    """

    def __init__(self, *, bot, config: RepostConfig, store):
        self.bot = bot
        self.config = config
        self.store = store

    # ---------------- state ----------------

    def persist(self) -> None:
        self.store.save(self.config)

    def halted(self, to_id, from_id=None) -> bool:
        if not self.config.is_active(to_id):
            return True
        return from_id is not None and not self.config.is_active(from_id)

    async def update_status(self) -> None:
        name = plural(self.config.active_count(), "repost")
        try:
            await self.bot.change_presence(activity=discord.Activity(type=discord.ActivityType.watching, name=name))
        except TRANSPORT_ERRORS as e:
            log_warn(f"Presence update failed ({type(e).__name__}: {e})")

    # ---------------- names ----------------

    async def display_name(self, dest, source, user) -> str:
        """Server nickname, user tag or plain username, per the source's guild flags."""
        src_guild = getattr(source, "guild", None)
        key = str(src_guild.id) if src_guild is not None else guild_key(dest)
        if self.config.flag("nicknames", key) and src_guild is not None:
            member = src_guild.get_member(user.id)
            if member is None:
                try:
                    member = await src_guild.fetch_member(user.id)
                except TRANSPORT_ERRORS:
                    member = None
            if member is not None:
                return member.display_name
        if self.config.flag("tags", key):
            return str(user)
        return user.name

    async def _read_avatar(self, user) -> Optional[bytes]:
        try:
            return await user.display_avatar.read()
        except TRANSPORT_ERRORS as e:
            log_warn(f"Avatar download failed user_id={getattr(user, 'id', '?')} ({type(e).__name__}: {e})")
            return None

    async def _wear_identity(self, user, name: str, target: RepostTarget) -> None:
        if target.webhook is None or target.identity_author_id == user.id:
            return
        await target.set_identity(name, await self._read_avatar(user), author_id=user.id)

    # ---------------- single message ----------------

    def _can_replay(self, emoji) -> bool:
        if isinstance(emoji, str):
            return True
        emoji_id = getattr(emoji, "id", None)
        if emoji_id is None:
            return True
        return self.bot.get_emoji(int(emoji_id)) is not None

    async def _replay_reactions(self, sent, reactions: Sequence[Any], target: RepostTarget, source_id) -> None:
        for reaction in reactions:
            if self.halted(target.id, source_id):
                break
            emoji = reaction.emoji
            if not self._can_replay(emoji):
                continue
            try:
                await sent.add_reaction(emoji)
            except TRANSPORT_ERRORS as e:
                log_error(f"Reaction replay failed channel_id={target.id}", error=e)

    async def _send_piece(
        self,
        target: RepostTarget,
        source_id,
        reactions: Sequence[Any],
        content: Optional[str] = None,
        **kwargs: Any,
    ):
        if self.halted(target.id, source_id):
            return None
        sent = await target.send(content, **kwargs)
        if sent is not None and reactions:
            await self._replay_reactions(sent, reactions, target, source_id)
        return sent

    async def repost_message(self, message, target: RepostTarget, *, source_id, last_author_id=None) -> None:
        """
        Repost one message: author header (only when the author changed),
        body, attachments and rich embeds, each followed by its reactions.
        """
        if self.halted(target.id, source_id):
            return
        table = self.config.replacements_for(guild_key(target.channel))

        suffix = system_suffix(message.type)
        if suffix is not None:
            name = apply_replacements(await self.display_name(target.channel, message.channel, message.author), table)
            await self._wear_identity(message.author, name, target)
            await self._send_piece(target, source_id, (), system_line(name, suffix))
            return

        if target.webhook is not None:
            # The webhook shows whoever it was last edited to, not the previous message's author
            if target.identity_author_id != message.author.id:
                name = apply_replacements(await self.display_name(target.channel, message.channel, message.author), table)
                await self._wear_identity(message.author, name, target)
        elif message.author.id != last_author_id:
            name = apply_replacements(await self.display_name(target.channel, message.channel, message.author), table)
            await self._send_piece(target, source_id, (), author_line(name))

        reactions = list(message.reactions or [])
        if message.content:
            await self._send_piece(target, source_id, reactions, apply_replacements(message.content, table))

        for attachment in message.attachments:
            if is_inline_attachment(attachment.size):
                try:
                    file = await attachment.to_file()
                except TRANSPORT_ERRORS as e:
                    log_warn(f"Attachment download failed, posting URL ({type(e).__name__}: {e})")
                    file = None
                if file is not None:
                    await self._send_piece(target, source_id, reactions, file=file)
                    continue
            await self._send_piece(target, source_id, reactions, attachment.url)

        for embed in message.embeds:
            if not is_rich_embed(embed):
                continue
            await self._send_piece(target, source_id, reactions, embed=replace_embed_text(embed, table))

    async def repost_messages(
        self,
        messages: Iterable[Any],
        target: RepostTarget,
        *,
        source_id,
        last_author_id=None,
    ) -> Optional[int]:
        """Repost `messages` in the given (oldest-first) order; returns the last author id."""
        for message in messages:
            if self.halted(target.id, source_id):
                break
            await self.repost_message(message, target, source_id=source_id, last_author_id=last_author_id)
            last_author_id = message.author.id
        return last_author_id

    # ---------------- history ----------------

    async def fetch_page(self, source, after_id: int) -> Optional[List[Any]]:
        """Up to HISTORY_PAGE_SIZE messages strictly after `after_id`, oldest first; None on failure."""
        try:
            batch = [
                m
                async for m in source.history(
                    limit=cfg.HISTORY_PAGE_SIZE,
                    after=discord.Object(id=int(after_id)),
                    oldest_first=True,
                )
            ]
        except TRANSPORT_ERRORS as e:
            log_error(f"History fetch failed channel_id={source.id} after={after_id}", error=e)
            return None
        batch.sort(key=lambda m: int(m.id))
        return batch

    async def walk_history(self, source, target: RepostTarget) -> int:
        """
        Forward cursor walk from the start of the channel until a fetch comes
        back empty. Returns the number of messages fetched.
        """
        cursor = 0
        fetched = 0
        last_author_id = None
        while True:
            if self.halted(target.id, source.id):
                log_repost(f"Walk stopped source={source.id} dest={target.id} fetched={fetched}")
                return fetched
            batch = await self.fetch_page(source, cursor)
            if batch is None:
                await safe_send(target.channel, "**Can't read messages!**")
                return fetched
            if self.halted(target.id, source.id):
                log_repost(f"Walk stopped source={source.id} dest={target.id} fetched={fetched}")
                return fetched
            if not batch:
                await safe_send(target.channel, "**Repost Complete!**")
                log_repost(f"Repost complete source={source.id} dest={target.id} messages={fetched}")
                return fetched
            fetched += len(batch)
            last_author_id = await self.repost_messages(
                batch, target, source_id=source.id, last_author_id=last_author_id
            )
            cursor = int(batch[-1].id)

    async def replay_pins(self, source, target: RepostTarget) -> None:
        try:
            pins = [m async for m in source.pins(limit=None, oldest_first=True)]
        except TRANSPORT_ERRORS as e:
            log_error(f"Pin fetch failed channel_id={source.id}", error=e)
            await safe_send(target.channel, "**Can't read pins!**")
            return
        await self.repost_messages(pins, target, source_id=source.id)

    # ---------------- info card ----------------

    async def build_info_embed(self, dest, source) -> discord.Embed:
        guild = getattr(source, "guild", None)
        rich = discord.Embed(
            title=str(getattr(source, "name", None) or source.id),
            description=getattr(source, "topic", None) or "No topic",
            timestamp=datetime.datetime.now(datetime.timezone.utc),
        )
        me = self.bot.user
        rich.set_footer(text=f"Reposting from {source.id}", icon_url=me.display_avatar.url if me else None)

        recipient = getattr(source, "recipient", None)
        if guild is not None:
            icon = guild.icon.url if guild.icon else None
            rich.set_author(name=guild.name, icon_url=icon)
            if icon:
                rich.set_thumbnail(url=icon)
        elif recipient is not None:
            rich.set_author(
                name=await self.display_name(dest, source, recipient),
                icon_url=recipient.display_avatar.url,
            )
            rich.set_thumbnail(url=recipient.display_avatar.url)

        if guild is not None:
            owner = guild.owner
            if owner is None and guild.owner_id:
                try:
                    owner = await guild.fetch_member(guild.owner_id)
                except TRANSPORT_ERRORS:
                    owner = None
            category = getattr(source, "category", None)
            rich.add_field(name="Channel Category", value=getattr(category, "name", None) or "None", inline=True)
            rich.add_field(name="NSFW Channel", value=str(bool(getattr(source, "nsfw", False))).lower(), inline=True)
            rich.add_field(name="Server ID", value=str(guild.id), inline=True)
            rich.add_field(
                name="Server Owner",
                value=await self.display_name(dest, source, owner) if owner is not None else "Unknown",
                inline=True,
            )
            rich.add_field(name="Server Region", value=str(guild.preferred_locale), inline=True)
            rich.add_field(name="Server Members", value=str(guild.member_count), inline=True)
            rich.add_field(name="Server Roles", value=str(len(guild.roles)), inline=True)
            rich.add_field(name="Server Emojis", value=str(len(guild.emojis)), inline=True)
            rich.add_field(name="Server Verification", value=str(guild.verification_level), inline=True)
            rich.add_field(name="Server Creation Date", value=str(guild.created_at), inline=True)
            counts = Counter(str(getattr(ch.type, "name", ch.type)) for ch in guild.channels)
            for kind, count in counts.items():
                rich.add_field(name=f"{capitalize_first(kind)} Channels", value=str(count), inline=True)
            system_channel = guild.system_channel
            if system_channel is not None:
                rich.add_field(name="Default Channel", value=system_channel.name, inline=True)
                rich.add_field(name="Default Channel ID", value=str(system_channel.id), inline=True)

        rich.add_field(name="Channel ID", value=str(source.id), inline=True)
        rich.add_field(name="Channel Type", value=str(getattr(source.type, "name", source.type)), inline=True)
        rich.add_field(name="Channel Creation Date", value=str(getattr(source, "created_at", "")), inline=True)
        return rich

    async def send_info(self, dest, source) -> None:
        try:
            rich = await self.build_info_embed(dest, source)
        except TRANSPORT_ERRORS as e:
            log_error(f"Info card failed source={source.id}", error=e)
            return
        await safe_send(dest, embed=rich)

    # ---------------- entry ----------------

    async def start(self, *, source, destination, webhook: bool, live: bool) -> None:
        """
        Activate both ends, then either register a live rule or copy the full
        history (info card, pins if enabled, messages) into the destination.
        """
        self.config.activate(destination.id)
        self.config.activate(source.id)
        self.persist()
        await self.update_status()

        if live:
            self.config.set_live(source.id, destination.id, hook=webhook)
            self.persist()
            log_repost(f"Live rule source={source.id} -> dest={destination.id} hook={bool(webhook)}")
            return

        log_repost(f"Repost started source={source.id} -> dest={destination.id} hook={bool(webhook)}")
        await self.send_info(destination, source)
        if self.halted(destination.id, source.id):
            return

        hook = await fetch_webhook(destination, bot_user=self.bot.user) if webhook else None
        target = RepostTarget(destination, hook, bot_user=self.bot.user)

        if self.config.flag("pins", guild_key(destination)):
            await safe_send(destination, "__**Pins**__")
            await self.replay_pins(source, target)
            if self.halted(destination.id, source.id):
                return

        await safe_send(destination, "__**Messages**__")
        await self.walk_history(source, target)
