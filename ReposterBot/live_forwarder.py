from __future__ import annotations

from typing import Any, Dict, Optional

import discord
from discord.ext import commands

from commands import CommandDispatcher, register_commands
from config_store import JsonConfigStore, guild_key
from confirmations import PendingConfirmations
from formatting import plural
from logging_utils import log_error, log_info, log_live, log_warn
from repost_engine import RepostEngine
from resolver import DestinationResolver
import settings_store as cfg
from webhook_sender import TRANSPORT_ERRORS, RepostTarget, fetch_webhook, is_own_webhook


class LiveForwarder:
    """Applies standing live rules (channel id first, then guild id) to every new message."""

    def __init__(self, *, bot, engine: RepostEngine):
        self.bot = bot
        self.engine = engine

    def _is_own(self, message) -> bool:
        me = self.bot.user
        if me is not None and getattr(message.author, "id", None) == me.id:
            return True
        return is_own_webhook(getattr(message, "webhook_id", None))

    async def _destination(self, channel_id: int):
        channel = self.bot.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(channel_id)
        except TRANSPORT_ERRORS as e:
            log_error(f"Live destination unavailable channel_id={channel_id}", error=e)
            return None

    async def handle_message(self, message) -> None:
        if self._is_own(message):
            return
        config = self.engine.config
        guild = getattr(message, "guild", None)
        guild_id = guild.id if guild is not None else None
        channel_key = str(message.channel.id)
        rule = config.live_rule_for(channel_key, guild_id)
        if not rule:
            return
        source_key = channel_key if channel_key in config.live else str(guild_id)

        try:
            dest_id = int(rule.get("channel") or 0)
        except (TypeError, ValueError):
            dest_id = 0
        if dest_id <= 0:
            log_warn(f"Live rule without destination source={source_key}")
            return
        destination = await self._destination(dest_id)
        if destination is None:
            return

        hook: Optional[discord.Webhook] = None
        if rule.get("hook"):
            hook = await fetch_webhook(destination, bot_user=self.bot.user)
        await self.engine.repost_message(message, RepostTarget(destination, hook, bot_user=self.bot.user), source_id=source_key)
        log_live(f"message={message.id} source={source_key} -> dest={dest_id} hook={hook is not None}")


def run_bot(*, settings: Dict[str, Any], token: str) -> Optional[int]:
    cfg.init(settings)

    intents = discord.Intents.default()
    intents.message_content = True

    store = JsonConfigStore(cfg.CONFIG_PATH)
    config = store.load()
    log_info(
        f"Loaded {cfg.CONFIG_PATH.name}: active={len(config.active)} live={len(config.live)} "
        f"replacement_tables={len(config.replacements)}"
    )

    def _prefix(_bot, message) -> str:
        return config.prefix_for(guild_key(message.channel))

    bot = commands.Bot(command_prefix=_prefix, intents=intents, help_command=None, case_insensitive=True)

    confirmations = PendingConfirmations()
    engine = RepostEngine(bot=bot, config=config, store=store)
    resolver = DestinationResolver(bot=bot, engine=engine, confirmations=confirmations)
    dispatcher = CommandDispatcher(
        bot=bot,
        config=config,
        engine=engine,
        resolver=resolver,
        confirmations=confirmations,
    )
    register_commands(bot=bot, dispatcher=dispatcher)
    forwarder = LiveForwarder(bot=bot, engine=engine)

    @bot.event
    async def on_ready() -> None:
        user = bot.user
        log_info(f"Logged in as {getattr(user, 'name', 'Unknown')} (id={getattr(user, 'id', '0')})")
        server_count = len(bot.guilds)
        log_info(f"Watching {plural(server_count, 'server')}; default prefix `{cfg.DEFAULT_PREFIX}`")
        try:
            await bot.change_presence(
                activity=discord.Activity(type=discord.ActivityType.watching, name=plural(server_count, "server"))
            )
        except TRANSPORT_ERRORS as e:
            log_warn(f"Presence update failed ({type(e).__name__}: {e})")

    @bot.event
    async def on_message(message) -> None:
        await forwarder.handle_message(message)
        await bot.process_commands(message)

    @bot.event
    async def on_raw_reaction_add(payload) -> None:
        me = bot.user
        if me is not None and payload.user_id == me.id:
            return
        await confirmations.resolve(
            message_id=payload.message_id,
            user_id=payload.user_id,
            emoji=str(payload.emoji),
        )

    @bot.event
    async def on_command_error(ctx, error) -> None:
        if isinstance(error, commands.CommandNotFound):
            return
        log_warn(f"Command failed: {ctx.message.content!r} ({type(error).__name__}: {error})")

    try:
        bot.run(token, log_handler=None)
        return 0
    except discord.LoginFailure as e:
        log_error("Login failed; check REPOSTER_BOT in ReposterBot/config/tokens.env", error=e)
        return 2
    except Exception as e:
        log_error("Bot crashed", error=e)
        return 2
