from __future__ import annotations

import datetime
import functools
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import discord

from config_store import FLAG_KEYS, RepostConfig, guild_key
from confirmations import DELETE_EMOJI, PendingConfirmations
from formatting import capitalize_first, parse_state, plural
from logging_utils import log_command, log_error
from repost_engine import RepostEngine
from resolver import DestinationResolver, RepostRequest
from webhook_sender import TRANSPORT_ERRORS, safe_send

# `repost` variants; "hook" and "live" in the invoked word switch on those modes
REPOST_ALIASES = [
    "reposthook",
    "repostwebhook",
    "repostlive",
    "repostlivehook",
    "repostlivewebhook",
    "reposthooklive",
    "repostwebhooklive",
]

STOP_WORDS = frozenset({"stop", "halt", "cease", "terminate", "suspend", "cancel", "die", "end"})
HELP_WORDS = frozenset({"help", "commands"})


@dataclass(frozen=True)
class ParsedCommand:
    action: str
    args: Tuple[str, ...] = ()
    request: Optional[RepostRequest] = None


def parse_command(invoked_with: str, args: Sequence[str]) -> ParsedCommand:
    """
    Map `<prefix><invoked_with> <args...>` to an action.

    Actions: help, replacements, replace, prefix, flag, stop, repost.
    """
    word = (invoked_with or "repost").lower()
    args = tuple(a for a in args if a)
    if not args:
        return ParsedCommand("help")
    sub = args[0].lower()
    if sub in HELP_WORDS:
        return ParsedCommand("help")
    if sub == "replacements":
        return ParsedCommand("replacements")
    if sub == "replace":
        return ParsedCommand("replace", args[1:3])
    if sub == "prefix":
        return ParsedCommand("prefix", args[1:2])
    if sub in FLAG_KEYS:
        return ParsedCommand("flag", (sub,) + args[1:2])
    if sub in STOP_WORDS:
        return ParsedCommand("stop")

    if len(args) >= 2:
        target = args[1]
        direction_from = sub == "from"
    else:
        target = args[0]
        direction_from = False
    request = RepostRequest(
        target=target,
        webhook="hook" in word,
        direction_from=direction_from,
        live="live" in word,
    )
    return ParsedCommand("repost", (target,), request)


class CommandDispatcher:
    def __init__(
        self,
        *,
        bot,
        config: RepostConfig,
        engine: RepostEngine,
        resolver: DestinationResolver,
        confirmations: PendingConfirmations,
    ):
        self.bot = bot
        self.config = config
        self.engine = engine
        self.resolver = resolver
        self.confirmations = confirmations

    async def dispatch(self, message, invoked_with: str, args: Sequence[str]) -> None:
        parsed = parse_command(invoked_with, args)
        channel = message.channel
        log_command(
            f"{invoked_with} {' '.join(args)}".strip(),
            event="command",
            action=parsed.action,
            channel_id=str(channel.id),
            author_id=str(message.author.id),
        )
        if parsed.action == "help":
            await self.send_commands(channel)
        elif parsed.action == "replacements":
            await self.send_replacements(channel, message.author.id)
        elif parsed.action == "replace":
            find = parsed.args[0] if len(parsed.args) > 0 else None
            replace = parsed.args[1] if len(parsed.args) > 1 else None
            await self.set_replacement(channel, find, replace)
        elif parsed.action == "prefix":
            await self.set_prefix(channel, parsed.args[0] if parsed.args else None)
        elif parsed.action == "flag":
            await self.set_flag(channel, parsed.args[0], parsed.args[1] if len(parsed.args) > 1 else None)
        elif parsed.action == "stop":
            await self.stop(channel)
        else:
            await self.resolver.repost(message, parsed.request)

    # ---------------- settings ----------------

    async def set_flag(self, channel, name: str, value: Optional[str]) -> None:
        key = guild_key(channel)
        enabled = self.config.flag(name, key)
        prop = capitalize_first(name)
        state = parse_state(value)
        if state is True:
            self.config.set_flag(name, key, True)
            reply = f"✅ **{prop} on!**"
        elif state is False:
            self.config.set_flag(name, key, False)
            reply = f"❌ **{prop} off!**"
        else:
            self.config.set_flag(name, key, not enabled)
            reply = f"{'❌' if enabled else '✅'} **{prop} toggled {'off' if enabled else 'on'}!**"
        self.engine.persist()
        await safe_send(channel, reply)

    async def set_prefix(self, channel, prefix: Optional[str]) -> None:
        key = guild_key(channel)
        previous = self.config.prefix_for(key)
        if not prefix:
            await safe_send(channel, f"**Missing `prefix` argument! `{previous}repost prefix <PREFIX>`**")
            return
        self.config.set_prefix(key, prefix)
        self.engine.persist()
        await safe_send(channel, f"**Changed prefix from `{previous}` to `{prefix}`!**")

    async def set_replacement(self, channel, find: Optional[str], replace: Optional[str]) -> None:
        key = guild_key(channel)
        prefix = self.config.prefix_for(key)
        if find and replace:
            self.config.set_replacement(key, find, replace)
            self.engine.persist()
            await safe_send(channel, f"**Replacing `{find}` with `{replace}`!**")
        elif find:
            existing = self.config.replacements_for(key).get(find)
            if existing:
                await safe_send(channel, f"**`{find}` is replaced with `{existing}`**")
            else:
                await safe_send(channel, f"**Missing `replace` argument! `{prefix}repost replace {find} <REPLACE>`**")
        else:
            await safe_send(
                channel,
                f"**Missing `find` and `replace` arguments! `{prefix}repost replace <FIND> <REPLACE>`**",
            )

    async def send_replacements(self, channel, requester_id: int) -> None:
        """List replacement rules; a ❌ from the requester on a rule deletes it."""
        key = guild_key(channel)
        table = self.config.replacements_for(key)
        if not table:
            await safe_send(channel, "**This channel has no replacements!**")
            return
        count_message = await safe_send(channel, f"**This channel has {plural(len(table), 'replacement')}!**")
        for find, replace in list(table.items()):
            card = await safe_send(channel, f"`{find}` is replaced with `{replace}`")
            if card is None:
                continue
            try:
                await card.add_reaction(DELETE_EMOJI)
            except TRANSPORT_ERRORS as e:
                log_error(f"Could not react to replacement card channel_id={channel.id}", error=e)
            self.confirmations.register(
                message_id=card.id,
                user_id=requester_id,
                emoji=DELETE_EMOJI,
                callback=functools.partial(self._delete_replacement, key, find, card, count_message),
            )

    async def _delete_replacement(self, key: str, find: str, card, count_message) -> None:
        if self.config.remove_replacement(key, find):
            self.engine.persist()
            log_command(f"replacement removed key={key} find={find!r}", event="replacement_removed")
        try:
            await card.delete()
        except TRANSPORT_ERRORS as e:
            log_error("Could not delete replacement card", error=e)
        if count_message is not None:
            remaining = len(self.config.replacements_for(key))
            try:
                await count_message.edit(content=f"**This channel has {plural(remaining, 'replacement')}!**")
            except TRANSPORT_ERRORS as e:
                log_error("Could not update replacement count", error=e)

    async def stop(self, channel) -> None:
        removed = self.config.stop(channel.id)
        self.engine.persist()
        await self.engine.update_status()
        log_command(f"stop channel={channel.id} live_rules_removed={len(removed)}", event="stop")
        await safe_send(channel, "**Reposting Terminated!**")

    # ---------------- help ----------------

    def build_commands_embed(self, channel) -> discord.Embed:
        prefix = self.config.prefix_for(guild_key(channel))
        me = self.bot.user
        rich = discord.Embed(
            title="Reposter Commands",
            description="Copies messages from one channel to another.",
            timestamp=datetime.datetime.now(datetime.timezone.utc),
        )
        if me is not None:
            rich.set_author(name=me.name, icon_url=me.display_avatar.url)
            rich.set_thumbnail(url=me.display_avatar.url)
            rich.set_footer(text=str(me.id), icon_url=me.display_avatar.url)
        p = prefix

        def usage(*lines: str) -> str:
            return "```" + "\n".join(lines) + "```"

        rich.add_field(name="Repost To", value="*Reposts to a channel.*" + usage(f"{p}repost <CHANNEL>", f"{p}repost to <CHANNEL>"), inline=False)
        rich.add_field(name="Repost From", value="*Reposts from a channel.*" + usage(f"{p}repost from <CHANNEL>"), inline=False)
        rich.add_field(
            name="Repost Webhook",
            value="*Reposts through a webhook.*" + usage(f"{p}reposthook", f"{p}repostwebhook") + "Instead of:" + usage(f"{p}repost"),
            inline=False,
        )
        rich.add_field(
            name="Repost Live",
            value="*Reposts messages as they come.*" + usage(f"{p}repostlive", f"{p}repostlivehook") + "Instead of:" + usage(f"{p}repost"),
            inline=False,
        )
        rich.add_field(
            name="Repost Stop",
            value="*Stops reposting.*" + usage(*(f"{p}repost {w}" for w in ("stop", "halt", "cease", "terminate", "suspend", "cancel", "die", "end"))),
            inline=False,
        )
        rich.add_field(name="Repost Commands", value="*Posts the command list.*" + usage(f"{p}repost help", f"{p}repost commands"), inline=False)
        rich.add_field(name="Repost Replace", value="*Replaces text when reposting.*" + usage(f"{p}repost replace <FIND> <REPLACE>"), inline=False)
        rich.add_field(name="Repost Replacements", value="*Posts the replacement list.*" + usage(f"{p}repost replacements"), inline=False)
        rich.add_field(name="Repost Prefix", value="*Changes the bot prefix.*" + usage(f"{p}repost prefix <PREFIX>"), inline=False)
        rich.add_field(name="Repost Tags", value="*Toggles user tags when reposting.*" + usage(f"{p}repost tags", f"{p}repost tags <STATE>"), inline=False)
        rich.add_field(name="Repost Nicknames", value="*Toggles nicknames when reposting.*" + usage(f"{p}repost nicknames", f"{p}repost nicknames <STATE>"), inline=False)
        rich.add_field(name="Repost Pins", value="*Toggles pins when reposting.*" + usage(f"{p}repost pins", f"{p}repost pins <STATE>"), inline=False)
        rich.add_field(name="Channel ID", value=usage(str(channel.id)), inline=False)
        return rich

    async def send_commands(self, channel) -> None:
        await safe_send(channel, embed=self.build_commands_embed(channel))


def register_commands(*, bot, dispatcher: CommandDispatcher) -> None:
    """
    Register the `repost` prefix command (and its hook/live variants) on the
    provided discord.py commands.Bot instance. Sub-commands are routed by the
    dispatcher so they stay testable without a gateway.
    """

    @bot.command(name="repost", aliases=REPOST_ALIASES)
    async def repost_cmd(ctx, *args: str) -> None:
        await dispatcher.dispatch(ctx.message, ctx.invoked_with or "repost", list(args))
