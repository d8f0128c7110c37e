from __future__ import annotations

import re
from typing import Dict, Mapping, Optional

import discord

import settings_store as cfg

TRUTHY_WORDS = frozenset(
    {
        "1", "true", "yes", "confirm", "agree", "enable", "on", "positive", "accept",
        "ye", "yep", "ya", "yah", "yeah", "sure", "ok", "okay",
    }
)
FALSY_WORDS = frozenset(
    {
        "0", "false", "no", "deny", "denied", "disagree", "disable", "off", "negative",
        "-1", "nah", "na", "nope", "stop", "end", "cease",
    }
)

# Non-default message types rendered as one system line: "<name><suffix>"
SYSTEM_MESSAGE_SUFFIXES: Dict[discord.MessageType, str] = {
    discord.MessageType.recipient_add: " added someone to the group.",
    discord.MessageType.recipient_remove: " removed someone from the group.",
    discord.MessageType.call: " started a call.",
    discord.MessageType.channel_name_change: " changed the name of this channel.",
    discord.MessageType.channel_icon_change: " changed the icon of this channel.",
    discord.MessageType.pins_add: " pinned a message to this channel.",
    discord.MessageType.new_member: " just joined.",
}

_PATTERN_CACHE: Dict[str, "re.Pattern[str]"] = {}


def _compile(find: str) -> "re.Pattern[str]":
    pattern = _PATTERN_CACHE.get(find)
    if pattern is None:
        try:
            pattern = re.compile(find)
        except re.error:
            # Not a valid expression: match it literally
            pattern = re.compile(re.escape(find))
        _PATTERN_CACHE[find] = pattern
    return pattern


def apply_replacements(text: str, table: Optional[Mapping[str, str]]) -> str:
    """
    Run every find -> replace rule over `text`, in table order.

    Each find is a regular expression applied globally; the replacement is
    inserted literally (no group references).
    """
    if not text or not table:
        return text or ""
    out = text
    for find, replace in table.items():
        if not find:
            continue
        out = _compile(find).sub(lambda _m, r=str(replace): r, out)
    return out


def parse_state(value: Optional[str]) -> Optional[bool]:
    """True/False for a recognised on/off word, None when the flag should flip."""
    if not value:
        return None
    token = value.strip().lower()
    if token in TRUTHY_WORDS:
        return True
    if token in FALSY_WORDS:
        return False
    return None


def capitalize_first(s: str) -> str:
    return s[:1].upper() + s[1:]


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def author_line(name: str) -> str:
    return f"**{name}**"


def system_suffix(message_type) -> Optional[str]:
    return SYSTEM_MESSAGE_SUFFIXES.get(message_type)


def system_line(name: str, suffix: str) -> str:
    return f"*{name}{suffix}*"


def is_inline_attachment(size: int) -> bool:
    return int(size or 0) <= int(cfg.ATTACHMENT_INLINE_MAX_BYTES)


def is_rich_embed(embed: discord.Embed) -> bool:
    return getattr(embed, "type", "rich") == "rich"


def replace_embed_text(embed: discord.Embed, table: Optional[Mapping[str, str]]) -> discord.Embed:
    """Copy of `embed` with author, description, footer and title run through the table."""
    out = embed.copy()
    if embed.author and embed.author.name:
        out.set_author(
            name=apply_replacements(embed.author.name, table),
            url=embed.author.url,
            icon_url=embed.author.icon_url,
        )
    if embed.description:
        out.description = apply_replacements(embed.description, table)
    if embed.footer and embed.footer.text:
        out.set_footer(
            text=apply_replacements(embed.footer.text, table),
            icon_url=embed.footer.icon_url,
        )
    if embed.title:
        out.title = apply_replacements(embed.title, table)
    return out


def channel_type_label(channel) -> str:
    kind = getattr(channel, "type", None)
    name = getattr(kind, "name", None) or str(kind or "unknown")
    return capitalize_first(name.replace("_", " "))
