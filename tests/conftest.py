"""Pytest configuration and shared fixtures."""

import datetime
import itertools
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

import logging_utils
import settings_store as cfg
import webhook_sender
from config_store import MemoryConfigStore
from repost_engine import RepostEngine

_IDS = itertools.count(900_000)

BOT_USER_ID = 999


def make_user(user_id, name):
    return SimpleNamespace(
        id=user_id,
        name=name,
        display_avatar=SimpleNamespace(
            url=f"https://cdn.example/avatars/{user_id}.png",
            read=AsyncMock(return_value=b"avatar-bytes"),
        ),
    )


def make_guild(guild_id, name="Guild", channels=()):
    return SimpleNamespace(
        id=guild_id,
        name=name,
        icon=None,
        me=make_user(BOT_USER_ID, "Reposter"),
        channels=list(channels),
    )


class FakeSent:
    """What `send` hands back: a posted message we can react to, edit or delete."""

    def __init__(self, content=None, **kwargs):
        self.id = next(_IDS)
        self.content = content
        self.kwargs = kwargs
        self.add_reaction = AsyncMock()
        self.delete = AsyncMock()
        self.edit = AsyncMock()


class FakeChannel:
    """
    Enough of a discord.py messageable channel for the engine: records every
    send, serves `history` out of `messages` with an after-id cursor.
    """

    def __init__(self, channel_id, *, name="general", kind=discord.ChannelType.text, guild=None, messages=()):
        self.id = channel_id
        self.name = name
        self.type = kind
        self.guild = guild
        self.topic = None
        self.recipient = None
        self.category = None
        self.nsfw = False
        self.created_at = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)
        self.messages = list(messages)
        self.sent = []
        self.history_calls = []
        self.send = AsyncMock(side_effect=self._record)
        self.pinned = []
        self.pins_error = None
        self.pin_calls = []
        self.webhooks = AsyncMock(return_value=[])
        self.create_webhook = AsyncMock()
        self.can_send = True

    async def _record(self, content=None, **kwargs):
        sent = FakeSent(content, **kwargs)
        self.sent.append(sent)
        return sent

    def permissions_for(self, _member):
        return SimpleNamespace(send_messages=self.can_send)

    def history(self, *, limit, after=None, oldest_first=None):
        after_id = after.id if after is not None else 0
        self.history_calls.append(after_id)
        batch = [m for m in self.messages if m.id > after_id][:limit]

        async def _iter():
            for m in batch:
                yield m

        return _iter()

    def pins(self, *, limit=50, oldest_first=False):
        """Newest first unless asked otherwise, like the API; `pinned` is stored oldest first."""
        self.pin_calls.append((limit, oldest_first))
        ordered = list(self.pinned) if oldest_first else list(reversed(self.pinned))
        if limit is not None:
            ordered = ordered[:limit]
        error = self.pins_error

        async def _iter():
            if error is not None:
                raise error
            for m in ordered:
                yield m

        return _iter()

    @property
    def contents(self):
        return [s.content for s in self.sent]


def make_message(message_id, author, content="", *, channel=None, kind=discord.MessageType.default, **extra):
    fields = dict(
        id=message_id,
        author=author,
        content=content,
        channel=channel,
        guild=getattr(channel, "guild", None),
        type=kind,
        attachments=[],
        embeds=[],
        reactions=[],
        webhook_id=None,
        channel_mentions=[],
    )
    fields.update(extra)
    return SimpleNamespace(**fields)


def make_bot(channels=()):
    bot = MagicMock()
    bot.user = make_user(BOT_USER_ID, "Reposter")
    bot.change_presence = AsyncMock()
    bot.get_emoji.return_value = None
    by_id = {c.id: c for c in channels}
    bot.get_channel.side_effect = lambda cid: by_id.get(cid)
    bot.get_guild.return_value = None
    bot.fetch_channel = AsyncMock(side_effect=discord.NotFound(MagicMock(status=404), "Unknown Channel"))
    bot.fetch_guild = AsyncMock(side_effect=discord.NotFound(MagicMock(status=404), "Unknown Guild"))
    bot.get_all_channels.return_value = list(channels)
    bot.private_channels = []
    bot.guilds = []
    return bot


@pytest.fixture(autouse=True)
def isolated_runtime(tmp_path):
    """Default knobs, logs under tmp_path, empty webhook cache."""
    cfg.init({})
    logging_utils.configure_log_paths(logs_dir=tmp_path / "logs", config_dir=tmp_path / "config")
    webhook_sender._CACHE.clear()
    yield
    webhook_sender._CACHE.clear()


@pytest.fixture
def store():
    return MemoryConfigStore()


@pytest.fixture
def bot():
    return make_bot()


@pytest.fixture
def engine(bot, store):
    return RepostEngine(bot=bot, config=store.load(), store=store)
