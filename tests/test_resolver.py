"""Tests for destination resolution and the guard clauses in front of a repost."""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from config_store import RepostConfig
from confirmations import CONFIRM_EMOJI, PendingConfirmations
from conftest import FakeChannel, make_bot, make_guild, make_message, make_user
from resolver import DestinationResolver, RepostRequest

REQUESTER = make_user(7, "requester")


def build(channels=()):
    bot = make_bot(channels)
    engine = MagicMock()
    engine.config = RepostConfig()
    engine.start = AsyncMock()
    engine.update_status = AsyncMock()
    confirmations = PendingConfirmations(ttl_seconds=60)
    resolver = DestinationResolver(bot=bot, engine=engine, confirmations=confirmations)
    return resolver, engine, confirmations


def command_in(channel, target):
    return make_message(1, REQUESTER, f"/repost {target}", channel=channel)


class TestRejection:
    def test_same_channel(self):
        resolver, _, _ = build()
        here = FakeChannel(1, guild=make_guild(100))
        reason = resolver.rejection(here, command_in(here, "1"), RepostRequest("1"))
        assert reason == "**Can't repost to the same channel!**"

    def test_unsupported_kind(self):
        resolver, _, _ = build()
        here = FakeChannel(1, guild=make_guild(100))
        voice = FakeChannel(2, kind=discord.ChannelType.voice, guild=make_guild(100))
        reason = resolver.rejection(voice, command_in(here, "2"), RepostRequest("2", direction_from=True))
        assert reason == "**Can't repost from voice channels!**"

    def test_webhook_into_dm(self):
        resolver, _, _ = build()
        here = FakeChannel(1, guild=make_guild(100))
        dm = FakeChannel(2, kind=discord.ChannelType.private)
        reason = resolver.rejection(dm, command_in(here, "2"), RepostRequest("2", webhook=True))
        assert reason == "**Can't create webhooks on DM channels!**"

    def test_missing_send_permission(self):
        resolver, _, _ = build()
        here = FakeChannel(1, guild=make_guild(100))
        there = FakeChannel(2, name="locked", guild=make_guild(100))
        there.can_send = False
        reason = resolver.rejection(there, command_in(here, "2"), RepostRequest("2"))
        assert reason == "**Can't repost to `locked` without permission!**"

    def test_allowed(self):
        resolver, _, _ = build()
        here = FakeChannel(1, guild=make_guild(100))
        there = FakeChannel(2, guild=make_guild(100))
        assert resolver.rejection(there, command_in(here, "2"), RepostRequest("2")) is None


class TestRepost:
    @pytest.mark.asyncio
    async def test_channel_id_to(self):
        here = FakeChannel(1, guild=make_guild(100))
        there = FakeChannel(2, name="archive", guild=make_guild(100))
        resolver, engine, _ = build([here, there])

        await resolver.repost(command_in(here, "2"), RepostRequest("2"))

        assert here.contents == ["**Reposting to `archive`!**"]
        engine.start.assert_awaited_once_with(source=here, destination=there, webhook=False, live=False)

    @pytest.mark.asyncio
    async def test_channel_id_from_live(self):
        here = FakeChannel(1, guild=make_guild(100))
        there = FakeChannel(2, name="news", guild=make_guild(100))
        resolver, engine, _ = build([here, there])

        await resolver.repost(command_in(here, "from 2"), RepostRequest("2", direction_from=True, live=True))

        assert here.contents == ["**Reposting live from `news`!**"]
        engine.start.assert_awaited_once_with(source=there, destination=here, webhook=False, live=True)

    @pytest.mark.asyncio
    async def test_rejected_channel_not_started(self):
        here = FakeChannel(1, guild=make_guild(100))
        resolver, engine, _ = build([here])

        await resolver.repost(command_in(here, "1"), RepostRequest("1"))

        assert here.contents == ["**Can't repost to the same channel!**"]
        engine.start.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_channel_mention(self):
        here = FakeChannel(1, guild=make_guild(100))
        there = FakeChannel(2, name="mentioned", guild=make_guild(100))
        resolver, engine, _ = build([here])
        message = command_in(here, "<#2>")
        message.channel_mentions = [there]

        await resolver.repost(message, RepostRequest("<#2>"))

        engine.start.assert_awaited_once_with(source=here, destination=there, webhook=False, live=False)

    @pytest.mark.asyncio
    async def test_single_name_match(self):
        here = FakeChannel(1, name="here", guild=make_guild(100))
        there = FakeChannel(2, name="Archive", guild=make_guild(100))
        resolver, engine, _ = build([here, there])

        await resolver.repost(command_in(here, "archive"), RepostRequest("archive"))

        engine.start.assert_awaited_once_with(source=here, destination=there, webhook=False, live=False)

    @pytest.mark.asyncio
    async def test_no_match(self):
        here = FakeChannel(1, name="here", guild=make_guild(100))
        resolver, engine, _ = build([here])

        await resolver.repost(command_in(here, "nowhere"), RepostRequest("nowhere"))

        assert here.contents == ["**Couldn't repost to `nowhere`!**"]
        engine.start.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_many_matches_offer_cards(self):
        guild = make_guild(100)
        here = FakeChannel(1, name="here", guild=guild)
        first = FakeChannel(2, name="general", guild=guild)
        second = FakeChannel(3, name="general", guild=make_guild(200))
        resolver, engine, confirmations = build([here, first, second])

        await resolver.repost(command_in(here, "general"), RepostRequest("general"))

        assert here.contents[0] == "**Found 2 channels!**"
        cards = here.sent[1:]
        assert len(cards) == 2
        for card in cards:
            card.add_reaction.assert_awaited_once_with(CONFIRM_EMOJI)
        assert len(confirmations) == 2
        engine.start.assert_not_awaited()

        resolved = await confirmations.resolve(message_id=cards[1].id, user_id=REQUESTER.id, emoji=CONFIRM_EMOJI)

        assert resolved is True
        engine.start.assert_awaited_once_with(source=here, destination=second, webhook=False, live=False)

    @pytest.mark.asyncio
    async def test_guild_reposts_every_channel(self):
        here = FakeChannel(1, name="here", guild=make_guild(100))
        a = FakeChannel(11, name="a")
        b = FakeChannel(12, name="b")
        guild = make_guild(500, name="Other", channels=[a, b])
        a.guild = b.guild = guild
        resolver, engine, _ = build([here])
        resolver.bot.get_guild.side_effect = lambda gid: guild if gid == 500 else None

        await resolver.repost(command_in(here, "from 500"), RepostRequest("500", direction_from=True))

        assert here.contents[0] == "**Reposting from `Other`!**"
        started = [c.kwargs["source"] for c in engine.start.await_args_list]
        assert started == [a, b]
        assert engine.config.is_active(here.id)
