"""Tests for live forwarding of newly observed messages."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

import webhook_sender
from conftest import BOT_USER_ID, FakeChannel, make_bot, make_guild, make_message, make_user
from live_forwarder import LiveForwarder

ALICE = make_user(1, "alice")


def setup(engine, bot, *, hook=False, by_guild=False):
    guild = make_guild(100)
    source = FakeChannel(10, name="source", guild=guild)
    dest = FakeChannel(20, name="dest")
    bot.get_channel.side_effect = lambda cid: {20: dest}.get(cid)
    rule_key = guild.id if by_guild else source.id
    engine.config.activate(rule_key)
    engine.config.activate(dest.id)
    engine.config.set_live(rule_key, dest.id, hook=hook)
    return source, dest, LiveForwarder(bot=bot, engine=engine)


@pytest.mark.asyncio
async def test_channel_rule_forwards_message(engine, bot):
    source, dest, forwarder = setup(engine, bot)

    await forwarder.handle_message(make_message(1, ALICE, "breaking", channel=source))

    assert dest.contents == ["**alice**", "breaking"]


@pytest.mark.asyncio
async def test_guild_rule_forwards_message(engine, bot):
    source, dest, forwarder = setup(engine, bot, by_guild=True)

    await forwarder.handle_message(make_message(1, ALICE, "from anywhere", channel=source))

    assert dest.contents == ["**alice**", "from anywhere"]


@pytest.mark.asyncio
async def test_no_rule_no_forward(engine, bot):
    source, dest, forwarder = setup(engine, bot)
    other = FakeChannel(11, name="other", guild=make_guild(101))

    await forwarder.handle_message(make_message(1, ALICE, "quiet", channel=other))

    assert dest.sent == []


@pytest.mark.asyncio
async def test_stopped_rule_source_not_forwarded(engine, bot):
    source, dest, forwarder = setup(engine, bot)
    engine.config.active.pop(str(source.id))

    await forwarder.handle_message(make_message(1, ALICE, "ignored", channel=source))

    assert dest.sent == []


@pytest.mark.asyncio
async def test_own_messages_skipped(engine, bot):
    source, dest, forwarder = setup(engine, bot)

    await forwarder.handle_message(make_message(1, make_user(BOT_USER_ID, "Reposter"), "echo", channel=source))

    assert dest.sent == []


@pytest.mark.asyncio
async def test_hook_rule_uses_bot_webhook(engine, bot):
    source, dest, forwarder = setup(engine, bot, hook=True)
    webhook = MagicMock()
    webhook.id = 4242
    webhook.user = SimpleNamespace(id=BOT_USER_ID)
    webhook.send = AsyncMock()
    webhook.edit = AsyncMock()
    dest.webhooks.return_value = [webhook]

    await forwarder.handle_message(make_message(1, ALICE, "via hook", channel=source))

    webhook.edit.assert_awaited_once()
    assert webhook.send.await_args.kwargs["content"] == "via hook"
    assert dest.sent == []
    assert webhook_sender.is_own_webhook(4242)

    await forwarder.handle_message(make_message(2, ALICE, "echo", channel=source, webhook_id=4242))
    assert webhook.send.await_count == 1


@pytest.mark.asyncio
async def test_missing_destination_is_logged(engine):
    bot = make_bot()
    source, dest, forwarder = setup(engine, bot)
    bot.get_channel.side_effect = lambda cid: None

    await forwarder.handle_message(make_message(1, ALICE, "lost", channel=source))

    bot.fetch_channel.assert_awaited_once_with(20)
    assert dest.sent == []
