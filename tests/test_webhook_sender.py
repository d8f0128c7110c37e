"""Tests for guarded sends and bot-owned webhook lookup."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

import webhook_sender
from conftest import BOT_USER_ID, FakeChannel, make_user
from webhook_sender import RepostTarget, fetch_webhook, safe_send

BOT = make_user(BOT_USER_ID, "Reposter")


def make_webhook(hook_id, owner_id):
    wh = MagicMock()
    wh.id = hook_id
    wh.user = SimpleNamespace(id=owner_id)
    wh.send = AsyncMock()
    wh.edit = AsyncMock()
    return wh


@pytest.mark.asyncio
async def test_safe_send_swallows_transport_errors():
    channel = FakeChannel(1)
    channel.send.side_effect = discord.Forbidden(MagicMock(status=403), "Missing Permissions")
    assert await safe_send(channel, "hi") is None


@pytest.mark.asyncio
async def test_existing_bot_webhook_reused_and_cached():
    channel = FakeChannel(1)
    foreign = make_webhook(1, owner_id=5)
    ours = make_webhook(2, owner_id=BOT_USER_ID)
    channel.webhooks.return_value = [foreign, ours]

    assert await fetch_webhook(channel, bot_user=BOT) is ours
    assert await fetch_webhook(channel, bot_user=BOT) is ours
    channel.webhooks.assert_awaited_once()
    channel.create_webhook.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_webhook_created():
    channel = FakeChannel(1)
    created = make_webhook(3, owner_id=BOT_USER_ID)
    channel.create_webhook.return_value = created

    assert await fetch_webhook(channel, bot_user=BOT) is created
    channel.create_webhook.assert_awaited_once_with(name="Reposter", avatar=b"avatar-bytes", reason="Reposting")


@pytest.mark.asyncio
async def test_unreadable_webhooks_reported():
    channel = FakeChannel(1)
    channel.webhooks.side_effect = discord.Forbidden(MagicMock(status=403), "Missing Permissions")

    assert await fetch_webhook(channel, bot_user=BOT) is None
    assert channel.contents == ["**Can't read webhooks!**"]


@pytest.mark.asyncio
async def test_deleted_webhook_dropped_from_cache():
    channel = FakeChannel(1)
    gone = make_webhook(4, owner_id=BOT_USER_ID)
    gone.send.side_effect = discord.NotFound(MagicMock(status=404), "Unknown Webhook")
    channel.webhooks.return_value = [gone]
    hook = await fetch_webhook(channel, bot_user=BOT)

    assert await RepostTarget(channel, hook).send("hello") is None
    assert not webhook_sender.is_own_webhook(4)


@pytest.mark.asyncio
async def test_mentions_suppressed():
    channel = FakeChannel(1)
    await RepostTarget(channel).send("@everyone hi")
    mentions = channel.sent[0].kwargs["allowed_mentions"]
    assert mentions.everyone is False
    assert mentions.users is False


@pytest.mark.asyncio
async def test_identity_tracked_only_after_successful_edit():
    channel = FakeChannel(1)
    hook = make_webhook(5, owner_id=BOT_USER_ID)
    target = RepostTarget(channel, hook, bot_user=BOT)

    await target.set_identity("alice", None, author_id=11)
    assert target.identity_author_id == 11

    hook.edit.side_effect = discord.HTTPException(MagicMock(status=500), "boom")
    await target.set_identity("bob", None, author_id=12)
    assert target.identity_author_id is None


@pytest.mark.asyncio
async def test_gone_webhook_recreated_and_send_retried():
    channel = FakeChannel(1)
    gone = make_webhook(6, owner_id=BOT_USER_ID)
    gone.send.side_effect = discord.NotFound(MagicMock(status=404), "Unknown Webhook")
    fresh = make_webhook(7, owner_id=BOT_USER_ID)
    channel.create_webhook.return_value = fresh
    target = RepostTarget(channel, gone, bot_user=BOT)
    await target.set_identity("alice", b"png", author_id=11)

    await target.send("hello")

    assert target.webhook is fresh
    fresh.edit.assert_awaited_once_with(name="alice", avatar=b"png")
    assert fresh.send.await_args.kwargs["content"] == "hello"
    assert webhook_sender.is_own_webhook(7)
    assert not webhook_sender.is_own_webhook(6)
