from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import aiohttp
import discord

from logging_utils import log_error, log_info, log_warn
import settings_store as cfg

# Anything the platform client can throw at us for a single network call
TRANSPORT_ERRORS = (discord.DiscordException, aiohttp.ClientError, asyncio.TimeoutError)

# destination channel id -> bot-owned webhook
_CACHE: Dict[int, discord.Webhook] = {}


async def safe_send(channel, *args: Any, **kwargs: Any) -> Optional[discord.Message]:
    """Fire-and-forget send: failures are logged, never raised."""
    try:
        return await channel.send(*args, **kwargs)
    except TRANSPORT_ERRORS as e:
        log_error(f"Send failed channel_id={getattr(channel, 'id', '?')}", error=e)
        return None


def invalidate_webhook(channel_id: int) -> None:
    _CACHE.pop(int(channel_id), None)


def is_own_webhook(webhook_id: Optional[int]) -> bool:
    if not webhook_id:
        return False
    return any(int(wh.id) == int(webhook_id) for wh in _CACHE.values())


async def fetch_webhook(channel, *, bot_user) -> Optional[discord.Webhook]:
    """
    Return the webhook this bot owns in `channel`, creating one if missing.
    Requires "Manage Webhooks". Posts "Can't read webhooks!" when listing fails.
    """
    cid = int(channel.id)
    cached = _CACHE.get(cid)
    if cached is not None:
        return cached

    try:
        hooks = await channel.webhooks()
    except TRANSPORT_ERRORS as e:
        log_error(f"Webhook listing failed channel_id={cid}", error=e)
        await safe_send(channel, "**Can't read webhooks!**")
        return None

    bot_id = int(getattr(bot_user, "id", 0) or 0)
    for wh in hooks:
        owner = getattr(wh, "user", None)
        if owner is not None and int(owner.id) == bot_id:
            _CACHE[cid] = wh
            return wh

    avatar: Optional[bytes] = None
    try:
        avatar = await bot_user.display_avatar.read()
    except TRANSPORT_ERRORS as e:
        log_warn(f"[WEBHOOK] bot avatar unavailable ({type(e).__name__}: {e})")

    try:
        wh = await channel.create_webhook(name=cfg.WEBHOOK_NAME, avatar=avatar, reason="Reposting")
    except TRANSPORT_ERRORS as e:
        log_error(f"[WEBHOOK] create_webhook failed channel_id={cid}", error=e)
        return None
    _CACHE[cid] = wh
    log_info(f"[WEBHOOK] created for channel_id={cid}")
    return wh


class RepostTarget:
    """
    Where reposted pieces go: the destination channel itself, or the bot-owned
    webhook in that channel. Sends never raise.

    In webhook mode the target remembers which author the webhook currently
    shows (`identity_author_id`), and recreates the webhook once if it was
    deleted mid-walk.
    """

    def __init__(self, channel, webhook: Optional[discord.Webhook] = None, *, bot_user=None):
        self.channel = channel
        self.webhook = webhook
        self.bot_user = bot_user
        self.identity_author_id: Optional[int] = None
        self._identity: Optional[Dict[str, Any]] = None
        self._last_send_ts = 0.0

    @property
    def id(self) -> int:
        return int(self.channel.id)

    async def _throttle(self) -> None:
        min_interval = float(cfg.SEND_MIN_INTERVAL_SECONDS or 0.0)
        if min_interval <= 0:
            return
        loop = asyncio.get_running_loop()
        wait = min_interval - (loop.time() - self._last_send_ts)
        if wait > 0:
            await asyncio.sleep(wait)
        self._last_send_ts = loop.time()

    async def _recreate_webhook(self) -> bool:
        """Swap in a fresh bot-owned webhook wearing the last identity; False if none could be had."""
        invalidate_webhook(self.id)
        if self.bot_user is None:
            return False
        fresh = await fetch_webhook(self.channel, bot_user=self.bot_user)
        if fresh is None:
            return False
        self.webhook = fresh
        if self._identity is not None:
            try:
                await fresh.edit(**self._identity)
            except TRANSPORT_ERRORS as e:
                log_error(f"[WEBHOOK] edit failed channel_id={self.id}", error=e)
                self.identity_author_id = None
        return True

    async def send(self, content: Optional[str] = None, **kwargs: Any) -> Optional[discord.Message]:
        await self._throttle()
        kwargs.setdefault("allowed_mentions", discord.AllowedMentions.none())
        if self.webhook is None:
            return await safe_send(self.channel, content, **kwargs)
        try:
            return await self.webhook.send(content=content or discord.utils.MISSING, wait=True, **kwargs)
        except discord.NotFound as e:
            # Unknown Webhook: deleted from the channel while we were using it
            log_warn(f"[WEBHOOK] webhook gone channel_id={self.id}, recreating ({type(e).__name__}: {e})")
        except TRANSPORT_ERRORS as e:
            log_error(f"[WEBHOOK] send failed channel_id={self.id}", error=e)
            return None

        if not await self._recreate_webhook():
            log_error(f"[WEBHOOK] could not recreate webhook channel_id={self.id}")
            return None
        file = kwargs.get("file")
        if file is not None and hasattr(file, "reset"):
            file.reset()
        try:
            return await self.webhook.send(content=content or discord.utils.MISSING, wait=True, **kwargs)
        except TRANSPORT_ERRORS as e:
            log_error(f"[WEBHOOK] retry failed channel_id={self.id}", error=e)
            return None

    async def set_identity(self, name: str, avatar: Optional[bytes], *, author_id: Optional[int] = None) -> None:
        """Rename the shared webhook to the author about to be reposted."""
        if self.webhook is None:
            return
        kwargs: Dict[str, Any] = {"name": (name or cfg.WEBHOOK_NAME)[:80]}
        if avatar is not None:
            kwargs["avatar"] = avatar
        self._identity = kwargs
        try:
            await self.webhook.edit(**kwargs)
        except TRANSPORT_ERRORS as e:
            log_error(f"[WEBHOOK] edit failed channel_id={self.id}", error=e)
            self.identity_author_id = None
            return
        self.identity_author_id = author_id
