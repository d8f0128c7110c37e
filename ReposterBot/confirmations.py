from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from logging_utils import log_debug, log_error
import settings_store as cfg

CONFIRM_EMOJI = "✅"
DELETE_EMOJI = "❌"


@dataclass
class PendingConfirmation:
    message_id: int
    user_id: int
    emoji: str
    expires_at: float
    callback: Callable[[], Awaitable[None]]


class PendingConfirmations:
    """
    Single-shot reaction waits keyed by message id.

    The raw reaction handler calls `resolve`; a matching reaction (right user,
    right emoji, not expired) fires the callback once and removes the entry.
    """

    def __init__(self, *, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._pending: Dict[int, PendingConfirmation] = {}

    @property
    def ttl_seconds(self) -> float:
        if self._ttl is not None:
            return float(self._ttl)
        return float(cfg.CONFIRMATION_TTL_SECONDS)

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, message_id) -> bool:
        return int(message_id) in self._pending

    def register(
        self,
        *,
        message_id: int,
        user_id: int,
        emoji: str,
        callback: Callable[[], Awaitable[None]],
    ) -> PendingConfirmation:
        now = self._clock()
        self._purge_expired(now)
        entry = PendingConfirmation(
            message_id=int(message_id),
            user_id=int(user_id),
            emoji=str(emoji),
            expires_at=now + self.ttl_seconds,
            callback=callback,
        )
        self._pending[entry.message_id] = entry
        return entry

    def _purge_expired(self, now: float) -> None:
        expired = [mid for mid, entry in self._pending.items() if entry.expires_at <= now]
        for mid in expired:
            self._pending.pop(mid, None)
        if expired:
            log_debug(f"Dropped {len(expired)} expired confirmation(s)")

    async def resolve(self, *, message_id: int, user_id: int, emoji: str) -> bool:
        self._purge_expired(self._clock())
        entry = self._pending.get(int(message_id))
        if entry is None:
            return False
        if int(user_id) != entry.user_id or str(emoji) != entry.emoji:
            return False
        self._pending.pop(entry.message_id, None)
        try:
            await entry.callback()
        except Exception as e:
            log_error(f"Confirmation callback failed message_id={entry.message_id}", error=e)
        return True
