from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

_BOT_DIR = Path(__file__).resolve().parent

VERBOSE: bool = True

# Per-guild prefix falls back to this when none is stored
DEFAULT_PREFIX: str = "/"

# Persisted destination configuration (replacements, flags, active, live rules)
CONFIG_PATH: Path = _BOT_DIR / "config" / "reposts.json"

# History walk: the platform caps a single history request at 100
HISTORY_PAGE_SIZE: int = 100

# Attachments above this size are posted as a bare URL instead of re-uploaded
ATTACHMENT_INLINE_MAX_BYTES: int = 8_000_000

# Reaction confirmations (replacement deletion, channel disambiguation)
CONFIRMATION_TTL_SECONDS: int = 15 * 60

WEBHOOK_NAME: str = "Reposter"

# Outbound send throttling between reposted pieces (discord.py still honours 429s)
SEND_MIN_INTERVAL_SECONDS: float = 0.0


def _get_int(d: Dict[str, Any], key: str, default: int = 0) -> int:
    try:
        v = d.get(key, default)
        if v is None:
            return default
        if isinstance(v, bool):
            return int(v)
        if isinstance(v, (int, float)):
            return int(v)
        s = str(v).strip()
        if not s:
            return default
        return int(float(s))
    except (TypeError, ValueError):
        return default


def _resolve_path(value: Any, default: Path) -> Path:
    raw = str(value or "").strip()
    if not raw:
        return default
    p = Path(raw)
    if not p.is_absolute():
        p = _BOT_DIR / p
    return p


def init(settings: Dict[str, Any]) -> None:
    """
    Initialize module-level configuration values from the loaded settings dict.

    Modules read these as `cfg.NAME` at call time, so re-initializing takes
    effect without re-importing anything.
    """
    global VERBOSE, DEFAULT_PREFIX, CONFIG_PATH
    global HISTORY_PAGE_SIZE, ATTACHMENT_INLINE_MAX_BYTES
    global CONFIRMATION_TTL_SECONDS, WEBHOOK_NAME, SEND_MIN_INTERVAL_SECONDS

    VERBOSE = bool(settings.get("verbose", True))

    DEFAULT_PREFIX = str(settings.get("default_prefix") or "/").strip() or "/"
    CONFIG_PATH = _resolve_path(settings.get("config_path"), _BOT_DIR / "config" / "reposts.json")

    HISTORY_PAGE_SIZE = _get_int(settings, "history_page_size", 100)
    # The API rejects anything outside 1..100
    HISTORY_PAGE_SIZE = max(1, min(100, HISTORY_PAGE_SIZE))

    ATTACHMENT_INLINE_MAX_BYTES = _get_int(settings, "attachment_inline_max_bytes", 8_000_000)
    if ATTACHMENT_INLINE_MAX_BYTES < 0:
        ATTACHMENT_INLINE_MAX_BYTES = 0

    CONFIRMATION_TTL_SECONDS = _get_int(settings, "confirmation_ttl_seconds", 15 * 60)

    WEBHOOK_NAME = (str(settings.get("webhook_name") or "Reposter").strip() or "Reposter")[:80]

    try:
        SEND_MIN_INTERVAL_SECONDS = float(settings.get("send_min_interval_seconds", 0.0) or 0.0)
        if SEND_MIN_INTERVAL_SECONDS < 0:
            SEND_MIN_INTERVAL_SECONDS = 0.0
    except (TypeError, ValueError):
        SEND_MIN_INTERVAL_SECONDS = 0.0
