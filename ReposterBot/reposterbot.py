"""
ReposterBot (Channel Reposter)
------------------------------
Copies the history of one chat channel into another, optionally through a
webhook that impersonates each original author, and can keep forwarding new
messages live.

Responsibilities:
  - `repost` prefix command and its hook/live variants
    - resolve the target (channel id, guild id, mention, name)
    - info card, pins, then the full history oldest first
    - `stop` halts any running walk at the next send
  - Live forwarder (standing source -> destination rules)
  - Per-guild prefix, flags (tags/nicknames/pins) and text replacements

Config (local-only):
  - config/tokens.env     (secrets only)
  - config/settings.json  (non-secret)
  - config/reposts.json   (persisted destination configuration)

Outputs (local-only):
  - logs/Botlogs/reposterbotlogs.json  (JSONL)
  - config/systemlogs.json             (JSON array)
"""

from __future__ import annotations

import platform
from pathlib import Path

_BOT_DIR = Path(__file__).resolve().parent
_CONFIG_DIR = _BOT_DIR / "config"


def main() -> int:
    # Import locally so the banner helpers load before discord.py does.
    from runtime_proof import build_runtime_proof_lines
    from logging_utils import (
        log_error,
        log_info,
        log_warn,
        setup_console_logging,
        startup_banner,
    )
    from config import load_settings_and_tokens
    import settings_store as cfg

    settings, tokens = load_settings_and_tokens(_CONFIG_DIR)
    cfg.init(settings)
    setup_console_logging(verbose=cfg.VERBOSE)

    proof_lines = build_runtime_proof_lines(
        bot_name="ReposterBot",
        script_path=Path(__file__).resolve(),
        config_dir=_CONFIG_DIR,
        settings_path=_CONFIG_DIR / "settings.json",
        tokens_path=_CONFIG_DIR / "tokens.env",
        reposts_path=cfg.CONFIG_PATH,
        extra={
            "platform": platform.platform(),
            "default_prefix": cfg.DEFAULT_PREFIX,
        },
    )
    startup_banner(proof_lines)

    # Canonical token: REPOSTER_BOT (discord.py bot token)
    bot_token = str(tokens.get("REPOSTER_BOT") or "").strip()
    if not bot_token:
        legacy = str(tokens.get("DISCORD_TOKEN") or "").strip()
        if legacy:
            log_warn("Using legacy token key DISCORD_TOKEN; rename it to REPOSTER_BOT (canonical).")
            bot_token = legacy
    if not bot_token or bot_token.upper() == "YOUR_TOKEN_HERE":
        log_error("Missing bot token. Set REPOSTER_BOT in ReposterBot/config/tokens.env")
        return 2

    try:
        from live_forwarder import run_bot
    except ImportError as e:
        log_error("Failed to import live_forwarder/run_bot (is discord.py installed?)", error=e)
        return 2

    log_info("Starting ReposterBot...")
    return int(run_bot(settings=settings, token=bot_token) or 0)


if __name__ == "__main__":
    raise SystemExit(main())
