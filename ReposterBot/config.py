from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Tuple


def _load_env_file(path: Path) -> Dict[str, str]:
    out: Dict[str, str] = {}
    try:
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            for raw in f:
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    continue
                k, _, v = line.partition("=")
                k = k.strip()
                v = v.strip().strip('"').strip("'")
                if not k:
                    continue
                out[k] = v
    except FileNotFoundError:
        return out
    except OSError:
        return out
    return out


def _load_settings_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}
    except FileNotFoundError:
        return {}
    except (OSError, ValueError):
        return {}


# env key -> settings.json key (non-secret values only)
_ENV_OVERRIDE_MAP: Dict[str, str] = {
    "REPOSTER_DEFAULT_PREFIX": "default_prefix",
    "REPOSTER_CONFIG_PATH": "config_path",
}


def _apply_env_overrides(settings: Dict[str, Any], env: Dict[str, str]) -> Dict[str, Any]:
    """
    Apply whitelisted env overrides to the settings.json structure.

    Only the keys in `_ENV_OVERRIDE_MAP` are read, so the bot token stays
    exclusive to ReposterBot/config/tokens.env.
    """
    out = dict(settings or {})
    for env_key, settings_key in _ENV_OVERRIDE_MAP.items():
        raw = (env.get(env_key) or "").strip()
        if not raw:
            continue
        out[settings_key] = raw
    return out


def load_settings_and_tokens(config_dir: Path) -> Tuple[Dict[str, Any], Dict[str, str]]:
    settings = _load_settings_json(config_dir / "settings.json")
    tokens: Dict[str, str] = _load_env_file(config_dir / "tokens.env")
    env_overrides = dict(os.environ)
    env_overrides.update(_load_env_file(config_dir / ".env"))
    settings = _apply_env_overrides(settings, env_overrides)
    return settings, tokens
