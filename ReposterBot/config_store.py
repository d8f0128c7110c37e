from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import settings_store as cfg

# Boolean per-destination flags that `repost <flag> [state]` may toggle
FLAG_KEYS = ("tags", "nicknames", "pins")


def guild_key(channel) -> str:
    """Configuration key for a channel: its guild id, or its own id for DMs/group DMs."""
    guild = getattr(channel, "guild", None)
    if guild is not None and getattr(guild, "id", None):
        return str(guild.id)
    return str(channel.id)


@dataclass
class RepostConfig:
    """
    Per-destination settings, keyed by guild id (or DM channel id) strings.

    `active` and `live` are keyed by channel id; everything else by guild key.
    """

    replacements: Dict[str, Dict[str, str]] = field(default_factory=dict)
    nicknames: Dict[str, bool] = field(default_factory=dict)
    prefixes: Dict[str, str] = field(default_factory=dict)
    active: Dict[str, bool] = field(default_factory=dict)
    tags: Dict[str, bool] = field(default_factory=dict)
    pins: Dict[str, bool] = field(default_factory=dict)
    live: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "RepostConfig":
        if not isinstance(raw, dict):
            raise ValueError("repost config root must be a JSON object")
        return cls(
            replacements={str(k): dict(v) for k, v in (raw.get("replacements") or {}).items()},
            nicknames={str(k): bool(v) for k, v in (raw.get("nicknames") or {}).items()},
            prefixes={str(k): str(v) for k, v in (raw.get("prefixes") or {}).items()},
            active={str(k): bool(v) for k, v in (raw.get("active") or {}).items()},
            tags={str(k): bool(v) for k, v in (raw.get("tags") or {}).items()},
            pins={str(k): bool(v) for k, v in (raw.get("pins") or {}).items()},
            live={str(k): dict(v) for k, v in (raw.get("live") or {}).items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "replacements": self.replacements,
            "nicknames": self.nicknames,
            "prefixes": self.prefixes,
            "active": self.active,
            "tags": self.tags,
            "pins": self.pins,
            "live": self.live,
        }

    # ---------------- active ----------------

    def is_active(self, channel_id) -> bool:
        return bool(self.active.get(str(channel_id)))

    def activate(self, channel_id) -> None:
        self.active[str(channel_id)] = True

    def active_count(self) -> int:
        return len(self.active)

    def stop(self, channel_id) -> List[str]:
        """
        Deactivate a channel and drop its live rule, plus any live rule that
        forwards into it. Returns the source keys of the removed rules.
        """
        cid = str(channel_id)
        self.active.pop(cid, None)
        removed: List[str] = []
        if self.live.pop(cid, None) is not None:
            removed.append(cid)
        for source_key, rule in list(self.live.items()):
            if str(rule.get("channel")) == cid:
                self.live.pop(source_key, None)
                removed.append(source_key)
        return removed

    # ---------------- prefix / flags ----------------

    def prefix_for(self, key: str) -> str:
        return self.prefixes.get(str(key)) or cfg.DEFAULT_PREFIX

    def set_prefix(self, key: str, prefix: str) -> None:
        self.prefixes[str(key)] = prefix

    def flag(self, name: str, key: str) -> bool:
        return bool(self._flag_map(name).get(str(key), False))

    def set_flag(self, name: str, key: str, value: bool) -> None:
        self._flag_map(name)[str(key)] = bool(value)

    def _flag_map(self, name: str) -> Dict[str, bool]:
        if name not in FLAG_KEYS:
            raise KeyError(f"unknown flag: {name}")
        return getattr(self, name)

    # ---------------- replacements ----------------

    def replacements_for(self, key: str) -> Dict[str, str]:
        return self.replacements.get(str(key)) or {}

    def set_replacement(self, key: str, find: str, replace: str) -> None:
        self.replacements.setdefault(str(key), {})[find] = replace

    def remove_replacement(self, key: str, find: str) -> bool:
        table = self.replacements.get(str(key))
        if not table or find not in table:
            return False
        del table[find]
        return True

    # ---------------- live rules ----------------

    def set_live(self, source_id, destination_id, *, hook: bool) -> None:
        self.live[str(source_id)] = {"channel": str(destination_id), "hook": bool(hook)}

    def live_rule_for(self, channel_id, guild_id=None) -> Optional[Dict[str, Any]]:
        rule = self.live.get(str(channel_id))
        if rule is None and guild_id:
            rule = self.live.get(str(guild_id))
        return rule


class MemoryConfigStore:
    """Keeps the config in memory; `saves` counts persists for assertions."""

    def __init__(self, config: Optional[RepostConfig] = None):
        self._data: Dict[str, Any] = (config or RepostConfig()).to_dict()
        self.saves = 0

    def load(self) -> RepostConfig:
        return RepostConfig.from_dict(json.loads(json.dumps(self._data)))

    def save(self, config: RepostConfig) -> None:
        self._data = json.loads(json.dumps(config.to_dict()))
        self.saves += 1


class JsonConfigStore:
    """
    One JSON document, rewritten wholesale on every save.

    A missing file is initialized on first load; a malformed one raises.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path or cfg.CONFIG_PATH)
        self._lock = threading.RLock()

    def load(self) -> RepostConfig:
        with self._lock:
            if not self.path.exists():
                config = RepostConfig()
                self.save(config)
                return config
            with open(self.path, "r", encoding="utf-8-sig") as f:
                raw = json.load(f)
            return RepostConfig.from_dict(raw)

    def save(self, config: RepostConfig) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = Path(str(self.path) + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(config.to_dict(), f, indent="\t", ensure_ascii=False)
            os.replace(str(tmp), str(self.path))
