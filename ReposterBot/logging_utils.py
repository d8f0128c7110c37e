from __future__ import annotations

import json
import logging
import os
import re as _re
import sys
import threading
import time
import builtins as _builtins
from pathlib import Path
from typing import Any, Dict, List, Optional

from colorama import Fore as _F, Style as _S, init as _colorama_init

_BOT_DIR = Path(__file__).resolve().parent
_CONFIG_DIR = _BOT_DIR / "config"
_LOGS_DIR = _BOT_DIR / "logs"

_BOT_LOG_PATH = _LOGS_DIR / "Botlogs" / "reposterbotlogs.json"
_SYSTEM_LOG_PATH = _CONFIG_DIR / "systemlogs.json"

_CONSOLE_LOCK = threading.RLock()
_VERBOSE_CONSOLE: bool = True

_colorama_init(autoreset=True)

_ANSI_ESC = "\x1b["


def _colorize_line(text: str) -> str:
    if _ANSI_ESC in text:
        return text
    s = text
    s = _re.sub(r"^\[INFO\]", f"{_F.GREEN}[INFO]{_S.RESET_ALL}", s)
    s = _re.sub(r"^\[WARN(?:ING)?\]", f"{_F.YELLOW}[WARN]{_S.RESET_ALL}", s)
    s = _re.sub(r"^\[ERROR\]", f"{_F.RED}[ERROR]{_S.RESET_ALL}", s)
    s = _re.sub(r"^\[DEBUG\]", f"{_F.WHITE}[DEBUG]{_S.RESET_ALL}", s)
    s = _re.sub(
        r"(?P<prefix>\s|^)#([a-z0-9\-_]+)",
        lambda m: f"{m.group('prefix')}{_F.BLUE}#{m.group(2)}{_S.RESET_ALL}",
        s,
        flags=_re.IGNORECASE,
    )
    return s


def _print_colorized(*args, **kwargs):
    with _CONSOLE_LOCK:
        if not args:
            return _builtins.print(*args, **kwargs)
        text = " ".join(str(a) for a in args)
        text = text.replace("→", "->").replace("←", "<-").replace("✅", "[OK]").replace("❌", "[X]")
        try:
            _builtins.print(_colorize_line(text), **kwargs)
        except UnicodeEncodeError:
            safe_text = text.encode("ascii", errors="replace").decode("ascii")
            _builtins.print(_colorize_line(safe_text), **kwargs)


print = _print_colorized  # type: ignore


def configure_log_paths(*, logs_dir: Path, config_dir: Optional[Path] = None) -> None:
    """Point the JSONL bot log and the system log somewhere else (tests, alt deployments)."""
    global _BOT_LOG_PATH, _SYSTEM_LOG_PATH
    _BOT_LOG_PATH = Path(logs_dir) / "Botlogs" / "reposterbotlogs.json"
    _SYSTEM_LOG_PATH = Path(config_dir or logs_dir) / "systemlogs.json"


def _ensure_parent_dir(p: Path) -> None:
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass


def _append_json_line(path: Path, entry: Dict[str, Any]) -> None:
    _ensure_parent_dir(path)
    try:
        if "timestamp" not in entry:
            entry["timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%S")
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
    except OSError:
        pass


def write_bot_log(entry: Dict[str, Any]) -> None:
    _append_json_line(_BOT_LOG_PATH, entry)


def write_system_log(entry: Dict[str, Any]) -> None:
    _ensure_parent_dir(_SYSTEM_LOG_PATH)
    try:
        entry = dict(entry)
        if "timestamp" not in entry:
            entry["timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%S")
        logs: List[Dict[str, Any]] = []
        try:
            if _SYSTEM_LOG_PATH.exists():
                with open(_SYSTEM_LOG_PATH, "r", encoding="utf-8") as f:
                    loaded = json.load(f)
                    if isinstance(loaded, list):
                        logs = loaded
        except (OSError, ValueError):
            logs = []
        logs.append(entry)
        logs = logs[-500:]
        tmp = Path(str(_SYSTEM_LOG_PATH) + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(logs, f, indent=2, ensure_ascii=False, default=str)
        os.replace(str(tmp), str(_SYSTEM_LOG_PATH))
    except OSError:
        pass


def setup_console_logging(*, verbose: bool) -> None:
    global _VERBOSE_CONSOLE
    _VERBOSE_CONSOLE = bool(verbose)

    logging.basicConfig(level=logging.WARNING, handlers=[logging.StreamHandler(sys.stdout)], force=True)
    # Keep discord.py quiet so our tagged console output stays readable; it
    # already handles rate limits, and we log every failed send ourselves.
    for logger_name in ("discord", "discord.client", "discord.gateway", "discord.http"):
        lg = logging.getLogger(logger_name)
        lg.handlers.clear()
        lg.setLevel(logging.ERROR)
        lg.propagate = False


def startup_banner(lines: List[str], *, bot_name: str = "ReposterBot") -> None:
    bar = "=" * 55
    with _CONSOLE_LOCK:
        _builtins.print(_F.WHITE + bar + _S.RESET_ALL)
        _builtins.print(f"{_F.GREEN}[START]{_S.RESET_ALL} {_F.WHITE}{bot_name}{_S.RESET_ALL}")
        for line in lines:
            _builtins.print(f"{_F.WHITE}{line}{_S.RESET_ALL}")
        _builtins.print(_F.WHITE + bar + _S.RESET_ALL + "\n")


def _record(level: str, msg: str, event: Optional[str], fields: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"level": level, "message": msg}
    entry.update(extra)
    if event:
        entry["event"] = event
    if fields:
        entry.update(fields)
    write_bot_log(entry)
    return entry


def log_debug(msg: str, *, event: Optional[str] = None, **fields: Any) -> None:
    if _VERBOSE_CONSOLE:
        print(f"{_F.WHITE}[DEBUG]{_S.RESET_ALL} {_F.WHITE}{msg}{_S.RESET_ALL}", flush=True)
    _record("DEBUG", msg, event, fields)


def log_info(msg: str, *, event: Optional[str] = None, **fields: Any) -> None:
    print(f"{_F.GREEN}[INFO]{_S.RESET_ALL} {_F.WHITE}{msg}{_S.RESET_ALL}", flush=True)
    _record("INFO", msg, event, fields)


def log_warn(msg: str, *, event: Optional[str] = None, **fields: Any) -> None:
    print(f"{_F.YELLOW}[WARN]{_S.RESET_ALL} {_F.WHITE}{msg}{_S.RESET_ALL}", flush=True)
    _record("WARN", msg, event, fields)


def log_error(msg: str, *, error: Optional[BaseException] = None, event: Optional[str] = None, **fields: Any) -> None:
    """Console + bot log; errors that carry an exception also land in the system log."""
    if error is not None:
        msg = f"{msg} ({type(error).__name__}: {error})"
    print(f"{_F.RED}[ERROR]{_S.RESET_ALL} {_F.WHITE}{msg}{_S.RESET_ALL}", flush=True)
    if error is None:
        _record("ERROR", msg, event, fields)
        return
    entry = _record(
        "ERROR",
        msg,
        event,
        fields,
        error_type=type(error).__name__,
        error_message=str(error),
    )
    write_system_log(entry)


# Tagged lines for the three activity streams: history reposts, live forwards, commands
_TAG_COLORS: Dict[str, str] = {"REPOST": _F.CYAN, "LIVE": _F.MAGENTA, "COMMAND": _F.BLUE}


def _log_tagged(tag: str, msg: str, event: Optional[str], fields: Dict[str, Any]) -> None:
    with _CONSOLE_LOCK:
        _builtins.print(f"{_TAG_COLORS[tag]}[{tag}]{_S.RESET_ALL} {_F.WHITE}{msg}{_S.RESET_ALL}", flush=True)
    _record("INFO", msg, event, fields, tag=tag)


def log_repost(msg: str, *, event: Optional[str] = None, **fields: Any) -> None:
    _log_tagged("REPOST", msg, event, fields)


def log_live(msg: str, *, event: Optional[str] = None, **fields: Any) -> None:
    _log_tagged("LIVE", msg, event, fields)


def log_command(msg: str, *, event: Optional[str] = None, **fields: Any) -> None:
    _log_tagged("COMMAND", msg, event, fields)
