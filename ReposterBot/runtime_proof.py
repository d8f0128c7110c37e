from __future__ import annotations

import os
import platform
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional


def build_runtime_proof_lines(
    *,
    bot_name: str,
    script_path: Path,
    config_dir: Path,
    settings_path: Path,
    tokens_path: Path,
    reposts_path: Path,
    extra: Optional[Dict[str, Any]] = None,
) -> List[str]:
    """Lines for the startup banner: where we run from and which files we read/write."""
    extra = dict(extra or {})
    lines: List[str] = []
    lines.append(f"bot: {bot_name}")
    lines.append(f"cwd: {os.getcwd()}")
    lines.append(f"script: {str(script_path)}")
    lines.append(f"python: {sys.executable}")
    lines.append(f"python_version: {platform.python_version()}")
    lines.append(f"bot_root: {str(script_path.resolve().parent)}")
    lines.append(f"config_dir: {str(config_dir)}")
    lines.append(f"settings: {str(settings_path)} ({'found' if settings_path.exists() else 'missing'})")
    lines.append(f"token_env: {str(tokens_path)} ({'found' if tokens_path.exists() else 'missing'})")
    lines.append(f"reposts: {str(reposts_path)} ({'found' if reposts_path.exists() else 'new'})")
    for k, v in extra.items():
        if v is None:
            continue
        lines.append(f"{k}: {v}")
    return lines
