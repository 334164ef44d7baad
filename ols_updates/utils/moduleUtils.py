"""
HOMESERVER Update Management System
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Common utilities for the operator tools to reduce code duplication.

Configuration loading/validation, required-command checks and the
"edit settings" editor lookup shared by every tool.
"""

import os
import json
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from .index import log_message

# Editors tried for "edit settings", after $EDITOR
FALLBACK_EDITORS = ["nano", "vim", "vi"]

_MISSING = object()


class ToolConfigError(Exception):
    """Raised when a tool's index.json is absent, unreadable or incomplete."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


def config_file_path(tool_dir, config_path: Optional[str] = None) -> Path:
    """Resolve the config file: an explicit path wins over the tool's own index.json."""
    if config_path:
        return Path(config_path)
    return Path(tool_dir) / "index.json"


def load_tool_config(tool_dir, config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load a tool's index.json containing metadata and configuration.

    Args:
        tool_dir: Path to the tool directory
        config_path: Optional explicit config file overriding the tool's index.json

    Returns:
        dict: The loaded configuration

    Raises:
        ToolConfigError: If the file is missing or is not valid JSON
    """
    path = config_file_path(tool_dir, config_path)
    log_message(f"Loading config: {path}", "DEBUG")

    if not path.exists():
        raise ToolConfigError(f"Config file not found: {path}")

    try:
        with open(path, 'r') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ToolConfigError(f"Config file {path} is not valid JSON: {e}")
    except OSError as e:
        raise ToolConfigError(f"Failed to read config file {path}: {e}")


def get_config_value(config: Dict[str, Any], dotted_key: str, default: Any = None) -> Any:
    """Look up "a.b.c" inside the "config" section."""
    node = config.get("config", {})
    for part in dotted_key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def validate_tool_config(config: Dict[str, Any], required_keys: Iterable[str]) -> None:
    """
    Ensure every required setting is present in the "config" section.

    Raises:
        ToolConfigError: listing every missing dotted key
    """
    missing = [key for key in required_keys
               if get_config_value(config, key, _MISSING) is _MISSING]
    if missing:
        raise ToolConfigError(
            "The following settings are missing: " + ", ".join(missing),
            missing=missing,
        )


def check_dependencies(commands: Iterable[str], hints: Optional[Dict[str, str]] = None) -> List[str]:
    """
    Return the required commands that are not on PATH, logging an install hint for each.
    """
    hints = hints or {}
    missing = [cmd for cmd in commands if shutil.which(cmd) is None]
    if missing:
        log_message("The following required commands are missing:", "ERROR")
        for cmd in missing:
            log_message(f"  - {cmd}", "ERROR")
            if cmd in hints:
                log_message(f"    {hints[cmd]}", "ERROR")
    return missing


def find_editor() -> Optional[str]:
    """First usable editor: $EDITOR, then nano, vim, vi."""
    candidates = []
    if os.environ.get("EDITOR"):
        candidates.append(os.environ["EDITOR"])
    candidates.extend(FALLBACK_EDITORS)
    for editor in candidates:
        found = shutil.which(editor)
        if found:
            return found
    return None


def edit_config_file(path) -> bool:
    """Open the config file in an editor. Returns False when no editor is available."""
    editor = find_editor()
    if not editor:
        log_message("No text editor found (nano, vim, vi)!", "ERROR")
        return False
    subprocess.run([editor, str(path)])
    return True
