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

import json
import logging
from pathlib import Path

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def log_message(message, level="INFO"):
    """
    Unified logger used by the orchestrator, the tools and their components.
    Args:
        message (str): The message to log.
        level (str): Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR').
    """
    logging.log(_LEVELS.get(level, logging.INFO), message)


def get_module_version(module_path: str) -> str:
    """
    Get the schema version from a tool's index.json file.

    Args:
        module_path (str): Path to the tool directory

    Returns:
        str: The schema version from index.json, or "unknown" if not found
    """
    try:
        index_path = Path(module_path) / "index.json"
        with open(index_path, 'r') as f:
            config = json.load(f)
            return config.get("metadata", {}).get("schema_version", "unknown")
    except Exception as e:
        log_message(f"Failed to read module version from {module_path}: {e}", "ERROR")
        return "unknown"
