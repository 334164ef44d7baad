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

import importlib
import traceback

# Import shared utilities
from .utils.index import log_message
from .utils.moduleUtils import load_tool_config, validate_tool_config, ToolConfigError

# Re-export utilities for easy access by the tools
__all__ = [
    'log_message',
    'run_tool',
    'load_tool_config',
    'validate_tool_config',
    'ToolConfigError',
]


def run_tool(tool_name, args=None, callback=None):
    """
    Run a single operator tool.

    Args:
        tool_name (str): Tool package name under modules/ (e.g. "backup_update")
        args (list, optional): Arguments to pass to the tool's main function
        callback (callable, optional): Function to call when the tool completes

    Returns:
        Any: Result from the tool's main function, or None if it could not run
    """
    result = None
    module_path = tool_name if "." in tool_name else f"modules.{tool_name}"
    try:
        mod = importlib.import_module(f".{module_path}", package=__name__)
        if hasattr(mod, 'main'):
            log_message(f"Running tool: {module_path}", "DEBUG")
            result = mod.main(args)
            log_message(f"Completed tool: {module_path}", "DEBUG")
        else:
            log_message(f"Module {module_path} has no main(args) function.", "ERROR")
    except ImportError as e:
        log_message(f"Failed to import tool {module_path}: {e}", "ERROR")
        traceback.print_exc()

    if callback and callable(callback):
        callback(module_path, result)

    return result
