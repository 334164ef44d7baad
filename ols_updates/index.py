#!/usr/bin/env python3
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
Optolink-Splitter operator tools - orchestrator entry point.

Dispatches to one of the operator tools under ``modules/``:

    ols-updates backup-update [--dry-run] [--config PATH]
    ols-updates manager [--config PATH]
    ols-updates install [--dry-run] [--config PATH]
"""

import os
import sys
import argparse
import logging
import traceback
from .utils.index import log_message

# Command name -> tool package under modules/
TOOLS = {
    "backup-update": "backup_update",
    "manager": "manager",
    "install": "install",
}


def setup_global_update_logging(debug: bool = False):
    """
    Log to stdout only; the operator's terminal (or the shell wrapper) owns persistence.
    """
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    unified_format = logging.Formatter('[%(asctime)s] [%(levelname)s] %(message)s',
                                       datefmt='%Y-%m-%d %H:%M:%S')
    console_handler.setFormatter(unified_format)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for h in list(root_logger.handlers):
        root_logger.removeHandler(h)
    root_logger.addHandler(console_handler)
    log_message("=" * 60, "DEBUG")
    log_message("OPTOLINK-SPLITTER TOOLS SESSION STARTED", "DEBUG")
    log_message(f"Command: {' '.join(sys.argv)}", "DEBUG")
    log_message(f"Working Directory: {os.getcwd()}", "DEBUG")
    log_message(f"Python Version: {sys.version}", "DEBUG")
    log_message("=" * 60, "DEBUG")


def main(argv=None):
    """
    Main entry point for the operator tools.
    Each tool's main(args) returns a result dict; its "success" flag becomes the exit status.
    """
    parser = argparse.ArgumentParser(description="Optolink-Splitter operator tools")
    parser.add_argument("--debug", action="store_true",
                        help="Show debug log output")
    parser.add_argument("tool", choices=sorted(TOOLS),
                        help="Tool to run")
    parser.add_argument("tool_args", nargs=argparse.REMAINDER,
                        help="Arguments passed through to the tool")

    args = parser.parse_args(argv)

    try:
        setup_global_update_logging(debug=args.debug)

        from . import run_tool
        result = run_tool(TOOLS[args.tool], args.tool_args)

        if isinstance(result, dict) and result.get("success"):
            sys.exit(0)

        if isinstance(result, dict) and result.get("error"):
            log_message(f"{args.tool} failed: {result['error']}", "ERROR")
        sys.exit(1)

    except KeyboardInterrupt:
        log_message("Interrupted by user", "WARNING")
        sys.exit(130)
    except Exception as e:
        log_message(f"Unhandled error in {args.tool}: {e}", "ERROR")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
