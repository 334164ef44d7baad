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
Optolink-Splitter Backup & Update Tool

Interactive menu for keeping an Optolink-Splitter installation current:

- Update from GitHub with a per-file selection of changes
- Timestamped backups with rotation
- Restore of any kept backup
- Settings view / edit

``--dry-run`` runs the update analysis once and exits without changing anything.
"""

import os
import time
import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

from ols_updates.index import log_message
from ols_updates.utils.console import Console
from ols_updates.utils.lock import UpdateLock, UpdateLockError
from ols_updates.utils.moduleUtils import (
    ToolConfigError,
    check_dependencies,
    config_file_path,
    edit_config_file,
    load_tool_config,
    validate_tool_config,
)
from ols_updates.utils.service_manager import ServiceManager, systemd_available
from ols_updates.utils.state_manager import BackupError, BackupManager, backup_timestamp, format_backup_date

from .components import GitHubSource, UpdateRunner

REQUIRED_KEYS = [
    "install_dir",
    "service_name",
    "github.user",
    "github.repo",
    "github.branch",
    "backup.max_backups",
    "backup.base_dir",
    "tmp_dir",
    "exclude_patterns",
    "lock_file",
]

REQUIRED_COMMANDS = ["rsync", "systemctl", "journalctl"]

INSTALL_HINTS = {
    "rsync": "sudo apt install rsync",
    "systemctl": "systemctl is part of systemd - your system may not use systemd!",
    "journalctl": "journalctl is part of systemd - your system may not use systemd!",
}


def backup_table_lines(backups: BackupManager, paths: List[Path]) -> List[str]:
    """Numbered backup table, newest first."""
    lines = [f"  {'No.':<5} {'Date & Time':<22} {'Size':>8} Files",
             "  " + "─" * 50]
    for i, path in enumerate(paths):
        info = backups.describe(path)
        label = " ← latest" if i == 0 else ""
        lines.append(f"  {str(i + 1) + ')':<5} {info.display_date:<22} {info.display_size:>8} "
                     f"{info.file_count:>5} files{label}")
    return lines


class BackupUpdateTool:
    """Menu-driven backup, restore and update of one installation."""

    def __init__(self, config: Dict[str, Any], config_path: Optional[Path] = None,
                 console: Optional[Console] = None,
                 service: Optional[ServiceManager] = None,
                 settle_seconds: float = 3):
        self.config_path = config_path
        self.console = console or Console()
        self.settle_seconds = settle_seconds
        self._service = service
        self._apply_config(config)

    def _apply_config(self, config: Dict[str, Any]) -> None:
        self.config = config
        cfg = config["config"]
        self.install_dir = cfg["install_dir"]
        self.service_name = cfg["service_name"]
        self.github = cfg["github"]
        self.exclude_patterns = list(cfg["exclude_patterns"])
        self.backups = BackupManager(
            self.install_dir,
            base_dir=cfg["backup"]["base_dir"],
            max_backups=cfg["backup"]["max_backups"],
        )
        self.service = self._service or ServiceManager(self.service_name)

    def check_install_dir(self) -> bool:
        if not os.path.isdir(self.install_dir):
            log_message(f"Installation directory not found: {self.install_dir}", "ERROR")
            return False
        if not os.access(self.install_dir, os.W_OK) and os.geteuid() != 0:
            log_message(f"Installation directory may not be writable: {self.install_dir}", "WARNING")
            log_message("You might need to run this tool with sudo.", "WARNING")
        return True

    # --- Update ---
    def update(self, dry_run: bool = False):
        runner = UpdateRunner(
            self.config,
            console=self.console,
            service=self.service,
            backups=self.backups,
            dry_run=dry_run,
        )
        return runner.run()

    # --- Menu ---
    def show_menu(self) -> str:
        c = self.console
        c.header("Optolink-Splitter Backup & Update")
        c.echo(f"Repository: {self.github['user']}/{self.github['repo']}")
        c.echo(f"Branch:     {self.github['branch']}")
        c.echo(f"Protected:  {len(self.exclude_patterns)} files/patterns")
        c.echo()
        c.echo(f"Backups:    {self.backups.count_backups()} / {self.backups.max_backups}")
        c.echo(f"Latest:     {self.backups.latest_backup_date()}")
        c.echo()
        c.echo("1) Update from GitHub")
        c.echo("2) Create backup")
        c.echo("3) List backups")
        c.echo("4) Restore backup")
        c.echo()
        c.echo("s) Settings")
        c.echo()
        c.echo("q) Quit")
        c.echo()
        return c.choice("Select option [1-4, s, q]: ")

    def run_menu(self) -> None:
        actions = {
            "1": self.update,
            "2": self.create_backup,
            "3": self.list_backups,
            "4": self.restore_backup,
            "s": self.settings_menu,
        }
        while True:
            choice = self.show_menu()
            if choice == "q":
                self.console.clear()
                self.console.echo("Goodbye!")
                return
            action = actions.get(choice)
            if action:
                action()

    # --- Backups ---
    def create_backup(self) -> Optional[Path]:
        c = self.console
        c.header("Create Backup")
        c.echo(f"Backing up: {self.install_dir}")
        c.echo(f"       to : {self.backups.new_backup_path()}")
        c.echo()
        if not c.confirm("Continue?", default=True):
            c.echo("Backup cancelled.")
            c.pause()
            return None

        try:
            backup_dir = self.backups.create_backup()
        except BackupError as e:
            log_message(f"[BACKUP] ✗ {e}", "ERROR")
            c.echo(f"ERROR: {e}")
            c.pause()
            return None

        c.echo()
        c.echo("✓ Backup created successfully!")
        c.echo(f"  Location: {backup_dir}")
        c.echo()
        try:
            self.backups.cleanup_old_backups()
        except BackupError as e:
            log_message(f"[BACKUP] ✗ {e}", "ERROR")
            c.echo(f"ERROR: {e}")
        c.echo()
        c.pause()
        return backup_dir

    def list_backups(self) -> None:
        c = self.console
        c.header("Backups")
        paths = self.backups.list_backups()
        if not paths:
            c.echo("No backups found.")
            c.echo()
            c.pause()
            return

        for line in backup_table_lines(self.backups, paths):
            c.echo(line)
        c.echo()
        c.echo(f"  Total: {len(paths)} / {self.backups.max_backups} backups")
        c.echo()
        c.pause()

    def restore_backup(self) -> bool:
        c = self.console
        c.header("Restore Backup")
        paths = self.backups.list_backups()
        if not paths:
            c.echo("No backups found!")
            c.echo()
            c.pause()
            return False

        for line in backup_table_lines(self.backups, paths):
            c.echo(line)
        c.echo()
        answer = c.prompt(f"Select backup [1-{len(paths)}] or 'q' to cancel: ")
        if answer.lower() == "q":
            c.echo("Cancelled.")
            c.pause()
            return False
        if not answer.isdigit() or not 1 <= int(answer) <= len(paths):
            c.echo("Invalid selection.")
            c.pause()
            return False

        selected = paths[int(answer) - 1]
        c.echo()
        c.echo(f"Selected: {format_backup_date(backup_timestamp(selected))}")
        c.echo()
        c.echo("⚠ This will stop the service and overwrite current files.")
        if not c.confirm("Continue?", default=False):
            c.echo("Cancelled.")
            c.pause()
            return False

        c.echo()
        self.service.stop()
        try:
            self.backups.restore_backup(selected)
        except BackupError as e:
            log_message(f"[BACKUP] ✗ {e}", "ERROR")
            c.echo(f"ERROR: {e}")
            if self.service.start():
                c.echo("Service has been started again; check the installation before relying on it.")
            else:
                c.echo(f"✗ Service is still stopped. Start it with: sudo systemctl start {self.service_name}")
            c.pause()
            return False
        self.service.start()
        if self.settle_seconds:
            time.sleep(self.settle_seconds)

        c.echo()
        restored = self.service.is_active()
        if restored:
            c.echo("✓ Restore successful! Service is running.")
        else:
            c.echo("⚠ WARNING: Service is not running!")
            self.service.status()
        c.echo()
        c.pause()
        return restored

    # --- Settings ---
    def view_settings(self) -> None:
        c = self.console
        cfg = self.config["config"]
        source = GitHubSource(self.github["user"], self.github["repo"], self.github["branch"])
        c.header("Settings - View")
        c.echo(f"Config file: {self.config_path}")
        c.echo()
        c.echo("Installation:")
        c.echo(f"  Directory : {self.install_dir}")
        c.echo(f"  Service   : {self.service_name}")
        c.echo(f"  Status    : {self.service.active_state()}")
        c.echo()
        c.echo("GitHub:")
        c.echo(f"  User/Org  : {self.github['user']}")
        c.echo(f"  Repository: {self.github['repo']}")
        c.echo(f"  Branch    : {self.github['branch']}")
        c.echo(f"  URL       : {source.repo_url}")
        c.echo()
        c.echo("Backup:")
        c.echo(f"  Max backups  : {self.backups.max_backups}")
        c.echo(f"  Backup dir   : {self.backups.base_dir or '(default: backup beside install dir)'}")
        c.echo(f"  Backup prefix: {self.backups.backup_prefix}")
        c.echo(f"  Current count: {self.backups.count_backups()}")
        c.echo()
        c.echo(f"Temp directory : {cfg['tmp_dir']}")
        c.echo(f"Lock file      : {cfg['lock_file']}")
        c.echo()
        c.echo(f"Protected files ({len(self.exclude_patterns)}):")
        for pattern in self.exclude_patterns:
            c.echo(f"  ✓ {pattern}")
        c.echo()
        c.pause()

    def edit_settings(self) -> bool:
        """Open the config in an editor, then reload it; a broken edit keeps the previous settings."""
        if not self.config_path or not edit_config_file(self.config_path):
            self.console.echo("  ERROR: No text editor found (nano, vim, vi)!")
            self.console.pause()
            return False
        try:
            config = load_tool_config(self.config_path.parent, str(self.config_path))
            validate_tool_config(config, REQUIRED_KEYS)
        except ToolConfigError as e:
            log_message(f"Settings not reloaded: {e}", "ERROR")
            self.console.echo(f"ERROR: {e}")
            self.console.echo("Previous settings stay in effect; fix the file and edit again.")
            self.console.pause()
            return False
        self._apply_config(config)
        log_message("Settings reloaded")
        return True

    def settings_menu(self) -> None:
        c = self.console
        while True:
            c.header("Settings")
            c.echo("  1) View settings")
            c.echo("  2) Edit settings")
            c.echo()
            c.echo("  q) Back")
            c.echo()
            choice = c.choice("  Select option [1-2, q]: ")
            if choice == "1":
                self.view_settings()
            elif choice == "2":
                self.edit_settings()
            elif choice == "q":
                return


def parse_args(args=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ols-updates backup-update",
                                     description="Backup & update tool for Optolink-Splitter")
    parser.add_argument("--dry-run", action="store_true",
                        help="Only check for changes, do not modify anything")
    parser.add_argument("--config", help="Config file to use instead of the tool's index.json")
    return parser.parse_args(args or [])


def main(args=None):
    """
    Main entry point for the backup & update tool.

    Args:
        args: Command line arguments (--dry-run, --config PATH)

    Returns:
        dict: {"success": bool, ...}
    """
    try:
        opts = parse_args(args)
    except SystemExit as e:
        return {"success": e.code in (0, None)}

    module_dir = Path(__file__).parent
    config_path = config_file_path(module_dir, opts.config)
    try:
        config = load_tool_config(module_dir, opts.config)
        validate_tool_config(config, REQUIRED_KEYS)
    except ToolConfigError as e:
        log_message(str(e), "ERROR")
        return {"success": False, "error": str(e)}

    missing = check_dependencies(REQUIRED_COMMANDS, INSTALL_HINTS)
    if missing:
        return {"success": False, "error": f"Missing commands: {', '.join(missing)}"}

    if not systemd_available():
        message = "systemd is not available or not running; this tool requires a systemd-based system"
        log_message(message, "ERROR")
        return {"success": False, "error": message}

    tool = BackupUpdateTool(config, config_path=config_path)
    if not tool.check_install_dir():
        return {"success": False, "error": f"Installation directory not found: {tool.install_dir}"}

    try:
        with UpdateLock(config["config"]["lock_file"]):
            if opts.dry_run:
                result = tool.update(dry_run=True)
                return {"success": result.success, "update": result.to_dict()}

            tool.run_menu()
            return {"success": True}
    except UpdateLockError as e:
        log_message(str(e), "ERROR")
        return {"success": False, "error": str(e)}

