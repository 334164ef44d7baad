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
Optolink-Splitter Manager Tool

Day-to-day operation of the Optolink-Splitter systemd service: logs,
start/stop/enable, unit inspection, and running the splitter by hand inside
its virtual environment.
"""

import os
import shutil
import argparse
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ols_updates.index import log_message
from ols_updates.utils.console import Console
from ols_updates.utils.moduleUtils import (
    ToolConfigError,
    config_file_path,
    edit_config_file,
    load_tool_config,
    validate_tool_config,
)
from ols_updates.utils.service_manager import ServiceManager, ServiceError

REQUIRED_KEYS = ["service_name", "venv_dir", "ols_file", "log_lines"]


class ManagerError(Exception):
    """Raised when the virtual environment or splitter script is unusable."""
    pass


def parse_line_count(text: str) -> int:
    """Positive line count for "Last N"; raises ValueError otherwise."""
    text = text.strip()
    if not text.isdigit() or int(text) < 1:
        raise ValueError(f"Invalid N: {text!r}")
    return int(text)


class ServiceManagerTool:
    """Menus around one systemd service and its virtual environment."""

    def __init__(self, config: Dict[str, Any], config_path: Optional[Path] = None,
                 console: Optional[Console] = None,
                 service: Optional[ServiceManager] = None,
                 exec_func: Optional[Callable] = None):
        self.config_path = config_path
        self.console = console or Console()
        self._service = service
        self.exec_func = exec_func or os.execve
        self._apply_config(config)

    def _apply_config(self, config: Dict[str, Any]) -> None:
        self.config = config
        cfg = config["config"]
        self.service_name = cfg["service_name"]
        self.venv_dir = cfg["venv_dir"]
        self.ols_file = cfg["ols_file"]
        self.log_lines = int(cfg["log_lines"])
        self.service = self._service or ServiceManager(self.service_name)

    def _header(self, title: str) -> None:
        self.console.header(title)
        self.console.echo(f"Service: {self.service_name}")
        self.console.echo(f"Status:  {self.service.summary()}")
        self.console.echo()

    def _submenu(self, title: str, entries, prompt: str, actions: Dict[str, Callable]) -> None:
        c = self.console
        while True:
            self._header(title)
            for entry in entries:
                c.echo(entry)
            c.echo()
            c.echo("q) Back")
            c.echo()
            choice = c.choice(prompt)
            if choice == "q":
                return
            action = actions.get(choice)
            if action is None:
                c.echo(f"Invalid choice: {choice}")
                c.pause()
                continue
            action()

    def _safe(self, func: Callable[[], Any]) -> None:
        """Run a service command; failures are reported, never fatal."""
        try:
            func()
        except ServiceError as e:
            log_message(f"[SERVICE] {e}", "ERROR")
        self.console.pause()

    # --- Main menu ---
    def run_menu(self) -> None:
        c = self.console
        actions = {
            "1": self.logs_menu,
            "2": self.control_menu,
            "3": self.info_menu,
            "4": self.manual_start,
            "5": self.venv_shell,
            "s": self.settings_menu,
        }
        while True:
            self._header("Optolink-Splitter Manager")
            c.echo("1) Logs            (submenu)")
            c.echo("2) Service Control (submenu: restart/start/stop/...)")
            c.echo("3) Service Info    (submenu: status/errors)")
            c.echo("4) Manual Start    (exits menu → starts splitter (venv))")
            c.echo("5) Venv Shell      (exits menu → enters venv shell)")
            c.echo()
            c.echo("s) Settings        (submenu: view/edit)")
            c.echo()
            c.echo("q) Quit")
            c.echo()
            choice = c.choice("Choose [1-5, s, q]: ")
            if choice == "q":
                c.clear()
                c.echo("Goodbye!")
                return
            action = actions.get(choice)
            if action is None:
                c.echo(f"Invalid choice: {choice}")
                c.pause()
                continue
            action()

    # --- Logs ---
    def logs_menu(self) -> None:
        self._submenu(
            "Logs",
            [f"1) Follow (last {self.log_lines})          (Ctrl+C to exit)",
             "2) Follow with timestamps      (Ctrl+C to exit)",
             "3) Last N (no follow)"],
            "Choose [1-3, q]: ",
            {
                "1": self.follow_logs,
                "2": lambda: self.follow_logs(timestamps=True),
                "3": self.last_logs,
            },
        )

    def follow_logs(self, timestamps: bool = False) -> None:
        """Follow the journal until Ctrl+C."""
        try:
            self.service.journal(lines=self.log_lines, follow=True, timestamps=timestamps)
        except ServiceError as e:
            log_message(f"[SERVICE] {e}", "ERROR")
            self.console.pause()

    def last_logs(self) -> None:
        answer = self.console.prompt("How many lines (N): ")
        try:
            lines = parse_line_count(answer)
        except ValueError:
            self.console.echo("Invalid N.")
            self.console.pause()
            return
        self._safe(lambda: self.service.journal(lines=lines))

    # --- Service control ---
    def control_menu(self) -> None:
        s = self.service
        self._submenu(
            "Service Control",
            ["1) Restart", "2) Start", "3) Stop", "", "4) Enable", "5) Disable"],
            "Choose [1-5, q]: ",
            {
                "1": lambda: self._safe(s.restart),
                "2": lambda: self._safe(s.start),
                "3": lambda: self._safe(s.stop),
                "4": lambda: self._safe(s.enable),
                "5": lambda: self._safe(s.disable),
            },
        )

    # --- Service info ---
    def quick_state(self) -> None:
        self.console.echo(self.service.active_state())
        self.console.echo(self.service.enabled_state())
        self.console.pause()

    def info_menu(self) -> None:
        s = self.service
        self._submenu(
            "Service Info",
            ["1) systemctl status      (detailed)",
             "2) is-active / is-enabled (quick)",
             "3) Last errors           (journalctl -p err..alert)",
             "4) systemctl cat         (show unit file)"],
            "Choose [1-4, q]: ",
            {
                "1": lambda: self._safe(s.status),
                "2": self.quick_state,
                "3": lambda: self._safe(lambda: s.journal(lines=200, priority="err..alert")),
                "4": lambda: self._safe(s.cat),
            },
        )

    # --- Manual start / venv shell ---
    def ensure_venv(self) -> Path:
        """
        Raises:
            ManagerError: If the venv directory or its activate script is missing
        """
        venv = Path(self.venv_dir)
        if not venv.is_dir():
            raise ManagerError(f"Venv dir not found: '{venv}' (set venv_dir in {self.config_path}).")
        if not (venv / "bin" / "activate").is_file():
            raise ManagerError(f"Venv activate not found: '{venv / 'bin' / 'activate'}'.")
        return venv

    def venv_environment(self, venv: Path) -> Dict[str, str]:
        """Process environment equivalent to sourcing bin/activate."""
        env = dict(os.environ)
        env["VIRTUAL_ENV"] = str(venv)
        env["PATH"] = f"{venv / 'bin'}{os.pathsep}{env.get('PATH', '')}"
        env.pop("PYTHONHOME", None)
        return env

    def manual_start(self) -> None:
        c = self.console
        try:
            venv = self.ensure_venv()
            if not os.path.isfile(self.ols_file):
                raise ManagerError(f"Manual script not found: '{self.ols_file}' (set ols_file in {self.config_path}).")
        except ManagerError as e:
            c.echo(str(e))
            c.pause()
            return

        c.clear()
        c.echo("Leaving menu and starting Optolink-Splitter (in venv)...")
        c.echo("  Press 'CTRL'+'C' to stop Optolink-Splitter")
        c.echo(f"  Script: {self.ols_file}")
        c.pause()
        python = str(venv / "bin" / "python")
        self.exec_func(python, [python, self.ols_file], self.venv_environment(venv))

    def venv_shell(self) -> None:
        c = self.console
        try:
            venv = self.ensure_venv()
        except ManagerError as e:
            c.echo(str(e))
            c.pause()
            return

        c.clear()
        c.echo("Leaving menu and entering venv shell...")
        c.echo(f"  Venv: {venv}")
        c.echo("  Type 'exit' to return to your previous shell.")
        c.pause()
        shell = shutil.which("bash") or "/bin/sh"
        self.exec_func(shell, [shell, "-i"], self.venv_environment(venv))

    # --- Settings ---
    def view_settings(self) -> None:
        c = self.console
        c.header("Settings - View")
        c.echo("Config:")
        c.echo(f"  Config file:               {self.config_path}")
        c.echo()
        c.echo("Service:")
        c.echo(f"  Name:                      {self.service_name}")
        c.echo(f"  Status:                    {'active (running)' if self.service.is_active() else 'inactive'}")
        c.echo()
        c.echo("Paths:")
        c.echo(f"  Venv directory:            {self.venv_dir}")
        c.echo(f"  Optolink-Splitter script:  {self.ols_file}")
        c.echo()
        c.echo("Configuration:")
        c.echo(f"  Default logs:              {self.log_lines} lines")
        c.echo()
        c.pause()

    def edit_settings(self) -> bool:
        if not self.config_path or not edit_config_file(self.config_path):
            self.console.echo("ERROR: No text editor found (nano, vim, vi)!")
            self.console.pause()
            return False
        try:
            config = load_tool_config(self.config_path.parent, str(self.config_path))
            validate_tool_config(config, REQUIRED_KEYS)
        except ToolConfigError as e:
            log_message(f"Settings not reloaded: {e}", "ERROR")
            self.console.echo(f"ERROR: {e}")
            self.console.pause()
            return False
        self._apply_config(config)
        return True

    def settings_menu(self) -> None:
        c = self.console
        while True:
            c.header("Settings")
            c.echo("1) View settings")
            c.echo("2) Edit settings")
            c.echo()
            c.echo("q) Back")
            c.echo()
            choice = c.choice("Choose [1-2, q]: ")
            if choice == "q":
                return
            if choice == "1":
                self.view_settings()
            elif choice == "2":
                self.edit_settings()
            else:
                c.echo(f"Invalid choice: {choice}")
                c.pause()


def main(args=None):
    """
    Main entry point for the service manager tool.

    Args:
        args: Command line arguments (--config PATH)

    Returns:
        dict: {"success": bool, ...}
    """
    parser = argparse.ArgumentParser(prog="ols-updates manager",
                                     description="Service manager for Optolink-Splitter")
    parser.add_argument("--config", help="Config file to use instead of the tool's index.json")
    try:
        opts = parser.parse_args(args or [])
    except SystemExit as e:
        return {"success": e.code in (0, None)}

    module_dir = Path(__file__).parent
    try:
        config = load_tool_config(module_dir, opts.config)
        validate_tool_config(config, REQUIRED_KEYS)
    except ToolConfigError as e:
        log_message(str(e), "ERROR")
        return {"success": False, "error": str(e)}

    tool = ServiceManagerTool(config, config_path=config_file_path(module_dir, opts.config))
    tool.run_menu()
    return {"success": True}
