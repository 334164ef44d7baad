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
systemd service helpers

Thin wrappers around systemctl / journalctl for the Optolink-Splitter
service. Mutating commands run through sudo when the current user is not
root and sudo is available; every command is echoed before it runs.
"""

import os
import shlex
import shutil
import subprocess
from typing import List, Optional
from .index import log_message


class ServiceError(Exception):
    """Raised when systemctl cannot be executed at all."""
    pass


def sudo_prefix() -> List[str]:
    """["sudo"] when not running as root and sudo is installed, else []."""
    if os.geteuid() != 0 and shutil.which("sudo"):
        return ["sudo"]
    return []


def print_cmd(command: List[str]) -> None:
    print("+ " + " ".join(shlex.quote(part) for part in command))


class ServiceManager:
    """systemctl / journalctl front-end for one unit."""

    def __init__(self, service_name: str, use_sudo: Optional[bool] = None, echo: bool = True):
        self.service_name = service_name
        if use_sudo is None:
            self.prefix = sudo_prefix()
        else:
            self.prefix = ["sudo"] if use_sudo else []
        self.echo = echo

    def _run(self, command: List[str], capture: bool = False) -> subprocess.CompletedProcess:
        if self.echo and not capture:
            print_cmd(command)
        try:
            return subprocess.run(command, capture_output=capture, text=True)
        except OSError as e:
            raise ServiceError(f"Failed to run {command[0]}: {e}")

    def _query(self, *args: str) -> str:
        """Read-only systemctl query; output stripped, "" on failure to execute."""
        try:
            result = subprocess.run(["systemctl", *args], capture_output=True, text=True)
        except OSError as e:
            log_message(f"[SERVICE] systemctl {' '.join(args)} error: {e}", "WARNING")
            return ""
        return result.stdout.strip()

    # --- Control ---
    def systemctl(self, action: str, *extra: str) -> bool:
        """Execute a systemctl action for the service; False on non-zero exit."""
        command = self.prefix + ["systemctl", action, self.service_name, *extra]
        result = self._run(command)
        if result.returncode != 0:
            log_message(f"[SERVICE] systemctl {action} {self.service_name} failed (exit {result.returncode})", "ERROR")
            return False
        return True

    def start(self) -> bool:
        return self.systemctl("start")

    def stop(self) -> bool:
        return self.systemctl("stop")

    def restart(self) -> bool:
        return self.systemctl("restart")

    def enable(self) -> bool:
        return self.systemctl("enable")

    def disable(self) -> bool:
        return self.systemctl("disable")

    def status(self) -> bool:
        return self.systemctl("status", "--no-pager")

    def cat(self) -> bool:
        return self.systemctl("cat")

    # --- State ---
    def is_active(self) -> bool:
        """Check if the service is active."""
        try:
            result = subprocess.run(["systemctl", "is-active", "--quiet", self.service_name])
            return result.returncode == 0
        except OSError:
            return False

    def active_state(self) -> str:
        return self._query("is-active", self.service_name) or "unknown"

    def enabled_state(self) -> str:
        return self._query("is-enabled", self.service_name) or "unknown"

    def sub_state(self) -> str:
        return self._query("show", "-p", "SubState", "--value", self.service_name)

    def summary(self) -> str:
        """One-line state: "RUNNING (running) [enabled]"."""
        active = self.active_state()
        labels = {"active": "RUNNING", "inactive": "STOPPED", "failed": "FAILED"}
        text = labels.get(active, "UNKNOWN")

        sub = self.sub_state()
        if sub.strip() and sub != active:
            text += f" ({sub})"

        text += f" [{self.enabled_state()}]"
        return text

    # --- Logs ---
    def journal(self, lines: int = 20, follow: bool = False, timestamps: bool = False,
                priority: Optional[str] = None) -> bool:
        """
        Show journal lines for the service. Following ends on Ctrl+C and returns to the caller.
        """
        command = self.prefix + ["journalctl", "-u", self.service_name]
        if follow:
            command.append("-f")
        else:
            command.append("--no-pager")
        if priority:
            command.extend(["-p", priority])
        command.extend(["-n", str(lines)])
        if timestamps:
            command.extend(["-o", "short-iso"])

        if not follow:
            return self._run(command).returncode == 0

        if self.echo:
            print_cmd(command)
        try:
            process = subprocess.Popen(command)
        except OSError as e:
            raise ServiceError(f"Failed to run journalctl: {e}")
        try:
            process.wait()
        except KeyboardInterrupt:
            process.terminate()
            process.wait()
        print()
        return True

    def daemon_reload(self) -> bool:
        result = self._run(self.prefix + ["systemctl", "daemon-reload"])
        return result.returncode == 0


def systemd_available() -> bool:
    """True when systemctl runs; the tools require a systemd-based system."""
    try:
        result = subprocess.run(["systemctl", "--version"], capture_output=True, text=True)
        return result.returncode == 0
    except OSError:
        return False
