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
Optolink-Splitter Installer Tool

Step-by-step interactive installer. Every step checks first and only acts
when something is missing, so re-running it is safe. With ``--dry-run``
each command is printed instead of executed and root is not required.
"""

import os
import grp
import pwd
import shutil
import tempfile
import argparse
import subprocess
import requests
from pathlib import Path
from typing import Any, Dict, List, Optional

from ols_updates.index import log_message
from ols_updates.utils.console import Console
from ols_updates.utils.moduleUtils import ToolConfigError, load_tool_config, validate_tool_config
from ols_updates.utils.service_manager import print_cmd
from ols_updates.modules.backup_update.components.github_source import (
    GITHUB_HOME,
    SourceDownloadError,
    download_tarball,
    extract_tarball,
)

REQUIRED_KEYS = [
    "install_path",
    "venv_dir",
    "service_name",
    "service_user",
    "python_cmd",
    "github_url",
    "main_script",
    "packages",
]

DONE = "done"
ALREADY = "already"
SKIPPED = "skipped"
FAILED = "failed"

STEP_ORDER = ["serial", "ttyama", "download", "python", "venv_pkg",
              "user", "serial_grp", "venv", "deps", "service"]

SERIAL_GROUPS = ["dialout", "uucp"]
UNIT_DIR = "/etc/systemd/system"
DIVIDER = "  " + "-" * 40


class InstallError(Exception):
    """A step could not be completed."""
    pass


class InstallAborted(Exception):
    """The operator stopped the installer, or a later step cannot work without this one."""
    pass


class CommandRunner:
    """Echoes each command; runs it unless in dry-run mode."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def run(self, command: List[str], check: bool = True) -> bool:
        print_cmd(command)
        if self.dry_run:
            return True
        try:
            result = subprocess.run(command)
        except OSError as e:
            raise InstallError(f"Failed to run {command[0]}: {e}")
        if check and result.returncode != 0:
            raise InstallError(f"{' '.join(command)} failed (exit {result.returncode})")
        return result.returncode == 0


def render_unit_file(install_path: str, venv_path: str, service_user: str,
                     serial_group: str, main_script: str) -> str:
    """systemd unit for the splitter running from its venv."""
    return f"""[Unit]
Description=Optolink-Splitter Service
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
User={service_user}
Group={service_user}
SupplementaryGroups={serial_group}
WorkingDirectory={install_path}
Environment="PATH={venv_path}/bin:/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"
ExecStart={venv_path}/bin/python {install_path}/{main_script}
Restart=on-failure
RestartSec=10
StandardOutput=journal
StandardError=journal

[Install]
WantedBy=multi-user.target
"""


def user_exists(name: str) -> bool:
    try:
        pwd.getpwnam(name)
        return True
    except KeyError:
        return False


def group_exists(name: str) -> bool:
    try:
        grp.getgrnam(name)
        return True
    except KeyError:
        return False


def detect_serial_group() -> str:
    """"dialout" on Debian-likes, "uucp" on Arch-likes."""
    for name in SERIAL_GROUPS:
        if group_exists(name):
            return name
    return SERIAL_GROUPS[0]


def user_in_group(user: str, group: str) -> bool:
    try:
        entry = grp.getgrnam(group)
        return user in entry.gr_mem or pwd.getpwnam(user).pw_gid == entry.gr_gid
    except KeyError:
        return False


def path_owner(path: str) -> str:
    try:
        return pwd.getpwuid(os.stat(path).st_uid).pw_name
    except (KeyError, OSError):
        return ""


class Installer:
    """Runs the installation steps and records a state for each."""

    LABELS = {
        "serial": "Serial port (optional)",
        "ttyama": "ttyAMA0 setup (optional)",
        "download": "Download optolink-splitter",
        "python": "Python 3 installation",
        "venv_pkg": "python3-venv package",
        "user": "System user '{service_user}'",
        "serial_grp": "Serial group membership",
        "venv": "Virtual environment ({venv_dir})",
        "deps": "Python dependencies",
        "service": "systemd service",
    }

    def __init__(self, config: Dict[str, Any], console: Optional[Console] = None,
                 runner: Optional[CommandRunner] = None, dry_run: bool = False,
                 unit_dir: str = UNIT_DIR, session: Optional[requests.Session] = None):
        cfg = config["config"]
        self.install_path = cfg["install_path"]
        self.venv_dir = cfg["venv_dir"]
        self.service_name = cfg["service_name"]
        self.service_user = cfg["service_user"]
        self.python_cmd = cfg["python_cmd"]
        self.github_url = cfg["github_url"]
        self.main_script = cfg["main_script"]
        self.packages = list(cfg["packages"])
        self.serial_group = detect_serial_group()

        self.dry_run = dry_run
        self.console = console or Console()
        self.runner = runner or CommandRunner(dry_run)
        self.unit_dir = unit_dir
        self.session = session or requests.Session()
        self.status: Dict[str, str] = {}

    @property
    def venv_path(self) -> str:
        return os.path.join(self.install_path, self.venv_dir)

    @property
    def unit_file(self) -> str:
        return os.path.join(self.unit_dir, f"{self.service_name}.service")

    def label(self, key: str) -> str:
        return self.LABELS[key].format(service_user=self.service_user, venv_dir=self.venv_dir)

    # --- Output helpers ---
    def _step_header(self, number: int, title: str) -> None:
        c = self.console
        c.header("Optolink-Splitter Installer")
        c.echo(f"  Step {number}/{len(STEP_ORDER)}; {title}")
        c.echo(DIVIDER)
        c.echo()

    def _result(self, mark: str, text: str) -> None:
        c = self.console
        c.echo()
        c.echo(DIVIDER)
        c.echo()
        c.echo(f"  {mark} {text}")
        c.echo()

    def _set(self, key: str, state: str) -> None:
        self.status[key] = state
        if state == DONE:
            self._result("✓", "Done")
        elif state == SKIPPED:
            self._result("–", "Skipped")
        log_message(f"[INSTALL] {self.label(key)}: {state}", "DEBUG")

    def _confirm(self, question: str, hint: str = "", default: bool = True) -> bool:
        c = self.console
        c.echo()
        c.echo(DIVIDER)
        c.echo()
        c.echo(f"  {question}")
        if hint:
            c.echo(f"  ({hint})")
        c.echo()
        return c.confirm(" ", default=default)

    def _prompt_value(self, label: str, default: str, hint: str = "") -> str:
        c = self.console
        c.echo()
        c.echo(DIVIDER)
        c.echo()
        c.echo(f"  {label}")
        if hint:
            c.echo(f"  ({hint})")
        c.echo()
        answer = c.prompt(f"  [Default: {default}] > ") or default
        c.echo(f"  Your choice: {answer}")
        return answer

    # --- Steps ---
    def welcome(self) -> bool:
        c = self.console
        self._step_header(0, "Welcome")
        c.echo("  This installer will guide you through the setup of Optolink-Splitter")
        c.echo("  step by step. Each step can be skipped or confirmed individually.")
        c.echo()
        c.echo("  Before you continue, make sure you have:")
        c.echo("    - A working internet connection")
        c.echo("    - Root access (sudo)")
        if self.dry_run:
            c.echo()
            c.echo("  ! DRY-RUN MODE; no changes will be made")
        return self._confirm("READY TO BEGIN?")

    def check_internet(self) -> bool:
        try:
            self.session.head(GITHUB_HOME, timeout=5, allow_redirects=True).raise_for_status()
        except requests.RequestException:
            self.console.echo("  ! No internet connection detected.")
            self.console.echo("  The download step will fail without internet access.")
            return False
        self._result("✓", "Internet connection available")
        return True

    def step_serial(self) -> None:
        c = self.console
        self._step_header(1, "Serial Port Setup (optional)")
        c.echo("  On Raspberry Pi the serial port is used by the login console by default.")
        c.echo("  To use a device connected via serial (e.g. Vitoconnect), disable the")
        c.echo("  console and enable the serial port hardware first.")
        c.echo()
        c.echo("  Required only if connecting Vitoconnect or a device via serial port.")
        c.echo("  Not needed if you use USB only.")
        if self._confirm("ENABLE SERIAL PORT NOW? (Raspberry Pi only)",
                         "only required for Vitoconnect / serial port; not needed for USB", default=False):
            c.echo("  Please complete the following steps manually:")
            c.echo()
            c.echo("    sudo raspi-config")
            c.echo("    → Interface Options → Serial Port")
            c.echo("    → Login shell over serial?  → No")
            c.echo("    → Serial port hardware?     → Yes")
            c.echo()
            c.echo("  ! A reboot is required. Reboot, then re-run this installer.")
            raise InstallAborted("serial port setup requires a reboot")
        self._set("serial", SKIPPED)

    def step_ttyama(self) -> None:
        c = self.console
        self._step_header(2, "ttyAMA0 Setup (optional)")
        c.echo("  On Raspberry Pi 3/4, using ttyS0 can cause a termios error when the port")
        c.echo("  is opened more than once. The fix is to use ttyAMA0 instead, which requires")
        c.echo("  freeing it from Bluetooth first.")
        if self._confirm("PLEASE CONFIRM!",
                         "only required for Vitoconnect / serial port; not needed for USB", default=False):
            c.echo("  ! Complete the manual steps above, then reboot and re-run this installer.")
            raise InstallAborted("ttyAMA0 setup requires a reboot")
        self._set("ttyama", SKIPPED)

    def step_download(self) -> None:
        self._step_header(3, "Download Optolink-Splitter")
        self.install_path = self._prompt_value("CHOOSE INSTALLATION DIRECTORY", self.install_path,
                                               "Recommendation to leave as default")
        if os.path.isdir(self.install_path):
            self._result("✓", f"Directory already exists: {self.install_path}")
            self._set("download", ALREADY)
            return

        if self.dry_run:
            print_cmd(["GET", self.github_url])
            print_cmd(["tar", "-xzf", "<tarball>", "-C", "<tmpdir>"])
            print_cmd(["mv", "<tmpdir>/<top-level dir>", self.install_path])
            self._set("download", DONE)
            return

        scratch = Path(tempfile.mkdtemp(prefix="optolink-splitter-"))
        try:
            tarball = download_tarball(self.session, self.github_url, scratch / "source.tar.gz")
            extract_dir = scratch / "src"
            extract_dir.mkdir()
            extract_tarball(tarball, extract_dir)
            roots = [p for p in extract_dir.iterdir() if p.is_dir()]
            if not roots:
                raise InstallError("Archive contains no top-level directory")
            os.makedirs(os.path.dirname(self.install_path.rstrip("/")) or "/", exist_ok=True)
            shutil.move(str(roots[0]), self.install_path)
        except SourceDownloadError as e:
            raise InstallError(str(e))
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
        self._set("download", DONE)

    def step_python(self) -> None:
        self._step_header(4, "Python 3")
        python = shutil.which(self.python_cmd)
        if python:
            result = subprocess.run([python, "--version"], capture_output=True, text=True)
            version = (result.stdout or result.stderr).strip()
            self._result("✓", f"Python already installed: {version}")
            self._set("python", ALREADY)
            return

        self.console.echo("  ! Python 3 not found.")
        if not self._confirm("INSTALL PYTHON 3?"):
            self._set("python", SKIPPED)
            raise InstallAborted("Python 3 is required; the installation cannot continue without it")
        self._apt_install("python", "python3")

    def step_venv_pkg(self) -> None:
        self._step_header(5, "python3-venv package")
        try:
            result = subprocess.run([self.python_cmd, "-c", "import ensurepip"], capture_output=True)
            available = result.returncode == 0
        except OSError:
            available = False
        if available:
            self._result("✓", "python3-venv is already available")
            self._set("venv_pkg", ALREADY)
            return
        self.console.echo("  ! python3-venv not found. Installing...")
        self._apt_install("venv_pkg", "python3-venv")

    def _apt_install(self, key: str, package: str) -> None:
        if not shutil.which("apt-get"):
            self.status[key] = FAILED
            raise InstallError(f"apt-get not found. Please install {package} manually and re-run.")
        self.runner.run(["apt-get", "install", "-y", package])
        self._set(key, DONE)

    def step_user(self) -> None:
        self._step_header(6, "Service User")
        user = self.service_user
        if user_exists(user):
            self._result("✓", f"User '{user}' already exists")
            self._set("user", ALREADY)
        elif self._confirm(f"CREATE SERVICE USER '{user}'?",
                           "recommended; more secure than running as root or pi"):
            self.runner.run(["useradd", "-r", "-s", "/usr/sbin/nologin", "-M", user])
            self._set("user", DONE)
        else:
            self._set("user", SKIPPED)
            self.console.echo("  ! Without a dedicated user the service will not work as configured.")

        if user_exists(user) and os.path.isdir(self.install_path):
            if path_owner(self.install_path) == user:
                self._result("✓", f"Ownership of {self.install_path} already correct")
            else:
                self.runner.run(["chown", "-R", f"{user}:{user}", self.install_path])
                self._result("✓", f"Ownership of {self.install_path} set to {user}")

    def step_serial_group(self) -> None:
        self._step_header(7, "Serial Group")
        self.console.echo(f"  Detected serial group: {self.serial_group}")
        self.serial_group = self._prompt_value(
            "SERIAL GROUP", self.serial_group,
            "Recommendation to leave as default unless your system uses a different group")

        user = self.service_user
        if not user_exists(user):
            self.console.echo(f"  ! User '{user}' does not exist; skipping group assignment.")
            self._set("serial_grp", SKIPPED)
            return
        if user_in_group(user, self.serial_group):
            self._result("✓", f"User '{user}' is already in group '{self.serial_group}'")
            self._set("serial_grp", ALREADY)
        elif self._confirm(f"ADD '{user}' TO GROUP '{self.serial_group}'?"):
            self.runner.run(["usermod", "-a", "-G", self.serial_group, user])
            self._set("serial_grp", DONE)
        else:
            self._set("serial_grp", SKIPPED)
            self.console.echo("  ! Serial port access may not work without group membership.")

    def step_venv(self) -> None:
        self._step_header(8, "Virtual Environment")
        self.venv_dir = self._prompt_value("VIRTUAL ENVIRONMENT NAME", self.venv_dir,
                                           "Recommendation to leave as default")
        self.console.echo(f"  Path: {self.venv_path}")
        if os.path.isfile(os.path.join(self.venv_path, "bin", "activate")):
            self._result("✓", "Virtual environment already exists")
            self._set("venv", ALREADY)
            return
        self.runner.run([self.python_cmd, "-m", "venv", self.venv_path])
        self.runner.run(["chown", "-R", f"{self.service_user}:{self.service_user}", self.venv_path], check=False)
        self._set("venv", DONE)

    def step_deps(self) -> None:
        self._step_header(9, "Python Dependencies")
        self.console.echo("  Installs the required Python packages into the virtual environment:")
        self.console.echo(f"    {', '.join(self.packages)}")
        if not self._confirm("INSTALL / UPGRADE PYTHON PACKAGES?"):
            self._set("deps", SKIPPED)
            return
        pip = os.path.join(self.venv_path, "bin", "pip")
        self.runner.run([pip, "install", "-q", "--upgrade", "pip", "setuptools", "wheel"])
        self.runner.run([pip, "install", "-q", *self.packages])
        self._set("deps", DONE)

    def step_service(self) -> None:
        c = self.console
        self._step_header(10, "systemd Service")
        c.echo(f"  Service file: {self.unit_file}")

        if os.path.isfile(self.unit_file):
            c.echo("  ! Service file already exists.")
            if not self._confirm("OVERWRITE EXISTING SERVICE FILE?"):
                self._result("✓", "Service file kept as is")
                self._set("service", ALREADY)
                return

        content = render_unit_file(self.install_path, self.venv_path, self.service_user,
                                   self.serial_group, self.main_script)
        if self.dry_run:
            print_cmd(["cat", ">", self.unit_file])
            for line in content.splitlines():
                c.echo(f"    {line}")
        else:
            try:
                with open(self.unit_file, "w") as f:
                    f.write(content)
            except OSError as e:
                self.status["service"] = FAILED
                raise InstallError(f"Could not write {self.unit_file}: {e}")
        self._result("✓", "Service file written")

        self.runner.run(["systemctl", "daemon-reload"])
        c.echo("  Enabling means the service starts automatically on every boot.")
        if self._confirm("ENABLE SERVICE (auto-start on boot)?", "recommended"):
            self.runner.run(["systemctl", "enable", f"{self.service_name}.service"])
            self._result("✓", "Service enabled")
        else:
            self._result("–", f"Not enabled. Enable later:  sudo systemctl enable {self.service_name}")
        self._set("service", DONE)

    # --- Summary ---
    def summary_lines(self) -> List[str]:
        marks = {DONE: ("✓", "done"), ALREADY: ("✓", "already done"),
                 SKIPPED: ("–", "skipped"), FAILED: ("✗", "FAILED")}
        lines = ["  Installation Summary", DIVIDER, ""]
        for key in STEP_ORDER:
            mark, text = marks.get(self.status.get(key), ("?", "unknown"))
            lines.append(f"  {mark}  {self.label(key):<40} {text}")
        return lines

    def next_steps_lines(self) -> List[str]:
        return [
            "  ! Before starting, create the config files:",
            f"    {self.install_path}/settings_ini.py",
            f"    {self.install_path}/poll_list.py",
            "",
            f"  Start service:  sudo systemctl start {self.service_name}",
            f"  Service status: sudo systemctl status {self.service_name}",
            f"  Service logs:   sudo journalctl -u {self.service_name} -f",
            f"  Manual start:   cd {self.install_path} && source {self.venv_dir}/bin/activate "
            f"&& python {self.main_script}",
        ]

    def show_summary(self) -> None:
        c = self.console
        c.header("Optolink-Splitter Installer")
        for line in self.summary_lines():
            c.echo(line)
        c.echo()

    def run(self) -> Dict[str, Any]:
        """
        Run all steps in order.

        Returns:
            dict: {"success": bool, "steps": {key: state}, ...}
        """
        c = self.console
        if not self.welcome():
            c.echo("  Installation cancelled. Run the installer again whenever you are ready.")
            return {"success": True, "cancelled": True, "steps": self.status}

        if os.geteuid() != 0 and not self.dry_run:
            c.echo("  ✗ This installer must be run as root.")
            c.echo("  Tip: add --dry-run to preview without root")
            return {"success": False, "error": "root required", "steps": self.status}

        self.check_internet()
        steps = [self.step_serial, self.step_ttyama, self.step_download, self.step_python,
                 self.step_venv_pkg, self.step_user, self.step_serial_group, self.step_venv,
                 self.step_deps, self.step_service]
        for step in steps:
            try:
                step()
            except InstallAborted as e:
                log_message(f"[INSTALL] Stopped: {e}")
                self.show_summary()
                return {"success": True, "stopped": str(e), "steps": self.status}
            except InstallError as e:
                log_message(f"[INSTALL] ✗ {e}", "ERROR")
                c.echo(f"  ✗ {e}")
                self.show_summary()
                return {"success": False, "error": str(e), "steps": self.status}
            c.pause()

        self.show_summary()
        for line in self.next_steps_lines():
            c.echo(line)
        c.echo()
        return {"success": True, "steps": self.status}


def main(args=None):
    """
    Main entry point for the installer.

    Args:
        args: Command line arguments (--dry-run, --config PATH)

    Returns:
        dict: {"success": bool, "steps": {...}}
    """
    parser = argparse.ArgumentParser(prog="ols-updates install",
                                     description="Interactive installer for Optolink-Splitter")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print commands without executing them")
    parser.add_argument("--config", help="Config file to use instead of the tool's index.json")
    try:
        opts = parser.parse_args(args or [])
    except SystemExit as e:
        return {"success": e.code in (0, None)}

    try:
        config = load_tool_config(Path(__file__).parent, opts.config)
        validate_tool_config(config, REQUIRED_KEYS)
    except ToolConfigError as e:
        log_message(str(e), "ERROR")
        return {"success": False, "error": str(e)}

    return Installer(config, dry_run=opts.dry_run).run()
