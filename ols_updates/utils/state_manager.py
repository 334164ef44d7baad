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
Backup Manager for the Optolink-Splitter installation

Timestamped full-tree backups of the installation directory with a retention
limit. Each backup is a plain copy of the install tree named
``<prefix><YYYYmmdd_HHMMSS>``; the newest ``max_backups`` are kept.

Key Features:
- Backup prefix derived from the install dir (beside it, or inside a base dir)
- Newest-first listing by modification time
- Rotation of backups beyond the retention count
- Restore that mirrors a backup into the install dir
- Size / file-count statistics for the backup table

Usage:
    from ols_updates.utils.state_manager import BackupManager

    backups = BackupManager("/opt/optolink-splitter", base_dir="", max_backups=5)
    backup_dir = backups.create_backup()
    backups.cleanup_old_backups()
    backups.restore_backup(backup_dir)
"""

import os
import re
import glob
import shutil
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, asdict
from .index import log_message

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
_TIMESTAMP_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})_(\d{2})(\d{2})(\d{2})$")


class BackupError(Exception):
    """Custom exception for backup operation failures."""
    pass


@dataclass
class BackupInfo:
    """Information about one backup directory."""
    path: str
    timestamp: str
    size_bytes: int
    file_count: int

    @property
    def display_date(self) -> str:
        return format_backup_date(self.timestamp)

    @property
    def display_size(self) -> str:
        return human_size(self.size_bytes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def format_backup_date(raw: str) -> str:
    """Turn "20250131_235959" into "2025-01-31 23:59:59"; anything else is returned unchanged."""
    match = _TIMESTAMP_RE.match(raw)
    if not match:
        return raw
    y, mo, d, h, mi, s = match.groups()
    return f"{y}-{mo}-{d} {h}:{mi}:{s}"


def backup_timestamp(path) -> str:
    """The part of the backup directory name after "_backup_"."""
    name = os.path.basename(str(path).rstrip("/"))
    _, sep, rest = name.partition("_backup_")
    return rest if sep else name


def human_size(size_bytes: int) -> str:
    """du -sh style size ("512B", "4.0K", "1.2M")."""
    size = float(size_bytes)
    for unit in ["B", "K", "M", "G"]:
        if size < 1024 or unit == "G":
            if unit == "B":
                return f"{int(size)}B"
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


class BackupManager:
    """
    Timestamped backups of one installation directory with a retention count.
    """

    def __init__(self, install_dir: str, base_dir: str = "", max_backups: int = 5):
        self.install_dir = Path(install_dir)
        self.base_dir = base_dir or ""
        self.max_backups = int(max_backups)

    @property
    def backup_prefix(self) -> str:
        """Backups live in base_dir when configured, otherwise beside the install dir."""
        install = str(self.install_dir).rstrip("/")
        if self.base_dir:
            return os.path.join(self.base_dir, f"{os.path.basename(install)}_backup_")
        return f"{install}_backup_"

    def list_backups(self) -> List[Path]:
        """All backup directories, newest first."""
        candidates = [p for p in glob.glob(glob.escape(self.backup_prefix) + "*") if os.path.isdir(p)]
        candidates.sort(key=lambda p: (os.path.getmtime(p), p), reverse=True)
        return [Path(p) for p in candidates]

    def count_backups(self) -> int:
        return len(self.list_backups())

    def latest_backup_date(self) -> str:
        backups = self.list_backups()
        if not backups:
            return "none"
        return format_backup_date(backup_timestamp(backups[0]))

    def describe(self, backup_path) -> BackupInfo:
        """Size and file count of a backup, for the backup table."""
        size = 0
        files = 0
        for root, dirs, names in os.walk(backup_path):
            for name in names:
                try:
                    size += os.lstat(os.path.join(root, name)).st_size
                    files += 1
                except OSError:
                    continue
        return BackupInfo(
            path=str(backup_path),
            timestamp=backup_timestamp(backup_path),
            size_bytes=size,
            file_count=files,
        )

    def new_backup_path(self, now: Optional[datetime] = None) -> Path:
        """Path for a new backup; a numeric suffix avoids clobbering a backup taken the same second."""
        stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
        candidate = Path(f"{self.backup_prefix}{stamp}")
        counter = 1
        while candidate.exists():
            candidate = Path(f"{self.backup_prefix}{stamp}_{counter}")
            counter += 1
        return candidate

    def create_backup(self, now: Optional[datetime] = None) -> Path:
        """
        Copy the whole install tree into a new timestamped backup directory.

        Returns:
            Path: The created backup directory

        Raises:
            BackupError: If the install dir is missing or the copy fails
        """
        if not self.install_dir.is_dir():
            raise BackupError(f"Installation directory not found: {self.install_dir}")

        backup_dir = self.new_backup_path(now)
        log_message(f"[BACKUP] Backing up {self.install_dir} to {backup_dir}")

        try:
            backup_dir.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(self.install_dir, backup_dir, symlinks=True)
        except (OSError, shutil.Error) as e:
            raise BackupError(f"Failed to create backup {backup_dir}: {e}")

        log_message(f"[BACKUP] ✓ Backup created: {backup_dir}")
        return backup_dir

    def cleanup_old_backups(self) -> List[Path]:
        """
        Delete the oldest backups beyond max_backups.

        Returns:
            List[Path]: The removed backup directories
        """
        backups = self.list_backups()
        count = len(backups)
        if count <= self.max_backups:
            log_message(f"[BACKUP] Backups: {count} / {self.max_backups} - nothing to clean up.")
            return []

        removed = []
        log_message(f"[BACKUP] Deleting {count - self.max_backups} old backup(s)...")
        for backup in backups[self.max_backups:]:
            log_message(f"[BACKUP] Removing: {backup}")
            try:
                shutil.rmtree(backup)
            except OSError as e:
                raise BackupError(f"Failed to remove old backup {backup}: {e}")
            removed.append(backup)
        return removed

    def restore_backup(self, backup_path, delete_extraneous: bool = True) -> bool:
        """
        Mirror a backup into the install dir.

        Args:
            backup_path: Backup directory to restore from
            delete_extraneous: Remove files in the install dir that the backup does not have

        Returns:
            bool: True if restore successful

        Raises:
            BackupError: If the backup does not exist or copying fails
        """
        source = Path(backup_path)
        if not source.is_dir():
            raise BackupError(f"Backup not found: {source}")

        log_message(f"[BACKUP] Restoring {source} to {self.install_dir}")
        try:
            self.install_dir.mkdir(parents=True, exist_ok=True)
            if delete_extraneous:
                self._remove_extraneous(source, self.install_dir)
            shutil.copytree(source, self.install_dir, symlinks=True, dirs_exist_ok=True)
        except (OSError, shutil.Error) as e:
            raise BackupError(f"Failed to restore backup {source}: {e}")

        log_message("[BACKUP] ✓ Backup restored")
        return True

    def _remove_extraneous(self, source: Path, target: Path) -> None:
        """Delete entries under target that have no counterpart of the same type under source."""
        for root, dirs, files in os.walk(target, topdown=False):
            rel = os.path.relpath(root, target)
            source_root = source if rel == "." else source / rel

            for name in files:
                counterpart = source_root / name
                if not os.path.lexists(counterpart) or counterpart.is_dir():
                    os.remove(os.path.join(root, name))
                    log_message(f"[BACKUP] Removed extraneous file: {os.path.join(rel, name)}", "DEBUG")

            for name in dirs:
                path = os.path.join(root, name)
                counterpart = source_root / name
                if os.path.islink(path):
                    if not os.path.islink(counterpart):
                        os.remove(path)
                elif not counterpart.is_dir() or counterpart.is_symlink():
                    shutil.rmtree(path)
                    log_message(f"[BACKUP] Removed extraneous directory: {os.path.join(rel, name)}", "DEBUG")
