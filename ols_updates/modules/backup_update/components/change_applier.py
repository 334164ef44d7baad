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
Change Applier Component

Applies the selected copy and delete lists to the installed tree:
- copies preserve metadata and create missing parent directories
- a missing source file is counted as skipped, not an error
- deleting a file that is already gone is a no-op
- directories are never copied or removed
- only regular files are deleted; a symlink at a delete path is left in place

All copies run before any delete. The apply is not atomic; the caller stops
the service and takes a backup first.
"""

import os
import shutil
import filecmp
from dataclasses import dataclass, asdict
from typing import Any, Dict, Sequence
from ols_updates.index import log_message


@dataclass
class ApplySummary:
    copied: int = 0
    deleted: int = 0
    skipped: int = 0
    unchanged: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        text = f"{self.copied} copied, {self.deleted} deleted, {self.skipped} skipped"
        if self.unchanged:
            text += f", {self.unchanged} unchanged"
        return text


class ChangeApplyError(Exception):
    """An unexpected filesystem error while applying; the summary holds what was done before it."""

    def __init__(self, message: str, path: str, summary: ApplySummary):
        super().__init__(message)
        self.path = path
        self.summary = summary


def _resolve(root: str, rel_path: str) -> str:
    """Join a relative path under root, refusing anything that escapes it."""
    normalized = os.path.normpath(rel_path)
    if os.path.isabs(normalized) or normalized == ".." or normalized.startswith(".." + os.sep):
        raise ValueError(f"path escapes {root}: {rel_path}")
    return os.path.join(root, normalized)


class ChangeApplier:
    """Copies and deletes individual files between a source tree and the installed tree."""

    def apply(self, source_dir: str, target_dir: str,
              copy_list: Sequence[str], delete_list: Sequence[str]) -> ApplySummary:
        """
        Apply the selected changes.

        Args:
            source_dir: Root of the downloaded version
            target_dir: Root of the installed version
            copy_list: Relative paths to copy from source to target
            delete_list: Relative paths to delete from target

        Returns:
            ApplySummary: Counts of copied, deleted, skipped and unchanged files

        Raises:
            ChangeApplyError: On any filesystem error other than a missing file
        """
        summary = ApplySummary()

        for rel_path in copy_list:
            try:
                self._copy(source_dir, target_dir, rel_path, summary)
            except (OSError, ValueError) as e:
                log_message(f"[APPLY] ✗ Failed to copy {rel_path}: {e}", "ERROR")
                raise ChangeApplyError(f"Failed to copy {rel_path}: {e}", rel_path, summary)

        for rel_path in delete_list:
            try:
                self._delete(target_dir, rel_path, summary)
            except (OSError, ValueError) as e:
                log_message(f"[APPLY] ✗ Failed to delete {rel_path}: {e}", "ERROR")
                raise ChangeApplyError(f"Failed to delete {rel_path}: {e}", rel_path, summary)

        log_message(f"[APPLY] Done: {summary}")
        return summary

    def _copy(self, source_dir: str, target_dir: str, rel_path: str, summary: ApplySummary) -> None:
        src = _resolve(source_dir, rel_path)
        dst = _resolve(target_dir, rel_path)

        if not os.path.isfile(src):
            log_message(f"[APPLY] Source missing, skipped: {rel_path}", "WARNING")
            summary.skipped += 1
            return

        if os.path.isdir(dst):
            log_message(f"[APPLY] Target is a directory, skipped: {rel_path}", "WARNING")
            summary.skipped += 1
            return

        if os.path.isfile(dst) and filecmp.cmp(src, dst, shallow=False):
            log_message(f"[APPLY] Unchanged: {rel_path}", "DEBUG")
            summary.unchanged += 1
            return

        os.makedirs(os.path.dirname(dst), exist_ok=True)
        shutil.copy2(src, dst)
        log_message(f"[APPLY] ✓ Copied: {rel_path}")
        summary.copied += 1

    def _delete(self, target_dir: str, rel_path: str, summary: ApplySummary) -> None:
        dst = _resolve(target_dir, rel_path)

        if os.path.islink(dst) or os.path.isdir(dst):
            log_message(f"[APPLY] Not a regular file, left in place: {rel_path}", "WARNING")
            return

        if os.path.isfile(dst):
            try:
                os.remove(dst)
            except FileNotFoundError:
                log_message(f"[APPLY] Already absent: {rel_path}", "DEBUG")
                return
            log_message(f"[APPLY] ✓ Deleted: {rel_path}")
            summary.deleted += 1
            return

        log_message(f"[APPLY] Already absent: {rel_path}", "DEBUG")
