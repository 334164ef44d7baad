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
Change Set Analyzer Component

Compares a freshly downloaded source tree with the installed tree using two
rsync dry runs:

- the filtered run (``--exclude`` per protected pattern) gives the change set
  that may be applied
- the unfiltered run shows what the update would have touched without the
  patterns; every unfiltered line missing from the filtered output is a
  protected conflict

Neither run modifies either tree. Names are printed with ``--8-bit-output`` so
non-ASCII paths come back as they are on disk instead of ``\\#ooo`` escapes.
"""

import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple
from ols_updates.index import log_message
from .diff_classifier import ChangeKind, ChangeRecord, classify

RSYNC_DRY_RUN_FLAGS = ["-r", "-n", "-v", "-c", "--delete", "--itemize-changes", "--8-bit-output"]


class MirrorToolError(Exception):
    """rsync could not be executed."""
    pass


@dataclass(frozen=True)
class ProtectedConflict:
    """A path the update would touch if it were not protected by an exclude pattern."""
    path: str
    reason: ChangeKind


@dataclass
class ChangeSet:
    """Applicable changes from the filtered dry run, in report order."""
    new: List[str] = field(default_factory=list)
    changed: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add(self, record: ChangeRecord) -> None:
        {
            ChangeKind.NEW: self.new,
            ChangeKind.CHANGED: self.changed,
            ChangeKind.DELETED: self.deleted,
        }[record.kind].append(record.path)

    @property
    def total(self) -> int:
        return len(self.new) + len(self.changed) + len(self.deleted)

    def is_empty(self) -> bool:
        return self.total == 0

    def candidates(self) -> List[ChangeRecord]:
        """Selection candidates: new, then changed, then deleted."""
        return (
            [ChangeRecord(ChangeKind.NEW, p) for p in self.new]
            + [ChangeRecord(ChangeKind.CHANGED, p) for p in self.changed]
            + [ChangeRecord(ChangeKind.DELETED, p) for p in self.deleted]
        )


@dataclass
class DryRunOutput:
    """Raw output of one rsync dry run."""
    lines: List[str]
    returncode: int
    stderr: str = ""


def build_rsync_command(source_dir: str, target_dir: str,
                        exclude_patterns: Optional[Sequence[str]] = None,
                        rsync_binary: str = "rsync") -> List[str]:
    """rsync dry-run command line; trailing slashes make rsync compare directory contents."""
    command = [rsync_binary] + RSYNC_DRY_RUN_FLAGS
    for pattern in exclude_patterns or []:
        command.append(f"--exclude={pattern}")
    command.append(str(source_dir).rstrip("/") + "/")
    command.append(str(target_dir).rstrip("/") + "/")
    return command


class ChangeSetAnalyzer:
    """Runs the two dry runs and turns their output into a ChangeSet and protected conflicts."""

    def __init__(self, runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
                 rsync_binary: str = "rsync"):
        self.runner = runner or subprocess.run
        self.rsync_binary = rsync_binary

    def dry_run(self, source_dir: str, target_dir: str,
                exclude_patterns: Optional[Sequence[str]] = None) -> DryRunOutput:
        """
        Run one rsync dry run.

        Raises:
            MirrorToolError: If rsync is missing or cannot be executed
        """
        command = build_rsync_command(source_dir, target_dir, exclude_patterns, self.rsync_binary)
        log_message(f"[DIFF] Running: {' '.join(command)}", "DEBUG")
        try:
            result = self.runner(command, capture_output=True, text=True, errors="surrogateescape")
        except OSError as e:
            raise MirrorToolError(f"Failed to run {self.rsync_binary}: {e}")

        lines = [line for line in (result.stdout or "").splitlines() if line]
        return DryRunOutput(lines=lines, returncode=result.returncode, stderr=(result.stderr or "").strip())

    def _check_exit(self, output: DryRunOutput, label: str, change_set: ChangeSet) -> None:
        if output.returncode == 0:
            return
        if output.lines:
            warning = (f"rsync {label} dry run exited with code {output.returncode}; "
                       f"using the {len(output.lines)} line(s) it reported")
        else:
            warning = (f"rsync {label} dry run exited with code {output.returncode} "
                       f"and reported nothing; treating as no changes")
        if output.stderr:
            warning += f" ({output.stderr.splitlines()[-1]})"
        log_message(f"[DIFF] {warning}", "WARNING")
        change_set.warnings.append(warning)

    def analyze(self, source_dir: str, target_dir: str,
                exclude_patterns: Optional[Sequence[str]] = None
                ) -> Tuple[ChangeSet, List[ProtectedConflict]]:
        """
        Compute the applicable change set and the protected conflicts.

        Args:
            source_dir: Root of the downloaded version
            target_dir: Root of the installed version
            exclude_patterns: Protected patterns, passed to rsync as --exclude

        Returns:
            Tuple of (ChangeSet, list of ProtectedConflict)

        Raises:
            MirrorToolError: If rsync is missing or cannot be executed
        """
        patterns = list(exclude_patterns or [])
        change_set = ChangeSet()

        unfiltered = self.dry_run(source_dir, target_dir)
        self._check_exit(unfiltered, "unfiltered", change_set)
        filtered = self.dry_run(source_dir, target_dir, patterns)
        self._check_exit(filtered, "filtered", change_set)

        seen = set()
        for line in filtered.lines:
            record = classify(line)
            if record is None or record.path in seen:
                continue
            seen.add(record.path)
            change_set.add(record)

        filtered_lines = set(filtered.lines)
        conflicts = []
        for line in unfiltered.lines:
            record = classify(line)
            if record is None:
                continue
            if line not in filtered_lines:
                conflicts.append(ProtectedConflict(record.path, record.kind))

        log_message(f"[DIFF] {len(change_set.new)} new, {len(change_set.changed)} changed, "
                    f"{len(change_set.deleted)} deleted, {len(conflicts)} protected")
        return change_set, conflicts
