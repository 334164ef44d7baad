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
Protected Conflict Reporter Component

Groups protected conflicts under the exclude pattern that protected them so
the operator sees "settings_ini.py: 1 file (changed)" instead of a raw list.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple
from .diff_classifier import ChangeKind
from .change_analyzer import ProtectedConflict


@dataclass
class PatternConflicts:
    """Conflicts attributed to one exclude pattern."""
    pattern: str
    count: int = 0
    reasons: List[ChangeKind] = field(default_factory=list)

    def add(self, conflict: ProtectedConflict) -> None:
        self.count += 1
        if conflict.reason not in self.reasons:
            self.reasons.append(conflict.reason)

    @property
    def reason_text(self) -> str:
        return ", ".join(reason.value for reason in self.reasons)


def pattern_matches(pattern: str, path: str) -> bool:
    """Exact path, or a directory prefix ("myvenv/" matches "myvenv/bin/python")."""
    stripped = pattern.rstrip("/")
    if not stripped:
        return False
    return path == stripped or path.startswith(stripped + "/")


class ProtectedConflictReporter:
    """Attributes protected conflicts to exclude patterns and renders the report."""

    def __init__(self, patterns: Sequence[str]):
        self.patterns = list(patterns)

    def group(self, conflicts: Sequence[ProtectedConflict]
              ) -> Tuple[Dict[str, PatternConflicts], List[ProtectedConflict]]:
        """
        Attribute each conflict to the first matching pattern.

        Returns:
            Tuple of ({pattern: PatternConflicts} in configured order, ungrouped conflicts)
        """
        found: Dict[str, PatternConflicts] = {}
        ungrouped = []
        for conflict in conflicts:
            for pattern in self.patterns:
                if pattern_matches(pattern, conflict.path):
                    found.setdefault(pattern, PatternConflicts(pattern)).add(conflict)
                    break
            else:
                ungrouped.append(conflict)

        grouped = {pattern: found[pattern] for pattern in self.patterns if pattern in found}
        return grouped, ungrouped

    def render(self, conflicts: Sequence[ProtectedConflict]) -> List[str]:
        """Report lines for the update screen; empty when nothing is protected."""
        if not conflicts:
            return []

        grouped, ungrouped = self.group(conflicts)
        lines = [f"Protected files ({len(conflicts)} kept at their installed version):"]
        for entry in grouped.values():
            noun = "file" if entry.count == 1 else "files"
            lines.append(f"  {entry.pattern}: {entry.count} {noun} ({entry.reason_text})")

        if ungrouped:
            lines.append("  Not matched by any protected pattern:")
            for conflict in ungrouped:
                lines.append(f"    [{conflict.reason.tag}] {conflict.path}")
        return lines


def group_conflicts(conflicts: Sequence[ProtectedConflict], patterns: Sequence[str]
                    ) -> Tuple[Dict[str, PatternConflicts], List[ProtectedConflict]]:
    return ProtectedConflictReporter(patterns).group(conflicts)
