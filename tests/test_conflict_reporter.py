#!/usr/bin/env python3
"""
test_conflict_reporter.py - Tests for grouping protected conflicts by pattern
"""

from ols_updates.modules.backup_update.components.change_analyzer import ProtectedConflict
from ols_updates.modules.backup_update.components.conflict_reporter import (
    ProtectedConflictReporter,
    group_conflicts,
    pattern_matches,
)
from ols_updates.modules.backup_update.components.diff_classifier import ChangeKind

PATTERNS = ["settings_ini.py", "poll_list.py", "myvenv/", "__pycache__/"]


def conflict(path, kind=ChangeKind.CHANGED):
    return ProtectedConflict(path, kind)


class TestPatternMatches:

    def test_exact_file(self):
        assert pattern_matches("settings_ini.py", "settings_ini.py")
        assert not pattern_matches("settings_ini.py", "settings_ini.py.bak")

    def test_directory_prefix(self):
        assert pattern_matches("myvenv/", "myvenv/bin/python")
        assert pattern_matches("myvenv", "myvenv/bin/python")
        assert not pattern_matches("myvenv/", "myvenv2/x")

    def test_empty_pattern(self):
        assert not pattern_matches("/", "anything")
        assert not pattern_matches("", "anything")


class TestGroup:

    def test_counts_and_reasons(self):
        conflicts = [
            conflict("settings_ini.py"),
            conflict("myvenv/bin/python", ChangeKind.DELETED),
            conflict("myvenv/lib/site.py", ChangeKind.DELETED),
            conflict("myvenv/pyvenv.cfg", ChangeKind.CHANGED),
        ]
        grouped, ungrouped = group_conflicts(conflicts, PATTERNS)

        assert list(grouped) == ["settings_ini.py", "myvenv/"]
        assert grouped["settings_ini.py"].count == 1
        assert grouped["myvenv/"].count == 3
        assert grouped["myvenv/"].reasons == [ChangeKind.DELETED, ChangeKind.CHANGED]
        assert grouped["myvenv/"].reason_text == "deleted, changed"
        assert ungrouped == []

    def test_first_pattern_wins(self):
        grouped, _ = group_conflicts([conflict("myvenv/x")], ["myvenv/", "myvenv"])
        assert list(grouped) == ["myvenv/"]

    def test_order_follows_configuration(self):
        conflicts = [conflict("myvenv/a"), conflict("poll_list.py"), conflict("settings_ini.py")]
        grouped, _ = group_conflicts(conflicts, PATTERNS)
        assert list(grouped) == ["settings_ini.py", "poll_list.py", "myvenv/"]

    def test_ungrouped(self):
        conflicts = [conflict("settings_ini.py"), conflict("elsewhere.txt", ChangeKind.NEW)]
        grouped, ungrouped = group_conflicts(conflicts, PATTERNS)

        assert ungrouped == [conflict("elsewhere.txt", ChangeKind.NEW)]
        assert sum(entry.count for entry in grouped.values()) + len(ungrouped) == len(conflicts)

    def test_nothing_to_group(self):
        assert group_conflicts([], PATTERNS) == ({}, [])


class TestRender:

    def test_empty(self):
        assert ProtectedConflictReporter(PATTERNS).render([]) == []

    def test_lines(self):
        lines = ProtectedConflictReporter(PATTERNS).render([
            conflict("settings_ini.py"),
            conflict("myvenv/bin/python", ChangeKind.DELETED),
            conflict("myvenv/bin/pip", ChangeKind.DELETED),
            conflict("stray.txt", ChangeKind.NEW),
        ])

        assert lines == [
            "Protected files (4 kept at their installed version):",
            "  settings_ini.py: 1 file (changed)",
            "  myvenv/: 2 files (deleted)",
            "  Not matched by any protected pattern:",
            "    [NEW] stray.txt",
        ]
