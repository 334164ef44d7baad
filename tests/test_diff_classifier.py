#!/usr/bin/env python3
"""
test_diff_classifier.py - Tests for classifying itemized rsync lines
"""

import pytest

from ols_updates.modules.backup_update.components.diff_classifier import (
    ChangeKind,
    ChangeRecord,
    ItemizedLine,
    classify,
)


class TestTransfers:
    """Content transfers and local changes."""

    def test_new_file(self):
        assert classify(">f+++++++++ a.txt") == ChangeRecord(ChangeKind.NEW, "a.txt")

    def test_changed_file(self):
        assert classify(">f.st...... b.txt") == ChangeRecord(ChangeKind.CHANGED, "b.txt")

    def test_checksum_only_change(self):
        assert classify(">fc........ sub/b.txt") == ChangeRecord(ChangeKind.CHANGED, "sub/b.txt")

    def test_new_symlink_is_new(self):
        assert classify("cL+++++++++ link") == ChangeRecord(ChangeKind.NEW, "link")

    def test_changed_symlink_is_changed(self):
        assert classify("cLc.t...... link") == ChangeRecord(ChangeKind.CHANGED, "link")

    def test_path_with_spaces(self):
        assert classify(">f+++++++++ my file.txt") == ChangeRecord(ChangeKind.NEW, "my file.txt")

    def test_trailing_newline_is_ignored(self):
        assert classify(">f+++++++++ a.txt\n") == ChangeRecord(ChangeKind.NEW, "a.txt")


class TestDeletions:
    """'*deleting' lines."""

    def test_deleted_file(self):
        assert classify("*deleting   c.txt") == ChangeRecord(ChangeKind.DELETED, "c.txt")

    def test_deleted_nested_file(self):
        assert classify("*deleting   old/dir/x.py") == ChangeRecord(ChangeKind.DELETED, "old/dir/x.py")

    def test_deleted_directory_is_ignored(self):
        assert classify("*deleting   olddir/") is None

    def test_deleting_without_path(self):
        assert classify("*deleting") is None
        assert classify("*deleting   ") is None

    def test_other_message_is_ignored(self):
        assert classify("*skipping   foo") is None


class TestIgnoredLines:
    """Lines that never produce a record."""

    @pytest.mark.parametrize("line", [
        "cd+++++++++ newdir/",
        ".d..t...... ./",
        ">f+++++++++ dir/",
        ".f          unchanged.txt",
        "<f+++++++++ sent.txt",
        "sending incremental file list",
        "created directory /opt/optolink-splitter",
        "sent 1,234 bytes  received 56 bytes  2,580.00 bytes/sec",
        "total size is 10  speedup is 0.01 (DRY RUN)",
        ">f+++",
        ">f+++++++++",
        "",
    ])
    def test_ignored(self, line):
        assert classify(line) is None

    def test_pure_function(self):
        line = ">f.st...... b.txt"
        assert classify(line) == classify(line)


class TestItemizedLine:

    def test_fields(self):
        item = ItemizedLine.parse(">f.st...... b.txt")
        assert item.update_type == ">"
        assert item.entry_type == "f"
        assert item.attributes == ".st......"
        assert item.path == "b.txt"

    def test_not_itemized(self):
        assert ItemizedLine.parse("cannot delete non-empty directory: x") is None


class TestChangeKind:

    def test_tags(self):
        assert [k.tag for k in ChangeKind] == ["NEW", "CHG", "DEL"]

    def test_description(self):
        assert ChangeKind.DELETED.description == "deleted in update"
