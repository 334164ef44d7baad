#!/usr/bin/env python3
"""
test_state_manager.py - Tests for the timestamped install-tree backups
"""

import os
from datetime import datetime

import pytest

from ols_updates.utils.state_manager import (
    BackupError,
    BackupManager,
    backup_timestamp,
    format_backup_date,
    human_size,
)


@pytest.fixture
def install(tmp_path, make_tree):
    return make_tree(tmp_path / "optolink-splitter", {
        "optolinkvs2_switch.py": "main\n",
        "settings_ini.py": "local\n",
        "sub/helper.py": "h\n",
    })


def make_backups(manager, count):
    """Create count backups with increasing timestamps and mtimes."""
    paths = []
    for i in range(count):
        path = manager.create_backup(now=datetime(2025, 1, 1, 12, 0, i))
        os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))
        paths.append(path)
    return paths


class TestBackupPrefix:

    def test_beside_install_dir(self, install):
        manager = BackupManager(str(install) + "/")
        assert manager.backup_prefix == f"{install}_backup_"

    def test_inside_base_dir(self, install, tmp_path):
        manager = BackupManager(str(install), base_dir=str(tmp_path / "bk"))
        assert manager.backup_prefix == str(tmp_path / "bk" / "optolink-splitter_backup_")


class TestCreateBackup:

    def test_copies_tree(self, install):
        manager = BackupManager(str(install))
        backup = manager.create_backup(now=datetime(2025, 3, 4, 5, 6, 7))

        assert backup.name == "optolink-splitter_backup_20250304_050607"
        assert (backup / "sub" / "helper.py").read_text() == "h\n"

    def test_same_second_gets_suffix(self, install):
        manager = BackupManager(str(install))
        now = datetime(2025, 3, 4, 5, 6, 7)
        first = manager.create_backup(now=now)
        second = manager.create_backup(now=now)

        assert first != second
        assert second.name.endswith("_1")

    def test_missing_install_dir(self, tmp_path):
        with pytest.raises(BackupError, match="Installation directory not found"):
            BackupManager(str(tmp_path / "nope")).create_backup()


class TestListAndCleanup:

    def test_newest_first(self, install, tmp_path):
        manager = BackupManager(str(install), base_dir=str(tmp_path / "bk"))
        paths = make_backups(manager, 3)

        assert manager.list_backups() == list(reversed(paths))
        assert manager.count_backups() == 3
        assert manager.latest_backup_date() == "2025-01-01 12:00:02"

    def test_cleanup_keeps_newest(self, install, tmp_path):
        manager = BackupManager(str(install), base_dir=str(tmp_path / "bk"), max_backups=2)
        paths = make_backups(manager, 4)

        removed = manager.cleanup_old_backups()

        assert sorted(removed) == sorted(paths[:2])
        assert manager.list_backups() == [paths[3], paths[2]]

    def test_cleanup_under_limit(self, install, tmp_path):
        manager = BackupManager(str(install), base_dir=str(tmp_path / "bk"), max_backups=5)
        make_backups(manager, 2)
        assert manager.cleanup_old_backups() == []
        assert manager.count_backups() == 2

    def test_cleanup_error_is_backup_error(self, install, tmp_path, monkeypatch):
        manager = BackupManager(str(install), base_dir=str(tmp_path / "bk"), max_backups=1)
        make_backups(manager, 2)

        def busy(path):
            raise OSError(16, "Device or resource busy")

        monkeypatch.setattr("ols_updates.utils.state_manager.shutil.rmtree", busy)
        with pytest.raises(BackupError, match="Failed to remove old backup"):
            manager.cleanup_old_backups()

    def test_no_backups(self, install, tmp_path):
        manager = BackupManager(str(install), base_dir=str(tmp_path / "bk"))
        assert manager.list_backups() == []
        assert manager.latest_backup_date() == "none"

    def test_describe(self, install):
        manager = BackupManager(str(install))
        info = manager.describe(manager.create_backup(now=datetime(2025, 1, 2, 3, 4, 5)))

        assert info.file_count == 3
        assert info.size_bytes == len("main\n") + len("local\n") + len("h\n")
        assert info.display_date == "2025-01-02 03:04:05"
        assert info.display_size == f"{info.size_bytes}B"


class TestRestore:

    def test_restore_mirrors_backup(self, install):
        manager = BackupManager(str(install))
        backup = manager.create_backup()

        (install / "settings_ini.py").write_text("broken\n")
        (install / "sub" / "helper.py").unlink()
        (install / "added.py").write_text("x\n")
        (install / "newdir").mkdir()
        (install / "newdir" / "y.py").write_text("y\n")

        assert manager.restore_backup(backup) is True
        assert (install / "settings_ini.py").read_text() == "local\n"
        assert (install / "sub" / "helper.py").read_text() == "h\n"
        assert not (install / "added.py").exists()
        assert not (install / "newdir").exists()

    def test_restore_keeps_extraneous_when_asked(self, install):
        manager = BackupManager(str(install))
        backup = manager.create_backup()
        (install / "added.py").write_text("x\n")

        manager.restore_backup(backup, delete_extraneous=False)
        assert (install / "added.py").exists()

    def test_missing_backup(self, install, tmp_path):
        with pytest.raises(BackupError, match="Backup not found"):
            BackupManager(str(install)).restore_backup(tmp_path / "ghost")


class TestHelpers:

    def test_format_backup_date(self):
        assert format_backup_date("20250131_235959") == "2025-01-31 23:59:59"
        assert format_backup_date("manual") == "manual"

    def test_backup_timestamp(self):
        assert backup_timestamp("/opt/optolink-splitter_backup_20250131_235959/") == "20250131_235959"
        assert backup_timestamp("/elsewhere/plain") == "plain"

    @pytest.mark.parametrize("size,text", [(0, "0B"), (512, "512B"), (4096, "4.0K"), (1536 * 1024, "1.5M")])
    def test_human_size(self, size, text):
        assert human_size(size) == text
