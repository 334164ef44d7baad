#!/usr/bin/env python3
"""
test_lock.py - Tests for the single-update PID lock
"""

import os

import pytest

from ols_updates.utils.lock import UpdateLock, UpdateLockError


class TestUpdateLock:

    def test_acquire_and_release(self, tmp_path):
        path = tmp_path / "update.lock"
        with UpdateLock(str(path)) as lock:
            assert lock.acquired
            assert path.read_text().strip() == str(os.getpid())
        assert not path.exists()

    def test_live_holder_blocks(self, tmp_path):
        path = tmp_path / "update.lock"
        path.write_text(f"{os.getppid()}\n")

        with pytest.raises(UpdateLockError) as exc:
            UpdateLock(str(path)).acquire()
        assert exc.value.pid == os.getppid()
        assert path.exists()

    @pytest.mark.parametrize("content", ["999999999\n", "garbage\n", ""])
    def test_stale_lock_replaced(self, tmp_path, content):
        path = tmp_path / "update.lock"
        path.write_text(content)

        lock = UpdateLock(str(path))
        lock.acquire()
        assert path.read_text().strip() == str(os.getpid())
        lock.release()

    def test_release_without_acquire(self, tmp_path):
        path = tmp_path / "update.lock"
        path.write_text("123\n")
        UpdateLock(str(path)).release()
        assert path.exists()

    def test_released_on_error(self, tmp_path):
        path = tmp_path / "update.lock"
        with pytest.raises(RuntimeError):
            with UpdateLock(str(path)):
                raise RuntimeError("boom")
        assert not path.exists()

    def test_second_lock_blocked_while_held(self, tmp_path):
        path = tmp_path / "update.lock"
        first = UpdateLock(str(path))
        first.acquire()
        try:
            second = UpdateLock(str(path))
            with pytest.raises(UpdateLockError, match="Update already running"):
                second.acquire()
            assert not second.acquired
            assert path.read_text().strip() == str(os.getpid())
        finally:
            first.release()
        assert not path.exists()

    def test_reacquire_after_release(self, tmp_path):
        path = tmp_path / "update.lock"
        with UpdateLock(str(path)):
            pass
        with UpdateLock(str(path)) as lock:
            assert lock.acquired
