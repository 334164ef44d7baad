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

import os
import fcntl
from pathlib import Path
from .index import log_message

# attempts when the lock file is replaced between open and flock
_ATTEMPTS = 5


class UpdateLockError(Exception):
    """Another update process holds the lock."""

    def __init__(self, message: str, pid: int):
        super().__init__(message)
        self.pid = pid


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by someone else
        return True
    return True


def _read_pid(fh) -> int:
    fh.seek(0)
    raw = fh.read().strip()
    return int(raw) if raw.isdigit() else 0


class UpdateLock:
    """
    Lock file allowing one update process at a time.

    The file is held with an exclusive flock for the lifetime of the lock and
    carries the holder's PID. A PID file without a flock (as written by the
    shell tools) still blocks while that PID is alive; a stale one is taken over.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.acquired = False
        self._fh = None

    def _open_locked(self):
        """Open the lock file and flock it; another holder raises UpdateLockError."""
        for _ in range(_ATTEMPTS):
            fh = open(self.path, "a+")
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError:
                pid = _read_pid(fh)
                fh.close()
                raise UpdateLockError(f"Update already running (PID: {pid or 'unknown'})", pid)
            try:
                same_file = os.fstat(fh.fileno()).st_ino == os.stat(self.path).st_ino
            except FileNotFoundError:
                same_file = False
            if same_file:
                return fh
            # released and unlinked by the previous holder while we waited; retry on the new file
            fh.close()
        raise UpdateLockError(f"Could not acquire lock file {self.path}", 0)

    def acquire(self) -> None:
        os.makedirs(self.path.parent, exist_ok=True)
        fh = self._open_locked()

        pid = _read_pid(fh)
        if pid and pid != os.getpid() and _pid_alive(pid):
            fh.close()
            raise UpdateLockError(f"Update already running (PID: {pid})", pid)
        if pid:
            log_message(f"Stale lock file found, taking over: {self.path}", "WARNING")

        fh.seek(0)
        fh.truncate()
        fh.write(f"{os.getpid()}\n")
        fh.flush()
        self._fh = fh
        self.acquired = True

    def release(self) -> None:
        if not self.acquired:
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        self._fh.close()
        self._fh = None
        self.acquired = False

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
