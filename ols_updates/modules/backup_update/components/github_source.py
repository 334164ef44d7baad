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
GitHub Source Component

Fetches a branch of the Optolink-Splitter repository as a source tarball and
unpacks it into a scratch directory. GitHub names the top-level directory of
a branch archive ``<repo>-<branch>``.
"""

import os
import shutil
import tarfile
import requests
from pathlib import Path
from typing import Optional
from ols_updates.index import log_message

GITHUB_HOME = "https://github.com"
GITHUB_API = "https://api.github.com"
TARBALL_NAME = "update.tar.gz"


class SourceDownloadError(Exception):
    """Network, download or extraction failure."""
    pass


def download_tarball(session: requests.Session, url: str, dest: Path, timeout: int = 30) -> Path:
    """
    Stream url to dest.

    Raises:
        SourceDownloadError: On HTTP or write failure
    """
    log_message(f"[GITHUB] Downloading {url}")
    try:
        with session.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in response.iter_content(chunk_size=65536):
                    if chunk:
                        f.write(chunk)
    except requests.RequestException as e:
        raise SourceDownloadError(f"Download failed: {e}")
    except OSError as e:
        raise SourceDownloadError(f"Could not write {dest}: {e}")

    log_message(f"[GITHUB] ✓ Downloaded {os.path.getsize(dest)} bytes")
    return dest


def extract_tarball(tarball: Path, dest_dir: Path) -> None:
    """
    Raises:
        SourceDownloadError: If the archive cannot be unpacked
    """
    log_message("[GITHUB] Extracting...")
    try:
        with tarfile.open(tarball, "r:gz") as tar:
            tar.extractall(dest_dir, filter="data")
    except (tarfile.TarError, OSError) as e:
        raise SourceDownloadError(f"Extraction failed: {e}")


class GitHubSource:
    """One branch of a GitHub repository, downloaded as a tarball."""

    def __init__(self, user: str, repo: str, branch: str,
                 session: Optional[requests.Session] = None, timeout: int = 30):
        self.user = user
        self.repo = repo
        self.branch = branch
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def repo_url(self) -> str:
        return f"{GITHUB_HOME}/{self.user}/{self.repo}"

    @property
    def tarball_url(self) -> str:
        return f"{self.repo_url}/archive/refs/heads/{self.branch}.tar.gz"

    @property
    def api_url(self) -> str:
        return f"{GITHUB_API}/repos/{self.user}/{self.repo}"

    @property
    def archive_dir_name(self) -> str:
        return f"{self.repo}-{self.branch.replace('/', '-')}"

    def check_connectivity(self) -> None:
        """
        Raises:
            SourceDownloadError: If github.com cannot be reached
        """
        log_message("[GITHUB] Checking network connectivity...")
        try:
            response = self.session.head(GITHUB_HOME, timeout=5, allow_redirects=True)
            response.raise_for_status()
        except requests.RequestException as e:
            raise SourceDownloadError(f"No connection to GitHub: {e}")
        log_message("[GITHUB] ✓ Connection OK")

    def prepare_tmp_dir(self, tmp_dir: str) -> Path:
        """Start from an empty scratch directory."""
        path = Path(tmp_dir)
        log_message(f"[GITHUB] Creating temporary directory: {path}")
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True)
        return path

    def download(self, dest: Path) -> Path:
        """
        Stream the branch tarball to dest.

        Raises:
            SourceDownloadError: On HTTP or write failure
        """
        return download_tarball(self.session, self.tarball_url, dest, self.timeout)

    def extract(self, tarball: Path, dest_dir: Path) -> Path:
        """
        Unpack the tarball and return the ``<repo>-<branch>`` directory.

        Raises:
            SourceDownloadError: If the archive is unreadable or the expected directory is missing
        """
        extract_tarball(tarball, dest_dir)
        new_dir = Path(dest_dir) / self.archive_dir_name
        if not new_dir.is_dir():
            available = sorted(p.name for p in Path(dest_dir).iterdir() if p.is_dir())
            raise SourceDownloadError(
                f"Expected directory {new_dir} not found (available: {', '.join(available) or 'none'})"
            )
        return new_dir

    def fetch(self, tmp_dir: str) -> Path:
        """Check connectivity, then download and unpack into a fresh tmp_dir."""
        self.check_connectivity()
        scratch = self.prepare_tmp_dir(tmp_dir)
        tarball = self.download(scratch / TARBALL_NAME)
        return self.extract(tarball, scratch)

    def latest_commit(self) -> str:
        """Short id (12 chars) of the branch head, or "unknown" when the API is unavailable."""
        try:
            response = self.session.get(f"{self.api_url}/commits/{self.branch}", timeout=10)
            response.raise_for_status()
            sha = response.json().get("sha", "")
        except (requests.RequestException, ValueError, AttributeError) as e:
            log_message(f"[GITHUB] Could not fetch latest commit: {e}", "WARNING")
            return "unknown"
        return sha[:12] if sha else "unknown"


def cleanup_tmp_dir(tmp_dir: str) -> None:
    if os.path.isdir(tmp_dir):
        shutil.rmtree(tmp_dir, ignore_errors=True)
        log_message(f"[GITHUB] Removed temporary directory: {tmp_dir}", "DEBUG")
