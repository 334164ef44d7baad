"""
conftest.py - Pytest configuration for the ols_updates tests

Puts the repository root on the import path and provides a console that
answers prompts from a script.
"""

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from ols_updates.utils.console import Console


class ScriptedConsole(Console):
    """Console fed from a list of answers; pauses never consume an answer."""

    def __init__(self, answers=()):
        self.answers = list(answers)
        self.output = []
        self.prompts = []
        super().__init__(input_func=self._answer, output_func=self.output.append, clear_screens=False)

    def _answer(self, prompt):
        self.prompts.append(prompt)
        if not self.answers:
            return ""
        return self.answers.pop(0)

    def pause(self):
        self.output.append("<pause>")

    @property
    def text(self):
        return "\n".join(self.output)


@pytest.fixture
def console_factory():
    return ScriptedConsole


def write_tree(root: Path, files: dict) -> Path:
    """Create files under root from {relative path: content}."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def make_tree():
    return write_tree


@pytest.fixture
def backup_update_config(tmp_path):
    """Backup & update tool settings pointing into tmp_path."""
    install_dir = tmp_path / "optolink-splitter"
    install_dir.mkdir()
    return {
        "metadata": {"schema_version": "1.4.0", "module_name": "backup_update"},
        "config": {
            "install_dir": str(install_dir),
            "service_name": "optolink-splitter",
            "github": {"user": "philippoo66", "repo": "optolink-splitter", "branch": "main"},
            "backup": {"max_backups": 3, "base_dir": str(tmp_path / "backups")},
            "tmp_dir": str(tmp_path / "scratch"),
            "lock_file": str(tmp_path / "update.lock"),
            "exclude_patterns": ["settings_ini.py", "poll_list.py", "myvenv/"],
        },
    }
