#!/usr/bin/env python3
"""
test_module_utils.py - Tests for config loading, validation and dependency checks
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from ols_updates.modules.backup_update import index as backup_update_index
from ols_updates.modules.install import index as install_index
from ols_updates.modules.manager import index as manager_index
from ols_updates.utils.index import get_module_version
from ols_updates.utils.moduleUtils import (
    ToolConfigError,
    check_dependencies,
    config_file_path,
    edit_config_file,
    find_editor,
    get_config_value,
    load_tool_config,
    validate_tool_config,
)

CONFIG = {
    "metadata": {"schema_version": "1.4.0"},
    "config": {
        "install_dir": "/opt/optolink-splitter",
        "github": {"user": "philippoo66", "repo": "optolink-splitter", "branch": "main"},
        "backup": {"max_backups": 5, "base_dir": ""},
    },
}


class TestLoadConfig:

    def test_tool_index_json(self, tmp_path):
        (tmp_path / "index.json").write_text(json.dumps(CONFIG))
        assert load_tool_config(tmp_path) == CONFIG

    def test_explicit_path_wins(self, tmp_path):
        other = tmp_path / "custom.json"
        other.write_text(json.dumps({"config": {"x": 1}}))
        assert load_tool_config(tmp_path, str(other)) == {"config": {"x": 1}}
        assert config_file_path(tmp_path, str(other)) == other
        assert config_file_path(tmp_path) == tmp_path / "index.json"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ToolConfigError, match="Config file not found"):
            load_tool_config(tmp_path)

    def test_invalid_json(self, tmp_path):
        (tmp_path / "index.json").write_text("{not json")
        with pytest.raises(ToolConfigError, match="not valid JSON"):
            load_tool_config(tmp_path)


class TestValidate:

    def test_dotted_lookup(self):
        assert get_config_value(CONFIG, "github.branch") == "main"
        assert get_config_value(CONFIG, "backup.base_dir") == ""
        assert get_config_value(CONFIG, "github.missing", "dflt") == "dflt"
        assert get_config_value(CONFIG, "install_dir.nested") is None

    def test_all_present(self):
        validate_tool_config(CONFIG, ["install_dir", "github.user", "backup.base_dir"])

    def test_lists_every_missing_key(self):
        with pytest.raises(ToolConfigError) as exc:
            validate_tool_config(CONFIG, ["install_dir", "service_name", "github.token", "tmp_dir"])
        assert exc.value.missing == ["service_name", "github.token", "tmp_dir"]
        assert "service_name, github.token, tmp_dir" in str(exc.value)


class TestShippedConfigs:
    """Each tool's own index.json satisfies its required keys."""

    @pytest.mark.parametrize("tool", [backup_update_index, manager_index, install_index])
    def test_shipped_config_is_complete(self, tool):
        tool_dir = Path(tool.__file__).parent
        config = load_tool_config(tool_dir)
        validate_tool_config(config, tool.REQUIRED_KEYS)
        assert get_module_version(str(tool_dir)) == config["metadata"]["schema_version"]

    def test_unknown_version(self, tmp_path):
        assert get_module_version(str(tmp_path)) == "unknown"


class TestDependencies:

    def test_missing_commands(self):
        present = {"rsync": "/usr/bin/rsync"}
        with patch("ols_updates.utils.moduleUtils.shutil.which", side_effect=present.get):
            missing = check_dependencies(["rsync", "systemctl", "journalctl"], {"systemctl": "Install systemd"})
        assert missing == ["systemctl", "journalctl"]

    def test_all_present(self):
        with patch("ols_updates.utils.moduleUtils.shutil.which", return_value="/usr/bin/x"):
            assert check_dependencies(["rsync"]) == []


class TestEditor:

    def test_editor_env_first(self, monkeypatch):
        monkeypatch.setenv("EDITOR", "micro")
        with patch("ols_updates.utils.moduleUtils.shutil.which", side_effect=lambda name: f"/usr/bin/{name}"):
            assert find_editor() == "/usr/bin/micro"

    def test_fallback_order(self, monkeypatch):
        monkeypatch.delenv("EDITOR", raising=False)
        available = {"vim": "/usr/bin/vim", "vi": "/usr/bin/vi"}
        with patch("ols_updates.utils.moduleUtils.shutil.which", side_effect=available.get):
            assert find_editor() == "/usr/bin/vim"

    def test_no_editor(self, monkeypatch, tmp_path):
        monkeypatch.delenv("EDITOR", raising=False)
        with patch("ols_updates.utils.moduleUtils.shutil.which", return_value=None), \
                patch("ols_updates.utils.moduleUtils.subprocess.run") as run:
            assert edit_config_file(tmp_path / "index.json") is False
        run.assert_not_called()

    def test_opens_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EDITOR", "nano")
        with patch("ols_updates.utils.moduleUtils.shutil.which", return_value="/bin/nano"), \
                patch("ols_updates.utils.moduleUtils.subprocess.run") as run:
            assert edit_config_file(tmp_path / "index.json") is True
        run.assert_called_once_with(["/bin/nano", str(tmp_path / "index.json")])
