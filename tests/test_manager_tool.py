#!/usr/bin/env python3
"""
test_manager_tool.py - Tests for the service manager menus
"""

import json
import os
from unittest.mock import MagicMock

import pytest

from ols_updates.modules.manager import main
from ols_updates.modules.manager.index import ServiceManagerTool, parse_line_count
from ols_updates.utils.service_manager import ServiceError


@pytest.fixture
def manager_config(tmp_path):
    return {
        "metadata": {"schema_version": "1.2.0"},
        "config": {
            "service_name": "optolink-splitter",
            "venv_dir": str(tmp_path / "myvenv"),
            "ols_file": str(tmp_path / "optolinkvs2_switch.py"),
            "log_lines": 50,
        },
    }


@pytest.fixture
def service():
    mock = MagicMock()
    mock.summary.return_value = "RUNNING (running) [enabled]"
    mock.active_state.return_value = "active"
    mock.enabled_state.return_value = "enabled"
    mock.is_active.return_value = True
    return mock


@pytest.fixture
def make_tool(manager_config, tmp_path, service, console_factory):
    def factory(answers=()):
        console = console_factory(answers)
        tool = ServiceManagerTool(manager_config, config_path=tmp_path / "index.json",
                                  console=console, service=service, exec_func=MagicMock())
        return tool, console
    return factory


@pytest.fixture
def venv(tmp_path):
    activate = tmp_path / "myvenv" / "bin" / "activate"
    activate.parent.mkdir(parents=True)
    activate.write_text("")
    (tmp_path / "optolinkvs2_switch.py").write_text("print('splitter')\n")
    return tmp_path / "myvenv"


class TestMainMenu:

    def test_quit(self, make_tool):
        tool, console = make_tool(["q"])
        tool.run_menu()
        assert console.output[-1] == "Goodbye!"
        assert "Status:  RUNNING (running) [enabled]" in console.output

    def test_invalid_choice(self, make_tool):
        tool, console = make_tool(["9", "q"])
        tool.run_menu()
        assert "Invalid choice: 9" in console.output


class TestLogs:

    def test_follow(self, make_tool, service):
        tool, _ = make_tool(["1", "1", "q", "q"])
        tool.run_menu()
        service.journal.assert_called_once_with(lines=50, follow=True, timestamps=False)

    def test_follow_with_timestamps(self, make_tool, service):
        tool, _ = make_tool(["1", "2", "q", "q"])
        tool.run_menu()
        service.journal.assert_called_once_with(lines=50, follow=True, timestamps=True)

    def test_last_n(self, make_tool, service):
        tool, console = make_tool(["1", "3", "120", "q", "q"])
        tool.run_menu()
        service.journal.assert_called_once_with(lines=120)
        assert "How many lines (N): " in console.prompts

    def test_last_n_invalid(self, make_tool, service):
        tool, console = make_tool(["1", "3", "abc", "q", "q"])
        tool.run_menu()
        assert "Invalid N." in console.output
        service.journal.assert_not_called()


class TestControl:

    @pytest.mark.parametrize("choice,method", [
        ("1", "restart"), ("2", "start"), ("3", "stop"), ("4", "enable"), ("5", "disable"),
    ])
    def test_actions(self, make_tool, service, choice, method):
        tool, _ = make_tool(["2", choice, "q", "q"])
        tool.run_menu()
        getattr(service, method).assert_called_once_with()

    def test_service_error_is_reported(self, make_tool, service):
        service.restart.side_effect = ServiceError("Failed to run systemctl")
        tool, console = make_tool(["2", "1", "q", "q"])
        tool.run_menu()
        assert console.output[-1] == "Goodbye!"


class TestInfo:

    def test_quick_state(self, make_tool):
        tool, console = make_tool(["3", "2", "q", "q"])
        tool.run_menu()
        assert "active" in console.output
        assert "enabled" in console.output

    def test_last_errors(self, make_tool, service):
        tool, _ = make_tool(["3", "3", "q", "q"])
        tool.run_menu()
        service.journal.assert_called_once_with(lines=200, priority="err..alert")

    def test_status_and_cat(self, make_tool, service):
        tool, _ = make_tool(["3", "1", "4", "q", "q"])
        tool.run_menu()
        service.status.assert_called_once_with()
        service.cat.assert_called_once_with()


class TestVenv:

    def test_manual_start(self, make_tool, venv, tmp_path):
        tool, _ = make_tool()
        tool.manual_start()

        python = str(venv / "bin" / "python")
        path, argv, env = tool.exec_func.call_args[0]
        assert path == python
        assert argv == [python, str(tmp_path / "optolinkvs2_switch.py")]
        assert env["VIRTUAL_ENV"] == str(venv)
        assert env["PATH"].startswith(str(venv / "bin") + os.pathsep)

    def test_manual_start_missing_script(self, make_tool, venv, tmp_path):
        (tmp_path / "optolinkvs2_switch.py").unlink()
        tool, console = make_tool()
        tool.manual_start()

        tool.exec_func.assert_not_called()
        assert any(line.startswith("Manual script not found") for line in console.output)

    def test_missing_venv(self, make_tool):
        tool, console = make_tool()
        tool.venv_shell()

        tool.exec_func.assert_not_called()
        assert any(line.startswith("Venv dir not found") for line in console.output)

    def test_missing_activate(self, make_tool, tmp_path):
        (tmp_path / "myvenv").mkdir()
        tool, console = make_tool()
        tool.venv_shell()
        assert any(line.startswith("Venv activate not found") for line in console.output)

    def test_venv_shell(self, make_tool, venv):
        tool, _ = make_tool()
        tool.venv_shell()
        path, argv, env = tool.exec_func.call_args[0]
        assert argv[1:] == ["-i"]
        assert env["VIRTUAL_ENV"] == str(venv)


class TestSettings:

    def test_view(self, make_tool, tmp_path):
        tool, console = make_tool(["s", "1", "q", "q"])
        tool.run_menu()
        assert "  Default logs:              50 lines" in console.output

    def test_edit_reloads(self, make_tool, manager_config, tmp_path, monkeypatch):
        edited = json.loads(json.dumps(manager_config))
        edited["config"]["log_lines"] = 10
        (tmp_path / "index.json").write_text(json.dumps(edited))
        monkeypatch.setattr("ols_updates.modules.manager.index.edit_config_file", lambda path: True)

        tool, _ = make_tool()
        assert tool.edit_settings() is True
        assert tool.log_lines == 10

    def test_edit_with_broken_file_keeps_settings(self, make_tool, tmp_path, monkeypatch):
        (tmp_path / "index.json").write_text(json.dumps({"config": {"service_name": "x"}}))
        monkeypatch.setattr("ols_updates.modules.manager.index.edit_config_file", lambda path: True)

        tool, console = make_tool()
        assert tool.edit_settings() is False
        assert tool.service_name == "optolink-splitter"
        assert any("venv_dir" in line for line in console.output)


class TestHelpers:

    @pytest.mark.parametrize("text,expected", [("50", 50), (" 7 ", 7)])
    def test_parse_line_count(self, text, expected):
        assert parse_line_count(text) == expected

    @pytest.mark.parametrize("text", ["", "0", "-5", "ten", "1.5"])
    def test_parse_line_count_invalid(self, text):
        with pytest.raises(ValueError):
            parse_line_count(text)

    def test_main_with_missing_config(self, tmp_path):
        result = main(["--config", str(tmp_path / "missing.json")])
        assert result["success"] is False
        assert "Config file not found" in result["error"]
