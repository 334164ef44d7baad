#!/usr/bin/env python3
"""
test_service_manager.py - Tests for the systemctl / journalctl wrappers
"""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from ols_updates.utils.service_manager import ServiceError, ServiceManager, systemd_available

RUN = "ols_updates.utils.service_manager.subprocess.run"
POPEN = "ols_updates.utils.service_manager.subprocess.Popen"


def completed(returncode=0, stdout=""):
    return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr="")


def query_answers(answers):
    """subprocess.run fake answering systemctl queries from {subcommand: stdout}."""
    def fake_run(command, **kwargs):
        for key, value in answers.items():
            if key in command:
                return completed(0, value + "\n")
        return completed(1)
    return fake_run


class TestControl:

    def test_start_with_sudo(self):
        with patch(RUN, return_value=completed()) as run:
            assert ServiceManager("optolink-splitter", use_sudo=True, echo=False).start() is True
        assert run.call_args[0][0] == ["sudo", "systemctl", "start", "optolink-splitter"]

    def test_stop_without_sudo(self):
        with patch(RUN, return_value=completed()) as run:
            ServiceManager("ols", use_sudo=False, echo=False).stop()
        assert run.call_args[0][0] == ["systemctl", "stop", "ols"]

    def test_failure_returns_false(self):
        with patch(RUN, return_value=completed(5)):
            assert ServiceManager("ols", use_sudo=False, echo=False).restart() is False

    def test_missing_systemctl(self):
        with patch(RUN, side_effect=FileNotFoundError("systemctl")):
            with pytest.raises(ServiceError):
                ServiceManager("ols", use_sudo=False, echo=False).enable()

    def test_status_no_pager(self):
        with patch(RUN, return_value=completed()) as run:
            ServiceManager("ols", use_sudo=False, echo=False).status()
        assert run.call_args[0][0] == ["systemctl", "status", "ols", "--no-pager"]

    def test_echoes_command(self, capsys):
        with patch(RUN, return_value=completed()):
            ServiceManager("ols", use_sudo=False).cat()
        assert capsys.readouterr().out == "+ systemctl cat ols\n"


class TestState:

    def test_is_active(self):
        with patch(RUN, return_value=completed(0)):
            assert ServiceManager("ols", use_sudo=False).is_active()
        with patch(RUN, return_value=completed(3)):
            assert not ServiceManager("ols", use_sudo=False).is_active()

    def test_summary_running(self):
        answers = {"is-active": "active", "SubState": "running", "is-enabled": "enabled"}
        with patch(RUN, side_effect=query_answers(answers)):
            assert ServiceManager("ols", use_sudo=False).summary() == "RUNNING (running) [enabled]"

    def test_summary_stopped(self):
        answers = {"is-active": "inactive", "SubState": "dead", "is-enabled": "disabled"}
        with patch(RUN, side_effect=query_answers(answers)):
            assert ServiceManager("ols", use_sudo=False).summary() == "STOPPED (dead) [disabled]"

    def test_summary_without_systemctl(self):
        with patch(RUN, side_effect=OSError("no systemctl")):
            assert ServiceManager("ols", use_sudo=False).summary() == "UNKNOWN [unknown]"


class TestJournal:

    def test_last_lines(self):
        with patch(RUN, return_value=completed()) as run:
            ServiceManager("ols", use_sudo=False, echo=False).journal(lines=20)
        assert run.call_args[0][0] == ["journalctl", "-u", "ols", "--no-pager", "-n", "20"]

    def test_errors_only(self):
        with patch(RUN, return_value=completed()) as run:
            ServiceManager("ols", use_sudo=False, echo=False).journal(lines=200, priority="err..alert")
        assert run.call_args[0][0] == [
            "journalctl", "-u", "ols", "--no-pager", "-p", "err..alert", "-n", "200",
        ]

    def test_follow_with_timestamps(self):
        process = MagicMock()
        with patch(POPEN, return_value=process) as popen:
            ServiceManager("ols", use_sudo=False, echo=False).journal(lines=50, follow=True, timestamps=True)
        assert popen.call_args[0][0] == ["journalctl", "-u", "ols", "-f", "-n", "50", "-o", "short-iso"]
        process.wait.assert_called_once()

    def test_follow_ctrl_c_returns(self):
        process = MagicMock()
        process.wait.side_effect = [KeyboardInterrupt, 0]
        with patch(POPEN, return_value=process):
            assert ServiceManager("ols", use_sudo=False, echo=False).journal(follow=True) is True
        process.terminate.assert_called_once()


class TestSystemdAvailable:

    def test_available(self):
        with patch(RUN, return_value=completed(0, "systemd 252")):
            assert systemd_available()

    def test_missing(self):
        with patch(RUN, side_effect=FileNotFoundError("systemctl")):
            assert not systemd_available()
