"""Tests for single-job agent execution."""

import signal
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from azp_bootstrap.constants import ENV_AGENT_INPUT_TOKEN
from azp_bootstrap.exceptions import JobRunnerError
from azp_bootstrap.services.job_runner import JobRunner

from .fixtures import TEST_PID, TEST_RETURN_CODE, TEST_TIMEOUT_SECONDS

_PATCH_POPEN = "azp_bootstrap.services.job_runner.subprocess.Popen"
_PATCH_FORWARD = "azp_bootstrap.services.job_runner.forward_signal"


def _install_run_script(agent_dir: Path) -> None:
    for name in ("run.sh", "run.cmd"):
        (agent_dir / name).write_text("#!/bin/sh\nexit 0\n")


def _process(returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.pid = TEST_PID
    process.wait.return_value = returncode
    process.poll.return_value = None
    return process


class TestJobRunner:
    """Tests for JobRunner."""

    def test_command_runs_exactly_one_job(self, agent_dir: Path) -> None:
        """The agent is always started with --once, after any extra arguments."""
        runner = JobRunner(agent_dir, extra_args=["--diagnostics"])
        command = runner.build_command()
        assert command[-1] == "--once"
        assert command[1:] == ["--diagnostics", "--once"]

    def test_run_once_returns_exit_status(self, agent_dir: Path) -> None:
        _install_run_script(agent_dir)
        runner = JobRunner(agent_dir, environment={ENV_AGENT_INPUT_TOKEN: "stale"})

        with patch(_PATCH_POPEN, return_value=_process(TEST_RETURN_CODE)) as mock_popen:
            assert runner.run_once() == TEST_RETURN_CODE

        kwargs = mock_popen.call_args.kwargs
        assert kwargs["cwd"] == agent_dir
        assert ENV_AGENT_INPUT_TOKEN not in kwargs["env"]
        assert runner.is_running is False

    def test_missing_run_script(self, agent_dir: Path) -> None:
        runner = JobRunner(agent_dir)
        with patch(_PATCH_POPEN) as mock_popen:
            with pytest.raises(JobRunnerError):
                runner.run_once()
        mock_popen.assert_not_called()

    def test_agent_cannot_start(self, agent_dir: Path) -> None:
        _install_run_script(agent_dir)
        runner = JobRunner(agent_dir)
        with patch(_PATCH_POPEN, side_effect=OSError("exec format error")):
            with pytest.raises(JobRunnerError):
                runner.run_once()

    def test_forward_termination_while_running(self, agent_dir: Path) -> None:
        """A termination signal reaches the running agent."""
        _install_run_script(agent_dir)
        runner = JobRunner(agent_dir)
        process = _process()

        def wait() -> int:
            runner.forward_termination(signal.SIGTERM)
            return 143

        process.wait.side_effect = wait
        with patch(_PATCH_POPEN, return_value=process), patch(_PATCH_FORWARD) as mock_forward:
            runner.run_once()

        mock_forward.assert_called_once_with(process, signal.SIGTERM)

    def test_forward_termination_when_idle(self, agent_dir: Path) -> None:
        runner = JobRunner(agent_dir)
        with patch(_PATCH_FORWARD) as mock_forward:
            runner.forward_termination(signal.SIGINT)
        mock_forward.assert_not_called()

    def test_terminate_running_agent(self, agent_dir: Path) -> None:
        """terminate() sends SIGTERM and waits for the agent to exit."""
        runner = JobRunner(agent_dir, shutdown_timeout=TEST_TIMEOUT_SECONDS)
        process = _process()
        runner._process = process

        with patch(_PATCH_FORWARD) as mock_forward:
            runner.terminate()

        mock_forward.assert_called_once_with(process, signal.SIGTERM)
        process.wait.assert_called_once_with(timeout=TEST_TIMEOUT_SECONDS)

    def test_interrupted_wait_lets_agent_shut_down(self, agent_dir: Path) -> None:
        """When the wait is interrupted the agent gets time to exit before propagating."""
        _install_run_script(agent_dir)
        runner = JobRunner(agent_dir, shutdown_timeout=TEST_TIMEOUT_SECONDS)
        process = _process()
        process.wait.side_effect = [KeyboardInterrupt(), 130]

        with patch(_PATCH_POPEN, return_value=process):
            with pytest.raises(KeyboardInterrupt):
                runner.run_once()

        process.wait.assert_called_with(timeout=TEST_TIMEOUT_SECONDS)
        process.kill.assert_not_called()

    def test_agent_killed_after_shutdown_timeout(self, agent_dir: Path) -> None:
        _install_run_script(agent_dir)
        runner = JobRunner(agent_dir, shutdown_timeout=TEST_TIMEOUT_SECONDS)
        process = _process()
        process.wait.side_effect = [
            KeyboardInterrupt(),
            subprocess.TimeoutExpired("run.sh", TEST_TIMEOUT_SECONDS),
            -9,
        ]

        with patch(_PATCH_POPEN, return_value=process):
            with pytest.raises(KeyboardInterrupt):
                runner.run_once()

        process.kill.assert_called_once()
