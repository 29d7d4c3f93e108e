"""Tests for platform helpers."""

import signal
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from azp_bootstrap.exceptions import ConfigurationError
from azp_bootstrap.utils.platform import (
    agent_script,
    detect_agent_platform,
    ensure_executable,
    forward_signal,
    get_process_group_kwargs,
)

TEST_PID = 4242

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")


class TestDetectAgentPlatform:
    """Tests for detect_agent_platform()."""

    @pytest.mark.parametrize(
        ("system", "machine", "expected"),
        [
            ("Linux", "x86_64", "linux-x64"),
            ("Linux", "aarch64", "linux-arm64"),
            ("Linux", "armv7l", "linux-arm"),
            ("Darwin", "arm64", "osx-arm64"),
            ("Windows", "AMD64", "win-x64"),
        ],
    )
    def test_supported(self, system: str, machine: str, expected: str) -> None:
        assert detect_agent_platform(system, machine) == expected

    def test_unsupported(self) -> None:
        with pytest.raises(ConfigurationError):
            detect_agent_platform("SunOS", "sparc")


class TestScripts:
    def test_agent_script_posix(self, tmp_path: Path) -> None:
        with patch("azp_bootstrap.utils.platform.IS_WINDOWS", False):
            assert agent_script(tmp_path, "config.sh", "config.cmd") == tmp_path / "config.sh"

    def test_agent_script_windows(self, tmp_path: Path) -> None:
        with patch("azp_bootstrap.utils.platform.IS_WINDOWS", True):
            assert agent_script(tmp_path, "config.sh", "config.cmd") == tmp_path / "config.cmd"

    @posix_only
    def test_ensure_executable(self, tmp_path: Path) -> None:
        script = tmp_path / "run.sh"
        script.write_text("#!/bin/sh\n")
        script.chmod(0o644)
        ensure_executable(script)
        assert script.stat().st_mode & 0o111 == 0o111


class TestProcessGroups:
    """Tests for child process groups and signal forwarding."""

    @posix_only
    def test_new_session_on_posix(self) -> None:
        assert get_process_group_kwargs() == {"start_new_session": True}

    @posix_only
    def test_forward_to_process_group(self) -> None:
        process = MagicMock(pid=TEST_PID)
        process.poll.return_value = None
        with (
            patch("azp_bootstrap.utils.platform.os.getpgid", return_value=TEST_PID),
            patch("azp_bootstrap.utils.platform.os.killpg") as mock_killpg,
        ):
            forward_signal(process, signal.SIGTERM)
        mock_killpg.assert_called_once_with(TEST_PID, signal.SIGTERM)

    @posix_only
    def test_forward_falls_back_to_process(self) -> None:
        process = MagicMock(pid=TEST_PID)
        process.poll.return_value = None
        with patch(
            "azp_bootstrap.utils.platform.os.getpgid", side_effect=ProcessLookupError()
        ):
            forward_signal(process, signal.SIGINT)
        process.send_signal.assert_called_once_with(signal.SIGINT)

    def test_forward_to_exited_process_is_noop(self) -> None:
        process = MagicMock(pid=TEST_PID)
        process.poll.return_value = 0
        forward_signal(process, signal.SIGTERM)
        process.send_signal.assert_not_called()
