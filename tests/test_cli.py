"""Tests for the azp-bootstrap command line."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from azp_bootstrap.cli import app
from azp_bootstrap.constants import (
    EXIT_CODE_FAILURE,
    EXIT_CODE_SUCCESS,
    EXIT_CODE_TERMINATE,
    VERSION,
)
from azp_bootstrap.exceptions import AuthenticationError
from azp_bootstrap.models.enums import TerminationReason
from azp_bootstrap.services.lifecycle import TerminationRequested

from .unit.services.fixtures import (
    TEST_CLIENT_ID,
    TEST_ERROR_GENERIC,
    TEST_TOKEN_VALUE,
    TEST_URL,
    make_token,
)

_PATCH_LIFECYCLE = "azp_bootstrap.cli.AgentLifecycle"

runner = CliRunner()


@pytest.fixture
def required_env(monkeypatch: pytest.MonkeyPatch, agent_dir: Path) -> Path:
    """Set the required AZP_* inputs and return the agent directory."""
    monkeypatch.setenv("AZP_URL", TEST_URL)
    monkeypatch.setenv("AZP_CLIENTID", TEST_CLIENT_ID)
    monkeypatch.setenv("AZP_AGENT_DIR", str(agent_dir))
    return agent_dir


class TestVersion:
    def test_version_command(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == EXIT_CODE_SUCCESS
        assert VERSION in result.output

    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == EXIT_CODE_SUCCESS
        assert VERSION in result.output


class TestRunCommand:
    """Tests for `azp-bootstrap run`."""

    def test_missing_inputs(self, agent_dir: Path) -> None:
        """Missing URL and client id: exit 1 naming both, lifecycle never built."""
        with patch(_PATCH_LIFECYCLE) as mock_lifecycle:
            result = runner.invoke(app, ["run", "--agent-dir", str(agent_dir)])

        assert result.exit_code == EXIT_CODE_FAILURE
        assert "AZP_URL" in result.output
        assert "AZP_CLIENTID" in result.output
        mock_lifecycle.assert_not_called()

    def test_invalid_setting(self, required_env: Path) -> None:
        result = runner.invoke(app, ["run", "--cleanup-max-attempts", "0"])
        assert result.exit_code == EXIT_CODE_FAILURE

    def test_exit_code_from_lifecycle(self, required_env: Path) -> None:
        with patch(_PATCH_LIFECYCLE) as mock_lifecycle:
            mock_lifecycle.return_value.run.return_value = EXIT_CODE_TERMINATE
            result = runner.invoke(app, ["run"])

        assert result.exit_code == EXIT_CODE_TERMINATE

    def test_flags_override_environment(self, required_env: Path) -> None:
        with patch(_PATCH_LIFECYCLE) as mock_lifecycle:
            mock_lifecycle.return_value.run.return_value = EXIT_CODE_SUCCESS
            result = runner.invoke(
                app, ["run", "--pool", "from-flag", "--placeholder", "--", "--diagnostics"]
            )

        assert result.exit_code == EXIT_CODE_SUCCESS
        settings = mock_lifecycle.call_args.args[0]
        assert settings.pool == "from-flag"
        assert settings.placeholder is True
        assert mock_lifecycle.call_args.kwargs["agent_args"] == ["--diagnostics"]

    def test_late_termination(self, required_env: Path) -> None:
        """A termination escaping the lifecycle still maps to its exit code."""
        with patch(_PATCH_LIFECYCLE) as mock_lifecycle:
            mock_lifecycle.return_value.run.side_effect = TerminationRequested(
                TerminationReason.TERMINATE
            )
            result = runner.invoke(app, ["run"])

        assert result.exit_code == EXIT_CODE_TERMINATE


class TestTokenCommand:
    """Tests for `azp-bootstrap token`."""

    def test_prints_expiry_not_token(self, required_env: Path) -> None:
        with patch(_PATCH_LIFECYCLE) as mock_lifecycle:
            mock_lifecycle.return_value.credentials.resolve.return_value = make_token()
            result = runner.invoke(app, ["token"])

        assert result.exit_code == EXIT_CODE_SUCCESS
        assert TEST_TOKEN_VALUE not in result.output
        mock_lifecycle.return_value.close.assert_called_once()

    def test_authentication_failure(self, required_env: Path) -> None:
        with patch(_PATCH_LIFECYCLE) as mock_lifecycle:
            mock_lifecycle.return_value.credentials.resolve.side_effect = AuthenticationError(
                TEST_ERROR_GENERIC
            )
            result = runner.invoke(app, ["token"])

        assert result.exit_code == EXIT_CODE_FAILURE
        assert TEST_ERROR_GENERIC in result.output


class TestRemoveCommand:
    """Tests for `azp-bootstrap remove`."""

    def test_removed(self, required_env: Path) -> None:
        with patch(_PATCH_LIFECYCLE) as mock_lifecycle:
            mock_lifecycle.return_value.remove_existing.return_value = True
            result = runner.invoke(app, ["remove"])
        assert result.exit_code == EXIT_CODE_SUCCESS

    def test_abandoned(self, required_env: Path) -> None:
        with patch(_PATCH_LIFECYCLE) as mock_lifecycle:
            mock_lifecycle.return_value.remove_existing.return_value = False
            result = runner.invoke(app, ["remove", "--cleanup-max-attempts", "1"])
        assert result.exit_code == EXIT_CODE_FAILURE


class TestPackageCommand:
    def test_prints_package(self, required_env: Path) -> None:
        lifecycle = MagicMock()
        lifecycle.package_resolver.resolve.return_value.version = "4.248.0"
        with patch(_PATCH_LIFECYCLE, return_value=lifecycle):
            result = runner.invoke(app, ["package", "--platform", "linux-x64"])

        assert result.exit_code == EXIT_CODE_SUCCESS
        assert "4.248.0" in result.output
