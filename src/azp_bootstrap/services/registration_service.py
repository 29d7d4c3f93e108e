"""Agent registration and deregistration.

Drives the agent's own configuration script in unattended mode. The access
token reaches the script through VSTS_AGENT_INPUT_TOKEN in the child
environment and never appears on the command line.
"""

import logging
import os
import subprocess
from collections.abc import Mapping
from pathlib import Path

from azp_bootstrap.constants import (
    AGENT_AUTH_PAT,
    AGENT_CONFIG_REMOVE,
    AGENT_CONFIG_SCRIPT_POSIX,
    AGENT_CONFIG_SCRIPT_WINDOWS,
    AGENT_ENV_SCRIPT_POSIX,
    AGENT_FLAG_ACCEPT_TEE_EULA,
    AGENT_FLAG_AGENT,
    AGENT_FLAG_AUTH,
    AGENT_FLAG_POOL,
    AGENT_FLAG_REPLACE,
    AGENT_FLAG_UNATTENDED,
    AGENT_FLAG_URL,
    AGENT_FLAG_WORK,
    AGENT_IGNORED_VARIABLES,
    ENV_AGENT_IGNORE,
    ENV_AGENT_INPUT_TOKEN,
    LOG_AGENT_COMMAND,
    LOG_AGENT_ENV_SCRIPT,
    LOG_REGISTERED,
    LOG_UNREGISTERED,
)
from azp_bootstrap.exceptions import DeregistrationConflict, RegistrationError
from azp_bootstrap.models.agent import AccessToken, RegistrationRecord
from azp_bootstrap.utils.platform import IS_WINDOWS, agent_script, ensure_executable

logger = logging.getLogger(__name__)

# Marker file the agent writes once it is configured
AGENT_CONFIGURED_MARKER = ".agent"


def agent_environment(
    base: Mapping[str, str] | None = None, token: AccessToken | None = None
) -> dict[str, str]:
    """Build the environment for agent scripts.

    Args:
        base: Starting environment (defaults to os.environ).
        token: Token to expose to the configuration script, if any.

    Returns:
        Environment dict with the token variables hidden from jobs.
    """
    env = dict(base if base is not None else os.environ)
    env[ENV_AGENT_IGNORE] = ",".join(AGENT_IGNORED_VARIABLES)
    if token is not None:
        env[ENV_AGENT_INPUT_TOKEN] = token.secret()
    else:
        env.pop(ENV_AGENT_INPUT_TOKEN, None)
    return env


class AgentRegistrar:
    """Register and remove an agent in a pool via the agent's config script."""

    def __init__(
        self,
        url: str,
        pool: str,
        agent_name: str,
        work_dir: Path,
        agent_dir: Path,
        *,
        environment: Mapping[str, str] | None = None,
    ):
        """Initialize the registrar.

        Args:
            url: Organization URL.
            pool: Agent pool name.
            agent_name: Registration name (re-used names are replaced).
            work_dir: Agent work directory.
            agent_dir: Directory the agent package was unpacked into.
            environment: Base environment for child processes (defaults to os.environ).
        """
        self.url = url
        self.pool = pool
        self.agent_name = agent_name
        self.work_dir = work_dir
        self.agent_dir = agent_dir
        self._environment = environment

    @property
    def config_script(self) -> Path:
        return agent_script(self.agent_dir, AGENT_CONFIG_SCRIPT_POSIX, AGENT_CONFIG_SCRIPT_WINDOWS)

    def is_configured(self) -> bool:
        """Whether an agent is currently configured in the agent directory."""
        return (self.agent_dir / AGENT_CONFIGURED_MARKER).exists()

    def build_register_command(self) -> list[str]:
        """Unattended configuration command line (no secrets)."""
        return [
            str(self.config_script),
            AGENT_FLAG_UNATTENDED,
            AGENT_FLAG_AGENT,
            self.agent_name,
            AGENT_FLAG_URL,
            self.url,
            AGENT_FLAG_AUTH,
            AGENT_AUTH_PAT,
            AGENT_FLAG_POOL,
            self.pool,
            AGENT_FLAG_WORK,
            str(self.work_dir),
            AGENT_FLAG_REPLACE,
            AGENT_FLAG_ACCEPT_TEE_EULA,
        ]

    def build_remove_command(self) -> list[str]:
        """Unattended removal command line (no secrets)."""
        return [
            str(self.config_script),
            AGENT_CONFIG_REMOVE,
            AGENT_FLAG_UNATTENDED,
            AGENT_FLAG_AUTH,
            AGENT_AUTH_PAT,
        ]

    def _run(self, command: list[str], token: AccessToken) -> int:
        """Run an agent script and return its exit status.

        Output is streamed to the terminal, not captured.
        """
        logger.info(LOG_AGENT_COMMAND.format(command=" ".join(command)))
        result = subprocess.run(  # noqa: S603
            command,
            cwd=self.agent_dir,
            env=agent_environment(self._environment, token),
            check=False,
        )
        return result.returncode

    def prepare(self) -> None:
        """Create the work directory and capture the agent environment.

        Runs env.sh (POSIX) when present; it records the environment and
        PATH the agent advertises as capabilities.
        """
        self.work_dir.mkdir(parents=True, exist_ok=True)

        if IS_WINDOWS:
            return

        env_script = self.agent_dir / AGENT_ENV_SCRIPT_POSIX
        if not env_script.exists():
            return

        logger.info(LOG_AGENT_ENV_SCRIPT.format(script=env_script))
        ensure_executable(env_script)
        result = subprocess.run(  # noqa: S603
            [str(env_script)],
            cwd=self.agent_dir,
            env=agent_environment(self._environment),
            check=False,
        )
        if result.returncode != 0:
            raise RegistrationError(
                f"Agent environment script failed: {env_script}", returncode=result.returncode
            )

    def register(self, token: AccessToken) -> RegistrationRecord:
        """Register the agent in the pool, replacing any agent with the same name.

        Args:
            token: Access token for the organization.

        Returns:
            RegistrationRecord for the cleanup handler.

        Raises:
            RegistrationError: If the configuration script is missing or fails.
        """
        script = self.config_script
        if not script.exists():
            raise RegistrationError(f"Agent configuration script not found: {script}")
        ensure_executable(script)

        try:
            returncode = self._run(self.build_register_command(), token)
        except OSError as e:
            raise RegistrationError(f"Failed to start agent configuration: {e}") from e

        if returncode != 0:
            raise RegistrationError(
                f"Agent configuration failed for '{self.agent_name}' in pool '{self.pool}'",
                returncode=returncode,
            )

        logger.info(LOG_REGISTERED.format(agent=self.agent_name, pool=self.pool))
        return RegistrationRecord(
            agent_name=self.agent_name,
            pool_name=self.pool,
            work_directory=self.work_dir,
            replace=True,
        )

    def unregister(self, token: AccessToken) -> None:
        """Remove the agent from its pool.

        Raises:
            DeregistrationConflict: If removal fails, typically while a job
                is still running. Callers retry.
        """
        try:
            returncode = self._run(self.build_remove_command(), token)
        except OSError as e:
            raise DeregistrationConflict(f"Failed to start agent removal: {e}") from e

        if returncode != 0:
            raise DeregistrationConflict(
                f"Pool '{self.pool}' refused to remove agent '{self.agent_name}'",
                returncode=returncode,
            )

        logger.info(LOG_UNREGISTERED.format(agent=self.agent_name, pool=self.pool))
