"""Single-job agent execution.

Runs the registered agent with --once so it exits after one job. The agent
runs in its own process group; termination signals received by this process
are forwarded explicitly.
"""

import logging
import signal
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path

from azp_bootstrap.constants import (
    AGENT_FLAG_ONCE,
    AGENT_RUN_SCRIPT_POSIX,
    AGENT_RUN_SCRIPT_WINDOWS,
    AGENT_SHUTDOWN_TIMEOUT_SECONDS,
    LOG_AGENT_COMMAND,
    LOG_JOB_FINISHED,
    LOG_JOB_FORWARD_TERMINATE,
    LOG_JOB_KILL,
    LOG_JOB_STARTED,
)
from azp_bootstrap.exceptions import JobRunnerError
from azp_bootstrap.services.registration_service import agent_environment
from azp_bootstrap.utils.platform import (
    agent_script,
    ensure_executable,
    forward_signal,
    get_process_group_kwargs,
)

logger = logging.getLogger(__name__)


class JobRunner:
    """Run the configured agent for exactly one job."""

    def __init__(
        self,
        agent_dir: Path,
        *,
        extra_args: Sequence[str] = (),
        environment: Mapping[str, str] | None = None,
        shutdown_timeout: float = AGENT_SHUTDOWN_TIMEOUT_SECONDS,
    ):
        """Initialize the runner.

        Args:
            agent_dir: Directory the agent package was unpacked into.
            extra_args: Additional arguments passed through to the run script.
            environment: Base environment for the agent (defaults to os.environ).
            shutdown_timeout: Seconds to wait for the agent after forwarding termination.
        """
        self.agent_dir = agent_dir
        self.extra_args = list(extra_args)
        self._environment = environment
        self._shutdown_timeout = shutdown_timeout
        self._process: subprocess.Popen | None = None  # type: ignore[type-arg]

    @property
    def run_script(self) -> Path:
        return agent_script(self.agent_dir, AGENT_RUN_SCRIPT_POSIX, AGENT_RUN_SCRIPT_WINDOWS)

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def build_command(self) -> list[str]:
        return [str(self.run_script), *self.extra_args, AGENT_FLAG_ONCE]

    def run_once(self) -> int:
        """Run the agent until it finishes one job.

        Blocks until the agent exits. If the wait is interrupted (a signal
        handler raising), the agent is given time to shut down and killed if
        it does not, then the exception propagates.

        Returns:
            The agent's exit status.

        Raises:
            JobRunnerError: If the run script is missing or cannot be started.
        """
        script = self.run_script
        if not script.exists():
            raise JobRunnerError(f"Agent run script not found: {script}")
        ensure_executable(script)

        command = self.build_command()
        logger.info(LOG_AGENT_COMMAND.format(command=" ".join(command)))

        try:
            self._process = subprocess.Popen(  # noqa: S603
                command,
                cwd=self.agent_dir,
                env=agent_environment(self._environment),
                **get_process_group_kwargs(),
            )
        except OSError as e:
            raise JobRunnerError(f"Failed to start agent: {e}") from e

        logger.info(LOG_JOB_STARTED.format(pid=self._process.pid))
        try:
            returncode = self._process.wait()
        except BaseException:
            self._wait_for_shutdown()
            raise
        finally:
            self._process = None

        logger.info(LOG_JOB_FINISHED.format(code=returncode))
        return returncode

    def forward_termination(self, signum: int) -> None:
        """Forward a termination signal to the running agent, if any."""
        if not self.is_running:
            return
        assert self._process is not None
        logger.info(LOG_JOB_FORWARD_TERMINATE.format(pid=self._process.pid))
        forward_signal(self._process, signum)

    def terminate(self) -> None:
        """Stop the running agent, killing it if it outlives the shutdown timeout."""
        self.forward_termination(signal.SIGTERM)
        self._wait_for_shutdown()

    def _wait_for_shutdown(self) -> None:
        """Wait for the agent to exit after termination, killing it on timeout."""
        process = self._process
        if process is None or process.poll() is not None:
            return
        try:
            process.wait(timeout=self._shutdown_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(LOG_JOB_KILL.format(timeout=self._shutdown_timeout))
            process.kill()
            process.wait(timeout=self._shutdown_timeout)
