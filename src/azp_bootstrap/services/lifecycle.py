"""Agent lifecycle orchestration.

Runs the bootstrap sequence strictly in order::

    resolve credentials -> resolve/install package -> register -> run one job -> cleanup

Every step treats its own failure as fatal. Cleanup runs on every exit path:
normal completion, fatal error after registration, SIGINT and SIGTERM.
"""

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from types import FrameType

from azp_bootstrap.config.messages import (
    ERROR_MESSAGES,
    INFO_MESSAGES,
    LIFECYCLE_TOTAL_STEPS,
    STEP_CLEANUP,
    STEP_INSTALL_PACKAGE,
    STEP_REGISTER,
    STEP_RESOLVE_PACKAGE,
    STEP_RUN,
    STEP_RUN_SKIPPED,
    SUCCESS_MESSAGES,
    WARNING_MESSAGES,
)
from azp_bootstrap.config.settings import AgentSettings
from azp_bootstrap.constants import (
    EXIT_CODE_FAILURE,
    EXIT_CODE_SUCCESS,
    LOG_PLACEHOLDER,
    LOG_SIGNAL_IGNORED,
    LOG_SIGNAL_RECEIVED,
)
from azp_bootstrap.exceptions import BootstrapError, ConfigurationError
from azp_bootstrap.models.agent import RegistrationRecord
from azp_bootstrap.models.enums import AgentState, TerminationReason
from azp_bootstrap.services.cleanup_service import CleanupHandler, RetryPolicy
from azp_bootstrap.services.credential_service import CredentialResolver
from azp_bootstrap.services.job_runner import JobRunner
from azp_bootstrap.services.package_service import AgentPackageResolver
from azp_bootstrap.services.registration_service import AgentRegistrar
from azp_bootstrap.utils.console import (
    print_error,
    print_header,
    print_info,
    print_success,
    print_warning,
)
from azp_bootstrap.utils.platform import detect_agent_platform
from azp_bootstrap.utils.step_tracker import StepTracker

logger = logging.getLogger(__name__)

HANDLED_SIGNALS: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)


class TerminationRequested(BaseException):
    """Raised from a signal handler to unwind to the cleanup path.

    Derives from BaseException so that `except Exception` blocks in the
    bootstrap steps cannot swallow it, like KeyboardInterrupt.
    """

    def __init__(self, reason: TerminationReason):
        super().__init__(reason.value)
        self.reason = reason


def missing_input_error(settings: AgentSettings) -> ConfigurationError | None:
    """Build a ConfigurationError listing every missing required input."""
    missing = settings.validate_required()
    if not missing:
        return None
    lines = [
        ERROR_MESSAGES["missing_input"].format(name=name, env=env, flag=flag)
        for name, env, flag in missing
    ]
    return ConfigurationError("\n".join(lines), missing=[env for _, env, _ in missing])


def build_retry_policy(settings: AgentSettings) -> RetryPolicy:
    return RetryPolicy(
        interval_seconds=settings.cleanup_interval,
        max_attempts=settings.cleanup_max_attempts,
    )


class AgentLifecycle:
    """One ephemeral agent: register, run a single job, deregister.

    Collaborators are built from settings unless injected.
    """

    def __init__(
        self,
        settings: AgentSettings,
        *,
        credentials: CredentialResolver | None = None,
        package_resolver: AgentPackageResolver | None = None,
        registrar: AgentRegistrar | None = None,
        runner: JobRunner | None = None,
        retry_policy: RetryPolicy | None = None,
        agent_args: list[str] | None = None,
        install_signal_handlers: bool = True,
    ):
        self.settings = settings
        self._credentials = credentials
        self._package_resolver = package_resolver
        self._registrar = registrar
        self._runner = runner
        self._agent_args = agent_args or []
        self._install_signal_handlers = install_signal_handlers
        self._terminating = False

        self.cleanup = CleanupHandler(
            self._deregister,
            retry_policy or build_retry_policy(settings),
            on_retry=lambda interval: print_info(
                INFO_MESSAGES["cleanup_retry"].format(interval=interval)
            ),
        )

    # ------------------------------------------------------------------
    # Collaborators (built lazily so validation happens before any I/O)
    # ------------------------------------------------------------------

    @property
    def credentials(self) -> CredentialResolver:
        if self._credentials is None:
            self._credentials = CredentialResolver(
                self.settings.client_id, timeout=self.settings.http_timeout
            )
        return self._credentials

    @property
    def package_resolver(self) -> AgentPackageResolver:
        if self._package_resolver is None:
            assert self.settings.url is not None
            self._package_resolver = AgentPackageResolver(
                self.settings.url,
                self.settings.platform or detect_agent_platform(),
                timeout=self.settings.http_timeout,
            )
        return self._package_resolver

    @property
    def registrar(self) -> AgentRegistrar:
        if self._registrar is None:
            assert self.settings.url is not None
            self._registrar = AgentRegistrar(
                self.settings.url,
                self.settings.pool,
                self.settings.effective_agent_name,
                self.settings.work_path,
                self.settings.agent_dir,
            )
        return self._registrar

    @property
    def runner(self) -> JobRunner:
        if self._runner is None:
            self._runner = JobRunner(self.settings.agent_dir, extra_args=self._agent_args)
        return self._runner

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def handle_signal(self, signum: int, frame: FrameType | None = None) -> None:
        """Signal handler: forward to the agent and unwind to cleanup.

        Signals arriving once termination or cleanup is under way are ignored.
        """
        name = signal.Signals(signum).name
        if self._terminating:
            logger.warning(LOG_SIGNAL_IGNORED.format(signal=name))
            print_warning(WARNING_MESSAGES["signal_during_cleanup"].format(signal=name))
            return

        self._terminating = True
        logger.info(LOG_SIGNAL_RECEIVED.format(signal=name))
        if self._runner is not None:
            self._runner.forward_termination(signum)
        raise TerminationRequested(TerminationReason.from_signal(signum))

    @contextmanager
    def _signal_scope(self) -> Iterator[None]:
        """Install handlers for SIGINT/SIGTERM and restore the previous ones."""
        if (
            not self._install_signal_handlers
            or threading.current_thread() is not threading.main_thread()
        ):
            yield
            return

        previous = {signum: signal.getsignal(signum) for signum in HANDLED_SIGNALS}
        for signum in HANDLED_SIGNALS:
            signal.signal(signum, self.handle_signal)
        try:
            yield
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _deregister(self, record: RegistrationRecord) -> None:
        self.registrar.unregister(self.credentials.current())

    def _bootstrap(self, tracker: StepTracker) -> None:
        error = missing_input_error(self.settings)
        if error is not None:
            raise error

        token = self.credentials.resolve()

        tracker.start_step(STEP_RESOLVE_PACKAGE)
        package = self.package_resolver.resolve(token)
        tracker.complete_step(
            INFO_MESSAGES["package"].format(
                version=package.version, platform=package.platform, url=package.download_url
            )
        )

        tracker.start_step(STEP_INSTALL_PACKAGE)
        self.package_resolver.install(package, self.settings.agent_dir)
        self.registrar.prepare()
        tracker.complete_step()

        tracker.start_step(STEP_REGISTER)
        record = self.registrar.register(token)
        tracker.complete_step()

        if self.settings.placeholder:
            logger.info(LOG_PLACEHOLDER)
            self.cleanup.skip()
            tracker.skip_step(STEP_RUN_SKIPPED)
            print_success(
                SUCCESS_MESSAGES["placeholder_done"].format(
                    agent=record.agent_name, pool=record.pool_name
                )
            )
            return

        self.cleanup.mark_registered(record)

        tracker.start_step(STEP_RUN)
        returncode = self.runner.run_once()
        print_success(SUCCESS_MESSAGES["job_done"].format(code=returncode))

    def _finish(self, reason: TerminationReason) -> bool:
        """Run cleanup; further signals are ignored from here on."""
        self._terminating = True
        if self.cleanup.state == AgentState.REGISTERED:
            print_header(STEP_CLEANUP)
        removed = self.cleanup.cleanup(reason)
        if removed and self.cleanup.record is not None and self.cleanup.attempts:
            print_success(
                SUCCESS_MESSAGES["agent_removed"].format(
                    agent=self.cleanup.record.agent_name, pool=self.cleanup.record.pool_name
                )
            )
        elif not removed and self.cleanup.record is not None:
            print_error(
                ERROR_MESSAGES["cleanup_abandoned"].format(
                    agent=self.cleanup.record.agent_name, pool=self.cleanup.record.pool_name
                )
            )
        return removed

    def run(self) -> int:
        """Run the full lifecycle.

        Returns:
            Process exit status: 0 after normal completion, 1 on a fatal
            error, 130/143 after SIGINT/SIGTERM.
        """
        tracker = StepTracker(LIFECYCLE_TOTAL_STEPS)
        reason = TerminationReason.EXIT
        exit_code = EXIT_CODE_SUCCESS
        removed = True

        with self._signal_scope():
            try:
                try:
                    self._bootstrap(tracker)
                except TerminationRequested as e:
                    reason = e.reason
                    exit_code = reason.exit_code
                except BootstrapError as e:
                    logger.debug("Fatal bootstrap error", exc_info=True)
                    if tracker.current_step:
                        tracker.fail_step(error=ERROR_MESSAGES["fatal"].format(error=e))
                    else:
                        print_error(ERROR_MESSAGES["fatal"].format(error=e))
                    exit_code = EXIT_CODE_FAILURE
            finally:
                self._terminating = True
                try:
                    removed = self._finish(reason)
                finally:
                    self.close()

        if not removed and exit_code == EXIT_CODE_SUCCESS:
            exit_code = EXIT_CODE_FAILURE
        return exit_code

    def remove_existing(self) -> bool:
        """Deregister an agent left configured by an earlier process.

        Uses the same retry policy as the post-job cleanup.

        Returns:
            True when nothing remains registered.
        """
        with self._signal_scope():
            try:
                self._terminating = True
                if not self.registrar.is_configured():
                    print_info(
                        INFO_MESSAGES["nothing_to_remove"].format(path=self.settings.agent_dir)
                    )
                    self.cleanup.skip()
                    return True
                self.cleanup.mark_registered(
                    RegistrationRecord(
                        agent_name=self.settings.effective_agent_name,
                        pool_name=self.settings.pool,
                        work_directory=self.settings.work_path,
                    )
                )
                return self._finish(TerminationReason.EXIT)
            finally:
                self.close()

    def close(self) -> None:
        """Erase the token and release HTTP clients."""
        if self._credentials is not None:
            self._credentials.close()
        if self._package_resolver is not None:
            self._package_resolver.close()
