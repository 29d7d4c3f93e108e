"""Agent cleanup: deregistration state machine with fixed back-off retry.

States::

    IDLE ──mark_registered──> REGISTERED ──cleanup──> CLEANING ──success──> REMOVED
      └───────────────────────skip / cleanup (nothing registered)──────────────┘

Removal fails while a job is still running on the agent, so CLEANING retries
at a fixed interval until the pool accepts it. Leaving a stale agent in the
pool is worse than a delayed shutdown.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from azp_bootstrap.constants import (
    DEFAULT_CLEANUP_INTERVAL_SECONDS,
    LOG_CLEANUP_ABANDONED,
    LOG_CLEANUP_ALREADY,
    LOG_CLEANUP_ATTEMPT,
    LOG_CLEANUP_RETRY,
    LOG_CLEANUP_TRIGGERED,
    LOG_STATE_TRANSITION,
)
from azp_bootstrap.exceptions import BootstrapError
from azp_bootstrap.models.agent import RegistrationRecord
from azp_bootstrap.models.enums import ALLOWED_TRANSITIONS, AgentState, TerminationReason

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Fixed-interval retry policy.

    Attributes:
        interval_seconds: Delay between attempts.
        max_attempts: Attempt cap; None retries indefinitely.
        sleep: Sleep function, injectable for tests.
    """

    interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS
    max_attempts: int | None = None
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def exhausted(self, attempts: int) -> bool:
        """Whether no further attempt is allowed after `attempts` failures."""
        return self.max_attempts is not None and attempts >= self.max_attempts

    def wait(self) -> None:
        self.sleep(self.interval_seconds)


class CleanupHandler:
    """Guarantee removal of this process's agent registration.

    Attributes:
        state: Current AgentState.
        record: The registration being cleaned up, once registered.
        attempts: Deregistration attempts made by the last cleanup().
    """

    def __init__(
        self,
        deregister: Callable[[RegistrationRecord], None],
        policy: RetryPolicy | None = None,
        on_retry: Callable[[float], None] | None = None,
    ):
        """Initialize the handler.

        Args:
            deregister: Removes a registration; raises BootstrapError on failure.
            policy: Retry policy (defaults to 30s, unbounded).
            on_retry: Called with the interval before each back-off (console output).
        """
        self._deregister = deregister
        self.policy = policy or RetryPolicy()
        self._on_retry = on_retry
        self.state = AgentState.IDLE
        self.record: RegistrationRecord | None = None
        self.attempts = 0

    def _transition(self, new_state: AgentState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid cleanup transition {self.state.value} -> {new_state.value}")
        logger.debug(LOG_STATE_TRANSITION.format(old=self.state.value, new=new_state.value))
        self.state = new_state

    def mark_registered(self, record: RegistrationRecord) -> None:
        """Track a registration that must be removed before exit."""
        self._transition(AgentState.REGISTERED)
        self.record = record

    def skip(self) -> None:
        """Finish without deregistration (placeholder agents)."""
        self._transition(AgentState.REMOVED)

    def cleanup(self, reason: TerminationReason) -> bool:
        """Remove the registration, retrying until the pool accepts.

        Normal exit, interrupt and terminate all take the same path. Calling
        this again once cleaning has started is a no-op.

        Args:
            reason: What triggered cleanup (for logging).

        Returns:
            True when nothing remains registered, False if a capped retry
            policy gave up.
        """
        if self.state in (AgentState.CLEANING, AgentState.REMOVED):
            logger.debug(LOG_CLEANUP_ALREADY.format(state=self.state.value, reason=reason.value))
            return self.state == AgentState.REMOVED

        if self.state == AgentState.IDLE:
            # Nothing was registered
            self._transition(AgentState.REMOVED)
            return True

        logger.info(LOG_CLEANUP_TRIGGERED.format(reason=reason.value))
        self._transition(AgentState.CLEANING)
        assert self.record is not None

        self.attempts = 0
        while True:
            self.attempts += 1
            logger.info(LOG_CLEANUP_ATTEMPT.format(attempt=self.attempts))
            try:
                self._deregister(self.record)
            except BootstrapError as e:
                if self.policy.exhausted(self.attempts):
                    logger.error(LOG_CLEANUP_ABANDONED.format(attempts=self.attempts))
                    return False
                logger.warning(
                    LOG_CLEANUP_RETRY.format(error=e, interval=self.policy.interval_seconds)
                )
                if self._on_retry is not None:
                    self._on_retry(self.policy.interval_seconds)
                self.policy.wait()
                continue

            self._transition(AgentState.REMOVED)
            return True
