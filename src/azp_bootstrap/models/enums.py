"""Enum types for azp-bootstrap.

Lifecycle states and termination reasons are enums rather than string
constants so transitions and exit codes can be checked exhaustively.
"""

import signal
from enum import Enum

from azp_bootstrap.constants import (
    EXIT_CODE_INTERRUPT,
    EXIT_CODE_SUCCESS,
    EXIT_CODE_TERMINATE,
)


class AgentState(str, Enum):
    """Cleanup handler states."""

    IDLE = "idle"
    REGISTERED = "registered"
    CLEANING = "cleaning"
    REMOVED = "removed"

    @classmethod
    def values(cls) -> list[str]:
        """Return list of all state values."""
        return [s.value for s in cls]


# Allowed state transitions; anything else is a programming error
ALLOWED_TRANSITIONS: dict[AgentState, frozenset[AgentState]] = {
    AgentState.IDLE: frozenset({AgentState.REGISTERED, AgentState.REMOVED}),
    AgentState.REGISTERED: frozenset({AgentState.CLEANING}),
    AgentState.CLEANING: frozenset({AgentState.REMOVED}),
    AgentState.REMOVED: frozenset(),
}


class TerminationReason(str, Enum):
    """Why the lifecycle is cleaning up."""

    EXIT = "exit"
    INTERRUPT = "interrupt"
    TERMINATE = "terminate"

    @property
    def exit_code(self) -> int:
        """Process exit status for this termination path."""
        codes = {
            TerminationReason.EXIT: EXIT_CODE_SUCCESS,
            TerminationReason.INTERRUPT: EXIT_CODE_INTERRUPT,
            TerminationReason.TERMINATE: EXIT_CODE_TERMINATE,
        }
        return codes[self]

    @classmethod
    def from_signal(cls, signum: int) -> "TerminationReason":
        """Map a signal number to a termination reason."""
        if signum == signal.SIGINT:
            return cls.INTERRUPT
        return cls.TERMINATE
