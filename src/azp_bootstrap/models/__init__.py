"""Data models for azp-bootstrap."""

from azp_bootstrap.models.agent import AccessToken, AgentPackage, RegistrationRecord
from azp_bootstrap.models.enums import AgentState, TerminationReason

__all__ = [
    "AccessToken",
    "AgentPackage",
    "AgentState",
    "RegistrationRecord",
    "TerminationReason",
]
