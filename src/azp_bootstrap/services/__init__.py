"""Services for azp-bootstrap.

- credential_service: managed identity token exchange
- package_service: agent package resolution and installation
- registration_service: unattended agent configuration and removal
- job_runner: single-job agent execution
- cleanup_service: deregistration state machine and retry policy
- lifecycle: the end-to-end bootstrap sequence
"""

from azp_bootstrap.services.cleanup_service import CleanupHandler, RetryPolicy
from azp_bootstrap.services.credential_service import CredentialResolver
from azp_bootstrap.services.job_runner import JobRunner
from azp_bootstrap.services.lifecycle import AgentLifecycle, TerminationRequested
from azp_bootstrap.services.package_service import AgentPackageResolver
from azp_bootstrap.services.registration_service import AgentRegistrar

__all__ = [
    "AgentLifecycle",
    "AgentPackageResolver",
    "AgentRegistrar",
    "CleanupHandler",
    "CredentialResolver",
    "JobRunner",
    "RetryPolicy",
    "TerminationRequested",
]
