"""Custom exceptions for azp-bootstrap.

All exceptions inherit from BootstrapError, allowing callers to catch every
bootstrap failure with a single except clause.

Exception hierarchy:
    BootstrapError (base)
    ├── ConfigurationError        missing or invalid input, fatal
    ├── AuthenticationError       token exchange failed, fatal
    ├── PackageResolutionError    no matching agent package, fatal
    ├── RegistrationError         unattended configuration failed, fatal
    ├── JobRunnerError            agent could not be started, fatal
    └── DeregistrationConflict    pool refused removal, retried
"""

from typing import Any


class BootstrapError(Exception):
    """Base exception for all azp-bootstrap errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
    """

    #: Whether the lifecycle treats this error as fatal
    fatal: bool = True

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(BootstrapError):
    """Raised when a required input is missing or invalid.

    Examples:
        - AZP_URL not set
        - AZP_CLIENTID not set
        - Unsupported platform with no AZP_PLATFORM override
    """

    def __init__(self, message: str, missing: list[str] | None = None):
        details = {"missing": ", ".join(missing)} if missing else None
        super().__init__(message, details)
        self.missing = missing or []


class AuthenticationError(BootstrapError):
    """Raised when the managed identity token exchange fails."""

    def __init__(self, message: str, source: str | None = None, status: int | None = None):
        details: dict[str, Any] = {}
        if source:
            details["source"] = source
        if status is not None:
            details["status"] = status
        super().__init__(message, details)
        self.source = source
        self.status = status


class PackageResolutionError(BootstrapError):
    """Raised when no agent package matches the platform.

    A misconfigured organization URL and an invalid token are
    indistinguishable here and are reported identically.
    """

    def __init__(self, message: str, url: str | None = None, platform: str | None = None):
        details: dict[str, Any] = {}
        if url:
            details["url"] = url
        if platform:
            details["platform"] = platform
        super().__init__(message, details)
        self.url = url
        self.platform = platform


class RegistrationError(BootstrapError):
    """Raised when unattended agent configuration fails."""

    def __init__(self, message: str, returncode: int | None = None):
        details = {"returncode": returncode} if returncode is not None else None
        super().__init__(message, details)
        self.returncode = returncode


class JobRunnerError(BootstrapError):
    """Raised when the agent process cannot be started."""


class DeregistrationConflict(BootstrapError):
    """Raised when the pool rejects agent removal.

    Typically a job is still in flight. Never fatal: the cleanup handler
    backs off and retries.
    """

    fatal = False

    def __init__(self, message: str, returncode: int | None = None):
        details = {"returncode": returncode} if returncode is not None else None
        super().__init__(message, details)
        self.returncode = returncode
