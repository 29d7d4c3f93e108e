"""Agent bootstrap data models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import SecretStr


@dataclass
class AccessToken:
    """Short-lived bearer credential for Azure DevOps.

    The value is a SecretStr so it renders as '**********' in reprs,
    tracebacks and log records. It lives only in memory.
    """

    value: SecretStr
    expires_on: datetime
    source: str = ""

    def secret(self) -> str:
        """Return the raw token value for a single outgoing use."""
        return self.value.get_secret_value()

    def expires_within(self, seconds: float, now: datetime | None = None) -> bool:
        """Check whether the token expires within the given window."""
        current = now or datetime.now(UTC)
        return self.expires_on - current <= timedelta(seconds=seconds)


@dataclass
class AgentPackage:
    """An agent build returned by the distributed-task packages API."""

    version: str
    platform: str
    download_url: str
    filename: str

    @property
    def archive_name(self) -> str:
        """File name of the downloaded archive."""
        return self.filename or self.download_url.rsplit("/", 1)[-1]


@dataclass
class RegistrationRecord:
    """An agent registered into a pool by this process."""

    agent_name: str
    pool_name: str
    work_directory: Path
    replace: bool = True
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))
