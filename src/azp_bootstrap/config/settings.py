"""Runtime configuration settings for azp-bootstrap.

Settings are read from environment variables with the AZP_ prefix, the same
variables the Microsoft container agent scripts use. CLI flags override them
by passing keyword arguments to AgentSettings.
"""

import socket
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from azp_bootstrap.constants import (
    DEFAULT_CLEANUP_INTERVAL_SECONDS,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_POOL,
    DEFAULT_WORK_DIR,
    ENV_PREFIX,
)

# Required inputs: (field name, environment variable, CLI flag)
REQUIRED_INPUTS: tuple[tuple[str, str, str], ...] = (
    ("url", f"{ENV_PREFIX}URL", "--url"),
    ("client_id", f"{ENV_PREFIX}CLIENTID", "--client-id"),
)


class AgentSettings(BaseSettings):
    """Agent bootstrap settings.

    Can be overridden via environment variables with the AZP_ prefix.
    Required values are optional at the model level so that every missing
    input can be reported at once by validate_required().
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    url: str | None = Field(
        default=None,
        description="Azure DevOps organization URL",
    )
    client_id: str | None = Field(
        default=None,
        validation_alias=f"{ENV_PREFIX}CLIENTID",
        description="Managed identity client id",
    )
    pool: str = Field(
        default=DEFAULT_POOL,
        description="Agent pool to register into",
    )
    agent_name: str | None = Field(
        default=None,
        description="Agent name (defaults to the host name)",
    )
    work: str = Field(
        default=DEFAULT_WORK_DIR,
        description="Agent work directory",
    )
    placeholder: bool = Field(
        default=False,
        description="Register a placeholder agent and exit without running a job",
    )
    agent_dir: Path = Field(
        default_factory=Path.cwd,
        description="Directory the agent package is unpacked into",
    )
    platform: str | None = Field(
        default=None,
        description="Agent package platform override (e.g. linux-x64)",
    )
    cleanup_interval: float = Field(
        default=DEFAULT_CLEANUP_INTERVAL_SECONDS,
        ge=0,
        description="Seconds between deregistration attempts",
    )
    cleanup_max_attempts: int | None = Field(
        default=None,
        ge=1,
        description="Maximum deregistration attempts (unbounded when unset)",
    )
    http_timeout: float = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        gt=0,
        description="HTTP request timeout in seconds",
    )
    log_level: str = Field(
        default=DEFAULT_LOG_LEVEL,
        description="Logging level",
    )

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None

    @field_validator("placeholder", mode="before")
    @classmethod
    def _non_empty_is_true(cls, value: object) -> object:
        # Any non-empty string enables placeholder mode, as the agent start script does.
        if isinstance(value, str):
            return bool(value.strip())
        return value

    @field_validator("client_id", "agent_name", "platform")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def effective_agent_name(self) -> str:
        """Agent name used for registration."""
        return self.agent_name or socket.gethostname()

    @property
    def work_path(self) -> Path:
        """Absolute work directory (relative values resolve under agent_dir)."""
        work = Path(self.work)
        return work if work.is_absolute() else self.agent_dir / work

    def validate_required(self) -> list[tuple[str, str, str]]:
        """Validate that every required input is present.

        Returns:
            List of (field, environment variable, CLI flag) for missing inputs
            (empty list if valid)
        """
        return [entry for entry in REQUIRED_INPUTS if not getattr(self, entry[0])]


def load_settings(**overrides: object) -> AgentSettings:
    """Load settings from the environment, applying non-None overrides.

    Args:
        **overrides: Values from CLI flags; None means "not given"

    Returns:
        AgentSettings instance
    """
    given = {key: value for key, value in overrides.items() if value is not None}
    return AgentSettings(**given)
