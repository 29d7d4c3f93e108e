"""Test fixtures for agent bootstrap services."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import SecretStr

from azp_bootstrap.models.agent import AccessToken, AgentPackage, RegistrationRecord

TEST_URL = "https://dev.azure.com/contoso"
TEST_CLIENT_ID = "11111111-2222-3333-4444-555555555555"
TEST_POOL = "ephemeral"
TEST_AGENT_NAME = "agent-7f9c"
TEST_PLATFORM = "linux-x64"
TEST_INTERVAL_SECONDS = 30.0

# Tokens
TEST_TOKEN_VALUE = "eyJ0eXAiOiJKV1Qi.test-token"
TEST_TOKEN_VALUE_REFRESHED = "eyJ0eXAiOiJKV1Qi.refreshed-token"
TEST_EXPIRES_ON_EPOCH = 1893456000  # 2030-01-01T00:00:00Z
TEST_EXPIRES_ON = datetime(2030, 1, 1, tzinfo=UTC)

# Identity endpoint
TEST_IDENTITY_ENDPOINT = "http://localhost:42356/msi/token"
TEST_IDENTITY_HEADER = "identity-header-secret"

# Packages
TEST_PACKAGE_VERSION = "4.248.0"
TEST_PACKAGE_FILENAME = "vsts-agent-linux-x64-4.248.0.tar.gz"
TEST_PACKAGE_URL = f"https://download.agent.dev.azure.com/agent/4.248.0/{TEST_PACKAGE_FILENAME}"
TEST_PACKAGES_RESPONSE = {
    "count": 1,
    "value": [
        {
            "type": "agent",
            "platform": TEST_PLATFORM,
            "createdOn": "2024-11-05T12:00:00Z",
            "version": {"major": 4, "minor": 248, "patch": 0},
            "downloadUrl": TEST_PACKAGE_URL,
            "filename": TEST_PACKAGE_FILENAME,
        }
    ],
}

# Process
TEST_PID = 4242
TEST_RETURN_CODE = 1
TEST_TIMEOUT_SECONDS = 0.1
TEST_ERROR_GENERIC = "test error"


def make_token(
    value: str = TEST_TOKEN_VALUE, expires_on: datetime | None = None
) -> AccessToken:
    """Build an AccessToken valid for an hour unless told otherwise."""
    return AccessToken(
        value=SecretStr(value),
        expires_on=expires_on or datetime.now(UTC) + timedelta(hours=1),
        source="test",
    )


def make_package() -> AgentPackage:
    return AgentPackage(
        version=TEST_PACKAGE_VERSION,
        platform=TEST_PLATFORM,
        download_url=TEST_PACKAGE_URL,
        filename=TEST_PACKAGE_FILENAME,
    )


def make_record(work_directory: Path | None = None) -> RegistrationRecord:
    return RegistrationRecord(
        agent_name=TEST_AGENT_NAME,
        pool_name=TEST_POOL,
        work_directory=work_directory or Path("/azp/_work"),
    )
