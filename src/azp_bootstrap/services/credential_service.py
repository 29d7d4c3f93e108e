"""Managed identity credential resolution.

Exchanges a managed identity client id for a short-lived Azure DevOps bearer
token. Two endpoints are supported:

- The platform identity endpoint injected by Azure Container Apps and App
  Service (IDENTITY_ENDPOINT / IDENTITY_HEADER).
- The Azure Instance Metadata Service (VMs, VM scale sets, AKS nodes).

The token is kept in memory only and erased by clear().
"""

import logging
import os
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from pydantic import SecretStr

from azp_bootstrap.constants import (
    APP_SERVICE_API_VERSION,
    APP_SERVICE_HEADER_IDENTITY,
    AZURE_DEVOPS_RESOURCE_ID,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    ENV_IDENTITY_ENDPOINT,
    ENV_IDENTITY_HEADER,
    ENV_PREFIX,
    IDENTITY_PARAM_API_VERSION,
    IDENTITY_PARAM_CLIENT_ID,
    IDENTITY_PARAM_RESOURCE,
    IMDS_API_VERSION,
    IMDS_HEADER_METADATA,
    IMDS_HEADER_METADATA_VALUE,
    IMDS_TOKEN_URL,
    LOG_TOKEN_ACQUIRED,
    LOG_TOKEN_CLEARED,
    LOG_TOKEN_REFRESH,
    LOG_TOKEN_REQUEST,
    TOKEN_DEFAULT_LIFETIME_SECONDS,
    TOKEN_REFRESH_MARGIN_SECONDS,
    TOKEN_RESPONSE_KEY_ACCESS_TOKEN,
    TOKEN_RESPONSE_KEY_EXPIRES_IN,
    TOKEN_RESPONSE_KEY_EXPIRES_ON,
)
from azp_bootstrap.exceptions import AuthenticationError, ConfigurationError
from azp_bootstrap.models.agent import AccessToken

logger = logging.getLogger(__name__)

SOURCE_IDENTITY_ENDPOINT = "identity endpoint"
SOURCE_IMDS = "instance metadata service"


def _parse_expiry(payload: Mapping[str, Any], now: datetime) -> datetime:
    """Determine token expiry from a token endpoint response.

    Both endpoints return ``expires_on`` as epoch seconds (usually a string).
    Falls back to ``expires_in`` and then to a default lifetime.
    """
    expires_on = payload.get(TOKEN_RESPONSE_KEY_EXPIRES_ON)
    if expires_on is not None:
        try:
            return datetime.fromtimestamp(int(float(expires_on)), UTC)
        except (TypeError, ValueError, OverflowError):
            logger.debug(f"Unparseable expires_on value: {expires_on!r}")

    expires_in = payload.get(TOKEN_RESPONSE_KEY_EXPIRES_IN)
    if expires_in is not None:
        try:
            return now + timedelta(seconds=int(float(expires_in)))
        except (TypeError, ValueError, OverflowError):
            logger.debug(f"Unparseable expires_in value: {expires_in!r}")

    return now + timedelta(seconds=TOKEN_DEFAULT_LIFETIME_SECONDS)


class CredentialResolver:
    """Resolve and cache an Azure DevOps access token for a managed identity.

    Attributes:
        client_id: Managed identity client id (the identity reference).
    """

    def __init__(
        self,
        client_id: str | None,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        environment: Mapping[str, str] | None = None,
        client: httpx.Client | None = None,
        refresh_margin_seconds: float = TOKEN_REFRESH_MARGIN_SECONDS,
    ):
        """Initialize the resolver.

        Args:
            client_id: Managed identity client id.
            timeout: HTTP timeout in seconds.
            environment: Environment variables (read-only, defaults to os.environ).
            client: Optional HTTP client (owned by the caller when given).
            refresh_margin_seconds: Re-resolve cached tokens expiring within this window.
        """
        self.client_id = client_id
        self._environment = environment if environment is not None else os.environ
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._refresh_margin = refresh_margin_seconds
        self._token: AccessToken | None = None

    @property
    def source(self) -> str:
        """Which token endpoint will be used."""
        if self._environment.get(ENV_IDENTITY_ENDPOINT) and self._environment.get(
            ENV_IDENTITY_HEADER
        ):
            return SOURCE_IDENTITY_ENDPOINT
        return SOURCE_IMDS

    @property
    def has_token(self) -> bool:
        """Whether a token is currently cached."""
        return self._token is not None

    def _build_request(self) -> tuple[str, dict[str, str], dict[str, str]]:
        """Build (url, params, headers) for the token request."""
        assert self.client_id is not None
        params = {
            IDENTITY_PARAM_RESOURCE: AZURE_DEVOPS_RESOURCE_ID,
            IDENTITY_PARAM_CLIENT_ID: self.client_id,
        }
        if self.source == SOURCE_IDENTITY_ENDPOINT:
            params[IDENTITY_PARAM_API_VERSION] = APP_SERVICE_API_VERSION
            headers = {APP_SERVICE_HEADER_IDENTITY: self._environment[ENV_IDENTITY_HEADER]}
            return self._environment[ENV_IDENTITY_ENDPOINT], params, headers

        params[IDENTITY_PARAM_API_VERSION] = IMDS_API_VERSION
        headers = {IMDS_HEADER_METADATA: IMDS_HEADER_METADATA_VALUE}
        return IMDS_TOKEN_URL, params, headers

    def resolve(self) -> AccessToken:
        """Exchange the managed identity for a fresh access token.

        Returns:
            AccessToken held in memory.

        Raises:
            ConfigurationError: If no client id is configured.
            AuthenticationError: If the token endpoint is unreachable or refuses.
        """
        if not self.client_id:
            raise ConfigurationError(
                "Managed identity client id is required",
                missing=[f"{ENV_PREFIX}CLIENTID"],
            )

        source = self.source
        url, params, headers = self._build_request()
        logger.info(LOG_TOKEN_REQUEST.format(source=source, client_id=self.client_id))

        try:
            response = self._client.get(url, params=params, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise AuthenticationError(
                f"Token endpoint rejected the managed identity: HTTP {e.response.status_code}",
                source=source,
                status=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise AuthenticationError(
                f"Token endpoint timed out at {url}", source=source
            ) from e
        except httpx.RequestError as e:
            raise AuthenticationError(
                f"Cannot reach token endpoint at {url}: {e}", source=source
            ) from e
        except ValueError as e:
            raise AuthenticationError(
                "Token endpoint returned a non-JSON response", source=source
            ) from e

        if not isinstance(payload, dict) or not payload.get(TOKEN_RESPONSE_KEY_ACCESS_TOKEN):
            raise AuthenticationError("Token endpoint response has no access token", source=source)

        now = datetime.now(UTC)
        self._token = AccessToken(
            value=SecretStr(payload[TOKEN_RESPONSE_KEY_ACCESS_TOKEN]),
            expires_on=_parse_expiry(payload, now),
            source=source,
        )
        logger.info(LOG_TOKEN_ACQUIRED.format(expires_on=self._token.expires_on.isoformat()))
        return self._token

    def current(self) -> AccessToken:
        """Return the cached token, re-resolving it when close to expiry.

        Raises:
            ConfigurationError: If no client id is configured.
            AuthenticationError: If a refresh is needed and fails.
        """
        if self._token is None:
            return self.resolve()
        if self._token.expires_within(self._refresh_margin):
            logger.info(LOG_TOKEN_REFRESH.format(expires_on=self._token.expires_on.isoformat()))
            return self.resolve()
        return self._token

    def clear(self) -> None:
        """Erase the cached token."""
        if self._token is not None:
            self._token = None
            logger.debug(LOG_TOKEN_CLEARED)

    def close(self) -> None:
        """Erase the token and close the HTTP client if this resolver owns it."""
        self.clear()
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "CredentialResolver":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
