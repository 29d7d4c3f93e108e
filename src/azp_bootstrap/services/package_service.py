"""Agent package resolution and installation.

Asks the organization's distributed-task API for the latest agent build
matching this platform, downloads it and unpacks it into the agent directory.
"""

import logging
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Any

import httpx

from azp_bootstrap.config.messages import ERROR_MESSAGES
from azp_bootstrap.constants import (
    AGENT_PACKAGES_ACCEPT,
    AGENT_PACKAGES_API_PATH,
    AGENT_PACKAGES_BASIC_AUTH_USER,
    AGENT_PACKAGES_PARAM_PLATFORM,
    AGENT_PACKAGES_PARAM_TOP,
    ARCHIVE_SUFFIX_TAR_GZ,
    ARCHIVE_SUFFIX_ZIP,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DOWNLOAD_CHUNK_SIZE,
    LOG_PACKAGE_DOWNLOAD,
    LOG_PACKAGE_EXTRACTED,
    LOG_PACKAGE_FOUND,
    LOG_PACKAGE_QUERY,
    PACKAGE_RESPONSE_KEY_DOWNLOAD_URL,
    PACKAGE_RESPONSE_KEY_FILENAME,
    PACKAGE_RESPONSE_KEY_PLATFORM,
    PACKAGE_RESPONSE_KEY_VALUE,
    PACKAGE_RESPONSE_KEY_VERSION,
    PACKAGE_VERSION_KEYS,
)
from azp_bootstrap.exceptions import PackageResolutionError
from azp_bootstrap.models.agent import AccessToken, AgentPackage

logger = logging.getLogger(__name__)


def _format_version(raw: Any) -> str:
    """Render the API's {major, minor, patch} version object."""
    if isinstance(raw, dict):
        return ".".join(str(raw.get(key, 0)) for key in PACKAGE_VERSION_KEYS)
    return str(raw) if raw is not None else "unknown"


def _parse_package(payload: Any, platform: str) -> AgentPackage | None:
    """Extract the first package from a packages API response."""
    if not isinstance(payload, dict):
        return None
    packages = payload.get(PACKAGE_RESPONSE_KEY_VALUE) or []
    if not packages or not isinstance(packages[0], dict):
        return None

    entry = packages[0]
    download_url = entry.get(PACKAGE_RESPONSE_KEY_DOWNLOAD_URL)
    if not download_url:
        return None

    return AgentPackage(
        version=_format_version(entry.get(PACKAGE_RESPONSE_KEY_VERSION)),
        platform=entry.get(PACKAGE_RESPONSE_KEY_PLATFORM) or platform,
        download_url=download_url,
        filename=entry.get(PACKAGE_RESPONSE_KEY_FILENAME) or "",
    )


def _extract_zip(archive: Path, destination: Path) -> None:
    """Extract a zip archive, refusing members outside the destination."""
    root = destination.resolve()
    with zipfile.ZipFile(archive) as zf:
        for member in zf.namelist():
            target = (destination / member).resolve()
            if not target.is_relative_to(root):
                raise PackageResolutionError(
                    f"Agent archive member escapes the agent directory: {member}"
                )
        zf.extractall(destination)


def _extract_tar(archive: Path, destination: Path) -> None:
    """Extract a gzipped tarball with the 'data' safety filter."""
    try:
        with tarfile.open(archive, "r:gz") as tf:
            tf.extractall(destination, filter="data")
    except tarfile.FilterError as e:
        raise PackageResolutionError(
            f"Agent archive member escapes the agent directory: {e}"
        ) from e


class AgentPackageResolver:
    """Resolve and install the agent package for one organization and platform."""

    def __init__(
        self,
        url: str,
        platform: str,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ):
        """Initialize the resolver.

        Args:
            url: Organization URL (e.g. https://dev.azure.com/contoso).
            platform: Package platform string (e.g. linux-x64).
            timeout: HTTP timeout in seconds.
            client: Optional HTTP client (owned by the caller when given).
        """
        self.url = url.rstrip("/")
        self.platform = platform
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def _no_package(self) -> PackageResolutionError:
        return PackageResolutionError(
            ERROR_MESSAGES["no_package"].format(url=self.url),
            url=self.url,
            platform=self.platform,
        )

    def resolve(self, token: AccessToken) -> AgentPackage:
        """Find the latest agent package for this platform.

        Args:
            token: Access token for the organization.

        Returns:
            AgentPackage describing the download.

        Raises:
            PackageResolutionError: If no package matches. A wrong URL and an
                invalid token produce the same error.
        """
        endpoint = f"{self.url}{AGENT_PACKAGES_API_PATH}"
        logger.info(LOG_PACKAGE_QUERY.format(platform=self.platform, url=self.url))

        try:
            response = self._client.get(
                endpoint,
                params={
                    AGENT_PACKAGES_PARAM_PLATFORM: self.platform,
                    AGENT_PACKAGES_PARAM_TOP: 1,
                },
                headers={"Accept": AGENT_PACKAGES_ACCEPT},
                auth=(AGENT_PACKAGES_BASIC_AUTH_USER, token.secret()),
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.debug(f"Agent packages API returned HTTP {e.response.status_code}")
            raise self._no_package() from e
        except httpx.RequestError as e:
            logger.debug(f"Agent packages API request failed: {e}")
            raise self._no_package() from e
        except ValueError as e:
            # An invalid token is answered with an HTML sign-in page
            logger.debug("Agent packages API returned a non-JSON response")
            raise self._no_package() from e

        package = _parse_package(payload, self.platform)
        if package is None:
            raise self._no_package()

        logger.info(LOG_PACKAGE_FOUND.format(version=package.version, filename=package.archive_name))
        return package

    def download(self, package: AgentPackage, destination: Path) -> Path:
        """Stream the package archive into a temporary file under destination.

        The download URL is a public CDN location; no credentials are sent.

        Returns:
            Path to the downloaded archive (caller deletes it).
        """
        logger.info(LOG_PACKAGE_DOWNLOAD.format(url=package.download_url))
        destination.mkdir(parents=True, exist_ok=True)
        if package.archive_name.endswith(ARCHIVE_SUFFIX_ZIP):
            suffix = ARCHIVE_SUFFIX_ZIP
        else:
            suffix = ARCHIVE_SUFFIX_TAR_GZ

        with tempfile.NamedTemporaryFile(dir=destination, suffix=suffix, delete=False) as tmp:
            archive = Path(tmp.name)
            try:
                with self._client.stream("GET", package.download_url) as response:
                    response.raise_for_status()
                    for chunk in response.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                        tmp.write(chunk)
            except (httpx.HTTPError, OSError) as e:
                tmp.close()
                archive.unlink(missing_ok=True)
                raise PackageResolutionError(
                    f"Failed to download agent package: {e}",
                    url=package.download_url,
                    platform=package.platform,
                ) from e

        return archive

    def install(self, package: AgentPackage, agent_dir: Path) -> Path:
        """Download and unpack the package into the agent directory.

        Args:
            package: Package returned by resolve().
            agent_dir: Directory to unpack into.

        Returns:
            The agent directory.

        Raises:
            PackageResolutionError: If the download or extraction fails.
        """
        archive = self.download(package, agent_dir)
        try:
            if archive.suffix == ARCHIVE_SUFFIX_ZIP:
                _extract_zip(archive, agent_dir)
            else:
                _extract_tar(archive, agent_dir)
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            raise PackageResolutionError(
                f"Failed to extract agent package: {e}",
                url=package.download_url,
                platform=package.platform,
            ) from e
        finally:
            archive.unlink(missing_ok=True)

        logger.info(LOG_PACKAGE_EXTRACTED.format(path=agent_dir))
        return agent_dir

    def close(self) -> None:
        """Close the HTTP client if this resolver owns it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "AgentPackageResolver":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
