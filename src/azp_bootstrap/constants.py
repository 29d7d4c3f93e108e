"""Constants for azp-bootstrap.

This module contains:
- VERSION: Package version
- Azure DevOps and managed-identity API constants
- Agent script names and unattended configuration flags
- Lifecycle defaults and exit codes
- Log message templates used by the services

For user-facing console messages, import from azp_bootstrap.config.messages.
For runtime settings, import from azp_bootstrap.config.settings.
"""

from azp_bootstrap import __version__

# =============================================================================
# Version
# =============================================================================

VERSION = __version__

# =============================================================================
# Environment
# =============================================================================

ENV_PREFIX = "AZP_"

# Injected by Azure Container Apps / App Service when a managed identity is bound
ENV_IDENTITY_ENDPOINT = "IDENTITY_ENDPOINT"
ENV_IDENTITY_HEADER = "IDENTITY_HEADER"

# Unattended agent configuration reads its inputs from these variables
ENV_AGENT_INPUT_TOKEN = "VSTS_AGENT_INPUT_TOKEN"
ENV_AGENT_IGNORE = "VSO_AGENT_IGNORE"
AGENT_IGNORED_VARIABLES = (
    "AZP_TOKEN",
    "AZP_CLIENTID",
    ENV_AGENT_INPUT_TOKEN,
    ENV_IDENTITY_HEADER,
)

# =============================================================================
# Managed identity
# =============================================================================

# Application id of Azure DevOps; the token audience for pipeline agents
AZURE_DEVOPS_RESOURCE_ID = "499b84ac-1321-427f-aa17-267ca6975798"

IMDS_TOKEN_URL = "http://169.254.169.254/metadata/identity/oauth2/token"
IMDS_API_VERSION = "2018-02-01"
IMDS_HEADER_METADATA = "Metadata"
IMDS_HEADER_METADATA_VALUE = "true"

APP_SERVICE_API_VERSION = "2019-08-01"
APP_SERVICE_HEADER_IDENTITY = "X-IDENTITY-HEADER"

IDENTITY_PARAM_API_VERSION = "api-version"
IDENTITY_PARAM_RESOURCE = "resource"
IDENTITY_PARAM_CLIENT_ID = "client_id"

TOKEN_RESPONSE_KEY_ACCESS_TOKEN = "access_token"
TOKEN_RESPONSE_KEY_EXPIRES_ON = "expires_on"
TOKEN_RESPONSE_KEY_EXPIRES_IN = "expires_in"

# Fallback lifetime when the endpoint omits expiry information
TOKEN_DEFAULT_LIFETIME_SECONDS = 3600
# Re-resolve a cached token when it expires within this window
TOKEN_REFRESH_MARGIN_SECONDS = 300

# =============================================================================
# Agent packages
# =============================================================================

AGENT_PACKAGES_API_PATH = "/_apis/distributedtask/packages/agent"
AGENT_PACKAGES_PARAM_PLATFORM = "platform"
AGENT_PACKAGES_PARAM_TOP = "top"
AGENT_PACKAGES_ACCEPT = "application/json"
AGENT_PACKAGES_BASIC_AUTH_USER = "user"

PACKAGE_RESPONSE_KEY_VALUE = "value"
PACKAGE_RESPONSE_KEY_DOWNLOAD_URL = "downloadUrl"
PACKAGE_RESPONSE_KEY_FILENAME = "filename"
PACKAGE_RESPONSE_KEY_PLATFORM = "platform"
PACKAGE_RESPONSE_KEY_VERSION = "version"
PACKAGE_VERSION_KEYS = ("major", "minor", "patch")

ARCHIVE_SUFFIX_TAR_GZ = ".tar.gz"
ARCHIVE_SUFFIX_ZIP = ".zip"
DOWNLOAD_CHUNK_SIZE = 1024 * 1024

# platform.system() -> package OS token
PACKAGE_OS_MAP: dict[str, str] = {
    "linux": "linux",
    "darwin": "osx",
    "windows": "win",
}

# platform.machine() -> package architecture token
PACKAGE_ARCH_MAP: dict[str, str] = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armv6l": "arm",
}

# =============================================================================
# Agent scripts
# =============================================================================

AGENT_CONFIG_SCRIPT_POSIX = "config.sh"
AGENT_CONFIG_SCRIPT_WINDOWS = "config.cmd"
AGENT_RUN_SCRIPT_POSIX = "run.sh"
AGENT_RUN_SCRIPT_WINDOWS = "run.cmd"
AGENT_ENV_SCRIPT_POSIX = "env.sh"

AGENT_CONFIG_REMOVE = "remove"
AGENT_FLAG_UNATTENDED = "--unattended"
AGENT_FLAG_URL = "--url"
AGENT_FLAG_AUTH = "--auth"
AGENT_FLAG_POOL = "--pool"
AGENT_FLAG_AGENT = "--agent"
AGENT_FLAG_WORK = "--work"
AGENT_FLAG_REPLACE = "--replace"
AGENT_FLAG_ACCEPT_TEE_EULA = "--acceptTeeEula"
AGENT_FLAG_ONCE = "--once"
AGENT_AUTH_PAT = "PAT"

# Timeout for the agent's own shutdown after termination is forwarded
AGENT_SHUTDOWN_TIMEOUT_SECONDS = 30.0

# =============================================================================
# Lifecycle defaults
# =============================================================================

DEFAULT_POOL = "Default"
DEFAULT_WORK_DIR = "_work"
DEFAULT_CLEANUP_INTERVAL_SECONDS = 30.0
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_LOG_LEVEL = "INFO"

# =============================================================================
# Exit codes
# =============================================================================

EXIT_CODE_SUCCESS = 0
EXIT_CODE_FAILURE = 1
EXIT_CODE_INTERRUPT = 130
EXIT_CODE_TERMINATE = 143

# =============================================================================
# Log messages
# =============================================================================

LOG_TOKEN_REQUEST = "Requesting access token from {source} for client id {client_id}"
LOG_TOKEN_ACQUIRED = "Access token acquired (expires {expires_on})"
LOG_TOKEN_REFRESH = "Cached access token expires at {expires_on}, refreshing"
LOG_TOKEN_CLEARED = "Access token cleared"
LOG_PACKAGE_QUERY = "Querying agent packages for platform {platform} at {url}"
LOG_PACKAGE_FOUND = "Resolved agent package {version} ({filename})"
LOG_PACKAGE_DOWNLOAD = "Downloading agent package from {url}"
LOG_PACKAGE_EXTRACTED = "Extracted agent package into {path}"
LOG_AGENT_COMMAND = "Running agent command: {command}"
LOG_AGENT_ENV_SCRIPT = "Sourcing agent environment via {script}"
LOG_REGISTERED = "Agent '{agent}' registered in pool '{pool}'"
LOG_UNREGISTERED = "Agent '{agent}' removed from pool '{pool}'"
LOG_JOB_STARTED = "Agent process started (pid {pid})"
LOG_JOB_FINISHED = "Agent process exited with status {code}"
LOG_JOB_FORWARD_TERMINATE = "Forwarding termination to agent process (pid {pid})"
LOG_JOB_KILL = "Agent process did not stop within {timeout}s, killing it"
LOG_STATE_TRANSITION = "Cleanup state {old} -> {new}"
LOG_CLEANUP_TRIGGERED = "Cleanup triggered by {reason}"
LOG_CLEANUP_ATTEMPT = "Deregistration attempt {attempt}"
LOG_CLEANUP_RETRY = "Deregistration failed ({error}); retrying in {interval:.0f} seconds"
LOG_CLEANUP_ABANDONED = "Giving up on deregistration after {attempts} attempts"
LOG_CLEANUP_ALREADY = "Cleanup already {state}, ignoring {reason}"
LOG_SIGNAL_RECEIVED = "Received {signal}"
LOG_SIGNAL_IGNORED = "Received {signal} during cleanup, ignoring"
LOG_PLACEHOLDER = "Placeholder mode: skipping job execution and deregistration"
