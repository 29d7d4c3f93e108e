"""UI messages and strings for azp-bootstrap.

This module consolidates all user-facing console output:
- Project metadata and help text
- Lifecycle step headers
- Success/error/info/warning messages
"""

# =============================================================================
# Project Metadata
# =============================================================================

PROJECT_TAGLINE = "Ephemeral self-hosted Azure Pipelines agents, one job at a time"
PROJECT_URL = "https://learn.microsoft.com/azure/devops/pipelines/agents/docker"

HELP_TEXT = f"""
[bold cyan]azp-bootstrap[/bold cyan] - {PROJECT_TAGLINE}

[bold]Commands:[/bold]
  [cyan]run[/cyan]         Resolve credentials, register, run one job, deregister
  [cyan]token[/cyan]       Verify the managed identity can obtain an access token
  [cyan]package[/cyan]     Show the agent package matching this platform
  [cyan]remove[/cyan]      Deregister the agent configured in the agent directory
  [cyan]version[/cyan]     Show version information

[bold]Examples:[/bold]
  [dim]# Run as an ephemeral Container Apps job[/dim]
  [dim]$ AZP_URL=https://dev.azure.com/contoso AZP_CLIENTID=<id> azp-bootstrap run[/dim]

  [dim]# Materialize the pool-side placeholder agent[/dim]
  [dim]$ azp-bootstrap run --placeholder --agent-name placeholder[/dim]

For more information, visit: {PROJECT_URL}
"""

# =============================================================================
# Lifecycle steps
# =============================================================================

LIFECYCLE_TOTAL_STEPS = 4
STEP_RESOLVE_PACKAGE = "Determining matching Azure Pipelines agent"
STEP_INSTALL_PACKAGE = "Downloading and extracting Azure Pipelines agent"
STEP_REGISTER = "Configuring Azure Pipelines agent"
STEP_RUN = "Running Azure Pipelines agent"
STEP_RUN_SKIPPED = "Placeholder agent registered, not running a job"
STEP_CLEANUP = "Cleanup. Removing Azure Pipelines agent"

# =============================================================================
# Success / info messages
# =============================================================================

SUCCESS_MESSAGES = {
    "token_acquired": "Access token acquired, expires {expires_on}",
    "agent_removed": "Agent '{agent}' removed from pool '{pool}'",
    "placeholder_done": "Placeholder agent '{agent}' is available in pool '{pool}'",
    "job_done": "Agent finished its job (exit status {code})",
}

INFO_MESSAGES = {
    "package": "Agent {version} for {platform}: {url}",
    "cleanup_retry": "Retrying in {interval:.0f} seconds...",
    "cancelled": "Cancelled by user",
    "nothing_to_remove": "No configured agent found in {path}",
}

# =============================================================================
# Error messages
# =============================================================================

ERROR_MESSAGES = {
    "generic_error": "An error occurred: {error}",
    "missing_input": "Missing required input: {name} (set {env} or pass {flag})",
    "fatal": "{error}",
    "no_package": (
        "Could not determine a matching Azure Pipelines agent. "
        "Check that {url} is correct and the token is valid for that organization"
    ),
    "cleanup_abandoned": (
        "Agent '{agent}' could not be removed from pool '{pool}'; "
        "it will remain listed as offline"
    ),
}

WARNING_MESSAGES = {
    "signal_during_cleanup": "Cleanup in progress, {signal} ignored",
}
