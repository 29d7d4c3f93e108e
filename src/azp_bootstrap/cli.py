"""Main CLI entry point for azp-bootstrap."""

import sys
from pathlib import Path

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console

from azp_bootstrap.config.messages import (
    ERROR_MESSAGES,
    HELP_TEXT,
    INFO_MESSAGES,
    PROJECT_TAGLINE,
    PROJECT_URL,
    SUCCESS_MESSAGES,
)
from azp_bootstrap.config.settings import AgentSettings, load_settings
from azp_bootstrap.constants import (
    EXIT_CODE_FAILURE,
    EXIT_CODE_INTERRUPT,
    VERSION,
)
from azp_bootstrap.exceptions import BootstrapError
from azp_bootstrap.services.lifecycle import (
    AgentLifecycle,
    TerminationRequested,
    missing_input_error,
)
from azp_bootstrap.utils import (
    configure_logging,
    print_error,
    print_info,
    print_panel,
    print_success,
)

# Load .env file from current directory if it exists
load_dotenv(Path.cwd() / ".env", verbose=False)

app = typer.Typer(
    name="azp-bootstrap",
    help=PROJECT_TAGLINE,
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

# =============================================================================
# Shared options
# =============================================================================

URL_OPTION = typer.Option(None, "--url", "-u", help="Organization URL [env: AZP_URL]")
CLIENT_ID_OPTION = typer.Option(
    None, "--client-id", "-c", help="Managed identity client id [env: AZP_CLIENTID]"
)
POOL_OPTION = typer.Option(None, "--pool", "-p", help="Agent pool [env: AZP_POOL]")
AGENT_NAME_OPTION = typer.Option(
    None, "--agent-name", "-n", help="Agent name, defaults to host name [env: AZP_AGENT_NAME]"
)
WORK_OPTION = typer.Option(None, "--work", "-w", help="Work directory [env: AZP_WORK]")
AGENT_DIR_OPTION = typer.Option(
    None, "--agent-dir", help="Directory to unpack the agent into [env: AZP_AGENT_DIR]"
)
PLATFORM_OPTION = typer.Option(
    None, "--platform", help="Agent package platform, e.g. linux-x64 [env: AZP_PLATFORM]"
)
LOG_LEVEL_OPTION = typer.Option(None, "--log-level", "-l", help="Log level [env: AZP_LOG_LEVEL]")


def _load(**overrides: object) -> AgentSettings:
    """Load settings or exit 1 on invalid values."""
    try:
        settings = load_settings(**overrides)
    except ValidationError as e:
        print_error(ERROR_MESSAGES["generic_error"].format(error=e))
        raise typer.Exit(code=EXIT_CODE_FAILURE) from e
    configure_logging(settings.log_level)
    return settings


def _require(settings: AgentSettings) -> None:
    """Exit 1 when a required input is missing."""
    error = missing_input_error(settings)
    if error is not None:
        print_error(str(error.message))
        raise typer.Exit(code=EXIT_CODE_FAILURE)


@app.command("run")
def run(
    agent_args: list[str] | None = typer.Argument(
        None, help="Extra arguments passed through to the agent's run script"
    ),
    url: str | None = URL_OPTION,
    client_id: str | None = CLIENT_ID_OPTION,
    pool: str | None = POOL_OPTION,
    agent_name: str | None = AGENT_NAME_OPTION,
    work: str | None = WORK_OPTION,
    agent_dir: Path | None = AGENT_DIR_OPTION,
    platform: str | None = PLATFORM_OPTION,
    placeholder: bool | None = typer.Option(
        None,
        "--placeholder/--no-placeholder",
        help="Register a placeholder agent and exit without running a job [env: AZP_PLACEHOLDER]",
    ),
    cleanup_interval: float | None = typer.Option(
        None,
        "--cleanup-interval",
        help="Seconds between deregistration attempts [env: AZP_CLEANUP_INTERVAL]",
    ),
    cleanup_max_attempts: int | None = typer.Option(
        None,
        "--cleanup-max-attempts",
        help="Give up deregistration after this many attempts [env: AZP_CLEANUP_MAX_ATTEMPTS]",
    ),
    log_level: str | None = LOG_LEVEL_OPTION,
) -> None:
    """Register an ephemeral agent, run one job, then deregister it.

    Exits 0 after normal completion, 1 on configuration, authentication or
    package errors, and 130/143 after an interrupt/terminate signal.
    """
    settings = _load(
        url=url,
        client_id=client_id,
        pool=pool,
        agent_name=agent_name,
        work=work,
        agent_dir=agent_dir,
        platform=platform,
        placeholder=placeholder,
        cleanup_interval=cleanup_interval,
        cleanup_max_attempts=cleanup_max_attempts,
        log_level=log_level,
    )
    _require(settings)

    lifecycle = AgentLifecycle(settings, agent_args=agent_args)
    try:
        exit_code = lifecycle.run()
    except TerminationRequested as e:
        exit_code = e.reason.exit_code
    raise typer.Exit(code=exit_code)


@app.command("token")
def token(
    url: str | None = URL_OPTION,
    client_id: str | None = CLIENT_ID_OPTION,
    log_level: str | None = LOG_LEVEL_OPTION,
) -> None:
    """Check that the managed identity can obtain an Azure DevOps token.

    Prints the token's expiry, never the token itself.
    """
    settings = _load(url=url, client_id=client_id, log_level=log_level)
    _require(settings)

    lifecycle = AgentLifecycle(settings, install_signal_handlers=False)
    try:
        access_token = lifecycle.credentials.resolve()
        print_info(f"Source: {access_token.source}")
        print_success(
            SUCCESS_MESSAGES["token_acquired"].format(
                expires_on=access_token.expires_on.isoformat()
            )
        )
    except BootstrapError as e:
        print_error(ERROR_MESSAGES["fatal"].format(error=e))
        raise typer.Exit(code=EXIT_CODE_FAILURE) from e
    finally:
        lifecycle.close()


@app.command("package")
def package(
    url: str | None = URL_OPTION,
    client_id: str | None = CLIENT_ID_OPTION,
    platform: str | None = PLATFORM_OPTION,
    log_level: str | None = LOG_LEVEL_OPTION,
) -> None:
    """Show the agent package that matches this platform."""
    settings = _load(url=url, client_id=client_id, platform=platform, log_level=log_level)
    _require(settings)

    lifecycle = AgentLifecycle(settings, install_signal_handlers=False)
    try:
        access_token = lifecycle.credentials.resolve()
        agent_package = lifecycle.package_resolver.resolve(access_token)
        print_info(
            INFO_MESSAGES["package"].format(
                version=agent_package.version,
                platform=agent_package.platform,
                url=agent_package.download_url,
            )
        )
    except BootstrapError as e:
        print_error(ERROR_MESSAGES["fatal"].format(error=e))
        raise typer.Exit(code=EXIT_CODE_FAILURE) from e
    finally:
        lifecycle.close()


@app.command("remove")
def remove(
    url: str | None = URL_OPTION,
    client_id: str | None = CLIENT_ID_OPTION,
    pool: str | None = POOL_OPTION,
    agent_name: str | None = AGENT_NAME_OPTION,
    agent_dir: Path | None = AGENT_DIR_OPTION,
    cleanup_interval: float | None = typer.Option(
        None, "--cleanup-interval", help="Seconds between attempts [env: AZP_CLEANUP_INTERVAL]"
    ),
    cleanup_max_attempts: int | None = typer.Option(
        None, "--cleanup-max-attempts", help="Attempt cap [env: AZP_CLEANUP_MAX_ATTEMPTS]"
    ),
    log_level: str | None = LOG_LEVEL_OPTION,
) -> None:
    """Deregister the agent configured in the agent directory.

    Uses the same retry policy as the cleanup after a job, for agents left
    behind by a process that was killed before it could clean up.
    """
    settings = _load(
        url=url,
        client_id=client_id,
        pool=pool,
        agent_name=agent_name,
        agent_dir=agent_dir,
        cleanup_interval=cleanup_interval,
        cleanup_max_attempts=cleanup_max_attempts,
        log_level=log_level,
    )
    _require(settings)

    lifecycle = AgentLifecycle(settings)
    try:
        removed = lifecycle.remove_existing()
    except TerminationRequested as e:
        raise typer.Exit(code=e.reason.exit_code) from e
    if not removed:
        raise typer.Exit(code=EXIT_CODE_FAILURE)


@app.command("version")
def version() -> None:
    """Show version information."""
    print_panel(
        f"[bold cyan]azp-bootstrap[/bold cyan] version [green]{VERSION}[/green]\n\n"
        f"{PROJECT_TAGLINE}\n\n"
        f"[dim]{PROJECT_URL}[/dim]",
        title="Version",
        style="cyan",
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version_flag: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version information",
        is_eager=True,
    ),
) -> None:
    """azp-bootstrap - ephemeral self-hosted Azure Pipelines agents.

    Get started:
        azp-bootstrap token     # Check the managed identity
        azp-bootstrap run       # Register, run one job, deregister
    """
    if version_flag:
        version()
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(HELP_TEXT)
        raise typer.Exit()


def cli_main() -> None:
    """Main entry point for the CLI.

    This is the function that gets called when running the 'azp-bootstrap'
    command. It handles exceptions and provides user-friendly error messages.
    """
    try:
        app()
    except KeyboardInterrupt:
        console.print(f"\n[yellow]{INFO_MESSAGES['cancelled']}[/yellow]")
        sys.exit(EXIT_CODE_INTERRUPT)
    except Exception as e:
        if isinstance(e, typer.Exit):
            sys.exit(e.exit_code)

        print_error(ERROR_MESSAGES["generic_error"].format(error=str(e)))

        if "--log-level" in sys.argv and "DEBUG" in (arg.upper() for arg in sys.argv):
            import traceback

            console.print("\n[dim]Traceback:[/dim]")
            traceback.print_exc()

        sys.exit(EXIT_CODE_FAILURE)


if __name__ == "__main__":
    cli_main()
