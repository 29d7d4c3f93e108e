"""Cross-platform abstractions for Windows and POSIX systems.

This module provides platform-agnostic functions for:
- Agent package platform detection (linux-x64, osx-arm64, win-x64, ...)
- Agent script selection (config.sh vs config.cmd)
- Child process groups and signal forwarding
"""

import logging
import os
import platform
import signal
import subprocess
import sys
from pathlib import Path
from typing import Any, Final

from azp_bootstrap.constants import PACKAGE_ARCH_MAP, PACKAGE_OS_MAP
from azp_bootstrap.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS: Final[bool] = sys.platform == "win32"


# =============================================================================
# Agent package platform
# =============================================================================


def detect_agent_platform(system: str | None = None, machine: str | None = None) -> str:
    """Build the agent package platform string for this host.

    Args:
        system: Operating system name (defaults to platform.system()).
        machine: Machine architecture (defaults to platform.machine()).

    Returns:
        Platform string such as "linux-x64" or "osx-arm64".

    Raises:
        ConfigurationError: If the OS or architecture has no agent build.
    """
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()

    os_token = PACKAGE_OS_MAP.get(system)
    arch_token = PACKAGE_ARCH_MAP.get(machine)
    if os_token is None or arch_token is None:
        raise ConfigurationError(
            f"No Azure Pipelines agent build for {system}/{machine}; set AZP_PLATFORM",
        )
    return f"{os_token}-{arch_token}"


# =============================================================================
# Agent scripts
# =============================================================================


def agent_script(agent_dir: Path, posix_name: str, windows_name: str) -> Path:
    """Return the platform-appropriate agent script path.

    Args:
        agent_dir: Directory the agent package was unpacked into.
        posix_name: Script name on POSIX (e.g. "config.sh").
        windows_name: Script name on Windows (e.g. "config.cmd").

    Returns:
        Path to the script (may not exist).
    """
    return agent_dir / (windows_name if IS_WINDOWS else posix_name)


def ensure_executable(path: Path) -> None:
    """Add execute permission bits to a script on POSIX (no-op on Windows)."""
    if IS_WINDOWS:
        return
    mode = path.stat().st_mode
    path.chmod(mode | 0o111)


# =============================================================================
# Process Management
# =============================================================================


def get_process_group_kwargs() -> dict[str, Any]:
    """Get subprocess.Popen kwargs that put the child in its own process group.

    Signals from the terminal then reach only this process, which decides
    when and how to forward them to the agent.

    Returns:
        Dictionary of kwargs to pass to subprocess.Popen.
    """
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}  # type: ignore[attr-defined]
    return {"start_new_session": True}


def forward_signal(process: subprocess.Popen, signum: int) -> None:  # type: ignore[type-arg]
    """Forward a termination signal to a child process group.

    Args:
        process: Running child process.
        signum: Signal received by this process.
    """
    if process.poll() is not None:
        return

    if IS_WINDOWS:
        process.send_signal(signal.CTRL_BREAK_EVENT)  # type: ignore[attr-defined]
        return

    try:
        os.killpg(os.getpgid(process.pid), signum)
    except (ProcessLookupError, PermissionError) as e:
        logger.debug(f"Falling back to direct signal for pid {process.pid}: {e}")
        process.send_signal(signum)
