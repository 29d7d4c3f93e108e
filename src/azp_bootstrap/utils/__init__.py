"""Utility functions for azp-bootstrap."""

from azp_bootstrap.utils.console import (
    get_console,
    print_error,
    print_header,
    print_info,
    print_panel,
    print_success,
    print_warning,
)
from azp_bootstrap.utils.log_config import configure_logging
from azp_bootstrap.utils.step_tracker import StepTracker

__all__ = [
    "StepTracker",
    "configure_logging",
    "get_console",
    "print_error",
    "print_header",
    "print_info",
    "print_panel",
    "print_success",
    "print_warning",
]
