"""Logging configuration for azp-bootstrap."""

import logging
import sys

# Loggers of HTTP libraries log full request URLs at INFO; keep them quiet
_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(log_level: str) -> None:
    """Configure the azp_bootstrap logger.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    app_logger = logging.getLogger("azp_bootstrap")
    app_logger.setLevel(level)
    app_logger.propagate = False

    # Clear existing handlers so repeated invocations (tests, CliRunner) don't duplicate
    app_logger.handlers.clear()

    if level == logging.DEBUG:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s",
            datefmt="%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    app_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
