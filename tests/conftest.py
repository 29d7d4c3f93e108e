"""Pytest configuration and fixtures for azp-bootstrap tests."""

import logging
import os
import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

from azp_bootstrap.constants import ENV_IDENTITY_ENDPOINT, ENV_IDENTITY_HEADER, ENV_PREFIX


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove AZP_* and identity variables so the host cannot leak into tests."""
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv(ENV_IDENTITY_ENDPOINT, raising=False)
    monkeypatch.delenv(ENV_IDENTITY_HEADER, raising=False)


@pytest.fixture
def agent_dir() -> Iterator[Path]:
    """Create a temporary agent directory.

    Yields:
        Path to temporary directory
    """
    temp_dir = Path(tempfile.mkdtemp(prefix="azp-bootstrap-test-"))
    try:
        yield temp_dir
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def debug_logs(
    caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch
) -> pytest.LogCaptureFixture:
    """Capture every azp_bootstrap and httpx record down to DEBUG.

    configure_logging() turns propagation off, so it is re-enabled here.
    """
    monkeypatch.setattr(logging.getLogger("azp_bootstrap"), "propagate", True)
    caplog.set_level(logging.DEBUG)
    caplog.set_level(logging.DEBUG, logger="azp_bootstrap")
    caplog.set_level(logging.DEBUG, logger="httpx")
    return caplog
