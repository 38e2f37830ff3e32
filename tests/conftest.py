"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any application import so the
settings object is built with test values.
"""

import os
from types import SimpleNamespace
from typing import Callable

import pytest

# CRITICAL: Set this before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")


@pytest.fixture
def make_request() -> Callable[..., SimpleNamespace]:
    """Build a minimal request context exposing lower-case headers."""

    def _make(**headers: str) -> SimpleNamespace:
        return SimpleNamespace(
            headers={name.replace("_", "-").lower(): value for name, value in headers.items()}
        )

    return _make
