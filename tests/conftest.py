"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before anything imports ``myride.core.config``
so the global settings object is built for the testing environment.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("APP_SECURITY_HEADERS_ENABLED", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from unittest.mock import Mock

import pytest


@pytest.fixture
def clock() -> Mock:
    """Injectable millisecond clock frozen at t=0 until a test moves it."""
    return Mock(return_value=0)
