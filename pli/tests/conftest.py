"""
Shared test fixtures for PLI driver tests.

Provides environment variable fixtures for PliSettings configuration tests.
All PLI env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest

# All PliSettings environment variable names, used for cleanup.
_ALL_PLI_ENV_VARS = (
    "PLI_HOST",
    "PLI_PORT",
    "PLI_MODEL",
    "PLI_SYSTEM_VOLTAGE",
    "PLI_REQUEST_TIMEOUT_MS",
    "PLI_RETRY_INTERVAL_S",
    "PLI_MAX_RETRY_INTERVAL_S",
    "PLI_CONNECT_TIMEOUT_S",
    "PLI_ACTIVITY_TIMEOUT_S",
    "PLI_ERROR_CODE_MIN",
    "PLI_ERROR_CODE_MAX",
    "PLI_ERROR_FRAME_WIDTH",
    "PLI_REJECT_ON_ERROR_FRAME",
    "PLI_LATE_FRAME_GRACE_S",
    "PLI_HISTORY_MEMORY",
    "PLI_POLL_INTERVAL_S",
    "PLI_HISTORY_INTERVAL_S",
    "PLI_HEALTH_PATH",
    "PLI_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_pli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all PLI env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_PLI_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set every PliSettings environment variable.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "PLI_HOST": "192.168.1.60",
        "PLI_PORT": "9000",
        "PLI_MODEL": "PL60",
        "PLI_SYSTEM_VOLTAGE": "24",
        "PLI_REQUEST_TIMEOUT_MS": "2500",
        "PLI_RETRY_INTERVAL_S": "2.0",
        "PLI_MAX_RETRY_INTERVAL_S": "60.0",
        "PLI_CONNECT_TIMEOUT_S": "3.0",
        "PLI_ACTIVITY_TIMEOUT_S": "120",
        "PLI_ERROR_CODE_MIN": "0x80",
        "PLI_ERROR_CODE_MAX": "0x85",
        "PLI_ERROR_FRAME_WIDTH": "2",
        "PLI_REJECT_ON_ERROR_FRAME": "true",
        "PLI_LATE_FRAME_GRACE_S": "0.25",
        "PLI_HISTORY_MEMORY": "RAM",
        "PLI_POLL_INTERVAL_S": "10",
        "PLI_HISTORY_INTERVAL_S": "600",
        "PLI_HEALTH_PATH": "/tmp/pli-health.json",
        "PLI_LOG_LEVEL": "debug",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {"PLI_HOST": "10.0.0.50"}
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
