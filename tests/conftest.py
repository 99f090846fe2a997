"""Shared fixtures for pulldeploy tests."""

from __future__ import annotations

import pytest

from pulldeploy.config import Settings, get_settings
from pulldeploy.process import CommandResult


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Keep tests independent of the host environment and .env files."""
    for var in ("PULLDEPLOY_CONFIG_PATH", "PULLDEPLOY_ADVANCE_ON_FAILURE", "PULLDEPLOY_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    """Settings with no .env file loading and a tiny poll interval."""
    return Settings(_env_file=None, poll_interval_seconds=0.01)


@pytest.fixture()
def command_result():
    """Factory for CommandResult objects returned by patched run_command calls."""

    def _create(returncode: int = 0, stdout: str = "", stderr: str = "", command: str = "cmd"):
        return CommandResult(command=command, returncode=returncode, stdout=stdout, stderr=stderr)

    return _create
