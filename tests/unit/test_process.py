"""Tests for pulldeploy.process, using the running interpreter as the child."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from pulldeploy.errors import ProcessExitError, ProcessSpawnError, ProcessTimeoutError
from pulldeploy.process import CommandResult, format_command, redact, run_command


class TestRedact:
    def test_masks_secrets(self) -> None:
        assert redact("token abc123 and abc123", ["abc123"]) == "token *** and ***"

    def test_ignores_empty_secret(self) -> None:
        assert redact("unchanged", [""]) == "unchanged"

    def test_format_command_quotes_and_masks(self) -> None:
        cmd = format_command(["git", "-c", "http.extraHeader=Authorization: Basic s3c"], ["s3c"])
        assert cmd == "git -c 'http.extraHeader=Authorization: Basic ***'"


class TestCommandResult:
    def test_check_passes_on_success(self) -> None:
        result = CommandResult(command="true", returncode=0)
        assert result.check() is result

    def test_check_raises_on_failure(self) -> None:
        result = CommandResult(command="false", returncode=3, stderr="boom")
        with pytest.raises(ProcessExitError) as exc_info:
            result.check()
        assert exc_info.value.returncode == 3
        assert exc_info.value.stderr == "boom"


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_success_captures_output(self) -> None:
        result = await run_command([sys.executable, "-c", "print('ok')"])
        assert result.succeeded
        assert result.stdout.strip() == "ok"

    @pytest.mark.asyncio
    async def test_nonzero_exit_returns_result(self) -> None:
        result = await run_command(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(4)"]
        )
        assert result.returncode == 4
        assert result.stderr == "bad"

    @pytest.mark.asyncio
    async def test_runs_in_cwd(self, tmp_path: Path) -> None:
        result = await run_command(
            [sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path
        )
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_output_is_redacted(self) -> None:
        result = await run_command(
            [sys.executable, "-c", "print('token=hunter2')"], secrets=["hunter2"]
        )
        assert "hunter2" not in result.stdout
        assert "hunter2" not in result.command

    @pytest.mark.asyncio
    async def test_missing_binary_raises_spawn_error(self) -> None:
        with pytest.raises(ProcessSpawnError):
            await run_command(["pulldeploy-definitely-not-installed-binary"])

    @pytest.mark.asyncio
    async def test_missing_cwd_raises_spawn_error(self, tmp_path: Path) -> None:
        with pytest.raises(ProcessSpawnError):
            await run_command([sys.executable, "-c", "pass"], cwd=tmp_path / "missing")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self) -> None:
        with pytest.raises(ProcessTimeoutError):
            await run_command([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.2)

    @pytest.mark.asyncio
    async def test_env_replaces_inherited_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("PULLDEPLOY_TEST_MARKER", "inherited")
        env = {"PULLDEPLOY_TEST_MARKER": "explicit"}
        script = "import os; print(os.environ.get('PULLDEPLOY_TEST_MARKER'))"

        result = await run_command([sys.executable, "-c", script], env=env)

        assert result.stdout.strip() == "explicit"
