"""Tests for the pulldeploy command line."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from pulldeploy import cli
from pulldeploy.errors import AuthorizationError


@pytest.fixture(autouse=True)
def _no_logging_setup():
    with patch("pulldeploy.cli.setup_logging"):
        yield


def _write_config(path: Path) -> Path:
    path.write_text(
        json.dumps(
            {
                "repository": "https://github.com/acme/shop",
                "branch": "main",
                "token": "t",
                "pull_dir": "/tmp/pull",
                "sys_svc_dir": "/tmp/units",
                "services": [],
            }
        )
    )
    return path


class TestParser:
    def test_no_command_prints_help(self, capsys) -> None:
        assert cli.main([]) == cli.EXIT_CONFIG
        assert "usage: pulldeploy" in capsys.readouterr().out

    def test_version(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])
        assert exc_info.value.code == 0
        assert "pulldeploy" in capsys.readouterr().out


class TestInitConfig:
    def test_writes_example(self, tmp_path: Path, capsys) -> None:
        target = tmp_path / "config.json"
        assert cli.main(["init-config", str(target)]) == cli.EXIT_OK
        assert json.loads(target.read_text())["branch"] == "main"
        assert str(target) in capsys.readouterr().out

    def test_existing_file_is_an_error(self, tmp_path: Path, capsys) -> None:
        target = tmp_path / "config.json"
        target.write_text("{}")
        assert cli.main(["init-config", str(target)]) == cli.EXIT_CONFIG
        assert "already exists" in capsys.readouterr().err

    def test_force(self, tmp_path: Path) -> None:
        target = tmp_path / "config.json"
        target.write_text("{}")
        assert cli.main(["init-config", str(target), "--force"]) == cli.EXIT_OK


class TestRun:
    def test_missing_config_exit_code(self, tmp_path: Path) -> None:
        assert cli.main(["run", "--config", str(tmp_path / "none.json")]) == cli.EXIT_CONFIG

    def test_bad_repository_exit_code(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"repository": "not a repo"}))
        assert cli.main(["run", "--config", str(path)]) == cli.EXIT_CONFIG

    def test_once_polls_a_single_time(self, tmp_path: Path) -> None:
        config = _write_config(tmp_path / "config.json")
        with (
            patch("pulldeploy.cli.CommitWatcher.poll_once", new_callable=AsyncMock) as poll,
            patch("pulldeploy.cli.CommitWatcher.run_forever", new_callable=AsyncMock) as forever,
        ):
            assert cli.main(["run", "--config", str(config), "--once"]) == cli.EXIT_OK

        poll.assert_awaited_once_with("")
        forever.assert_not_awaited()

    @pytest.mark.parametrize(
        "exc", [AuthorizationError("https://api.github.com/x"), httpx.ConnectError("refused")]
    )
    def test_fatal_error_exit_code(self, tmp_path: Path, exc) -> None:
        config = _write_config(tmp_path / "config.json")
        with patch(
            "pulldeploy.cli.CommitWatcher.run_forever", new_callable=AsyncMock, side_effect=exc
        ):
            assert cli.main(["run", "--config", str(config)]) == cli.EXIT_FATAL
