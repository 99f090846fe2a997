"""Unit tests for the logging configuration module."""

import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import MagicMock, patch

import pytest
import structlog

from pulldeploy.logging import get_logger, setup_logging


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Reset root logger and structlog state before and after each test."""
    original_handlers = logging.root.handlers[:]
    original_level = logging.root.level
    logging.root.handlers.clear()
    logging.root.setLevel(logging.WARNING)
    yield
    for handler in logging.root.handlers:
        handler.close()
    logging.root.handlers.clear()
    logging.root.handlers.extend(original_handlers)
    logging.root.setLevel(original_level)
    structlog.reset_defaults()


def _settings(**overrides) -> MagicMock:
    mock_settings = MagicMock()
    mock_settings.log_level = "INFO"
    mock_settings.log_to_file = False
    mock_settings.is_development = False
    for key, value in overrides.items():
        setattr(mock_settings, key, value)
    return mock_settings


class TestSetupLogging:
    """Tests for setup_logging function."""

    @pytest.mark.parametrize(
        ("level", "expected"),
        [("DEBUG", logging.DEBUG), ("warning", logging.WARNING), ("NONEXISTENT", logging.INFO)],
    )
    def test_basic_config_level(self, level, expected):
        with patch("pulldeploy.logging.get_settings", return_value=_settings(log_level=level)):
            with patch("pulldeploy.logging.logging.basicConfig") as mock_basic:
                setup_logging()

        mock_basic.assert_called_once_with(format="%(message)s", level=expected, handlers=[])

    def test_adds_console_handler_with_structlog_formatter(self):
        with patch("pulldeploy.logging.get_settings", return_value=_settings()):
            setup_logging()

        console_handlers = [h for h in logging.root.handlers if type(h) is logging.StreamHandler]
        assert len(console_handlers) == 1
        assert isinstance(console_handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_reduces_httpx_noise(self):
        with patch("pulldeploy.logging.get_settings", return_value=_settings(log_level="DEBUG")):
            setup_logging()

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_configures_structlog(self):
        with patch("pulldeploy.logging.get_settings", return_value=_settings()):
            with patch("pulldeploy.logging.structlog.configure") as mock_configure:
                setup_logging()

        call_kwargs = mock_configure.call_args[1]
        assert call_kwargs["context_class"] is dict
        assert call_kwargs["cache_logger_on_first_use"] is True

    def test_development_uses_console_renderer(self):
        with patch(
            "pulldeploy.logging.get_settings", return_value=_settings(is_development=True)
        ):
            with patch("pulldeploy.logging.structlog.dev.ConsoleRenderer") as mock_renderer:
                setup_logging()

        mock_renderer.assert_called_once_with(colors=True)

    def test_log_lines_are_timestamped_json(self, capsys):
        with patch("pulldeploy.logging.get_settings", return_value=_settings()):
            setup_logging()

        get_logger("pulldeploy.test").info("pipeline_run_started", sha="abc123")

        out = capsys.readouterr().out
        assert '"event": "pipeline_run_started"' in out
        assert '"sha": "abc123"' in out
        assert '"timestamp"' in out


class TestSetupLoggingFileHandler:
    """Tests for file handler configuration in setup_logging."""

    def test_file_logging_creates_rotating_handler(self, tmp_path):
        log_dir = tmp_path / "logs"
        settings = _settings(
            log_to_file=True,
            log_directory=str(log_dir),
            log_file_path=str(log_dir / "pulldeploy.log"),
            log_file_max_bytes=1024,
            log_file_backup_count=2,
        )

        with patch("pulldeploy.logging.get_settings", return_value=settings):
            setup_logging()

        file_handlers = [h for h in logging.root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 1024
        assert file_handlers[0].backupCount == 2
        assert log_dir.exists()

    def test_directory_failure_falls_back_to_console(self):
        settings = _settings(log_to_file=True, log_directory="/nonexistent/deep/path")

        with patch("pulldeploy.logging.get_settings", return_value=settings):
            with patch("pulldeploy.logging.Path.mkdir", side_effect=PermissionError("denied")):
                setup_logging()

        # the shared settings object is left as configured
        assert settings.log_to_file is True
        assert not [h for h in logging.root.handlers if isinstance(h, RotatingFileHandler)]

    def test_handler_failure_falls_back_to_console(self, tmp_path):
        settings = _settings(
            log_to_file=True,
            log_directory=str(tmp_path),
            log_file_path=str(tmp_path / "pulldeploy.log"),
            log_file_max_bytes=1024,
            log_file_backup_count=2,
        )

        with patch("pulldeploy.logging.get_settings", return_value=settings):
            with patch(
                "pulldeploy.logging.RotatingFileHandler",
                side_effect=PermissionError("cannot write"),
            ):
                setup_logging()

        assert not [h for h in logging.root.handlers if isinstance(h, RotatingFileHandler)]


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_returns_logger(self):
        assert get_logger("pulldeploy.module") is not None
