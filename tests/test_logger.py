"""Tests for logger.py: setup_logging() and JsonFormatter.

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

import pytest

from homecloud_agent.logger import DEFAULT_LOG_FILE, JsonFormatter, setup_logging


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)


def _handlers(mock_basic):
    return mock_basic.call_args[1]["handlers"]


def _close(handlers):
    for h in handlers:
        if isinstance(h, logging.FileHandler):
            h.close()


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")

        handlers = _handlers(mock_basic)
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr

    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_mcp_mode_logs_to_file_only(self, mock_basic, tmp_path):
        log_file = tmp_path / "agent.log"
        setup_logging(mode="mcp", log_file=str(log_file))

        handlers = _handlers(mock_basic)
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.FileHandler)
        assert handlers[0].baseFilename == str(log_file)
        _close(handlers)

    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_mcp_mode_log_file_from_env(self, mock_basic, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FILE", str(tmp_path / "env.log"))
        setup_logging(mode="mcp")

        handlers = _handlers(mock_basic)
        assert handlers[0].baseFilename == str(tmp_path / "env.log")
        _close(handlers)

    def test_default_log_file(self):
        assert DEFAULT_LOG_FILE == "/tmp/homecloud-agent.log"

    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = _handlers(mock_basic)
        file_handlers = [
            h for h in handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(handlers) == 2
        assert len(file_handlers) == 1
        _close(handlers)

    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_debug_beats_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True)

        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_env_beats_yaml_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", level="DEBUG")

        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_yaml_level_beats_mode_default(self, mock_basic):
        setup_logging(mode="cli", level="warning")

        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_mode_defaults(self, mock_basic, tmp_path):
        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.INFO

        setup_logging(mode="mcp", log_file=str(tmp_path / "a.log"))
        assert mock_basic.call_args[1]["level"] == logging.WARNING
        _close(_handlers(mock_basic))

    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")

        assert isinstance(_handlers(mock_basic)[0].formatter, JsonFormatter)

    @patch("homecloud_agent.logger.logging.basicConfig")
    def test_watchdog_silenced_unless_debug(self, _mock_basic):
        watchdog_logger = logging.getLogger("watchdog")
        original = watchdog_logger.level
        try:
            setup_logging(mode="cli")
            assert watchdog_logger.level == logging.WARNING
        finally:
            watchdog_logger.setLevel(original)


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


def _record(msg, args=(), exc_info=None, level=logging.INFO):
    return logging.LogRecord(
        name="homecloud_agent.sync.engine",
        level=level,
        pathname="engine.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


class TestJsonFormatter:
    def test_basic_output(self):
        formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        data = json.loads(formatter.format(_record("Tracking %d entries", (3,))))

        assert "ts" in data
        assert data["level"] == "INFO"
        assert data["logger"] == "homecloud_agent.sync.engine"
        assert data["msg"] == "Tracking 3 entries"

    def test_includes_exception_on_one_line(self):
        formatter = JsonFormatter()
        try:
            raise OSError("watch limit reached")
        except OSError:
            exc_info = sys.exc_info()

        output = formatter.format(
            _record("watch failed", exc_info=exc_info, level=logging.ERROR)
        )

        assert "\n" not in output
        data = json.loads(output)
        assert "OSError" in data["exc"]
        assert "watch limit reached" in data["exc"]
