import json
import logging
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from shared.logging import _serialize_enums, resolve_log_format, resolve_log_level, setup_logging


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


@pytest.fixture
def _allow_file_logging():
    """Disable the _is_test guard so logging tests can create real file handlers."""
    with patch("shared.logging._is_test", return_value=False):
        yield


class TestSetupLogging:
    def test_configures_stdout_handler(self):
        setup_logging(level="INFO")
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)

    def test_no_file_under_pytest(self, tmp_path):
        assert setup_logging(log_dir=tmp_path / "quiz") is None
        assert not (tmp_path / "quiz").exists()

    @pytest.mark.usefixtures("_allow_file_logging")
    def test_log_file_named_by_start_time(self, tmp_path):
        fixed_time = datetime(2026, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=tmp_path / "quiz")

        assert log_path == tmp_path / "quiz" / "2026-03-15_10-30-45.log"
        file_handler = logging.getLogger().handlers[1]
        assert isinstance(file_handler, logging.FileHandler)
        assert Path(file_handler.baseFilename) == log_path

    @pytest.mark.usefixtures("_allow_file_logging")
    def test_writes_json_with_context(self, tmp_path):
        log_path = setup_logging(log_dir=str(tmp_path / "nested" / "quiz"), log_format="json")

        structlog.contextvars.bind_contextvars(pin="123456")
        structlog.get_logger("test.json").info("player joined", players=3)
        structlog.contextvars.clear_contextvars()

        assert log_path is not None
        parsed = json.loads(log_path.read_text().strip().splitlines()[0])
        assert parsed["event"] == "player joined"
        assert parsed["pin"] == "123456"
        assert parsed["players"] == 3
        assert parsed["level"] == "info"

    @pytest.mark.usefixtures("_allow_file_logging")
    def test_console_output_is_readable(self, tmp_path):
        log_path = setup_logging(log_dir=tmp_path / "quiz", log_format="console")
        structlog.get_logger("test.console").warning("session expired")
        assert log_path is not None
        assert "session expired" in log_path.read_text()

    def test_clears_existing_handlers_on_repeated_calls(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_explicit_level(self):
        setup_logging(level=logging.DEBUG)
        assert logging.getLogger().level == logging.DEBUG

    def test_quiets_chatty_loggers(self):
        setup_logging(level="DEBUG")
        assert logging.getLogger("uvicorn.access").level == logging.WARNING


class TestResolveSettings:
    def test_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        assert resolve_log_level() == logging.WARNING

    def test_level_defaults_to_info(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert resolve_log_level() == logging.INFO

    def test_invalid_level_raises(self):
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            resolve_log_level("bogus")

    def test_format_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "JSON")
        assert resolve_log_format() is True
        monkeypatch.setenv("LOG_FORMAT", "console")
        assert resolve_log_format() is False

    def test_invalid_format_raises(self):
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            resolve_log_format("xml")


class TestSerializeEnums:
    class _Status(Enum):
        LOBBY = "LOBBY"
        QUESTION = "QUESTION"

    def test_replaces_enum_with_value(self):
        result = _serialize_enums(None, "", {"status": self._Status.LOBBY, "msg": "hello"})
        assert result == {"status": "LOBBY", "msg": "hello"}

    def test_replaces_enum_inside_dict_value(self):
        result = _serialize_enums(None, "", {"data": {"status": self._Status.QUESTION, "round": 3}})
        assert result["data"] == {"status": "QUESTION", "round": 3}

    def test_replaces_enums_inside_sequences(self):
        result = _serialize_enums(None, "", {"seen": (self._Status.LOBBY, "x")})
        assert result["seen"] == ["LOBBY", "x"]
