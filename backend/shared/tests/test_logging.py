import json
import logging
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from shared.logging import _serialize_values, setup_logging


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def _allow_file_logging():
    """Disable the _is_test guard so logging tests can create real file handlers."""
    with patch("shared.logging._is_test", return_value=False):
        yield


@pytest.fixture(autouse=True)
def _default_env(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FORMAT", raising=False)


class TestSetupLogging:
    def test_configures_stdout_handler(self):
        setup_logging()
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1

        handler = root.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)

    def test_configures_file_handler_in_log_dir(self, tmp_path):
        log_dir = tmp_path / "sync"
        setup_logging(log_dir=log_dir)
        root = logging.getLogger()

        assert len(root.handlers) == 2
        file_handler = root.handlers[1]
        assert isinstance(file_handler, logging.FileHandler)
        assert Path(file_handler.baseFilename).parent == log_dir

    def test_log_file_has_datetime_in_name(self, tmp_path):
        fixed_time = datetime(2026, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=tmp_path / "sync")

        assert log_path is not None
        assert log_path.name == "2026-03-15_10-30-45.log"

    def test_returns_none_without_log_dir(self):
        assert setup_logging() is None

    def test_skips_file_handler_under_pytest(self, tmp_path):
        with patch("shared.logging._is_test", return_value=True):
            result = setup_logging(log_dir=tmp_path / "sync")

        assert result is None
        assert len(logging.getLogger().handlers) == 1

    def test_writes_to_file(self, tmp_path):
        log_path = setup_logging(log_dir=tmp_path / "sync")

        structlog.get_logger("test.writes_to_file").info("cache refreshed", cache="games")

        assert log_path is not None
        content = log_path.read_text()
        assert "cache refreshed" in content
        assert "games" in content

    def test_clears_existing_handlers_on_repeated_calls(self):
        setup_logging()
        setup_logging()

        assert len(logging.getLogger().handlers) == 1

    def test_custom_log_level(self):
        setup_logging(level=logging.DEBUG)

        assert logging.getLogger().level == logging.DEBUG

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        setup_logging()

        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_log_level_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "bogus")
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            setup_logging()

    def test_silences_asyncio_debug_noise(self):
        setup_logging(level=logging.DEBUG)

        assert logging.getLogger("asyncio").level == logging.WARNING

    def test_json_mode_produces_valid_json(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path / "sync")

        structlog.contextvars.bind_contextvars(session_id="s-1")
        structlog.get_logger("test.json").info(
            "player joined session",
            player_id="p-1",
            at=datetime(2026, 1, 1, tzinfo=UTC),
        )
        structlog.contextvars.clear_contextvars()

        assert log_path is not None
        parsed = json.loads(log_path.read_text().strip().splitlines()[0])
        assert parsed["event"] == "player joined session"
        assert parsed["session_id"] == "s-1"
        assert parsed["player_id"] == "p-1"
        assert parsed["at"] == "2026-01-01T00:00:00+00:00"

    def test_invalid_log_format_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "invalid_value")
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            setup_logging()


class TestSerializeValues:
    class _Action(Enum):
        CREATE = "create"
        RENAME = "rename"

    def test_replaces_enum_with_value(self):
        result = _serialize_values(None, "", {"action": self._Action.CREATE, "msg": "hello"})

        assert result == {"action": "create", "msg": "hello"}

    def test_replaces_values_inside_dict(self):
        result = _serialize_values(None, "", {"data": {"action": self._Action.RENAME, "count": 3}})

        assert result["data"] == {"action": "rename", "count": 3}

    def test_sorts_id_sets(self):
        result = _serialize_values(None, "", {"player_ids": frozenset({"b", "a"})})

        assert result["player_ids"] == ["a", "b"]

    def test_formats_datetimes(self):
        result = _serialize_values(None, "", {"at": datetime(2026, 1, 1, 12, tzinfo=UTC)})

        assert result["at"] == "2026-01-01T12:00:00+00:00"

    def test_leaves_plain_values_unchanged(self):
        result = _serialize_values(None, "", {"count": 42, "name": "test"})

        assert result == {"count": 42, "name": "test"}
