"""Tests for logging configuration."""
from __future__ import annotations

import logging
import logging.handlers

import pytest

from relay.log_setup import configure_logging
from tests.fakes import make_config


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


class TestConfigureLogging:
    def test_console_only(self):
        handlers = configure_logging(make_config(logging={'console_level': 'WARNING'}))
        assert len(handlers) == 1
        assert handlers[0].level == logging.WARNING
        assert logging.getLogger().level == logging.WARNING

    def test_console_follows_general_log_level(self):
        handlers = configure_logging(make_config(general={'log_level': 'WARNING'}))
        assert handlers[0].level == logging.WARNING

    def test_console_level_beats_general_log_level(self):
        config = make_config(general={'log_level': 'WARNING'}, logging={'console_level': 'DEBUG'})
        handlers = configure_logging(config)
        assert handlers[0].level == logging.DEBUG

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "relay.log"
        config = make_config(logging={'file': str(log_file), 'file_level': 'DEBUG', 'file_max_bytes': 2048})
        handlers = configure_logging(config)

        file_handler = handlers[1]
        assert isinstance(file_handler, logging.handlers.RotatingFileHandler)
        assert file_handler.maxBytes == 2048
        assert file_handler.backupCount == 1
        assert file_handler.level == logging.DEBUG
        assert logging.getLogger().level == logging.DEBUG

        logging.getLogger("relay.test").debug("hello file")
        file_handler.flush()
        assert "hello file" in log_file.read_text()

    def test_unwritable_file_skipped(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        handlers = configure_logging(make_config(logging={'file': str(blocker / "relay.log")}))
        assert len(handlers) == 1

    def test_silent(self):
        assert configure_logging(make_config(logging={'silent': True})) == []
        assert all(isinstance(h, logging.NullHandler) for h in logging.getLogger().handlers)

    def test_debug_overrides_levels(self):
        handlers = configure_logging(make_config(logging={'console_level': 'ERROR'}), debug=True)
        assert handlers[0].level == logging.DEBUG

    def test_replaces_existing_handlers(self):
        configure_logging(make_config())
        configure_logging(make_config())
        assert len(logging.getLogger().handlers) == 1
