"""Unit tests for logging configuration."""

import logging

import pytest
from rich.logging import RichHandler

from core.logging_utils import configure_logging


@pytest.fixture
def clean_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers and isinstance(handler, (logging.FileHandler, RichHandler)):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    for attr in ("_modinstall_configured", "_modinstall_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)


class TestConfigureLogging:
    """Test root logger setup."""

    def test_file_logging(self, tmp_path, clean_root_logger):
        """Should write records to the log file."""
        log_path = tmp_path / "var" / "log" / "modinstall.log"

        assert configure_logging(str(log_path)) == str(log_path)
        logging.getLogger("core.installer").info("Module news installed")

        for handler in clean_root_logger.handlers:
            handler.flush()
        assert "Module news installed" in log_path.read_text(encoding="utf-8")

    def test_called_twice(self, tmp_path, clean_root_logger):
        """Should keep the first configuration."""
        first = str(tmp_path / "first.log")
        configure_logging(first)
        count = len(clean_root_logger.handlers)

        assert configure_logging(str(tmp_path / "second.log")) == first
        assert len(clean_root_logger.handlers) == count
        assert not (tmp_path / "second.log").exists()

    def test_without_file(self, clean_root_logger):
        assert configure_logging(None, level=logging.DEBUG) is None
        assert clean_root_logger.level == logging.DEBUG
