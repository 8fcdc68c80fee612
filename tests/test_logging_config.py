"""
Tests for logging_config.py - root logger setup for the CLI.
"""

import logging

import pytest

from src import logging_config


@pytest.fixture
def root_logger(monkeypatch):
    """Root logger whose handlers and level are restored on teardown."""
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    yield root
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            handler.close()


class TestConfigureLogging:
    """Tests for configure_logging()"""

    def test_console_and_file_handlers(self, root_logger, tmp_path):
        # pytest attaches its capture handlers for the test call
        root_logger.handlers.clear()
        log_dir = tmp_path / "logs"
        logging_config.configure_logging(logging.DEBUG, log_dir=str(log_dir))
        assert len(root_logger.handlers) == 2
        assert root_logger.level == logging.DEBUG

        logging.getLogger("src.latent_labels.posterior").warning("subject 'P7' degenerate")
        for handler in root_logger.handlers:
            handler.flush()
        assert "subject 'P7' degenerate" in (log_dir / logging_config.LOG_FILE).read_text()

    def test_idempotent(self, root_logger, tmp_path):
        root_logger.handlers.clear()
        logging_config.configure_logging(log_dir=str(tmp_path))
        logging_config.configure_logging(log_dir=str(tmp_path))
        assert len(root_logger.handlers) == 2
