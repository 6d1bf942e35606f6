"""Tests for the application logger."""

import logging
import logging.handlers

import pytest

import lanvault.utils.logger as logger_mod


def test_singleton():
    assert logger_mod.get_logger() is logger_mod.get_logger()


def test_writes_rotating_file(tmp_path):
    logger = logger_mod.get_logger()
    handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
    assert len(handlers) == 1
    assert handlers[0].baseFilename == str(tmp_path / "logs" / "lanvault.log")
    assert logger.propagate is False


def test_module_loggers_share_the_file(tmp_path):
    logging.getLogger("lanvault.services.vault_service").info("vault locked")
    for handler in logger_mod.get_logger().handlers:
        handler.flush()
    text = (tmp_path / "logs" / "lanvault.log").read_text(encoding="utf-8")
    assert "[lanvault.services.vault_service] vault locked" in text


def test_log_file_is_private(tmp_path):
    assert (tmp_path / "logs" / "lanvault.log").stat().st_mode & 0o777 == 0o600


@pytest.mark.parametrize(
    "value,expected",
    [("warning", logging.WARNING), (" INFO ", logging.INFO), ("chatty", logging.DEBUG)],
)
def test_level_from_environment(monkeypatch, value, expected):
    monkeypatch.setenv(logger_mod.LOG_LEVEL_ENV, value)
    assert logger_mod.log_level() == expected


def test_default_level(monkeypatch):
    monkeypatch.delenv(logger_mod.LOG_LEVEL_ENV, raising=False)
    assert logger_mod.log_level() == logging.DEBUG
    assert logger_mod.get_logger().level == logging.DEBUG
