"""Tests for logging configuration (LOG_LEVEL, LOG_FILE)."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from reminder_engine.infra.logging_config import configure_logging


def test_log_level_defaults_to_info(monkeypatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)

    configure_logging()

    assert logging.getLogger().level == logging.INFO


def test_log_level_from_env(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.delenv("LOG_FILE", raising=False)

    configure_logging()

    assert logging.getLogger().level == logging.DEBUG


def test_invalid_log_level_falls_back_to_info(monkeypatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "CHATTY")
    monkeypatch.delenv("LOG_FILE", raising=False)

    configure_logging()

    assert logging.getLogger().level == logging.INFO


def test_log_file_handler_added(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    log_path = tmp_path / "logs" / "reminders.log"

    configure_logging(log_file=str(log_path))
    logging.getLogger("reminder_engine.test").info("hello file")
    root = logging.getLogger()
    file_handlers = [handler for handler in root.handlers if isinstance(handler, RotatingFileHandler)]
    for handler in file_handlers:
        handler.flush()

    assert len(file_handlers) == 1
    assert "hello file" in log_path.read_text(encoding="utf-8")
    for handler in file_handlers:
        root.removeHandler(handler)
        handler.close()


def test_third_party_loggers_quieted(monkeypatch) -> None:
    monkeypatch.delenv("LOG_FILE", raising=False)

    configure_logging(level=logging.DEBUG)

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("apscheduler").level == logging.WARNING
