"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging

import structlog

from dossier.logging_config import configure_logging, get_logger


def test_get_logger_binds_component():
    structlog.reset_defaults()
    log = get_logger("dossier.test")
    with structlog.testing.capture_logs() as captured:
        log.info("file_registered", file_id=1000)
    assert captured == [
        {"component": "dossier.test", "file_id": 1000, "event": "file_registered", "log_level": "info"}
    ]


def test_json_logs_render_one_object_per_line(capsys):
    configure_logging("INFO", json_logs=True)
    try:
        structlog.get_logger("dossier.test").info("search_completed", results=3)
        line = capsys.readouterr().err.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["event"] == "search_completed"
        assert payload["results"] == 3
        assert payload["level"] == "info"
    finally:
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()


def test_level_filters_lower_events(capsys):
    configure_logging("WARNING", json_logs=True)
    try:
        structlog.get_logger("dossier.test").info("chunks_indexed")
        assert "chunks_indexed" not in capsys.readouterr().err
    finally:
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()
