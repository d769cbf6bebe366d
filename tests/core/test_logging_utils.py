from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from telehole.core.logging_utils import LogConfig, log_event, setup_logger


def test_log_event_emits_json_with_error_fields(
    caplog: pytest.LogCaptureFixture,
) -> None:
    logger = logging.getLogger("tests.log_event")
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_event(
            logger,
            logging.INFO,
            "telehole.test",
            user_id=5,
            ids=(1, 2),
            path=Path("/tmp/x"),
            exc=ValueError("boom"),
        )

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload == {
        "event": "telehole.test",
        "user_id": 5,
        "ids": [1, 2],
        "path": "/tmp/x",
        "error": "boom",
        "error_type": "ValueError",
    }


def test_setup_logger_writes_rotating_file(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "bot.log"
    logger = setup_logger(
        "telehole.test.file", LogConfig(path=log_path, level="DEBUG")
    )
    try:
        log_event(logger, logging.DEBUG, "telehole.test.file", n=1)
        for handler in logger.handlers:
            handler.flush()
        assert '"event": "telehole.test.file"' in log_path.read_text(encoding="utf-8")
        assert logger.level == logging.DEBUG
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
