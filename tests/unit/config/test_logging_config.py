"""
Unit tests for the JSON logger factory.
"""

import json
import logging
import os
from unittest.mock import patch

from src.config.logging_config import setup_logger


def test_emits_one_json_object_per_line(capsys) -> None:
    with patch.dict(os.environ, {"LOG_STREAM": "stdout"}):
        logger = setup_logger("tests.logging.json_line")
    logger.info("fused %s candidate(s)", 3)

    record = json.loads(capsys.readouterr().out.strip())
    assert record["message"] == "fused 3 candidate(s)"
    assert record["levelname"] == "INFO"
    assert record["name"] == "tests.logging.json_line"


def test_stderr_stream(capsys) -> None:
    with patch.dict(os.environ, {"LOG_STREAM": "stderr"}):
        logger = setup_logger("tests.logging.stderr")
    logger.warning("channel down")

    captured = capsys.readouterr()
    assert captured.out == ""
    assert json.loads(captured.err.strip())["message"] == "channel down"


def test_repeat_setup_reuses_handler_and_updates_level() -> None:
    first = setup_logger("tests.logging.reuse", level="INFO")
    second = setup_logger("tests.logging.reuse", level="debug")
    assert first is second
    assert len(second.handlers) == 1
    assert second.level == logging.DEBUG
    assert second.propagate is False
