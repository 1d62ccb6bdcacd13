from unittest.mock import MagicMock, patch

import pytest
from loguru import logger

from lrcmux.logging import log_event, truncate


def test_truncate_short_text():
    text = "hello world"
    assert truncate(text) == text


def test_truncate_keeps_tail_of_long_stderr():
    text = "\n".join([f"frame={i}" for i in range(30)] + ["Error while decoding stream #0:0"])
    truncated = truncate(text, max_lines=5)
    assert truncated.startswith("... (truncated)")
    assert truncated.endswith("Error while decoding stream #0:0")
    assert len(truncated.splitlines()) == 6


def test_truncate_long_text_by_len():
    truncated = truncate("a" * 5000, max_len=1000)
    assert len(truncated) < 1100
    assert truncated.startswith("... (truncated)")


def test_truncate_empty_string():
    assert truncate("") == ""


@patch("lrcmux.logging.logger")
def test_log_event_strips_none_values(mock_logger):
    mock_bound_logger = MagicMock()
    mock_logger.bind.return_value = mock_bound_logger

    log_event("mux", file="a", exit_code=None, status="ok")

    mock_logger.bind.assert_called_once_with(action="mux", file="a", status="ok")
    mock_bound_logger.log.assert_called_once_with("INFO", "mux")


@patch("lrcmux.logging.logger")
def test_log_event_uses_msg_and_level_from_fields(mock_logger):
    mock_bound_logger = MagicMock()
    mock_logger.bind.return_value = mock_bound_logger

    log_event("mux", msg="custom message", level="warning", file="a")

    mock_logger.bind.assert_called_once_with(action="mux", file="a")
    mock_bound_logger.log.assert_called_once_with("WARNING", "custom message")


def test_json_log_includes_run_id(tmp_path):
    from lrcmux.logging import setup_json, bind_run
    import json

    log_file = tmp_path / "test.log"
    setup_json(str(log_file))
    run_id = bind_run()
    logger.info("test message")
    logger.complete()
    logger.remove()

    record = json.loads(log_file.read_text().splitlines()[0])["record"]
    assert record["extra"]["run_id"] == run_id
