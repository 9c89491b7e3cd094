import json
import logging

from revenue_selection import setup_logging


def _close(logger):
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_json_lines_are_written(tmp_path):
    logger = setup_logging("DEBUG", tmp_path, logger_name="revenue_selection.test_json")
    try:
        logger.info("ranked %d candidates", 3)
        logger.error("fit failed")
        for handler in logger.handlers:
            handler.flush()

        app_lines = (tmp_path / "app.jsonl").read_text().strip().splitlines()
        error_lines = (tmp_path / "errors.jsonl").read_text().strip().splitlines()
    finally:
        _close(logger)

    messages = [json.loads(line)["message"] for line in app_lines]
    assert "ranked 3 candidates" in messages
    assert [json.loads(line)["level"] for line in error_lines] == ["ERROR"]


def test_repeated_setup_does_not_duplicate_handlers():
    logger = setup_logging(logging.WARNING, logger_name="revenue_selection.test_repeat")
    try:
        setup_logging(logging.WARNING, logger_name="revenue_selection.test_repeat")
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
    finally:
        _close(logger)


def test_reconfiguring_closes_previous_file_handlers(tmp_path):
    name = "revenue_selection.test_reconfigure"
    logger = setup_logging("INFO", tmp_path / "first", logger_name=name)
    try:
        previous = [handler for handler in logger.handlers if isinstance(handler, logging.FileHandler)]
        setup_logging("INFO", tmp_path / "second", logger_name=name)

        assert len(previous) == 2
        assert all(handler.stream is None for handler in previous)
        assert not any(handler in logger.handlers for handler in previous)
    finally:
        _close(logger)
