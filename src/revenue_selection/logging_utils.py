"""Logging setup for selection runs."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineNo": record.lineno,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(
    log_level: Union[str, int] = "INFO",
    log_dir: Optional[Union[str, Path]] = None,
    logger_name: str = "revenue_selection",
) -> logging.Logger:
    """Attach a console handler (and JSON-lines files when ``log_dir`` is set).

    Handlers go on the package logger, so repeated calls replace rather than
    duplicate them and the host application's root logger is left alone.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logger.addHandler(console)

    if log_dir is not None:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)

        app_handler = logging.FileHandler(directory / "app.jsonl")
        app_handler.setLevel(log_level)
        app_handler.setFormatter(JSONFormatter())
        logger.addHandler(app_handler)

        error_handler = logging.FileHandler(directory / "errors.jsonl")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(JSONFormatter())
        logger.addHandler(error_handler)

    logger.debug("Logging configured with level %s", log_level)
    return logger
