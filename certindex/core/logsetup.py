"""
Diagnostic logging setup: JSON lines with UTC timestamps.
"""

import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER = "certindex"


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(
    level: Union[int, str] = logging.WARNING,
    to_file: Optional[Path] = None,
) -> logging.Logger:
    """Configure the package logger.

    Handlers are installed once; later calls only change the level.
    Output goes to stderr so it never mixes with JSON on stdout.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    if not logger.handlers:
        formatter = JsonFormatter()
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if to_file:
            to_file = Path(to_file)
            to_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
