"""Centralized logging setup for the OCR service.

All modules log through named standard-library loggers; per-item context
(file id, page number, counts) is appended to messages as compact JSON.
"""

import json
import logging
import sys
from typing import Any

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to INFO.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance."""
    return logging.getLogger(name)


def log_context(**fields: Any) -> str:
    """Render keyword context as a JSON suffix for a log message.

    ``None`` values are dropped and non-JSON values are stringified, so the
    result is always safe to interpolate.
    """
    data = {key: value for key, value in fields.items() if value is not None}
    if not data:
        return ""
    return json.dumps(data, default=str, ensure_ascii=False)
