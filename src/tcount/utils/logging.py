"""Centralized logging setup and JSON formatter for structured logging."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RESERVED = {
    "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno",
    "funcName", "created", "msecs", "relativeCreated", "thread",
    "threadName", "processName", "process", "name", "message",
    "taskName", "asctime",
}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, keyed for filtering by count.

    Every line carries ``recordnum`` (``null`` for run-level messages such
    as file discovery), so a log file covering a whole import can be split
    per count.  Other ``extra=`` fields, e.g. ``timezone``, land under
    ``context``.  Timestamps are local, with their UTC offset.
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = {
            key: value for key, value in vars(record).items()
            if key not in _RESERVED
        }
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "recordnum": fields.pop("recordnum", None),
            "msg": record.getMessage(),
        }
        if fields:
            payload["context"] = fields
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        # Paths and numpy scalars fall back to str.
        return json.dumps(payload, default=str)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Configure the ``tcount`` logger hierarchy.

    Console output is plain text on stderr; when *log_file* is given, the
    same records are appended to it as JSON lines.  Calling this again
    replaces the handlers installed by a previous call.

    Args:
        level:    Console log level (name or number).
        log_file: Optional path of a JSON-lines log file (always INFO+).

    Returns:
        The configured ``tcount`` logger.
    """
    logger = logging.getLogger("tcount")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(asctime)s %(levelname)-8s %(message)s"))
    logger.addHandler(console)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    return logger
