"""Logger construction.

Components never look up a global logger; the entry point builds one here
and passes it down through constructors.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from rich.console import Console
from rich.logging import RichHandler


class JSONLineFormatter(logging.Formatter):
    """One JSON object per record, with a `timestamp` key for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "level": record.levelname.lower(),
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        extra = getattr(record, "fields", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def new_logger(name: str = "kraut", *, level: str = "INFO", cli: bool = True) -> logging.Logger:
    """Create a configured logger.

    `cli=True` renders human-readable output on stderr through rich;
    otherwise JSON lines are written to stdout.
    """

    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(level.upper())

    if cli:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONLineFormatter())

    logger.addHandler(handler)

    # paramiko is chatty at INFO
    logging.getLogger("paramiko").setLevel(logging.WARNING)
    return logger


def null_logger() -> logging.Logger:
    """Logger that discards everything (tests, library defaults)."""

    logger = logging.getLogger("kraut.null")
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger
