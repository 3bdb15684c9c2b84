"""
=============================================================================
STRUCTURED LOGGING
=============================================================================

Every log line the server writes is a single JSON object on stdout:

    {"time": "2024-05-01T12:00:00.123+00:00", "level": "INFO",
     "msg": "Handling request", "method": "GET", "path": "/John",
     "remote_addr": "10.0.0.7:51544"}

JSON is what log aggregators (ELK, Loki, Datadog, Cloud Logging) expect,
and one object per line keeps the stream grep-able.

=============================================================================
FIELDS
=============================================================================

Structured fields are passed with the standard ``extra=`` argument:

    logger.info("Starting server", extra={"port": "8080"})

The formatter copies every attribute that is not part of a plain
LogRecord into the JSON object, after the fixed time/level/msg keys.

=============================================================================
EXPLICIT LOGGER, NO GLOBAL SETUP
=============================================================================

We never call logging.basicConfig() or touch the root logger.
create_logger() builds one named logger with its own handler and
propagate=False, and that instance is handed to whoever needs it.
Embedding the server (or running it under pytest) therefore leaves the
host application's logging configuration alone.

=============================================================================
"""

import sys
import json
import logging
from datetime import datetime, timezone
from typing import Optional, TextIO


# Attributes every LogRecord has; anything else came in through extra=.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Render log records as one-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


def create_logger(
    name: str = "helloserver",
    stream: Optional[TextIO] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Build the server's logger.

    Args:
        name: Logger name.
        stream: Where JSON lines go. Defaults to stdout.
        level: Minimum level to emit.

    Returns:
        A logger with exactly one JSON handler that does not propagate
        to the root logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)

    return logger
