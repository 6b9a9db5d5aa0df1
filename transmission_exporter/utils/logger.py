"""Structured logging configuration."""

import logging
import sys
from pythonjsonlogger import jsonlogger


LOG_FORMATS = ("logfmt", "json")

# Attributes every LogRecord carries; anything else arrived through extra=
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "taskName"
}


def _logfmt_value(value) -> str:
    text = str(value)
    if text and not any(c in text for c in ' "=\\\n'):
        return text
    text = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{text}"'


class LogfmtFormatter(logging.Formatter):
    """Render records as a single line of key=value pairs, extra= fields included."""

    def __init__(self):
        super().__init__(datefmt='%Y-%m-%dT%H:%M:%S%z')

    def format(self, record: logging.LogRecord) -> str:
        pairs = [
            ("ts", self.formatTime(record, self.datefmt)),
            ("level", record.levelname),
            ("logger", record.name),
            ("msg", record.getMessage()),
        ]
        pairs.extend(
            (key, value) for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            pairs.append(("exc", self.formatException(record.exc_info)))
        if record.stack_info:
            pairs.append(("stack", self.formatStack(record.stack_info)))

        return " ".join(f"{key}={_logfmt_value(value)}" for key, value in pairs)


def setup_logger(
    name: str = "transmission_exporter",
    level: str = "INFO",
    fmt: str = "logfmt"
) -> logging.Logger:
    """
    Configure structured logging.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: Output format, "logfmt" for key=value text or "json"

    Returns:
        logging.Logger: Configured logger instance

    Raises:
        ValueError: If fmt is not a supported format
    """
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unsupported log format: {fmt} (expected one of {', '.join(LOG_FORMATS)})")

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        formatter = jsonlogger.JsonFormatter(
            '%(asctime)s %(name)s %(levelname)s %(message)s',
            timestamp=True
        )
    else:
        formatter = LogfmtFormatter()
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False

    return logger
