"""JSON logging for the certificate rotation watcher.

The watcher shares a container log with the server it supervises, so each
line is a single JSON object that log collectors can tell apart from the
server's own plain-text output.
"""

import logging

from pythonjsonlogger.json import JsonFormatter

LOGGER_NAME = "cert_rotation"

# Emitted keys; anything else the base formatter adds is dropped
LOG_FIELDS = frozenset(
    {
        "timestamp",
        "level",
        "message",
        "exc_info",
        "funcName",
        "lineno",
        "threadName",
    }
)


class WatcherJsonFormatter(JsonFormatter):
    """JSON formatter keeping only ``LOG_FIELDS``.

    ``threadName`` is kept because the server-watch thread and the rotation
    loop both log.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        for key in [key for key in log_record if key not in LOG_FIELDS]:
            log_record.pop(key)


def _setup_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(
        WatcherJsonFormatter(
            "%(timestamp)s %(levelname)s %(threadName)s %(funcName)s %(lineno)d %(message)s",
            timestamp=True,
        )
    )

    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def set_log_level(level: str) -> None:
    """Set the watcher log level from a name such as ``DEBUG`` or ``warning``.

    Raises:
        ValueError: If the level name is unknown
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"unknown log level: {level}")
    LOGGER.setLevel(numeric)


LOGGER = _setup_logger()
