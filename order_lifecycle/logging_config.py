"""Structured JSON logging for the order lifecycle core.

``configure_logging`` installs a single stream handler on the package logger
that renders records as JSON and enriches them with the current request id.
"""

import logging
from logging import Filter, LogRecord

from pythonjsonlogger import jsonlogger

from . import settings
from .context import REQUEST_ID_CTX

LOGGER_NAME = "order_lifecycle"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    The value comes from ``REQUEST_ID_CTX``; a hyphen is used when nothing is
    bound so formatters can always reference ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        return True


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Configure the package logger with a JSON handler.

    Calling it more than once does not stack handlers.

    Args:
        level: Log level name or number. Defaults to ``settings.LOG_LEVEL``.

    Returns:
        logging.Logger: The configured package logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not any(getattr(h, "_order_lifecycle", False) for h in logger.handlers):
        h = logging.StreamHandler()
        h.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
        h.addFilter(RequestIdFilter())
        h._order_lifecycle = True
        logger.addHandler(h)
    logger.setLevel(level or getattr(settings, "LOG_LEVEL", "INFO"))
    return logger
