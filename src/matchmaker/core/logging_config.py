"""Root logger setup for the matchmaker CLI and embedding applications.

Every record carries the event ``code`` passed through ``extra``; records
without one (third-party libraries, SQLAlchemy echo) render ``-`` instead.
"""
from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(code)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
_HANDLER_NAME_PREFIX = "matchmaker."


class EventCodeFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "code"):
            record.code = "-"
        return True


def _make_handler(name: str, handler: logging.Handler) -> logging.Handler:
    handler.set_name(_HANDLER_NAME_PREFIX + name)
    handler.addFilter(EventCodeFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
    *,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """Attach matchmaker handlers to the root logger.

    Calling it again replaces the handlers installed by a previous call and
    leaves handlers owned by the host application alone.
    """

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if (handler.get_name() or "").startswith(_HANDLER_NAME_PREFIX):
            root.removeHandler(handler)
            handler.close()

    root.addHandler(_make_handler("console", logging.StreamHandler()))

    logger = logging.getLogger("matchmaker")
    if log_file:
        path = Path(log_file).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            logger.warning(
                "log directory unavailable; file logging disabled",
                extra={"code": "LOG_FILE_UNAVAILABLE", "path": str(path), "detail": str(error)},
            )
        else:
            rotating = logging.handlers.RotatingFileHandler(
                path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
            root.addHandler(_make_handler("file", rotating))

    logger.debug("logging configured", extra={"code": "LOGGING_READY"})
    return logger


__all__ = ["DATE_FORMAT", "EventCodeFilter", "LOG_FORMAT", "setup_logging"]
