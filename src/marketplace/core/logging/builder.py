"""
Logging setup from Settings.

`make_dict_config()` turns Settings into a dictConfig mapping: console output, rotating
messaging.log / errors.log files when LOG_TO_STDOUT is off, request-context and
redaction filters on every handler, and quiet SQLAlchemy engine logs unless
ENABLE_SQL_LOGGING is set (bound parameters carry message text).

With LOG_USE_QUEUE the configured handlers move to a background QueueListener and the
root logger only enqueues. A bounded queue (LOG_QUEUE_MAX_SIZE > 0) drops records when
full unless LOG_QUEUE_BLOCKING is set, with a warning every
LOG_QUEUE_DROP_WARNING_THRESHOLD drops. `stop_queue_logging()` flushes at shutdown.
"""

from __future__ import annotations

from pathlib import Path
import logging
import logging.config
import queue as _queue
import threading
from typing import Optional

from logging.handlers import QueueHandler, QueueListener

from marketplace.config.settings import Settings
from marketplace.utils.logging import get_project_name

from .formatters import JsonFormatter, ColorFormatter
from .filters import RequestContextFilter, RedactFilter
from .handlers import (
    get_console_handler,
    get_file_handler,
    get_error_file_handler,
    get_error_console_handler,
)

logger = logging.getLogger(__name__)

# Running QueueListener and its queue, kept so shutdown can stop them
_QUEUE_LISTENER: Optional[QueueListener] = None
_QUEUE: Optional[_queue.Queue] = None

# Drop diagnostics for the bounded, non-blocking mode
_DROPPED_LOGS_COUNT = 0
_DROP_WARNING_THRESHOLD = 100
_DROPPED_LOGS_LOCK = threading.Lock()


# -----------------------
# Non-blocking queue handler
# -----------------------
class NonBlockingQueueHandler(QueueHandler):
    """
    QueueHandler that never blocks the producer when a bounded queue is full.

    A full queue increments a module-level drop counter; every
    LOG_QUEUE_DROP_WARNING_THRESHOLD drops a warning is written straight to the
    listener's handlers.
    """

    def emit(self, record: logging.LogRecord) -> None:
        global _DROPPED_LOGS_COUNT
        try:
            self.queue.put_nowait(self.prepare(record))
        except _queue.Full:
            with _DROPPED_LOGS_LOCK:
                _DROPPED_LOGS_COUNT += 1
                dropped = _DROPPED_LOGS_COUNT
            if _DROP_WARNING_THRESHOLD > 0 and dropped % _DROP_WARNING_THRESHOLD == 0:
                _warn_about_drops(dropped)


def _warn_about_drops(dropped: int) -> None:
    # bypass the full queue: hand the warning to the listener's handlers directly
    listener = _QUEUE_LISTENER
    if listener is None:
        return
    warning = logger.makeRecord(
        logger.name, logging.WARNING, __file__, 0,
        "Dropped %d log records because the logging queue was full", (dropped,), None,
    )
    listener.handle(warning)


def get_queue_stats() -> dict:
    """Small diagnostics about queue usage."""
    with _DROPPED_LOGS_LOCK:
        return {"dropped_logs": _DROPPED_LOGS_COUNT, "queue_present": _QUEUE is not None}


# -----------------------
# dictConfig builder
# -----------------------
def make_dict_config(settings: Settings) -> dict:
    """
    Build the dictConfig mapping using the provided settings.

    The returned mapping includes:
      - formatters: "standard" (color/dev or plain) and "json"
      - filters: "request_context", "redact"
      - handlers: console, (file/error_file) OR error_console depending on LOG_TO_STDOUT
      - loggers: root, uvicorn.error, uvicorn.access, sqlalchemy.engine
    """
    formatters = {
        "standard": {
            "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(message)s",
        },
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": get_project_name(),
        },
    }

    filters = {
        "request_context": {"()": RequestContextFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}

    if (not settings.LOG_TO_STDOUT) and settings.LOG_DIR:
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers.keys()),
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            "uvicorn.error": {
                "level": settings.LOG_LEVEL,
                "handlers": list(handlers.keys()),
                "propagate": False,
            },
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            # bound parameters include message text
            "sqlalchemy.engine": {
                "level": "DEBUG" if settings.ENABLE_SQL_LOGGING else "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


# --------------------------
# Entrypoint
# --------------------------
def setup_logging(settings: Settings) -> None:
    """
    Apply the dictConfig built from `settings`; with LOG_USE_QUEUE, hand the configured
    handlers to a background QueueListener and leave only a QueueHandler on the root.
    """
    # a previous setup (tests, reloads) may still own a listener
    stop_queue_logging()

    if (not settings.LOG_TO_STDOUT) and settings.LOG_DIR:
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))
    logging.getLogger().addFilter(RequestContextFilter())

    if settings.LOG_USE_QUEUE:
        _install_queue(settings)


def _install_queue(settings: Settings) -> None:
    global _QUEUE_LISTENER, _QUEUE, _DROP_WARNING_THRESHOLD

    root = logging.getLogger()
    sinks = list(root.handlers)
    if not sinks:
        return

    # uvicorn.error shares the root sinks; they must only be written by the listener
    loggers = [root, *(lg for lg in logging.Logger.manager.loggerDict.values() if isinstance(lg, logging.Logger))]
    for owner in loggers:
        for handler in [h for h in owner.handlers if h in sinks]:
            owner.removeHandler(handler)

    bounded = settings.LOG_QUEUE_MAX_SIZE > 0
    log_queue: _queue.Queue = _queue.Queue(settings.LOG_QUEUE_MAX_SIZE if bounded else 0)
    handler_cls = NonBlockingQueueHandler if bounded and not settings.LOG_QUEUE_BLOCKING else QueueHandler

    producer = handler_cls(log_queue)
    # contextvars only exist in the producing task; redact before the record leaves it
    producer.addFilter(RequestContextFilter())
    producer.addFilter(RedactFilter())

    _DROP_WARNING_THRESHOLD = settings.LOG_QUEUE_DROP_WARNING_THRESHOLD
    _QUEUE = log_queue
    _QUEUE_LISTENER = QueueListener(log_queue, *sinks, respect_handler_level=True)
    _QUEUE_LISTENER.start()
    root.addHandler(producer)


def stop_queue_logging() -> None:
    """Flush and stop the QueueListener, if one is running."""
    global _QUEUE_LISTENER, _QUEUE
    listener, _QUEUE_LISTENER, _QUEUE = _QUEUE_LISTENER, None, None
    if listener is not None:
        listener.stop()
