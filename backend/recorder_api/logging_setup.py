from __future__ import annotations

import atexit
import logging
import logging.handlers
import queue
import sys
from copy import copy
from typing import Any

import structlog

_listener: logging.handlers.QueueListener | None = None
_configured = False


class PreservingQueueHandler(logging.handlers.QueueHandler):
    """Hand the original record to the listener so ProcessorFormatter still sees event dicts."""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        return copy(record)


def configure_logging(level: str = "INFO", *, json_logs: bool = True) -> None:
    global _configured, _listener
    if _configured:
        return

    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    log_queue: queue.SimpleQueue[Any] = queue.SimpleQueue()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level.upper())
    root_logger.addHandler(PreservingQueueHandler(log_queue))
    # uvicorn's access log duplicates http_request_completed
    logging.getLogger("uvicorn.access").handlers.clear()
    logging.getLogger("uvicorn.access").propagate = False

    renderer: Any = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            timestamper,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
        ],
    )

    sink = logging.StreamHandler(sys.stdout)
    sink.setFormatter(formatter)

    _listener = logging.handlers.QueueListener(log_queue, sink, respect_handler_level=True)
    _listener.start()
    atexit.register(_listener.stop)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            timestamper,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True
