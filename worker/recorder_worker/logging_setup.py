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

_NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "urllib3")


class PreservingQueueHandler(logging.handlers.QueueHandler):
    """Hand the original record to the listener so ProcessorFormatter still sees event dicts."""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        return copy(record)


def _shared_processors() -> list[Any]:
    return [
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]


def configure_logging(service: str, level: str = "INFO", *, json_logs: bool = True) -> None:
    global _configured, _listener
    if _configured:
        return

    log_queue: queue.SimpleQueue[Any] = queue.SimpleQueue()

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level.upper())
    root_logger.addHandler(PreservingQueueHandler(log_queue))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    renderer: Any = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=_shared_processors(),
    )

    sink = logging.StreamHandler(sys.stdout)
    sink.setFormatter(formatter)

    _listener = logging.handlers.QueueListener(log_queue, sink, respect_handler_level=True)
    _listener.start()
    atexit.register(_listener.stop)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            ),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service)
    _configured = True


def bind_job(**values: str) -> None:
    """Reset the per-job context and bind ``values`` on top of the service name."""
    service = structlog.contextvars.get_contextvars().get("service")
    structlog.contextvars.clear_contextvars()
    if service:
        structlog.contextvars.bind_contextvars(service=service)
    structlog.contextvars.bind_contextvars(**values)


def unbind_job(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
