"""Structured logging configuration using structlog.

Entries are JSON lines unless LOG_JSON is off. Context fields are taken from context
variables and merged in when set:

- request_id: X-Request-ID of the HTTP request (also echoed in error bodies)
- user_id: Authenticated user or staff member
- path / method: HTTP request line, path only
- conversation_id: Chat socket the event belongs to
- task_name / task_id: Scheduled job or Celery task

Usage:
    from kivendi.logging import get_logger

    logger = get_logger(__name__)
    logger.info("boost_activated", ad_id=ad.id, boost_id=boost.id)

Events are snake_case verbs in the past tense. Secrets and full device
tokens never go into events (see kivendi.push.transport.redact_token).
"""

import logging
import sys
from contextvars import ContextVar

import structlog

from kivendi.config import get_settings

LOG_FIELDS = (
    "request_id",
    "user_id",
    "path",
    "method",
    "conversation_id",
    "task_name",
    "task_id",
)

_context: dict[str, ContextVar[str | None]] = {
    field: ContextVar(field, default=None) for field in LOG_FIELDS
}

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "botocore", "urllib3", "firebase_admin")


def add_request_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor: merge bound context; explicit event fields win."""
    for field, var in _context.items():
        value = var.get()
        if value and field not in event_dict:
            event_dict[field] = value
    return event_dict


def configure_logging(json_format: bool | None = None, level: str | None = None) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        json_format: JSON lines when True, console rendering when False.
            Defaults to LOG_JSON.
        level: Root level name. Defaults to LOG_LEVEL.
    """
    if json_format is None or level is None:
        settings = get_settings()
        json_format = settings.log_json if json_format is None else json_format
        level = settings.log_level if level is None else level

    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # uvicorn, celery, botocore and firebase_admin log through stdlib
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def _bind(**fields: str | None) -> None:
    for field, value in fields.items():
        _context[field].set(value)


def set_request_context(
    request_id: str | None,
    user_id: str | None = None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind HTTP request fields. Fields passed as None keep their current value."""
    _context["request_id"].set(request_id)
    _bind(**{k: v for k, v in {"user_id": user_id, "path": path, "method": method}.items() if v})


def set_socket_context(user_id: int, conversation_id: int | None = None) -> None:
    """Bind WebSocket identity for the lifetime of a socket loop."""
    _bind(
        user_id=str(user_id),
        conversation_id=str(conversation_id) if conversation_id is not None else None,
    )


def clear_request_context() -> None:
    _bind(request_id=None, user_id=None, path=None, method=None, conversation_id=None)


def get_request_id() -> str | None:
    return _context["request_id"].get()


def configure_task_logging(
    request_id: str | None = None,
    task_name: str | None = None,
    task_id: str | None = None,
) -> None:
    """Bind job fields at the start of a Celery task or in-process job run.

    Args:
        request_id: Correlation ID when the job was enqueued from a request.
        task_name: Registered task name.
        task_id: Celery task id (self.request.id), None for in-process runs.
    """
    _bind(request_id=request_id, task_name=task_name, task_id=task_id)


def clear_task_context() -> None:
    _bind(request_id=None, task_name=None, task_id=None, user_id=None)
