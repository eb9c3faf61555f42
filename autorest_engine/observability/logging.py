"""
Request-scoped logging for AUTOREST_ENGINE.

Each HTTP request runs inside :func:`request_scope`, which binds a request id
(the caller's ``X-Request-ID`` when it is usable, a fresh one otherwise).
Once the request is resolved its organization, service and entity are added
with :func:`bind_log_context`. Loggers from :func:`get_logger` copy all of it
onto their records, so every line of one request can be grouped.
"""

import contextvars
import logging
import re
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

# Client supplied ids end up in logs and response headers
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "autorest_request_id", default=None
)
_log_context: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "autorest_log_context", default=None
)


def get_request_id() -> str | None:
    return _request_id.get()


def bind_request_id(candidate: str | None = None) -> str:
    """
    Bind the request id of the current context.

    A candidate that is empty, too long or carries characters outside
    ``[A-Za-z0-9._:-]`` is replaced by a generated id.

    Returns:
        The id that was bound
    """
    if not candidate or not _REQUEST_ID_PATTERN.match(candidate):
        candidate = uuid.uuid4().hex
    _request_id.set(candidate)
    return candidate


def bind_log_context(**values: Any) -> None:
    """Add values (organization_id, service, entity...) to the current context; ``None`` is skipped."""
    context = dict(_log_context.get() or {})
    context.update({k: v for k, v in values.items() if v is not None})
    _log_context.set(context)


def get_logging_context() -> dict[str, Any]:
    context = dict(_log_context.get() or {})
    request_id = _request_id.get()
    if request_id:
        context["request_id"] = request_id
    return context


@contextmanager
def request_scope(request_id: str | None = None) -> Iterator[str]:
    """
    Run a block with its own request id and an empty log context.

    Both are restored on exit, so nothing leaks into the next request
    served by the same task.
    """
    id_token = _request_id.set(None)
    context_token = _log_context.set(None)
    try:
        yield bind_request_id(request_id)
    finally:
        _log_context.reset(context_token)
        _request_id.reset(id_token)


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Adds the request id and log context to every record; explicit ``extra`` wins."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = get_logging_context()
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> RequestLoggerAdapter:
    return RequestLoggerAdapter(logging.getLogger(name), {})


def log_operation(
    logger: logging.Logger | logging.LoggerAdapter,
    operation: str,
    success: bool = True,
    duration_ms: float | None = None,
    level: int | None = None,
    **tags: Any,
) -> None:
    """
    Log the outcome of an operation as one line.

    ``autorest.list ok in 3.20ms entity=orders service=sales``

    The level defaults to INFO on success and WARNING on failure. Tags and
    the duration are also set as record attributes.
    """
    if level is None:
        level = logging.INFO if success else logging.WARNING

    message = f"{operation} {'ok' if success else 'failed'}"
    if duration_ms is not None:
        message += f" in {duration_ms:.2f}ms"
    shown = {k: v for k, v in sorted(tags.items()) if v is not None}
    if shown:
        message += " " + " ".join(f"{k}={v}" for k, v in shown.items())

    extra = {**get_logging_context(), **shown, "operation": operation, "success": success}
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)
    logger.log(level, message, extra=extra)
