"""Structured JSON logging configuration.

Every record carries the current request id and, while a recovery lock is
held, the lock key, so interleaved recoveries can be told apart in the logs.
"""

import contextvars
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from pythonjsonlogger.json import JsonFormatter

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
recovery_key_var: contextvars.ContextVar[str] = contextvars.ContextVar("recovery_key", default="")

_CONTEXT_FIELDS = {"request_id": request_id_var, "recovery_key": recovery_key_var}

# Chatty at INFO; only their warnings are worth shipping
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "uvicorn.access")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for name, var in _CONTEXT_FIELDS.items():
            setattr(record, name, var.get())
        return True


@contextmanager
def bound(var: contextvars.ContextVar[str], value: str) -> Iterator[None]:
    """Set ``var`` for the duration of the block, restoring the previous value."""
    token = var.set(value)
    try:
        yield
    finally:
        var.reset(token)


def setup_logging(*, debug: bool = False) -> None:
    """Route all logging through one JSON handler on stderr."""
    fields = " ".join(f"%({name})s" for name in _CONTEXT_FIELDS)
    handler = logging.StreamHandler()
    handler.setFormatter(
        JsonFormatter(
            fmt=f"%(asctime)s %(levelname)s %(name)s %(message)s {fields}",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    )
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def generate_request_id() -> str:
    """Short random id for requests that arrive without X-Request-ID."""
    return uuid.uuid4().hex[:16]
