"""Structured JSON logging configuration."""

import contextvars
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from pythonjsonlogger.json import JsonFormatter

from linkstore.core.config import settings

operation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("operation_id", default="")


class OperationIdFilter(logging.Filter):
    """Inject operation_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation_id = operation_id_var.get("")  # type: ignore[attr-defined]
        return True


def setup_logging(*, debug: bool | None = None) -> None:
    """Configure root logger with JSON formatter and operation-id filter.

    The level follows ``settings.debug`` unless ``debug`` is given.
    """
    if debug is None:
        debug = settings.debug
    handler = logging.StreamHandler()
    formatter = JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s %(operation_id)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
    )
    handler.setFormatter(formatter)
    handler.addFilter(OperationIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def generate_operation_id() -> str:
    """Generate a new operation ID."""
    return uuid.uuid4().hex[:16]


@contextmanager
def operation_scope(name: str) -> Iterator[str]:
    """Bind a fresh operation id for the duration of one sync operation."""
    operation_id = generate_operation_id()
    token = operation_id_var.set(operation_id)
    logging.getLogger(__name__).debug("Operation %s started", name)
    try:
        yield operation_id
    finally:
        operation_id_var.reset(token)
