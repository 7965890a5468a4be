from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator, Optional

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_context.get()


def set_request_id(request_id: str) -> Token:
    """Set the request ID in context."""
    return request_id_context.set(request_id)


@contextmanager
def request_id_scope(request_id: str) -> Iterator[str]:
    """
    Carry an HTTP request ID into code running outside the request,
    e.g. a Celery task handed the ID of the request that queued it.
    """
    token = set_request_id(request_id)
    try:
        yield request_id
    finally:
        request_id_context.reset(token)
