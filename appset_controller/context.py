"""Utilities for tracing nested reconciliation steps."""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator


_LOGGER = logging.getLogger(__name__)

__all__ = ["trace_context", "current_trace"]


_trace: contextvars.ContextVar[tuple[str, ...]] = contextvars.ContextVar(
    "trace", default=()
)


def current_trace() -> str:
    """Return the label of the innermost active trace, or an empty string."""
    return " > ".join(_trace.get())


@contextmanager
def trace_context(name: str) -> Generator[None, None, None]:
    """Log entry to and exit from a named step with its elapsed time.

    Steps nest, so a step inside a reconciliation pass is logged as
    `ApplicationSet argocd/guestbook > Generator 0 (list)`.
    """
    stack = _trace.get()
    token = _trace.set(stack + (name,))
    label = current_trace()
    start = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        _trace.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, perf_counter() - start)
