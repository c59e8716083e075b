"""Log correlation context shared by the formatter and tracing helpers.

The context is a plain dict in a ``ContextVar``: ``trace_id`` and ``span_id``
plus optional tags such as ``index``. Threads start with an empty context.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4


trace_context: ContextVar[dict | None] = ContextVar("trace_context", default=None)


def _new_ids() -> dict[str, str]:
    return {"trace_id": uuid4().hex, "span_id": uuid4().hex[:16]}


def get_trace_context() -> dict:
    """Return the current context, creating trace ids on first use."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {**(ctx or {}), **_new_ids()}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **tags: object) -> None:
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **tags})


def update_span_id(span_id: str) -> None:
    ctx = trace_context.get() or {}
    trace_context.set({**ctx, "span_id": span_id})


@contextmanager
def bind_index(name: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``index=name``."""
    token = trace_context.set({**get_trace_context(), "index": name})
    try:
        yield
    finally:
        trace_context.reset(token)
