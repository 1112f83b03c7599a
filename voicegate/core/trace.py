from __future__ import annotations

import uuid
from contextvars import ContextVar


_trace_id: ContextVar[str | None] = ContextVar("trace_id", default=None)

TRACE_HEADER = "X-Trace-Id"


def new_trace_id() -> str:
    tid = uuid.uuid4().hex
    _trace_id.set(tid)
    return tid


def set_trace_id(tid: str | None) -> None:
    _trace_id.set(tid)


def get_trace_id() -> str | None:
    return _trace_id.get()


def adopt_trace_id(incoming: str | None) -> str:
    """Reprend l'identifiant fourni par l'appelant ou en genere un nouveau."""
    if incoming:
        set_trace_id(incoming)
        return incoming
    return new_trace_id()
