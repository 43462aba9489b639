"""
audit/__init__.py
Trace-ID helpers.

A trace id is pinned per webhook request on flask.g and carried onto the
evaluation loop through a ContextVar. Background tasks copy the context they
were created in, so an evaluation logs under the id of the request that
dispatched it.
"""

import uuid
from contextvars import ContextVar

from flask import g, has_request_context

_current_trace_id = ContextVar("evaluator_trace_id", default=None)


def generate_trace_id():
    """Generate a short unique trace ID."""
    return uuid.uuid4().hex[:16]


def get_trace_id():
    """
    Return the trace_id bound to the current context.
    Falls back to flask.g, then to a fresh id.
    """
    tid = _current_trace_id.get()
    if tid:
        return tid
    if has_request_context():
        tid = getattr(g, "trace_id", None)
        if tid:
            return tid
    return generate_trace_id()


def set_trace_id(trace_id=None):
    """Bind a trace_id (or a new one) to the current context and return it."""
    tid = trace_id or generate_trace_id()
    if has_request_context():
        g.trace_id = tid
    _current_trace_id.set(tid)
    return tid
