"""
Cooperative cancellation for a dispatch that outlived its timeout.

The worker cannot interrupt a blocking backend call, so handlers check the
token at their own safe points (before a retry sleep, before an upload).
"""
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional

from .errors import JobError

_current: ContextVar[Optional[threading.Event]] = ContextVar("aijobs_cancel", default=None)


class JobCancelled(JobError):
    """The job was abandoned by the worker; stop without side effects."""


def cancelled() -> bool:
    event = _current.get()
    return event is not None and event.is_set()


def check_cancelled() -> None:
    if cancelled():
        raise JobCancelled("job abandoned after timeout")


@contextmanager
def cancel_scope(event: threading.Event):
    token = _current.set(event)
    try:
        yield event
    finally:
        _current.reset(token)
