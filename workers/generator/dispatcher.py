from typing import Callable, Dict, Optional

from .errors import UnsupportedJobType
from .job import JobRecord

Handler = Callable[[JobRecord], dict]


class Dispatcher:
    """Maps job.type to a handler. Unknown types fail before any side effect."""

    def __init__(self, handlers: Optional[Dict[str, Handler]] = None):
        self._handlers: Dict[str, Handler] = dict(handlers or {})

    def register(self, job_type: str, handler: Handler) -> None:
        self._handlers[job_type] = handler

    def supports(self, job_type) -> bool:
        return job_type in self._handlers

    @property
    def job_types(self) -> list[str]:
        return sorted(self._handlers)

    def dispatch(self, job: JobRecord) -> dict:
        handler = self._handlers.get(job.type)
        if handler is None:
            raise UnsupportedJobType(job.type)
        return handler(job)
