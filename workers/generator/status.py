"""
Job lifecycle states and the allowed transitions between them.
pending -> processing -> completed | failed | cancelled
"""
from enum import Enum


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}


class InvalidTransition(Exception):
    def __init__(self, current, target):
        super().__init__(f"{current} -> {target}")
        self.current = current
        self.target = target


def transition(current, target) -> JobStatus:
    current = JobStatus(current)
    target = JobStatus(target)
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value)
    return target


def is_terminal(status) -> bool:
    return not TRANSITIONS[JobStatus(status)]


def sources_for(target) -> set:
    """States a row may be in for a write to `target`; used as the CAS guard."""
    target = JobStatus(target)
    sources = {s for s, allowed in TRANSITIONS.items() if target in allowed}
    if not sources:
        raise InvalidTransition("*", target.value)
    return sources
