"""
Error taxonomy for generation jobs.
Backend failures are classified once, where the backend call returns;
everything downstream switches on ErrorKind.
"""
from enum import Enum
from typing import Optional

TRANSIENT_CODES = {429, 500, 502, 503, 504}


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    FATAL = "fatal"
    NOT_FOUND = "not_found"


class JobError(Exception):
    kind = ErrorKind.FATAL


class BackendError(JobError):
    def __init__(self, kind: ErrorKind, code: Optional[int], message: str):
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.message = message
        self.attempts = 0

    @classmethod
    def from_status(cls, code: Optional[int], message: str) -> "BackendError":
        if code in TRANSIENT_CODES:
            kind = ErrorKind.TRANSIENT
        elif code == 404:
            kind = ErrorKind.NOT_FOUND
        else:
            kind = ErrorKind.FATAL
        return cls(kind, code, message)

    def __str__(self):
        if self.code is None:
            return self.message
        return f"[{self.code}] {self.message}"


class NoAssetReturned(BackendError):
    def __init__(self, message: str = "NO_IMAGE_RETURNED"):
        super().__init__(ErrorKind.FATAL, None, message)


class UnsupportedJobType(JobError):
    def __init__(self, job_type):
        super().__init__(str(job_type))
        self.job_type = job_type


class StorageError(JobError):
    pass


class StoreAccessError(JobError):
    pass


class GenerationTimeout(JobError):
    def __init__(self, seconds: float):
        super().__init__(f"GENERATION_TIMEOUT after {seconds:g}s")
        self.seconds = seconds


def is_transient(error: BaseException) -> bool:
    return getattr(error, "kind", None) is ErrorKind.TRANSIENT


def describe(error: BaseException) -> str:
    """Text persisted on the job row, e.g. "UnsupportedJobType: generate-video"."""
    return f"{type(error).__name__}: {error}"


class InvalidJobInput(JobError):
    pass
