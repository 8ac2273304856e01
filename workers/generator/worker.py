"""
Generator worker.
Claims (pull) or accepts (push) one generation job, dispatches it, and writes
exactly one terminal status: completed on success, failed/cancelled via the
compensator otherwise.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from enum import Enum
from typing import NamedTuple, Optional

from .cancel import cancel_scope
from .compensator import FailureCompensator
from .dispatcher import Dispatcher
from .errors import GenerationTimeout, UnsupportedJobType
from .job import JobRecord
from .status import JobStatus
from .store import JobStore

LOGGER = logging.getLogger("aijobs.worker")


class Outcome(str, Enum):
    SUCCESS = "completed"
    EMPTY = "empty"
    FAILURE = "failed"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"


class RunResult(NamedTuple):
    outcome: Outcome
    job_id: Optional[str] = None
    status: Optional[JobStatus] = None


class Worker:
    def __init__(
        self,
        store: JobStore,
        dispatcher: Dispatcher,
        compensator: FailureCompensator,
        timeout_seconds: Optional[float] = None,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._compensator = compensator
        self._timeout = timeout_seconds or None

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def run_next(self) -> RunResult:
        """Pull mode: claim the next pending job, if any."""
        job = self._store.claim_next()
        if job is None:
            LOGGER.info("queue empty")
            return RunResult(Outcome.EMPTY)
        return self.handle_job(job)

    def run_pushed(
        self,
        job_id: str,
        action: str,
        payload: Optional[dict] = None,
        user_id: Optional[str] = None,
        cost: Optional[int] = None,
    ) -> RunResult:
        """Push mode: the caller delivers the job; the row must still be pending."""
        if not self._dispatcher.supports(action):
            raise UnsupportedJobType(action)
        claimed = self._store.claim(job_id)
        if claimed is None:
            current = self._store.get(job_id)
            if current is None:
                LOGGER.warning("pushed job not found", extra={"job_id": job_id})
                return RunResult(Outcome.NOT_FOUND, job_id)
            LOGGER.info(
                "pushed job already taken; skipping",
                extra={"job_id": job_id, "status": current.status.value},
            )
            return RunResult(Outcome.SKIPPED, job_id, current.status)
        job = claimed.model_copy(
            update={
                "type": action,
                "input": payload or {},
                "user_id": claimed.user_id or user_id,
                "cost": claimed.cost if claimed.cost is not None else cost,
            }
        )
        return self.handle_job(job)

    def handle_job(self, job: JobRecord) -> RunResult:
        LOGGER.info("processing job", extra={"job_id": job.id, "type": job.type})
        try:
            result = self._execute(job)
            changed = self._store.complete(job.id, result)
        except Exception as e:
            LOGGER.exception("job attempt failed", extra={"job_id": job.id, "error": str(e)})
            status = self._compensator.compensate(job, e)
            return RunResult(Outcome.FAILURE, job.id, status)
        if not changed:
            return RunResult(Outcome.SKIPPED, job.id)
        LOGGER.info("job completed", extra={"job_id": job.id})
        return RunResult(Outcome.SUCCESS, job.id, JobStatus.COMPLETED)

    def _execute(self, job: JobRecord) -> dict:
        if self._timeout is None:
            return self._dispatcher.dispatch(job)
        abandoned = threading.Event()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="job")
        future = pool.submit(self._dispatch_in_scope, job, abandoned)
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeout as e:
            # the backend call cannot be interrupted; the handler stops at its next check
            abandoned.set()
            raise GenerationTimeout(self._timeout) from e
        finally:
            pool.shutdown(wait=False)

    def _dispatch_in_scope(self, job: JobRecord, abandoned: threading.Event) -> dict:
        with cancel_scope(abandoned):
            return self._dispatcher.dispatch(job)
