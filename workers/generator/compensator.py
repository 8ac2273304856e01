"""
Failure Compensator: the single corrective action taken after a job attempt fails.

- transient-exhausted (backend overloaded through every retry) -> cancelled + refund
- anything else -> failed, refunded only under the "always" refund policy
"""
import logging
from typing import Optional

from .errors import describe, is_transient
from .job import JobRecord
from .status import JobStatus

LOGGER = logging.getLogger("aijobs.compensator")

REFUND_OVERLOAD_ONLY = "overload"
REFUND_ALWAYS = "always"
REFUND_POLICIES = (REFUND_OVERLOAD_ONLY, REFUND_ALWAYS)


class FailureCompensator:
    def __init__(self, store, refund_policy: str = REFUND_OVERLOAD_ONLY):
        if refund_policy not in REFUND_POLICIES:
            raise ValueError(f"unknown refund policy: {refund_policy}")
        self._store = store
        self._refund_policy = refund_policy

    def compensate(self, job: Optional[JobRecord], error: BaseException) -> Optional[JobStatus]:
        """Returns the status written, or None if nothing changed.

        The status write and any refund share one store transaction, so a
        failed refund leaves the job in processing for the next attempt.
        """
        if job is None or not job.id:
            LOGGER.error("cannot compensate job without id", extra={"error": str(error)})
            return None

        if is_transient(error):
            attempts = getattr(error, "attempts", 0) or 1
            reason = f"Generation backend overloaded after {attempts} attempt(s); job not run: {error}"
            if not self._write(job, JobStatus.CANCELLED, reason, refund_reason="overloaded"):
                return None
            LOGGER.warning("job cancelled after transient failures", extra={"job_id": job.id})
            return JobStatus.CANCELLED

        refund_reason = "failed" if self._refund_policy == REFUND_ALWAYS else None
        if not self._write(job, JobStatus.FAILED, describe(error), refund_reason=refund_reason):
            return None
        LOGGER.error("job failed", extra={"job_id": job.id, "error": describe(error)})
        return JobStatus.FAILED

    def _write(self, job: JobRecord, target: JobStatus, message: str, refund_reason=None) -> bool:
        amount = job.refund_amount
        if refund_reason is None or not job.user_id or amount <= 0:
            if target is JobStatus.CANCELLED:
                return self._store.cancel(job.id, message)
            return self._store.fail(job.id, message)

        metadata = {"job_id": job.id, "job_type": job.type, "reason": refund_reason}
        if target is JobStatus.CANCELLED:
            return self._store.cancel_and_refund(job.id, message, job.user_id, amount, metadata)
        return self._store.fail_and_refund(job.id, message, job.user_id, amount, metadata)
