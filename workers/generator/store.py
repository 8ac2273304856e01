"""
Job Store Adapter over the ai_jobs table.

Every status write is a single compare-and-set UPDATE on the current
status, so concurrent workers and duplicate compensations never stack.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from apps.api.models.models import AIJob, CreditTransaction, UserCredits

from .errors import StoreAccessError
from .job import JobRecord
from .status import JobStatus, sources_for

LOGGER = logging.getLogger("aijobs.store")

jobs = AIJob.__table__
credits = UserCredits.__table__
transactions = CreditTransaction.__table__


class JobStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self):
        try:
            with self._session_factory() as db, db.begin():
                yield db
        except SQLAlchemyError as e:
            raise StoreAccessError(f"{type(e).__name__}: {e}") from e

    def enqueue(
        self,
        job_type: str,
        input: Optional[dict] = None,
        user_id: Optional[str] = None,
        cost: Optional[int] = None,
        job_id: Optional[str] = None,
    ) -> JobRecord:
        values: dict[str, Any] = {
            "type": job_type,
            "input": input or {},
            "user_id": user_id,
            "cost": cost,
            "status": JobStatus.PENDING.value,
        }
        if job_id:
            values["id"] = job_id
        with self._transaction() as db:
            row = db.execute(insert(jobs).values(**values).returning(*jobs.c)).mappings().first()
        return JobRecord.model_validate(dict(row))

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._transaction() as db:
            row = db.execute(select(jobs).where(jobs.c.id == job_id)).mappings().first()
        return JobRecord.model_validate(dict(row)) if row else None

    def claim_next(self) -> Optional[JobRecord]:
        """Atomically move the oldest pending job to processing. None means queue empty."""
        # aliased so the subquery is not correlated to the UPDATE target
        pending = jobs.alias("pending_jobs")
        candidate = (
            select(pending.c.id)
            .where(pending.c.status == JobStatus.PENDING.value)
            .order_by(pending.c.created_at, pending.c.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        return self._claim_where(jobs.c.id == candidate)

    def claim(self, job_id: str) -> Optional[JobRecord]:
        """Push-mode claim of one known job. None if it is no longer pending."""
        return self._claim_where(jobs.c.id == job_id)

    def _claim_where(self, condition) -> Optional[JobRecord]:
        stmt = (
            update(jobs)
            .where(condition, _guard(JobStatus.PROCESSING))
            .values(
                status=JobStatus.PROCESSING.value,
                attempts=jobs.c.attempts + 1,
                updated_at=datetime.utcnow(),
            )
            .returning(*jobs.c)
        )
        with self._transaction() as db:
            row = db.execute(stmt).mappings().first()
        if row is None:
            return None
        job = JobRecord.model_validate(dict(row))
        LOGGER.info("claimed job", extra={"job_id": job.id, "type": job.type, "attempt": job.attempts})
        return job

    def _move(self, job_id: str, target: JobStatus, refund: Optional[tuple] = None, **values) -> bool:
        """CAS status write; `refund` (user_id, amount, metadata) commits with it or not at all."""
        stmt = (
            update(jobs)
            .where(jobs.c.id == job_id, _guard(target))
            .values(status=target.value, updated_at=datetime.utcnow(), **values)
        )
        with self._transaction() as db:
            changed = db.execute(stmt).rowcount == 1
            if changed and refund is not None:
                _record_refund(db, *refund)
        if changed:
            LOGGER.info("job status written", extra={"job_id": job_id, "status": target.value})
            if refund is not None:
                LOGGER.info(
                    "refunded credits",
                    extra={"job_id": job_id, "user_id": refund[0], "amount": refund[1]},
                )
        else:
            LOGGER.warning(
                "job not in processing; write skipped",
                extra={"job_id": job_id, "status": target.value},
            )
        return changed

    def complete(self, job_id: str, result: dict) -> bool:
        return self._move(job_id, JobStatus.COMPLETED, result=result, error=None)

    def fail(self, job_id: str, error_message: str) -> bool:
        return self._move(job_id, JobStatus.FAILED, error=error_message)

    def cancel(self, job_id: str, reason: str) -> bool:
        return self._move(job_id, JobStatus.CANCELLED, error=reason)

    def cancel_and_refund(
        self, job_id: str, reason: str, user_id: str, amount: int, metadata: Optional[dict] = None
    ) -> bool:
        """Cancel and refund in one transaction. False if the job was no longer processing."""
        return self._move(
            job_id,
            JobStatus.CANCELLED,
            refund=(user_id, amount, dict(metadata or {}, job_id=job_id)),
            error=reason,
        )

    def fail_and_refund(
        self, job_id: str, error_message: str, user_id: str, amount: int, metadata: Optional[dict] = None
    ) -> bool:
        return self._move(
            job_id,
            JobStatus.FAILED,
            refund=(user_id, amount, dict(metadata or {}, job_id=job_id)),
            error=error_message,
        )

    def refund(self, user_id: str, amount: int, metadata: Optional[dict] = None) -> bool:
        """Credit `amount` back to `user_id`. Returns False if this job was already refunded."""
        metadata = dict(metadata or {})
        try:
            with self._transaction() as db:
                _record_refund(db, user_id, amount, metadata)
        except StoreAccessError as e:
            if isinstance(e.__cause__, IntegrityError):
                LOGGER.warning(
                    "refund already recorded",
                    extra={"job_id": metadata.get("job_id"), "user_id": user_id},
                )
                return False
            raise
        LOGGER.info(
            "refunded credits",
            extra={"job_id": metadata.get("job_id"), "user_id": user_id, "amount": amount},
        )
        return True

    def balance(self, user_id: str) -> int:
        with self._transaction() as db:
            value = db.execute(select(credits.c.balance).where(credits.c.user_id == user_id)).scalar()
        return int(value or 0)


def _add_balance(db, user_id: str, amount: int, now: datetime) -> None:
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as upsert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as upsert
    else:
        res = db.execute(
            update(credits)
            .where(credits.c.user_id == user_id)
            .values(balance=credits.c.balance + amount, updated_at=now)
        )
        if res.rowcount == 0:
            db.execute(insert(credits).values(user_id=user_id, balance=amount, updated_at=now))
        return
    stmt = upsert(credits).values(user_id=user_id, balance=amount, updated_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[credits.c.user_id],
        set_={"balance": credits.c.balance + amount, "updated_at": now},
    )
    db.execute(stmt)


def _guard(target: JobStatus):
    return jobs.c.status.in_(sorted(s.value for s in sources_for(target)))


def _record_refund(db, user_id: str, amount: int, metadata: dict) -> None:
    now = datetime.utcnow()
    db.execute(
        insert(transactions).values(
            user_id=user_id,
            job_id=metadata.get("job_id"),
            kind="refund",
            amount=amount,
            meta=metadata,
            created_at=now,
        )
    )
    _add_balance(db, user_id, amount, now)
