import uuid
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, UniqueConstraint, Index

from ..db.base import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class AIJob(Base):
    __tablename__ = "ai_jobs"
    id = Column(String(64), primary_key=True, default=_new_id)
    user_id = Column(String(128), nullable=True)
    type = Column(String(64), nullable=False)  # generate-image | analyze-material
    status = Column(String(16), nullable=False, default="pending")
    input = Column(JSON, nullable=True)
    cost = Column(Integer, nullable=True)
    credits_used = Column(Integer, nullable=True)
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (Index("ix_ai_jobs_status_created", "status", "created_at"),)


class UserCredits(Base):
    __tablename__ = "user_credits"
    user_id = Column(String(128), primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False)
    job_id = Column(String(64), nullable=True)
    kind = Column(String(16), nullable=False)  # debit | refund
    amount = Column(Integer, nullable=False)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # one refund per job
    __table_args__ = (UniqueConstraint("job_id", "kind", name="uq_credit_tx_job_kind"),)
