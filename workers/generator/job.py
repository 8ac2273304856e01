from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .status import JobStatus


class JobRecord(BaseModel):
    """In-memory copy of an ai_jobs row, valid for one execution attempt."""

    id: str
    type: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    input: dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    cost: Optional[int] = None
    credits_used: Optional[int] = None
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    attempts: int = 0

    @field_validator("input", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v if v is not None else {}

    @property
    def refund_amount(self) -> int:
        amount = self.cost if self.cost is not None else self.credits_used
        return int(amount or 0)
