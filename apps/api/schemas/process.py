from typing import Any, Optional

from pydantic import BaseModel, Field


class ProcessRequest(BaseModel):
    """Push-mode job delivery."""

    job_id: str = Field(min_length=1)
    action: str
    payload: dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    cost: Optional[int] = Field(default=None, ge=0)
