from datetime import datetime
from typing import Any, Literal

from beanie import Document
from pydantic import Field


class GenerationJob(Document):
    """Background AI generation: credits reserved up front, refunded if the job fails."""
    user_id: str
    action: str
    cost: int
    exempt: bool = False
    payload: dict[str, Any] = Field(default_factory=dict)
    status: Literal["pending", "running", "succeeded", "failed"] = "pending"
    result: dict[str, Any] | None = None
    error: str | None = None
    refunded: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "generation_jobs"
        indexes = [[("user_id", 1), ("created_at", -1)], [("status", 1)]]
