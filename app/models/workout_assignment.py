from datetime import datetime
from enum import Enum
from typing import Literal

from beanie import Document
from pydantic import BaseModel, Field, field_validator


class AssignmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


class ReviewStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"  # coach/admin completed on the athlete's behalf
    APPROVED = "approved"
    EDITED = "edited"
    SELF = "self"  # athlete logged it; no review gate


class WorkoutSet(BaseModel):
    """One set: what the coach prescribed and what was actually done. Each side is independently nullable."""
    prescribed_weight: float | None = None
    prescribed_reps: int | None = None
    prescribed_time: int | None = None  # seconds
    target_rpe: float | None = None
    actual_weight: float | None = None
    actual_reps: int | None = None
    actual_time: int | None = None
    rpe: float | None = None
    pain_level: int = 0

    # Clients send "" for untouched inputs
    @field_validator(
        "prescribed_weight", "prescribed_reps", "prescribed_time",
        "actual_weight", "actual_reps", "actual_time", "rpe", "target_rpe",
        mode="before",
    )
    @classmethod
    def _blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class Exercise(BaseModel):
    name: str
    type: Literal["weight", "time", "bodyweight"] = "weight"
    sets: list[WorkoutSet] = Field(default_factory=list)
    notes: str = ""


class WorkoutAssignment(Document):
    """One athlete's copy of a coach-authored group workout."""
    batch_key: str
    group_id: str
    assigned_to: str
    assigned_by: str
    name: str
    scheduled_date: datetime
    exercises: list[Exercise] = Field(default_factory=list)
    status: AssignmentStatus = AssignmentStatus.SCHEDULED
    completed_by: str | None = None
    completed_at: datetime | None = None
    review_status: ReviewStatus = ReviewStatus.NONE
    reviewed_at: datetime | None = None
    version: int = 0  # bumped on every status/review transition
    coaching_notes: str = ""
    personal_notes: str = ""
    generated_by_ai: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "group_workouts"
        indexes = [
            [("group_id", 1), ("batch_key", 1)],
            [("assigned_to", 1), ("scheduled_date", -1)],
            [("assigned_to", 1), ("review_status", 1)],
        ]
