"""Workout completion state machine.

Every legal move of a WorkoutAssignment goes through `apply_transition`:

    scheduled --save_progress--> scheduled
    scheduled --complete--> completed        (review: self | pending)
    completed[pending] --approve--> completed[approved]          (athlete only)
    completed[pending] --complete--> completed[edited]           (athlete only)
    completed --mark_incomplete--> scheduled (completion + review cleared)

The function is pure: it returns the field patch to persist and raises on an
illegal move. Persistence and version guarding live in `assignments`.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from app.core.exceptions import BadRequestError, ForbiddenError, InvalidTransitionError
from app.models.workout_assignment import AssignmentStatus, Exercise, ReviewStatus, WorkoutAssignment


class Transition(str, Enum):
    SAVE_PROGRESS = "save_progress"
    COMPLETE = "complete"
    APPROVE = "approve"
    EDIT_AND_RESUBMIT = "edit_and_resubmit"
    MARK_INCOMPLETE = "mark_incomplete"


# Transitions that change status/review and therefore move the version guard.
VERSIONED = frozenset({Transition.COMPLETE, Transition.APPROVE, Transition.MARK_INCOMPLETE})


def can_write(assignment: WorkoutAssignment, actor_id: str, group_admins: Iterable[str]) -> bool:
    return actor_id == assignment.assigned_to or actor_id in set(group_admins)


def fill_unlogged(exercises: list[Exercise]) -> list[Exercise]:
    """Unlogged means done as prescribed: copy prescribed values into null actuals only."""
    filled = []
    for ex in exercises:
        sets = [
            s.model_copy(
                update={
                    "actual_weight": s.actual_weight if s.actual_weight is not None else s.prescribed_weight,
                    "actual_reps": s.actual_reps if s.actual_reps is not None else s.prescribed_reps,
                    "actual_time": s.actual_time if s.actual_time is not None else s.prescribed_time,
                }
            )
            for s in ex.sets
        ]
        filled.append(ex.model_copy(update={"sets": sets}))
    return filled


def _require_writer(assignment: WorkoutAssignment, actor_id: str, group_admins: Iterable[str]) -> None:
    if not can_write(assignment, actor_id, group_admins):
        raise ForbiddenError("Only the assigned athlete or a group admin can change this workout")


def _require_pending_review(assignment: WorkoutAssignment, actor_id: str) -> None:
    if actor_id != assignment.assigned_to:
        raise ForbiddenError("Only the assigned athlete can review this workout")
    if assignment.status != AssignmentStatus.COMPLETED or assignment.review_status != ReviewStatus.PENDING:
        raise InvalidTransitionError(
            "Workout is not awaiting review",
            details={"status": assignment.status.value, "review_status": assignment.review_status.value},
        )


def apply_transition(
    assignment: WorkoutAssignment,
    transition: Transition,
    actor_id: str,
    group_admins: Iterable[str],
    now: datetime,
    exercises: list[Exercise] | None = None,
) -> dict[str, Any]:
    """Return the patch for `transition` by `actor_id`, or raise ForbiddenError / InvalidTransitionError."""
    status = assignment.status
    review = assignment.review_status

    if transition is Transition.SAVE_PROGRESS:
        _require_writer(assignment, actor_id, group_admins)
        if status != AssignmentStatus.SCHEDULED:
            raise InvalidTransitionError("Progress can only be saved on a scheduled workout")
        if exercises is None:
            raise BadRequestError("exercises required")
        return {"exercises": exercises}

    if transition is Transition.COMPLETE:
        _require_writer(assignment, actor_id, group_admins)
        logged = fill_unlogged(exercises if exercises is not None else assignment.exercises)
        if status == AssignmentStatus.SCHEDULED:
            self_logged = actor_id == assignment.assigned_to
            return {
                "exercises": logged,
                "status": AssignmentStatus.COMPLETED,
                "completed_at": now,
                "completed_by": actor_id,
                "review_status": ReviewStatus.SELF if self_logged else ReviewStatus.PENDING,
                "reviewed_at": None,
            }
        if review == ReviewStatus.PENDING and actor_id == assignment.assigned_to:
            # athlete overriding a coach-entered log
            return {
                "exercises": logged,
                "status": AssignmentStatus.COMPLETED,
                "completed_at": now,
                "completed_by": actor_id,
                "review_status": ReviewStatus.EDITED,
                "reviewed_at": now,
            }
        raise InvalidTransitionError(
            "Workout is already completed",
            details={"status": status.value, "review_status": review.value},
        )

    if transition is Transition.APPROVE:
        _require_pending_review(assignment, actor_id)
        return {"review_status": ReviewStatus.APPROVED, "reviewed_at": now}

    if transition is Transition.EDIT_AND_RESUBMIT:
        # Editing is a client-local draft; the follow-up COMPLETE takes the edited branch.
        _require_pending_review(assignment, actor_id)
        return {}

    if transition is Transition.MARK_INCOMPLETE:
        _require_writer(assignment, actor_id, group_admins)
        if status != AssignmentStatus.COMPLETED:
            raise InvalidTransitionError("Workout is not completed")
        return {
            "status": AssignmentStatus.SCHEDULED,
            "completed_at": None,
            "completed_by": None,
            "review_status": ReviewStatus.NONE,
            "reviewed_at": None,
        }

    raise BadRequestError(f"Unknown transition: {transition}")


def invariant_violations(assignment: WorkoutAssignment) -> list[str]:
    """Consistency of the status/completed_by/review_status triple; empty when the record is sound."""
    out = []
    if assignment.status == AssignmentStatus.SCHEDULED:
        if assignment.review_status != ReviewStatus.NONE:
            out.append("scheduled workout carries a review status")
        if assignment.completed_at is not None:
            out.append("scheduled workout carries completed_at")
        return out
    if assignment.completed_by is None or assignment.completed_at is None:
        out.append("completed workout missing completed_by/completed_at")
    by_athlete = assignment.completed_by == assignment.assigned_to
    if assignment.review_status == ReviewStatus.PENDING and by_athlete:
        out.append("pending review on a self-logged workout")
    if assignment.review_status == ReviewStatus.SELF and not by_athlete:
        out.append("self review status on a workout logged by someone else")
    if assignment.review_status in (ReviewStatus.APPROVED, ReviewStatus.EDITED) and assignment.reviewed_at is None:
        out.append("reviewed workout missing reviewed_at")
    if assignment.review_status == ReviewStatus.NONE:
        out.append("completed workout without a review status")
    return out
