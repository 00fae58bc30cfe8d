"""Review gate for workouts a coach logged on an athlete's behalf.

Coach-entered numbers are not trusted downstream (strength estimates, AI context)
until the athlete approves them or re-logs the workout themselves.
"""

from app.models.workout_assignment import AssignmentStatus, ReviewStatus, WorkoutAssignment
from app.services import assignments as assignments_service
from app.services.completion import Transition

TRUSTED = frozenset({ReviewStatus.SELF, ReviewStatus.APPROVED, ReviewStatus.EDITED})


def needs_review(assignment: WorkoutAssignment) -> bool:
    return (
        assignment.status == AssignmentStatus.COMPLETED
        and assignment.completed_by != assignment.assigned_to
        and assignment.review_status == ReviewStatus.PENDING
    )


def is_trusted(assignment: WorkoutAssignment) -> bool:
    """Completed and either self-logged or confirmed by the athlete."""
    return assignment.status == AssignmentStatus.COMPLETED and assignment.review_status in TRUSTED


async def approve(assignment_id: str, athlete_id: str, expected_version: int) -> WorkoutAssignment:
    """Athlete accepts the coach's log as-is. Exercises are not touched."""
    return await assignments_service.transition(
        assignment_id, athlete_id, Transition.APPROVE, expected_version=expected_version
    )


async def edit_and_resubmit(assignment_id: str, athlete_id: str) -> WorkoutAssignment:
    """Athlete opens the coach's log for editing; their next complete marks it `edited`."""
    return await assignments_service.transition(assignment_id, athlete_id, Transition.EDIT_AND_RESUBMIT)


async def pending_reviews(athlete_id: str) -> list[WorkoutAssignment]:
    return (
        await WorkoutAssignment.find(
            WorkoutAssignment.assigned_to == athlete_id,
            WorkoutAssignment.status == AssignmentStatus.COMPLETED,
            WorkoutAssignment.review_status == ReviewStatus.PENDING,
        )
        .sort(-WorkoutAssignment.completed_at)
        .to_list()
    )
