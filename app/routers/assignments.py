from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.core.audit import history_for
from app.core.pagination import paginate
from app.deps import get_current_user
from app.models.user import User
from app.models.workout_assignment import Exercise, WorkoutAssignment
from app.services import assignments as assignments_service
from app.services import review as review_service
from app.services.completion import Transition

router = APIRouter()


class ProgressBody(BaseModel):
    exercises: list[Exercise]


class CompleteBody(BaseModel):
    version: int
    exercises: list[Exercise] | None = None


class VersionBody(BaseModel):
    version: int


def assignment_out(a: WorkoutAssignment) -> dict:
    return {
        "id": str(a.id),
        "batch_key": a.batch_key,
        "group_id": a.group_id,
        "assigned_to": a.assigned_to,
        "assigned_by": a.assigned_by,
        "name": a.name,
        "scheduled_date": a.scheduled_date.date().isoformat(),
        "exercises": [ex.model_dump() for ex in a.exercises],
        "status": a.status.value,
        "completed_by": a.completed_by,
        "completed_at": a.completed_at.isoformat() if a.completed_at else None,
        "review_status": a.review_status.value,
        "reviewed_at": a.reviewed_at.isoformat() if a.reviewed_at else None,
        "needs_review": review_service.needs_review(a),
        "trusted": review_service.is_trusted(a),
        "version": a.version,
        "coaching_notes": a.coaching_notes,
        "personal_notes": a.personal_notes,
        "generated_by_ai": a.generated_by_ai,
    }


@router.get("")
async def assignments_mine(
    user: User = Depends(get_current_user),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Workouts assigned to the current user (newest date first)."""
    limit, offset = paginate(limit, offset)
    items = await assignments_service.list_for_athlete(user.uid, limit=limit, offset=offset)
    return {"assignments": [assignment_out(a) for a in items], "limit": limit, "offset": offset}


@router.get("/reviews/pending")
async def reviews_pending(user: User = Depends(get_current_user)):
    """Coach-logged workouts waiting for the current user's approval."""
    items = await review_service.pending_reviews(user.uid)
    return {"assignments": [assignment_out(a) for a in items]}


@router.get("/{assignment_id}")
async def assignment_get(assignment_id: str, user: User = Depends(get_current_user)):
    a = await assignments_service.get_assignment(assignment_id, user.uid)
    return assignment_out(a)


@router.get("/{assignment_id}/history")
async def assignment_history(assignment_id: str, user: User = Depends(get_current_user)):
    """Who completed, approved or rolled back this workout, newest first."""
    await assignments_service.get_assignment(assignment_id, user.uid)
    events = await history_for("workout_assignment", assignment_id)
    return {
        "events": [
            {"event_type": e.event_type, "user_id": e.user_id, "metadata": e.metadata, "created_at": e.created_at.isoformat()}
            for e in events
        ]
    }


@router.post("/{assignment_id}/progress")
async def assignment_save_progress(assignment_id: str, body: ProgressBody, user: User = Depends(get_current_user)):
    """Persist partially logged sets; the workout stays scheduled."""
    a = await assignments_service.transition(
        assignment_id, user.uid, Transition.SAVE_PROGRESS, exercises=body.exercises
    )
    return assignment_out(a)


@router.post("/{assignment_id}/complete")
async def assignment_complete(assignment_id: str, body: CompleteBody, user: User = Depends(get_current_user)):
    """Complete with logged sets; unlogged sets are recorded as prescribed. 409 if `version` is stale."""
    a = await assignments_service.transition(
        assignment_id, user.uid, Transition.COMPLETE, expected_version=body.version, exercises=body.exercises
    )
    return assignment_out(a)


@router.post("/{assignment_id}/incomplete")
async def assignment_mark_incomplete(assignment_id: str, body: VersionBody, user: User = Depends(get_current_user)):
    a = await assignments_service.transition(
        assignment_id, user.uid, Transition.MARK_INCOMPLETE, expected_version=body.version
    )
    return assignment_out(a)


@router.post("/{assignment_id}/approve")
async def assignment_approve(assignment_id: str, body: VersionBody, user: User = Depends(get_current_user)):
    """Athlete accepts a coach-logged workout as-is."""
    a = await review_service.approve(assignment_id, user.uid, body.version)
    return assignment_out(a)


@router.post("/{assignment_id}/edit")
async def assignment_edit(assignment_id: str, user: User = Depends(get_current_user)):
    """Athlete opens a coach-logged workout for editing; resubmit through /complete."""
    a = await review_service.edit_and_resubmit(assignment_id, user.uid)
    return assignment_out(a)
