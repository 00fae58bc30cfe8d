from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.deps import get_current_user, get_gateway, get_redis
from app.models.user import User
from app.models.workout_assignment import Exercise
from app.routers.assignments import assignment_out
from app.services import assignments as assignments_service
from app.services import generation as generation_service
from app.services.generation import GenerationAction, GenerationGateway
from app.services.rate_limit import check_rate_limit

router = APIRouter()


class BatchCreate(BaseModel):
    name: str
    scheduled_date: date
    prescriptions: dict[str, list[Exercise]]
    coaching_notes: str = ""
    personal_notes: dict[str, str] = Field(default_factory=dict)


class BatchDelete(BaseModel):
    assignment_ids: list[str] = Field(default_factory=list)
    scheduled_date: date | None = None


class GroupGenerate(BaseModel):
    athlete_ids: list[str]
    scheduled_date: date
    prompt: str = ""


@router.post("/{group_id}/batches", status_code=201)
async def batch_create(group_id: str, body: BatchCreate, user: User = Depends(get_current_user)):
    """Group admin: assign a workout to each athlete with their own prescription."""
    items = await assignments_service.create_batch(
        group_id,
        user.uid,
        body.name,
        body.scheduled_date,
        body.prescriptions,
        coaching_notes=body.coaching_notes,
        personal_notes=body.personal_notes,
    )
    return {"batch_key": items[0].batch_key, "assignments": [assignment_out(a) for a in items]}


@router.get("/{group_id}/batches/{batch_key}")
async def batch_get(group_id: str, batch_key: str, user: User = Depends(get_current_user)):
    """All sibling assignments of one batch, with completion counts."""
    summary = await assignments_service.batch_summary(group_id, batch_key, user.uid)
    items = await assignments_service.list_batch(group_id, batch_key, user.uid)
    return {**summary, "assignments": [assignment_out(a) for a in items]}


@router.post("/{group_id}/assignments/delete")
async def batch_delete(group_id: str, body: BatchDelete, user: User = Depends(get_current_user)):
    """Group admin: delete assignments by id or every assignment on a date."""
    deleted = await assignments_service.delete_assignments(
        group_id, user.uid, assignment_ids=body.assignment_ids or None, on_date=body.scheduled_date
    )
    return {"deleted": deleted}


@router.post("/{group_id}/generate", status_code=201)
async def group_generate(
    group_id: str,
    body: GroupGenerate,
    user: User = Depends(get_current_user),
    redis=Depends(get_redis),
    gateway: GenerationGateway = Depends(get_gateway),
):
    """Group admin: AI-personalized workout per athlete (5 credits each, refunded if generation fails)."""
    await check_rate_limit(redis, user.uid, GenerationAction.GROUP_WORKOUT.value)
    items = await generation_service.generate_group_workout(
        user.uid,
        group_id,
        body.athlete_ids,
        body.scheduled_date,
        prompt=body.prompt,
        gateway=gateway,
    )
    return {"batch_key": items[0].batch_key, "assignments": [assignment_out(a) for a in items]}
