from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.core.exceptions import BadRequestError
from app.deps import get_current_user, get_enqueue, get_gateway, get_redis
from app.models.generation_job import GenerationJob
from app.models.user import User
from app.services import generation_jobs
from app.services.generation import GenerationAction, GenerationGateway, cost_for
from app.services.rate_limit import check_rate_limit
from app.workflows.paid_action import run_paid_action

router = APIRouter()


class GenerateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)
    quality: str | None = None
    background: bool = False


def job_out(job: GenerationJob) -> dict:
    return {
        "id": str(job.id),
        "action": job.action,
        "cost": job.cost,
        "status": job.status,
        "result": job.result,
        "error": job.error,
        "refunded": job.refunded,
        "created_at": job.created_at.isoformat(),
        "updated_at": job.updated_at.isoformat(),
    }


@router.get("/jobs/{job_id}")
async def generation_job_get(job_id: str, user: User = Depends(get_current_user)):
    """Poll a background generation job."""
    job = await generation_jobs.get_job(job_id, user.uid)
    return job_out(job)


@router.post("/{action}")
async def generate(
    action: GenerationAction,
    body: GenerateRequest,
    user: User = Depends(get_current_user),
    redis=Depends(get_redis),
    gateway: GenerationGateway = Depends(get_gateway),
    enqueue=Depends(get_enqueue),
):
    """
    Run a paid AI action. Credits are debited before the call and refunded if it fails.
    With background=true the call runs in the worker and a job id is returned.
    """
    if action is GenerationAction.GROUP_WORKOUT:
        raise BadRequestError("Use POST /v1/groups/{group_id}/generate for group workouts")
    await check_rate_limit(redis, user.uid, action.value)
    cost = cost_for(action, quality=body.quality)
    if body.background:
        job = await generation_jobs.submit_job(user.uid, action.value, cost, body.payload, enqueue)
        return {"job": job_out(job)}
    outcome = await run_paid_action(user.uid, action.value, cost, body.payload, gateway=gateway)
    return {"artifact": outcome["result"], "cost": cost, "attempt_id": outcome["attempt_id"]}
