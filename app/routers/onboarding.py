from fastapi import APIRouter, Depends

from app.deps import get_current_user
from app.models.user import User
from app.services import onboarding as onboarding_service

router = APIRouter()


@router.get("/tasks")
async def onboarding_tasks(user: User = Depends(get_current_user)):
    return {"tasks": await onboarding_service.task_status(user.uid)}


@router.post("/tasks/{task_id}/claim")
async def onboarding_claim(task_id: str, user: User = Depends(get_current_user)):
    """Grant the task's reward credits once per user (idempotent); 409 until the task is done."""
    entry, balance = await onboarding_service.claim_task(user.uid, task_id)
    return {"task": task_id, "credits": entry.amount, "balance": balance}
