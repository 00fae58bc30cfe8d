"""Onboarding checklist: one-time credit rewards, paid only once the task is actually done."""

from beanie.operators import In

from app.core.exceptions import ConflictError, NotFoundError
from app.core.logging import get_logger
from app.models.credit_ledger import CreditLedgerEntry
from app.models.generation_job import GenerationJob
from app.models.workout_assignment import AssignmentStatus, WorkoutAssignment
from app.services import credits as credits_service

log = get_logger(__name__)

# Checklist task -> one-time credit reward
TASK_REWARDS = {
    "docs": 25,
    "goal": 100,
    "workout": 100,
    "ai_workout": 50,
    "friend": 50,
}

# Goals and friendships live outside this service, so those claims are trusted like the docs visit
TRUSTED_TASKS = ("docs", "goal", "friend")

AI_WORKOUT_ACTIONS = ("workout", "program", "group_workout")


def _claim_key(user_id: str, task_id: str) -> str:
    return f"onboarding_{task_id}_{user_id}"


async def _completed_workout(user_id: str) -> bool:
    found = await WorkoutAssignment.find_one(
        WorkoutAssignment.assigned_to == user_id,
        WorkoutAssignment.status == AssignmentStatus.COMPLETED,
    )
    return found is not None


async def _generated_workout(user_id: str) -> bool:
    if await WorkoutAssignment.find_one(
        WorkoutAssignment.assigned_to == user_id,
        WorkoutAssignment.generated_by_ai == True,  # noqa: E712
    ):
        return True
    job = await GenerationJob.find_one(
        GenerationJob.user_id == user_id,
        GenerationJob.status == "succeeded",
        In(GenerationJob.action, list(AI_WORKOUT_ACTIONS)),
    )
    if job:
        return True
    # a paid generation counts unless it was refunded
    debits = await CreditLedgerEntry.find(
        CreditLedgerEntry.user_id == user_id,
        CreditLedgerEntry.reason == "generation",
        In(CreditLedgerEntry.reference_type, list(AI_WORKOUT_ACTIONS)),
    ).to_list()
    for entry in debits:
        refunded = await CreditLedgerEntry.find_one(
            CreditLedgerEntry.user_id == user_id,
            CreditLedgerEntry.idempotency_key == f"refund:{entry.reference_id}",
        )
        if not refunded:
            return True
    return False


async def is_task_done(user_id: str, task_id: str) -> bool:
    if task_id in TRUSTED_TASKS:
        return True
    if task_id == "workout":
        return await _completed_workout(user_id)
    if task_id == "ai_workout":
        return await _generated_workout(user_id)
    return False


async def task_status(user_id: str) -> list[dict]:
    """Each task as pending (not done), completed (done, reward unclaimed) or claimed."""
    out = []
    for task_id, amount in TASK_REWARDS.items():
        claimed = await CreditLedgerEntry.find_one(
            CreditLedgerEntry.user_id == user_id,
            CreditLedgerEntry.idempotency_key == _claim_key(user_id, task_id),
        )
        if claimed:
            status = "claimed"
        elif await is_task_done(user_id, task_id):
            status = "completed"
        else:
            status = "pending"
        out.append({"id": task_id, "credits": amount, "status": status})
    return out


async def claim_task(user_id: str, task_id: str) -> tuple[CreditLedgerEntry, int]:
    """Grant the task's reward once per user. Raises ConflictError while the task is not done."""
    amount = TASK_REWARDS.get(task_id)
    if amount is None:
        raise NotFoundError("Unknown onboarding task")
    if not await is_task_done(user_id, task_id):
        log.info("onboarding_claim_refused", user_id=user_id, task=task_id)
        raise ConflictError("Task not completed yet", details={"task": task_id}, code="TASK_NOT_COMPLETED")
    return await credits_service.credit(
        user_id,
        amount,
        "onboarding_task",
        reference_type="onboarding_task",
        reference_id=task_id,
        idempotency_key=_claim_key(user_id, task_id),
    )
