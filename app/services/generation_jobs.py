"""Background generation: reserve credits now, run the gateway call in the worker, refund on failure."""

from datetime import datetime
from typing import Any, Awaitable, Callable

from beanie import PydanticObjectId

from app.core.exceptions import GatewayFailureError, NotFoundError
from app.core.ids import parse_object_id
from app.core.logging import get_logger
from app.models.generation_job import GenerationJob
from app.services import credits as credits_service
from app.services.generation import GenerationGateway

log = get_logger(__name__)


async def submit_job(
    user_id: str,
    action: str,
    cost: int,
    payload: dict[str, Any],
    enqueue: Callable[[str], Awaitable[None]],
) -> GenerationJob:
    """
    Debit first (InsufficientBalanceError surfaces here, nothing queued), then persist and enqueue.
    If persisting or enqueueing fails the reservation is refunded before the error propagates.
    """
    job = GenerationJob(id=PydanticObjectId(), user_id=user_id, action=action, cost=cost, payload=payload)
    entry, _ = await credits_service.debit(
        user_id,
        cost,
        "generation",
        reference_type=action,
        reference_id=str(job.id),
        idempotency_key=f"debit:{job.id}",
    )
    job.exempt = entry is None
    try:
        await job.insert()
        await enqueue(str(job.id))
    except Exception:
        log.exception("generation_job_submit_failed", job_id=str(job.id), user_id=user_id)
        if entry is not None:
            await credits_service.refund(user_id, cost, str(job.id), reference_type=action)
        raise
    log.info("generation_job_submitted", job_id=str(job.id), user_id=user_id, action=action, cost=cost)
    return job


async def get_job(job_id: str, user_id: str) -> GenerationJob:
    job = await GenerationJob.get(parse_object_id(job_id, "Job"))
    if not job or job.user_id != user_id:
        raise NotFoundError("Job not found")
    return job


async def run_job(job_id: str, gateway: GenerationGateway | None = None) -> GenerationJob | None:
    """Worker side: resume the paid-action graph at the gateway call with credits already reserved."""
    from app.workflows.paid_action import run_paid_action

    job = await GenerationJob.get(PydanticObjectId(job_id))
    if not job or job.status != "pending":
        return job
    job.status = "running"
    job.updated_at = datetime.utcnow()
    await job.save()
    try:
        outcome = await run_paid_action(
            job.user_id,
            job.action,
            job.cost,
            job.payload,
            gateway=gateway,
            attempt_id=str(job.id),
            reserved=True,
            debited=not job.exempt,
        )
    except GatewayFailureError as e:
        job.status = "failed"
        job.error = e.details.get("reason", e.message)
        job.refunded = bool(e.details.get("refunded"))
        job.updated_at = datetime.utcnow()
        await job.save()
        return job
    except Exception as e:
        # refund itself failed: leave a trace on the job, then let the worker dead-letter it
        job.status = "failed"
        job.error = f"refund failed: {e}"
        job.updated_at = datetime.utcnow()
        await job.save()
        raise
    job.status = "succeeded"
    job.result = outcome["result"]
    job.updated_at = datetime.utcnow()
    await job.save()
    return job
