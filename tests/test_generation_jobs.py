"""Background generation: reserve at submit, refund if the worker's call fails."""

import httpx
import pytest

from app.core.exceptions import InsufficientBalanceError
from app.models.failed_job import FailedJob
from app.models.generation_job import GenerationJob
from app.services import credits as credits_service
from app.services import generation_jobs
from app.worker.tasks import run_generation_job

pytestmark = pytest.mark.asyncio


async def test_submit_debits_and_enqueues(db, enqueued):
    await credits_service.credit("athlete", 10, "admin_grant")

    async def enqueue(job_id):
        enqueued.append(job_id)

    job = await generation_jobs.submit_job("athlete", "program", 10, {"weeks": 4}, enqueue)
    assert enqueued == [str(job.id)]
    assert job.status == "pending"
    assert await credits_service.get_balance("athlete") == 0


async def test_submit_insufficient_queues_nothing(db, enqueued):
    async def enqueue(job_id):
        enqueued.append(job_id)

    with pytest.raises(InsufficientBalanceError):
        await generation_jobs.submit_job("broke", "program", 10, {}, enqueue)
    assert enqueued == []
    assert await GenerationJob.count() == 0


async def test_enqueue_failure_refunds(db):
    await credits_service.credit("athlete", 10, "admin_grant")

    async def enqueue(job_id):
        raise ConnectionError("redis down")

    with pytest.raises(ConnectionError):
        await generation_jobs.submit_job("athlete", "program", 10, {}, enqueue)
    assert await credits_service.get_balance("athlete") == 10


async def _submitted(cost=5):
    await credits_service.credit("athlete", cost, "admin_grant")

    async def enqueue(job_id):
        return None

    return await generation_jobs.submit_job("athlete", "workout", cost, {"goal": "power"}, enqueue)


async def test_worker_success_stores_result(db, gateway_stub):
    job = await _submitted()
    gateway_stub.respond({"artifact": {"name": "Power day"}})
    done = await generation_jobs.run_job(str(job.id), gateway=gateway_stub.gateway())
    assert done.status == "succeeded"
    assert done.result == {"name": "Power day"}
    assert await credits_service.get_balance("athlete") == 0
    # credits were reserved at submit; the worker does not debit again
    assert len(gateway_stub.calls) == 1


async def test_worker_failure_refunds(db, gateway_stub):
    job = await _submitted()
    gateway_stub.respond(httpx.ReadTimeout("timed out"))
    done = await generation_jobs.run_job(str(job.id), gateway=gateway_stub.gateway())
    assert done.status == "failed"
    assert done.refunded is True
    assert "timed out" in done.error
    assert await credits_service.get_balance("athlete") == 5


async def test_worker_skips_finished_job(db, gateway_stub):
    job = await _submitted()
    await generation_jobs.run_job(str(job.id), gateway=gateway_stub.gateway())
    again = await generation_jobs.run_job(str(job.id), gateway=gateway_stub.gateway())
    assert again.status == "succeeded"
    assert len(gateway_stub.calls) == 1


async def test_task_dead_letters_when_refund_fails(db, gateway_stub, monkeypatch):
    job = await _submitted()
    gateway_stub.respond(httpx.ReadTimeout("timed out"))

    async def broken_credit(*args, **kwargs):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(credits_service, "credit", broken_credit)
    with pytest.raises(RuntimeError):
        await run_generation_job({"job_id": "arq-1", "gateway": gateway_stub.gateway()}, str(job.id))
    failed = await FailedJob.find_one(FailedJob.job_id == "arq-1")
    assert failed.job_name == "run_generation_job"
    stored = await GenerationJob.get(job.id)
    assert stored.status == "failed"
    assert stored.error.startswith("refund failed")
