"""ARQ job definitions."""

import uuid
from typing import Any

from arq import create_pool
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.core.logging import get_logger

log = get_logger(__name__)


async def _run_with_dlq(
    job_name: str,
    job_id: str | None,
    args: list[Any],
    kwargs: dict[str, Any],
    coro,
) -> None:
    """Run coroutine; on exception persist to FailedJob then re-raise."""
    try:
        await coro
    except Exception as e:
        from app.models.failed_job import FailedJob
        fid = job_id or str(uuid.uuid4())
        await FailedJob(
            job_name=job_name,
            job_id=fid,
            args=args,
            kwargs=kwargs,
            reason=str(e)[:2000],
        ).insert()
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        raise


async def run_generation_job(ctx: dict[str, Any], generation_job_id: str) -> None:
    """Call the AI gateway for a queued GenerationJob; refunds on failure."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None

    async def _run() -> None:
        from app.services.generation_jobs import run_job
        log.info("job_start", job="run_generation_job", generation_job_id=generation_job_id)
        job = await run_job(generation_job_id, gateway=ctx.get("gateway"))
        log.info("job_done", job="run_generation_job", generation_job_id=generation_job_id, status=job.status if job else None)

    await _run_with_dlq("run_generation_job", job_id, [generation_job_id], {}, _run())


async def startup(ctx: dict) -> None:
    from app.core.logging import configure_logging
    from app.db.init import init_db
    configure_logging(debug=get_settings().debug)
    await init_db()


async def shutdown(ctx: dict) -> None:
    pass


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )


async def enqueue_generation_job(generation_job_id: str) -> None:
    """Enqueue run_generation_job (call from API)."""
    redis = await create_pool(get_redis_settings())
    try:
        await redis.enqueue_job("run_generation_job", generation_job_id)
    finally:
        await redis.close()
