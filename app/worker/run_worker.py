"""Run ARQ worker. Usage: python -m app.worker.run_worker"""

import asyncio

from arq import run_worker

from app.worker.tasks import get_redis_settings, run_generation_job, shutdown, startup


class WorkerSettings:
    functions = [run_generation_job]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()
    max_tries = 1  # credits are refunded on failure; a retry would re-run without a reservation


def main() -> None:
    asyncio.set_event_loop(asyncio.new_event_loop())
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
