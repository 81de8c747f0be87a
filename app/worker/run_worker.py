"""Run ARQ worker. Usage: python -m app.worker.run_worker"""

from arq import run_worker
from arq.cron import cron

from app.worker.tasks import expire_credits, get_redis_settings, shutdown, startup


class WorkerSettings:
    """Also usable as ``arq app.worker.run_worker.WorkerSettings``."""

    redis_settings = get_redis_settings()
    worker_name = "dontskip_credits_worker"
    functions = [expire_credits]  # enqueue "expire_credits" for a manual sweep
    cron_jobs = [
        # hourly at :00; unique so only one worker instance runs each tick
        cron(expire_credits, minute=0, second=0, unique=True, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown


def main():
    # run_worker is synchronous and owns the event loop
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
