"""
ARQ background worker for HookRelay.

Runs webhook delivery jobs and the daily inbound idempotency sweep.

    arq hookrelay.worker.WorkerSettings
"""
import httpx
from arq import cron
from arq.connections import RedisSettings

from hookrelay.config import settings
from hookrelay.database import AsyncSessionLocal
from hookrelay.logging_config import configure_logging, get_logger, logger
from hookrelay.sentry_config import capture_exception, configure_sentry
from hookrelay.services.delivery_worker import DeliveryWorker
from hookrelay.services.dispatcher import WebhookDispatcher
from hookrelay.services.idempotency import IdempotencyStore
from hookrelay.services.job_queue import ArqJobQueue, DeliveryJob


async def startup(ctx: dict):
    """Build the delivery pipeline once per worker process."""
    configure_logging()
    configure_sentry()

    http_client = httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    dispatcher = WebhookDispatcher(ArqJobQueue(ctx["redis"]), AsyncSessionLocal)

    ctx["http_client"] = http_client
    ctx["delivery_worker"] = DeliveryWorker(AsyncSessionLocal, dispatcher, http_client)
    logger.info("worker_started", concurrency=settings.WEBHOOK_WORKER_CONCURRENCY)


async def shutdown(ctx: dict):
    http_client = ctx.get("http_client")
    if http_client is not None:
        await http_client.aclose()
    logger.info("worker_stopped")


async def deliver_webhook(ctx: dict, job: dict) -> str:
    """
    Run one delivery attempt.

    Delivery failures are handled by the DeliveryWorker (ledger, retry
    job, auto-disable) and never raise. Anything that does raise here is
    unexpected: it goes to Sentry and fails the ARQ job.
    """
    delivery_job = DeliveryJob.model_validate(job)
    try:
        outcome = await ctx["delivery_worker"].process(delivery_job)
    except Exception:
        get_logger(
            delivery_id=delivery_job.delivery_id,
            endpoint_id=delivery_job.endpoint_id,
            attempt=delivery_job.attempt,
        ).exception("delivery_job_crashed")
        capture_exception()
        raise

    return outcome.value


async def sweep_processed_events(ctx: dict) -> int:
    """Delete inbound idempotency rows older than the retention window."""
    async with AsyncSessionLocal() as db:
        return await IdempotencyStore(db).sweep(
            older_than_days=settings.INBOUND_EVENT_RETENTION_DAYS
        )


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq hookrelay.worker.WorkerSettings'"""
    functions = [deliver_webhook]
    cron_jobs = [
        cron(sweep_processed_events, hour=3, minute=0),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    max_jobs = settings.WEBHOOK_WORKER_CONCURRENCY
    # Deliveries retry through new deferred jobs, not ARQ re-runs
    max_tries = 1
    # HTTP timeout plus database bookkeeping
    job_timeout = int(settings.WEBHOOK_TIMEOUT_SECONDS) + 30
