"""
Delivery job queue.

The dispatcher and the worker only see the JobQueue protocol; the queue
client is constructed by the caller and injected. In production it is an
ARQ pool on Redis, which owns retry timing through deferred jobs.
"""
from datetime import timedelta
from typing import Any, Protocol

from arq import ArqRedis
from pydantic import BaseModel

from hookrelay.logging_config import get_logger


# ARQ function name the worker registers for deliveries
DELIVERY_FUNCTION = "deliver_webhook"


class DeliveryJob(BaseModel):
    """Everything a worker needs to run one delivery attempt."""
    delivery_id: str
    endpoint_id: str
    organisation_id: str
    event_type: str
    payload: dict[str, Any]
    attempt: int = 1

    @property
    def job_key(self) -> str:
        """Unique per (delivery, attempt); re-enqueueing the same attempt is a no-op."""
        return f"{self.delivery_id}:{self.attempt}"


class JobQueue(Protocol):
    async def enqueue(self, job: DeliveryJob, delay_ms: int = 0) -> None:
        ...


class ArqJobQueue:
    """JobQueue backed by an ARQ Redis pool."""

    def __init__(self, redis: ArqRedis):
        self.redis = redis

    async def enqueue(self, job: DeliveryJob, delay_ms: int = 0) -> None:
        defer_by = timedelta(milliseconds=delay_ms) if delay_ms > 0 else None
        queued = await self.redis.enqueue_job(
            DELIVERY_FUNCTION,
            job.model_dump(),
            _job_id=job.job_key,
            _defer_by=defer_by,
        )
        if queued is None:
            get_logger(delivery_id=job.delivery_id, attempt=job.attempt).info(
                "delivery_job_already_queued"
            )
