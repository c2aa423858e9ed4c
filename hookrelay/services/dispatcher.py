"""
Webhook dispatcher.

Fans a domain event out to one delivery job per subscribed endpoint and
schedules backoff retries. Jobs are only enqueued here; delivery happens
in the worker.
"""
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hookrelay.logging_config import get_logger
from hookrelay.models.webhook import WebhookEvent
from hookrelay.routes.metrics import track_retry_scheduled, track_webhook_published
from hookrelay.services.endpoint_service import EndpointService
from hookrelay.services.job_queue import DeliveryJob, JobQueue
from hookrelay.services.webhook_service import MAX_RETRY_ATTEMPTS, get_retry_delay


class WebhookDispatcher:
    """
    Publishes events to subscriber endpoints through a job queue.

    Example:
        dispatcher = WebhookDispatcher(ArqJobQueue(redis), AsyncSessionLocal)
        await dispatcher.publish(org_id, "meeting.ended", {"meeting_id": mid})
    """

    def __init__(self, queue: JobQueue, session_factory: async_sessionmaker[AsyncSession]):
        self.queue = queue
        self.session_factory = session_factory

    async def publish(self, organisation_id: str, event_type: str, data: dict[str, Any]) -> int:
        """
        Enqueue one delivery job per active endpoint subscribed to the event.

        Args:
            organisation_id: Organisation the event belongs to
            event_type: One of WebhookEvent
            data: Event data, snapshotted into each job

        Returns:
            Number of jobs enqueued (0 when nobody is subscribed)

        Raises:
            ValueError: If event_type is not a known event
        """
        event = WebhookEvent(event_type)
        log = get_logger(org_id=organisation_id, event_type=event.value)

        async with self.session_factory() as db:
            endpoints = await EndpointService(db).get_active_for_event(organisation_id, event.value)

        if not endpoints:
            log.debug("no_subscribed_endpoints")
            return 0

        for endpoint in endpoints:
            job = DeliveryJob(
                delivery_id=str(uuid.uuid4()),
                endpoint_id=endpoint.id,
                organisation_id=organisation_id,
                event_type=event.value,
                payload=data,
                attempt=1,
            )
            await self.queue.enqueue(job)

        track_webhook_published(organisation_id, event.value, len(endpoints))
        log.info("event_published", deliveries_scheduled=len(endpoints))
        return len(endpoints)

    async def schedule_retry(
        self,
        endpoint_id: str,
        organisation_id: str,
        event_type: str,
        payload: dict[str, Any],
        attempt: int,
        delivery_id: str | None = None
    ) -> bool:
        """
        Enqueue the next attempt of a failed delivery after a backoff delay.

        Args:
            endpoint_id: Endpoint UUID
            organisation_id: Organisation UUID
            event_type: Event type string
            payload: Event data of the original publish
            attempt: Attempt number that just failed
            delivery_id: Delivery to continue (keeps the same ledger row)

        Returns:
            True if a retry was enqueued, False once attempts are exhausted
        """
        if attempt >= MAX_RETRY_ATTEMPTS:
            return False

        delay_ms = get_retry_delay(attempt)
        job = DeliveryJob(
            delivery_id=delivery_id or str(uuid.uuid4()),
            endpoint_id=endpoint_id,
            organisation_id=organisation_id,
            event_type=event_type,
            payload=payload,
            attempt=attempt + 1,
        )
        await self.queue.enqueue(job, delay_ms=delay_ms)

        track_retry_scheduled(organisation_id)
        get_logger(
            org_id=organisation_id,
            endpoint_id=endpoint_id,
            delivery_id=job.delivery_id
        ).info("retry_scheduled", next_attempt=job.attempt, delay_ms=delay_ms)
        return True
