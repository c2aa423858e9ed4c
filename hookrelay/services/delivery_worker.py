"""
Delivery worker.

Runs one delivery job: re-check the endpoint, POST the signed payload,
record the outcome and either reset the endpoint, schedule a retry or
auto-disable it. Independent of ARQ so it can be driven directly.
"""
from enum import Enum

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hookrelay.logging_config import get_logger
from hookrelay.models.webhook import EndpointStatus
from hookrelay.routes.metrics import track_delivery, track_endpoint_disabled
from hookrelay.services.delivery_ledger import DeliveryLedger
from hookrelay.services.dispatcher import WebhookDispatcher
from hookrelay.services.endpoint_service import FAILURE_THRESHOLD, EndpointService
from hookrelay.services.job_queue import DeliveryJob
from hookrelay.services.webhook_service import deliver


class JobOutcome(str, Enum):
    """What a worker did with a job."""
    SKIPPED = "skipped"
    DELIVERED = "delivered"
    RETRY_SCHEDULED = "retry_scheduled"
    EXHAUSTED = "exhausted"
    ENDPOINT_DISABLED = "endpoint_disabled"


class DeliveryWorker:
    """Processes delivery jobs pulled from the queue."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: WebhookDispatcher,
        http_client: httpx.AsyncClient,
        failure_threshold: int = FAILURE_THRESHOLD
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.http_client = http_client
        self.failure_threshold = failure_threshold

    async def process(self, job: DeliveryJob) -> JobOutcome:
        """
        Execute one delivery attempt.

        Args:
            job: Delivery job taken from the queue

        Returns:
            JobOutcome describing what happened
        """
        log = get_logger(
            org_id=job.organisation_id,
            endpoint_id=job.endpoint_id,
            delivery_id=job.delivery_id,
            event_type=job.event_type,
            attempt=job.attempt,
        )

        async with self.session_factory() as db:
            endpoint = await EndpointService(db).get(job.organisation_id, job.endpoint_id)

        # Deactivated or deleted since the job was queued: drop it
        if endpoint is None:
            log.info("delivery_skipped", reason="endpoint_not_found")
            return JobOutcome.SKIPPED
        if endpoint.status != EndpointStatus.ACTIVE:
            log.info("delivery_skipped", reason="endpoint_not_active", status=endpoint.status.value)
            return JobOutcome.SKIPPED

        # No session is held while waiting on the subscriber
        result = await deliver(
            self.http_client,
            endpoint,
            job.event_type,
            job.payload,
            delivery_id=job.delivery_id,
        )

        async with self.session_factory() as db:
            endpoints = EndpointService(db)
            ledger = DeliveryLedger(db)
            delivery = await ledger.record(
                delivery_id=job.delivery_id,
                endpoint_id=endpoint.id,
                organisation_id=job.organisation_id,
                event=job.event_type,
                payload=job.payload,
                result=result,
                attempt=job.attempt,
            )

            if result.success:
                await endpoints.record_success(endpoint.id)
                await db.commit()
                track_delivery(job.organisation_id, "success")
                log.info(
                    "delivery_succeeded",
                    status_code=result.status_code,
                    duration_ms=result.duration_ms
                )
                return JobOutcome.DELIVERED

            failure_count, disabled = await endpoints.record_failure(
                endpoint.id, threshold=self.failure_threshold
            )
            await db.commit()

        track_delivery(job.organisation_id, delivery.status.value)
        log.warning(
            "delivery_failed",
            status_code=result.status_code,
            error=result.error,
            failure_count=failure_count,
            duration_ms=result.duration_ms
        )

        if disabled:
            track_endpoint_disabled(job.organisation_id)
            log.warning("endpoint_auto_disabled", failure_count=failure_count)
            return JobOutcome.ENDPOINT_DISABLED

        scheduled = await self.dispatcher.schedule_retry(
            endpoint_id=job.endpoint_id,
            organisation_id=job.organisation_id,
            event_type=job.event_type,
            payload=job.payload,
            attempt=job.attempt,
            delivery_id=job.delivery_id,
        )
        if not scheduled:
            log.warning("delivery_retries_exhausted")
            return JobOutcome.EXHAUSTED

        return JobOutcome.RETRY_SCHEDULED
