"""
Delivery ledger.

One WebhookDelivery row per logical delivery, updated in place by every
attempt, plus one WebhookDeliveryAttempt row per try for the audit trail.
"""
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.models.base import utcnow
from hookrelay.models.webhook import (
    DeliveryStatus,
    WebhookDelivery,
    WebhookDeliveryAttempt,
)
from hookrelay.services.webhook_service import (
    MAX_RETRY_ATTEMPTS,
    DeliveryResult,
    truncate,
)


MAX_HISTORY_LIMIT = 100


def delivery_status(result: DeliveryResult, attempt: int) -> DeliveryStatus:
    """Ledger status after an attempt: terminal only on success or exhaustion."""
    if result.success:
        return DeliveryStatus.SUCCESS
    if attempt >= MAX_RETRY_ATTEMPTS:
        return DeliveryStatus.FAILED
    return DeliveryStatus.PENDING


class DeliveryLedger:
    """Reads and writes delivery history. record() leaves the commit to the caller."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        delivery_id: str,
        endpoint_id: str,
        organisation_id: str,
        event: str,
        payload: dict[str, Any],
        result: DeliveryResult,
        attempt: int
    ) -> WebhookDelivery:
        """
        Upsert the ledger row of a delivery and append the attempt.

        Args:
            delivery_id: Stable delivery UUID carried by every retry
            endpoint_id: Target endpoint
            organisation_id: Owning organisation
            event: Event type
            payload: Event data snapshot
            result: Outcome of this attempt
            attempt: 1-based attempt number

        Returns:
            The ledger row (flushed, not committed)
        """
        now = utcnow()
        delivery = await self.db.get(WebhookDelivery, delivery_id)
        if delivery is None:
            delivery = WebhookDelivery(
                id=delivery_id,
                endpoint_id=endpoint_id,
                organisation_id=organisation_id,
                event=event,
                payload=payload,
                attempts=0,
            )
            self.db.add(delivery)

        delivery.status = delivery_status(result, attempt)
        delivery.attempts = max(delivery.attempts or 0, attempt)
        delivery.last_attempt_at = now
        delivery.response_status = result.status_code
        delivery.response_body = truncate(result.response_body)
        delivery.error = result.error
        # Ledger row must exist before the attempt row referencing it
        await self.db.flush()

        self.db.add(WebhookDeliveryAttempt(
            delivery_id=delivery_id,
            attempt=attempt,
            success=result.success,
            response_status=result.status_code,
            response_body=truncate(result.response_body),
            error=result.error,
            duration_ms=result.duration_ms,
            created_at=now,
        ))
        await self.db.flush()
        return delivery

    async def get(self, org_id: str, delivery_id: str) -> WebhookDelivery | None:
        """Get a delivery by ID within organisation."""
        stmt = select(WebhookDelivery).where(
            WebhookDelivery.id == delivery_id,
            WebhookDelivery.organisation_id == org_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_endpoint(
        self,
        org_id: str,
        endpoint_id: str,
        limit: int = 50
    ) -> list[WebhookDelivery]:
        """
        Delivery history for an endpoint, most recent first.

        Args:
            org_id: Organisation UUID
            endpoint_id: Endpoint UUID
            limit: Maximum rows, capped at 100

        Returns:
            List of deliveries
        """
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        stmt = (
            select(WebhookDelivery)
            .where(
                WebhookDelivery.endpoint_id == endpoint_id,
                WebhookDelivery.organisation_id == org_id
            )
            .order_by(WebhookDelivery.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def attempts_for(self, delivery_id: str) -> list[WebhookDeliveryAttempt]:
        """Every attempt of a delivery in order."""
        stmt = (
            select(WebhookDeliveryAttempt)
            .where(WebhookDeliveryAttempt.delivery_id == delivery_id)
            .order_by(WebhookDeliveryAttempt.attempt, WebhookDeliveryAttempt.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
