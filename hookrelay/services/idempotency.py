"""
Inbound webhook idempotency.

Providers re-send webhooks whenever they do not see a timely 2xx, so the
same event can arrive several times, possibly at two instances at once.
A claim is an INSERT into processed_inbound_events; the primary key on
(provider, event_id) makes exactly one concurrent claim succeed.
"""
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.logging_config import get_logger
from hookrelay.models.base import utcnow
from hookrelay.models.inbound import ProcessedInboundEvent


class IdempotencyStore:
    """Claims and garbage-collects processed inbound events."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def claim(self, provider: str, event_id: str, event_type: str) -> bool:
        """
        Atomically mark an inbound event as processed.

        Args:
            provider: Provider name (stripe, clerk, recall, flutterwave)
            event_id: Provider's unique event identifier
            event_type: Event type, kept for logging and debugging

        Returns:
            True if this is the first claim (proceed to handle),
            False if the event was already claimed (skip it)
        """
        log = get_logger(provider=provider, event_id=event_id, event_type=event_type)

        self.db.add(ProcessedInboundEvent(
            provider=provider,
            event_id=event_id,
            event_type=event_type,
        ))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            # Only a row already holding the key counts as a duplicate;
            # any other constraint failure is a real error
            if not await self.is_processed(provider, event_id):
                raise
            log.info("inbound_duplicate_skipped")
            return False

        log.debug("inbound_event_claimed")
        return True

    async def is_processed(self, provider: str, event_id: str) -> bool:
        """Read-only check, no claim side effect."""
        stmt = select(ProcessedInboundEvent.event_id).where(
            ProcessedInboundEvent.provider == provider,
            ProcessedInboundEvent.event_id == event_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def release(self, provider: str, event_id: str) -> bool:
        """
        Drop a claim so the provider's next delivery is handled again.

        Only used when the handler failed after a successful claim.

        Returns:
            True if a claim was removed
        """
        stmt = delete(ProcessedInboundEvent).where(
            ProcessedInboundEvent.provider == provider,
            ProcessedInboundEvent.event_id == event_id
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0

    async def sweep(self, older_than_days: int = 7) -> int:
        """
        Delete claims older than the retention window.

        Safe to run alongside claims: it only touches rows past the cutoff.

        Args:
            older_than_days: Retention window in days

        Returns:
            Number of rows deleted
        """
        cutoff = utcnow() - timedelta(days=older_than_days)
        stmt = delete(ProcessedInboundEvent).where(
            ProcessedInboundEvent.processed_at < cutoff
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        get_logger().info(
            "inbound_events_swept",
            deleted=result.rowcount,
            older_than_days=older_than_days
        )
        return result.rowcount
