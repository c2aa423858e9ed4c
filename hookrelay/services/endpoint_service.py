"""
Endpoint registry service.

Holds subscriber configuration and the failure-escalation state machine:

    active --(10 consecutive failures)--> failed --(reactivate)--> active
    active <--(update status)--> inactive

Counter and status transitions are single UPDATE statements so concurrent
workers never lose an increment.

SECURITY: All queries MUST include organisation_id filter.
Failure to do so will result in data leakage between tenants.
"""
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.logging_config import get_logger
from hookrelay.models.base import utcnow
from hookrelay.models.webhook import EndpointStatus, WebhookEndpoint
from hookrelay.services.signing import generate_secret


# Consecutive failed attempts before an endpoint is auto-disabled
FAILURE_THRESHOLD = 10


class EndpointService:
    """Service for managing webhook endpoints."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        org_id: str,
        name: str,
        url: str,
        events: list[str],
        headers: dict[str, str] | None = None
    ) -> WebhookEndpoint:
        """
        Register a new endpoint with a freshly generated secret.

        Args:
            org_id: Owning organisation
            name: Display name
            url: Target URL (http or https)
            events: Subscribed event types
            headers: Extra headers sent with every delivery

        Returns:
            Newly created WebhookEndpoint (secret in clear, shown once)
        """
        endpoint = WebhookEndpoint(
            organisation_id=org_id,
            name=name,
            url=url,
            secret=generate_secret(),
            events=sorted(set(events)),
            headers=headers or {},
            status=EndpointStatus.ACTIVE,
            failure_count=0
        )
        self.db.add(endpoint)
        await self.db.commit()
        await self.db.refresh(endpoint)

        get_logger(org_id=org_id, endpoint_id=endpoint.id).info(
            "endpoint_created", events=endpoint.events
        )
        return endpoint

    async def get(self, org_id: str, endpoint_id: str) -> WebhookEndpoint | None:
        """Get endpoint by ID within organisation."""
        stmt = select(WebhookEndpoint).where(
            WebhookEndpoint.id == endpoint_id,
            WebhookEndpoint.organisation_id == org_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_org(self, org_id: str) -> list[WebhookEndpoint]:
        """Get all endpoints for an organisation, newest first."""
        stmt = (
            select(WebhookEndpoint)
            .where(WebhookEndpoint.organisation_id == org_id)
            .order_by(WebhookEndpoint.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_active_for_event(self, org_id: str, event_type: str) -> list[WebhookEndpoint]:
        """
        Resolve the active endpoints of an organisation subscribed to an event.

        Args:
            org_id: Organisation UUID
            event_type: Event type string

        Returns:
            Matching endpoints (may be empty)
        """
        stmt = select(WebhookEndpoint).where(
            WebhookEndpoint.organisation_id == org_id,
            WebhookEndpoint.status == EndpointStatus.ACTIVE
        )
        result = await self.db.execute(stmt)
        # Subscriptions live in a JSON column; filter portably in Python
        return [e for e in result.scalars().all() if e.is_subscribed(event_type)]

    async def update(
        self,
        org_id: str,
        endpoint_id: str,
        name: str | None = None,
        url: str | None = None,
        events: list[str] | None = None,
        headers: dict[str, str] | None = None,
        status: EndpointStatus | None = None
    ) -> WebhookEndpoint | None:
        """
        Update endpoint properties.

        Moving to ACTIVE also zeroes the failure counter in the same
        statement, which makes it a reactivation.

        Returns:
            Updated endpoint, None if not found
        """
        values: dict[str, Any] = {}
        if name is not None:
            values["name"] = name
        if url is not None:
            values["url"] = url
        if events is not None:
            values["events"] = sorted(set(events))
        if headers is not None:
            values["headers"] = headers
        if status is not None:
            values["status"] = status
            if status == EndpointStatus.ACTIVE:
                values["failure_count"] = 0

        if values:
            stmt = (
                update(WebhookEndpoint)
                .where(
                    WebhookEndpoint.id == endpoint_id,
                    WebhookEndpoint.organisation_id == org_id
                )
                .values(**values)
            )
            result = await self.db.execute(stmt)
            await self.db.commit()
            if result.rowcount == 0:
                return None

        endpoint = await self.get(org_id, endpoint_id)
        if endpoint is not None:
            await self.db.refresh(endpoint)
        return endpoint

    async def reactivate(self, org_id: str, endpoint_id: str) -> WebhookEndpoint | None:
        """
        Bring an endpoint back to ACTIVE with a zeroed failure counter.

        This is the only way out of the auto-disabled FAILED state.
        """
        endpoint = await self.update(org_id, endpoint_id, status=EndpointStatus.ACTIVE)
        if endpoint is not None:
            get_logger(org_id=org_id, endpoint_id=endpoint_id).info("endpoint_reactivated")
        return endpoint

    async def delete(self, org_id: str, endpoint_id: str) -> bool:
        """
        Delete an endpoint.

        Returns:
            True if it existed
        """
        endpoint = await self.get(org_id, endpoint_id)
        if not endpoint:
            return False

        await self.db.delete(endpoint)
        await self.db.commit()
        return True

    async def regenerate_secret(self, org_id: str, endpoint_id: str) -> str | None:
        """
        Replace the endpoint secret.

        Returns:
            The new secret, None if the endpoint does not exist
        """
        endpoint = await self.get(org_id, endpoint_id)
        if not endpoint:
            return None

        endpoint.secret = generate_secret()
        await self.db.commit()
        return endpoint.secret

    # -- Delivery bookkeeping (caller commits) ---------------------------

    async def record_success(self, endpoint_id: str) -> None:
        """Reset the consecutive-failure counter and stamp last_triggered_at."""
        stmt = (
            update(WebhookEndpoint)
            .where(WebhookEndpoint.id == endpoint_id)
            .values(failure_count=0, last_triggered_at=utcnow())
        )
        await self.db.execute(stmt)

    async def record_failure(
        self,
        endpoint_id: str,
        threshold: int = FAILURE_THRESHOLD
    ) -> tuple[int, bool]:
        """
        Increment the failure counter and auto-disable at the threshold.

        Args:
            endpoint_id: Endpoint UUID
            threshold: Failure count at which the endpoint becomes FAILED

        Returns:
            (new failure count, whether this call disabled the endpoint)
        """
        stmt = (
            update(WebhookEndpoint)
            .where(WebhookEndpoint.id == endpoint_id)
            .values(failure_count=WebhookEndpoint.failure_count + 1)
            .returning(WebhookEndpoint.failure_count)
        )
        result = await self.db.execute(stmt)
        failure_count = result.scalar_one_or_none()
        if failure_count is None:
            return 0, False

        disabled = False
        if failure_count >= threshold:
            stmt = (
                update(WebhookEndpoint)
                .where(
                    WebhookEndpoint.id == endpoint_id,
                    WebhookEndpoint.status == EndpointStatus.ACTIVE
                )
                .values(status=EndpointStatus.FAILED)
            )
            result = await self.db.execute(stmt)
            disabled = result.rowcount > 0

        return failure_count, disabled
