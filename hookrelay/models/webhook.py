"""
Webhook models.

Outbound side of the relay: subscriber endpoints, the delivery ledger
(one row per logical delivery) and the append-only attempt log.

SECURITY: All queries MUST include organisation_id filter.
Failure to do so will result in data leakage between tenants.
"""
import enum
from datetime import datetime
from typing import Any
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Enum as SQLEnum,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column
from hookrelay.models.base import Base, TimestampMixin, new_id
# Registers the organisations table the foreign keys below point at
from hookrelay.models.organisation import Organisation  # noqa: F401


class WebhookEvent(str, enum.Enum):
    """Domain events customers can subscribe to."""
    MEETING_SCHEDULED = "meeting.scheduled"
    MEETING_STARTED = "meeting.started"
    MEETING_ENDED = "meeting.ended"
    MEETING_COMPLETED = "meeting.completed"
    MEETING_FAILED = "meeting.failed"
    TRANSCRIPT_READY = "transcript.ready"
    SUMMARY_READY = "summary.ready"
    ACTION_ITEMS_EXTRACTED = "action_items.extracted"


WEBHOOK_EVENTS = [e.value for e in WebhookEvent]

# Sent by the "send test delivery" action; never published to subscribers.
TEST_EVENT = "webhook.test"


def _enum_values(enum_cls) -> list[str]:
    # Persist "active", not "ACTIVE"
    return [member.value for member in enum_cls]


class EndpointStatus(str, enum.Enum):
    """Endpoint status enum."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    FAILED = "failed"  # auto-disabled, needs reactivation


class DeliveryStatus(str, enum.Enum):
    """Delivery status enum."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class WebhookEndpoint(Base, TimestampMixin):
    """
    Customer-registered HTTP destination.

    failure_count counts consecutive failed attempts across all deliveries
    and is only written through single UPDATE statements.
    """
    __tablename__ = "webhook_endpoints"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organisation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organisations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    secret: Mapped[str] = mapped_column(String(128), nullable=False)
    events: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    headers: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[EndpointStatus] = mapped_column(
        SQLEnum(EndpointStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=EndpointStatus.ACTIVE
    )
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_triggered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def is_subscribed(self, event_type: str) -> bool:
        return event_type in (self.events or [])

    def __repr__(self):
        return f"<WebhookEndpoint(id={self.id}, url={self.url}, status={self.status})>"


class WebhookDelivery(Base, TimestampMixin):
    """
    Ledger row for one logical delivery (one event occurrence to one endpoint).

    The id is generated once at publish time and carried by every retry job,
    so retries update this row instead of creating new ones.
    """
    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        Index("ix_webhook_deliveries_endpoint_created", "endpoint_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    endpoint_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("webhook_endpoints.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organisation_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    event: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[DeliveryStatus] = mapped_column(
        SQLEnum(DeliveryStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False,
        default=DeliveryStatus.PENDING
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    response_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self):
        return f"<WebhookDelivery(id={self.id}, event={self.event}, status={self.status}, attempts={self.attempts})>"


class WebhookDeliveryAttempt(Base):
    """Append-only record of a single try. Never updated."""
    __tablename__ = "webhook_delivery_attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    delivery_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("webhook_deliveries.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    response_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
