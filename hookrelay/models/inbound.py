"""
Processed inbound event model.

Idempotency table for webhooks received from third-party providers.
Process-wide: provider event ids are globally unique per provider, so
there is no organisation scoping here.
"""
from datetime import datetime
from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from hookrelay.models.base import Base, utcnow


class ProcessedInboundEvent(Base):
    """
    One row per (provider, event_id) that has been claimed for handling.

    The composite primary key is the only concurrency primitive: a second
    INSERT for the same pair fails with an integrity error.
    """
    __tablename__ = "processed_inbound_events"

    provider: Mapped[str] = mapped_column(String(32), primary_key=True)
    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(128), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True
    )

    def __repr__(self):
        return f"<ProcessedInboundEvent(provider={self.provider}, event_id={self.event_id})>"
