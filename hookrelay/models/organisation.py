"""
Organisation model.

Tenant that owns webhook endpoints and their delivery history.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column
from hookrelay.models.base import Base, TimestampMixin, new_id


class Organisation(Base, TimestampMixin):
    """
    Organisation model representing a tenant in the system.

    Endpoints and deliveries are always queried through their organisation.
    """
    __tablename__ = "organisations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    def __repr__(self):
        return f"<Organisation(id={self.id}, name={self.name}, domain={self.domain})>"
