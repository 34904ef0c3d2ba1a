"""Ticket ORM model — one row per successful payment."""
import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Numeric, Index, Enum as SAEnum
from sqlalchemy.sql import func
from ussd_tickets.database import Base


class TicketStatus(str, enum.Enum):
    active = "active"
    redeemed = "redeemed"
    cancelled = "cancelled"


class Ticket(Base):
    __tablename__ = "tickets"

    ticket_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    phone_number = Column(String(32), nullable=False)
    event_id = Column(String(64), nullable=False)
    event_name = Column(String(255), nullable=False)  # snapshot at purchase time
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="KES")
    ticket_code = Column(String(16), nullable=False, unique=True)
    status = Column(SAEnum(TicketStatus), nullable=False, default=TicketStatus.active)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_tickets_phone_number_created_at", "phone_number", "created_at"),
    )
