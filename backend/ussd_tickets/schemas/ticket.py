"""Pydantic schemas for Tickets."""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel


class TicketOut(BaseModel):
    ticket_id: str
    phone_number: str
    event_id: str
    event_name: str
    price: Decimal
    currency: str
    ticket_code: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
