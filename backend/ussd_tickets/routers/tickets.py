"""Ticket lookup routes (read-only; tickets are only created by the USSD flow)."""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ussd_tickets.database import get_db
from ussd_tickets.schemas.ticket import TicketOut
from ussd_tickets.services.ticket_ledger import TicketLedger

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[TicketOut])
def list_tickets(
    phone_number: str = Query(..., description="Subscriber MSISDN, e.g. +254712345678"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Tickets held by a subscriber, newest first."""
    return TicketLedger(db).tickets_for(phone_number, limit=limit)


@router.get("/{ticket_code}", response_model=TicketOut)
def get_ticket(ticket_code: str, db: Session = Depends(get_db)):
    """Look a ticket up by the code the subscriber received."""
    ticket = TicketLedger(db).get_by_code(ticket_code)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket
