"""Ticket ledger — append-mostly store of issued tickets.

A ticket is written exactly once per accepted payment.  The event name and
price are copied at purchase time so later catalog edits never rewrite a sold
ticket.
"""
import logging
import secrets
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ussd_tickets.models.ticket import Ticket, TicketStatus

logger = logging.getLogger(__name__)

CODE_ATTEMPTS = 10


def generate_ticket_code() -> str:
    """Five-digit code a subscriber can read out at the gate."""
    return str(10000 + secrets.randbelow(90000))


class TicketLedger:
    """Persists and looks up tickets for one database session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def _unused_code(self) -> str:
        for _ in range(CODE_ATTEMPTS):
            code = generate_ticket_code()
            exists = self._db.query(Ticket.ticket_id).filter(Ticket.ticket_code == code).first()
            if not exists:
                return code
        raise RuntimeError("Could not allocate an unused ticket code")

    def issue(
        self,
        phone_number: str,
        event_id: str,
        event_name: str,
        price: Decimal,
        currency: str,
    ) -> Ticket:
        ticket = Ticket(
            phone_number=phone_number,
            event_id=event_id,
            event_name=event_name,
            price=price,
            currency=currency,
            ticket_code=self._unused_code(),
            status=TicketStatus.active,
        )
        self._db.add(ticket)
        self._db.commit()
        self._db.refresh(ticket)
        logger.info("Issued ticket %s for event %s to %s", ticket.ticket_code, event_id, phone_number)
        return ticket

    def tickets_for(self, phone_number: str, limit: Optional[int] = None) -> list[Ticket]:
        """Tickets held by ``phone_number``, newest first."""
        query = (
            self._db.query(Ticket)
            .filter(Ticket.phone_number == phone_number)
            .order_by(Ticket.created_at.desc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def get_by_code(self, ticket_code: str) -> Optional[Ticket]:
        return self._db.query(Ticket).filter(Ticket.ticket_code == ticket_code).first()
