"""USSD screen texts.

``CON`` screens keep the session open, ``END`` screens close it.  The last
option of every ``CON`` menu is ``0`` (back / cancel / exit).
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Sequence

import pytz

from ussd_tickets.models.ticket import Ticket
from ussd_tickets.services.catalog_cache import CatalogEvent

INVALID_OPTION = "END Invalid option."
INVALID_LOCATION = "END Invalid location."
MISSING_PHONE = "END Missing phone number"
NO_EVENTS = "END No events available. Please try again later."
NO_VENUES = "END No events with location data available."
NO_TICKETS = "END You have no tickets."
PAYMENT_FAILED = "END Payment failed. Try again."
SYSTEM_ERROR = "END Something went wrong. Try again."

WALLET_MENU = "CON Wallet\n1. Balance\n2. Deposit\n3. Withdraw\n0. Back"
SUPPORT_MENU = "CON Support\n1. Request Call-Back\n2. Report Issue\n0. Back"
CALLBACK_REQUESTED = "END We will call you shortly."
ISSUE_REPORTED = "END Issue reported. Thank you."
WITHDRAWAL_SENT = "END Withdrawal sent to M-Pesa"


def format_amount(amount: Decimal) -> str:
    """``500`` for whole amounts, ``499.50`` otherwise."""
    if amount == amount.to_integral_value():
        return f"{amount:.0f}"
    return f"{amount:.2f}"


def main_menu(app_name: str) -> str:
    return (
        f"CON Welcome to {app_name}\n"
        "1. Buy Ticket\n"
        "2. My Tickets\n"
        "3. Wallet\n"
        "4. Events Near Me\n"
        "5. Support\n"
        "0. Exit"
    )


def goodbye(app_name: str) -> str:
    return f"END Thank you for using {app_name}"


def event_list(events: Sequence[CatalogEvent]) -> str:
    lines = [
        f"{idx}. {ev.name} ({format_amount(ev.price)} {ev.currency})"
        for idx, ev in enumerate(events, start=1)
    ]
    return "CON Select Event:\n" + "\n".join(lines) + "\n0. Back"


def event_detail(event: CatalogEvent) -> str:
    lines = [
        f"CON {event.name}",
        f"Price: {format_amount(event.price)} {event.currency}",
        f"Venue: {event.venue or 'TBA'}",
    ]
    if event.event_date:
        lines.append(f"Date: {event.event_date}")
    lines += ["1. Pay with M-Pesa", "0. Cancel"]
    return "\n".join(lines)


def purchase_success(ticket_code: str, event_name: str, minted: bool) -> str:
    text = f"END Payment initiated.\nYour Ticket Code: {ticket_code}\nEvent: {event_name}"
    if minted:
        text += "\nNFT: Minted"
    return text


def _local_date(value: datetime, tz_name: str) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(pytz.timezone(tz_name)).strftime("%d %b")


def ticket_list(tickets: Iterable[Ticket], tz_name: str) -> str:
    lines = [
        f"{t.event_name} - {t.ticket_code} ({_local_date(t.created_at, tz_name)})"
        for t in tickets
    ]
    return "END Your Tickets:\n" + "\n".join(lines)


def wallet_balance(currency: str) -> str:
    return f"END Your balance is 0 {currency}"


def deposit_instructions(paybill: str) -> str:
    return f"END Send money to Paybill {paybill}\nAcc: Your Phone Number"


def venue_list(venues: Sequence[str]) -> str:
    lines = [f"{idx}. {venue}" for idx, venue in enumerate(venues, start=1)]
    return "CON Select Location:\n" + "\n".join(lines) + "\n0. Back"


def events_at_venue(venue: str, events: Sequence[CatalogEvent]) -> str:
    if not events:
        return f"END No events found at {venue}."
    lines = [f"{ev.name} - {format_amount(ev.price)} {ev.currency}" for ev in events]
    return f"END Events at {venue}:\n" + "\n".join(lines)
