"""USSD session state machine.

The telecom gateway keeps no session object: every request carries the whole
path dialed so far (``"1*2*1"``).  The machine is therefore a pure function of
``(phone number, path, catalog, ledger)``; nothing about a session is kept in
memory between requests.

The menu is a tree addressed by depth.  The first step picks a branch, deeper
steps are read relative to it.  A ``0`` step means "back one level" and is
resolved before dispatch, so ``1*2*0`` lands on exactly the same screen as
``1``; a ``0`` with nowhere to go back to is Exit.

Only one leaf has side effects: ``1*<ordinal>*1`` (pay).  It re-validates the
ordinal against a freshly refreshed catalog, charges, writes the ticket and
then tries to mint.  The mint runs inside its own error boundary.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ussd_tickets.services import menus
from ussd_tickets.services.catalog_cache import CatalogEvent, CatalogSnapshot, EventCatalogCache
from ussd_tickets.services.payment_gateway import (
    PaymentGateway,
    PaymentRequest,
    PaymentResult,
    payment_reference,
)
from ussd_tickets.services.ticket_ledger import TicketLedger
from ussd_tickets.services.ticket_minter import TicketMinter

logger = logging.getLogger(__name__)

STEP_SEPARATOR = "*"
BACK = "0"

# Top-level branches
BUY = "1"
MY_TICKETS = "2"
WALLET = "3"
EVENTS_NEAR_ME = "4"
SUPPORT = "5"

PAY_WITH_MPESA = "1"


class MalformedPathError(ValueError):
    """A path step is empty or not a number."""


@dataclass(frozen=True)
class MenuPosition:
    """Where a dialed path lands once back-steps are applied."""

    steps: tuple[str, ...] = ()
    exited: bool = False


def resolve_path(text: str) -> MenuPosition:
    """Apply back-navigation to a raw gateway path.

    Raises:
        MalformedPathError: for empty or non-numeric steps.
    """
    text = (text or "").strip()
    if not text:
        return MenuPosition()

    stack: list[str] = []
    for raw in text.split(STEP_SEPARATOR):
        step = raw.strip()
        if not (step.isascii() and step.isdigit()):
            raise MalformedPathError(f"bad step {raw!r}")
        step = str(int(step))
        if step == BACK:
            if not stack:
                return MenuPosition(exited=True)
            stack.pop()
        else:
            stack.append(step)
    return MenuPosition(steps=tuple(stack))


@dataclass(frozen=True)
class SessionSettings:
    app_name: str = "AVARA"
    max_menu_events: int = 10
    max_listed_tickets: int = 5
    local_timezone: str = "Africa/Nairobi"
    currency: str = "KES"
    deposit_paybill: str = "412345"
    reference_bucket_seconds: int = 120

    @classmethod
    def from_settings(cls, settings) -> "SessionSettings":
        return cls(
            app_name=settings.APP_NAME,
            max_menu_events=settings.MAX_MENU_EVENTS,
            max_listed_tickets=settings.MAX_LISTED_TICKETS,
            local_timezone=settings.LOCAL_TIMEZONE,
            currency=settings.CURRENCY,
            deposit_paybill=settings.DEPOSIT_PAYBILL,
            reference_bucket_seconds=settings.PAYMENT_REFERENCE_BUCKET_SECONDS,
        )


class SessionStateMachine:
    """Turns ``(phone number, dialed path)`` into the next USSD screen."""

    def __init__(
        self,
        catalog: EventCatalogCache,
        payments: PaymentGateway,
        ledger: TicketLedger,
        minter: Optional[TicketMinter] = None,
        config: Optional[SessionSettings] = None,
    ) -> None:
        self._catalog = catalog
        self._payments = payments
        self._ledger = ledger
        self._minter = minter
        self._config = config or SessionSettings()
        self._branches: dict[str, Callable[[str, tuple[str, ...]], str]] = {
            BUY: self._buy,
            MY_TICKETS: self._my_tickets,
            WALLET: self._wallet,
            EVENTS_NEAR_ME: self._events_near_me,
            SUPPORT: self._support,
        }

    def handle(self, phone_number: str, text: str) -> str:
        """Render the screen for ``text``.  Always returns ``CON``/``END`` text."""
        try:
            return self._dispatch(phone_number, text)
        except Exception:
            logger.exception("USSD session error for %s (path %r)", phone_number, text)
            return menus.SYSTEM_ERROR

    def _dispatch(self, phone_number: str, text: str) -> str:
        if not phone_number:
            return menus.MISSING_PHONE
        try:
            position = resolve_path(text)
        except MalformedPathError as exc:
            logger.info("Rejected path %r from %s: %s", text, phone_number, exc)
            return menus.INVALID_OPTION

        if position.exited:
            return menus.goodbye(self._config.app_name)
        if not position.steps:
            return menus.main_menu(self._config.app_name)

        branch = self._branches.get(position.steps[0])
        if branch is None:
            return menus.INVALID_OPTION
        return branch(phone_number, position.steps[1:])

    # ── 1. Buy Ticket ──────────────────────────────────────────────
    def _shown_events(self, snapshot: CatalogSnapshot) -> tuple[CatalogEvent, ...]:
        return snapshot.events[: self._config.max_menu_events]

    def _shown_event(self, snapshot: CatalogSnapshot, step: str) -> Optional[CatalogEvent]:
        """Resolve an ordinal, but only among the events the menu offered."""
        ordinal = int(step)
        if ordinal > self._config.max_menu_events:
            return None
        return snapshot.resolve(ordinal)

    def _buy(self, phone_number: str, rest: tuple[str, ...]) -> str:
        if not rest:
            events = self._shown_events(self._catalog.refresh())
            return menus.event_list(events) if events else menus.NO_EVENTS

        if len(rest) == 1:
            event = self._shown_event(self._catalog.refresh(), rest[0])
            return menus.event_detail(event) if event else menus.INVALID_OPTION

        if len(rest) == 2 and rest[1] == PAY_WITH_MPESA:
            return self._purchase(phone_number, rest[0])

        return menus.INVALID_OPTION

    def _purchase(self, phone_number: str, ordinal_step: str) -> str:
        # The ordinal was resolved against an earlier snapshot; check it again.
        event = self._shown_event(self._catalog.refresh(), ordinal_step)
        if event is None:
            logger.info("Ordinal %s no longer resolves for %s", ordinal_step, phone_number)
            return menus.INVALID_OPTION

        request = PaymentRequest(
            phone_number=phone_number,
            amount=event.price,
            currency=event.currency,
            reference=payment_reference(
                phone_number, event.event_id, self._config.reference_bucket_seconds
            ),
            narrative=f"Ticket: {event.name}",
        )
        result = self._initiate_payment(request)
        if not result.success:
            logger.warning(
                "Payment declined for %s on event %s: %s",
                phone_number, event.event_id, result.reason,
            )
            return menus.PAYMENT_FAILED

        ticket = self._ledger.issue(
            phone_number=phone_number,
            event_id=event.event_id,
            event_name=event.name,
            price=event.price,
            currency=event.currency,
        )
        tx_hash = self._mint_best_effort(ticket.ticket_code, event.event_id)
        return menus.purchase_success(ticket.ticket_code, event.name, minted=tx_hash is not None)

    def _initiate_payment(self, request: PaymentRequest) -> PaymentResult:
        try:
            return self._payments.initiate(request)
        except Exception:
            logger.exception("Payment adapter raised for reference %s", request.reference)
            return PaymentResult.declined("Payment adapter error")

    def _mint_best_effort(self, ticket_code: str, event_id: str) -> Optional[str]:
        """Mint the ticket NFT; None when minting is off or anything fails."""
        if self._minter is None:
            return None
        try:
            return self._minter.mint(ticket_code, event_id)
        except Exception:
            logger.exception("Failed to mint NFT for ticket %s; ticket stands without it", ticket_code)
            return None

    # ── 2. My Tickets ──────────────────────────────────────────────
    def _my_tickets(self, phone_number: str, rest: tuple[str, ...]) -> str:
        if rest:
            return menus.INVALID_OPTION
        tickets = self._ledger.tickets_for(phone_number, limit=self._config.max_listed_tickets)
        if not tickets:
            return menus.NO_TICKETS
        return menus.ticket_list(tickets, self._config.local_timezone)

    # ── 3. Wallet ──────────────────────────────────────────────────
    def _wallet(self, phone_number: str, rest: tuple[str, ...]) -> str:
        if not rest:
            return menus.WALLET_MENU
        if len(rest) > 1:
            return menus.INVALID_OPTION
        screens = {
            "1": menus.wallet_balance(self._config.currency),
            "2": menus.deposit_instructions(self._config.deposit_paybill),
            "3": menus.WITHDRAWAL_SENT,
        }
        return screens.get(rest[0], menus.INVALID_OPTION)

    # ── 4. Events Near Me ──────────────────────────────────────────
    def _events_near_me(self, phone_number: str, rest: tuple[str, ...]) -> str:
        if len(rest) > 1:
            return menus.INVALID_OPTION

        snapshot = self._catalog.refresh()
        venues = snapshot.venues()[: self._config.max_menu_events]
        if not rest:
            return menus.venue_list(venues) if venues else menus.NO_VENUES

        index = int(rest[0])
        if not 1 <= index <= len(venues):
            return menus.INVALID_LOCATION
        venue = venues[index - 1]
        return menus.events_at_venue(venue, snapshot.events_at(venue))

    # ── 5. Support ─────────────────────────────────────────────────
    def _support(self, phone_number: str, rest: tuple[str, ...]) -> str:
        if not rest:
            return menus.SUPPORT_MENU
        if len(rest) > 1:
            return menus.INVALID_OPTION
        if rest[0] == "1":
            logger.info("Call-back requested by %s", phone_number)
            return menus.CALLBACK_REQUESTED
        if rest[0] == "2":
            logger.info("Issue reported by %s", phone_number)
            return menus.ISSUE_REPORTED
        return menus.INVALID_OPTION
