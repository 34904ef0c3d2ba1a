"""Process-wide collaborators exposed as FastAPI dependencies.

Each getter builds its object once from settings.  Tests replace them through
``app.dependency_overrides``.
"""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ussd_tickets.config import settings
from ussd_tickets.database import get_db
from ussd_tickets.services.catalog_cache import EventCatalogCache, HttpEventSource
from ussd_tickets.services.mint_authorization import MintAuthorizer
from ussd_tickets.services.notifier import AfricasTalkingNotifier, Notifier
from ussd_tickets.services.payment_gateway import IntaSendGateway, PaymentGateway
from ussd_tickets.services.session_machine import SessionSettings, SessionStateMachine
from ussd_tickets.services.ticket_ledger import TicketLedger
from ussd_tickets.services.ticket_minter import ContractMintSubmitter, TicketMinter

logger = logging.getLogger(__name__)


@lru_cache
def get_catalog() -> EventCatalogCache:
    source = HttpEventSource(
        settings.EVENTS_API_URL,
        currency=settings.CURRENCY,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
    return EventCatalogCache(source, refresh_interval=settings.CATALOG_REFRESH_SECONDS)


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    return IntaSendGateway(
        secret_key=settings.INTASEND_SECRET_KEY,
        environment=settings.INTASEND_ENV,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )


@lru_cache
def get_notifier() -> Notifier:
    return AfricasTalkingNotifier(
        username=settings.AFRICASTALKING_USERNAME,
        api_key=settings.AFRICASTALKING_API_KEY,
        sender_id=settings.AFRICASTALKING_SENDER_ID,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )


@lru_cache
def get_mint_authorizer() -> MintAuthorizer:
    return MintAuthorizer(
        private_key=settings.MINT_SIGNER_PRIVATE_KEY,
        expected_signer=settings.MINT_SIGNER_ADDRESS,
    )


@lru_cache
def get_ticket_minter() -> Optional[TicketMinter]:
    """The chain minter, or None when on-chain minting is not configured.

    A malformed key or contract address disables minting instead of failing
    every USSD request.
    """
    if not (settings.CHAIN_RPC_URL and settings.TICKET_CONTRACT_ADDRESS and settings.MINTER_PRIVATE_KEY):
        logger.warning("CHAIN_RPC_URL, TICKET_CONTRACT_ADDRESS or MINTER_PRIVATE_KEY missing, NFT minting disabled")
        return None
    try:
        authorizer = get_mint_authorizer()
        if not authorizer.configured:
            logger.warning("Mint signer not configured, NFT minting disabled")
            return None
        submitter = ContractMintSubmitter(
            rpc_url=settings.CHAIN_RPC_URL,
            contract_address=settings.TICKET_CONTRACT_ADDRESS,
            private_key=settings.MINTER_PRIVATE_KEY,
            chain_id=settings.CHAIN_ID,
            receipt_timeout=settings.MINT_RECEIPT_TIMEOUT_SECONDS,
            request_timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    except Exception:
        logger.exception("Invalid chain or mint signer settings, NFT minting disabled")
        return None
    return TicketMinter(authorizer, submitter, recipient=settings.MINT_RECIPIENT_ADDRESS)


def get_session_machine(
    db: Session = Depends(get_db),
    catalog: EventCatalogCache = Depends(get_catalog),
    payments: PaymentGateway = Depends(get_payment_gateway),
    minter: Optional[TicketMinter] = Depends(get_ticket_minter),
) -> SessionStateMachine:
    """A fresh state machine per request, bound to that request's DB session."""
    return SessionStateMachine(
        catalog=catalog,
        payments=payments,
        ledger=TicketLedger(db),
        minter=minter,
        config=SessionSettings.from_settings(settings),
    )
