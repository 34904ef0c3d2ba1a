"""Pytest fixtures — SQLite database and stubbed collaborators for fast, isolated tests."""
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from ussd_tickets.database import Base, get_db
from ussd_tickets.dependencies import (
    get_catalog,
    get_mint_authorizer,
    get_notifier,
    get_payment_gateway,
    get_ticket_minter,
)
from ussd_tickets.errors import CatalogFetchError, MintSubmissionError
from ussd_tickets.main import app
from ussd_tickets.services.catalog_cache import CatalogEvent, EventCatalogCache, EventSource
from ussd_tickets.services.mint_authorization import MintAuthorizer
from ussd_tickets.services.notifier import Notifier
from ussd_tickets.services.payment_gateway import PaymentGateway, PaymentRequest, PaymentResult
from ussd_tickets.services.session_machine import SessionStateMachine
from ussd_tickets.services.ticket_ledger import TicketLedger

# Import all models so they register with Base.metadata
from ussd_tickets.models.ticket import Ticket  # noqa: F401

SQLITE_URL = "sqlite:///./test.db"

# Well-known development keys (Hardhat accounts #0 and #1) — never fund these.
SIGNER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
SIGNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
RECIPIENT_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

PHONE = "+254712345678"


# ---------------------------------------------------------------------------
# Fakes for external collaborators
# ---------------------------------------------------------------------------
def make_event(event_id: str, name: str, price: str = "500", venue: Optional[str] = "KICC") -> CatalogEvent:
    return CatalogEvent(event_id=event_id, name=name, price=Decimal(price), currency="KES", venue=venue)


class FakeEventSource(EventSource):
    """Serves a settable event list; can be told to fail."""

    def __init__(self, events: list[CatalogEvent]) -> None:
        self.events = list(events)
        self.fail = False
        self.calls = 0

    def fetch_events(self) -> list[CatalogEvent]:
        self.calls += 1
        if self.fail:
            raise CatalogFetchError("upstream down")
        return list(self.events)


class StubPaymentGateway(PaymentGateway):
    """Accepts or declines every request and records what it was asked."""

    def __init__(self, succeed: bool = True, reason: str = "Insufficient funds") -> None:
        self.succeed = succeed
        self.reason = reason
        self.requests: list[PaymentRequest] = []

    def initiate(self, request: PaymentRequest) -> PaymentResult:
        self.requests.append(request)
        if self.succeed:
            return PaymentResult.accepted(provider_reference="INV-TEST")
        return PaymentResult.declined(self.reason)


class StubMinter:
    """Stands in for TicketMinter; returns a tx hash or raises."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    def mint(self, ticket_code: str, event_id: str) -> str:
        self.calls.append((ticket_code, event_id))
        if self.fail:
            raise MintSubmissionError("execution reverted")
        return "0x" + "ab" * 32


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    def send(self, phone_number: str, message: str) -> None:
        if self.fail:
            raise RuntimeError("sms gateway down")
        self.sent.append((phone_number, message))


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session, closed after the test."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
@pytest.fixture
def event_source():
    return FakeEventSource([
        make_event("1", "Jazz Night", "500", "KICC"),
        make_event("2", "Tech Summit", "1500", "Sarit Expo"),
        make_event("3", "Comedy Club", "750", "KICC"),
    ])


@pytest.fixture
def catalog(event_source):
    return EventCatalogCache(event_source, refresh_interval=3600)


@pytest.fixture
def payments():
    return StubPaymentGateway()


@pytest.fixture
def minter():
    return StubMinter()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def authorizer():
    return MintAuthorizer(private_key=SIGNER_KEY, expected_signer=SIGNER_ADDRESS)


@pytest.fixture
def machine(db, catalog, payments, minter):
    return SessionStateMachine(catalog=catalog, payments=payments, ledger=TicketLedger(db), minter=minter)


@pytest.fixture(scope="function")
def client(db_engine, catalog, payments, minter, notifier, authorizer):
    """FastAPI TestClient with the database and every outbound collaborator overridden."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_payment_gateway] = lambda: payments
    app.dependency_overrides[get_ticket_minter] = lambda: minter
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_mint_authorizer] = lambda: authorizer
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helper: dial a USSD path through the API, returns the response text
# ---------------------------------------------------------------------------
def dial(client: TestClient, text: str, phone: str = PHONE) -> str:
    """Helper — POST /ussd the way the gateway does and return the screen."""
    resp = client.post("/ussd", data={
        "sessionId": "ATUid_test",
        "serviceCode": "*384*123#",
        "phoneNumber": phone,
        "text": text,
    })
    assert resp.status_code == 200, resp.text
    assert resp.headers["content-type"].startswith("text/plain")
    return resp.text
