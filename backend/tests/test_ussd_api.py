"""End-to-end tests for the USSD gateway callback (POST /ussd)."""
import pytest

from ussd_tickets.config import settings
from ussd_tickets.dependencies import get_mint_authorizer, get_ticket_minter
from ussd_tickets.main import app
from ussd_tickets.models.ticket import Ticket
from tests.conftest import PHONE, SIGNER_KEY, dial

MINTER_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


class TestUssdCallback:
    def test_main_menu(self, client):
        assert dial(client, "").startswith("CON Welcome to AVARA")

    def test_missing_phone_number(self, client):
        resp = client.post("/ussd", data={"text": "1"})
        assert resp.status_code == 200
        assert resp.text == "END Missing phone number"

    def test_full_purchase(self, client, db, notifier):
        assert dial(client, "1").startswith("CON Select Event:")
        assert dial(client, "1*1").startswith("CON Jazz Night")
        final = dial(client, "1*1*1")

        ticket = db.query(Ticket).one()
        assert final.startswith("END Payment initiated.")
        assert f"Your Ticket Code: {ticket.ticket_code}" in final
        assert final.endswith("NFT: Minted")

        # The terminal screen is mirrored by SMS, menus are not.
        assert len(notifier.sent) == 1
        phone, message = notifier.sent[0]
        assert phone == PHONE
        assert message == final[len("END "):]

    def test_declined_purchase(self, client, db, payments, notifier):
        payments.succeed = False
        assert dial(client, "1*1*1") == "END Payment failed. Try again."
        assert db.query(Ticket).count() == 0
        assert notifier.sent == [(PHONE, "Payment failed. Try again.")]

    def test_sms_failure_does_not_affect_response(self, client, db, notifier):
        notifier.fail = True
        final = dial(client, "1*1*1")
        assert final.startswith("END Payment initiated.")
        assert db.query(Ticket).count() == 1

    def test_my_tickets_after_purchase(self, client):
        final = dial(client, "1*2*1")
        code = final.split("Your Ticket Code: ")[1].split("\n")[0]
        listing = dial(client, "2")
        assert listing.startswith("END Your Tickets:")
        assert f"Tech Summit - {code}" in listing

    def test_invalid_option(self, client):
        assert dial(client, "7") == "END Invalid option."

    def test_back_navigation(self, client):
        assert dial(client, "1*3*0") == dial(client, "1")


class TestBrokenChainSettings:
    """Bad chain or signer settings disable minting, never the USSD menu."""

    @pytest.fixture
    def real_minter(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CHAIN_RPC_URL", "http://127.0.0.1:8545")
        monkeypatch.setattr(settings, "TICKET_CONTRACT_ADDRESS", CONTRACT)
        monkeypatch.setattr(settings, "MINTER_PRIVATE_KEY", MINTER_KEY)
        monkeypatch.setattr(settings, "MINT_SIGNER_PRIVATE_KEY", SIGNER_KEY)
        del app.dependency_overrides[get_ticket_minter]
        del app.dependency_overrides[get_mint_authorizer]
        get_ticket_minter.cache_clear()
        get_mint_authorizer.cache_clear()
        yield
        get_ticket_minter.cache_clear()
        get_mint_authorizer.cache_clear()

    @pytest.mark.parametrize(
        "name, value",
        [
            ("MINT_SIGNER_PRIVATE_KEY", "not-a-key"),
            ("MINTER_PRIVATE_KEY", "0x1234"),
            ("TICKET_CONTRACT_ADDRESS", "0xnotanaddress"),
        ],
    )
    def test_menu_still_served(self, real_minter, client, monkeypatch, name, value):
        monkeypatch.setattr(settings, name, value)
        assert get_ticket_minter() is None
        get_ticket_minter.cache_clear()

        resp = client.post("/ussd", data={"phoneNumber": PHONE, "text": ""})
        assert resp.status_code == 200
        assert resp.text.startswith("CON Welcome to AVARA")

    def test_purchase_honored_without_mint(self, real_minter, client, db, monkeypatch):
        monkeypatch.setattr(settings, "MINT_SIGNER_PRIVATE_KEY", "not-a-key")

        final = dial(client, "1*1*1")

        ticket = db.query(Ticket).one()
        assert final.startswith("END Payment initiated.")
        assert ticket.ticket_code in final
        assert "NFT" not in final
