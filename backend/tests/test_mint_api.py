"""Tests for POST /api/mint-proof and GET /api/contracts/config."""
from eth_account import Account
from eth_account.messages import encode_defunct

from ussd_tickets.dependencies import get_mint_authorizer
from ussd_tickets.main import app
from ussd_tickets.services.mint_authorization import MintAuthorizer, mint_message_hash
from tests.conftest import RECIPIENT_ADDRESS, SIGNER_ADDRESS, SIGNER_KEY


class TestMintProofEndpoint:
    def test_issues_verifiable_proof(self, client):
        resp = client.post("/api/mint-proof", json={"to": RECIPIENT_ADDRESS, "eventId": 12})
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["success"] is True
        data = body["data"]
        assert set(data) == {"timestamp", "nonce", "signature", "signerAddress", "signerMismatch"}
        assert data["signerAddress"] == SIGNER_ADDRESS
        assert data["signerMismatch"] is False
        assert isinstance(data["nonce"], str)

        message_hash = mint_message_hash(
            "MINT", 0, 12, RECIPIENT_ADDRESS, data["timestamp"], int(data["nonce"])
        )
        recovered = Account.recover_message(
            encode_defunct(primitive=message_hash), signature=data["signature"]
        )
        assert recovered == data["signerAddress"]

    def test_consecutive_proofs_have_fresh_nonces(self, client):
        payload = {"to": RECIPIENT_ADDRESS, "eventId": 1}
        a = client.post("/api/mint-proof", json=payload).json()["data"]
        b = client.post("/api/mint-proof", json=payload).json()["data"]
        assert a["nonce"] != b["nonce"]
        assert a["signature"] != b["signature"]

    def test_signer_mismatch_flagged(self, client):
        app.dependency_overrides[get_mint_authorizer] = lambda: MintAuthorizer(
            SIGNER_KEY, expected_signer=RECIPIENT_ADDRESS
        )
        resp = client.post("/api/mint-proof", json={"to": RECIPIENT_ADDRESS, "eventId": 1})
        assert resp.status_code == 200
        assert resp.json()["data"]["signerMismatch"] is True

    def test_missing_signer_key(self, client):
        app.dependency_overrides[get_mint_authorizer] = lambda: MintAuthorizer("")
        resp = client.post("/api/mint-proof", json={"to": RECIPIENT_ADDRESS, "eventId": 1})
        assert resp.status_code == 500
        assert "signature" not in resp.text

    def test_invalid_recipient(self, client):
        resp = client.post("/api/mint-proof", json={"to": "0xnothex", "eventId": 1})
        assert resp.status_code == 400

    def test_missing_fields(self, client):
        assert client.post("/api/mint-proof", json={"eventId": 1}).status_code == 422
        assert client.post("/api/mint-proof", json={"to": RECIPIENT_ADDRESS}).status_code == 422

    def test_negative_event_id(self, client):
        resp = client.post("/api/mint-proof", json={"to": RECIPIENT_ADDRESS, "eventId": -3})
        assert resp.status_code == 422


class TestContractConfig:
    def test_config(self, client):
        resp = client.get("/api/contracts/config")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert "chainId" in data
        assert "ticketContract" in data
        assert data["mintSigner"]


class TestHealth:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}
