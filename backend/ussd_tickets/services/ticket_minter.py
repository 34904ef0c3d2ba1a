"""Best-effort NFT minting of purchased tickets.

Feature-phone subscribers have no wallet, so tickets are minted to a custodial
recipient.  The mint is authorized by a ``MintProof`` and submitted to the
ticket contract's ``mintTicketWithMantle`` entry point.

Everything here may raise; the purchase flow wraps ``TicketMinter.mint`` in its
own error boundary because a payment that was already taken must never be
undone by a chain failure.
"""
import logging
from typing import Optional

from web3 import Web3

from ussd_tickets.errors import MintSubmissionError
from ussd_tickets.services.mint_authorization import MintAuthorizer, MintProof

logger = logging.getLogger(__name__)

MINT_ABI = [
    {
        "type": "function",
        "name": "mintTicketWithMantle",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "uri", "type": "string"},
            {"name": "eventId", "type": "uint256"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "nonce", "type": "uint256"},
            {"name": "signature", "type": "bytes"},
        ],
        "outputs": [],
    }
]


def token_uri(ticket_code: str) -> str:
    return f"ipfs://ticket-{ticket_code}"


class MintSubmitter:
    """Sends an authorized mint to the chain and returns the transaction hash."""

    @property
    def sender_address(self) -> str:
        raise NotImplementedError

    def submit(self, proof: MintProof, uri: str) -> str:
        raise NotImplementedError


class ContractMintSubmitter(MintSubmitter):
    """Signs and sends ``mintTicketWithMantle`` with a local minter key."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: str,
        chain_id: int,
        receipt_timeout: int = 120,
        request_timeout: float = 15.0,
    ) -> None:
        self._w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        self._account = self._w3.eth.account.from_key(private_key)
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=MINT_ABI
        )
        self._chain_id = chain_id
        self._receipt_timeout = receipt_timeout

    @property
    def sender_address(self) -> str:
        return self._account.address

    def submit(self, proof: MintProof, uri: str) -> str:
        tx = self._contract.functions.mintTicketWithMantle(
            proof.recipient,
            uri,
            proof.event_id,
            proof.timestamp,
            proof.nonce,
            proof.signature,
        ).build_transaction({
            "from": self._account.address,
            "nonce": self._w3.eth.get_transaction_count(self._account.address),
            "chainId": self._chain_id,
        })
        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        if receipt["status"] != 1:
            raise MintSubmissionError(f"Mint transaction {tx_hash.hex()} reverted")
        return "0x" + bytes(tx_hash).hex()


class TicketMinter:
    """Requests a proof and submits the mint for one ticket."""

    def __init__(
        self,
        authorizer: MintAuthorizer,
        submitter: MintSubmitter,
        recipient: Optional[str] = None,
    ) -> None:
        self._authorizer = authorizer
        self._submitter = submitter
        self._recipient = recipient or None

    @property
    def recipient(self) -> str:
        return self._recipient or self._submitter.sender_address

    def mint(self, ticket_code: str, event_id: str) -> str:
        """Mint the NFT for ``ticket_code``; return the transaction hash.

        Raises:
            MintAuthorizationError: no proof could be issued.
            MintSubmissionError: the signer is misconfigured or the chain refused.
            ValueError: ``event_id`` is not numeric.
        """
        proof = self._authorizer.issue(self.recipient, int(event_id))
        if proof.signer_mismatch:
            raise MintSubmissionError(
                f"Signer {proof.signer_address} is not the signer the contract expects; not submitting"
            )
        tx_hash = self._submitter.submit(proof, token_uri(ticket_code))
        logger.info("Minted NFT for ticket %s: %s", ticket_code, tx_hash)
        return tx_hash
