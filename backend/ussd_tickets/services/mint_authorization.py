"""Mint authorization protocol — off-chain proofs for on-chain ticket mints.

The ticket contract accepts a mint only when it carries a signature from the
trusted signer over

    keccak256(abi.encodePacked(
        string  action,     // "MINT"
        uint256 ticketId,   // always 0 at mint time, the contract assigns it
        uint256 eventId,
        address recipient,
        uint256 timestamp,  // unix seconds at signing time
        uint256 nonce       // single use
    ))

signed as an EIP-191 personal message, i.e. over
``keccak256("\\x19Ethereum Signed Message:\\n32" || hash)``.  The layout is
order sensitive and tightly packed; it must match the contract byte for byte.

The contract rejects stale timestamps and previously seen nonces.  This module
guarantees that a nonce is never handed out twice by one process and that
timestamps never go backwards.
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from eth_abi.packed import encode_packed
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import is_address, keccak, to_checksum_address

from ussd_tickets.errors import MintRequestError, SignerNotConfiguredError

logger = logging.getLogger(__name__)

MINT_ACTION = "MINT"
PACKED_TYPES = ["string", "uint256", "uint256", "address", "uint256", "uint256"]
UINT256_MAX = 2**256 - 1

_COUNTER_BITS = 64
_RANDOM_BITS = 256 - _COUNTER_BITS


@dataclass(frozen=True)
class MintProof:
    """A signed, single-use authorization for one mint."""

    recipient: str
    event_id: int
    action: str
    ticket_id: int
    timestamp: int
    nonce: int
    message_hash: bytes
    signature: bytes
    signer_address: str
    signer_mismatch: bool

    @property
    def signature_hex(self) -> str:
        return "0x" + self.signature.hex()

    @property
    def message_hash_hex(self) -> str:
        return "0x" + self.message_hash.hex()


def pack_mint_message(
    action: str,
    ticket_id: int,
    event_id: int,
    recipient: str,
    timestamp: int,
    nonce: int,
) -> bytes:
    """Tightly pack the mint message exactly like ``abi.encodePacked``."""
    return encode_packed(
        PACKED_TYPES,
        [action, ticket_id, event_id, to_checksum_address(recipient), timestamp, nonce],
    )


def mint_message_hash(
    action: str,
    ticket_id: int,
    event_id: int,
    recipient: str,
    timestamp: int,
    nonce: int,
) -> bytes:
    return keccak(pack_mint_message(action, ticket_id, event_id, recipient, timestamp, nonce))


def recover_signer(proof: MintProof) -> str:
    """Recover the checksummed address that produced ``proof.signature``."""
    return Account.recover_message(
        encode_defunct(primitive=proof.message_hash), signature=proof.signature
    )


class NonceSource:
    """High-entropy uint256 nonces, unique for the life of the process.

    The top 192 bits come from the OS CSPRNG, the low 64 bits from a counter,
    so two nonces from one instance can never be equal.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = 0

    def next(self) -> int:
        with self._lock:
            self._counter += 1
            counter = self._counter
        return (secrets.randbits(_RANDOM_BITS) << _COUNTER_BITS) | counter


class MintAuthorizer:
    """Issues ``MintProof`` objects signed with the configured key."""

    def __init__(
        self,
        private_key: str,
        expected_signer: str = "",
        nonces: Optional[NonceSource] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._account = Account.from_key(private_key) if private_key else None
        self._expected_signer = expected_signer.strip()
        self._nonces = nonces or NonceSource()
        self._clock = clock
        self._ts_lock = threading.Lock()
        self._last_timestamp = 0

        if self._account is None:
            logger.warning("MINT_SIGNER_PRIVATE_KEY not configured — mint proofs disabled")
        elif self.signer_mismatch:
            logger.warning(
                "Mint signer %s does not match expected signer %s",
                self._account.address, self._expected_signer,
            )

    @property
    def configured(self) -> bool:
        return self._account is not None

    @property
    def signer_address(self) -> Optional[str]:
        return self._account.address if self._account else None

    @property
    def signer_mismatch(self) -> bool:
        if not self._account or not self._expected_signer:
            return False
        return self._account.address.lower() != self._expected_signer.lower()

    def _timestamp(self) -> int:
        with self._ts_lock:
            ts = max(int(self._clock()), self._last_timestamp)
            self._last_timestamp = ts
            return ts

    def issue(self, recipient: str, event_id: int) -> MintProof:
        """Sign a fresh mint authorization for ``recipient`` and ``event_id``.

        Raises:
            SignerNotConfiguredError: no signing key is configured.
            MintRequestError: recipient is not an address or event_id is out of range.
        """
        if self._account is None:
            raise SignerNotConfiguredError()
        if not isinstance(recipient, str) or not is_address(recipient):
            raise MintRequestError(f"Invalid recipient address: {recipient!r}")
        if isinstance(event_id, bool) or not isinstance(event_id, int):
            raise MintRequestError(f"Event id must be an integer, got {event_id!r}")
        if not 0 <= event_id <= UINT256_MAX:
            raise MintRequestError(f"Event id out of uint256 range: {event_id}")

        recipient = to_checksum_address(recipient)
        timestamp = self._timestamp()
        nonce = self._nonces.next()
        message_hash = mint_message_hash(MINT_ACTION, 0, event_id, recipient, timestamp, nonce)
        signed = self._account.sign_message(encode_defunct(primitive=message_hash))

        logger.info("Issued mint proof for event %s to %s (ts=%d)", event_id, recipient, timestamp)
        return MintProof(
            recipient=recipient,
            event_id=event_id,
            action=MINT_ACTION,
            ticket_id=0,
            timestamp=timestamp,
            nonce=nonce,
            message_hash=message_hash,
            signature=bytes(signed.signature),
            signer_address=self._account.address,
            signer_mismatch=self.signer_mismatch,
        )
