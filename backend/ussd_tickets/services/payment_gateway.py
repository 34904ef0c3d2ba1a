"""Payment initiation adapter — mobile-money collection requests.

"Success" means the provider accepted the STK push; the subscriber confirms on
their handset out of band and settlement reconciliation happens elsewhere.

``initiate`` never raises.  Provider outages, HTTP errors and response bodies
of any shape (JSON, HTML, raw bytes) are turned into a declined result, so a
provider-side change can never crash the USSD session.
"""
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

INTASEND_SANDBOX_URL = "https://sandbox.intasend.com"
INTASEND_LIVE_URL = "https://payment.intasend.com"
STK_PUSH_PATH = "/api/v1/payment/mpesa-stk-push/"

MAX_REASON_LENGTH = 200
GENERIC_DECLINE = "Payment provider returned an unreadable response"


@dataclass(frozen=True)
class PaymentRequest:
    phone_number: str
    amount: Decimal
    currency: str
    reference: str
    narrative: str = "Event Ticket"


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    reason: Optional[str] = None
    provider_reference: Optional[str] = None

    @classmethod
    def accepted(cls, provider_reference: Optional[str] = None) -> "PaymentResult":
        return cls(success=True, provider_reference=provider_reference)

    @classmethod
    def declined(cls, reason: str) -> "PaymentResult":
        return cls(success=False, reason=reason[:MAX_REASON_LENGTH])


class PaymentGateway:
    """Interface for mobile-money collection."""

    def initiate(self, request: PaymentRequest) -> PaymentResult:
        raise NotImplementedError


def normalize_msisdn(phone_number: str) -> str:
    """``+254712…`` / ``0712…`` → ``254712…`` (the form M-Pesa expects)."""
    digits = "".join(ch for ch in phone_number if ch.isdigit())
    if digits.startswith("0") and len(digits) == 10:
        digits = "254" + digits[1:]
    return digits


def payment_reference(phone_number: str, event_id: str, bucket_seconds: int, now: Optional[float] = None) -> str:
    """Reference that stays the same for a retried purchase inside one time bucket."""
    bucket = int((time.time() if now is None else now) // max(bucket_seconds, 1))
    digest = hashlib.sha256(f"{phone_number}|{event_id}|{bucket}".encode()).hexdigest()[:12]
    return f"tkt-{event_id}-{digest}"


def decode_provider_body(body: Any) -> Any:
    """Best-effort decode of a provider body into JSON data.

    Returns the decoded object, or None when the body is not JSON.
    """
    if isinstance(body, (bytes, bytearray)):
        try:
            body = bytes(body).decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(body, str):
        try:
            return json.loads(body)
        except ValueError:
            return None
    return body


def _decline_reason(payload: dict[str, Any]) -> Optional[str]:
    """Provider error details, or None if the payload looks like an acceptance."""
    if payload.get("type") == "validation_error":
        return json.dumps(payload.get("errors") or payload, default=str)
    for key in ("errors", "error"):
        if payload.get(key):
            return json.dumps(payload[key], default=str)
    return None


class IntaSendGateway(PaymentGateway):
    """M-Pesa STK push through the IntaSend collection API."""

    def __init__(
        self,
        secret_key: str,
        environment: str = "sandbox",
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        base = INTASEND_LIVE_URL if environment == "live" else INTASEND_SANDBOX_URL
        self._url = base + STK_PUSH_PATH
        self._secret_key = secret_key
        self._timeout = timeout
        self._session = session or requests.Session()
        if not secret_key:
            logger.warning("INTASEND_SECRET_KEY not configured — every payment will be declined")

    def initiate(self, request: PaymentRequest) -> PaymentResult:
        if not self._secret_key:
            return PaymentResult.declined("Payment provider not configured")

        payload = {
            "amount": str(request.amount),
            "phone_number": normalize_msisdn(request.phone_number),
            "currency": request.currency,
            "api_ref": request.reference,
            "narrative": request.narrative,
        }
        try:
            resp = self._session.post(
                self._url,
                json=payload,
                headers={"Authorization": f"Bearer {self._secret_key}"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.error("IntaSend STK push failed (ref %s): %s", request.reference, exc)
            return PaymentResult.declined("Payment provider unreachable")

        data = decode_provider_body(resp.content)
        logger.info("IntaSend STK response (ref %s, HTTP %s): %s",
                    request.reference, resp.status_code, data)

        if not isinstance(data, dict):
            return PaymentResult.declined(GENERIC_DECLINE)
        reason = _decline_reason(data)
        if reason is not None:
            return PaymentResult.declined(reason)
        if resp.status_code >= 400:
            return PaymentResult.declined(f"Payment provider returned HTTP {resp.status_code}")

        invoice = data.get("invoice")
        invoice_id = invoice.get("invoice_id") if isinstance(invoice, dict) else None
        return PaymentResult.accepted(provider_reference=invoice_id or data.get("id"))
