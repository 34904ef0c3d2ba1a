"""Session-end notifier — SMS copy of the terminal USSD message.

Runs after the USSD response has been computed.  A failed SMS is logged and
forgotten; it never touches a purchase that already happened.
"""
import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

AT_SANDBOX_URL = "https://api.sandbox.africastalking.com/version1/messaging"
AT_LIVE_URL = "https://api.africastalking.com/version1/messaging"


def extract_final_message(response_text: str) -> Optional[str]:
    """Body of an ``END`` response, or None for ``CON`` menus."""
    if not response_text or not response_text.startswith("END"):
        return None
    return response_text[3:].strip() or None


class Notifier:
    """Interface for out-of-band delivery of a message to a phone number."""

    def send(self, phone_number: str, message: str) -> None:
        raise NotImplementedError


class AfricasTalkingNotifier(Notifier):
    """Africa's Talking bulk SMS."""

    def __init__(
        self,
        username: str,
        api_key: str,
        sender_id: str = "",
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._username = username
        self._api_key = api_key
        self._sender_id = sender_id
        self._url = AT_SANDBOX_URL if username == "sandbox" else AT_LIVE_URL
        self._timeout = timeout
        self._session = session or requests.Session()
        if not self.enabled:
            logger.warning(
                "Africa's Talking SMS disabled: missing AFRICASTALKING_API_KEY or AFRICASTALKING_USERNAME"
            )

    @property
    def enabled(self) -> bool:
        return bool(self._username and self._api_key)

    def send(self, phone_number: str, message: str) -> None:
        if not self.enabled:
            return
        if not phone_number:
            logger.warning("Skipping session SMS: missing phone number")
            return

        data = {"username": self._username, "to": phone_number, "message": message}
        if self._sender_id:
            data["from"] = self._sender_id
        try:
            resp = self._session.post(
                self._url,
                data=data,
                headers={"apiKey": self._api_key, "Accept": "application/json"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Failed to send session SMS to %s: %s", phone_number, exc)
            return
        logger.info("Sent session SMS to %s", phone_number)


def notify_session_end(notifier: Notifier, phone_number: str, response_text: str) -> None:
    """Send the terminal message of a session, swallowing any failure."""
    message = extract_final_message(response_text)
    if message is None:
        return
    try:
        notifier.send(phone_number, message)
    except Exception:
        logger.exception("Session-end notifier raised for %s", phone_number)
