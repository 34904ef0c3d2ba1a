"""Domain errors raised by the ticketing services.

Every collaborator error is caught at the boundary that calls it; these types
exist so the boundaries can tell a misconfiguration from a bad request.
"""


class TicketingError(Exception):
    """Base class for domain errors."""


class CatalogFetchError(TicketingError):
    """The upstream event list could not be fetched or decoded."""


class MintAuthorizationError(TicketingError):
    """A mint proof could not be produced."""


class SignerNotConfiguredError(MintAuthorizationError):
    """No signing key is configured; no proof can be issued."""

    def __init__(self) -> None:
        super().__init__("Mint signer private key is not configured")


class MintRequestError(MintAuthorizationError):
    """The recipient or event id of a mint request is invalid."""


class MintSubmissionError(TicketingError):
    """The on-chain mint transaction was refused, reverted or never confirmed."""
