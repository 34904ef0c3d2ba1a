"""Event catalog cache — read-mostly snapshot of sellable events.

The USSD menu can only offer small numeric choices, so every event is given a
1-based ordinal for display.  Ordinals belong to a snapshot: they are
recomputed on every refresh and must never be persisted.

A refresh builds a brand new immutable ``CatalogSnapshot`` and swaps the
reference in one assignment.  Readers call ``current()`` and keep the object
they got for the rest of the request, so they never see a half-built catalog.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Mapping, Optional

import requests

from ussd_tickets.errors import CatalogFetchError

logger = logging.getLogger(__name__)

PRICE_FIELDS = ("regular_price", "vip_price", "vvip_price")


@dataclass(frozen=True)
class CatalogEvent:
    """One sellable event as seen by the menu."""

    event_id: str
    name: str
    price: Decimal
    currency: str
    venue: Optional[str] = None
    event_date: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class CatalogSnapshot:
    """Moment-in-time list of events plus the derived ordinal map."""

    events: tuple[CatalogEvent, ...] = ()
    fetched_at: Optional[datetime] = None
    by_ordinal: Mapping[int, CatalogEvent] = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        ordinals = {idx: ev for idx, ev in enumerate(self.events, start=1)}
        object.__setattr__(self, "by_ordinal", MappingProxyType(ordinals))

    @property
    def is_empty(self) -> bool:
        return not self.events

    def resolve(self, ordinal: int) -> Optional[CatalogEvent]:
        """Return the event shown at ``ordinal``, or None if it no longer exists."""
        return self.by_ordinal.get(ordinal)

    def venues(self) -> list[str]:
        """Distinct venues in first-seen order."""
        seen: dict[str, None] = {}
        for ev in self.events:
            if ev.venue:
                seen.setdefault(ev.venue, None)
        return list(seen)

    def events_at(self, venue: str) -> list[CatalogEvent]:
        return [ev for ev in self.events if ev.venue == venue]


EMPTY_SNAPSHOT = CatalogSnapshot()


class EventSource:
    """Upstream collaborator that owns event storage."""

    def fetch_events(self) -> list[CatalogEvent]:
        """Return the full list of sellable events.

        Raises:
            CatalogFetchError: if the upstream list cannot be obtained.
        """
        raise NotImplementedError


def _parse_price(row: Mapping[str, Any]) -> Decimal:
    for key in PRICE_FIELDS:
        value = row.get(key)
        if value is None or value == "":
            continue
        return Decimal(str(value))
    return Decimal("0")


def event_from_row(row: Mapping[str, Any], currency: str) -> CatalogEvent:
    """Map an upstream event row to a ``CatalogEvent``.

    Raises ValueError (or KeyError) for rows that cannot be sold.
    """
    event_id = row["id"]
    name = row.get("event_name") or row.get("name")
    if event_id is None or not name:
        raise ValueError("event row without id or name")
    try:
        price = _parse_price(row)
    except InvalidOperation as exc:
        raise ValueError(f"unparseable price for event {event_id}") from exc
    if price < 0:
        raise ValueError(f"negative price for event {event_id}")
    return CatalogEvent(
        event_id=str(event_id),
        name=str(name).strip(),
        price=price,
        currency=currency,
        venue=(row.get("venue") or None),
        event_date=(row.get("event_date") or None),
        raw=MappingProxyType(dict(row)),
    )


class HttpEventSource(EventSource):
    """Reads ``GET {base_url}/api/events`` from the event-management server."""

    def __init__(
        self,
        base_url: str,
        currency: str = "KES",
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/api/events"
        self._currency = currency
        self._timeout = timeout
        self._session = session or requests.Session()

    def fetch_events(self) -> list[CatalogEvent]:
        try:
            resp = self._session.get(self._url, timeout=self._timeout)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise CatalogFetchError(f"GET {self._url} failed: {exc}") from exc

        if not isinstance(payload, dict) or not payload.get("success"):
            raise CatalogFetchError(f"GET {self._url} returned an unsuccessful payload")
        rows = payload.get("data") or []
        if not isinstance(rows, list):
            raise CatalogFetchError(f"GET {self._url} returned a non-list data field")

        events = []
        for row in rows:
            try:
                events.append(event_from_row(row, self._currency))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unsellable catalog row: %s", exc)
        return events


class EventCatalogCache:
    """Holds the latest good ``CatalogSnapshot`` and refreshes it."""

    def __init__(self, source: EventSource, refresh_interval: float = 300.0) -> None:
        self._source = source
        self._refresh_interval = refresh_interval
        self._snapshot: CatalogSnapshot = EMPTY_SNAPSHOT
        self._refresh_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def current(self) -> CatalogSnapshot:
        """Latest snapshot; never waits for a refresh in progress."""
        return self._snapshot

    def refresh(self) -> CatalogSnapshot:
        """Fetch upstream and swap in a new snapshot.

        On any upstream failure the last good snapshot keeps being served.
        """
        with self._refresh_lock:
            try:
                events = self._source.fetch_events()
            except Exception as exc:
                logger.error("Catalog refresh failed, serving %d cached events: %s",
                             len(self._snapshot.events), exc)
                return self._snapshot

            self._snapshot = CatalogSnapshot(
                events=tuple(events),
                fetched_at=datetime.now(timezone.utc),
            )
            logger.info("Loaded %d events from catalog source at %s",
                        len(events), self._snapshot.fetched_at.isoformat())
            return self._snapshot

    # ── Background refresh ─────────────────────────────────────────
    def start(self) -> None:
        """Refresh once, then keep refreshing on a daemon thread."""
        if self._thread and self._thread.is_alive():
            return
        self.refresh()
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="catalog-refresh", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._refresh_interval):
            self.refresh()
