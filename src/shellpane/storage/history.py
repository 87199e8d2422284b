"""In-memory exchange history with a live filtered projection."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from enum import Enum
from typing import Optional

from shellpane.storage.models import Exchange, Payload

logger = logging.getLogger(__name__)


class HistoryEvent(Enum):
    APPENDED = "appended"
    UPDATED = "updated"
    COMPLETED = "completed"
    FILTERED = "filtered"


Listener = Callable[[HistoryEvent, Optional[Exchange]], None]


class HistoryError(ValueError):
    """Raised for an invalid exchange lifecycle transition."""


class HistoryStore:
    """Ordered, append-only sequence of exchanges.

    The only in-place mutations allowed are provisional payload updates of a
    running exchange and its single completion. ``filtered`` is recomputed
    whenever the filter text or the sequence changes.
    """

    def __init__(self, name: str = "stdout") -> None:
        self.name = name
        self._exchanges: list[Exchange] = []
        self._index: dict[str, Exchange] = {}
        self._filter_text = ""
        self._filtered: list[Exchange] = []
        self._listeners: list[Listener] = []

    def __len__(self) -> int:
        return len(self._exchanges)

    def __iter__(self) -> Iterator[Exchange]:
        return iter(list(self._exchanges))

    def __getitem__(self, position: int) -> Exchange:
        return self._exchanges[position]

    @property
    def exchanges(self) -> list[Exchange]:
        return list(self._exchanges)

    @property
    def filtered(self) -> list[Exchange]:
        return list(self._filtered)

    @property
    def filter_text(self) -> str:
        return self._filter_text

    @filter_text.setter
    def filter_text(self, value: str) -> None:
        self._filter_text = value
        self._refilter()
        self._notify(HistoryEvent.FILTERED, None)

    def matches_filter(self, exchange: Exchange) -> bool:
        if not self._filter_text:
            return True
        return self._filter_text.casefold() in exchange.command.casefold()

    def get(self, exchange_id: str) -> Exchange:
        try:
            return self._index[exchange_id]
        except KeyError:
            raise HistoryError(f"Unknown exchange: {exchange_id}") from None

    def append(self, exchange: Exchange) -> Exchange:
        if exchange.id in self._index:
            raise HistoryError(f"Exchange already recorded: {exchange.id}")
        self._exchanges.append(exchange)
        self._index[exchange.id] = exchange
        self._refilter()
        self._notify(HistoryEvent.APPENDED, exchange)
        return exchange

    def update_payload(self, exchange_id: str, payload: Payload) -> Exchange:
        """Replace the provisional payload of a running exchange."""
        exchange = self.get(exchange_id)
        if not exchange.running:
            raise HistoryError(f"Exchange {exchange_id} already completed")
        exchange.payload = payload
        self._notify(HistoryEvent.UPDATED, exchange)
        return exchange

    def complete(
        self,
        exchange_id: str,
        payload: Payload | None,
        exit_status: int,
        duration_ms: int | None = None,
    ) -> Exchange:
        """Finalize a running exchange.

        A ``payload`` of None keeps whatever payload the exchange holds.
        """
        exchange = self.get(exchange_id)
        if not exchange.running:
            raise HistoryError(f"Exchange {exchange_id} already completed")
        if payload is not None:
            exchange.payload = payload
        exchange.exit_status = exit_status
        exchange.duration_ms = duration_ms
        self._refilter()
        self._notify(HistoryEvent.COMPLETED, exchange)
        return exchange

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _refilter(self) -> None:
        self._filtered = [e for e in self._exchanges if self.matches_filter(e)]

    def _notify(self, event: HistoryEvent, exchange: Exchange | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, exchange)
            except Exception:
                logger.exception("History listener failed (%s)", self.name)
