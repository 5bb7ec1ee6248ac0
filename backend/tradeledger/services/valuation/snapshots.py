# backend/tradeledger/services/valuation/snapshots.py
"""
Generation tokens and last-known-good snapshots.

Price fetches cannot be cancelled, so a valuation pass that started before
a newer one for the same (user, currency) may finish after it. Each pass
takes a generation token when it starts; its result is committed only if
no newer pass has started since. A superseded result is discarded with
StaleValuationError instead of overwriting fresher data.

The store also remembers the last committed snapshot per key and how many
passes are in flight, which backs the "latest" view (last-known-good data
plus a loading flag).
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass

from tradeledger.services.exceptions import StaleValuationError
from tradeledger.services.valuation.types import PortfolioSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValuationPass:
    """Token identifying one valuation pass for a key."""

    user_id: str
    currency: str
    generation: int

    @property
    def key(self) -> tuple[str, str]:
        return self.user_id, self.currency


@dataclass(frozen=True)
class LatestSnapshot:
    """Last committed snapshot for a key, and whether a pass is running."""

    snapshot: PortfolioSnapshot | None
    loading: bool


class SnapshotStore:
    """
    In-process registry of valuation generations and committed snapshots.

    At most `max_keys` committed snapshots are kept; the least recently
    committed or read key is evicted first. A key's generation counter is
    dropped as soon as it has neither a pass in flight nor a committed
    snapshot, so the registry stays bounded by max_keys plus the passes
    currently running.

    Usage:
        token = store.begin(user_id, "USD")
        try:
            snapshot = ...                 # may await price fetches
            store.commit(token, snapshot)  # raises if superseded
        finally:
            store.finish(token)
    """

    def __init__(self, max_keys: int = 10_000) -> None:
        if max_keys < 1:
            raise ValueError("max_keys must be at least 1")
        self._max_keys = max_keys
        self._lock = threading.Lock()
        self._generations: dict[tuple[str, str], int] = {}
        self._in_flight: dict[tuple[str, str], int] = {}
        self._committed: OrderedDict[tuple[str, str], PortfolioSnapshot] = OrderedDict()

    def __len__(self) -> int:
        """Number of keys tracked (committed or in flight)."""
        with self._lock:
            return len(self._generations)

    def begin(self, user_id: str, currency: str) -> ValuationPass:
        """Start a pass; any pass started earlier for the key becomes stale."""
        key = (user_id, currency)
        with self._lock:
            generation = self._generations.get(key, 0) + 1
            self._generations[key] = generation
            self._in_flight[key] = self._in_flight.get(key, 0) + 1
        return ValuationPass(user_id=user_id, currency=currency, generation=generation)

    def is_current(self, token: ValuationPass) -> bool:
        with self._lock:
            return self._generations.get(token.key) == token.generation

    def commit(self, token: ValuationPass, snapshot: PortfolioSnapshot) -> None:
        """
        Store the snapshot as the latest for its key.

        Raises:
            StaleValuationError: A newer pass for the key has started
        """
        with self._lock:
            current = self._generations.get(token.key, 0)
            if current != token.generation:
                logger.warning(
                    f"Discarding valuation pass {token.generation} for user "
                    f"{token.user_id} ({token.currency}); pass {current} is newer"
                )
                raise StaleValuationError(token.user_id, token.currency, token.generation, current)

            self._committed[token.key] = snapshot
            self._committed.move_to_end(token.key)
            while len(self._committed) > self._max_keys:
                evicted, _ = self._committed.popitem(last=False)
                self._forget_if_idle(evicted)
                logger.debug(f"Evicted snapshot for user {evicted[0]} ({evicted[1]})")

    def finish(self, token: ValuationPass) -> None:
        """Mark the pass as no longer in flight (committed or not)."""
        with self._lock:
            remaining = self._in_flight.get(token.key, 0) - 1
            if remaining > 0:
                self._in_flight[token.key] = remaining
            else:
                self._in_flight.pop(token.key, None)
                self._forget_if_idle(token.key)

    def latest(self, user_id: str, currency: str) -> LatestSnapshot:
        key = (user_id, currency)
        with self._lock:
            snapshot = self._committed.get(key)
            if snapshot is not None:
                self._committed.move_to_end(key)
            return LatestSnapshot(
                snapshot=snapshot,
                loading=self._in_flight.get(key, 0) > 0,
            )

    def _forget_if_idle(self, key: tuple[str, str]) -> None:
        # Caller holds the lock. With nothing in flight no stale token can exist,
        # so the counter may restart from 1.
        if key not in self._in_flight and key not in self._committed:
            self._generations.pop(key, None)
