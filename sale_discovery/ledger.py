"""
Dedup ledger and ingestion queue.

The ledger records every dedup key accepted into the queue. Keys are
recorded before classification, so a crash mid-cycle drops a candidate
rather than publishing it twice.

Both ledger implementations are bounded: the in-memory one evicts the
oldest keys past `max_entries`, the Supabase one prunes keys older than
`retention_days`. An evicted key can be accepted again.
"""

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from datetime import datetime, timedelta

from .config import DiscoveryConfig
from .models import CandidatePosting, utc_now

logger = logging.getLogger(__name__)


class DedupLedger(ABC):
    """Set of dedup keys already accepted by the pipeline."""

    @abstractmethod
    def contains(self, key: str) -> bool:
        pass

    @abstractmethod
    def add(self, key: str) -> None:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    def prune(self) -> None:
        """Drop expired keys (no-op by default)."""

    def __contains__(self, key: str) -> bool:
        return self.contains(key)


class InMemoryDedupLedger(DedupLedger):
    """Process-local ledger with insertion-order eviction."""

    def __init__(self, max_entries: int = 50000):
        self.max_entries = max_entries
        self._keys: OrderedDict[str, datetime] = OrderedDict()

    def contains(self, key: str) -> bool:
        return key in self._keys

    def add(self, key: str) -> None:
        if key in self._keys:
            return
        self._keys[key] = utc_now()
        while len(self._keys) > self.max_entries:
            evicted, _ = self._keys.popitem(last=False)
            logger.debug(f"Evicted dedup key: {evicted}")

    def __len__(self) -> int:
        return len(self._keys)


class SupabaseDedupLedger(DedupLedger):
    """
    Ledger backed by the `discovery_seen` table.

    Survives restarts and can be shared by several workers.
    """

    def __init__(self, db, retention_days: int = 30):
        self.db = db
        self.retention_days = retention_days

    def contains(self, key: str) -> bool:
        return self.db.has_seen_key(key)

    def add(self, key: str) -> None:
        self.db.record_seen_key(key)

    def __len__(self) -> int:
        return self.db.count_seen_keys()

    def prune(self) -> None:
        cutoff = utc_now() - timedelta(days=self.retention_days)
        self.db.prune_seen_keys(cutoff)


def create_ledger(config: DiscoveryConfig, db=None) -> DedupLedger:
    """Build the ledger selected by DEDUP_BACKEND."""
    if config.dedup_backend == "supabase":
        if db is None:
            from .db import get_db
            db = get_db()
        logger.info(f"Using Supabase dedup ledger ({config.dedup_retention_days} day retention)")
        return SupabaseDedupLedger(db, retention_days=config.dedup_retention_days)

    if config.dedup_backend != "memory":
        logger.warning(f"Unknown dedup backend {config.dedup_backend!r}, using memory")
    return InMemoryDedupLedger(max_entries=config.dedup_max_entries)


class IngestionQueue:
    """FIFO buffer of accepted candidates awaiting classification."""

    def __init__(self):
        self._items: deque[CandidatePosting] = deque()

    def put(self, candidate: CandidatePosting) -> None:
        self._items.append(candidate)

    def drain(self, max_items: int) -> list[CandidatePosting]:
        """Remove and return up to max_items from the head of the queue."""
        batch = []
        while self._items and len(batch) < max_items:
            batch.append(self._items.popleft())
        return batch

    def __len__(self) -> int:
        return len(self._items)
