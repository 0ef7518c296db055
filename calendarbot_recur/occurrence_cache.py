"""Windowed cache of rule instants used as re-entry points for expansion.

Re-deriving an infinite rule from its start on every query costs time
proportional to how far into the sequence the query lies. The cache keeps a
bounded, sorted ring buffer of instants sampled every ``stride`` positions of
the rule sequence, so a later query can resume the rule from the nearest
sampled instant at or before it.
"""

import bisect
import logging
from typing import Any, NamedTuple, Optional

from .temporal import Temporal, compare, sort_key

logger = logging.getLogger(__name__)

# Ring size and sampling stride; a smaller stride means faster re-entry and
# more memory per covered span of the sequence
DEFAULT_CACHE_CAPACITY = 51
DEFAULT_CACHE_STRIDE = 21


class CacheEntry(NamedTuple):
    """A sampled rule instant and its zero-based position in the rule sequence."""

    instant: Temporal
    index: int


class OccurrenceCache:
    """Fixed-capacity circular buffer of sampled rule instants.

    Entries are kept strictly increasing from ``_start`` to ``_end`` (exclusive,
    modulo capacity). Growing past the high end evicts the lowest entry and
    growing past the low end evicts the highest, so the cached window follows
    the queries in either direction.

    The cache is bound to a (start, rule) snapshot; ``ensure_bound`` clears it
    when either differs from the snapshot.
    """

    def __init__(self, capacity: int = DEFAULT_CACHE_CAPACITY, stride: int = DEFAULT_CACHE_STRIDE):
        if capacity < 1:
            raise ValueError(f"Cache capacity must be >= 1, got {capacity}")
        if stride < 1:
            raise ValueError(f"Cache stride must be >= 1, got {stride}")
        self.capacity = capacity
        self.stride = stride
        self._ring: list[Optional[CacheEntry]] = [None] * capacity
        self._start = 0
        self._end = 0
        self._size = 0
        self._snapshot: Optional[tuple[Any, Any]] = None
        self._pending_low: list[CacheEntry] = []
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return self._size

    def entries(self) -> list[CacheEntry]:
        """Return cached entries in ascending order."""
        return [self._at(i) for i in range(self._size)]

    # -- snapshot handling --------------------------------------------------

    def matches(self, start: Temporal, rule: Any) -> bool:
        """Whether the cache was built for this (start, rule) pair."""
        if self._snapshot is None:
            return False
        snap_start, snap_rule = self._snapshot
        return type(snap_start) is type(start) and snap_start == start and snap_rule == rule

    def ensure_bound(self, start: Temporal, rule: Any) -> None:
        """Bind the cache to (start, rule), clearing it if the pair changed."""
        if not self.matches(start, rule):
            if self._snapshot is not None:
                logger.debug("Occurrence cache snapshot changed; invalidating %d entries", self._size)
            self.invalidate()
            # rules are immutable models, so holding the reference is a snapshot
            self._snapshot = (start, rule)

    def invalidate(self) -> None:
        """Drop all entries and the snapshot."""
        self._ring = [None] * self.capacity
        self._start = 0
        self._end = 0
        self._size = 0
        self._snapshot = None
        self._pending_low = []

    # -- lookup -------------------------------------------------------------

    def find_reentry_point(self, query: Temporal) -> CacheEntry:
        """Return the latest cached entry at or before ``query``.

        Falls back to the series start (index 0) when the cache is empty or the
        query precedes every cached instant.
        """
        if self._snapshot is None:
            raise RuntimeError("Occurrence cache is not bound to a series")
        series_start = self._snapshot[0]
        if self._size == 0 or compare(query, self._at(0).instant) < 0:
            self.misses += 1
            logger.debug("Cache miss for %s; re-entering at series start %s", query, series_start)
            return CacheEntry(series_start, 0)

        keys = [sort_key(self._at(i).instant) for i in range(self._size)]
        pos = bisect.bisect_right(keys, sort_key(query)) - 1
        entry = self._at(pos)
        self.hits += 1
        logger.debug("Cache hit for %s; re-entering at %s (index %d)", query, entry.instant, entry.index)
        return entry

    # -- recording ----------------------------------------------------------

    def begin_walk(self) -> None:
        """Start recording a new ascending walk over the rule sequence."""
        self._pending_low = []

    def record(self, instant: Temporal, index: int) -> None:
        """Observe a rule instant consumed during a walk.

        Only every ``stride``-th position of the sequence is stored. Instants
        above the cached window are appended; instants below it are held until
        the walk reaches the window or ends, then prepended.
        """
        if index % self.stride:
            return
        entry = CacheEntry(instant, index)
        if self._size == 0:
            self._push_back(entry)
            return

        if compare(instant, self._at(self._size - 1).instant) > 0:
            self._flush_pending()
            self._push_back(entry)
        elif compare(instant, self._at(0).instant) < 0:
            self._pending_low.append(entry)
        else:
            self._flush_pending()

    def end_walk(self) -> None:
        """Finish the current walk, storing any pending low-side entries."""
        self._flush_pending()

    def _flush_pending(self) -> None:
        if not self._pending_low:
            return
        pending, self._pending_low = self._pending_low, []
        for entry in reversed(pending):
            if self._size and compare(entry.instant, self._at(0).instant) >= 0:
                continue
            self._push_front(entry)

    # -- ring arithmetic ----------------------------------------------------

    def _at(self, offset: int) -> CacheEntry:
        entry = self._ring[(self._start + offset) % self.capacity]
        assert entry is not None
        return entry

    def _push_back(self, entry: CacheEntry) -> None:
        if self._size == self.capacity:
            # evict the low end
            self._ring[self._start] = None
            self._start = (self._start + 1) % self.capacity
            self._size -= 1
        self._ring[self._end] = entry
        self._end = (self._end + 1) % self.capacity
        self._size += 1

    def _push_front(self, entry: CacheEntry) -> None:
        if self._size == self.capacity:
            # evict the high end
            self._end = (self._end - 1) % self.capacity
            self._ring[self._end] = None
            self._size -= 1
        self._start = (self._start - 1) % self.capacity
        self._ring[self._start] = entry
        self._size += 1
