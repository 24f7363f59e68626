"""
Metric cache: TTL bounded OID -> value store with an OID sorted index.

A refresh never mutates the published Snapshot. It builds a new one and
swaps the reference, so readers always see a complete snapshot.
"""

import bisect
import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .collector import FetchResult, Metric
from .config import SourceSpec
from .snmp.oid import Oid, encode_name, format_oid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceState:
    """
    Last good entries of one source.

    Attributes:
        entries: OID -> value from the last successful fetch
        missed: Consecutive refreshes this source failed since then
    """
    entries: Mapping[Oid, str]
    missed: int = 0


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of the cache at one refresh."""

    entries: Mapping[Oid, str] = field(default_factory=lambda: MappingProxyType({}))
    ordered_oids: Tuple[Oid, ...] = ()
    last_refreshed: Optional[float] = None
    sources: Mapping[str, SourceState] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(
        cls,
        sources: Mapping[str, SourceState],
        order: Sequence[str],
        refreshed_at: float,
    ) -> "Snapshot":
        """
        Merge per source entries into one snapshot.

        Sources are merged in `order`; on an OID collision the later source wins.
        """
        entries: Dict[Oid, str] = {}
        owner: Dict[Oid, str] = {}
        for key in order:
            state = sources.get(key)
            if state is None:
                continue
            for oid, value in state.entries.items():
                if oid in owner and owner[oid] != key:
                    logger.warning(
                        f"OID {format_oid(oid)} reported by both {owner[oid]} "
                        f"and {key}, keeping {key}"
                    )
                entries[oid] = value
                owner[oid] = key

        return cls(
            entries=MappingProxyType(entries),
            ordered_oids=tuple(sorted(entries)),
            last_refreshed=refreshed_at,
            sources=MappingProxyType(dict(sources)),
        )

    def lookup(self, oid: Oid) -> Optional[str]:
        """Exact match, None when absent."""
        return self.entries.get(tuple(oid))

    def next_after(self, oid: Oid) -> Optional[Tuple[Oid, str]]:
        """First cached OID strictly greater than `oid`, None past the end."""
        index = bisect.bisect_right(self.ordered_oids, tuple(oid))
        if index >= len(self.ordered_oids):
            return None
        next_oid = self.ordered_oids[index]
        return next_oid, self.entries[next_oid]

    def __len__(self) -> int:
        return len(self.ordered_oids)


class MetricCache:
    """
    Owns the current Snapshot and its refresh policy.

    Refresh policy:
    - fresh while now - last_refreshed < ttl
    - a refresh with no answering source keeps the previous snapshot and
      does not move last_refreshed
    - a failing source keeps its previous entries; with
      max_missed_refreshes > 0 they are dropped once the source has failed
      more than that many refreshes in a row
    """

    def __init__(
        self,
        client,
        sources: Iterable[SourceSpec],
        base_oid: Oid,
        ttl: float,
        max_missed_refreshes: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            client: Object with fetch_all(sources) -> FetchResult (MuninClient)
            sources: Configured sources, in configuration order
            base_oid: Subtree root every metric is encoded under
            ttl: Snapshot time to live in seconds
            max_missed_refreshes: Drop a failing source after this many
                missed refreshes, 0 keeps it until it answers again
            clock: Monotonic time source
        """
        self.client = client
        self.sources: Tuple[SourceSpec, ...] = tuple(sources)
        self.base_oid = tuple(base_oid)
        self.ttl = ttl
        self.max_missed_refreshes = max_missed_refreshes
        self._clock = clock
        self._snapshot = Snapshot()
        self._lock = threading.Lock()
        self.refresh_count = 0

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def is_stale(self, snapshot: Optional[Snapshot] = None) -> bool:
        if snapshot is None:
            snapshot = self._snapshot
        if snapshot.last_refreshed is None:
            return True
        return self._clock() - snapshot.last_refreshed >= self.ttl

    def refresh_if_stale(self) -> Snapshot:
        """Refresh only when the TTL expired. Returns the current snapshot."""
        snapshot = self._snapshot
        if not self.is_stale(snapshot):
            return snapshot
        with self._lock:
            # Another caller may have refreshed while we waited
            if not self.is_stale():
                return self._snapshot
            return self._refresh_locked()

    def refresh(self) -> Snapshot:
        """Unconditional fetch cycle."""
        with self._lock:
            return self._refresh_locked()

    def lookup(self, oid: Oid) -> Optional[str]:
        return self._snapshot.lookup(oid)

    def next_after(self, oid: Oid) -> Optional[Tuple[Oid, str]]:
        return self._snapshot.next_after(oid)

    def _refresh_locked(self) -> Snapshot:
        self.refresh_count += 1
        previous = self._snapshot
        started = self._clock()

        result: FetchResult = self.client.fetch_all(self.sources)

        if not result.succeeded:
            logger.error(
                f"Refresh failed for all {len(self.sources)} sources, "
                f"keeping previous snapshot ({len(previous)} entries)"
            )
            return previous

        states: Dict[str, SourceState] = {}
        for source in self.sources:
            key = str(source)
            if key in result.metrics:
                states[key] = SourceState(entries=self._encode(result.metrics[key]))
                continue

            kept = previous.sources.get(key)
            if kept is None:
                continue
            missed = kept.missed + 1
            if self.max_missed_refreshes and missed > self.max_missed_refreshes:
                logger.warning(
                    f"Source {key} missed {missed} refreshes, "
                    f"dropping {len(kept.entries)} stale entries"
                )
                continue
            states[key] = SourceState(entries=kept.entries, missed=missed)

        snapshot = Snapshot.build(states, [str(s) for s in self.sources], self._clock())
        self._snapshot = snapshot

        if result.failures:
            logger.warning(
                f"Partial refresh: {len(result.failures)} source(s) failed "
                f"({', '.join(sorted(result.failures))})"
            )
        logger.info(
            f"Cache refreshed: {len(snapshot)} entries from "
            f"{len(result.metrics)} source(s) in {self._clock() - started:.2f}s"
        )
        return snapshot

    def _encode(self, metrics: List[Metric]) -> Mapping[Oid, str]:
        return MappingProxyType(
            {encode_name(m.name, self.base_oid): m.value for m in metrics}
        )


class BackgroundRefresher(threading.Thread):
    """
    Refreshes the cache every `interval` seconds off the request path.

    The first refresh is expected to have run before start(); the loop waits
    one interval before each refresh.
    """

    def __init__(self, cache: MetricCache, interval: Optional[float] = None):
        super().__init__(name="munin-refresher", daemon=True)
        self.cache = cache
        self.interval = interval if interval is not None else cache.ttl
        self._stop_event = threading.Event()

    def run(self) -> None:
        logger.debug(f"Background refresher started (every {self.interval}s)")
        while not self._stop_event.wait(self.interval):
            try:
                self.cache.refresh()
            except Exception as e:
                logger.exception(f"Background refresh failed: {e}")
        logger.debug("Background refresher stopped")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the loop to exit and wait for it."""
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)
