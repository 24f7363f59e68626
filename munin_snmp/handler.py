"""
Query handler: GET / GETNEXT answers from the metric cache.
"""

import logging
from typing import Optional, Tuple

from .cache import MetricCache
from .snmp.oid import Oid, format_oid, is_within

logger = logging.getLogger(__name__)


class QueryHandler:
    """
    Answers SNMP queries for the subtree under `base_oid`.

    In lazy mode every query first calls refresh_if_stale() on the cache, so
    staleness is bounded by the TTL. Otherwise a BackgroundRefresher keeps
    the cache fresh and queries only read the published snapshot.
    """

    def __init__(self, cache: MetricCache, base_oid: Oid, lazy_refresh: bool = True):
        self.cache = cache
        self.base_oid = tuple(base_oid)
        self.lazy_refresh = lazy_refresh

    def _current(self):
        if self.lazy_refresh:
            return self.cache.refresh_if_stale()
        return self.cache.snapshot

    def handle_get(self, oid: Oid) -> Optional[str]:
        """Value at exactly `oid`, None when there is no such object."""
        oid = tuple(oid)
        if not is_within(oid, self.base_oid):
            return None
        value = self._current().lookup(oid)
        logger.debug(f"GET {format_oid(oid)} -> {value!r}")
        return value

    def handle_get_next(self, oid: Oid) -> Optional[Tuple[Oid, str]]:
        """Successor of `oid` and its value, None when the subtree is exhausted."""
        oid = tuple(oid)
        answer = self._current().next_after(oid)
        if answer is None:
            logger.debug(f"GETNEXT {format_oid(oid)} -> end of subtree")
        else:
            logger.debug(f"GETNEXT {format_oid(oid)} -> {format_oid(answer[0])}")
        return answer
