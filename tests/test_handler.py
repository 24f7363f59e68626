"""
End to end query tests: munin fetch results -> cache -> GET / GETNEXT.
"""

import unittest

from munin_snmp.cache import MetricCache
from munin_snmp.collector import FetchResult, Metric
from munin_snmp.config import SourceSpec
from munin_snmp.handler import QueryHandler
from munin_snmp.snmp.oid import encode_name, parse_oid

BASE = parse_oid(".1.3.6.1.4.1.9.1")


class CountingClient:
    """Answers load=0.42 and cpu=NULL, counting fetch cycles."""

    def __init__(self):
        self.calls = 0

    def fetch_all(self, sources):
        self.calls += 1
        return FetchResult(metrics={
            "load": [Metric("load", "0.42")],
            "cpu": [Metric("cpu", "NULL")],
        })


class TestQueryHandler(unittest.TestCase):

    def setUp(self):
        self.client = CountingClient()
        self.cache = MetricCache(
            self.client, [SourceSpec("load"), SourceSpec("cpu")], BASE, ttl=60
        )
        self.handler = QueryHandler(self.cache, BASE)
        self.load_oid = BASE + (108, 111, 97, 100)
        self.cpu_oid = BASE + (99, 112, 117)

    def test_get_load(self):
        self.assertEqual(self.load_oid, encode_name("load", BASE))
        self.assertEqual(self.handler.handle_get(self.load_oid), "0.42")

    def test_get_faulted_value(self):
        self.assertEqual(self.handler.handle_get(self.cpu_oid), "NULL")

    def test_get_missing(self):
        self.assertIsNone(self.handler.handle_get(encode_name("memory", BASE)))
        self.assertIsNone(self.handler.handle_get(BASE))

    def test_get_outside_subtree(self):
        """Outside the subtree: no answer and no fetch."""
        self.assertIsNone(self.handler.handle_get(parse_oid(".1.3.6.1.2.1.1.1.0")))
        self.assertEqual(self.client.calls, 0)

    def test_walk(self):
        """GETNEXT from the base visits cpu then load, then ends."""
        first = self.handler.handle_get_next(BASE)
        self.assertEqual(first, (self.cpu_oid, "NULL"))

        second = self.handler.handle_get_next(first[0])
        self.assertEqual(second, (self.load_oid, "0.42"))

        self.assertIsNone(self.handler.handle_get_next(second[0]))

    def test_get_next_before_subtree(self):
        """A walk started above the subtree enters it."""
        self.assertEqual(
            self.handler.handle_get_next(parse_oid(".1.3.6.1")),
            (self.cpu_oid, "NULL"),
        )

    def test_queries_within_ttl_fetch_once(self):
        self.handler.handle_get(self.load_oid)
        self.handler.handle_get_next(BASE)
        self.handler.handle_get(self.cpu_oid)
        self.assertEqual(self.client.calls, 1)


class TestQueryHandlerBackground(unittest.TestCase):

    def test_queries_never_fetch(self):
        """With a background refresher, queries only read the snapshot."""
        client = CountingClient()
        cache = MetricCache(client, [SourceSpec("load")], BASE, ttl=60)
        handler = QueryHandler(cache, BASE, lazy_refresh=False)

        self.assertIsNone(handler.handle_get(encode_name("load", BASE)))
        self.assertIsNone(handler.handle_get_next(BASE))
        self.assertEqual(client.calls, 0)

        cache.refresh()
        self.assertEqual(handler.handle_get(encode_name("load", BASE)), "0.42")
        self.assertEqual(client.calls, 1)


if __name__ == "__main__":
    unittest.main()
