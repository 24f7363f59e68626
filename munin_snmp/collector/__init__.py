"""
Collector module: fetches readings from a munin-node.
"""

from .munin_client import (
    MuninClient,
    Metric,
    FetchResult,
    parse_fetch_line,
    NULL_VALUE,
    DEFAULT_MUNIN_PORT,
)

__all__ = [
    "MuninClient",
    "Metric",
    "FetchResult",
    "parse_fetch_line",
    "NULL_VALUE",
    "DEFAULT_MUNIN_PORT",
]
