"""
SNMP module: OID encoding and the pysnmp agent serving the metric subtree.
"""

from .oid import Oid, parse_oid, format_oid, encode_name, is_within
from .responders import MetricGetResponder, MetricGetNextResponder
from .agent import SnmpAgent

__all__ = [
    "Oid",
    "parse_oid",
    "format_oid",
    "encode_name",
    "is_within",
    "MetricGetResponder",
    "MetricGetNextResponder",
    "SnmpAgent",
]
