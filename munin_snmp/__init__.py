"""
Munin to SNMP bridge.

Serves values fetched from a Munin node as an SNMP subtree (GET / GETNEXT).
"""

__version__ = "1.0.0"
