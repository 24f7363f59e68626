"""
Configuration module for the bridge: Munin sources, SNMP subtree, cache policy.
"""

from .bridge_config import (
    BridgeConfig,
    SourceSpec,
    DEFAULTS,
    DEFAULT_CONFIG_FILE,
    load_config,
    parse_sources,
)

__all__ = [
    "BridgeConfig",
    "SourceSpec",
    "DEFAULTS",
    "DEFAULT_CONFIG_FILE",
    "load_config",
    "parse_sources",
]
