"""
Configuration for the Munin to SNMP bridge.
Reads a key=value file (python-dotenv syntax) and applies CLI overrides.
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from dotenv import dotenv_values

from ..errors import ConfigError
from ..snmp.oid import Oid, format_oid, parse_oid, validate_source_name

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "/etc/munin-snmp/agent.conf"

REFRESH_MODES = ("lazy", "background")

DEFAULTS: Dict[str, str] = {
    "munin_host": "localhost",
    "munin_port": "4949",
    "munin_timeout": "5",
    "munin_plugins": "load,cpu,memory",
    "base_oid": ".1.3.6.1.4.1.123456.100.1.1",
    "pidfile": "/var/run/munin-snmp-agent.pid",
    "cache_ttl": "60",
    "max_missed_refreshes": "0",
    "refresh_mode": "background",
    "snmp_host": "0.0.0.0",
    "snmp_port": "161",
    "community": "public",
    "log_level": "INFO",
    "log_file": "",
}


@dataclass(frozen=True)
class SourceSpec:
    """
    A Munin source (plugin) to fetch.

    Attributes:
        name: Plugin name sent in the fetch command
        field: Optional field filter, only this field is kept
    """
    name: str
    field: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> 'SourceSpec':
        """Parse 'plugin' or 'plugin:field'."""
        name, sep, field = text.strip().partition(":")
        validate_source_name(name)
        if sep:
            validate_source_name(field)
            return cls(name=name, field=field)
        return cls(name=name)

    def __str__(self) -> str:
        return f"{self.name}:{self.field}" if self.field else self.name


def parse_sources(text: str) -> Tuple[SourceSpec, ...]:
    """Parse the comma separated munin_plugins list."""
    sources = tuple(
        SourceSpec.parse(item) for item in text.split(",") if item.strip()
    )
    if not sources:
        raise ConfigError("munin_plugins must name at least one source")
    return sources


@dataclass(frozen=True)
class BridgeConfig:
    """Bridge settings, immutable for the lifetime of the agent."""

    munin_host: str
    munin_port: int
    munin_timeout: float
    sources: Tuple[SourceSpec, ...]
    base_oid: Oid
    pidfile: str
    cache_ttl: float
    max_missed_refreshes: int = 0
    refresh_mode: str = "background"
    snmp_host: str = "0.0.0.0"
    snmp_port: int = 161
    community: str = "public"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> "BridgeConfig":
        """
        Build a validated config from raw string values.

        Keys missing from `values` take their default.

        Raises:
            ConfigError: On any invalid value
        """
        merged = dict(DEFAULTS)
        merged.update({k: v for k, v in values.items() if v is not None})

        refresh_mode = merged["refresh_mode"].strip().lower()
        if refresh_mode not in REFRESH_MODES:
            raise ConfigError(
                f"refresh_mode must be one of {', '.join(REFRESH_MODES)}, "
                f"got {merged['refresh_mode']!r}"
            )

        cache_ttl = _to_float(merged, "cache_ttl")
        if cache_ttl <= 0:
            raise ConfigError("cache_ttl must be greater than 0")

        max_missed = _to_int(merged, "max_missed_refreshes")
        if max_missed < 0:
            raise ConfigError("max_missed_refreshes must be >= 0")

        return cls(
            munin_host=merged["munin_host"].strip(),
            munin_port=_to_port(merged, "munin_port"),
            munin_timeout=_to_float(merged, "munin_timeout"),
            sources=parse_sources(merged["munin_plugins"]),
            base_oid=parse_oid(merged["base_oid"]),
            pidfile=merged["pidfile"].strip(),
            cache_ttl=cache_ttl,
            max_missed_refreshes=max_missed,
            refresh_mode=refresh_mode,
            snmp_host=merged["snmp_host"].strip(),
            snmp_port=_to_port(merged, "snmp_port"),
            community=merged["community"],
            log_level=merged["log_level"].strip().upper(),
            log_file=merged["log_file"].strip() or None,
        )

    def __repr__(self) -> str:
        """Display without the community string."""
        return (
            f"BridgeConfig("
            f"munin={self.munin_host}:{self.munin_port}, "
            f"sources={','.join(str(s) for s in self.sources)}, "
            f"base_oid={format_oid(self.base_oid)}, "
            f"snmp={self.snmp_host}:{self.snmp_port}, "
            f"cache_ttl={self.cache_ttl}s, "
            f"refresh_mode={self.refresh_mode}"
            f")"
        )


def load_config(
    config_file: Optional[str] = None,
    overrides: Optional[Mapping[str, Optional[str]]] = None,
) -> BridgeConfig:
    """
    Load configuration: defaults < config file < overrides (CLI flags).

    Args:
        config_file: Path of the key=value file. When None the default path
            is tried and silently skipped if absent.
        overrides: Values taking precedence over the file, None values ignored

    Raises:
        ConfigError: Explicit file missing or any invalid value
    """
    values: Dict[str, str] = {}

    path = config_file or DEFAULT_CONFIG_FILE
    if os.path.exists(path):
        file_values = dotenv_values(path)
        for key, value in file_values.items():
            key = key.strip().lower()
            if key not in DEFAULTS:
                logger.warning(f"Unknown configuration key '{key}' in {path}, ignored")
                continue
            values[key] = value if value is not None else ""
        logger.debug(f"Configuration loaded from {path}")
    elif config_file:
        raise ConfigError(f"Configuration file not found: {config_file}")
    else:
        logger.warning(f"Configuration file {path} not found, using defaults")

    if overrides:
        values.update({k: str(v) for k, v in overrides.items() if v is not None})

    return BridgeConfig.from_values(values)


def _to_int(values: Mapping[str, str], key: str) -> int:
    try:
        return int(values[key])
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {values[key]!r}")


def _to_float(values: Mapping[str, str], key: str) -> float:
    try:
        return float(values[key])
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {values[key]!r}")


def _to_port(values: Mapping[str, str], key: str) -> int:
    port = _to_int(values, key)
    if not 0 < port < 65536:
        raise ConfigError(f"{key} out of range: {port}")
    return port
