"""
OID helpers: parsing, formatting and the metric name encoding.

OIDs are plain tuples of non-negative ints. Python tuple ordering is exactly
the SNMP ordering: component-wise numeric, with a proper prefix sorting
before any OID that extends it.
"""

import string
from typing import Tuple

from ..errors import ConfigError

Oid = Tuple[int, ...]

# Characters allowed in configured Munin source names
SOURCE_NAME_CHARS = frozenset(string.ascii_letters + string.digits + "_-.")


def parse_oid(text: str) -> Oid:
    """
    Parse a dotted OID ("1.3.6.1" or ".1.3.6.1").

    Raises:
        ConfigError: Empty OID or a component that is not a non-negative int
    """
    stripped = text.strip()
    if stripped.startswith("."):
        stripped = stripped[1:]
    if not stripped:
        raise ConfigError(f"Invalid OID {text!r}: empty")

    components = []
    for part in stripped.split("."):
        if not part.isdecimal():
            raise ConfigError(f"Invalid OID {text!r}: bad component {part!r}")
        components.append(int(part))
    return tuple(components)


def format_oid(oid: Oid) -> str:
    """Dotted form with a leading dot, e.g. '.1.3.6.1'."""
    return "." + ".".join(str(x) for x in oid)


def encode_name(name: str, base: Oid) -> Oid:
    """
    Map a metric name to its OID under `base`.

    Each character contributes its ordinal as one component, so distinct
    names always map to distinct OIDs for the same base.
    """
    if not name:
        raise ValueError("Metric name must not be empty")
    return tuple(base) + tuple(ord(c) for c in name)


def is_within(oid: Oid, base: Oid) -> bool:
    """True when `oid` is `base` itself or lies below it."""
    return tuple(oid[:len(base)]) == tuple(base)


def validate_source_name(name: str) -> None:
    """
    Reject source names that cannot be sent in a fetch command or would
    encode outside the printable ASCII range.
    """
    if not name:
        raise ConfigError("Empty source name in munin_plugins")
    bad = sorted(set(name) - SOURCE_NAME_CHARS)
    if bad:
        raise ConfigError(
            f"Invalid source name {name!r}: unsupported characters {''.join(bad)!r}"
        )
