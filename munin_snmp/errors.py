"""
Exception hierarchy for the bridge.
"""


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigError(BridgeError):
    """Invalid or unreadable configuration. Fatal at startup."""


class PidFileError(ConfigError):
    """The pid file cannot be written or is held by a live process."""


class RegistrationError(BridgeError):
    """The SNMP engine could not be set up for the configured subtree."""


class FetchError(BridgeError):
    """A single Munin source could not be fetched."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason
