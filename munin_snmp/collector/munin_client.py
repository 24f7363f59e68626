"""
Munin node client.

Speaks the line oriented munin-node protocol over TCP:
    client: fetch <plugin>
    node:   <field>.value <value>   (zero or more)
    node:   .
    client: quit
"""

import logging
import socket
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..config import SourceSpec
from ..errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_MUNIN_PORT = 4949

# Value reported in place of a faulted reading
NULL_VALUE = "NULL"

# Munin values meaning "the plugin could not produce a reading"
FAULT_VALUES = frozenset({"Unknown", "Bad", "U"})

VALUE_SUFFIX = ".value"
TERMINATOR = "."


@dataclass(frozen=True)
class Metric:
    """A single reading, value kept verbatim."""
    name: str
    value: str


@dataclass
class FetchResult:
    """
    Outcome of one fetch cycle over all configured sources.

    Attributes:
        metrics: Metrics per successfully fetched source (key: str(SourceSpec))
        failures: Failure reason per failed source
    """
    metrics: Dict[str, List[Metric]] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        """At least one source answered."""
        return bool(self.metrics)


def parse_fetch_line(line: str, source: SourceSpec) -> Optional[Metric]:
    """
    Turn one data line of a fetch answer into a Metric.

    Returns None for lines filtered out by the source's field filter.

    Raises:
        ValueError: Malformed line (no value token)
    """
    parts = line.split(None, 1)
    if len(parts) != 2:
        raise ValueError(f"malformed line {line!r}")

    name, value = parts[0], parts[1].strip()
    if name.endswith(VALUE_SUFFIX):
        name = name[:-len(VALUE_SUFFIX)]
    if not name:
        raise ValueError(f"malformed line {line!r}")

    if source.field is not None and name != source.field:
        return None

    if value in FAULT_VALUES:
        value = NULL_VALUE

    # Single value plugins (load, uptime...) name their field after themselves
    metric_name = name if name == source.name else f"{source.name}.{name}"
    return Metric(name=metric_name, value=value)


class MuninClient:
    """
    Client for a munin-node.

    One TCP session is reused for all sources of a cycle. A source failing on
    the socket drops the session; the next source opens a new one.
    """

    def __init__(self, host: str, port: int = DEFAULT_MUNIN_PORT, timeout: float = 5.0):
        """
        Args:
            host: munin-node host
            port: munin-node port (default 4949)
            timeout: Connect and read timeout in seconds
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None
        self._reader = None

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        """Open a session with the node."""
        self._sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        self._reader = self._sock.makefile("rb")
        logger.debug(f"Connected to munin-node {self.host}:{self.port}")

    def close(self) -> None:
        """Send quit and close the session."""
        if self._sock is None:
            return
        try:
            self._sock.sendall(b"quit\n")
        except OSError as e:
            logger.debug(f"Could not send quit to munin-node: {e}")
        self._drop()

    def _drop(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def _read_line(self) -> Optional[str]:
        raw = self._reader.readline()
        if not raw:
            return None
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    def fetch(self, source: SourceSpec) -> List[Metric]:
        """
        Fetch one source on the current session.

        Raises:
            FetchError: Node reported the source unknown or closed the session
            OSError: Socket error or timeout
        """
        if self._sock is None:
            self.connect()

        self._sock.sendall(f"fetch {source.name}\n".encode("utf-8"))

        metrics: List[Metric] = []
        received = 0
        while True:
            line = self._read_line()
            if line is None:
                # End of stream terminates the answer, but the session is gone
                self._drop()
                if received == 0:
                    raise FetchError(str(source), "connection closed by munin-node")
                break

            if line == TERMINATOR:
                break
            if not line.strip():
                continue
            if line.startswith("#"):
                if line.lower().startswith("# unknown service"):
                    self._skip_to_terminator()
                    raise FetchError(str(source), "unknown service")
                # Banner and other comments
                logger.debug(f"munin-node: {line}")
                continue
            if line.startswith("multigraph "):
                continue

            received += 1

            try:
                metric = parse_fetch_line(line, source)
            except ValueError as e:
                logger.warning(f"Source {source}: skipping {e}")
                continue
            if metric is not None:
                metrics.append(metric)

        logger.debug(f"Source {source}: {len(metrics)} metrics")
        return metrics

    def _skip_to_terminator(self) -> None:
        while True:
            line = self._read_line()
            if line is None:
                self._drop()
                return
            if line == TERMINATOR:
                return

    def fetch_all(self, sources: Iterable[SourceSpec]) -> FetchResult:
        """
        Fetch every source, recording failures per source.

        Returns:
            FetchResult with metrics of answering sources and failure reasons
        """
        result = FetchResult()
        try:
            for source in sources:
                key = str(source)
                try:
                    result.metrics[key] = self.fetch(source)
                except FetchError as e:
                    logger.warning(f"Fetch failed for source {key}: {e.reason}")
                    result.failures[key] = e.reason
                except OSError as e:
                    logger.warning(
                        f"Fetch failed for source {key} "
                        f"({self.host}:{self.port}): {e}"
                    )
                    result.failures[key] = str(e) or e.__class__.__name__
                    self._drop()
        finally:
            self.close()
        return result

    def __enter__(self) -> "MuninClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
