"""
Pid file used to keep a single agent instance per host.
"""

import logging
import os
from typing import Optional

from .errors import PidFileError

logger = logging.getLogger(__name__)


def _process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    return True


class PidFile:
    """
    Pid file holding the agent's process id.

    Usage:
        with PidFile("/var/run/agent.pid"):
            serve()
    """

    def __init__(self, path: str):
        self.path = path
        self.pid: Optional[int] = None

    def read(self) -> Optional[int]:
        """Pid stored in the file, None if missing or unreadable."""
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return int(f.read().strip())
        except (OSError, ValueError):
            return None

    def acquire(self) -> None:
        """
        Write our pid.

        Raises:
            PidFileError: Directory missing, file not writable, or another
                live instance holds the file
        """
        directory = os.path.dirname(os.path.abspath(self.path))
        if not os.path.isdir(directory):
            raise PidFileError(f"Pid file directory does not exist: {directory}")

        own_pid = os.getpid()
        existing = self.read()
        if existing is not None and existing != own_pid:
            if _process_alive(existing):
                raise PidFileError(
                    f"Another instance is running (pid {existing}, {self.path})"
                )
            logger.warning(f"Removing stale pid file {self.path} (pid {existing})")

        try:
            with open(self.path, 'w', encoding='utf-8') as f:
                f.write(f"{own_pid}\n")
        except OSError as e:
            raise PidFileError(f"Cannot write pid file {self.path}: {e}")

        self.pid = own_pid
        logger.debug(f"Pid file {self.path} written ({own_pid})")

    def release(self) -> None:
        """Remove the file if it still holds our pid."""
        if self.pid is None:
            return
        if self.read() == self.pid:
            try:
                os.remove(self.path)
                logger.debug(f"Pid file {self.path} removed")
            except OSError as e:
                logger.warning(f"Cannot remove pid file {self.path}: {e}")
        self.pid = None

    def __enter__(self) -> "PidFile":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()
