"""PID file for the ``mailkeep serve`` process.

``serve`` records its PID next to the database so that other mailkeep
commands (``mailbox add``) can wake it with SIGUSR1 and request an
immediate sync pass.
"""

from __future__ import annotations

import logging
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import AlreadyRunningError

logger = logging.getLogger(__name__)

PID_FILE_NAME = "serve.pid"

# SIGUSR1 does not exist on Windows
SYNC_SIGNAL: Optional[signal.Signals] = getattr(signal, "SIGUSR1", None)


@dataclass
class ServerStatus:
    """Whether a sync server is running, according to the PID file."""

    running: bool
    pid: Optional[int] = None
    stale_pid_file: bool = False

    def __str__(self) -> str:
        if self.running:
            return f"serve running as PID {self.pid}"
        if self.stale_pid_file:
            return f"serve not running (stale PID {self.pid})"
        return "serve not running"


def pid_file_for(database_path: Path) -> Path:
    """PID file location for the server using ``database_path``."""
    return Path(database_path).parent / PID_FILE_NAME


class PIDFileManager:
    """Reads and writes the server PID file."""

    def __init__(self, pid_file_path: Path) -> None:
        self._path = Path(pid_file_path)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, pid: Optional[int] = None) -> None:
        """Record ``pid`` (default: this process).

        Raises:
            AlreadyRunningError: If another live server owns the file
        """
        status = self.status()
        if status.running and status.pid != os.getpid():
            raise AlreadyRunningError(
                f"mailkeep serve already running with PID {status.pid}",
                details={"pid": status.pid, "pid_file": str(self._path)},
            )
        if status.stale_pid_file:
            logger.info(f"Removing stale PID file for PID {status.pid}")

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(str(pid or os.getpid()), encoding="utf-8")

    def read(self) -> Optional[int]:
        if not self._path.exists():
            return None
        try:
            return int(self._path.read_text(encoding="utf-8").strip())
        except (ValueError, OSError):
            return None

    def remove(self) -> None:
        self._path.unlink(missing_ok=True)

    def status(self) -> ServerStatus:
        pid = self.read()
        if pid is None:
            return ServerStatus(running=False)
        if self._is_process_running(pid):
            return ServerStatus(running=True, pid=pid)
        return ServerStatus(running=False, pid=pid, stale_pid_file=True)

    def request_sync(self) -> bool:
        """Send the sync signal to a running server.

        Returns:
            True if a server was signalled
        """
        if SYNC_SIGNAL is None:
            return False
        status = self.status()
        if not status.running or status.pid is None:
            return False
        # the default SIGUSR1 action terminates the process
        if status.pid == os.getpid() and signal.getsignal(SYNC_SIGNAL) in (
            signal.SIG_DFL,
            None,
        ):
            logger.debug("PID file names this process but no sync handler is installed")
            return False
        try:
            os.kill(status.pid, SYNC_SIGNAL)
        except OSError as exc:
            logger.warning(f"Could not signal sync server (PID {status.pid}): {exc}")
            return False
        logger.info(f"Requested sync from server (PID {status.pid})")
        return True

    @staticmethod
    def _is_process_running(pid: int) -> bool:
        try:
            # signal 0 only checks that the process exists
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True


__all__ = [
    "PID_FILE_NAME",
    "PIDFileManager",
    "SYNC_SIGNAL",
    "ServerStatus",
    "pid_file_for",
]
