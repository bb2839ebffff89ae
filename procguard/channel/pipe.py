"""
OS transport for the supervisor channel: the client end of a Windows named pipe.
"""
import sys
import time
import ctypes
import logging
from typing import BinaryIO, Protocol

from procguard.errors import PipeBusyError
from procguard.settings import PIPE_BUSY_RETRY_DELAY

log = logging.getLogger(__name__)

ERROR_PIPE_BUSY = 231
ERROR_SEM_TIMEOUT = 121


class PipeTransport(Protocol):
    """What the channel session needs from an endpoint."""

    def open(self) -> BinaryIO:
        """
        Opens one connection to the endpoint.

        :raises PipeBusyError: If every endpoint instance is busy.
        :raises FileNotFoundError: If the endpoint does not exist.
        """
        ...

    def wait(self, timeout: float) -> None:
        """Blocks for at most `timeout` seconds until an instance may be free."""
        ...


class NamedPipeTransport:
    """Opens `\\\\.\\pipe\\<name>` as an unbuffered binary file."""

    def __init__(self, pipe_name: str) -> None:
        self.pipe_name = pipe_name
        self.path = rf"\\.\pipe\{pipe_name}"

    def open(self) -> BinaryIO:
        try:
            return open(self.path, "r+b", buffering=0)
        except OSError as e:
            if getattr(e, "winerror", None) == ERROR_PIPE_BUSY:
                raise PipeBusyError(e.errno, f"Pipe '{self.path}' is busy") from e
            raise

    def wait(self, timeout: float) -> None:
        if sys.platform != "win32":
            time.sleep(min(timeout, PIPE_BUSY_RETRY_DELAY))
            return

        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
        kernel32.WaitNamedPipeW.argtypes = [ctypes.c_wchar_p, ctypes.c_uint32]
        kernel32.WaitNamedPipeW.restype = ctypes.c_int
        # A zero timeout would mean "use the server default", so always wait at least 1ms.
        timeout_ms = max(1, int(timeout * 1000))
        if not kernel32.WaitNamedPipeW(self.path, timeout_ms):
            error = ctypes.get_last_error()
            if error != ERROR_SEM_TIMEOUT:
                log.debug(f"WaitNamedPipeW on '{self.path}' returned error {error}")
