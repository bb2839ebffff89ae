import time
import logging
import threading
from typing import BinaryIO, Optional

from procguard.channel.pipe import PipeTransport
from procguard.settings import PIPE_BUFFER_SIZE
from procguard.errors import ChannelConnectionError, ChannelUnavailableError, PipeBusyError, ProtocolError

log = logging.getLogger(__name__)


class ChannelSession:
    """
    Owns at most one transient connection to the supervisor's pipe.

    The protocol is connect-per-call: a connection carries exactly one
    request/response exchange and is closed right after it, whatever the
    outcome. Every operation runs under a single lock, so only one request is
    ever in flight and concurrent callers never interleave on the handle.
    """

    def __init__(self, transport: PipeTransport, buffer_size: int = PIPE_BUFFER_SIZE) -> None:
        """
        :param transport: The endpoint to open connections on.
        :param buffer_size: Maximum accepted size of a single response, in bytes.
        """
        self.transport = transport
        self.buffer_size = buffer_size
        self._lock = threading.Lock()
        self._handle: Optional[BinaryIO] = None

    @property
    def is_connected(self) -> bool:
        return self._handle is not None

    def connect(self, timeout: float) -> None:
        """
        Opens the channel, retrying while the endpoint is busy until `timeout` elapses.

        :param timeout: Seconds to keep retrying a busy endpoint. Zero means a single attempt.
        :raises ChannelUnavailableError: If the channel could not be opened.
        """
        with self._lock:
            self._connect_locked(timeout)

    def send_request(self, payload: bytes) -> bytes:
        """
        Writes one request and reads one response, then closes the channel.

        :param payload: The encoded request.
        :return: The raw response bytes.
        :raises ChannelConnectionError: If not connected, or on a write/read failure.
        :raises ProtocolError: If the response exceeds the buffer size.
        """
        with self._lock:
            return self._send_locked(payload)

    def exchange(self, payload: bytes, connect_timeout: float) -> bytes:
        """
        Connects if needed and performs one exchange without releasing the lock
        in between, so no other caller can take over the fresh connection.
        """
        with self._lock:
            if self._handle is None:
                self._connect_locked(connect_timeout)
            return self._send_locked(payload)

    def disconnect(self) -> None:
        """Closes the channel. Safe to call when already disconnected."""
        with self._lock:
            self._close_locked()

    def _connect_locked(self, timeout: float) -> None:
        self._close_locked()
        deadline = time.monotonic() + max(timeout, 0.0)

        while True:
            try:
                self._handle = self.transport.open()
                log.debug("Connected to supervisor pipe.")
                return
            except PipeBusyError:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ChannelUnavailableError(f"Supervisor pipe stayed busy for {timeout:.2f}s")
                self.transport.wait(remaining)
            except FileNotFoundError as e:
                raise ChannelUnavailableError("Failed to connect to service pipe: pipe not found") from e
            except OSError as e:
                raise ChannelUnavailableError(f"Failed to connect to service pipe: {e}") from e

    def _send_locked(self, payload: bytes) -> bytes:
        if self._handle is None:
            raise ChannelConnectionError("Not connected")

        try:
            written = self._handle.write(payload)
            if written != len(payload):
                raise ChannelConnectionError("Write failed")
            # One byte past the buffer tells an oversized response from a full one.
            response = self._handle.read(self.buffer_size + 1)
        except OSError as e:
            raise ChannelConnectionError(f"Pipe I/O failed: {e}") from e
        finally:
            self._close_locked()

        if not response:
            raise ChannelConnectionError("Read failed")
        if len(response) > self.buffer_size:
            raise ProtocolError(f"Response exceeds the {self.buffer_size} byte buffer")
        return response

    def _close_locked(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.close()
        except OSError as e:
            log.debug(f"Ignoring error while closing supervisor pipe: {e}")
