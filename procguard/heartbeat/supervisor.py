import logging
import threading
from typing import Any, Callable, Dict, List

log = logging.getLogger(__name__)


class _Reporter:
    """One background thread sending heartbeats for a single item id."""

    def __init__(self, item_id: str, interval: float, send: Callable[[str], Any]) -> None:
        self.item_id = item_id
        self.interval = interval
        self._send = send
        # Owned by this reporter; the registry is never consulted from inside the loop.
        self.cancelled = threading.Event()
        self.thread = threading.Thread(
            target=self._run,
            daemon=True,
            name=f"HeartbeatThread-{item_id}",
        )

    def _run(self) -> None:
        log.debug(f"Heartbeat reporter for '{self.item_id}' started (interval {self.interval}s).")
        while not self.cancelled.is_set():
            try:
                self._send(self.item_id)
            except Exception as e:
                log.error(f"Heartbeat for '{self.item_id}' raised unexpectedly: {e}", exc_info=True)
            if self.cancelled.wait(self.interval):
                break
        log.debug(f"Heartbeat reporter for '{self.item_id}' has stopped.")

    def start(self) -> None:
        self.thread.start()

    def cancel(self) -> None:
        self.cancelled.set()

    def join(self) -> None:
        # A reporter asked to stop itself (e.g. from a failure callback) cannot join its own thread.
        if self.thread is not threading.current_thread():
            self.thread.join()

    def is_alive(self) -> bool:
        return self.thread.is_alive()


class HeartbeatSupervisor:
    """
    Keeps at most one background heartbeat reporter per item id.

    The registry lock only guards the id -> reporter mapping. It is never held
    while a reporter is joined, so registry changes never wait on an
    in-flight request. An entry is removed only once its reporter has exited.
    """

    def __init__(self, send: Callable[[str], Any]) -> None:
        """
        :param send: Sends one heartbeat for an item id. Called from the reporter threads.
        """
        self._send = send
        self._lock = threading.Lock()
        self._reporters: Dict[str, _Reporter] = {}

    def start(self, item_id: str, interval: float) -> bool:
        """
        Starts reporting heartbeats for `item_id` every `interval` seconds.

        :return: True if a new reporter was started, False if one is already running.
        """
        while True:
            with self._lock:
                reporter = self._reporters.get(item_id)
                if reporter is None or (reporter.cancelled.is_set() and not reporter.is_alive()):
                    reporter = _Reporter(item_id, interval, self._send)
                    self._reporters[item_id] = reporter
                    reporter.start()
                    log.info(f"Heartbeat thread started for '{item_id}'.")
                    return True
                if not reporter.cancelled.is_set():
                    return False
            # A stop for this id is in progress; wait for the old reporter to exit first.
            reporter.join()

    def stop(self, item_id: str) -> bool:
        """
        Signals the reporter for `item_id` and blocks until its thread has exited.

        :return: True if a reporter was stopped, False if none was running.
        """
        with self._lock:
            reporter = self._reporters.get(item_id)
            if reporter is None:
                return False
            reporter.cancel()

        reporter.join()

        with self._lock:
            if self._reporters.get(item_id) is reporter:
                del self._reporters[item_id]
        log.info(f"Heartbeat thread stopped for '{item_id}'.")
        return True

    def stop_all(self) -> None:
        """Cancels and joins every reporter, leaving the registry empty."""
        with self._lock:
            reporters = list(self._reporters.values())
            for reporter in reporters:
                reporter.cancel()

        for reporter in reporters:
            reporter.join()

        with self._lock:
            for reporter in reporters:
                if self._reporters.get(reporter.item_id) is reporter:
                    del self._reporters[reporter.item_id]
        if reporters:
            log.info(f"Stopped {len(reporters)} heartbeat thread(s).")

    def is_running(self, item_id: str) -> bool:
        with self._lock:
            reporter = self._reporters.get(item_id)
            return reporter is not None and not reporter.cancelled.is_set()

    def active_ids(self) -> List[str]:
        with self._lock:
            return [item_id for item_id, r in self._reporters.items() if not r.cancelled.is_set()]
