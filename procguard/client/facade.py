import logging
import threading
from typing import Any, Callable, List, Optional

from procguard.channel import ChannelSession, NamedPipeTransport, PipeTransport
from procguard.config import effective_settings as config
from procguard.client import self_monitor
from procguard.errors import (
    ApplicationError, ChannelConnectionError, ProcessGuardError, Result, ServiceErrorKind, ServiceManagementError,
)
from procguard.heartbeat import HeartbeatSupervisor
from procguard.protocol import (
    AddRequest, HeartbeatRequest, ListRequest, MonitorItem, RemoveRequest, Request, ServiceStatus,
    StartRequest, StatusRequest, StopRequest, UpdateRequest, decode_response, encode_request,
)
from procguard.service import ServiceController, ServiceState

log = logging.getLogger(__name__)

HeartbeatFailedCallback = Callable[[str], Any]
ConnectionChangedCallback = Callable[[bool], Any]


class Client:
    """
    The public entry point for talking to the ProcessGuard supervisor.

    Every operation returns its own `Result`, which is truthy on success and
    carries the error otherwise. Monitor-item operations go over a
    connect-per-call pipe channel; service operations go through the
    service-manager controller. Heartbeat reporters run on daemon threads and
    share the same channel.

    Use it as a context manager, or call `close()`, to stop every heartbeat
    reporter and drop the connection.
    """

    def __init__(
        self,
        pipe_name: Optional[str] = None,
        transport: Optional[PipeTransport] = None,
        service_controller: Optional[ServiceController] = None,
        connect_timeout: Optional[float] = None,
        heartbeat_interval: Optional[float] = None,
    ) -> None:
        """
        :param pipe_name: Name of the supervisor pipe; ignored when `transport` is given.
        :param transport: Endpoint used by the channel. Defaults to the Windows named pipe.
        :param service_controller: Controller for the supervisor service. Defaults to the Windows SCM.
        :param connect_timeout: Seconds an implicit connect keeps retrying a busy pipe.
        :param heartbeat_interval: Default seconds between two heartbeats of one reporter.
        """
        if transport is None:
            transport = NamedPipeTransport(pipe_name or config.PIPE_NAME)
        self.connect_timeout = config.CONNECT_TIMEOUT if connect_timeout is None else connect_timeout
        self.heartbeat_interval = config.HEARTBEAT_INTERVAL if heartbeat_interval is None else heartbeat_interval

        self._session = ChannelSession(transport, buffer_size=config.PIPE_BUFFER_SIZE)
        self._heartbeats = HeartbeatSupervisor(self.send_heartbeat)
        self._service = service_controller or ServiceController(
            service_name=config.SERVICE_NAME,
            display_name=config.SERVICE_DISPLAY_NAME,
            poll_attempts=config.SERVICE_POLL_ATTEMPTS,
            poll_interval=config.SERVICE_POLL_INTERVAL,
            stop_grace=config.UNINSTALL_STOP_GRACE,
        )

        self._state_lock = threading.Lock()
        self._connected = False
        self._self_monitor_id = ""
        self._heartbeat_failed_callback: Optional[HeartbeatFailedCallback] = None
        self._connection_changed_callback: Optional[ConnectionChangedCallback] = None

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def close(self) -> None:
        """Stops every heartbeat reporter, then disconnects."""
        self._heartbeats.stop_all()
        self.disconnect()

    #* --- Static helpers ---
    @staticmethod
    def get_current_exe_path() -> str:
        return self_monitor.get_current_exe_path()

    @staticmethod
    def get_current_exe_dir() -> str:
        return self_monitor.get_current_exe_dir()

    #* --- Callbacks ---
    def set_heartbeat_failed_callback(self, callback: Optional[HeartbeatFailedCallback]) -> None:
        """Registers `callback(item_id)`, called whenever a heartbeat is not accepted."""
        self._heartbeat_failed_callback = callback

    def set_connection_changed_callback(self, callback: Optional[ConnectionChangedCallback]) -> None:
        """
        Registers `callback(connected)`.

        It is called with the outcome of every explicit `connect()` and on
        `disconnect()`. Reconnects done implicitly by other operations only
        report a change in reachability.
        """
        self._connection_changed_callback = callback

    def _notify_connection(self, connected: bool) -> None:
        callback = self._connection_changed_callback
        if callback is None:
            return
        try:
            callback(connected)
        except Exception as e:
            log.error(f"Connection-changed callback raised: {e}", exc_info=True)

    def _set_connected(self, connected: bool, always_notify: bool = False) -> None:
        with self._state_lock:
            changed = self._connected != connected
            self._connected = connected
        if changed or always_notify:
            self._notify_connection(connected)

    #* --- Connection ---
    @property
    def is_connected(self) -> bool:
        """Outcome of the most recent channel operation; no connection is held between calls."""
        with self._state_lock:
            return self._connected

    def connect(self, timeout: Optional[float] = None) -> Result[None]:
        """
        Opens the channel to the supervisor.

        :param timeout: Seconds to keep retrying a busy pipe, defaults to `connect_timeout`.
        """
        timeout = self.connect_timeout if timeout is None else timeout
        try:
            self._session.connect(timeout)
        except ChannelConnectionError as e:
            log.debug(f"Connect failed: {e}")
            self._set_connected(False, always_notify=True)
            return Result.failure(e)
        self._set_connected(True, always_notify=True)
        return Result.success()

    def disconnect(self) -> None:
        self._session.disconnect()
        self._set_connected(False, always_notify=True)

    def _request(self, request: Request, operation: str) -> Result[Any]:
        """Performs one exchange and converts every failure into a `Result`."""
        try:
            raw = self._session.exchange(encode_request(request), self.connect_timeout)
        except ChannelConnectionError as e:
            log.debug(f"{operation} failed on the channel: {e}")
            self._set_connected(False)
            return Result.failure(e)
        except ProcessGuardError as e:
            self._set_connected(True)
            log.debug(f"{operation} failed: {e}")
            return Result.failure(e)
        except Exception as e:
            self._set_connected(False)
            log.error(f"Unexpected error during {operation}: {e}", exc_info=True)
            return Result.failure(ApplicationError(f"{operation} error: {e}"))

        self._set_connected(True)
        try:
            response = decode_response(raw, request)
        except ProcessGuardError as e:
            log.warning(f"{operation} returned an undecodable response: {e}")
            return Result.failure(e)
        except Exception as e:
            log.error(f"Unexpected error while decoding the {operation} response: {e}", exc_info=True)
            return Result.failure(ApplicationError(f"{operation} error: {e}"))

        if not response.success:
            return Result.failure(ApplicationError(response.message or "Unknown error"))
        return Result.success(response.value, decode_error=response.last_skipped)

    #* --- Monitor items ---
    def add_monitor_item(self, item: MonitorItem) -> Result[None]:
        """
        Registers a new item with the supervisor.

        The item is rejected before anything is sent if its id, executable
        path or name is empty, or if another item already monitors the same
        executable path. A list with skipped entries cannot rule out a
        duplicate, so the add is refused in that case too.
        """
        invalid = _validate_item(item)
        if invalid is not None:
            return invalid

        existing = self.get_all_monitor_items()
        if not existing:
            return Result.failure(existing.error)
        if existing.decode_error is not None:
            return Result.failure(ApplicationError(
                f"Cannot verify that the executable path is not monitored yet: {existing.decode_error}"
            ))
        wanted = item.exe_path.lower()
        if any(other.exe_path.lower() == wanted for other in existing.value or []):
            return Result.failure(ApplicationError("Executable path already monitored"))

        result = self._request(AddRequest(item), "AddMonitorItem")
        if result:
            log.info(f"Monitor item '{item.id}' added for '{item.exe_path}'.")
        return result

    def update_monitor_item(self, item: MonitorItem) -> Result[None]:
        invalid = _validate_item(item)
        if invalid is not None:
            return invalid
        return self._request(UpdateRequest(item), "UpdateMonitorItem")

    def remove_monitor_item(self, item_id: str) -> Result[None]:
        if not item_id:
            return Result.failure(ApplicationError("Item ID cannot be empty"))
        result = self._request(RemoveRequest(item_id), "RemoveMonitorItem")
        if result:
            log.info(f"Monitor item '{item_id}' removed.")
        return result

    def start_monitor_item(self, item_id: str) -> Result[None]:
        if not item_id:
            return Result.failure(ApplicationError("Item ID cannot be empty"))
        return self._request(StartRequest(item_id), "StartMonitorItem")

    def stop_monitor_item(self, item_id: str) -> Result[None]:
        if not item_id:
            return Result.failure(ApplicationError("Item ID cannot be empty"))
        return self._request(StopRequest(item_id), "StopMonitorItem")

    def pause_monitor_item(self, item_id: str) -> Result[None]:
        """Stops watching the item; the supervisor keeps it registered."""
        return self.stop_monitor_item(item_id)

    def resume_monitor_item(self, item_id: str) -> Result[None]:
        return self.start_monitor_item(item_id)

    def get_all_monitor_items(self) -> Result[List[MonitorItem]]:
        """
        Lists every registered item.

        Malformed entries are skipped; the last skip is reported as
        `decode_error` on an otherwise successful result.
        """
        return self._request(ListRequest(), "GetAllMonitorItems")

    def get_service_status(self) -> Result[ServiceStatus]:
        return self._request(StatusRequest(), "GetServiceStatus")

    #* --- Heartbeats ---
    def send_heartbeat(self, item_id: str) -> Result[None]:
        """Sends one heartbeat; the failure callback fires if it is not accepted."""
        result = self._request(HeartbeatRequest(item_id), "SendHeartbeat")
        if result:
            return result

        error = result.error
        if isinstance(error, ApplicationError):
            error = ApplicationError(f"Heartbeat failed: {error}")
            result = Result.failure(error)
        log.warning(f"Heartbeat for '{item_id}' was not accepted: {error}")

        callback = self._heartbeat_failed_callback
        if callback is not None:
            try:
                callback(item_id)
            except Exception as e:
                log.error(f"Heartbeat-failed callback raised for '{item_id}': {e}", exc_info=True)
        return result

    def start_heartbeat_thread(self, item_id: str, interval: Optional[float] = None) -> bool:
        """
        Starts a background reporter for `item_id`.

        :param interval: Seconds between heartbeats, defaults to `heartbeat_interval`.
        :return bool: False if a reporter for this id is already running.
        """
        return self._heartbeats.start(item_id, self.heartbeat_interval if interval is None else interval)

    def stop_heartbeat_thread(self, item_id: str) -> bool:
        return self._heartbeats.stop(item_id)

    def stop_all_heartbeat_threads(self) -> None:
        self._heartbeats.stop_all()

    def active_heartbeats(self) -> List[str]:
        return self._heartbeats.active_ids()

    #* --- Service lifecycle ---
    def is_service_installed(self) -> bool:
        return self._service.is_installed()

    def is_service_running(self) -> bool:
        return self._service.is_running()

    def _service_call(self, operation: str, action: Callable[[], Any]) -> Result[Any]:
        try:
            return Result.success(action())
        except ServiceManagementError as e:
            log.error(f"{operation} failed: {e}")
            return Result.failure(e)
        except Exception as e:
            log.error(f"Unexpected error during {operation}: {e}", exc_info=True)
            return Result.failure(ServiceManagementError(ServiceErrorKind.OTHER, f"{operation} error: {e}"))

    def install_service(self, service_path: str) -> Result[None]:
        return self._service_call("InstallService", lambda: self._service.install(service_path))

    def uninstall_service(self) -> Result[None]:
        return self._service_call("UninstallService", self._service.uninstall)

    def start_service(self) -> Result[Optional[ServiceState]]:
        """Starts the service. The value is the last state observed while waiting for RUNNING."""
        return self._service_call("StartService", self._service.start)

    def stop_service(self) -> Result[Optional[ServiceState]]:
        """Stops the service. The value is the last state observed while waiting for STOPPED."""
        return self._service_call("StopService", self._service.stop)

    def quick_setup(self, service_path: str) -> Result[None]:
        """Installs the service if absent and starts it if not running, stopping at the first failure."""
        if not self.is_service_installed():
            result = self.install_service(service_path)
            if not result:
                return result
        if not self.is_service_running():
            result = self.start_service()
            if not result:
                return result
        return Result.success()

    def ensure_service_installed(self, service_path: str) -> Result[None]:
        return self.quick_setup(service_path)

    def ensure_service_running(self) -> Result[None]:
        if not self.is_service_installed():
            return Result.failure(ServiceManagementError(ServiceErrorKind.NOT_FOUND, "Service not found"))
        if self.is_service_running():
            return Result.success()
        result = self.start_service()
        return Result.success() if result else Result.failure(result.error)

    #* --- Self monitoring ---
    @property
    def self_monitor_id(self) -> str:
        return self._self_monitor_id

    def set_self_monitor_id(self, item_id: str) -> None:
        self._self_monitor_id = item_id

    def add_self_monitor(
        self,
        item_id: Optional[str] = None,
        heartbeat_timeout_ms: int = config.SELF_MONITOR_HEARTBEAT_TIMEOUT_MS,
    ) -> Result[None]:
        """
        Registers the current process with the supervisor.

        :param item_id: Id to register under, defaults to `self-<epoch ms>`.
        :param heartbeat_timeout_ms: How long the supervisor waits for a heartbeat before acting.
        """
        exe_path = self.get_current_exe_path()
        item = MonitorItem(
            id=item_id or self_monitor.new_self_monitor_id(),
            exe_path=exe_path,
            name=self_monitor.derive_display_name(exe_path),
            heartbeat_timeout_ms=heartbeat_timeout_ms,
        )
        result = self.add_monitor_item(item)
        if result:
            self._self_monitor_id = item.id
            log.info(f"Self monitor registered as '{item.id}'.")
        return result

    def _require_self_monitor(self) -> Optional[Result[None]]:
        if not self._self_monitor_id:
            return Result.failure(ApplicationError("Self monitor not set"))
        return None

    def remove_self_monitor(self) -> Result[None]:
        missing = self._require_self_monitor()
        if missing is not None:
            return missing
        return self.remove_monitor_item(self._self_monitor_id)

    def pause_self_monitor(self) -> Result[None]:
        missing = self._require_self_monitor()
        if missing is not None:
            return missing
        return self.pause_monitor_item(self._self_monitor_id)

    def resume_self_monitor(self) -> Result[None]:
        missing = self._require_self_monitor()
        if missing is not None:
            return missing
        return self.resume_monitor_item(self._self_monitor_id)

    def start_self_heartbeat(self, interval: Optional[float] = None) -> bool:
        if not self._self_monitor_id:
            log.warning("Cannot start the self heartbeat: self monitor not set.")
            return False
        return self.start_heartbeat_thread(self._self_monitor_id, interval)

    def stop_self_heartbeat(self) -> bool:
        if not self._self_monitor_id:
            return False
        return self._heartbeats.stop(self._self_monitor_id)


def _validate_item(item: MonitorItem) -> Optional[Result[None]]:
    """Returns a failed result if a required field of `item` is empty, otherwise None."""
    if not item.id:
        return Result.failure(ApplicationError("Item ID cannot be empty"))
    if not item.exe_path:
        return Result.failure(ApplicationError("Executable path cannot be empty"))
    if not item.name:
        return Result.failure(ApplicationError("Item name cannot be empty"))
    return None
