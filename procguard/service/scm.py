"""
Windows Service Control Manager backend.

Thin ctypes bindings over advapi32. Every function raises
`ServiceManagementError` on failure, classified by the Win32 error code.
Handle lifetime is the caller's responsibility (see `ServiceController`).
"""
import sys
import ctypes
import logging
from enum import IntEnum
from typing import Any, Protocol

from procguard.errors import ServiceErrorKind, ServiceManagementError

log = logging.getLogger(__name__)

#* --- Access rights ---
SC_MANAGER_CONNECT = 0x0001
SC_MANAGER_CREATE_SERVICE = 0x0002
SERVICE_QUERY_STATUS = 0x0004
SERVICE_START = 0x0010
SERVICE_STOP = 0x0020
DELETE = 0x00010000
SERVICE_ALL_ACCESS = 0x000F01FF

#* --- CreateService parameters ---
SERVICE_WIN32_OWN_PROCESS = 0x00000010
SERVICE_AUTO_START = 0x00000002
SERVICE_ERROR_NORMAL = 0x00000001
SERVICE_CONTROL_STOP = 0x00000001

#* --- Win32 error codes ---
ERROR_ACCESS_DENIED = 5
ERROR_SERVICE_REQUEST_TIMEOUT = 1053
ERROR_SERVICE_ALREADY_RUNNING = 1056
ERROR_SERVICE_DOES_NOT_EXIST = 1060
ERROR_SERVICE_NOT_ACTIVE = 1062
ERROR_SERVICE_EXISTS = 1073

_ERROR_KINDS = {
    ERROR_ACCESS_DENIED: ServiceErrorKind.ACCESS_DENIED,
    ERROR_SERVICE_REQUEST_TIMEOUT: ServiceErrorKind.TIMEOUT,
    ERROR_SERVICE_DOES_NOT_EXIST: ServiceErrorKind.NOT_FOUND,
    ERROR_SERVICE_EXISTS: ServiceErrorKind.ALREADY_EXISTS,
}


class ServiceState(IntEnum):
    """`dwCurrentState` values reported by QueryServiceStatus."""
    STOPPED = 1
    START_PENDING = 2
    STOP_PENDING = 3
    RUNNING = 4
    CONTINUE_PENDING = 5
    PAUSE_PENDING = 6
    PAUSED = 7


class SERVICE_STATUS(ctypes.Structure):
    _fields_ = [
        ("dwServiceType", ctypes.c_uint32),
        ("dwCurrentState", ctypes.c_uint32),
        ("dwControlsAccepted", ctypes.c_uint32),
        ("dwWin32ExitCode", ctypes.c_uint32),
        ("dwServiceSpecificExitCode", ctypes.c_uint32),
        ("dwCheckPoint", ctypes.c_uint32),
        ("dwWaitHint", ctypes.c_uint32),
    ]


class ServiceManagerBackend(Protocol):
    """The service-manager primitives the controller is built on."""

    def open_manager(self, access: int) -> Any: ...
    def open_service(self, manager: Any, name: str, access: int) -> Any: ...
    def create_service(self, manager: Any, name: str, display_name: str, binary_path: str) -> Any: ...
    def delete_service(self, service: Any) -> None: ...
    def start_service(self, service: Any) -> None: ...
    def control_stop(self, service: Any) -> None: ...
    def query_state(self, service: Any) -> ServiceState: ...
    def close_handle(self, handle: Any) -> None: ...


def service_error(code: int, action: str) -> ServiceManagementError:
    """Builds a classified error for a failed primitive."""
    kind = _ERROR_KINDS.get(code, ServiceErrorKind.OTHER)
    if kind is ServiceErrorKind.NOT_FOUND:
        message = "Service not found"
    elif kind is ServiceErrorKind.ALREADY_EXISTS:
        message = "Service already exists"
    elif kind is ServiceErrorKind.ACCESS_DENIED:
        message = f"Access denied while trying to {action} (administrator rights required)"
    else:
        message = f"Failed to {action}: error {code}"
    return ServiceManagementError(kind, message, code)


class WindowsServiceManager:
    """`ServiceManagerBackend` backed by advapi32."""

    def __init__(self) -> None:
        if sys.platform != "win32":
            raise ServiceManagementError(
                ServiceErrorKind.UNAVAILABLE, "The Windows service manager is not available on this platform"
            )
        self._advapi = ctypes.WinDLL("advapi32", use_last_error=True)
        self._bind()

    def _bind(self) -> None:
        api = self._advapi
        handle, dword, wstr = ctypes.c_void_p, ctypes.c_uint32, ctypes.c_wchar_p

        api.OpenSCManagerW.argtypes = [wstr, wstr, dword]
        api.OpenSCManagerW.restype = handle
        api.OpenServiceW.argtypes = [handle, wstr, dword]
        api.OpenServiceW.restype = handle
        api.CreateServiceW.argtypes = [
            handle, wstr, wstr, dword, dword, dword, dword, wstr, wstr,
            ctypes.c_void_p, wstr, wstr, wstr,
        ]
        api.CreateServiceW.restype = handle
        api.DeleteService.argtypes = [handle]
        api.DeleteService.restype = ctypes.c_int
        api.StartServiceW.argtypes = [handle, dword, ctypes.c_void_p]
        api.StartServiceW.restype = ctypes.c_int
        api.ControlService.argtypes = [handle, dword, ctypes.POINTER(SERVICE_STATUS)]
        api.ControlService.restype = ctypes.c_int
        api.QueryServiceStatus.argtypes = [handle, ctypes.POINTER(SERVICE_STATUS)]
        api.QueryServiceStatus.restype = ctypes.c_int
        api.CloseServiceHandle.argtypes = [handle]
        api.CloseServiceHandle.restype = ctypes.c_int

    def open_manager(self, access: int) -> int:
        scm = self._advapi.OpenSCManagerW(None, None, access)
        if not scm:
            raise service_error(ctypes.get_last_error(), "open the service control manager")
        return scm

    def open_service(self, manager: int, name: str, access: int) -> int:
        svc = self._advapi.OpenServiceW(manager, name, access)
        if not svc:
            raise service_error(ctypes.get_last_error(), f"open service '{name}'")
        return svc

    def create_service(self, manager: int, name: str, display_name: str, binary_path: str) -> int:
        svc = self._advapi.CreateServiceW(
            manager, name, display_name,
            SERVICE_ALL_ACCESS, SERVICE_WIN32_OWN_PROCESS,
            SERVICE_AUTO_START, SERVICE_ERROR_NORMAL,
            binary_path, None, None, None, None, None,
        )
        if not svc:
            raise service_error(ctypes.get_last_error(), "create service")
        return svc

    def delete_service(self, service: int) -> None:
        if not self._advapi.DeleteService(service):
            raise service_error(ctypes.get_last_error(), "delete service")

    def start_service(self, service: int) -> None:
        if not self._advapi.StartServiceW(service, 0, None):
            raise service_error(ctypes.get_last_error(), "start service")

    def control_stop(self, service: int) -> None:
        status = SERVICE_STATUS()
        if not self._advapi.ControlService(service, SERVICE_CONTROL_STOP, ctypes.byref(status)):
            raise service_error(ctypes.get_last_error(), "stop service")

    def query_state(self, service: int) -> ServiceState:
        status = SERVICE_STATUS()
        if not self._advapi.QueryServiceStatus(service, ctypes.byref(status)):
            raise service_error(ctypes.get_last_error(), "query service status")
        return ServiceState(status.dwCurrentState)

    def close_handle(self, handle: int) -> None:
        if handle and not self._advapi.CloseServiceHandle(handle):
            log.debug(f"CloseServiceHandle failed with error {ctypes.get_last_error()}")
