import time
import logging
from contextlib import contextmanager
from typing import Any, Callable, Generator, Optional

from procguard.errors import ServiceErrorKind, ServiceManagementError
from procguard.settings import (
    SERVICE_DISPLAY_NAME, SERVICE_NAME, SERVICE_POLL_ATTEMPTS, SERVICE_POLL_INTERVAL, UNINSTALL_STOP_GRACE,
)
from procguard.service.scm import (
    DELETE, ERROR_SERVICE_ALREADY_RUNNING, ERROR_SERVICE_NOT_ACTIVE, SC_MANAGER_CONNECT, SC_MANAGER_CREATE_SERVICE,
    SERVICE_QUERY_STATUS, SERVICE_START, SERVICE_STOP, ServiceManagerBackend, ServiceState, WindowsServiceManager,
)

log = logging.getLogger(__name__)


class ServiceController:
    """
    Install/uninstall/start/stop for the supervisor's OS service.

    Each operation opens its service-manager handles, performs one primitive
    and releases every handle before returning; nothing is held between calls.
    `start` and `stop` poll the reported state for a bounded time.
    """

    def __init__(
        self,
        backend: Optional[ServiceManagerBackend] = None,
        service_name: str = SERVICE_NAME,
        display_name: str = SERVICE_DISPLAY_NAME,
        poll_attempts: int = SERVICE_POLL_ATTEMPTS,
        poll_interval: float = SERVICE_POLL_INTERVAL,
        stop_grace: float = UNINSTALL_STOP_GRACE,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        :param backend: Service-manager primitives. Defaults to the Windows SCM, created on first use.
        :param service_name: Registry name of the supervisor service.
        :param display_name: Display name used when installing.
        :param poll_attempts: How many times `start`/`stop` query the state.
        :param poll_interval: Seconds between two state queries.
        :param stop_grace: Seconds `uninstall` waits after stopping a running service.
        :param sleep: Sleep function, replaceable in tests.
        """
        self._backend = backend
        self.service_name = service_name
        self.display_name = display_name
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self.stop_grace = stop_grace
        self._sleep = sleep

    @property
    def backend(self) -> ServiceManagerBackend:
        if self._backend is None:
            self._backend = WindowsServiceManager()
        return self._backend

    #* --- Scoped handles ---
    @contextmanager
    def _manager(self, access: int) -> Generator[Any, None, None]:
        backend = self.backend
        scm = backend.open_manager(access)
        try:
            yield scm
        finally:
            backend.close_handle(scm)

    @contextmanager
    def _service(self, access: int, manager_access: int = SC_MANAGER_CONNECT) -> Generator[Any, None, None]:
        with self._manager(manager_access) as scm:
            svc = self.backend.open_service(scm, self.service_name, access)
            try:
                yield svc
            finally:
                self.backend.close_handle(svc)

    #* --- Queries ---
    def is_installed(self) -> bool:
        try:
            with self._service(SERVICE_QUERY_STATUS):
                return True
        except ServiceManagementError as e:
            if e.kind is not ServiceErrorKind.NOT_FOUND:
                log.debug(f"Could not determine whether '{self.service_name}' is installed: {e}")
            return False

    def is_running(self) -> bool:
        return self.query_state() == ServiceState.RUNNING

    def query_state(self) -> Optional[ServiceState]:
        """Returns the current service state, or None if it cannot be queried."""
        try:
            with self._service(SERVICE_QUERY_STATUS) as svc:
                return self.backend.query_state(svc)
        except ServiceManagementError as e:
            log.debug(f"Could not query state of '{self.service_name}': {e}")
            return None

    #* --- Lifecycle ---
    def install(self, binary_path: str) -> None:
        """
        Registers the supervisor executable as an auto-start service.

        :param binary_path: Filesystem path of the service executable.
        :raises ServiceManagementError: With kind ALREADY_EXISTS if the service is registered already.
        """
        if not binary_path:
            raise ServiceManagementError(ServiceErrorKind.OTHER, "Service executable path cannot be empty")

        with self._manager(SC_MANAGER_CREATE_SERVICE) as scm:
            svc = self.backend.create_service(scm, self.service_name, self.display_name, binary_path)
            self.backend.close_handle(svc)
        log.info(f"Service '{self.service_name}' installed for '{binary_path}'.")

    def uninstall(self) -> None:
        """Stops the service if it is running, waits a short grace period, then deletes it."""
        with self._service(SERVICE_STOP | SERVICE_QUERY_STATUS | DELETE) as svc:
            try:
                running = self.backend.query_state(svc) == ServiceState.RUNNING
            except ServiceManagementError as e:
                log.debug(f"Could not query state before uninstall: {e}")
                running = False

            if running:
                try:
                    self.backend.control_stop(svc)
                except ServiceManagementError as e:
                    log.warning(f"Stop request before uninstall failed: {e}")
                self._sleep(self.stop_grace)

            self.backend.delete_service(svc)
        log.info(f"Service '{self.service_name}' uninstalled.")

    def start(self) -> Optional[ServiceState]:
        """
        Starts the service and waits for it to report RUNNING.

        Success means the start command was accepted (or the service was
        already running); the last observed state is returned.
        """
        with self._service(SERVICE_START | SERVICE_QUERY_STATUS) as svc:
            try:
                self.backend.start_service(svc)
            except ServiceManagementError as e:
                if e.code != ERROR_SERVICE_ALREADY_RUNNING:
                    raise
                log.debug(f"Service '{self.service_name}' is already running.")
            state = self._wait_for_state(svc, ServiceState.RUNNING)
        log.info(f"Service '{self.service_name}' start requested (state: {_state_name(state)}).")
        return state

    def stop(self) -> Optional[ServiceState]:
        """
        Stops the service and waits for it to report STOPPED.

        Success means the stop command was accepted; the polled final state
        is returned but not enforced.
        """
        with self._service(SERVICE_STOP | SERVICE_QUERY_STATUS) as svc:
            try:
                self.backend.control_stop(svc)
            except ServiceManagementError as e:
                if e.code != ERROR_SERVICE_NOT_ACTIVE:
                    raise
                log.debug(f"Service '{self.service_name}' is not running.")
                return ServiceState.STOPPED
            state = self._wait_for_state(svc, ServiceState.STOPPED)
        log.info(f"Service '{self.service_name}' stop requested (state: {_state_name(state)}).")
        return state

    def _wait_for_state(self, svc: Any, target: ServiceState) -> Optional[ServiceState]:
        state: Optional[ServiceState] = None
        for _ in range(self.poll_attempts):
            try:
                state = self.backend.query_state(svc)
            except ServiceManagementError as e:
                log.debug(f"State query failed while waiting for {target.name}: {e}")
            else:
                if state == target:
                    return state
            self._sleep(self.poll_interval)

        log.warning(
            f"Service '{self.service_name}' did not reach {target.name} within "
            f"{self.poll_attempts * self.poll_interval:.1f}s (last state: {_state_name(state)})."
        )
        return state


def _state_name(state: Optional[ServiceState]) -> str:
    return state.name if state is not None else "UNKNOWN"
