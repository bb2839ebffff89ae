"""
Pytest configuration and fixtures.

Provides an in-memory supervisor behind a fake pipe transport and a fake
service-manager backend, so the suite runs on any platform.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import pytest

from procguard.client import Client
from procguard.errors import PipeBusyError
from procguard.service import ServiceController, ServiceState
from procguard.service.scm import (
    ERROR_SERVICE_ALREADY_RUNNING, ERROR_SERVICE_DOES_NOT_EXIST, ERROR_SERVICE_EXISTS, ERROR_SERVICE_NOT_ACTIVE,
    service_error,
)

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)


class FakePipeConnection:
    """One client end of the fake pipe: a single write followed by a single read."""

    def __init__(self, server: "FakeSupervisor") -> None:
        self.server = server
        self.closed = False
        self._response = b""

    def write(self, payload: bytes) -> int:
        if self.closed:
            raise OSError("write on closed pipe")
        self._response = self.server.handle(payload)
        return len(payload)

    def read(self, size: int) -> bytes:
        if self.closed:
            raise OSError("read on closed pipe")
        return self._response[:size]

    def close(self) -> None:
        self.closed = True


class FakeSupervisor:
    """
    In-memory stand-in for the supervisor's pipe server.
    Answers requests with the same messages the real service uses.
    """

    def __init__(self) -> None:
        self.items: Dict[str, Dict[str, Any]] = {}
        self.heartbeats: Dict[str, int] = {}
        self.requests: List[Dict[str, Any]] = []
        self.connections: List[FakePipeConnection] = []
        self.busy_attempts = 0
        self.absent = False
        self.raw_response: Optional[bytes] = None
        self.extra_list_entries: List[Any] = []
        self.extra_status_entries: List[Any] = []
        self.wait_calls: List[float] = []

    #* --- PipeTransport ---
    def open(self) -> FakePipeConnection:
        if self.absent:
            raise FileNotFoundError(2, "The system cannot find the file specified")
        if self.busy_attempts > 0:
            self.busy_attempts -= 1
            raise PipeBusyError(231, "All pipe instances are busy")
        connection = FakePipeConnection(self)
        self.connections.append(connection)
        return connection

    def wait(self, timeout: float) -> None:
        self.wait_calls.append(timeout)

    #* --- Server side ---
    def handle(self, payload: bytes) -> bytes:
        request = json.loads(payload.decode("utf-8"))
        self.requests.append(request)
        if self.raw_response is not None:
            return self.raw_response
        return json.dumps(self._dispatch(request)).encode("utf-8")

    def request_types(self) -> List[str]:
        return [request["type"] for request in self.requests]

    @staticmethod
    def _ok(message: str, data: Any = None) -> Dict[str, Any]:
        response = {"success": True, "message": message}
        if data is not None:
            response["data"] = data
        return response

    @staticmethod
    def _error(message: str) -> Dict[str, Any]:
        return {"success": False, "message": message}

    def _dispatch(self, request: Dict[str, Any]) -> Dict[str, Any]:
        kind = request.get("type")
        item_id = request.get("id")

        if kind == "heartbeat":
            if request["item_id"] not in self.items:
                return self._error("Item not found")
            self.heartbeats[request["item_id"]] = request["timestamp"]
            return self._ok("Heartbeat updated")

        if kind == "add":
            config = request["config"]
            if config["id"] in self.items:
                return self._error("Item with this ID already exists")
            if any(i["exe_path"].lower() == config["exe_path"].lower() for i in self.items.values()):
                return self._error("Executable path already monitored")
            self.items[config["id"]] = dict(config)
            return self._ok("Item added")

        if kind == "update":
            config = request["config"]
            if config["id"] not in self.items:
                return self._error("Item not found")
            self.items[config["id"]] = dict(config)
            return self._ok("Item updated")

        if kind in ("remove", "stop", "start"):
            if item_id not in self.items:
                return self._error("Item not found")
            if kind == "remove":
                del self.items[item_id]
                return self._ok("Item removed")
            self.items[item_id]["enabled"] = kind == "start"
            return self._ok("Item started" if kind == "start" else "Item stopped")

        if kind == "list":
            return self._ok("Items list", list(self.items.values()) + self.extra_list_entries)

        if kind == "status":
            entries = [self._status_entry(item) for item in self.items.values()]
            data = {
                "service_running": True,
                "total_items": len(self.items),
                "items": entries + self.extra_status_entries,
            }
            return self._ok("Service status", data)

        return self._error(f"Unknown request type: {kind}")

    def _status_entry(self, item: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": item["id"],
            "name": item["name"],
            "exe_path": item["exe_path"],
            "enabled": item.get("enabled", True),
            "process_id": None,
            "last_heartbeat_ms": self.heartbeats.get(item["id"], 0),
            "heartbeat_timeout_ms": item["heartbeat_timeout_ms"],
            "restart_count": 0,
            "is_alive": False,
            "is_heartbeat_ok": item["id"] in self.heartbeats,
        }


class FakeServiceManager:
    """
    In-memory service-manager backend.
    Pending states settle into RUNNING/STOPPED after `settle_after` status queries.
    """

    def __init__(self, installed: bool = False, state: ServiceState = ServiceState.STOPPED, settle_after: int = 2):
        self.installed = installed
        self.state = state
        self.settle_after = settle_after
        self.binary_path = ""
        self.calls: List[str] = []
        self.open_handles: set = set()
        self._next_handle = 1
        self._pending_queries = 0

    def _handle(self, kind: str) -> str:
        handle = f"{kind}-{self._next_handle}"
        self._next_handle += 1
        self.open_handles.add(handle)
        return handle

    def open_manager(self, access: int) -> str:
        self.calls.append("open_manager")
        return self._handle("scm")

    def open_service(self, manager: str, name: str, access: int) -> str:
        self.calls.append("open_service")
        if not self.installed:
            raise service_error(ERROR_SERVICE_DOES_NOT_EXIST, f"open service '{name}'")
        return self._handle("svc")

    def create_service(self, manager: str, name: str, display_name: str, binary_path: str) -> str:
        self.calls.append("create_service")
        if self.installed:
            raise service_error(ERROR_SERVICE_EXISTS, "create service")
        self.installed = True
        self.binary_path = binary_path
        self.state = ServiceState.STOPPED
        return self._handle("svc")

    def delete_service(self, service: str) -> None:
        self.calls.append("delete_service")
        self.installed = False

    def start_service(self, service: str) -> None:
        self.calls.append("start_service")
        if self.state == ServiceState.RUNNING:
            raise service_error(ERROR_SERVICE_ALREADY_RUNNING, "start service")
        self.state = ServiceState.START_PENDING
        self._pending_queries = self.settle_after

    def control_stop(self, service: str) -> None:
        self.calls.append("control_stop")
        if self.state != ServiceState.RUNNING:
            raise service_error(ERROR_SERVICE_NOT_ACTIVE, "stop service")
        self.state = ServiceState.STOP_PENDING
        self._pending_queries = self.settle_after

    def query_state(self, service: str) -> ServiceState:
        self.calls.append("query_state")
        if self.state in (ServiceState.START_PENDING, ServiceState.STOP_PENDING):
            if self._pending_queries <= 0:
                self.state = ServiceState.RUNNING if self.state == ServiceState.START_PENDING else ServiceState.STOPPED
            else:
                self._pending_queries -= 1
        return self.state

    def close_handle(self, handle: str) -> None:
        self.open_handles.discard(handle)


@pytest.fixture
def supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def service_manager() -> FakeServiceManager:
    return FakeServiceManager()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def controller(service_manager: FakeServiceManager, sleeps: List[float]) -> ServiceController:
    return ServiceController(backend=service_manager, sleep=sleeps.append)


@pytest.fixture
def client(supervisor: FakeSupervisor, controller: ServiceController):
    with Client(transport=supervisor, service_controller=controller, connect_timeout=0.2, heartbeat_interval=0.01) as c:
        yield c
