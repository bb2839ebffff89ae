"""
Tests for the client facade against the in-memory supervisor.
"""

import threading
import time
from unittest.mock import patch

import pytest

from procguard.client import Client
from procguard.errors import ApplicationError, ChannelConnectionError, ProtocolError, ServiceErrorKind
from procguard.protocol import MonitorItem
from procguard.service import ServiceState


def _item(item_id: str = "worker", exe_path: str = "C:\\app\\worker.exe", name: str = "Worker") -> MonitorItem:
    return MonitorItem(id=item_id, exe_path=exe_path, name=name, heartbeat_timeout_ms=5000)


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


#* --- Monitor items ---
def test_add_then_list_round_trip(client, supervisor) -> None:
    assert client.add_monitor_item(_item())

    result = client.get_all_monitor_items()

    assert result.ok
    assert result.decode_error is None
    assert result.value == [_item()]
    assert supervisor.request_types() == ["list", "add", "list"]


@pytest.mark.parametrize(
    "item, message",
    [
        (MonitorItem(id="", exe_path="C:\\a.exe", name="A"), "Item ID cannot be empty"),
        (MonitorItem(id="a", exe_path="", name="A"), "Executable path cannot be empty"),
        (MonitorItem(id="a", exe_path="C:\\a.exe", name=""), "Item name cannot be empty"),
    ],
)
def test_add_validation_happens_before_any_request(client, supervisor, item, message) -> None:
    result = client.add_monitor_item(item)

    assert not result
    assert isinstance(result.error, ApplicationError)
    assert result.message == message
    assert supervisor.requests == []


def test_add_rejects_duplicate_exe_path_case_insensitively(client, supervisor) -> None:
    assert client.add_monitor_item(_item())

    result = client.add_monitor_item(_item(item_id="other", exe_path="c:\\APP\\Worker.EXE"))

    assert not result
    assert result.message == "Executable path already monitored"
    assert supervisor.request_types().count("add") == 1


def test_add_is_refused_when_existing_entries_were_skipped(client, supervisor) -> None:
    supervisor.extra_list_entries = [
        {"id": "broken", "exe_path": "C:\\app\\worker.exe", "name": "Worker", "minimize": "yes"},
    ]

    result = client.add_monitor_item(_item(item_id="fresh"))

    assert not result
    assert isinstance(result.error, ApplicationError)
    assert "Parse item error" in result.message
    assert "add" not in supervisor.request_types()


@pytest.mark.parametrize(
    "item, message",
    [
        (MonitorItem(id="", exe_path="C:\\a.exe", name="A"), "Item ID cannot be empty"),
        (MonitorItem(id="x", exe_path="", name=""), "Executable path cannot be empty"),
        (MonitorItem(id="x", exe_path="C:\\a.exe", name=""), "Item name cannot be empty"),
    ],
)
def test_update_validation_happens_before_any_request(client, supervisor, item, message) -> None:
    result = client.update_monitor_item(item)

    assert not result
    assert result.message == message
    assert supervisor.requests == []


def test_add_duplicate_id_reports_supervisor_message(client) -> None:
    assert client.add_monitor_item(_item())

    result = client.add_monitor_item(_item(exe_path="C:\\other.exe"))

    assert result.message == "Item with this ID already exists"


def test_add_fails_when_listing_fails(client, supervisor) -> None:
    supervisor.absent = True

    result = client.add_monitor_item(_item())

    assert not result
    assert isinstance(result.error, ChannelConnectionError)


def test_operations_on_unknown_items_fail_with_supervisor_message(client) -> None:
    for operation in (client.remove_monitor_item, client.pause_monitor_item, client.resume_monitor_item):
        result = operation("missing")
        assert not result
        assert result.message == "Item not found"


def test_pause_and_resume_map_to_stop_and_start(client, supervisor) -> None:
    client.add_monitor_item(_item())

    assert client.pause_monitor_item("worker")
    assert supervisor.items["worker"]["enabled"] is False
    assert client.resume_monitor_item("worker")
    assert supervisor.items["worker"]["enabled"] is True
    assert supervisor.request_types()[-2:] == ["stop", "start"]


def test_update_and_remove(client, supervisor) -> None:
    client.add_monitor_item(_item())

    updated = _item(name="Renamed")
    assert client.update_monitor_item(updated)
    assert supervisor.items["worker"]["name"] == "Renamed"

    assert client.remove_monitor_item("worker")
    assert supervisor.items == {}


def test_list_skips_malformed_entries_and_reports_last_error(client, supervisor) -> None:
    client.add_monitor_item(_item())
    supervisor.extra_list_entries = [{"id": 1}, "junk"]

    result = client.get_all_monitor_items()

    assert result.ok
    assert [item.id for item in result.value] == ["worker"]
    assert isinstance(result.decode_error, ProtocolError)
    assert "Parse item error" in str(result.decode_error)


def test_service_status_reports_items(client, supervisor) -> None:
    client.add_monitor_item(_item())
    client.send_heartbeat("worker")
    supervisor.extra_status_entries = [{"id": "broken", "is_alive": "maybe"}]

    result = client.get_service_status()

    assert result.ok
    status = result.value
    assert status.service_running is True
    assert status.total_items == 1
    assert [entry.id for entry in status.items] == ["worker"]
    assert status.items[0].process_id == 0
    assert status.items[0].is_heartbeat_ok is True
    assert "Parse process status error" in str(result.decode_error)


def test_non_finite_entries_are_skipped_not_raised(client, supervisor) -> None:
    supervisor.raw_response = (
        b'{"success": true, "data": ['
        b'{"id": "bad", "exe_path": "C:\\\\bad.exe", "name": "Bad", "heartbeat_timeout_ms": 1e999},'
        b'{"id": "good", "exe_path": "C:\\\\good.exe", "name": "Good"}'
        b']}'
    )

    result = client.get_all_monitor_items()

    assert result.ok
    assert [item.id for item in result.value] == ["good"]
    assert isinstance(result.decode_error, ProtocolError)


def test_nan_in_status_entry_is_skipped_not_raised(client, supervisor) -> None:
    supervisor.raw_response = (
        b'{"success": true, "data": {"service_running": true, "total_items": 1, "items": ['
        b'{"id": "a", "name": "A", "exe_path": "C:\\\\a.exe", "restart_count": NaN}'
        b']}}'
    )

    result = client.get_service_status()

    assert result.ok
    assert result.value.items == ()
    assert "Parse process status error" in str(result.decode_error)


@pytest.mark.parametrize(
    "raw",
    [
        b'{"success": true, "data": ' + b"[" * 30000 + b"]" * 30000 + b"}",
        b'{"success": true, "data": {"service_running": true, "total_items": NaN}}',
        b'{"success": true, "data": 42}',
    ],
)
def test_hostile_responses_fail_the_call_without_raising(client, supervisor, raw) -> None:
    supervisor.raw_response = raw

    status = client.get_service_status()
    added = client.add_monitor_item(_item())

    assert status.ok is False
    assert isinstance(status.error, ProtocolError)
    assert added.ok is False


def test_unexpected_decoding_error_is_wrapped(client) -> None:
    with patch("procguard.client.facade.decode_response", side_effect=OverflowError("too big")):
        result = client.get_all_monitor_items()

    assert not result
    assert isinstance(result.error, ApplicationError)
    assert "too big" in result.message
    assert client.is_connected


def test_malformed_response_is_a_protocol_error(client, supervisor) -> None:
    supervisor.raw_response = b"this is not json"

    result = client.get_all_monitor_items()

    assert not result
    assert isinstance(result.error, ProtocolError)


#* --- Connection ---
def test_every_call_uses_a_fresh_connection(client, supervisor) -> None:
    client.get_all_monitor_items()
    client.get_service_status()

    assert len(supervisor.connections) == 2
    assert all(connection.closed for connection in supervisor.connections)
    assert client.is_connected


def test_unreachable_supervisor_fails_fast(client, supervisor) -> None:
    supervisor.absent = True

    result = client.get_service_status()

    assert not result
    assert isinstance(result.error, ChannelConnectionError)
    assert not client.is_connected


def test_connection_callback_fires_on_explicit_connect_and_disconnect(client, supervisor) -> None:
    events = []
    client.set_connection_changed_callback(events.append)

    assert client.connect()
    client.disconnect()
    supervisor.absent = True
    assert not client.connect(timeout=0)

    assert events == [True, False, False]


def test_implicit_reconnects_only_report_reachability_changes(client, supervisor) -> None:
    events = []
    client.set_connection_changed_callback(events.append)

    client.get_service_status()
    client.get_service_status()
    supervisor.absent = True
    client.get_service_status()
    client.get_service_status()
    supervisor.absent = False
    client.get_service_status()

    assert events == [True, False, True]


def test_raising_callback_does_not_break_the_call(client) -> None:
    client.set_connection_changed_callback(lambda connected: 1 / 0)
    assert client.connect()


def test_unexpected_exception_is_wrapped(client, supervisor) -> None:
    with patch.object(supervisor, "open", side_effect=RuntimeError("kaboom")):
        result = client.get_all_monitor_items()

    assert not result
    assert isinstance(result.error, ApplicationError)
    assert "kaboom" in result.message


def test_concurrent_callers_never_interleave(client, supervisor) -> None:
    client.add_monitor_item(_item())
    results = []

    def worker() -> None:
        for _ in range(20):
            results.append(bool(client.send_heartbeat("worker")))

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == [True] * 100
    assert supervisor.request_types().count("heartbeat") == 100


#* --- Heartbeats ---
def test_heartbeat_failure_invokes_callback(client) -> None:
    failed = []
    client.set_heartbeat_failed_callback(failed.append)

    result = client.send_heartbeat("ghost")

    assert not result
    assert result.message == "Heartbeat failed: Item not found"
    assert failed == ["ghost"]


def test_heartbeat_success_does_not_invoke_callback(client) -> None:
    failed = []
    client.set_heartbeat_failed_callback(failed.append)
    client.add_monitor_item(_item())

    assert client.send_heartbeat("worker")
    assert failed == []


def test_heartbeat_thread_reports_until_stopped(client, supervisor) -> None:
    client.add_monitor_item(_item())

    assert client.start_heartbeat_thread("worker") is True
    assert client.start_heartbeat_thread("worker") is False
    assert _wait_for(lambda: supervisor.request_types().count("heartbeat") >= 3)
    assert client.stop_heartbeat_thread("worker") is True
    assert client.active_heartbeats() == []


def test_heartbeat_thread_keeps_running_after_rejections(client) -> None:
    failed = []
    client.set_heartbeat_failed_callback(failed.append)

    client.start_heartbeat_thread("ghost", interval=0.005)

    assert _wait_for(lambda: len(failed) >= 3)
    assert "ghost" in client.active_heartbeats()
    client.stop_all_heartbeat_threads()


def test_close_stops_heartbeats_and_disconnects(supervisor, controller) -> None:
    events = []
    client = Client(transport=supervisor, service_controller=controller, heartbeat_interval=0.01)
    client.set_connection_changed_callback(events.append)
    client.start_heartbeat_thread("a")

    client.close()

    assert client.active_heartbeats() == []
    assert not client.is_connected
    assert events[-1] is False


#* --- Self monitoring ---
def test_add_self_monitor_registers_current_process(client, supervisor) -> None:
    with patch("procguard.client.self_monitor.get_current_exe_path", return_value="C:\\app\\worker.exe"):
        assert client.add_self_monitor()

    assert client.self_monitor_id.startswith("self-")
    registered = supervisor.items[client.self_monitor_id]
    assert registered["name"] == "worker"
    assert registered["exe_path"] == "C:\\app\\worker.exe"
    assert registered["heartbeat_timeout_ms"] == 86_400_000


def test_failed_self_registration_leaves_id_unset(client) -> None:
    client.add_monitor_item(_item())

    with patch("procguard.client.self_monitor.get_current_exe_path", return_value="C:\\APP\\WORKER.exe"):
        result = client.add_self_monitor("self-x")

    assert not result
    assert client.self_monitor_id == ""


def test_self_monitor_operations_require_an_id(client, supervisor) -> None:
    for operation in (client.remove_self_monitor, client.pause_self_monitor, client.resume_self_monitor):
        result = operation()
        assert result.message == "Self monitor not set"
    assert client.start_self_heartbeat() is False
    assert client.stop_self_heartbeat() is False
    assert supervisor.requests == []


def test_self_monitor_lifecycle(client, supervisor) -> None:
    with patch("procguard.client.self_monitor.get_current_exe_path", return_value="/opt/app/agent"):
        assert client.add_self_monitor("self-1", heartbeat_timeout_ms=2000)

    assert client.start_self_heartbeat(interval=0.01)
    assert _wait_for(lambda: "self-1" in supervisor.heartbeats)
    assert client.stop_self_heartbeat()
    assert client.pause_self_monitor()
    assert client.resume_self_monitor()
    assert client.remove_self_monitor()
    assert supervisor.items == {}
    assert client.self_monitor_id == "self-1"


#* --- Service lifecycle ---
def test_quick_setup_installs_and_starts(client, service_manager) -> None:
    result = client.quick_setup("C:\\svc\\guard.exe")

    assert result
    assert client.is_service_installed()
    assert client.is_service_running()
    assert service_manager.calls.count("create_service") == 1


def test_quick_setup_is_a_no_op_when_running(client, service_manager) -> None:
    service_manager.installed = True
    service_manager.state = ServiceState.RUNNING

    assert client.quick_setup("C:\\svc\\guard.exe")
    assert "create_service" not in service_manager.calls
    assert "start_service" not in service_manager.calls


def test_install_twice_reports_already_exists(client) -> None:
    assert client.install_service("C:\\svc.exe")

    result = client.install_service("C:\\svc.exe")

    assert not result
    assert result.error.kind is ServiceErrorKind.ALREADY_EXISTS
    assert result.message == "Service already exists"


def test_ensure_service_running_requires_installation(client) -> None:
    result = client.ensure_service_running()

    assert not result
    assert result.error.kind is ServiceErrorKind.NOT_FOUND


def test_ensure_service_running_starts_installed_service(client, service_manager) -> None:
    service_manager.installed = True

    assert client.ensure_service_running()
    assert service_manager.state == ServiceState.RUNNING


def test_stop_and_uninstall_service(client, service_manager) -> None:
    service_manager.installed = True
    service_manager.state = ServiceState.RUNNING

    result = client.stop_service()
    assert result
    assert result.value == ServiceState.STOPPED

    assert client.uninstall_service()
    assert not client.is_service_installed()
