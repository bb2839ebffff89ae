import time
import logging
from typing import List, Optional

from procguard.client import Client
from procguard.config import effective_settings as config
from procguard.errors import Result
from procguard.protocol import MonitorItem

log = logging.getLogger(__name__)


def report(result: Result, success_message: str) -> bool:
    """Prints the outcome of a client operation and returns whether it succeeded."""
    if result:
        print(success_message)
        if result.decode_error is not None:
            print(f"  (some entries were skipped: {result.decode_error})")
        return True
    print(f"ERROR: {result.message}")
    return False


def _format_heartbeat_age(last_heartbeat_ms: int) -> str:
    if not last_heartbeat_ms:
        return "never"
    age = time.time() - last_heartbeat_ms / 1000
    return f"{max(age, 0.0):.1f}s ago"


def display_status(client: Client) -> None:
    """Shows the service state and the supervisor-reported status of every item."""
    installed = client.is_service_installed()
    running = installed and client.is_service_running()
    service_state = "RUNNING" if running else ("STOPPED" if installed else "NOT INSTALLED")
    print(f"\nService '{config.SERVICE_NAME}': {service_state}")

    result = client.get_service_status()
    if not result:
        print(f"Supervisor unreachable: {result.message}\n")
        return

    status = result.value
    print(f"--- Supervisor Status ({status.total_items} item(s)) ---")
    for item in status.items:
        alive = "ALIVE" if item.is_alive else "DEAD"
        heartbeat = "OK" if item.is_heartbeat_ok else "MISSED"
        state = "enabled" if item.enabled else "paused"
        print(
            f"  - {item.name + ' (' + item.id + ')':<40} : PID {item.process_id or '-':<8} | {alive:<5} | "
            f"Heartbeat: {heartbeat} ({_format_heartbeat_age(item.last_heartbeat_ms)}) | "
            f"Restarts: {item.restart_count} | {state}"
        )
    if result.decode_error is not None:
        print(f"WARNING: some entries were skipped: {result.decode_error}")
    print("-" * 26 + "\n")


def display_items(client: Client) -> None:
    """Lists the registered monitor items."""
    result = client.get_all_monitor_items()
    if not result:
        print(f"ERROR: {result.message}")
        return

    items: List[MonitorItem] = result.value or []
    if not items:
        print("No monitor items registered.")
        return

    print(f"\n--- Monitor Items ({len(items)}) ---")
    for item in items:
        args = f" {item.args}" if item.args else ""
        state = "enabled" if item.enabled else "paused"
        print(f"  - {item.id:<24} : {item.name} | {item.exe_path}{args} | timeout {item.heartbeat_timeout_ms}ms | {state}")
    if result.decode_error is not None:
        print(f"WARNING: some entries were skipped: {result.decode_error}")
    print()


def parse_add_args(args: List[str]) -> Optional[MonitorItem]:
    """
    Parses `<exe_path> <name> [--id ID] [--args ARGS] [--timeout MS]`.

    :return MonitorItem or None: The item to add, or None if the arguments are invalid.
    """
    positional: List[str] = []
    options = {}
    index = 0
    while index < len(args):
        arg = args[index]
        if arg in ("--id", "--args", "--timeout"):
            if index + 1 >= len(args):
                print(f"Missing value for '{arg}'.")
                return None
            options[arg[2:]] = args[index + 1]
            index += 2
            continue
        positional.append(arg)
        index += 1

    if len(positional) != 2:
        print("Usage: add <exe_path> <name> [--id ID] [--args ARGS] [--timeout MS]")
        return None

    timeout_ms = config.DEFAULT_HEARTBEAT_TIMEOUT_MS
    if "timeout" in options:
        try:
            timeout_ms = int(options["timeout"])
        except ValueError:
            print(f"Invalid timeout '{options['timeout']}': expected milliseconds.")
            return None
        if timeout_ms <= 0:
            print("Timeout must be a positive number of milliseconds.")
            return None

    return MonitorItem.create(
        exe_path=positional[0],
        name=positional[1],
        id=options.get("id"),
        args=options.get("args", ""),
        heartbeat_timeout_ms=timeout_ms,
    )


def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    config.VERBOSE_LOGGING = not config.VERBOSE_LOGGING
    new_level = logging.DEBUG if config.VERBOSE_LOGGING else logging.INFO

    # Reconfigure the console handler's level directly
    root_logger = logging.getLogger()
    found_handler = False
    for handler in root_logger.handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(new_level)
            found_handler = True
            break

    status = "ON" if config.VERBOSE_LOGGING else "OFF"
    if found_handler:
        print(f"Verbose console logging is now {status}.")
        log.debug("Debug logging test: This message should only appear when verbose is ON.")
    else:
        print("Could not find console handler to modify level.")


def print_help():
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  install <path>         - Register the supervisor executable as a Windows service.")
    print("  uninstall              - Stop and remove the supervisor service.")
    print("  start                  - Start the supervisor service.")
    print("  stop                   - Stop the supervisor service.")
    print("  setup <path>           - Install the service if needed and make sure it is running.")
    print("  status                 - Show the service state and the status of every monitored item.")
    print("  list                   - List the registered monitor items.")
    print("  add <exe> <name> [--id ID] [--args ARGS] [--timeout MS]")
    print("                         - Register an executable with the supervisor.")
    print("  remove <id>            - Unregister a monitor item.")
    print("  pause <id>             - Stop watching an item without removing it.")
    print("  resume <id>            - Resume watching a paused item.")
    print("  heartbeat <id>         - Send a single heartbeat for an item.")
    print("  verbose                - Toggle detailed DEBUG log output in the console.")
    print("  exit                   - Exit the management console.")
    print()
