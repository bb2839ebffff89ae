import logging
from typing import List

from procguard.client import Client
from procguard.console.handler import (
    display_items, display_status, parse_add_args, print_help, report, toggle_verbose_logging,
)

log = logging.getLogger(__name__)


def _require_arg(command: str, args: List[str], name: str) -> bool:
    if args:
        return True
    print(f"Usage: {command} <{name}>")
    return False


def _add(client: Client, args: List[str]) -> None:
    item = parse_add_args(args)
    if item is not None:
        report(client.add_monitor_item(item), f"Monitor item '{item.id}' added.")


def execute_command(command: str, args: List[str], client: Client) -> bool:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'start', 'add').
    :param args: A list of arguments for the command.
    :param client: The client used to reach the service and the supervisor.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "uninstall": lambda: report(client.uninstall_service(), "Service uninstalled."),
        "start": lambda: report(client.start_service(), "Service started."),
        "stop": lambda: report(client.stop_service(), "Service stopped."),
        "status": lambda: display_status(client),
        "list": lambda: display_items(client),
        "add": lambda: _add(client, args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
        "exit": lambda: True
    }
    id_commands = {
        "remove": (client.remove_monitor_item, "removed"),
        "pause": (client.pause_monitor_item, "paused"),
        "resume": (client.resume_monitor_item, "resumed"),
        "heartbeat": (client.send_heartbeat, "heartbeat sent"),
    }

    should_exit = False
    if command in command_map:
        result = command_map[command]()
        if command == "exit" and result is True:
            should_exit = True

    elif command in id_commands:
        if _require_arg(command, args, "id"):
            operation, verb = id_commands[command]
            report(operation(args[0]), f"Monitor item '{args[0]}' {verb}.")

    elif command == "install":
        if _require_arg(command, args, "path"):
            report(client.install_service(args[0]), f"Service installed for '{args[0]}'.")

    elif command == "setup":
        if _require_arg(command, args, "path"):
            report(client.quick_setup(args[0]), "Service is installed and running.")

    else:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")

    return should_exit
