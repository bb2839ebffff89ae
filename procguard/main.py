import sys
import logging
from typing import List

# Basic console logger for messages BEFORE full setup is complete.
# This logger will be replaced by the full setup later.
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)-8s - [console] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("console")

import procguard.console as console
from procguard.client import Client
from procguard.log.setup import setup_logging


def split_command_line(command_line: str) -> List[str]:
    """
    Splits a console line on whitespace, keeping double-quoted parts together.
    Backslashes are left alone so Windows paths survive.
    """
    parts: List[str] = []
    current: List[str] = []
    quoted = False
    for char in command_line.strip():
        if char == '"':
            quoted = not quoted
        elif char.isspace() and not quoted:
            if current:
                parts.append("".join(current))
                current = []
        else:
            current.append(char)
    if current:
        parts.append("".join(current))
    return parts


def main() -> None:
    """The main entry point for the console application."""

    # The very first thing we do is set up logging for the console.
    setup_logging()

    with Client() as client:
        # Non-interactive mode for one-off commands
        if len(sys.argv) > 1:
            command, args = sys.argv[1].lower(), sys.argv[2:]
            # Check for verbose flag in non-interactive mode
            if "--verbose" in args:
                console.toggle_verbose_logging()
                args.remove("--verbose")

            console.execute_command(command, args, client)
            return

        # Interactive mode
        print("--- ProcessGuard Management Console ---")
        print("Type 'help' for a list of commands.")

        if not client.is_service_installed():
            status = "not installed"
        elif client.is_service_running():
            status = "running"
        else:
            status = "stopped"
        log.debug(f"Console startup - Service is currently {status}.")

        print(f"Service is currently {status}.")
        while True:
            try:
                command_line = split_command_line(input("> "))
                if not command_line:
                    continue

                command, args = command_line[0].lower(), command_line[1:]

                log.debug(f"Received command: {command}, args: {args}")

                if console.execute_command(command, args, client):
                    break

            except (KeyboardInterrupt, EOFError):
                log.warning("\nExiting console due to KeyboardInterrupt.")
                break
            except Exception as e:
                log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)

if __name__ == "__main__":
    main()
    print("Exiting console application. See you next time!")
