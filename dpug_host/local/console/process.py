import logging
from typing import List
from dpug_host.local.extension import Extension
from dpug_host.local.console.handler import (
    display_status, handle_config_command, handle_document_command, print_help, toggle_verbose_logging
)

log = logging.getLogger(__name__)


def _start(extension: Extension) -> None:
    if extension.supervisor.ensure_running():
        print("DPug server is running.")
    else:
        print("DPug server could not be started. See the log for details.")


def _restart(extension: Extension) -> None:
    log.info("Stopping DPug server...")
    extension.supervisor.stop(force=True)
    log.info("Starting DPug server...")
    _start(extension)


def execute_command(extension: Extension, command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param extension: The extension instance the command operates on.
    :param command: The main command string (e.g., 'start', 'config').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "start": lambda: _start(extension),
        "stop": lambda: extension.supervisor.stop(force="--force" in args),
        "restart": lambda: _restart(extension),
        "status": lambda: display_status(extension),
        "format": lambda: handle_document_command(extension, command, args),
        "to-dart": lambda: handle_document_command(extension, command, args),
        "from-dart": lambda: handle_document_command(extension, command, args),
        "config": lambda: handle_config_command(extension, args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
    }

    if command == "exit":
        return True

    if command in command_map:
        command_map[command]()
    else:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
    return False
