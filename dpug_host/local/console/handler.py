import logging
import psutil
from pathlib import Path
from typing import List
from dpug_host.log import set_console_level
from dpug_host.local.extension import Extension

log = logging.getLogger(__name__)

VERBOSE_LOGGING = False


def _config_show(extension: Extension) -> None:
    """Displays the effective workspace settings."""
    print("\n--- Current DPug Configuration ---")
    source = extension.config.overrides_path or "defaults (no workspace open)"
    print(f"(Workspace settings: {source})")
    for key, value in extension.config.get_all_settings().items():
        print(f"  {key} = {value}")
    print("---")
    print("Use 'config set <KEY> <VALUE>' to change a setting.")
    print("Changes apply to the next server operation.")
    print("---------------------------------\n")


def _config_set(extension: Extension, args: List[str]) -> None:
    """Sets a workspace setting."""
    if len(args) < 2:
        print("Usage: config set <SETTING_NAME> <VALUE>")
        return

    key, value_str = args[0], " ".join(args[1:])
    success, message = extension.config.update(key, value_str)
    if success:
        print(message)
    else:
        print(f"Error: {message}")


def _config_help() -> None:
    """Displays help for the config command."""
    print("\nConfig Command Help:")
    print("  config show                - Display all settings.")
    print("  config set KEY VALUE       - Change a setting, e.g. 'config set server.port 9090'.")
    print("  config help                - Show this help message.")


def handle_config_command(extension: Extension, args: List[str]) -> None:
    """
    Handles all sub-commands for the 'config' command-line interface.

    :param extension: The running extension whose workspace settings are managed.
    :param args: A list of string arguments following the 'config' command.
    """
    sub_command = args[0].lower() if args else "show"

    if sub_command == "show":
        _config_show(extension)
    elif sub_command == "set":
        _config_set(extension, args[1:])
    elif sub_command == "help":
        _config_help()
    else:
        print(f"Unknown config sub-command: '{sub_command}'. Type 'config help' for available commands.")


def display_status(extension: Extension) -> None:
    """Displays the supervisor state and, if a server process is tracked, its resource usage."""
    supervisor = extension.supervisor
    status = supervisor.status()
    endpoint = supervisor.endpoint()

    print("\n--- DPug Server Status ---")
    print(f"  Endpoint : {endpoint.url}")
    print(f"  Running  : {'yes' if status.running else 'no'}")
    print(f"  Starting : {'yes' if status.starting else 'no'}")
    print(f"  Ready    : {'yes' if status.ready else 'no'}")
    if supervisor.last_failure is not None:
        print(f"  Last start failure: {supervisor.last_failure.value}")

    pid = supervisor.pid
    if pid is not None:
        try:
            p = psutil.Process(pid)
            cpu = p.cpu_percent(interval=0.1)
            mem = p.memory_info().rss
            print(f"  Process  : {p.name()} | PID {pid} | Status: {p.status().upper()} | CPU: {cpu:.1f}% | MEM: {mem/1024/1024:.1f} MB")
        except psutil.NoSuchProcess:
            print(f"  Process  : PID {pid} | Status: STOPPED")
        except psutil.AccessDenied:
            print(f"  Process  : PID {pid} | Status: RUNNING (Access Denied)")
    print("-" * 26 + "\n")


def handle_document_command(extension: Extension, command: str, args: List[str]) -> None:
    """Runs 'format', 'to-dart' or 'from-dart' on the file given in args."""
    if not args:
        print(f"Usage: {command} <FILE>")
        return

    path = Path(args[0])
    if not path.is_file():
        print(f"File not found: '{path}'")
        return

    if command == "format":
        ok = extension.format_document(path)
        print(f"Formatted '{path}'." if ok else "Formatting failed. See the log for details.")
    elif command == "to-dart":
        target = extension.convert_to_dart(path)
        print(f"Wrote '{target}'." if target else "Conversion failed. See the log for details.")
    elif command == "from-dart":
        target = extension.convert_from_dart(path)
        print(f"Wrote '{target}'." if target else "Conversion failed. See the log for details.")


def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    global VERBOSE_LOGGING
    VERBOSE_LOGGING = not VERBOSE_LOGGING
    set_console_level(logging.DEBUG if VERBOSE_LOGGING else logging.INFO)

    status = "ON" if VERBOSE_LOGGING else "OFF"
    print(f"Verbose console logging is now {status}.")
    log.debug("Debug logging test: This message should only appear when verbose is ON.")


def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  start                  - Start the DPug server (or confirm it is healthy).")
    print("  stop [--force]         - Stop the DPug server. Without --force, honours server.autoStop.")
    print("  restart                - Force-stop and then start the server.")
    print("  status                 - Show the server status.")
    print("  format <file>          - Format a .dpug file in place.")
    print("  to-dart <file>         - Convert a .dpug file to Dart.")
    print("  from-dart <file>       - Convert a .dart file to DPug.")
    print("  config <cmd>           - Manage settings. Use 'config help' for more details.")
    print("  verbose                - Toggle detailed DEBUG log output in the console.")
    print("  exit                   - Exit the management console.")
    print()
