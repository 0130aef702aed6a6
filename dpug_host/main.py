import sys
import logging
import threading
import setproctitle

# Basic console logger for messages BEFORE full setup is complete.
# This logger will be replaced by the full setup later.
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)-8s - [console] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("console")

import dpug_host.local.console as console
from dpug_host import settings
from dpug_host.log import setup_logging
from dpug_host.local.extension import Extension

CONSOLE_LOCK = threading.Lock()

# One-shot mode: a fresh supervisor tracks no process, so it cannot stop one.
INTERACTIVE_ONLY_COMMANDS = ("stop",)
SERVER_HANDOFF_COMMANDS = ("start", "restart")


def main() -> None:
    """The main entry point for the console application."""
    setproctitle.setproctitle(settings.CONSOLE_PROCESS_TITLE)
    setup_logging(logging.INFO, log_file=settings.LOG_FILE_PATH)

    extension = Extension(settings.WORKSPACE_DIR)

    # Non-interactive mode for one-off commands
    if len(sys.argv) > 1:
        command, args = sys.argv[1].lower(), sys.argv[2:]
        if "--verbose" in args:
            console.toggle_verbose_logging()
            args.remove("--verbose")
        if command in INTERACTIVE_ONLY_COMMANDS:
            print(f"'{command}' only applies to a server started from the interactive console. "
                  f"Run 'dpug-host' without arguments.")
            return
        try:
            console.execute_command(extension, command, args)
        finally:
            # 'start' and 'restart' hand the server over to the user; anything else cleans up after itself.
            if command not in SERVER_HANDOFF_COMMANDS:
                extension.deactivate()
        return

    # Interactive mode
    print("--- DPug Management Console ---")
    print("Type 'help' for a list of commands.")
    extension.activate()

    try:
        while True:
            try:
                # The input prompt must be outside the lock to not block background threads
                command_line_str = input("> ")
                with CONSOLE_LOCK:
                    if not command_line_str.strip():
                        continue
                    command_line = command_line_str.strip().split()
                    command, args = command_line[0].lower(), command_line[1:]

                    log.debug(f"Received command: {command}, args: {args}")

                    if console.execute_command(extension, command, args):
                        break

            except (KeyboardInterrupt, EOFError):
                with CONSOLE_LOCK:
                    log.warning("\nExiting console due to KeyboardInterrupt.")
                    break
            except Exception as e:
                with CONSOLE_LOCK:
                    log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)
    finally:
        extension.deactivate()


if __name__ == "__main__":
    main()
    print("Exiting DPug console. See you next time!")
