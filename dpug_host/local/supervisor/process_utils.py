import sys
import queue
import signal
import logging
import threading
import subprocess
from typing import Any, Dict, IO, List, Optional
from dpug_host.local.supervisor.state import LaunchCandidate, LaunchError, ProcessEvent

log = logging.getLogger(__name__)

SERVER_LOGGER_NAME = "proc.dpug-server"


class SupervisedProcess:
    """The single server process owned by the supervisor."""

    def __init__(self, popen: subprocess.Popen, args: List[str]) -> None:
        self.popen = popen
        self.args = args
        self.pid = popen.pid
        # Set by the exit watcher once the process has been reaped.
        self.exited = threading.Event()

    @property
    def returncode(self) -> Optional[int]:
        return self.popen.returncode

    def is_alive(self) -> bool:
        return not self.exited.is_set()

    def __repr__(self) -> str:
        return f"<SupervisedProcess pid={self.pid} args={self.args!r}>"


#* --- Process Creation ---
def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific creation flags for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}


def describe_exit(returncode: Optional[int]) -> Dict[str, Any]:
    """Splits a Popen return code into an exit code and a signal name."""
    if returncode is not None and returncode < 0 and sys.platform != "win32":
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = f"signal {-returncode}"
        return {"returncode": None, "signal_name": name}
    return {"returncode": returncode, "signal_name": None}


def _read_pipe(pipe: IO[bytes], level: int, prefix: str, sink: logging.Logger) -> None:
    """Target function for reader threads. Relays lines from a subprocess pipe."""
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            sink.log(level, f"{prefix} {line}")
    except (OSError, ValueError) as e:
        log.debug(f"Pipe reader for dpug server stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, sink: Optional[logging.Logger] = None) -> None:
    """Starts background threads to consume and relay a process's stdout/stderr."""
    sink = sink or logging.getLogger(SERVER_LOGGER_NAME)
    if process.stdout:
        threading.Thread(
            target=_read_pipe, args=(process.stdout, logging.INFO, "[Server]", sink),
            daemon=True, name="DpugServerStdout",
        ).start()
    if process.stderr:
        threading.Thread(
            target=_read_pipe, args=(process.stderr, logging.ERROR, "[Server Error]", sink),
            daemon=True, name="DpugServerStderr",
        ).start()


def _watch_exit(process: SupervisedProcess, events: "queue.Queue[ProcessEvent]") -> None:
    """Target function for the exit watcher. Publishes exactly one lifecycle event."""
    try:
        returncode = process.popen.wait()
    except Exception as e:
        events.put(ProcessEvent(ProcessEvent.ERROR, process.pid, error=str(e)))
    else:
        events.put(ProcessEvent(ProcessEvent.EXIT, process.pid, **describe_exit(returncode)))
    finally:
        process.exited.set()


def launch_process(
    candidate: LaunchCandidate,
    port: int,
    host: str,
    events: "queue.Queue[ProcessEvent]",
    sink: Optional[logging.Logger] = None,
) -> SupervisedProcess:
    """
    Spawns the server for the given candidate and starts observing it.

    The process keeps the parent's process group, gets all three standard
    streams piped and is never run through a shell. Its output is relayed to
    `sink`; its exit is published on `events`.

    :raises LaunchError: If the OS refuses to start the process.
    """
    args = candidate.build_args(port, host)
    log.info(f"Starting server with command: {' '.join(args)}")
    try:
        popen = subprocess.Popen(
            args,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            shell=False,
            **_get_popen_creation_flags(),
        )
    except (OSError, ValueError) as e:
        raise LaunchError(f"Failed to spawn '{args[0]}': {e}") from e

    process = SupervisedProcess(popen, args)
    log_process_output(popen, sink)
    threading.Thread(
        target=_watch_exit, args=(process, events), daemon=True, name="DpugServerExitWatcher"
    ).start()
    log.info(f"DPug server started with PID: {process.pid}")
    return process
