"""
Value types shared by the supervisor and its helper modules.
"""
import enum
from pathlib import Path
from typing import List, NamedTuple, Optional


class LaunchError(RuntimeError):
    """Raised when the server executable cannot be found or spawned."""


class ServerState(enum.Enum):
    """The supervisor's single source of truth for the server lifecycle."""
    IDLE = "idle"
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"


class StartFailure(enum.Enum):
    """Why the last `ensure_running` call returned False."""
    AUTO_START_DISABLED = "auto-start disabled"
    EXECUTABLE_NOT_FOUND = "executable not found"
    SPAWN_FAILED = "spawn failed"
    READINESS_TIMEOUT = "readiness timeout"
    PROCESS_EXITED = "process exited during startup"
    CANCELLED = "cancelled"
    STOPPED = "stopped during startup"
    UNEXPECTED_ERROR = "unexpected error"


class ServerStatus(NamedTuple):
    running: bool
    starting: bool
    ready: bool


class ServerEndpoint(NamedTuple):
    host: str
    port: int

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


class LaunchCandidate(NamedTuple):
    """
    A resolved way to start the server.

    `path` is either the executable to run directly or, when `interpreter`
    is set, the companion script handed to that interpreter.
    """
    path: str
    interpreter: Optional[str] = None

    def build_args(self, port: int, host: str) -> List[str]:
        server_args = ["server", "start", "--port", str(port), "--host", host]
        if self.interpreter:
            return [self.interpreter, self.path, *server_args]
        return [self.path, *server_args]

    @classmethod
    def direct(cls, path: Path) -> "LaunchCandidate":
        return cls(str(path))

    @classmethod
    def script(cls, path: Path, interpreter: str) -> "LaunchCandidate":
        return cls(str(path), interpreter)


class ProcessEvent(NamedTuple):
    """A lifecycle event published by the launcher's watcher thread."""
    kind: str  # "exit" or "error"
    pid: int
    returncode: Optional[int] = None
    signal_name: Optional[str] = None
    error: Optional[str] = None

    EXIT = "exit"
    ERROR = "error"
