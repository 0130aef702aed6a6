import queue
import logging
import threading
from typing import Any, Callable, Optional
from dpug_host import settings
from dpug_host.local.supervisor import health
from dpug_host.local.supervisor.locator import ExecutableLocator
from dpug_host.local.supervisor.process_utils import SupervisedProcess, launch_process
from dpug_host.local.supervisor.shutdown import terminate_process
from dpug_host.local.supervisor.state import (
    LaunchError, ProcessEvent, ServerEndpoint, ServerState, ServerStatus, StartFailure
)

log = logging.getLogger(__name__)


class _StartAttempt:
    """One in-flight launch and readiness sequence. Late callers wait on its outcome."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result = False

    def finish(self, result: bool) -> None:
        self.result = result
        self.done.set()


class ServerSupervisor:
    """
    Owns the lifecycle of the local DPug server process.

    The supervisor is the only writer of the server state and of the tracked
    process handle. Callers interact with it exclusively through
    `ensure_running`, `stop` and `status`; none of them raise. Configuration
    is read from `config` on every call so changes apply to the next operation.

    Process exit and error events are published by the launcher's watcher
    thread on an internal queue and applied here, under the state lock, at the
    start of every operation and during the readiness wait.
    """

    def __init__(
        self,
        config: Any,
        locator: Optional[ExecutableLocator] = None,
        server_output: Optional[logging.Logger] = None,
        prober: Callable[[ServerEndpoint, float], bool] = health.probe,
        ready_timeout: float = settings.READY_TIMEOUT,
        poll_interval: float = settings.READY_POLL_INTERVAL,
        probe_timeout: float = settings.HEALTH_PROBE_TIMEOUT,
        grace_period: float = settings.GRACEFUL_SHUTDOWN_TIMEOUT,
        platform: Optional[str] = None,
    ) -> None:
        """
        :param config: Settings source with a `get(key, default)` method.
        :param locator: Resolves the server executable. Defaults to one rooted at the config's workspace.
        :param server_output: Logger that receives the server's stdout/stderr lines.
        :param prober: Health check used for the initial probe and the readiness wait.
        :param ready_timeout: Seconds to wait for the server to become healthy after launch.
        :param poll_interval: Seconds between readiness probes.
        :param probe_timeout: Timeout of a single health probe.
        :param grace_period: Seconds between SIGTERM and SIGKILL when stopping.
        :param platform: Overrides `sys.platform` when choosing how to terminate.
        """
        self.config = config
        self.locator = locator or ExecutableLocator(getattr(config, "workspace_root", None))
        self.server_output = server_output
        self.prober = prober
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval
        self.probe_timeout = probe_timeout
        self.grace_period = grace_period
        self.platform = platform

        self.last_failure: Optional[StartFailure] = None

        self._lock = threading.Lock()
        self._state = ServerState.IDLE
        self._process: Optional[SupervisedProcess] = None
        self._attempt: Optional[_StartAttempt] = None
        self._events: "queue.Queue[ProcessEvent]" = queue.Queue()
        self._cancelled = threading.Event()

    #* --- Configuration ---
    def endpoint(self) -> ServerEndpoint:
        """The server endpoint as currently configured."""
        host = self.config.get("server.host", settings.SERVER_HOST)
        port = self.config.get("server.port", settings.SERVER_PORT)
        return ServerEndpoint(str(host), int(port))

    def _flag(self, key: str, default: bool) -> bool:
        return bool(self.config.get(key, default))

    #* --- Public operations ---
    def ensure_running(self) -> bool:
        """
        Makes sure a healthy server is reachable, launching one if allowed.

        :return: True if the server is healthy when the call returns.
        """
        try:
            return self._ensure_running()
        except Exception as e:
            log.error(f"Failed to ensure server running: {e}", exc_info=True)
            self.last_failure = StartFailure.UNEXPECTED_ERROR
            return False

    def stop(self, force: bool = False) -> None:
        """
        Stops the tracked server process.

        Does nothing when no process is tracked, or when `force` is False and
        auto-stop is disabled. Termination errors are logged; the tracked state
        is always cleared afterward.

        :param force: Stop even if `server.autoStop` is disabled.
        """
        self._apply_events()
        with self._lock:
            process = self._process
        if process is None:
            return

        if not force and not self._flag("server.autoStop", settings.SERVER_AUTO_STOP):
            log.info("Auto-stop disabled, server not stopped")
            return

        with self._lock:
            if self._state is ServerState.STOPPING:
                log.debug("DPug server is already stopping.")
                return
            self._state = ServerState.STOPPING

        log.info("Stopping DPug server...")
        try:
            terminate_process(process, self.grace_period, self.platform)
        except Exception as e:
            log.error(f"Error stopping server: {e}")
        finally:
            with self._lock:
                if self._process is process:
                    self._process = None
                self._state = ServerState.IDLE
        log.info("DPug server stopped.")

    def status(self) -> ServerStatus:
        """Returns the running/starting/ready view of the current state."""
        self._apply_events()
        with self._lock:
            return ServerStatus(
                running=self._process is not None,
                starting=self._state is ServerState.STARTING,
                ready=self._state is ServerState.READY,
            )

    @property
    def pid(self) -> Optional[int]:
        """PID of the tracked server process, if any."""
        with self._lock:
            return self._process.pid if self._process is not None else None

    def cancel(self) -> None:
        """Aborts an in-flight readiness wait and refuses further launches."""
        self._cancelled.set()

    #* --- State machine ---
    def _ensure_running(self) -> bool:
        self._apply_events()
        endpoint = self.endpoint()

        if self.prober(endpoint, self.probe_timeout):
            with self._lock:
                if self._state in (ServerState.IDLE, ServerState.READY):
                    self._state = ServerState.READY
            log.info("DPug server is already running and healthy")
            self.last_failure = None
            return True

        auto_start = self._flag("server.autoStart", settings.SERVER_AUTO_START)

        # Check-and-set of STARTING happens under a single lock acquisition.
        with self._lock:
            if self._state is ServerState.STARTING and self._attempt is not None:
                attempt, is_owner, existing = self._attempt, False, None
            elif self._state is ServerState.STOPPING:
                log.warning("DPug server is stopping; not starting a new one.")
                return False
            elif self._cancelled.is_set():
                self.last_failure = StartFailure.CANCELLED
                return False
            elif not auto_start:
                log.info("Auto-start disabled, server not started")
                self.last_failure = StartFailure.AUTO_START_DISABLED
                return False
            else:
                attempt, is_owner, existing = _StartAttempt(), True, self._process
                self._attempt = attempt
                self._state = ServerState.STARTING

        if not is_owner:
            log.info("DPug server is starting, waiting...")
            attempt.done.wait()
            return attempt.result

        failure: Optional[StartFailure] = StartFailure.UNEXPECTED_ERROR
        try:
            failure = self._launch_and_wait(endpoint, existing)
        finally:
            self._finish_attempt(attempt, failure)
        return attempt.result

    def _launch_and_wait(self, endpoint: ServerEndpoint, process: Optional[SupervisedProcess]) -> Optional[StartFailure]:
        """Runs locate, launch and readiness wait. Returns None on success."""
        if process is None:
            log.info("Starting DPug server...")
            candidate = self.locator.locate()
            if candidate is None:
                log.error(
                    "Failed to start DPug server: could not find dpug CLI executable. "
                    "Please ensure dpug_cli is installed."
                )
                return StartFailure.EXECUTABLE_NOT_FOUND
            try:
                process = launch_process(
                    candidate, endpoint.port, settings.SERVER_BIND_HOST, self._events, self.server_output
                )
            except LaunchError as e:
                log.error(f"Failed to start DPug server: {e}")
                return StartFailure.SPAWN_FAILED
            with self._lock:
                self._process = process
        else:
            log.info(f"DPug server (PID {process.pid}) is not healthy yet, waiting...")

        def process_gone() -> bool:
            self._apply_events()
            return not process.is_alive()

        ready = health.wait_ready(
            endpoint,
            deadline=self.ready_timeout,
            poll_interval=self.poll_interval,
            probe_timeout=self.probe_timeout,
            prober=self.prober,
            cancel_event=self._cancelled,
            should_abort=process_gone,
        )
        if ready:
            log.info("DPug server is ready")
            return None
        if self._cancelled.is_set():
            return StartFailure.CANCELLED
        if not process.is_alive():
            log.error("DPug server exited before becoming ready")
            return StartFailure.PROCESS_EXITED
        log.error("Timeout waiting for DPug server to be ready")
        return StartFailure.READINESS_TIMEOUT

    def _finish_attempt(self, attempt: _StartAttempt, failure: Optional[StartFailure]) -> None:
        """Moves a finished attempt to READY or back to IDLE and releases waiting callers."""
        with self._lock:
            is_current = self._attempt is attempt
            process = self._process

        # IDLE holds no process, so a server that never became ready is stopped.
        if failure is not None and is_current and process is not None and process.is_alive():
            log.warning(f"Stopping DPug server (PID {process.pid}) that failed to become ready.")
            try:
                terminate_process(process, self.grace_period, self.platform)
            except Exception as e:
                log.error(f"Error stopping server: {e}")

        with self._lock:
            # A stop that ran during the wait already cleared the process and the state.
            stopped = (
                self._attempt is not attempt
                or self._state is not ServerState.STARTING
                or process is None
                or self._process is not process
            )
            if failure is None and stopped:
                log.warning("DPug server was stopped before startup completed")
                failure = StartFailure.STOPPED
            if self._attempt is attempt:
                self._attempt = None
                if failure is None:
                    self._state = ServerState.READY
                else:
                    if self._process is process:
                        self._process = None
                    if self._state is ServerState.STARTING:
                        self._state = ServerState.IDLE
        self.last_failure = failure
        attempt.finish(failure is None)

    #* --- Process events ---
    def _apply_events(self) -> None:
        """Drains the launcher's event queue, applying each event as a state transition."""
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return
            self._handle_event(event)

    def _handle_event(self, event: ProcessEvent) -> None:
        with self._lock:
            is_tracked = self._process is not None and self._process.pid == event.pid
            if is_tracked:
                self._process = None
                if self._state is ServerState.READY:
                    self._state = ServerState.IDLE

        if event.kind == ProcessEvent.ERROR:
            log.error(f"DPug server process error: {event.error}")
        elif is_tracked:
            log.warning(f"DPug server exited with code {event.returncode}, signal {event.signal_name}")
        else:
            log.debug(f"DPug server (PID {event.pid}) exited with code {event.returncode}, signal {event.signal_name}")
