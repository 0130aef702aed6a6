import sys
import psutil
import logging
from typing import List, Optional
from dpug_host.local.supervisor.process_utils import SupervisedProcess

log = logging.getLogger(__name__)


def _kill_process_tree(process: SupervisedProcess, timeout: float) -> None:
    """Forcefully kills the server and every descendant. Used where signals are unavailable."""
    try:
        root = psutil.Process(process.pid)
    except psutil.NoSuchProcess:
        log.debug(f"Process {process.pid} no longer exists, nothing to kill.")
        return

    try:
        procs: List[psutil.Process] = root.children(recursive=True)
    except psutil.NoSuchProcess:
        procs = []
    procs.append(root)

    for proc in procs:
        try:
            log.debug(f"Killing {proc.pid} as part of the dpug server tree.")
            proc.kill()
        except psutil.NoSuchProcess:
            continue
    psutil.wait_procs(procs, timeout=timeout)


def _terminate_gracefully(process: SupervisedProcess, grace_period: float) -> None:
    """Sends SIGTERM, waits for the grace period, then sends SIGKILL once if needed."""
    log.debug(f"Sending SIGTERM to dpug server (PID {process.pid})")
    process.popen.terminate()

    if process.exited.wait(grace_period):
        return

    log.warning(f"DPug server (PID {process.pid}) did not exit within {grace_period}s. Sending SIGKILL.")
    process.popen.kill()


def terminate_process(process: SupervisedProcess, grace_period: float, platform: Optional[str] = None) -> None:
    """
    Stops the server process.

    On POSIX the process gets SIGTERM and, if it is still alive after the
    grace period, SIGKILL. On Windows the whole process tree is killed
    immediately. OS errors propagate to the caller, which logs them.

    :param process: The supervised server process.
    :param grace_period: Seconds to wait between SIGTERM and SIGKILL.
    :param platform: Overrides `sys.platform`, for tests.
    """
    platform = platform or sys.platform
    if not process.is_alive():
        log.debug(f"DPug server (PID {process.pid}) already exited.")
        return

    if platform == "win32":
        _kill_process_tree(process, timeout=grace_period)
    else:
        _terminate_gracefully(process, grace_period)
