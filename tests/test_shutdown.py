import sys
import time
import queue
import signal
import textwrap
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeProcess
from dpug_host.local.supervisor.process_utils import launch_process
from dpug_host.local.supervisor.shutdown import terminate_process
from dpug_host.local.supervisor.state import LaunchCandidate, ProcessEvent


def test_graceful_exit_needs_no_kill():
    process = FakeProcess(["dpug"], queue.Queue(), responds_to_term=True)

    terminate_process(process, grace_period=0.2, platform="linux")

    assert process.popen.terminate_calls == 1
    assert process.popen.kill_calls == 0


def test_stubborn_process_is_killed_exactly_once():
    process = FakeProcess(["dpug"], queue.Queue(), responds_to_term=False)

    terminate_process(process, grace_period=0.1, platform="linux")

    assert process.popen.terminate_calls == 1
    assert process.popen.kill_calls == 1
    assert not process.is_alive()


def test_already_exited_process_is_left_alone():
    process = FakeProcess(["dpug"], queue.Queue())
    process.exit(0)

    terminate_process(process, grace_period=0.1, platform="linux")

    assert process.popen.terminate_calls == 0
    assert process.popen.kill_calls == 0


@patch("dpug_host.local.supervisor.shutdown.psutil")
def test_windows_kills_the_whole_tree_without_signals(mock_psutil):
    child, grandchild = MagicMock(), MagicMock()
    root = MagicMock()
    root.children.return_value = [child, grandchild]
    mock_psutil.Process.return_value = root
    process = FakeProcess(["dpug.exe"], queue.Queue())

    terminate_process(process, grace_period=0.5, platform="win32")

    mock_psutil.Process.assert_called_once_with(process.pid)
    root.children.assert_called_once_with(recursive=True)
    for proc in (child, grandchild, root):
        proc.kill.assert_called_once_with()
    mock_psutil.wait_procs.assert_called_once_with([child, grandchild, root], timeout=0.5)
    assert process.popen.terminate_calls == 0


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
def test_real_process_ignoring_sigterm_gets_sigkill(tmp_path, sink):
    logger, handler = sink
    script = tmp_path / "stubborn.py"
    script.write_text(textwrap.dedent("""
        import signal, sys, time
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        print("ready", flush=True)
        while True:
            time.sleep(0.1)
    """))
    events = queue.Queue()
    process = launch_process(LaunchCandidate.script(script, sys.executable), 8080, "localhost", events, logger)
    # The child prints once its SIGTERM handler is installed.
    deadline = time.monotonic() + 10
    while "[Server] ready" not in handler.messages() and time.monotonic() < deadline:
        time.sleep(0.05)

    terminate_process(process, grace_period=0.5)

    event = events.get(timeout=5)
    assert event.kind == ProcessEvent.EXIT
    assert event.signal_name == signal.Signals.SIGKILL.name
