import itertools
import logging
import threading
from typing import Any, Dict, List

import pytest

from dpug_host.local.supervisor.state import ProcessEvent

_pids = itertools.count(40000)


class FakeConfig:
    """Dict-backed stand-in for WorkspaceSettings."""

    def __init__(self, **overrides: Any) -> None:
        self.values: Dict[str, Any] = {
            "server.host": "127.0.0.1",
            "server.port": 8080,
            "server.autoStart": True,
            "server.autoStop": True,
            "formatting.formatOnSave": True,
        }
        self.values.update(overrides)
        self.workspace_root = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


class FakePopen:
    def __init__(self, process: "FakeProcess", responds_to_term: bool) -> None:
        self.process = process
        self.responds_to_term = responds_to_term
        self.terminate_calls = 0
        self.kill_calls = 0
        self.returncode = None

    def terminate(self) -> None:
        self.terminate_calls += 1
        if self.responds_to_term:
            self.process.exit(-15)

    def kill(self) -> None:
        self.kill_calls += 1
        self.process.exit(-9)


class FakeProcess:
    """Stand-in for SupervisedProcess that publishes its exit like the real watcher."""

    def __init__(self, args: List[str], events, responds_to_term: bool = True) -> None:
        self.args = args
        self.pid = next(_pids)
        self.events = events
        self.exited = threading.Event()
        self.popen = FakePopen(self, responds_to_term)

    def is_alive(self) -> bool:
        return not self.exited.is_set()

    def exit(self, returncode: int) -> None:
        if self.exited.is_set():
            return
        self.popen.returncode = returncode
        self.exited.set()
        self.events.put(ProcessEvent(ProcessEvent.EXIT, self.pid, returncode=returncode))


class FakeLauncher:
    """Replaces launch_process; records every spawn."""

    def __init__(self, responds_to_term: bool = True) -> None:
        self.responds_to_term = responds_to_term
        self.calls: List[Any] = []
        self.processes: List[FakeProcess] = []
        self.lock = threading.Lock()

    def __call__(self, candidate, port, host, events, sink=None) -> FakeProcess:
        with self.lock:
            self.calls.append(candidate)
            process = FakeProcess(candidate.build_args(port, host), events, self.responds_to_term)
            self.processes.append(process)
            return process


class ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def messages(self) -> List[str]:
        return [r.getMessage() for r in self.records]


@pytest.fixture
def fake_config():
    return FakeConfig()


@pytest.fixture
def fake_launcher(monkeypatch):
    launcher = FakeLauncher()
    monkeypatch.setattr("dpug_host.local.supervisor.supervisor.launch_process", launcher)
    return launcher


@pytest.fixture
def sink():
    logger = logging.getLogger("tests.server-output")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = ListHandler()
    logger.addHandler(handler)
    yield logger, handler
    logger.removeHandler(handler)


class Prober:
    """Health check stub: unhealthy until `healthy_after` probes have failed after a launch."""

    def __init__(self, launcher=None, healthy=False, healthy_after=None):
        self.launcher = launcher
        self.healthy = healthy
        self.healthy_after = healthy_after
        self.calls = 0
        self.failures_since_launch = 0
        self.lock = threading.Lock()

    def __call__(self, endpoint, timeout):
        with self.lock:
            self.calls += 1
            if self.healthy:
                return True
            if self.launcher is not None and self.launcher.processes and self.healthy_after is not None:
                if self.failures_since_launch >= self.healthy_after:
                    return True
                self.failures_since_launch += 1
            return False


class StaticLocator:
    def __init__(self, candidate):
        self.candidate = candidate
        self.calls = 0

    def locate(self):
        self.calls += 1
        return self.candidate
