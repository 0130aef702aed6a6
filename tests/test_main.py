import sys
from unittest.mock import MagicMock

import pytest

from conftest import FakeConfig, Prober, StaticLocator
from dpug_host import main as entry
from dpug_host.local.extension import Extension
from dpug_host.local.supervisor import ServerStatus, ServerSupervisor
from dpug_host.local.supervisor.state import LaunchCandidate


@pytest.fixture
def run_main(monkeypatch):
    monkeypatch.setattr(entry, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(entry.setproctitle, "setproctitle", lambda title: None)

    def run(extension, *argv):
        monkeypatch.setattr(entry, "Extension", lambda workspace_root: extension)
        monkeypatch.setattr(sys, "argv", ["dpug-host", *argv])
        entry.main()

    return run


def test_one_shot_start_leaves_server_running(run_main, tmp_path, fake_launcher):
    supervisor = ServerSupervisor(
        FakeConfig(),
        locator=StaticLocator(LaunchCandidate("/opt/dpug/bin/dpug")),
        prober=Prober(fake_launcher, healthy_after=1),
        ready_timeout=2,
        poll_interval=0.01,
        grace_period=0.1,
    )

    run_main(Extension(tmp_path, supervisor=supervisor), "start")

    process = fake_launcher.processes[0]
    assert process.is_alive()
    assert process.popen.terminate_calls == 0
    assert supervisor.status() == ServerStatus(running=True, starting=False, ready=True)


def test_one_shot_restart_does_not_deactivate(run_main):
    extension = MagicMock()

    run_main(extension, "restart")

    extension.supervisor.ensure_running.assert_called_once_with()
    extension.deactivate.assert_not_called()


def test_other_one_shot_commands_deactivate(run_main):
    extension = MagicMock()

    run_main(extension, "help")

    extension.deactivate.assert_called_once_with()


def test_one_shot_stop_is_refused(run_main, capsys):
    extension = MagicMock()

    run_main(extension, "stop", "--force")

    extension.supervisor.stop.assert_not_called()
    extension.deactivate.assert_not_called()
    assert "only applies to a server started from the interactive console" in capsys.readouterr().out
