from types import SimpleNamespace

from sshconn.known_hosts import KnownHostsCleaner, known_host_names
from sshconn.models import HostRecord


class FakeRunner:
    def __init__(self, returncode=0, error=None):
        self.returncode = returncode
        self.error = error
        self.commands = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(returncode=self.returncode, stdout="", stderr="not found")


def test_names_include_bracketed_port():
    assert known_host_names(HostRecord(alias="a", address="h")) == ["h"]
    assert known_host_names(HostRecord(alias="a", address="h", port=2222)) == ["h", "[h]:2222"]


def test_remove_runs_ssh_keygen_for_each_name(tmp_path):
    runner = FakeRunner()
    known = tmp_path / "known_hosts"
    cleaner = KnownHostsCleaner(str(known), runner=runner)

    assert cleaner.remove(HostRecord(alias="web", address="10.0.0.1", port=2200)) is True
    assert runner.commands == [
        ["ssh-keygen", "-R", "10.0.0.1", "-f", str(known)],
        ["ssh-keygen", "-R", "[10.0.0.1]:2200", "-f", str(known)],
    ]


def test_remove_without_path_uses_ssh_default():
    runner = FakeRunner()
    KnownHostsCleaner(runner=runner).remove(HostRecord(alias="web", address="web.example"))
    assert runner.commands == [["ssh-keygen", "-R", "web.example"]]


def test_failures_are_reported_not_raised(caplog):
    assert KnownHostsCleaner(runner=FakeRunner(returncode=1)).remove(HostRecord(alias="a", address="h")) is False
    assert "exited with 1" in caplog.text

    missing = FakeRunner(error=FileNotFoundError(2, "No such file"))
    assert KnownHostsCleaner(runner=missing).remove(HostRecord(alias="a", address="h")) is False
