import io
import logging
import os

import pytest

from sshconn import cli
from sshconn.models import AuthMethod, ConnectionOutcome, ConnectionState, ProbeResult, ProbeState


@pytest.fixture(autouse=True)
def restore_root_logging():
    """main() reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "ssh_config"


@pytest.fixture
def run(config_file):
    def invoke(*argv):
        return cli.main(["--config", str(config_file), "--no-keyring", *argv])

    return invoke


def test_add_list_show_round_trip(run, config_file, capsys):
    assert run("add", "web", "--hostname", "10.0.0.5", "--user", "deploy", "--port", "2222") == 0
    assert config_file.read_text() == "Host web\n    HostName 10.0.0.5\n    User deploy\n    Port 2222\n"
    assert oct(os.stat(config_file).st_mode & 0o777) == "0o600"

    capsys.readouterr()
    assert run("list") == 0
    out = capsys.readouterr().out
    assert "web" in out and "10.0.0.5" in out and "2222" in out

    assert run("show", "web") == 0
    assert "HostName      10.0.0.5" in capsys.readouterr().out


def test_list_json(run, config_file, capsys):
    config_file.write_text("Host a\n    HostName 1.2.3.4\n    ForwardAgent yes\n")

    assert run("list", "--json") == 0

    out = capsys.readouterr().out
    assert '"alias": "a"' in out
    assert '"ForwardAgent": "yes"' in out


def test_edit_writes_backup_and_changes_only_the_field(run, config_file, capsys):
    config_file.write_text("# mine\nHost web\n    HostName old.example\n    User deploy\n")

    assert run("edit", "web", "--hostname", "new.example") == 0

    assert config_file.read_text() == "# mine\nHost web\n    HostName new.example\n    User deploy\n"
    assert "Backup saved to" in capsys.readouterr().out
    backups = [p for p in config_file.parent.iterdir() if ".backup." in p.name]
    assert len(backups) == 1
    assert "old.example" in backups[0].read_text()


def test_edit_clear_and_extra_options(run, config_file):
    config_file.write_text("Host web\n    HostName h\n    User deploy\n")

    assert run("edit", "web", "--clear", "user", "-o", "ForwardAgent=yes") == 0

    text = config_file.read_text()
    assert "User" not in text
    assert "ForwardAgent yes" in text


def test_edit_without_fields_needs_a_terminal(run, config_file, monkeypatch, capsys):
    config_file.write_text("Host web\n    HostName h\n")
    monkeypatch.setattr(cli, "_is_interactive", lambda: False)

    assert run("edit", "web") == 5
    assert "Error:" in capsys.readouterr().err


def test_delete_and_rename(run, config_file):
    config_file.write_text("Host a\n    HostName 1\n\nHost b\n    HostName 2\n")

    assert run("rename", "a", "alpha") == 0
    assert run("delete", "b", "--yes") == 0

    assert config_file.read_text() == "Host alpha\n    HostName 1\n\n"


def test_delete_refused_at_prompt(run, config_file, monkeypatch):
    config_file.write_text("Host a\n    HostName 1\n")
    monkeypatch.setattr("builtins.input", lambda prompt: "n")

    assert run("delete", "a") == 1
    assert "Host a" in config_file.read_text()


def test_search(run, config_file, capsys):
    config_file.write_text("Host web\n    HostName 10.0.0.1\n\nHost db\n    HostName 10.0.0.2\n    User postgres\n")

    assert run("search", "post") == 0

    out = capsys.readouterr().out
    assert "db" in out
    assert "web" not in out


@pytest.mark.parametrize(
    "setup, argv, code",
    [
        ("", ("show", "missing"), 3),
        ("Host web\n    HostName h\n", ("add", "web", "--hostname", "x"), 4),
        ("", ("add", "web", "--hostname", "x", "--port", "70000"), 5),
        ("", ("add", "web", "--hostname", "x", "-o", "Port=99999"), 5),
        ("Host web\n    HostName h\n", ("edit", "web", "-o", "User=bob"), 5),
        ("Host a\n    Port ssh\n", ("list",), 6),
    ],
)
def test_error_exit_codes(run, config_file, capsys, setup, argv, code):
    if setup:
        config_file.write_text(setup)
    before = config_file.read_text() if setup else None

    assert run(*argv) == code

    assert capsys.readouterr().err.startswith("Error: ")
    if before is not None:
        assert config_file.read_text() == before


def test_backup_command(run, config_file, capsys):
    assert run("backup") == 0
    assert "Nothing to back up" in capsys.readouterr().out

    config_file.write_text("Host a\n    HostName 1\n")
    assert run("backup") == 0
    assert "Backup saved to" in capsys.readouterr().out


def test_password_set_from_stdin(config_file, memory_keyring, monkeypatch, capsys):
    config_file.write_text("Host web\n    HostName h\n")
    monkeypatch.setattr("sys.stdin", io.StringIO("hunter2\n"))

    assert cli.main(["--config", str(config_file), "password", "set", "web", "--stdin"]) == 0
    assert memory_keyring.passwords[("ssh-conn", "web")] == "hunter2"
    assert "hunter2" not in capsys.readouterr().out

    assert cli.main(["--config", str(config_file), "password", "delete", "web"]) == 0
    assert ("ssh-conn", "web") not in memory_keyring.passwords


def test_password_for_unknown_host(run, capsys):
    assert run("password", "delete", "ghost") == 3


def test_probe_reports_unreachable_hosts(run, config_file, monkeypatch, capsys):
    config_file.write_text("Host up\n    HostName 1\n\nHost down\n    HostName 2\n")

    class FakeProber:
        def __init__(self, timeout, concurrency_limit):
            pass

        def probe_many_sync(self, records, on_result=None):
            results = [
                ProbeResult("up", ProbeState.REACHABLE, latency=0.012),
                ProbeResult("down", ProbeState.UNREACHABLE, cause="Connection refused"),
            ]
            for result in results:
                on_result(result)
            return results

    monkeypatch.setattr(cli, "ConnectivityProber", FakeProber)

    assert run("probe") == 10

    out = capsys.readouterr().out
    assert "reachable (12 ms)" in out
    assert "unreachable: Connection refused" in out
    assert "1/2 reachable" in out


class FakeOrchestrator:
    outcome = None
    calls = []

    @classmethod
    def from_settings(cls, engine, credentials, config, *, foreground=None):
        cls.calls.append(foreground)
        return cls()

    def connect(self, alias, confirm=None):
        return self.outcome


@pytest.mark.parametrize(
    "state, exit_code, expected",
    [
        (ConnectionState.SUCCEEDED, 0, 0),
        (ConnectionState.SUCCEEDED, 3, 3),
        (ConnectionState.ABORTED, 255, 1),
        (ConnectionState.FAILED, 255, 255),
    ],
)
def test_connect_exit_codes(run, config_file, monkeypatch, state, exit_code, expected):
    config_file.write_text("Host web\n    HostName h\n")
    FakeOrchestrator.outcome = ConnectionOutcome("web", AuthMethod.STANDARD, exit_code=exit_code, state=state)
    FakeOrchestrator.calls = []
    monkeypatch.setattr(cli, "ConnectionOrchestrator", FakeOrchestrator)

    assert run("connect", "web") == expected
    assert FakeOrchestrator.calls == [None]


def test_connect_exec_requests_foreground(run, config_file, monkeypatch):
    config_file.write_text("Host web\n    HostName h\n")
    FakeOrchestrator.outcome = ConnectionOutcome("web", AuthMethod.STANDARD, exit_code=0, state=ConnectionState.SUCCEEDED)
    FakeOrchestrator.calls = []
    monkeypatch.setattr(cli, "ConnectionOrchestrator", FakeOrchestrator)

    assert run("connect", "web", "--exec") == 0
    assert FakeOrchestrator.calls == [True]


def test_parse_options_collects_repeated_keys():
    options = cli._parse_options(["LocalForward=1 a:1", "localforward=2 b:2", "ForwardAgent yes"])
    assert options == {"LocalForward": ["1 a:1", "2 b:2"], "ForwardAgent": "yes"}


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--version"])
    assert excinfo.value.code == 0
    assert "ssh-conn" in capsys.readouterr().out
