import os
from types import SimpleNamespace

import pytest

from sshconn.credentials import MemoryCredentialStore
from sshconn.errors import CredentialError, NotFound, ProcessLaunchError
from sshconn.launcher import LaunchResult
from sshconn.models import (
    AuthMethod,
    ConnectionState,
    FailureKind,
    HostKeyEvent,
    HostRecord,
)
from sshconn.orchestrator import (
    ConnectionOrchestrator,
    classify_failure,
    is_failure_exit,
    is_host_key_conflict,
)

HOST_KEY_CHANGED = """\
@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@
@    WARNING: REMOTE HOST IDENTIFICATION HAS CHANGED!     @
@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@@
IT IS POSSIBLE THAT SOMEONE IS DOING SOMETHING NASTY!
Someone could be eavesdropping on you right now (man-in-the-middle attack)!
Host key verification failed.
"""


class FakeEngine:
    config_path = "/nonexistent/config"

    def __init__(self, *records):
        self.records = {r.alias: r for r in records}

    def find(self, alias):
        if alias not in self.records:
            raise NotFound(alias)
        return self.records[alias].copy()


class FakeLauncher:
    replaces_process = False

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def launch(self, argv, pass_fds=(), before_exec=None):
        secret = os.read(pass_fds[0], 1024) if pass_fds else None
        self.calls.append(SimpleNamespace(argv=list(argv), secret=secret))
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeGuard:
    def __init__(self):
        self.saved = 0
        self.restored = 0

    def save(self):
        self.saved += 1
        return True

    def restore(self):
        self.restored += 1


class FakeCleaner:
    def __init__(self, ok=True):
        self.ok = ok
        self.removed = []

    def remove(self, record):
        self.removed.append(record.alias)
        return self.ok


class FailingCredentials:
    def get(self, alias):
        raise CredentialError("keyring locked")


def _make(launcher, passwords=None, cleaner=None, credentials=None, **options):
    guard = FakeGuard()
    cleaner = cleaner or FakeCleaner()
    credentials = credentials or MemoryCredentialStore(passwords or {})
    options.setdefault("sshpass_check", lambda: True)
    orchestrator = ConnectionOrchestrator(
        FakeEngine(HostRecord(alias="web", address="10.0.0.1", user="deploy")),
        credentials,
        launcher,
        cleaner,
        lambda: guard,
        **options,
    )
    return orchestrator, guard, cleaner, credentials


def test_stored_password_uses_sshpass_pipe():
    launcher = FakeLauncher(LaunchResult(0))
    orchestrator, guard, _, credentials = _make(launcher, {"web": "s3cret"})

    outcome = orchestrator.connect("web")

    assert outcome.state is ConnectionState.SUCCEEDED
    assert outcome.method is AuthMethod.AUTO_PASSWORD
    call = launcher.calls[0]
    assert call.argv[0] == "sshpass"
    assert call.secret == b"s3cret\n"
    assert not any("s3cret" in part for part in call.argv)
    assert credentials.lookups == 1
    assert guard.restored >= 1


def test_no_password_uses_standard_ssh():
    launcher = FakeLauncher(LaunchResult(0))
    orchestrator, *_ = _make(launcher)

    outcome = orchestrator.connect("web")

    assert outcome.succeeded
    assert outcome.method is AuthMethod.STANDARD
    assert launcher.calls[0].argv[0] == "ssh"
    assert launcher.calls[0].secret is None


def test_accepted_host_key_change_retries_with_standard_only():
    launcher = FakeLauncher(LaunchResult(255, HOST_KEY_CHANGED), LaunchResult(0))
    orchestrator, _, cleaner, credentials = _make(launcher, {"web": "pw"})
    asked = []

    outcome = orchestrator.connect("web", confirm=lambda alias: asked.append(alias) or True)

    assert asked == ["web"]
    assert cleaner.removed == ["web"]
    assert outcome.state is ConnectionState.SUCCEEDED
    assert outcome.host_key_event is HostKeyEvent.CHANGED_AND_ACCEPTED
    assert [method for method, _ in outcome.attempts] == [AuthMethod.AUTO_PASSWORD, AuthMethod.STANDARD]
    retry = launcher.calls[1]
    assert retry.argv[0] == "ssh"
    assert "sshpass" not in retry.argv
    assert retry.secret is None
    assert credentials.lookups == 1


def test_rejected_host_key_change_aborts():
    launcher = FakeLauncher(LaunchResult(255, HOST_KEY_CHANGED))
    orchestrator, _, cleaner, _ = _make(launcher)

    outcome = orchestrator.connect("web", confirm=lambda alias: False)

    assert outcome.state is ConnectionState.ABORTED
    assert outcome.host_key_event is HostKeyEvent.CHANGED_AND_REJECTED
    assert cleaner.removed == []
    assert len(launcher.calls) == 1


def test_missing_confirm_callback_means_reject():
    launcher = FakeLauncher(LaunchResult(255, "Host key verification failed.\n"))
    orchestrator, *_ = _make(launcher)

    outcome = orchestrator.connect("web")

    assert outcome.state is ConnectionState.ABORTED


def test_second_host_key_conflict_fails_without_looping():
    launcher = FakeLauncher(LaunchResult(255, HOST_KEY_CHANGED), LaunchResult(255, HOST_KEY_CHANGED))
    orchestrator, *_ = _make(launcher)

    outcome = orchestrator.connect("web", confirm=lambda alias: True)

    assert outcome.state is ConnectionState.FAILED
    assert len(launcher.calls) == 2


def test_key_removal_failure_is_not_fatal():
    launcher = FakeLauncher(LaunchResult(255, HOST_KEY_CHANGED), LaunchResult(0))
    orchestrator, *_ = _make(launcher, cleaner=FakeCleaner(ok=False))

    outcome = orchestrator.connect("web", confirm=lambda alias: True)

    assert outcome.state is ConnectionState.SUCCEEDED


def test_wrong_password_falls_back_to_interactive_once():
    launcher = FakeLauncher(LaunchResult(5, ""), LaunchResult(0))
    orchestrator, *_ = _make(launcher, {"web": "old"})

    outcome = orchestrator.connect("web")

    assert outcome.state is ConnectionState.SUCCEEDED
    assert outcome.method is AuthMethod.STANDARD
    assert outcome.attempts == [(AuthMethod.AUTO_PASSWORD, 5), (AuthMethod.STANDARD, 0)]


def test_network_failure_does_not_fall_back():
    launcher = FakeLauncher(LaunchResult(255, "ssh: connect to host 10.0.0.1 port 22: Connection timed out\n"))
    orchestrator, *_ = _make(launcher, {"web": "pw"})

    outcome = orchestrator.connect("web")

    assert outcome.state is ConnectionState.FAILED
    assert outcome.failure is FailureKind.NETWORK_TIMEOUT
    assert outcome.exit_code == 255
    assert len(launcher.calls) == 1


def test_fallback_can_be_disabled():
    launcher = FakeLauncher(LaunchResult(5, ""))
    orchestrator, *_ = _make(launcher, {"web": "pw"}, fallback_to_standard=False)

    outcome = orchestrator.connect("web")

    assert outcome.state is ConnectionState.FAILED
    assert outcome.failure is FailureKind.AUTH_FAILURE


def test_remote_exit_status_counts_as_success():
    launcher = FakeLauncher(LaunchResult(3))
    orchestrator, *_ = _make(launcher)

    outcome = orchestrator.connect("web")

    assert outcome.state is ConnectionState.SUCCEEDED
    assert outcome.exit_code == 3


def test_unknown_alias_propagates_not_found():
    orchestrator, *_ = _make(FakeLauncher())

    with pytest.raises(NotFound):
        orchestrator.connect("nope")


def test_terminal_is_restored_on_interrupt_and_launch_errors():
    for error in (KeyboardInterrupt(), ProcessLaunchError("ssh", "not found on PATH")):
        orchestrator, guard, _, _ = _make(FakeLauncher(error), {"web": "pw"})
        with pytest.raises(type(error)):
            orchestrator.connect("web")
        assert guard.saved == 1
        assert guard.restored >= 1


def test_credential_error_falls_back_to_standard():
    launcher = FakeLauncher(LaunchResult(0))
    orchestrator, *_ = _make(launcher, credentials=FailingCredentials())

    outcome = orchestrator.connect("web")

    assert outcome.method is AuthMethod.STANDARD
    assert outcome.succeeded


def test_missing_sshpass_uses_standard():
    launcher = FakeLauncher(LaunchResult(0))
    orchestrator, *_ = _make(launcher, {"web": "pw"}, sshpass_check=lambda: False)

    outcome = orchestrator.connect("web")

    assert outcome.method is AuthMethod.STANDARD
    assert launcher.calls[0].argv[0] == "ssh"


def test_failure_helpers():
    assert is_host_key_conflict("Host key for example.com has changed and you have requested strict checking.")
    assert not is_host_key_conflict("Permission denied (publickey).")
    assert is_failure_exit(255, AuthMethod.STANDARD)
    assert not is_failure_exit(5, AuthMethod.STANDARD)
    assert is_failure_exit(5, AuthMethod.AUTO_PASSWORD)
    assert not is_failure_exit(0, AuthMethod.AUTO_PASSWORD)
    assert classify_failure(255, "Permission denied (publickey,password).", AuthMethod.STANDARD) is FailureKind.AUTH_FAILURE
    assert classify_failure(255, "Could not resolve hostname nope", AuthMethod.STANDARD) is FailureKind.NETWORK_TIMEOUT
    assert classify_failure(255, "", AuthMethod.STANDARD) is FailureKind.UNKNOWN
