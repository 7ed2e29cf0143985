import io
import os

import pytest

from sshconn.errors import ProcessLaunchError
from sshconn.launcher import (
    ExecLauncher,
    SpawnLauncher,
    default_launcher,
    password_pipe,
    resolve_program,
)
from sshconn.secret_buffer import SecretBuffer, SecretCleared, wrap_secret

pytestmark = pytest.mark.skipif(os.name != "posix", reason="uses /bin/sh")


def test_spawn_tees_stderr_and_keeps_exit_code():
    sink = io.BytesIO()
    launcher = SpawnLauncher(stderr_sink=sink)

    result = launcher.launch(["sh", "-c", "echo 'Host key verification failed.' >&2; exit 3"])

    assert result.exit_code == 3
    assert "Host key verification failed." in result.stderr_tail
    assert sink.getvalue() == b"Host key verification failed.\n"


def test_spawn_keeps_only_the_tail():
    launcher = SpawnLauncher(stderr_sink=io.BytesIO(), tail_bytes=16)

    result = launcher.launch(["sh", "-c", "printf 'aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaend' >&2"])

    assert result.exit_code == 0
    assert len(result.stderr_tail) == 16
    assert result.stderr_tail.endswith("end")


def test_password_reaches_child_through_pipe():
    secret = SecretBuffer("pa ss")
    sink = io.BytesIO()

    with password_pipe(secret) as fd:
        assert secret.cleared
        result = SpawnLauncher(stderr_sink=sink).launch(
            ["sh", "-c", f"read pw < /dev/fd/{fd}; echo \"$pw\" >&2"], pass_fds=(fd,)
        )

    assert result.stderr_tail == "pa ss\n"


def test_missing_program_raises_launch_error():
    with pytest.raises(ProcessLaunchError):
        resolve_program("definitely-not-a-real-ssh-binary")
    with pytest.raises(ProcessLaunchError):
        SpawnLauncher().launch(["definitely-not-a-real-ssh-binary"])


def test_default_launcher_choice():
    assert isinstance(default_launcher(), SpawnLauncher)
    assert isinstance(default_launcher(foreground=True), ExecLauncher)


def test_secret_buffer_hides_and_wipes_value():
    secret = wrap_secret("hunter2")

    assert "hunter2" not in repr(secret)
    assert str(secret) == "<hidden>"
    assert len(secret) == 7

    secret.clear()

    assert not secret
    assert str(secret) == "<cleared>"
    assert bytes(secret._data) == b"\x00" * 7
    with pytest.raises(SecretCleared):
        secret.write_to(1)
    assert wrap_secret("") is None
    assert wrap_secret(None) is None
