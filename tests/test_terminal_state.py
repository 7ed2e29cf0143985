import os

import pytest

from sshconn.terminal_state import TerminalGuard

termios = pytest.importorskip("termios")


def test_non_tty_is_a_no_op(tmp_path):
    with open(tmp_path / "plain", "w") as f:
        guard = TerminalGuard(f.fileno())

        assert guard.is_tty is False
        assert guard.save() is False
        guard.restore()

    assert guard.restore_count == 1


def test_missing_descriptor_is_a_no_op():
    guard = TerminalGuard(fd=None)
    guard.fd = None

    with guard:
        pass

    assert guard.restore_count == 1


@pytest.fixture
def pty_slave():
    master, slave = os.openpty()
    yield slave
    os.close(master)
    os.close(slave)


def test_restores_saved_attributes_after_raw_mode(pty_slave):
    guard = TerminalGuard(pty_slave)
    before = termios.tcgetattr(pty_slave)

    with guard:
        raw = termios.tcgetattr(pty_slave)
        raw[3] &= ~(termios.ICANON | termios.ECHO)
        termios.tcsetattr(pty_slave, termios.TCSANOW, raw)

    assert termios.tcgetattr(pty_slave)[3] == before[3]


def test_forces_sane_mode_without_a_snapshot(pty_slave):
    raw = termios.tcgetattr(pty_slave)
    raw[3] &= ~(termios.ICANON | termios.ECHO)
    termios.tcsetattr(pty_slave, termios.TCSANOW, raw)

    TerminalGuard(pty_slave).restore()

    lflag = termios.tcgetattr(pty_slave)[3]
    assert lflag & termios.ICANON
    assert lflag & termios.ECHO
