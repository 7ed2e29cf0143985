"""
Process launch capability for the ssh client.

:class:`SpawnLauncher` runs the client as a child, lets it use the terminal
directly and copies its stderr through to the user while keeping the tail
for diagnosis. :class:`ExecLauncher` replaces the current process with the
client; there is nothing to come back to afterwards.
"""

import logging
import os
import shutil
import subprocess
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, List, Optional, Sequence

from .errors import ProcessLaunchError
from .platform_utils import supports_exec
from .secret_buffer import SecretBuffer

logger = logging.getLogger(__name__)

STDERR_TAIL_BYTES = 8192


@dataclass
class LaunchResult:
    exit_code: int
    stderr_tail: str = ""


def resolve_program(name: str) -> str:
    """Return the absolute path of *name* on ``PATH`` or raise ProcessLaunchError."""
    path = shutil.which(name)
    if not path:
        raise ProcessLaunchError(name, "not found on PATH")
    return path


@contextmanager
def password_pipe(secret: SecretBuffer) -> Iterator[int]:
    """Yield the read end of a pipe that already holds *secret*.

    The secret is written once, the write end is closed and the buffer is
    zeroed before the child is started. The read end is closed on exit.
    """
    read_fd, write_fd = os.pipe()
    try:
        try:
            secret.write_to(write_fd)
        finally:
            os.close(write_fd)
            secret.clear()
        yield read_fd
    finally:
        os.close(read_fd)


class SpawnLauncher:
    """Run the command as a child process and wait for it to exit."""

    replaces_process = False

    def __init__(self, stderr_sink: Optional[BinaryIO] = None, tail_bytes: int = STDERR_TAIL_BYTES):
        self._stderr_sink = stderr_sink
        self.tail_bytes = tail_bytes

    def _sink(self) -> Optional[BinaryIO]:
        if self._stderr_sink is not None:
            return self._stderr_sink
        return getattr(sys.stderr, 'buffer', None)

    def launch(
        self,
        argv: Sequence[str],
        pass_fds: Sequence[int] = (),
        before_exec: Optional[Callable[[], None]] = None,
    ) -> LaunchResult:
        argv = list(argv)
        program = resolve_program(argv[0])
        logger.debug("Spawning %s with %d argument(s)", program, len(argv) - 1)
        try:
            proc = subprocess.Popen(
                [program] + argv[1:],
                stderr=subprocess.PIPE,
                pass_fds=tuple(pass_fds),
            )
        except OSError as e:
            raise ProcessLaunchError(argv[0], e.strerror or str(e)) from e

        sink = self._sink()
        tail = bytearray()
        try:
            fd = proc.stderr.fileno()
            while True:
                chunk = os.read(fd, 4096)
                if not chunk:
                    break
                if sink is not None:
                    sink.write(chunk)
                    sink.flush()
                tail.extend(chunk)
                if len(tail) > self.tail_bytes:
                    del tail[:-self.tail_bytes]
            exit_code = proc.wait()
        except KeyboardInterrupt:
            logger.info("Interrupted; stopping %s", argv[0])
            proc.terminate()
            proc.wait()
            raise
        finally:
            proc.stderr.close()

        logger.debug("%s exited with %s", argv[0], exit_code)
        return LaunchResult(exit_code=exit_code, stderr_tail=tail.decode('utf-8', 'replace'))


class ExecLauncher:
    """Replace the current process with the command (POSIX only)."""

    replaces_process = True

    def launch(
        self,
        argv: Sequence[str],
        pass_fds: Sequence[int] = (),
        before_exec: Optional[Callable[[], None]] = None,
    ) -> LaunchResult:
        argv: List[str] = list(argv)
        program = resolve_program(argv[0])
        if not supports_exec():
            logger.debug("exec is not supported here; spawning %s instead", program)
            return SpawnLauncher().launch(argv, pass_fds)

        for fd in pass_fds:
            os.set_inheritable(fd, True)
        if before_exec is not None:
            before_exec()
        logger.info("Replacing process with %s", program)
        for handler in logging.getLogger().handlers:
            handler.flush()
        sys.stdout.flush()
        sys.stderr.flush()
        try:
            os.execv(program, argv)
        except OSError as e:
            raise ProcessLaunchError(argv[0], e.strerror or str(e)) from e
        raise AssertionError("os.execv returned")  # pragma: no cover


def default_launcher(foreground: bool = False):
    """Return the launcher for this platform.

    ``foreground`` asks for the process to be replaced by ssh, which is only
    honoured where ``exec`` exists.
    """
    if foreground and supports_exec():
        return ExecLauncher()
    return SpawnLauncher()


__all__ = [
    'LaunchResult',
    'SpawnLauncher',
    'ExecLauncher',
    'default_launcher',
    'password_pipe',
    'resolve_program',
]
