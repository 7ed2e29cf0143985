"""Save and restore the controlling terminal's line discipline around ssh runs."""

import logging
import os
import sys
from typing import Optional

if os.name == 'posix':
    import termios
else:
    termios = None

logger = logging.getLogger(__name__)


class TerminalGuard:
    """Remember the terminal attributes and put them back afterwards.

    ``sshpass`` and ``ssh -tt`` switch the terminal to raw mode and do not
    always undo it when they are killed. :meth:`restore` reapplies the saved
    attributes, or forces canonical input, echo and newline translation back
    on when nothing could be saved.
    """

    def __init__(self, fd: Optional[int] = None):
        if fd is None:
            try:
                fd = sys.stdin.fileno()
            except (AttributeError, ValueError, OSError):
                fd = None
        self.fd = fd
        self.saved_attrs = None
        self.restore_count = 0

    @property
    def is_tty(self) -> bool:
        if termios is None or self.fd is None:
            return False
        try:
            return os.isatty(self.fd)
        except OSError:
            return False

    def save(self) -> bool:
        """Snapshot the current attributes; return True on success."""
        if not self.is_tty:
            return False
        try:
            self.saved_attrs = termios.tcgetattr(self.fd)
        except termios.error as e:
            logger.debug("Could not read terminal attributes: %s", e)
            self.saved_attrs = None
            return False
        return True

    def restore(self) -> None:
        """Put the terminal back into a usable state."""
        self.restore_count += 1
        if not self.is_tty:
            return
        try:
            if self.saved_attrs is not None:
                termios.tcsetattr(self.fd, termios.TCSADRAIN, self.saved_attrs)
                return
            attrs = termios.tcgetattr(self.fd)
            iflag, oflag, lflag = attrs[0], attrs[1], attrs[3]
            attrs[0] = iflag | termios.ICRNL
            attrs[1] = oflag | termios.OPOST | termios.ONLCR
            attrs[3] = lflag | termios.ICANON | termios.ECHO | termios.ISIG
            termios.tcsetattr(self.fd, termios.TCSADRAIN, attrs)
        except termios.error as e:
            logger.warning("Failed to restore terminal settings: %s", e)

    def __enter__(self):
        self.save()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.restore()
        return False


__all__ = ['TerminalGuard']
