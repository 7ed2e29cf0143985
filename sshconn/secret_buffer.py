"""
Zeroable holder for a login password.

The password is kept in a ``bytearray`` so it can be overwritten once it has
been handed to ``sshpass``. ``str()`` and ``repr()`` never show the value,
which keeps it out of log lines and tracebacks.
"""

import os
from typing import Optional, Union


class SecretCleared(Exception):
    """Raised when a cleared SecretBuffer is accessed."""


class SecretBuffer:
    """A password stored in mutable memory that can be wiped."""

    __slots__ = ('_data', '_cleared')

    def __init__(self, value: Union[str, bytes, bytearray]):
        if isinstance(value, str):
            value = value.encode('utf-8')
        self._data = bytearray(value)
        self._cleared = False

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return not self._cleared and len(self._data) > 0

    def __str__(self) -> str:
        return "<cleared>" if self._cleared else "<hidden>"

    def __repr__(self) -> str:
        return f"SecretBuffer({self})"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.clear()
        return False

    @property
    def cleared(self) -> bool:
        return self._cleared

    def write_to(self, fd: int, newline: bool = True) -> None:
        """Write the secret to *fd*, followed by a newline.

        ``sshpass -d`` reads the password up to the first newline.
        """
        if self._cleared:
            raise SecretCleared("secret has already been cleared")
        view = memoryview(self._data)
        try:
            while view:
                written = os.write(fd, view)
                view = view[written:]
        finally:
            view.release()
        if newline:
            os.write(fd, b"\n")

    def clear(self) -> None:
        """Overwrite the buffer with zeros and mark it unusable."""
        for i in range(len(self._data)):
            self._data[i] = 0
        self._cleared = True


def wrap_secret(value: Optional[str]) -> Optional[SecretBuffer]:
    """Return a :class:`SecretBuffer` for *value*, or None for a missing/empty password."""
    if not value:
        return None
    return SecretBuffer(value)
