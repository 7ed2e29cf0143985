"""Remove stale host keys with ``ssh-keygen -R``."""

import logging
import os
import subprocess
from typing import Callable, List, Optional

from .models import DEFAULT_SSH_PORT, HostRecord

logger = logging.getLogger(__name__)

KEYGEN_BINARY = "ssh-keygen"


def known_host_names(record: HostRecord) -> List[str]:
    """Return the names a host's key can be stored under in known_hosts."""
    names = [record.address]
    port = record.effective_port()
    if port != DEFAULT_SSH_PORT:
        names.append(f"[{record.address}]:{port}")
    return names


class KnownHostsCleaner:
    """Runs ``ssh-keygen -R`` for every name a host's key may be filed under."""

    def __init__(self, known_hosts_path: Optional[str] = None, runner: Callable = subprocess.run):
        self.known_hosts_path = known_hosts_path
        self._runner = runner

    def _command(self, name: str) -> List[str]:
        cmd = [KEYGEN_BINARY, "-R", name]
        if self.known_hosts_path:
            cmd.extend(["-f", os.path.abspath(os.path.expanduser(self.known_hosts_path))])
        return cmd

    def remove(self, record: HostRecord) -> bool:
        """Forget the stored keys for *record*.

        Returns True when every ``ssh-keygen`` call succeeded. Failures are
        logged as warnings; the caller carries on either way.
        """
        ok = True
        for name in known_host_names(record):
            cmd = self._command(name)
            try:
                completed = self._runner(cmd, capture_output=True, text=True, check=False)
            except OSError as exc:
                logger.warning("Could not run ssh-keygen to remove %s: %s", name, exc)
                return False
            if completed.returncode != 0:
                message = (completed.stderr or completed.stdout or "").strip()
                logger.warning(
                    "ssh-keygen -R %s exited with %s%s",
                    name,
                    completed.returncode,
                    f": {message}" if message else "",
                )
                ok = False
            else:
                logger.info("Removed known host key entries for %s", name)
        return ok


__all__ = ['KnownHostsCleaner', 'known_host_names']
