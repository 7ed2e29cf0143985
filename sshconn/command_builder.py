"""
Helpers for preparing SSH commands.

The orchestrator runs the regular ``ssh`` client. This module turns a
:class:`~sshconn.models.HostRecord` and the chosen authentication method into
an argv list; in auto-password mode the command is wrapped in
``sshpass -d <fd>`` so the password travels over an inherited pipe and never
shows up in the argument list or the environment.
"""

from __future__ import annotations

import os
import shlex
import shutil
from typing import List, Optional

from .models import DEFAULT_SSH_PORT, AuthMethod, HostRecord
from .platform_utils import get_default_ssh_config_path

SSH_BINARY = "ssh"
SSHPASS_BINARY = "sshpass"
DEFAULT_STRICT_HOST_KEY_CHECKING = "accept-new"


def _abs(path: str) -> str:
    return os.path.abspath(os.path.expanduser(path))


def needs_config_flag(config_path: Optional[str]) -> bool:
    """Return True when *config_path* is not the file ssh reads by default.

    ``-F`` makes ssh skip the system-wide config, so it is only passed for a
    non-default catalogue.
    """
    if not config_path:
        return False
    return os.path.realpath(_abs(config_path)) != os.path.realpath(get_default_ssh_config_path())


def sshpass_available() -> bool:
    return shutil.which(SSHPASS_BINARY) is not None


def build_ssh_command(
    record: HostRecord,
    method: AuthMethod = AuthMethod.STANDARD,
    *,
    config_path: Optional[str] = None,
    known_hosts_path: Optional[str] = None,
    strict_host_key_checking: Optional[str] = DEFAULT_STRICT_HOST_KEY_CHECKING,
    connect_timeout: Optional[int] = None,
    password_fd: Optional[int] = None,
) -> List[str]:
    """
    Return the argv list for launching SSH for *record*.

    Args:
        record: Host to connect to. The alias is the ssh target so every
            directive of its block applies; the fields kept on the record are
            also passed explicitly.
        method: ``AUTO_PASSWORD`` requires *password_fd*, the read end of the
            pipe ``sshpass`` takes the password from.
        config_path: Catalogue file, passed with ``-F`` when it is not the
            default ``~/.ssh/config``.
        known_hosts_path: Optional override for ``UserKnownHostsFile``.
    """
    cmd: List[str] = []
    if method is AuthMethod.AUTO_PASSWORD:
        if password_fd is None:
            raise ValueError("auto-password launch needs a password descriptor")
        cmd.extend([SSHPASS_BINARY, "-d", str(password_fd)])

    cmd.append(SSH_BINARY)

    if needs_config_flag(config_path):
        cmd.extend(["-F", _abs(config_path)])

    if strict_host_key_checking:
        cmd.extend(["-o", f"StrictHostKeyChecking={strict_host_key_checking}"])
    cmd.extend(["-o", "LogLevel=ERROR"])

    if method is AuthMethod.AUTO_PASSWORD:
        # sshpass owns the pty, so force one on the remote side as well
        cmd.extend(["-tt", "-o", "RequestTTY=force"])

    if known_hosts_path:
        cmd.extend(["-o", f"UserKnownHostsFile={_abs(known_hosts_path)}"])

    if connect_timeout:
        cmd.extend(["-o", f"ConnectTimeout={int(connect_timeout)}"])

    if record.port and record.port != DEFAULT_SSH_PORT:
        cmd.extend(["-p", str(record.port)])
    if record.user:
        cmd.extend(["-l", record.user])
    if record.identity_file:
        cmd.extend(["-i", os.path.expanduser(record.identity_file)])
    if record.proxy_command:
        cmd.extend(["-o", f"ProxyCommand={record.proxy_command}"])
    if record.address and record.address != record.alias:
        cmd.extend(["-o", f"HostName={record.address}"])

    cmd.append(record.alias)
    return cmd


def format_command(argv: List[str]) -> str:
    """Return a shell-quoted rendering of *argv* for logs and dry runs."""
    return " ".join(shlex.quote(part) for part in argv)


__all__ = [
    "build_ssh_command",
    "format_command",
    "needs_config_flag",
    "sshpass_available",
    "SSH_BINARY",
    "SSHPASS_BINARY",
]
