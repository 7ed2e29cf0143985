"""Platform-related utility functions."""

import logging
import os
from pathlib import Path

APP_NAME = "ssh-conn"

logger = logging.getLogger(__name__)


def _normalize_path(path: str) -> str:
    """Expand user references and return an absolute path."""
    return os.path.abspath(os.path.expanduser(path))


def is_windows() -> bool:
    """Return True if running on Windows."""
    return os.name == "nt"


def supports_exec() -> bool:
    """Return True when the process image can be replaced with ``os.exec*``."""
    return os.name == "posix"


def _home_dir() -> str:
    expanded = os.path.expanduser("~")
    if expanded and expanded != "~":
        return expanded
    try:
        return str(Path.home())
    except RuntimeError:
        logger.warning(
            "Unable to determine the user's home directory; "
            "falling back to the current working directory."
        )
        return os.getcwd()


def get_config_dir() -> str:
    """Return the per-user configuration directory for ssh-conn.

    ``SSHCONN_CONFIG_DIR`` overrides the location; otherwise
    ``$XDG_CONFIG_HOME/ssh-conn`` (``%APPDATA%`` on Windows) is used.
    """
    override = os.environ.get("SSHCONN_CONFIG_DIR")
    if override:
        return _normalize_path(override)
    if is_windows() and os.environ.get("APPDATA"):
        return os.path.join(os.environ["APPDATA"], APP_NAME)
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(_home_dir(), ".config")
    return _normalize_path(os.path.join(base, APP_NAME))


def get_data_dir() -> str:
    """Return the per-user data directory (logs) for ssh-conn."""
    override = os.environ.get("SSHCONN_DATA_DIR")
    if override:
        return _normalize_path(override)
    if is_windows() and os.environ.get("LOCALAPPDATA"):
        return os.path.join(os.environ["LOCALAPPDATA"], APP_NAME)
    base = os.environ.get("XDG_DATA_HOME") or os.path.join(_home_dir(), ".local", "share")
    return _normalize_path(os.path.join(base, APP_NAME))


def get_ssh_dir() -> str:
    """Return the user's SSH directory.

    By default this is ``~/.ssh``. The location can be overridden by setting
    the ``SSHCONN_SSH_DIR`` environment variable.
    """
    override = os.environ.get("SSHCONN_SSH_DIR")
    if override:
        return _normalize_path(override)
    return _normalize_path(os.path.join(_home_dir(), ".ssh"))


def get_default_ssh_config_path() -> str:
    return os.path.join(get_ssh_dir(), "config")
