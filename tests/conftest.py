import os
import sys

import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

# Ensure project root is on sys.path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


class InMemoryKeyring(KeyringBackend):
    """Keyring backend that keeps passwords in a dict for the test run."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError("password not found")


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Point every per-user directory at the test's temporary path."""
    ssh_dir = tmp_path / "ssh"
    monkeypatch.setenv("SSHCONN_SSH_DIR", str(ssh_dir))
    monkeypatch.setenv("SSHCONN_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("SSHCONN_DATA_DIR", str(tmp_path / "data"))
    return tmp_path


@pytest.fixture(autouse=True)
def memory_keyring():
    backend = InMemoryKeyring()
    keyring.set_keyring(backend)
    return backend


@pytest.fixture
def ssh_config(tmp_path):
    """Return a writer for the default SSH config under the temp SSH dir."""
    ssh_dir = tmp_path / "ssh"
    ssh_dir.mkdir(exist_ok=True)
    path = ssh_dir / "config"

    def write(text):
        path.write_text(text, encoding="utf-8")
        return path

    return write
