"""
Password storage for hosts.

Passwords live in the system keyring (Secret Service, macOS Keychain,
Windows Credential Locker, ...) under a single service name, keyed by host
alias. :class:`MemoryCredentialStore` offers the same interface without
touching the keyring.
"""

import logging
from typing import Dict, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .errors import CredentialError

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "ssh-conn"


class KeyringCredentialStore:
    """Credential store backed by the ``keyring`` library."""

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        self.service_name = service_name or DEFAULT_SERVICE_NAME
        self._backend_name: Optional[str] = None

    def _get_backend_name(self) -> str:
        """Return a descriptive name for the active keyring backend."""
        if self._backend_name:
            return self._backend_name
        try:
            backend = keyring.get_keyring()
            self._backend_name = backend.__class__.__name__
        except Exception:
            self._backend_name = 'unavailable'
        return self._backend_name

    def get(self, alias: str) -> Optional[str]:
        """Return the stored password for *alias*, or None."""
        try:
            password = keyring.get_password(self.service_name, alias)
        except KeyringError as e:
            logger.error(
                "Error retrieving password (keyring:%s) for %s: %s",
                self._get_backend_name(), alias, e,
            )
            raise CredentialError(f"could not read password for '{alias}': {e}") from e
        if password:
            logger.debug(
                "Password retrieved for %s via keyring backend %s",
                alias, self._get_backend_name(),
            )
            return password
        return None

    def set(self, alias: str, password: str) -> None:
        """Store *password* for *alias*."""
        if not password:
            raise CredentialError("refusing to store an empty password")
        try:
            keyring.set_password(self.service_name, alias, password)
        except KeyringError as e:
            logger.error(
                "Failed to store password (keyring:%s) for %s: %s",
                self._get_backend_name(), alias, e,
            )
            raise CredentialError(f"could not store password for '{alias}': {e}") from e
        logger.info("Password stored for %s via keyring backend %s", alias, self._get_backend_name())

    def delete(self, alias: str) -> bool:
        """Remove the password for *alias*; return False when none was stored."""
        try:
            keyring.delete_password(self.service_name, alias)
        except PasswordDeleteError:
            logger.debug("No stored password to delete for %s", alias)
            return False
        except KeyringError as e:
            logger.error(
                "Failed to delete password (keyring:%s) for %s: %s",
                self._get_backend_name(), alias, e,
            )
            raise CredentialError(f"could not delete password for '{alias}': {e}") from e
        logger.debug("Deleted stored password for %s", alias)
        return True

    def rename(self, old_alias: str, new_alias: str) -> None:
        """Move a stored password to a new alias."""
        password = self.get(old_alias)
        if password is None:
            return
        self.set(new_alias, password)
        self.delete(old_alias)


class MemoryCredentialStore:
    """In-process credential store used with ``--no-keyring`` and in tests."""

    def __init__(self, passwords: Optional[Dict[str, str]] = None):
        self._passwords: Dict[str, str] = dict(passwords or {})
        self.lookups = 0

    def get(self, alias: str) -> Optional[str]:
        self.lookups += 1
        return self._passwords.get(alias) or None

    def set(self, alias: str, password: str) -> None:
        if not password:
            raise CredentialError("refusing to store an empty password")
        self._passwords[alias] = password

    def delete(self, alias: str) -> bool:
        return self._passwords.pop(alias, None) is not None

    def rename(self, old_alias: str, new_alias: str) -> None:
        if old_alias in self._passwords:
            self._passwords[new_alias] = self._passwords.pop(old_alias)


def create_credential_store(config=None, use_keyring: bool = True):
    """Return the credential store configured for this run."""
    if not use_keyring:
        return MemoryCredentialStore()
    service_name = DEFAULT_SERVICE_NAME
    if config is not None:
        service_name = config.get_setting('credentials.service_name', DEFAULT_SERVICE_NAME)
    return KeyringCredentialStore(service_name)
