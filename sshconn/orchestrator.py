"""
Connection orchestration.

Connecting to a host walks a small state machine::

    INIT -> AUTH_PATH_CHOSEN -> LAUNCHING -> SUCCEEDED | HOST_KEY_CONFLICT | FAILED
    HOST_KEY_CONFLICT -> RETRYING | ABORTED

A stored password selects the auto-password path (``sshpass``); otherwise
the plain ssh client is started and the user authenticates interactively.
When ssh reports a changed host key the user is asked to confirm, the stale
entry is removed and the connection is retried with plain ssh. The stored
password is never injected after a host-key change.
"""

import logging
import re
from typing import Callable, Optional, Tuple

from .command_builder import (
    DEFAULT_STRICT_HOST_KEY_CHECKING,
    build_ssh_command,
    format_command,
    sshpass_available,
)
from .errors import CredentialError
from .known_hosts import KnownHostsCleaner
from .launcher import LaunchResult, default_launcher, password_pipe
from .models import (
    AuthMethod,
    ConnectionOutcome,
    ConnectionState,
    FailureKind,
    HostKeyEvent,
    HostRecord,
)
from .secret_buffer import SecretBuffer, wrap_secret
from .terminal_state import TerminalGuard

logger = logging.getLogger(__name__)

SSH_CONNECTION_ERROR = 255
# sshpass: 2 conflicting args, 3 runtime error, 4 unrecognised ssh output,
# 5 wrong password, 6 unknown host key
SSHPASS_FAILURE_CODES = frozenset(range(2, 7))
SSHPASS_BAD_PASSWORD = 5

HOST_KEY_PATTERNS = (
    re.compile(r"Host key verification failed", re.IGNORECASE),
    re.compile(r"REMOTE HOST IDENTIFICATION HAS CHANGED", re.IGNORECASE),
    re.compile(r"Someone could be eavesdropping on you right now", re.IGNORECASE),
    re.compile(r"Host key for \S+ has changed", re.IGNORECASE),
)

AUTH_FAILURE_PATTERNS = (
    "permission denied",
    "authentication failed",
    "too many authentication failures",
)

NETWORK_PATTERNS = (
    "timed out",
    "no route to host",
    "connection refused",
    "could not resolve hostname",
    "network is unreachable",
    "name or service not known",
)

ConfirmCallback = Callable[[str], bool]


def is_host_key_conflict(stderr_text: str) -> bool:
    """Return True if ssh's diagnostics report a changed host key."""
    if not stderr_text:
        return False
    return any(pattern.search(stderr_text) for pattern in HOST_KEY_PATTERNS)


def is_failure_exit(exit_code: int, method: AuthMethod) -> bool:
    """Return True when *exit_code* means the connection itself failed.

    ssh uses 255 for its own errors; any other code is the remote session's
    status. Under ``sshpass`` the codes 2 to 6 are sshpass failures.
    """
    if exit_code < 0 or exit_code == SSH_CONNECTION_ERROR:
        return True
    return method is AuthMethod.AUTO_PASSWORD and exit_code in SSHPASS_FAILURE_CODES


def classify_failure(exit_code: int, stderr_text: str, method: AuthMethod) -> FailureKind:
    text = (stderr_text or "").lower()
    if method is AuthMethod.AUTO_PASSWORD and exit_code == SSHPASS_BAD_PASSWORD:
        return FailureKind.AUTH_FAILURE
    if any(pattern in text for pattern in AUTH_FAILURE_PATTERNS):
        return FailureKind.AUTH_FAILURE
    if any(pattern in text for pattern in NETWORK_PATTERNS):
        return FailureKind.NETWORK_TIMEOUT
    return FailureKind.UNKNOWN


class ConnectionOrchestrator:
    """Launches ssh for a host, resolving host-key changes and auth fallback."""

    def __init__(
        self,
        engine,
        credentials,
        launcher=None,
        known_hosts: Optional[KnownHostsCleaner] = None,
        guard_factory: Callable[[], TerminalGuard] = TerminalGuard,
        *,
        fallback_to_standard: bool = True,
        config_path: Optional[str] = None,
        strict_host_key_checking: Optional[str] = DEFAULT_STRICT_HOST_KEY_CHECKING,
        known_hosts_path: Optional[str] = None,
        connect_timeout: Optional[int] = None,
        sshpass_check: Callable[[], bool] = sshpass_available,
    ):
        self.engine = engine
        self.credentials = credentials
        self.launcher = launcher if launcher is not None else default_launcher()
        self.known_hosts = known_hosts if known_hosts is not None else KnownHostsCleaner(known_hosts_path)
        self.guard_factory = guard_factory
        self.fallback_to_standard = fallback_to_standard
        self.config_path = config_path
        self.strict_host_key_checking = strict_host_key_checking
        self.known_hosts_path = known_hosts_path
        self.connect_timeout = connect_timeout
        self._sshpass_check = sshpass_check

    @classmethod
    def from_settings(cls, engine, credentials, config, *, foreground: Optional[bool] = None, launcher=None):
        """Build an orchestrator from the application :class:`~sshconn.config.Config`."""
        if foreground is None:
            foreground = bool(config.get_setting('connect.foreground_exec', False))
        known_hosts_path = config.get_known_hosts_path()
        timeout = config.get_setting('ssh.connect_timeout')
        return cls(
            engine,
            credentials,
            launcher if launcher is not None else default_launcher(foreground=foreground),
            KnownHostsCleaner(known_hosts_path),
            fallback_to_standard=bool(config.get_setting('connect.fallback_to_standard', True)),
            config_path=engine.config_path,
            strict_host_key_checking=config.get_setting(
                'ssh.strict_host_key_checking', DEFAULT_STRICT_HOST_KEY_CHECKING
            ),
            known_hosts_path=known_hosts_path,
            connect_timeout=int(timeout) if timeout else None,
        )

    def _choose_method(self, record: HostRecord) -> Tuple[AuthMethod, Optional[SecretBuffer]]:
        """Look the password up once and pick the authentication path."""
        try:
            secret = wrap_secret(self.credentials.get(record.alias))
        except CredentialError as e:
            logger.warning("Password lookup for %s failed, using interactive login: %s", record.alias, e)
            return AuthMethod.STANDARD, None
        if secret is None:
            return AuthMethod.STANDARD, None
        if not self._sshpass_check():
            logger.warning("sshpass not found; %s will prompt for its password", record.alias)
            secret.clear()
            return AuthMethod.STANDARD, None
        return AuthMethod.AUTO_PASSWORD, secret

    def _build(self, record: HostRecord, method: AuthMethod, password_fd: Optional[int] = None):
        return build_ssh_command(
            record,
            method,
            config_path=self.config_path,
            known_hosts_path=self.known_hosts_path,
            strict_host_key_checking=self.strict_host_key_checking,
            connect_timeout=self.connect_timeout,
            password_fd=password_fd,
        )

    def _launch(
        self,
        record: HostRecord,
        method: AuthMethod,
        secret: Optional[SecretBuffer],
        guard: TerminalGuard,
    ) -> LaunchResult:
        logger.info("Connecting to %s (%s)", record.alias, method.value)
        if method is AuthMethod.AUTO_PASSWORD:
            with password_pipe(secret) as read_fd:
                argv = self._build(record, method, password_fd=read_fd)
                logger.debug("Command: %s", format_command(argv))
                return self.launcher.launch(argv, pass_fds=(read_fd,), before_exec=guard.restore)
        argv = self._build(record, method)
        logger.debug("Command: %s", format_command(argv))
        return self.launcher.launch(argv, before_exec=guard.restore)

    def connect(self, alias: str, confirm: Optional[ConfirmCallback] = None) -> ConnectionOutcome:
        """Connect to *alias* and return how it ended.

        ``confirm(alias)`` is asked whether a changed host key may be
        replaced; without a callback the change is rejected. ``NotFound``
        and ``ProcessLaunchError`` propagate.
        """
        record = self.engine.find(alias)
        outcome = ConnectionOutcome(alias=alias, method=AuthMethod.STANDARD)
        guard = self.guard_factory()
        guard.save()
        secret: Optional[SecretBuffer] = None
        try:
            method, secret = self._choose_method(record)
            outcome.method = method
            outcome.state = ConnectionState.AUTH_PATH_CHOSEN
            host_key_retried = False
            fell_back = False

            while True:
                outcome.state = ConnectionState.LAUNCHING
                outcome.method = method
                result = self._launch(record, method, secret, guard)
                secret = None
                guard.restore()
                outcome.exit_code = result.exit_code
                outcome.attempts.append((method, result.exit_code))

                if is_host_key_conflict(result.stderr_tail):
                    outcome.state = ConnectionState.HOST_KEY_CONFLICT
                    if host_key_retried:
                        logger.error("Host key for %s still rejected after clearing it", alias)
                        outcome.state = ConnectionState.FAILED
                        outcome.failure = FailureKind.UNKNOWN
                        return outcome
                    accepted = bool(confirm(alias)) if confirm is not None else False
                    if not accepted:
                        logger.info("Host key change for %s rejected by user", alias)
                        outcome.host_key_event = HostKeyEvent.CHANGED_AND_REJECTED
                        outcome.state = ConnectionState.ABORTED
                        return outcome
                    outcome.host_key_event = HostKeyEvent.CHANGED_AND_ACCEPTED
                    self.known_hosts.remove(record)
                    host_key_retried = True
                    method = AuthMethod.STANDARD
                    outcome.state = ConnectionState.RETRYING
                    continue

                if not is_failure_exit(result.exit_code, method):
                    outcome.state = ConnectionState.SUCCEEDED
                    outcome.failure = None
                    return outcome

                kind = classify_failure(result.exit_code, result.stderr_tail, method)
                outcome.failure = kind
                if (
                    method is AuthMethod.AUTO_PASSWORD
                    and self.fallback_to_standard
                    and not fell_back
                    and kind is not FailureKind.NETWORK_TIMEOUT
                ):
                    logger.warning(
                        "Password login to %s failed (%s, exit %s); retrying interactively",
                        alias, kind.value, result.exit_code,
                    )
                    fell_back = True
                    method = AuthMethod.STANDARD
                    outcome.state = ConnectionState.RETRYING
                    continue

                logger.error("Connection to %s failed (%s, exit %s)", alias, kind.value, result.exit_code)
                outcome.state = ConnectionState.FAILED
                return outcome
        finally:
            if secret is not None:
                secret.clear()
            guard.restore()


__all__ = [
    'ConnectionOrchestrator',
    'classify_failure',
    'is_failure_exit',
    'is_host_key_conflict',
]
