"""Data model shared by the config engine, the prober and the orchestrator."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

DEFAULT_SSH_PORT = 22

OptionValue = Union[str, List[str]]


@dataclass
class HostRecord:
    """One configured remote target (a ``Host`` block in the SSH config)."""

    alias: str
    address: str
    user: Optional[str] = None
    port: Optional[int] = None
    proxy_command: Optional[str] = None
    identity_file: Optional[str] = None
    extra_options: Dict[str, OptionValue] = field(default_factory=dict)
    # True when the block had no HostName line and ssh falls back to the alias
    address_implied: bool = False

    def effective_port(self) -> int:
        return self.port if self.port else DEFAULT_SSH_PORT

    def connection_string(self) -> str:
        target = f"{self.user}@{self.address}" if self.user else self.address
        if self.port and self.port != DEFAULT_SSH_PORT:
            target = f"{target}:{self.port}"
        return target

    def get_option(self, name: str) -> Optional[OptionValue]:
        """Case-insensitive lookup in ``extra_options``."""
        lowered = name.lower()
        for key, value in self.extra_options.items():
            if key.lower() == lowered:
                return value
        return None

    def copy(self) -> "HostRecord":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alias": self.alias,
            "address": self.address,
            "user": self.user,
            "port": self.port,
            "proxy_command": self.proxy_command,
            "identity_file": self.identity_file,
            "extra_options": copy.deepcopy(self.extra_options),
        }


class ProbeState(Enum):
    UNKNOWN = "unknown"
    IN_PROGRESS = "in_progress"
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"


@dataclass
class ProbeResult:
    """Outcome of one reachability check. Never persisted."""

    alias: str
    state: ProbeState = ProbeState.UNKNOWN
    latency: Optional[float] = None
    cause: Optional[str] = None
    timed_out: bool = False

    @property
    def reachable(self) -> bool:
        return self.state is ProbeState.REACHABLE

    @property
    def latency_ms(self) -> Optional[int]:
        if self.latency is None:
            return None
        return int(round(self.latency * 1000))

    def display_string(self) -> str:
        if self.state is ProbeState.REACHABLE:
            return f"{self.latency_ms} ms"
        if self.state is ProbeState.UNREACHABLE:
            return "timeout" if self.timed_out else "unreachable"
        if self.state is ProbeState.IN_PROGRESS:
            return "…"
        return "-"

    def detail_string(self) -> str:
        if self.state is ProbeState.REACHABLE:
            return f"reachable ({self.latency_ms} ms)"
        if self.state is ProbeState.UNREACHABLE:
            return f"unreachable: {self.cause or 'unknown error'}"
        if self.state is ProbeState.IN_PROGRESS:
            return "probing"
        return "not checked"


class AuthMethod(Enum):
    AUTO_PASSWORD = "auto_password"
    STANDARD = "standard"


class HostKeyEvent(Enum):
    NONE = "none"
    CHANGED_AND_ACCEPTED = "changed_and_accepted"
    CHANGED_AND_REJECTED = "changed_and_rejected"


class FailureKind(Enum):
    AUTH_FAILURE = "auth_failure"
    NETWORK_TIMEOUT = "network_timeout"
    UNKNOWN = "unknown"


class ConnectionState(Enum):
    INIT = "init"
    AUTH_PATH_CHOSEN = "auth_path_chosen"
    LAUNCHING = "launching"
    SUCCEEDED = "succeeded"
    HOST_KEY_CONFLICT = "host_key_conflict"
    RETRYING = "retrying"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class ConnectionOutcome:
    """Result of one orchestrated connection attempt."""

    alias: str
    method: AuthMethod
    exit_code: Optional[int] = None
    host_key_event: HostKeyEvent = HostKeyEvent.NONE
    state: ConnectionState = ConnectionState.INIT
    failure: Optional[FailureKind] = None
    attempts: List[Tuple[AuthMethod, int]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is ConnectionState.SUCCEEDED


__all__ = [
    "DEFAULT_SSH_PORT",
    "HostRecord",
    "ProbeState",
    "ProbeResult",
    "AuthMethod",
    "HostKeyEvent",
    "FailureKind",
    "ConnectionState",
    "ConnectionOutcome",
]
