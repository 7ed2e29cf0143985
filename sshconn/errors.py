"""
Error taxonomy for ssh-conn.

Every error carries the CLI exit code it maps to so the command line layer
can report failures uniformly:

- SshConnError (base)
  - ParseError (malformed SSH config)
  - InvalidField (validation failure on add/edit)
  - AlreadyExists
  - NotFound
  - IoError (read/write/backup failure)
  - CredentialError (credential store failure)
  - ProcessLaunchError (external client could not be started)
  - ProbeTimeout (every latency sample failed)
"""

from __future__ import annotations

from typing import Optional

EXIT_OK = 0
EXIT_REFUSED = 1
EXIT_NOT_FOUND = 3
EXIT_ALREADY_EXISTS = 4
EXIT_INVALID_FIELD = 5
EXIT_PARSE_ERROR = 6
EXIT_IO_ERROR = 7
EXIT_CREDENTIAL_ERROR = 8
EXIT_LAUNCH_ERROR = 9
EXIT_UNREACHABLE = 10


class SshConnError(Exception):
    """Base class for all ssh-conn errors."""

    exit_code = 1

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ParseError(SshConnError):
    """The SSH config file has a malformed block structure."""

    exit_code = EXIT_PARSE_ERROR

    def __init__(self, message: str, line: Optional[int] = None, path: Optional[str] = None):
        self.line = line
        self.path = path
        location = ""
        if path and line is not None:
            location = f"{path}:{line}: "
        elif line is not None:
            location = f"line {line}: "
        super().__init__(f"{location}{message}")


class InvalidField(SshConnError):
    exit_code = EXIT_INVALID_FIELD

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"invalid {field}: {message}")


class AlreadyExists(SshConnError):
    exit_code = EXIT_ALREADY_EXISTS

    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(f"host '{alias}' already exists")


class NotFound(SshConnError):
    exit_code = EXIT_NOT_FOUND

    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(f"host '{alias}' not found")


class IoError(SshConnError):
    exit_code = EXIT_IO_ERROR


class CredentialError(SshConnError):
    exit_code = EXIT_CREDENTIAL_ERROR


class ProcessLaunchError(SshConnError):
    exit_code = EXIT_LAUNCH_ERROR

    def __init__(self, program: str, reason: str):
        self.program = program
        super().__init__(f"could not start {program}: {reason}")


class ProbeTimeout(SshConnError):
    exit_code = EXIT_UNREACHABLE


__all__ = [
    "SshConnError",
    "ParseError",
    "InvalidField",
    "AlreadyExists",
    "NotFound",
    "IoError",
    "CredentialError",
    "ProcessLaunchError",
    "ProbeTimeout",
    "EXIT_OK",
    "EXIT_REFUSED",
    "EXIT_NOT_FOUND",
    "EXIT_ALREADY_EXISTS",
    "EXIT_INVALID_FIELD",
    "EXIT_PARSE_ERROR",
    "EXIT_IO_ERROR",
    "EXIT_CREDENTIAL_ERROR",
    "EXIT_LAUNCH_ERROR",
    "EXIT_UNREACHABLE",
]
