"""Field validation for host records."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .errors import InvalidField
from .models import HostRecord

logger = logging.getLogger(__name__)

_WHITESPACE = (" ", "\t")

# Directives carried by named record fields; they never go through extra_options
_NAMED_DIRECTIVES = {
    "hostname": "address",
    "user": "user",
    "port": "port",
    "proxycommand": "proxy_command",
}


def _reject_newlines(field: str, value: str) -> None:
    if "\n" in value or "\r" in value:
        raise InvalidField(field, "must not contain line breaks")


def validate_alias(alias: Any) -> str:
    if not isinstance(alias, str) or not alias:
        raise InvalidField("alias", "must not be empty")
    if any(ch in alias for ch in _WHITESPACE):
        raise InvalidField("alias", f"'{alias}' must not contain spaces or tabs")
    _reject_newlines("alias", alias)
    if "*" in alias or "?" in alias or alias.startswith("!"):
        raise InvalidField("alias", f"'{alias}' must not be a wildcard pattern")
    return alias


def validate_address(address: Any) -> str:
    if not isinstance(address, str) or not address:
        raise InvalidField("address", "must not be empty")
    if address.strip() != address or any(ch in address for ch in _WHITESPACE):
        raise InvalidField("address", f"'{address}' must not contain whitespace")
    _reject_newlines("address", address)
    if ".." in address:
        raise InvalidField("address", f"'{address}' contains consecutive dots")
    if address.startswith(".") or address.endswith("."):
        raise InvalidField("address", f"'{address}' must not start or end with a dot")
    return address


def validate_port(port: Any) -> Optional[int]:
    """Return the port as an int, or None when absent.

    Accepts ints and numeric strings; rejects booleans, zero and anything
    above 65535.
    """
    if port is None:
        return None
    if isinstance(port, bool):
        raise InvalidField("port", f"{port!r} is not a number")
    if isinstance(port, str):
        text = port.strip()
        if not text.isdigit():
            raise InvalidField("port", f"'{port}' is not a number")
        port = int(text)
    if not isinstance(port, int):
        raise InvalidField("port", f"{port!r} is not a number")
    if not 1 <= port <= 65535:
        raise InvalidField("port", f"{port} is outside 1-65535")
    return port


def validate_user(user: Any) -> Optional[str]:
    if user is None:
        return None
    if not isinstance(user, str) or not user:
        raise InvalidField("user", "must not be empty when given")
    if any(ch in user for ch in _WHITESPACE):
        raise InvalidField("user", f"'{user}' must not contain spaces or tabs")
    if "@" in user:
        raise InvalidField("user", f"'{user}' must not contain '@'")
    _reject_newlines("user", user)
    return user


def _validate_optional_text(field: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise InvalidField(field, "must not be empty when given")
    _reject_newlines(field, value)
    return value


def validate_extra_options(options: Any) -> None:
    if not isinstance(options, dict):
        raise InvalidField("extra_options", "must be a mapping")
    for key, value in options.items():
        if not isinstance(key, str) or not key or any(ch in key for ch in _WHITESPACE) or "=" in key:
            raise InvalidField("extra_options", f"bad directive name {key!r}")
        if key.lower() == "host" or key.lower() == "match":
            raise InvalidField("extra_options", f"'{key}' cannot be used as an option")
        if key.lower() in _NAMED_DIRECTIVES:
            raise InvalidField(
                "extra_options", f"'{key}' must be set through the {_NAMED_DIRECTIVES[key.lower()]} field"
            )
        values = value if isinstance(value, list) else [value]
        if not values:
            raise InvalidField("extra_options", f"'{key}' has no value")
        for item in values:
            if not isinstance(item, str) or not item.strip():
                raise InvalidField("extra_options", f"'{key}' needs a non-empty value")
            _reject_newlines("extra_options", item)


def validate_record(record: HostRecord) -> HostRecord:
    """Validate every field of *record*; raise :class:`InvalidField` on the first problem."""
    validate_alias(record.alias)
    validate_address(record.address)
    record.port = validate_port(record.port)
    validate_user(record.user)
    _validate_optional_text("proxy_command", record.proxy_command)
    _validate_optional_text("identity_file", record.identity_file)
    validate_extra_options(record.extra_options)
    # Extra IdentityFile lines are only valid after the primary one
    if record.identity_file is None and any(key.lower() == "identityfile" for key in record.extra_options):
        raise InvalidField("extra_options", "'IdentityFile' must be set through the identity_file field")
    return record


__all__ = [
    "validate_alias",
    "validate_address",
    "validate_port",
    "validate_user",
    "validate_extra_options",
    "validate_record",
]
