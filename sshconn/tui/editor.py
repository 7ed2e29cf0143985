from __future__ import annotations

import getpass
from typing import Any, Callable, Dict, Optional

from sshconn.errors import InvalidField
from sshconn.models import HostRecord
from sshconn.validation import validate_address, validate_alias, validate_port, validate_user

PromptFunc = Callable[[str], str]
PrintFunc = Callable[[str], None]


class HostEditSession:
    """
    Text-mode editor for adding a host or changing an existing one.

    The session interacts through ``input_func``/``print_func`` (and
    ``password_func`` for the optional password) so it can run both
    interactively while the TUI is suspended and under tests.
    """

    def __init__(
        self,
        record: Optional[HostRecord] = None,
        *,
        existing_aliases=(),
        input_func: PromptFunc = input,
        print_func: PrintFunc = print,
        password_func: PromptFunc = getpass.getpass,
    ):
        self.record = record
        self.existing_aliases = set(existing_aliases)
        self.input = input_func
        self.print = print_func
        self.password_input = password_func

    @property
    def is_new(self) -> bool:
        return self.record is None

    def run(self) -> Optional[Dict[str, Any]]:
        """
        Prompt the user for the host fields.

        Returns a dictionary of fields or ``None`` on cancel. For a new host
        every field is present (``alias`` included); for an existing host only
        the fields that changed are returned. A ``password`` key is present
        when the user chose to store one.
        """
        try:
            return self._run()
        except (KeyboardInterrupt, EOFError):
            self.print("\nEdit cancelled.")
            return None

    def _run(self) -> Optional[Dict[str, Any]]:
        rec = self.record
        self.print("\n--- New host ---" if self.is_new else f"\n--- Editing {rec.alias} ---")
        self.print("Press Enter to keep current values, '-' to clear a field, Ctrl+C to abort.\n")

        payload: Dict[str, Any] = {}
        if self.is_new:
            payload["alias"] = self._ask_alias()

        current_address = "" if rec is None or rec.address_implied else rec.address
        fields = {
            "address": self._ask_validated("Hostname", current_address, validate_address, required=True),
            "user": self._ask_validated("User", rec.user if rec else None, validate_user, allow_clear=True),
            "port": self._ask_port(rec.port if rec else None),
            "proxy_command": self._ask_text("ProxyCommand", rec.proxy_command if rec else None),
            "identity_file": self._ask_text("IdentityFile", rec.identity_file if rec else None),
        }

        for key, value in fields.items():
            if self.is_new:
                payload[key] = value
            elif key == "address":
                if value != current_address:
                    payload[key] = value
            elif value != getattr(rec, key):
                payload[key] = value

        if self._confirm("Store a password for this host? [y/N] ", default=False):
            password = self.password_input("Password: ")
            if password:
                payload["password"] = password
            else:
                self.print("Empty password ignored.")

        return payload

    # ------------------------------------------------------------------ helpers
    def _ask_alias(self) -> str:
        while True:
            resp = (self.input("Alias: ") or "").strip()
            try:
                validate_alias(resp)
            except InvalidField as exc:
                self.print(str(exc))
                continue
            if resp in self.existing_aliases:
                self.print(f"host '{resp}' already exists")
                continue
            return resp

    def _ask_text(self, label: str, current: Optional[str], *, required: bool = False) -> Optional[str]:
        base_prompt = f"{label}"
        if current:
            base_prompt += f" [{current}] (type '-' to clear)"
        base_prompt += ": "

        while True:
            resp = self.input(base_prompt)
            if resp is None:
                resp = ""
            resp = resp.strip()
            if not resp:
                if current or not required:
                    return current or None
                self.print(f"{label} is required.")
                continue
            if resp == "-" and not required:
                return None
            return resp

    def _ask_validated(self, label, current, validator, *, required=False, allow_clear=False):
        while True:
            value = self._ask_text(label, current, required=required)
            if value is None and allow_clear:
                return None
            try:
                return validator(value)
            except InvalidField as exc:
                self.print(str(exc))

    def _ask_port(self, current: Optional[int]) -> Optional[int]:
        prompt = f"Port [{current or 22}]: "
        while True:
            resp = self.input(prompt)
            if resp is None:
                resp = ""
            resp = resp.strip()
            if not resp:
                return current
            if resp == "-":
                return None
            try:
                return validate_port(resp)
            except InvalidField:
                self.print("Port must be a number between 1 and 65535.")

    def _confirm(self, prompt: str, *, default: bool) -> bool:
        while True:
            resp = self.input(prompt)
            if resp is None:
                resp = ""
            resp = resp.strip().lower()
            if not resp:
                return default
            if resp in ("y", "yes"):
                return True
            if resp in ("n", "no"):
                return False
            self.print("Please respond with 'y' or 'n'.")


def confirm_host_key_change(
    alias: str,
    *,
    input_func: PromptFunc = input,
    print_func: PrintFunc = print,
) -> bool:
    """Ask whether the stored host key for *alias* may be replaced."""
    print_func(f"\nThe host key for '{alias}' has changed.")
    print_func("This can mean someone is intercepting the connection, or the server was reinstalled.")
    while True:
        try:
            resp = input_func("Remove the old key and connect anyway? [y/N] ")
        except (KeyboardInterrupt, EOFError):
            print_func("")
            return False
        resp = (resp or "").strip().lower()
        if resp in ("", "n", "no"):
            return False
        if resp in ("y", "yes"):
            return True
        print_func("Please respond with 'y' or 'n'.")


__all__ = ["HostEditSession", "confirm_host_key_change"]
