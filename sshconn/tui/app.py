from __future__ import annotations

import argparse
import logging
from typing import Dict, List, Optional, Sequence

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.message import Message
from textual.screen import ModalScreen
from textual.timer import Timer
from textual.widgets import DataTable, Footer, Header, Input, Static

from sshconn.config import Config
from sshconn.config_engine import ConfigEngine
from sshconn.credentials import create_credential_store
from sshconn.errors import SshConnError
from sshconn.logging_setup import setup_logging
from sshconn.models import ConnectionState, HostRecord, ProbeResult, ProbeState
from sshconn.orchestrator import ConnectionOrchestrator
from sshconn.prober import ConnectivityProber
from sshconn.search_utils import filter_records
from sshconn.tui.editor import HostEditSession, confirm_host_key_change

LOG = logging.getLogger(__name__)

STATUS_COLUMN = "status"


class HostTable(DataTable):
    """Host list that emits a message when Enter is pressed."""

    BINDINGS = [Binding("enter", "connect_row", "Connect", show=False)]

    class ConnectRequested(Message):
        """Sent when the user activates the current row."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.cursor_type = "row"
        self.zebra_stripes = True

    def action_connect_row(self) -> None:
        self.post_message(self.ConnectRequested())


class HelpScreen(ModalScreen[None]):
    """Modal overlay listing keyboard shortcuts."""

    def compose(self) -> ComposeResult:
        lines = [
            "[b]ssh-conn[/b]",
            "",
            "Navigation:",
            "  ↑/↓ or j/k  Move selection",
            "  PgUp/PgDn    Scroll a page",
            "  Home/End     Jump to start or end",
            "",
            "Actions:",
            "  Enter / c    Connect to highlighted host",
            "  a            Add a host",
            "  e            Edit host",
            "  d            Delete host",
            "  p            Probe all hosts",
            "  r / F5       Reload SSH config",
            "  / or Ctrl+F  Focus the filter",
            "  Esc          Return focus to the list",
            "  q or Ctrl+C  Quit",
            "",
            "Press Esc, q, or ? to close this help.",
        ]
        yield Static("\n".join(lines), id="help-panel")

    def on_key(self, event: events.Key) -> None:
        if event.key in {"escape", "q", "?"}:
            event.stop()
            self.dismiss()


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no question; dismisses with True only on an explicit yes."""

    def __init__(self, question: str, **kwargs):
        super().__init__(**kwargs)
        self.question = question

    def compose(self) -> ComposeResult:
        yield Static(f"{self.question}\n\n[b]y[/b] yes    [b]n[/b] / Esc no", id="confirm-panel")

    def on_key(self, event: events.Key) -> None:
        if event.key in {"y", "Y"}:
            event.stop()
            self.dismiss(True)
        elif event.key in {"n", "N", "escape", "q"}:
            event.stop()
            self.dismiss(False)


class DetailsPanel(Static):
    """Shows information about the selected host."""

    def show_empty(self, message: str = "Select a host to see details.") -> None:
        self.update(message)

    def show_record(self, record: Optional[HostRecord], probe: Optional[ProbeResult] = None) -> None:
        if not record:
            self.show_empty()
            return

        address = record.address
        if record.address_implied:
            address += " (no HostName, using alias)"
        lines = [
            f"[b]Alias[/b]     {record.alias}",
            f"[b]Target[/b]    {address} (user: {record.user or '-'})",
            f"[b]Port[/b]      {record.effective_port()}",
            f"[b]Identity[/b]  {record.identity_file or 'default'}",
        ]
        if record.proxy_command:
            lines.append(f"[b]Proxy[/b]     {record.proxy_command}")
        if record.extra_options:
            lines.append(f"[b]Options ({len(record.extra_options)})[/b]")
            for key, value in record.extra_options.items():
                for item in value if isinstance(value, list) else [value]:
                    lines.append(f"  • {key} {item}")
        if probe is not None:
            lines.append("")
            lines.append(f"[b]Status[/b]    {probe.detail_string()}")

        self.update("\n".join(lines))


class StatusBar(Static):
    """Single-line status indicator."""

    def set_message(self, message: str, *, error: bool = False) -> None:
        self.set_class(error, "error")
        self.update(message or "")


class SshConnTuiApp(App[None]):
    """Textual-based interface for browsing, editing and connecting to hosts."""

    TITLE = "ssh-conn"
    CSS = """
    Screen {
        layout: vertical;
    }

    HelpScreen, ConfirmScreen {
        align: center middle;
    }

    #body {
        height: 1fr;
        padding: 1 2;
        column-gap: 2;
    }

    #list-panel, #details-panel {
        height: 1fr;
    }

    #details-panel {
        border: round $secondary;
        padding: 1;
    }

    #details {
        height: 1fr;
        overflow-y: auto;
    }

    #host-table {
        height: 1fr;
    }

    #status {
        height: 3;
        content-align: left middle;
        padding: 0 1;
        background: $boost;
    }

    #status.error {
        background: $error;
        color: $text;
    }

    .panel-title {
        text-style: bold;
        padding-bottom: 1;
    }

    #filter {
        margin-bottom: 1;
    }

    #help-panel, #confirm-panel {
        width: 70%;
        background: $surface;
        border: round $secondary;
        padding: 2;
        content-align: left top;
    }
    """

    BINDINGS = [
        Binding("q", "quit_app", "Quit"),
        Binding("ctrl+c", "quit_app", "Quit", show=False),
        Binding("c", "connect", "Connect"),
        Binding("a", "add", "Add"),
        Binding("e", "edit", "Edit"),
        Binding("d", "delete", "Delete"),
        Binding("p", "probe_all", "Probe"),
        Binding("r", "reload", "Reload"),
        Binding("f5", "reload", "Reload", show=False),
        Binding("/", "focus_filter", "Filter"),
        Binding("ctrl+f", "focus_filter", "Filter", show=False),
        Binding("escape", "focus_list", "Focus list", show=False),
        Binding("?", "show_help", "Help"),
    ]

    def __init__(self, *, engine: ConfigEngine, credentials, config: Config, **kwargs):
        super().__init__(**kwargs)
        self.engine = engine
        self.credentials = credentials
        self.config = config

        self.records: List[HostRecord] = []
        self.filtered_records: List[HostRecord] = []
        self.row_map: Dict[str, HostRecord] = {}
        self.probe_results: Dict[str, ProbeResult] = {}
        self.filter_text = ""
        self._selected_alias: Optional[str] = None
        self._status_timer: Optional[Timer] = None

    # --------------------------------------------------------------------- UI
    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="body"):
            with Vertical(id="list-panel"):
                yield Static("Hosts", classes="panel-title")
                yield Input(placeholder="Filter hosts…", id="filter")
                table = HostTable(id="host-table")
                table.add_column("Alias", key="alias")
                table.add_column("Host", key="address")
                table.add_column("User", key="user")
                table.add_column("Port", key="port")
                table.add_column("Status", key=STATUS_COLUMN)
                yield table
            with Vertical(id="details-panel"):
                yield Static("Details", classes="panel-title")
                yield DetailsPanel(id="details")
        yield Footer()
        yield StatusBar(id="status")

    def on_mount(self) -> None:
        self.status_bar = self.query_one(StatusBar)
        self.details_panel = self.query_one(DetailsPanel)
        self.filter_input = self.query_one("#filter", Input)
        self.host_table = self.query_one(HostTable)
        self.host_table.focus()
        self.details_panel.show_empty()
        self._load_records(reload=True)

    # ---------------------------------------------------------------- bindings
    def action_quit_app(self) -> None:
        self.exit()

    def action_reload(self) -> None:
        self._load_records(reload=True)

    def action_connect(self) -> None:
        record = self.get_selected_record()
        if not record:
            self.set_status("No host selected", error=True)
            return

        orchestrator = ConnectionOrchestrator.from_settings(
            self.engine, self.credentials, self.config, foreground=False
        )
        self.set_status(f"Connecting to {record.alias}…", persist=True)
        outcome = None
        error = None
        with self.suspend():
            try:
                outcome = orchestrator.connect(record.alias, confirm=confirm_host_key_change)
            except SshConnError as exc:
                error = exc
                print(f"Error: {exc}")
            except KeyboardInterrupt:
                print("\nInterrupted.")

        if error is not None:
            self.set_status(f"Connection failed: {error}", error=True, persist=True)
        elif outcome is None:
            self.set_status("Connection interrupted", error=True)
        elif outcome.state is ConnectionState.SUCCEEDED:
            self.set_status(f"Session with {record.alias} ended")
        elif outcome.state is ConnectionState.ABORTED:
            self.set_status("Host key change rejected; connection aborted", error=True)
        else:
            kind = outcome.failure.value if outcome.failure else "unknown"
            self.set_status(f"Connection failed ({kind}, exit {outcome.exit_code})", error=True)

    def action_add(self) -> None:
        with self.suspend():
            session = HostEditSession(existing_aliases=self.engine.store.aliases())
            payload = session.run()
        if not payload:
            self.set_status("Add cancelled")
            return

        password = payload.pop("password", None)
        record = HostRecord(**payload)
        try:
            self.engine.add(record)
            self.engine.persist()
            if password:
                self.credentials.set(record.alias, password)
        except SshConnError as exc:
            LOG.error("Failed to add host %s: %s", record.alias, exc)
            self._load_records(reload=True)
            self.set_status(f"Failed to add host: {exc}", error=True, persist=True)
            return
        self._selected_alias = record.alias
        self._load_records(reload=False)
        self.set_status(f"Added host {record.alias}", persist=True)

    def action_edit(self) -> None:
        record = self.get_selected_record()
        if not record:
            self.set_status("No host selected", error=True)
            return

        with self.suspend():
            session = HostEditSession(record)
            payload = session.run()

        if payload is None:
            self.set_status("Edit cancelled")
            return

        password = payload.pop("password", None)
        try:
            if payload:
                self.engine.edit(record.alias, **payload)
                self.engine.persist()
            if password:
                self.credentials.set(record.alias, password)
        except SshConnError as exc:
            LOG.error("Failed to update host %s: %s", record.alias, exc)
            self._load_records(reload=True)
            self.set_status(f"Failed to update host: {exc}", error=True, persist=True)
            return

        self._load_records(reload=False)
        self.set_status("Host updated" if payload else "No changes", persist=True)

    def action_delete(self) -> None:
        record = self.get_selected_record()
        if not record:
            self.set_status("No host selected", error=True)
            return

        def handle(confirmed: Optional[bool]) -> None:
            if confirmed:
                self._delete_record(record.alias)
            else:
                self.set_status("Delete cancelled")

        self.push_screen(ConfirmScreen(f"Delete host '{record.alias}' ({record.connection_string()})?"), handle)

    def action_probe_all(self) -> None:
        if not self.records:
            self.set_status("No hosts to probe", error=True)
            return
        self.run_worker(self._probe_all(list(self.records)), exclusive=True, group="probe")

    def action_focus_filter(self) -> None:
        self.filter_input.focus()
        self.filter_input.cursor_position = len(self.filter_input.value)

    def action_focus_list(self) -> None:
        self.host_table.focus()

    def action_show_help(self) -> None:
        self.push_screen(HelpScreen())

    # ----------------------------------------------------------------- events
    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input is self.filter_input:
            self.filter_text = event.value
            self.apply_filter()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input is self.filter_input:
            self.host_table.focus()

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.data_table is not self.host_table:
            return
        alias = event.row_key.value if event.row_key is not None else None
        record = self.row_map.get(alias)
        if record:
            self._selected_alias = alias
            self.details_panel.show_record(record, self.probe_results.get(alias))

    def on_host_table_connect_requested(self, event: HostTable.ConnectRequested) -> None:
        event.stop()
        self.call_later(self.action_connect)

    # ----------------------------------------------------------------- data ops
    def _load_records(self, *, reload: bool) -> None:
        try:
            store = self.engine.load() if reload else self.engine.store
        except SshConnError as exc:
            LOG.error("Failed to load %s: %s", self.engine.config_path, exc)
            self.records = []
            self.apply_filter()
            self.set_status(f"Unable to load hosts: {exc}", error=True, persist=True)
            return

        self.records = store.records()
        known = {record.alias for record in self.records}
        self.probe_results = {alias: res for alias, res in self.probe_results.items() if alias in known}
        self.apply_filter()
        if store.warnings:
            self.set_status(f"Loaded {len(self.records)} host(s); {store.warnings[0]}", error=True)
        else:
            self.set_status(f"Loaded {len(self.records)} host(s)")

    def _delete_record(self, alias: str) -> None:
        try:
            self.engine.delete(alias)
            self.engine.persist()
        except SshConnError as exc:
            LOG.error("Failed to delete host %s: %s", alias, exc)
            self._load_records(reload=True)
            self.set_status(f"Failed to delete host: {exc}", error=True, persist=True)
            return
        try:
            self.credentials.delete(alias)
        except SshConnError as exc:
            LOG.warning("Could not remove stored password for %s: %s", alias, exc)
        self._selected_alias = None
        self._load_records(reload=False)
        self.set_status(f"Deleted host {alias}", persist=True)

    async def _probe_all(self, records: List[HostRecord]) -> None:
        prober = ConnectivityProber(
            timeout=float(self.config.get_setting("probe.timeout", 5)),
            concurrency_limit=int(self.config.get_setting("probe.concurrency", 16)),
        )
        for record in records:
            self._set_probe_result(ProbeResult(alias=record.alias, state=ProbeState.IN_PROGRESS))
        self.set_status(f"Probing {len(records)} host(s)…", persist=True)

        reachable = 0
        async for result in prober.probe_many(records):
            if result.reachable:
                reachable += 1
            self._set_probe_result(result)
        self.set_status(f"{reachable}/{len(records)} host(s) reachable")

    def _set_probe_result(self, result: ProbeResult) -> None:
        self.probe_results[result.alias] = result
        if result.alias in self.row_map:
            self.host_table.update_cell(result.alias, STATUS_COLUMN, result.display_string())
        if result.alias == self._selected_alias:
            self.details_panel.show_record(self.row_map.get(result.alias), result)

    def apply_filter(self) -> None:
        table = self.host_table
        filtered = filter_records(self.records, (self.filter_text or "").strip())

        self.filtered_records = filtered
        table.clear(columns=False)
        self.row_map.clear()

        for record in filtered:
            probe = self.probe_results.get(record.alias)
            table.add_row(
                record.alias,
                record.address,
                record.user or "-",
                str(record.effective_port()),
                probe.display_string() if probe else "-",
                key=record.alias,
            )
            self.row_map[record.alias] = record

        if self.row_map:
            alias = self._selected_alias if self._selected_alias in self.row_map else next(iter(self.row_map))
            table.move_cursor(row=table.get_row_index(alias))
            self._selected_alias = alias
            self.details_panel.show_record(self.row_map[alias], self.probe_results.get(alias))
        else:
            message = "No matches for current filter" if self.filter_text.strip() else "No hosts configured"
            self.details_panel.show_empty(message)
            self._selected_alias = None

    def get_selected_record(self) -> Optional[HostRecord]:
        if not self._selected_alias:
            return None
        return self.row_map.get(self._selected_alias)

    # ----------------------------------------------------------------- status
    def set_status(self, message: str, *, error: bool = False, persist: bool = False) -> None:
        if not hasattr(self, "status_bar"):
            return
        if self._status_timer:
            self._status_timer.stop()
            self._status_timer = None
        self.status_bar.set_message(message, error=error)
        if not persist:
            self._status_timer = self.set_timer(6, self._clear_status, name="status-clear")

    def _clear_status(self) -> None:
        self.status_bar.set_message("")
        self._status_timer = None


def parse_args(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(description="ssh-conn terminal UI")
    parser.add_argument("--config", metavar="PATH", help="SSH config file to manage (default: ~/.ssh/config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--no-keyring",
        action="store_true",
        help="Do not read or store passwords in the system keyring",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None):
    args = parse_args(argv)
    config = Config()
    setup_logging(verbose=bool(args.verbose or config.get_setting("logging.debug", False)), console=False)
    engine = ConfigEngine(config.get_ssh_config_path(args.config))
    credentials = create_credential_store(config, use_keyring=not args.no_keyring)
    app = SshConnTuiApp(engine=engine, credentials=credentials, config=config)
    try:
        app.run()
    except KeyboardInterrupt:
        pass
    return 0


__all__ = ["main", "SshConnTuiApp"]
