"""
Config engine for ssh-conn
Parses the SSH client config into host records, applies validated edits and
writes the file back with a timestamped backup and an atomic replace.
"""

import contextlib
import logging
import os
import shutil
import stat
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from .errors import AlreadyExists, InvalidField, IoError, NotFound, ParseError
from .models import HostRecord, OptionValue
from .search_utils import record_matches
from .ssh_config_utils import (
    format_directive,
    is_comment_or_blank,
    is_pattern,
    split_directive,
    split_host_patterns,
)
from .validation import validate_alias, validate_record

logger = logging.getLogger(__name__)

# Named fields in canonical output order: (directive, HostRecord attribute)
CANONICAL_FIELDS = (
    ('HostName', 'address'),
    ('User', 'user'),
    ('Port', 'port'),
    ('ProxyCommand', 'proxy_command'),
    ('IdentityFile', 'identity_file'),
)
_FIELD_BY_KEYWORD = {keyword.lower(): attr for keyword, attr in CANONICAL_FIELDS}
EDITABLE_FIELDS = ('address', 'user', 'port', 'proxy_command', 'identity_file', 'extra_options')
INDENT = '    '


@dataclass
class _Block:
    """One ``Host``/``Match`` stanza as it appeared in the file.

    ``lines`` runs from the header to the last directive; trailing comments
    and blank lines are kept apart in ``trailer`` so they survive when the
    block itself is rewritten or removed.
    """

    lines: List[str]
    trailer: List[str] = field(default_factory=list)
    record: Optional[HostRecord] = None
    dirty: bool = False

    @property
    def is_host(self) -> bool:
        return self.record is not None


def _add_option(options: Dict[str, OptionValue], keyword: str, value: str) -> None:
    lowered = keyword.lower()
    for existing_key, existing in options.items():
        if existing_key.lower() == lowered:
            if isinstance(existing, list):
                existing.append(value)
            else:
                options[existing_key] = [existing, value]
            return
    options[keyword] = value


def render_record(record: HostRecord) -> List[str]:
    """Return the canonical lines for *record*."""
    lines = [f"Host {record.alias}"]
    for keyword, attr in CANONICAL_FIELDS:
        value = getattr(record, attr)
        if value is None or value == '':
            continue
        if attr == 'address' and record.address_implied:
            continue
        lines.append(format_directive(keyword, str(value), INDENT))
    for keyword, value in record.extra_options.items():
        values = value if isinstance(value, list) else [value]
        for item in values:
            lines.append(format_directive(keyword, item, INDENT))
    return lines


class HostRecordStore:
    """Ordered host records plus the untouched text around them."""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self.preamble: List[str] = []
        self.blocks: List[_Block] = []
        self.warnings: List[str] = []
        self.newline = '\n'
        self.trailing_newline = True

    # ---------------------------------------------------------------- access
    def __iter__(self) -> Iterator[HostRecord]:
        return iter(self.records())

    def __len__(self) -> int:
        return sum(1 for block in self.blocks if block.is_host)

    def __contains__(self, alias: object) -> bool:
        return self._index_of(alias) is not None

    def records(self) -> List[HostRecord]:
        """Snapshot copies of the records in file order."""
        return [block.record.copy() for block in self.blocks if block.is_host]

    def aliases(self) -> List[str]:
        return [block.record.alias for block in self.blocks if block.is_host]

    def get(self, alias: str) -> Optional[HostRecord]:
        idx = self._index_of(alias)
        return self.blocks[idx].record.copy() if idx is not None else None

    def _index_of(self, alias: object) -> Optional[int]:
        for idx, block in enumerate(self.blocks):
            if block.is_host and block.record.alias == alias:
                return idx
        return None

    # -------------------------------------------------------------- mutation
    def append(self, record: HostRecord) -> None:
        self.blocks.append(_Block(lines=[], record=record, dirty=True))

    def replace(self, alias: str, record: HostRecord) -> None:
        idx = self._index_of(alias)
        if idx is None:
            raise NotFound(alias)
        block = self.blocks[idx]
        block.record = record
        block.dirty = True

    def remove(self, alias: str) -> HostRecord:
        idx = self._index_of(alias)
        if idx is None:
            raise NotFound(alias)
        block = self.blocks.pop(idx)
        # Comments after the block usually describe what follows it
        trailer = list(block.trailer)
        while trailer and not trailer[0].strip():
            trailer.pop(0)
        if trailer:
            if idx > 0:
                self.blocks[idx - 1].trailer.extend(trailer)
            else:
                self.preamble.extend(trailer)
        return block.record

    # --------------------------------------------------------- serialization
    def serialize(self) -> str:
        out: List[str] = list(self.preamble)
        for block in self.blocks:
            if block.dirty or not block.lines:
                if not block.lines and out and out[-1].strip():
                    out.append('')
                out.extend(render_record(block.record))
            else:
                out.extend(block.lines)
            out.extend(block.trailer)
        if not out:
            return ''
        text = self.newline.join(out)
        if self.trailing_newline:
            text += self.newline
        return text


def parse_config_text(text: str, path: Optional[str] = None) -> HostRecordStore:
    """Parse SSH config *text* into a :class:`HostRecordStore`.

    Raises :class:`ParseError` on malformed structure. Blocks with wildcard or
    multiple host patterns, and ``Match`` blocks, are kept verbatim but are not
    exposed as records.
    """
    store = HostRecordStore(path)
    if '\r\n' in text:
        store.newline = '\r\n'
    store.trailing_newline = not text or text.endswith(("\n", "\r"))

    current: Optional[_Block] = None
    seen_aliases: Dict[str, int] = {}

    def _finish(block: Optional[_Block]) -> None:
        if block is None:
            return
        record = block.record
        if record is not None and record.address is None:
            record.address = record.alias
            record.address_implied = True
            message = f"host '{record.alias}' has no HostName; using the alias as address"
            store.warnings.append(message)
            logger.warning(message)
        store.blocks.append(block)

    for lineno, raw_line in enumerate(text.splitlines(), 1):
        if is_comment_or_blank(raw_line):
            if current is None:
                store.preamble.append(raw_line)
            else:
                current.trailer.append(raw_line)
            continue

        keyword, value = split_directive(raw_line)
        lowered = keyword.lower()

        if lowered in ('host', 'match'):
            _finish(current)
            current = _Block(lines=[raw_line])
            if lowered == 'match':
                continue
            names = split_host_patterns(value)
            if not names:
                raise ParseError("Host line without a name", lineno, path)
            if len(names) > 1 or is_pattern(names[0]):
                logger.debug("Keeping pattern block %r verbatim", value)
                continue
            alias = names[0]
            try:
                validate_alias(alias)
            except InvalidField as exc:
                raise ParseError(str(exc), lineno, path) from exc
            if alias in seen_aliases:
                raise ParseError(
                    f"duplicate host '{alias}' (first defined on line {seen_aliases[alias]})",
                    lineno,
                    path,
                )
            seen_aliases[alias] = lineno
            current.record = HostRecord(alias=alias, address=None)
            continue

        if current is None:
            if lowered == 'include':
                store.preamble.append(raw_line)
                continue
            raise ParseError(f"directive '{keyword}' outside any Host block", lineno, path)

        # Comments between directives belong to the block body
        current.lines.extend(current.trailer)
        current.trailer = []
        current.lines.append(raw_line)

        record = current.record
        if record is None:
            continue
        if not value:
            raise ParseError(f"directive '{keyword}' has no value", lineno, path)

        attr = _FIELD_BY_KEYWORD.get(lowered)
        if attr is None or (attr == 'identity_file' and record.identity_file is not None):
            _add_option(record.extra_options, keyword, value)
            continue
        if getattr(record, attr) is not None:
            # ssh keeps the first value; the repeat stays in the text only
            message = f"host '{record.alias}' repeats {keyword} on line {lineno}; ignoring '{value}'"
            store.warnings.append(message)
            logger.warning(message)
            continue
        if attr == 'port':
            if not value.isdigit() or not 1 <= int(value) <= 65535:
                raise ParseError(f"invalid Port '{value}' for host '{record.alias}'", lineno, path)
            record.port = int(value)
        else:
            setattr(record, attr, value)

    _finish(current)
    return store


class ConfigEngine:
    """Owns the host record store for one SSH config file."""

    def __init__(self, config_path: str):
        self.config_path = os.path.abspath(os.path.expanduser(config_path))
        self._store: Optional[HostRecordStore] = None

    @property
    def store(self) -> HostRecordStore:
        if self._store is None:
            return self.load()
        return self._store

    # ------------------------------------------------------------------ load
    def load(self) -> HostRecordStore:
        """Read and parse the config file; a missing file yields an empty store."""
        if not os.path.exists(self.config_path):
            logger.info("SSH config %s not found, starting with an empty store", self.config_path)
            self._store = HostRecordStore(self.config_path)
            return self._store
        try:
            with open(self.config_path, 'r', encoding='utf-8', newline='') as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise IoError(f"cannot read {self.config_path}: {e}") from e
        self._store = parse_config_text(text, self.config_path)
        logger.info("Loaded %d hosts from %s", len(self._store), self.config_path)
        return self._store

    # ----------------------------------------------------------------- query
    def list_records(self) -> List[HostRecord]:
        return self.store.records()

    def find(self, alias: str) -> HostRecord:
        record = self.store.get(alias)
        if record is None:
            raise NotFound(alias)
        return record

    def search(self, query: str) -> List[HostRecord]:
        """Case-insensitive substring search over alias, address and user."""
        return [record for record in self.store.records() if record_matches(record, query)]

    # -------------------------------------------------------------- mutation
    def add(self, record: HostRecord) -> None:
        candidate = validate_record(record.copy())
        candidate.address_implied = False
        if candidate.alias in self.store:
            raise AlreadyExists(candidate.alias)
        self.store.append(candidate)
        logger.info("Added host %s", candidate.alias)

    def edit(self, alias: str, **fields: Any) -> HostRecord:
        """Update only the supplied fields of *alias*.

        ``None`` clears an optional field. The alias cannot be changed here;
        use :meth:`rename`.
        """
        current = self.store.get(alias)
        if current is None:
            raise NotFound(alias)
        if 'alias' in fields:
            raise InvalidField('alias', "cannot be changed by edit; use rename")
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidField(sorted(unknown)[0], "is not an editable field")

        candidate = current.copy()
        for name, value in fields.items():
            if name == 'extra_options':
                value = dict(value) if value is not None else {}
            setattr(candidate, name, value)
        if 'address' in fields:
            candidate.address_implied = False
        validate_record(candidate)
        self.store.replace(alias, candidate)
        logger.info("Updated host %s (%s)", alias, ", ".join(sorted(fields)) or "no fields")
        return candidate.copy()

    def delete(self, alias: str) -> None:
        self.store.remove(alias)
        logger.info("Deleted host %s", alias)

    def rename(self, old_alias: str, new_alias: str) -> HostRecord:
        """Rename by delete+add, keeping the block's position in the file."""
        store = self.store
        idx = store._index_of(old_alias)
        if idx is None:
            raise NotFound(old_alias)
        validate_alias(new_alias)
        if new_alias != old_alias and new_alias in store:
            raise AlreadyExists(new_alias)
        renamed = store.blocks[idx].record.copy()
        renamed.alias = new_alias
        store.blocks[idx].record = renamed
        store.blocks[idx].dirty = True
        logger.info("Renamed host %s -> %s", old_alias, new_alias)
        return renamed.copy()

    # ----------------------------------------------------------- persistence
    def serialize(self) -> str:
        return self.store.serialize()

    def _target_path(self) -> str:
        # Write through symlinks so a linked dotfile stays linked
        return os.path.realpath(self.config_path)

    def backup(self) -> Optional[str]:
        """Copy the config file to ``<path>.backup.<timestamp>``."""
        target = self._target_path()
        if not os.path.exists(target):
            return None
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        backup_path = f"{self.config_path}.backup.{stamp}"
        counter = 1
        while os.path.exists(backup_path):
            backup_path = f"{self.config_path}.backup.{stamp}-{counter}"
            counter += 1
        try:
            shutil.copy2(target, backup_path)
        except OSError as e:
            raise IoError(f"cannot back up {target}: {e}") from e
        logger.info("Backup created at %s", backup_path)
        return backup_path

    def persist(self) -> Optional[str]:
        """Back up the current file, then atomically replace it.

        Returns the backup path (None when no file existed). Text that would
        not parse back raises :class:`ParseError` before anything is written.
        On any other failure the original file is left untouched and
        :class:`IoError` is raised. An existing file keeps its permission
        bits; a new one is created 0600.
        """
        text = self.serialize()
        reparsed = parse_config_text(text, self.config_path)
        target = self._target_path()
        directory = os.path.dirname(target) or '.'
        try:
            os.makedirs(directory, mode=0o700, exist_ok=True)
        except OSError as e:
            raise IoError(f"cannot create {directory}: {e}") from e

        try:
            mode = stat.S_IMODE(os.stat(target).st_mode)
        except FileNotFoundError:
            mode = 0o600
        except OSError as e:
            raise IoError(f"cannot stat {target}: {e}") from e

        backup_path = self.backup()

        try:
            fd, tmp_path = tempfile.mkstemp(prefix='.config.', suffix='.tmp', dir=directory)
        except OSError as e:
            raise IoError(f"cannot create temporary file in {directory}: {e}") from e
        try:
            with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, target)
        except OSError as e:
            with contextlib.suppress(OSError):
                os.unlink(tmp_path)
            logger.error("Failed to write SSH config %s: %s", target, e)
            raise IoError(f"cannot write {target}: {e}") from e

        self._store = reparsed
        logger.info("Wrote %d hosts to %s", len(self._store), target)
        return backup_path


__all__ = [
    'CANONICAL_FIELDS',
    'EDITABLE_FIELDS',
    'ConfigEngine',
    'HostRecordStore',
    'parse_config_text',
    'render_record',
]
