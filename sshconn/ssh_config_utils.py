import os
import shlex
import logging
import subprocess
from typing import Dict, List, Optional, Tuple, Union


logger = logging.getLogger(__name__)


def split_directive(line: str) -> Tuple[str, str]:
    """Split a config line into ``(keyword, value)``.

    OpenSSH accepts both ``Keyword value`` and ``Keyword=value`` (with optional
    whitespace around ``=``). The keyword keeps its original spelling and the
    value is returned verbatim apart from surrounding whitespace.
    """
    stripped = line.strip()
    idx = 0
    while idx < len(stripped) and not stripped[idx].isspace() and stripped[idx] != '=':
        idx += 1
    keyword = stripped[:idx]
    rest = stripped[idx:].lstrip()
    if rest.startswith('='):
        rest = rest[1:].lstrip()
    return keyword, rest.strip()


def split_host_patterns(value: str) -> List[str]:
    """Return the names listed on a ``Host`` line."""
    try:
        return shlex.split(value)
    except ValueError:
        # Unbalanced quotes: fall back to plain whitespace splitting
        return [token for token in value.split() if token]


def is_pattern(token: str) -> bool:
    return '*' in token or '?' in token or token.startswith('!')


def is_comment_or_blank(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith('#')


def format_directive(keyword: str, value: str, indent: str = '    ') -> str:
    return f"{indent}{keyword} {value}"


def get_effective_ssh_config(
    host: str, config_file: Optional[str] = None

) -> Dict[str, Union[str, List[str]]]:
    """Return effective SSH options for *host* using ``ssh -G``.

    The output is parsed into a dictionary with lowercased keys. Options that
    appear multiple times (e.g. ``IdentityFile``) are stored as lists.
    """
    cmd = ['ssh']
    if config_file:
        expanded = os.path.abspath(os.path.expanduser(os.path.expandvars(config_file)))
        if os.path.isfile(expanded):
            cmd.extend(['-F', expanded])
        else:
            logger.warning("Requested SSH config override %s does not exist", expanded)
    cmd.extend(['-G', host])

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.debug("ssh -G %s failed: %s", host, exc)
        return {}

    config: Dict[str, Union[str, List[str]]] = {}
    for raw_line in result.stdout.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if ' ' in line:
            key, value = line.split(None, 1)
        else:
            key, value = line, ''
        key = key.lower()
        value = value.strip()
        if key in config:
            existing = config[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                config[key] = [existing, value]
        else:
            config[key] = value
    return config


__all__ = [
    'split_directive',
    'split_host_patterns',
    'is_pattern',
    'is_comment_or_blank',
    'format_directive',
    'get_effective_ssh_config',
]
