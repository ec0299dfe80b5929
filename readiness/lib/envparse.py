"""
Safe KEY=value parser for readiness.env and secrets.env.

Values are never shell-evaluated. Anything that looks like command
substitution, variable expansion or chaining is rejected, so a secrets file
cannot smuggle a command into a provider key.

Accepted lines:
    KEY=value
    KEY="quoted value"          quotes stripped, '#' inside kept
    export KEY=value            shell habit, prefix dropped
    KEY=value  # note           trailing comment on unquoted values

Typed settings (get_int, get_float, get_bool) never raise: a bad value logs
a warning and the caller's default applies.
"""

import logging
import os
import re
from pathlib import Path

logger = logging.getLogger(__name__)

FORBIDDEN_PATTERNS = [
    re.compile(r'`'),
    re.compile(r'\$\('),
    re.compile(r'\$\{'),
    re.compile(r';'),
    re.compile(r'&&'),
    re.compile(r'\|'),
]

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')
INLINE_COMMENT = re.compile(r'\s+#.*$')

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


def _unquote(value: str) -> tuple[str, bool]:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1], True
    return value, False


def parse_line(line: str, where: str) -> tuple[str, str] | None:
    """Parse one line. Returns None for blanks and comments.

    Raises:
        ValueError: invalid syntax, invalid key, or forbidden pattern
    """
    line = line.strip()
    if not line or line.startswith('#'):
        return None

    if line.startswith('export '):
        line = line[len('export '):].lstrip()

    if '=' not in line:
        raise ValueError(f"{where}: Invalid syntax (no '=')")

    key, _, value = line.partition('=')
    key = key.strip()
    if not KEY_PATTERN.match(key):
        raise ValueError(f"{where}: Invalid key '{key}'")

    value, quoted = _unquote(value.strip())
    if not quoted:
        value = INLINE_COMMENT.sub('', value)

    for pattern in FORBIDDEN_PATTERNS:
        if pattern.search(value):
            raise ValueError(f"{where}: Forbidden pattern in value of {key}")

    return key, value


def load_env(filepath: str) -> dict:
    """
    Parse env file safely, return dict. A repeated key keeps the last value.

    Raises:
        FileNotFoundError: if file doesn't exist
        ValueError: if syntax invalid or forbidden pattern found
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Env file not found: {filepath}")

    result = {}
    for lineno, line in enumerate(path.read_text().splitlines(), 1):
        parsed = parse_line(line, f"{path.name} line {lineno}")
        if parsed is None:
            continue
        key, value = parsed
        if key in result:
            logger.warning(f"{path.name} line {lineno}: {key} set again, later value wins")
        result[key] = value

    return result


def load_env_layered(filepath: str | None, keys: list[str] | None = None) -> dict:
    """Load an env file (if present) and overlay process environment values.

    Process environment wins over the file. When keys is given, only those
    names are taken from os.environ; otherwise every file key may be
    overridden.
    """
    result = {}
    if filepath and Path(filepath).exists():
        result = load_env(filepath)

    names = keys if keys is not None else list(result)
    for name in names:
        if name in os.environ:
            result[name] = os.environ[name]
    return result


def get_int(env: dict, key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {key}={raw!r}, using default {default}")
        return default


def get_float(env: dict, key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid {key}={raw!r}, using default {default}")
        return default


def get_bool(env: dict, key: str, default: bool) -> bool:
    raw = env.get(key, "").strip().lower()
    if not raw:
        return default
    if raw in TRUE_VALUES:
        return True
    if raw in FALSE_VALUES:
        return False
    logger.warning(f"Invalid {key}={raw!r}, using default {default}")
    return default
