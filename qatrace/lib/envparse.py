"""
Safe .env file parser for project configuration.

Parses KEY=value files without shell execution and overlays
QATRACE_-prefixed process environment variables on top.
"""

import os
import re
from pathlib import Path
from typing import Mapping, Optional

FORBIDDEN_PATTERNS = [
    r'`',           # backticks
    r'\$\(',        # command substitution
    r'\$\{',        # variable expansion
    r';',           # command chaining
    r'&&',
    r'\|\|',
    r'\|',
]

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')

ENV_PREFIX = "QATRACE_"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def _check_value(value: str, where: str) -> None:
    for pattern in FORBIDDEN_PATTERNS:
        if re.search(pattern, value):
            raise ValueError(f"{where}: Forbidden pattern in value")


def parse_env(text: str) -> dict[str, str]:
    """
    Parse KEY=value lines.

    Raises:
        ValueError: if syntax invalid or forbidden pattern found
    """
    result = {}
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        if '=' not in line:
            raise ValueError(f"Line {lineno}: Invalid syntax (no '=')")

        key, _, value = line.partition('=')
        key = key.strip()
        if not KEY_PATTERN.match(key):
            raise ValueError(f"Line {lineno}: Invalid key '{key}'")

        value = _unquote(value.strip())
        _check_value(value, f"Line {lineno}")
        result[key] = value

    return result


def load_env(filepath: str, environ: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """
    Load an env file and apply QATRACE_* overrides from the environment.

    Args:
        filepath: Path to the env file
        environ: Environment to read overrides from (defaults to os.environ)

    Raises:
        FileNotFoundError: if file doesn't exist
        ValueError: if syntax invalid or forbidden pattern found
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Env file not found: {filepath}")

    result = parse_env(path.read_text())
    result.update(env_overrides(os.environ if environ is None else environ))
    return result


def env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    """Collect QATRACE_KEY=value pairs as KEY=value."""
    overrides = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        key = name[len(ENV_PREFIX):]
        if not KEY_PATTERN.match(key):
            continue
        _check_value(value, f"Environment variable {name}")
        overrides[key] = value
    return overrides
