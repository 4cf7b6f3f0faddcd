"""Render exported bindings as shell code or files."""

import json
import re
import shlex
from collections.abc import Mapping

from .parsers import IDENTIFIER

_NAME = re.compile(IDENTIFIER)


def mask_value(value: str, peek_chars: int = 4) -> str:
    """
    Mask a secret value, showing only first and last N characters.

    Used everywhere a value reaches a terminal or a log, so the full secret
    is never printed by diagnostics.
    """
    if not value:
        return "(empty)"

    if len(value) <= peek_chars * 2:
        return "*" * len(value)

    first = value[:peek_chars]
    last = value[-peek_chars:]
    hidden_len = len(value) - (peek_chars * 2)
    return f"{first}{'*' * min(hidden_len, 8)}{last}"


def fish_quote(value: str) -> str:
    """Quote a value as a fish single-quoted string."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _checked_name(name: str) -> str:
    if not _NAME.fullmatch(name):
        raise ValueError(f"Not a valid variable name: {name!r}")
    return name


def render_posix(bindings: Mapping) -> str:
    """``export NAME='value'`` lines for bash and zsh."""
    return "".join(f"export {_checked_name(name)}={shlex.quote(value)}\n" for name, value in bindings.items())


def render_fish(bindings: Mapping) -> str:
    return "".join(f"set -gx {_checked_name(name)} {fish_quote(value)}\n" for name, value in bindings.items())


def _dotenv_value(value: str) -> str:
    if "\n" in value or "\r" in value:
        escaped = (
            value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\r", "\\r")
        )
        return f'"{escaped}"'
    # An enclosing pair of quotes would be stripped on the way back in
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return f"'{value}'"
    return value


def render_dotenv(bindings: Mapping) -> str:
    """A ``.env`` artifact, one ``NAME=value`` per line."""
    return "".join(f"{_checked_name(name)}={_dotenv_value(value)}\n" for name, value in bindings.items())


def render_json(bindings: Mapping) -> str:
    return json.dumps(dict(bindings), indent=2) + "\n"


RENDERERS = {
    "bash": render_posix,
    "zsh": render_posix,
    "fish": render_fish,
    "dotenv": render_dotenv,
    "json": render_json,
}


def render(bindings: Mapping, shell: str = "bash") -> str:
    """Render bindings for the given shell or output format."""
    try:
        renderer = RENDERERS[shell]
    except KeyError:
        raise ValueError(f"Unknown output format: {shell} (expected one of: {', '.join(RENDERERS)})")
    return renderer(bindings)
