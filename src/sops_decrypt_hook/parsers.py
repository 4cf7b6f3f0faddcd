"""
Turn decrypted plaintext into raw key/value pairs.

Each parser is a generator over the plaintext, so every call starts a
fresh pass. Pairs come out in source order and duplicates are kept; what
happens to a repeated key is decided when the pairs are exported.
"""

import json
import re
from dataclasses import dataclass
from typing import Iterator, Union

from .config import SecretFormat
from .errors import MalformedContent, UnsupportedFormat

IDENTIFIER = r"[A-Za-z_][A-Za-z0-9_]*"

_DOTENV_LINE = re.compile(rf"^({IDENTIFIER})=(.*)$")
_YAML_LINE = re.compile(rf"^({IDENTIFIER}): (.*)$")
_INI_LINE = re.compile(rf"^({IDENTIFIER})\s*=\s*(.*)$")
_INI_SECTION = re.compile(r"^\s*\[([^\]]*)\]\s*$")


@dataclass(frozen=True)
class RawPair:
    """An unvalidated key/value pair and where it came from."""

    key: str
    value: str
    source: str


def decode_plaintext(data: bytes, path: str = "<plaintext>") -> str:
    """Decode decrypted bytes as UTF-8 (a leading BOM is dropped)."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedContent(path, f"Decrypted content of {path} is not valid UTF-8: {e}") from e


def strip_quotes(value: str) -> str:
    """Remove one pair of matching enclosing quotes, if present."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def split_lines(text: str) -> list:
    """
    Split plaintext on newlines only.

    Form feeds, vertical tabs and Unicode separators stay inside the value,
    unlike with ``str.splitlines()``. A trailing carriage return is dropped.
    """
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _is_comment(line: str) -> bool:
    return line.lstrip().startswith("#")


def parse_dotenv(text: str, path: str = "<plaintext>") -> Iterator[RawPair]:
    """
    Parse ``KEY=VALUE`` lines.

    Everything after the first ``=`` belongs to the value, so values such
    as connection strings or base64 padding survive intact. Lines that do
    not start with an identifier followed directly by ``=`` are ignored.
    """
    for lineno, line in enumerate(split_lines(text), 1):
        if not line.strip() or _is_comment(line):
            continue
        match = _DOTENV_LINE.match(line)
        if match:
            yield RawPair(match.group(1), strip_quotes(match.group(2)), f"line {lineno}")


def parse_yaml(text: str, path: str = "<plaintext>") -> Iterator[RawPair]:
    """
    Parse the flat ``KEY: VALUE`` subset of YAML.

    Only top-level scalars written on one line are exported; nested
    mappings and lists are skipped.
    """
    for lineno, line in enumerate(split_lines(text), 1):
        if _is_comment(line):
            continue
        match = _YAML_LINE.match(line)
        if match:
            yield RawPair(match.group(1), match.group(2), f"line {lineno}")


def parse_ini(text: str, path: str = "<plaintext>") -> Iterator[RawPair]:
    """Parse INI; keys inside ``[section]`` become ``section_KEY``."""
    section_prefix = ""
    for lineno, line in enumerate(split_lines(text), 1):
        if not line.strip() or _is_comment(line) or line.lstrip().startswith(";"):
            continue
        section = _INI_SECTION.match(line)
        if section:
            name = section.group(1).strip()
            section_prefix = f"{name}_" if name else ""
            continue
        match = _INI_LINE.match(line)
        if match:
            yield RawPair(section_prefix + match.group(1), match.group(2), f"line {lineno}")


def _scalar_to_str(value) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    return str(value)


def _flatten(node, segments: list) -> Iterator[tuple]:
    if isinstance(node, dict):
        for key, child in node.items():
            yield from _flatten(child, segments + [str(key)])
    elif isinstance(node, list):
        for index, child in enumerate(node):
            yield from _flatten(child, segments + [str(index)])
    else:
        yield segments, _scalar_to_str(node)


def parse_json(text: str, path: str = "<plaintext>") -> Iterator[RawPair]:
    """
    Flatten a JSON document into one pair per scalar leaf.

    ``{"api": {"key": "k"}}`` becomes ``api_key=k``; array elements use
    their index as a path segment. Numbers keep their source literal.
    """
    try:
        # Numbers stay as written in the document (42.5, 1e3, ...)
        document = json.loads(text, parse_int=str, parse_float=str, parse_constant=str)
    except json.JSONDecodeError as e:
        raise MalformedContent(path, f"Invalid JSON in {path}: {e}") from e

    for segments, value in _flatten(document, []):
        yield RawPair("_".join(segments), value, "path " + "/".join(segments))


_PARSERS = {
    SecretFormat.DOTENV: parse_dotenv,
    SecretFormat.JSON: parse_json,
    SecretFormat.YAML: parse_yaml,
    SecretFormat.INI: parse_ini,
}


def resolve_format(fmt: Union[str, SecretFormat], path: str = "<plaintext>") -> SecretFormat:
    """Map a format tag to SecretFormat, raising UnsupportedFormat."""
    try:
        return SecretFormat(fmt)
    except ValueError:
        supported = ", ".join(f.value for f in SecretFormat)
        raise UnsupportedFormat(path, f"Unsupported format {fmt!r} for {path} (supported: {supported})")


def parse(text: str, fmt: Union[str, SecretFormat], path: str = "<plaintext>") -> Iterator[RawPair]:
    """Parse plaintext of the given format into RawPairs."""
    parser = _PARSERS[resolve_format(fmt, path)]
    return parser(text, path)
