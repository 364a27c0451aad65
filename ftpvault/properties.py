"""
Ordered flat key/value table and its text codec.

The on-disk format is the classic ``.properties`` syntax: one ``key=value``
per logical line, ``#``/``!`` comments, backslash line continuation and
backslash escapes. Insertion order is kept both in memory and on disk.
"""

from __future__ import annotations
import logging
import re
from datetime import datetime
from typing import IO, Iterator, Optional, Union

from .errors import PropertiesParseError

logger = logging.getLogger(__name__)

_WHITESPACE = " \t\f"
_SEPARATORS = "=:"
_COMMENT_CHARS = "#!"
_LINE_BREAK = re.compile(r"\r\n|\r|\n")

_UNESCAPES = {
    "t": "\t",
    "n": "\n",
    "r": "\r",
    "f": "\f",
}

_ESCAPES = {
    "\\": "\\\\",
    "\t": "\\t",
    "\n": "\\n",
    "\r": "\\r",
    "\f": "\\f",
    "=": "\\=",
    ":": "\\:",
    "#": "\\#",
    "!": "\\!",
}


class Properties(dict):
    """
    Ordered string-to-string table with typed getters.

    Values read with the typed getters fall back to the supplied default
    when the key is absent or its value cannot be interpreted.
    """

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return value.strip().lower() == "true"

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(value.strip())
        except ValueError:
            logger.debug(f"Ignoring non-integer value for {key}: {value!r}")
            return default

    def set_value(self, key: str, value: Union[str, bool, int]) -> None:
        """Store a value, converting bools and ints to their text form."""
        if isinstance(value, bool):
            value = "true" if value else "false"
        self[key] = str(value)

    def keys_with_prefix(self, prefix: str) -> list[str]:
        return [k for k in self if k.startswith(prefix)]

    def copy(self) -> Properties:
        return Properties(self)


# ── Reading ─────────────────────────────────────────────────────────

def _logical_lines(text: str) -> Iterator[str]:
    """Join continuation lines and drop comments and blank lines."""
    buffer: Optional[str] = None

    for raw in _LINE_BREAK.split(text):
        line = raw.lstrip(_WHITESPACE)

        if buffer is None and (not line or line[0] in _COMMENT_CHARS):
            continue

        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            buffer = (buffer or "") + line[:-1]
            continue

        yield (buffer or "") + line
        buffer = None

    if buffer is not None:
        yield buffer


def _unescape(text: str) -> str:
    out = []
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if c != "\\":
            out.append(c)
            i += 1
            continue

        i += 1
        if i >= n:
            break

        c = text[i]
        if c == "u":
            digits = text[i + 1:i + 5]
            if len(digits) != 4:
                raise PropertiesParseError("Malformed \\uxxxx encoding.")
            try:
                out.append(chr(int(digits, 16)))
            except ValueError:
                raise PropertiesParseError("Malformed \\uxxxx encoding.") from None
            i += 5
        else:
            out.append(_UNESCAPES.get(c, c))
            i += 1

    return "".join(out)


def _split_line(line: str) -> tuple[str, str]:
    """Split a logical line into its raw (still escaped) key and value."""
    n = len(line)
    i = 0
    while i < n:
        c = line[i]
        if c == "\\":
            i += 2
            continue
        if c in _SEPARATORS or c in _WHITESPACE:
            break
        i += 1

    key = line[:i]

    j = i
    while j < n and line[j] in _WHITESPACE:
        j += 1
    if j < n and line[j] in _SEPARATORS:
        j += 1
        while j < n and line[j] in _WHITESPACE:
            j += 1

    return key, line[j:]


def loads(text: str) -> Properties:
    """Parse properties text into a new table."""
    props = Properties()
    for line in _logical_lines(text):
        key, value = _split_line(line)
        props[_unescape(key)] = _unescape(value)
    return props


def load(stream: IO) -> Properties:
    """Parse a text or binary stream. Binary content must be UTF-8."""
    content = stream.read()
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PropertiesParseError(f"User data is not valid UTF-8: {e}") from e
    return loads(content)


# ── Writing ─────────────────────────────────────────────────────────

def _escape(text: str, is_key: bool) -> str:
    out = []
    for index, c in enumerate(text):
        if c == " ":
            out.append("\\ " if is_key or index == 0 else " ")
        elif c in _ESCAPES:
            out.append(_ESCAPES[c])
        elif ord(c) < 0x20 or ord(c) == 0x7F:
            out.append(f"\\u{ord(c):04X}")
        else:
            out.append(c)
    return "".join(out)


def dumps(props: dict, comment: Optional[str] = None) -> str:
    """Serialize a table, header comment first, then a timestamp line."""
    lines = []
    if comment:
        for comment_line in _LINE_BREAK.split(comment):
            lines.append(f"#{comment_line}")
    lines.append(f"#{datetime.now().strftime('%a %b %d %H:%M:%S %Y')}")

    for key, value in props.items():
        lines.append(f"{_escape(key, True)}={_escape(value, False)}")

    return "\n".join(lines) + "\n"


def dump(props: dict, stream: IO[str], comment: Optional[str] = None) -> None:
    stream.write(dumps(props, comment))
