"""JSURL: a compact, URL-safe serialization of JSON-like values.

Values are written as ``~``-prefixed tokens so the output can be dropped into a
query string or form field without further escaping::

    >>> dumps([{"v": 0, "t": "Crash", "m": "oom"}])
    "~(~(v~0~t~'Crash~m~'oom))"

``None`` inside an object means "undefined" and the field is left out; inside an
array it is written as ``~null``.
"""

from __future__ import annotations

import re
from typing import Any

_SAFE_RE = re.compile(r"[A-Za-z0-9_.\-]")
_APOSTROPHE_RE = re.compile(r"%(25)*27")
_RESERVED = {"true": True, "false": False, "null": None}


class JSURLError(ValueError):
    pass


def _utf16_units(ch: str) -> list[int]:
    code = ord(ch)
    if code <= 0xFFFF:
        return [code]
    code -= 0x10000
    return [0xD800 + (code >> 10), 0xDC00 + (code & 0x3FF)]


def _escape(text: str) -> str:
    out: list[str] = []
    for ch in text:
        if _SAFE_RE.match(ch):
            out.append(ch)
        elif ch == "$":
            out.append("!")
        else:
            for unit in _utf16_units(ch):
                out.append(f"*{unit:02x}" if unit < 0x100 else f"**{unit:04x}")
    return "".join(out)


def _dump_number(value: int | float) -> str:
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return "~null"
        if value.is_integer() and abs(value) < 1e21:
            return f"~{int(value)}"
        return f"~{value!r}"
    return f"~{value}"


def _dump(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "~true" if value else "~false"
    if isinstance(value, (int, float)):
        return _dump_number(value)
    if isinstance(value, str):
        return "~'" + _escape(value)
    if isinstance(value, (list, tuple)):
        items = [_dump(item) or "~null" for item in value]
        return "~(" + ("".join(items) or "~") + ")"
    if isinstance(value, dict):
        fields = []
        for key, item in value.items():
            encoded = _dump(item)
            if encoded is not None:
                fields.append(_escape(str(key)) + encoded)
        return "~(" + "~".join(fields) + ")"
    raise TypeError(f"Object of type {type(value).__name__} is not JSURL serializable")


def dumps(value: Any) -> str:
    """Serialize ``value``; a top-level ``None`` is written as ``~null``."""
    return _dump(value) or "~null"


class _Reader:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        return self.text[idx] if idx < len(self.text) else ""

    def eat(self, expected: str) -> None:
        if self.peek() != expected:
            raise JSURLError(f"Expected {expected!r} at position {self.pos}")
        self.pos += 1

    def _hex(self, start: int, width: int) -> int:
        chunk = self.text[start : start + width]
        try:
            if len(chunk) != width:
                raise ValueError(chunk)
            return int(chunk, 16)
        except ValueError:
            raise JSURLError(f"Bad escape sequence at position {start}") from None

    def unescape(self) -> str:
        units: list[str] = []
        text = self.text
        while self.pos < len(text) and text[self.pos] not in "~)":
            ch = text[self.pos]
            if ch == "*":
                if self.peek(1) == "*":
                    units.append(chr(self._hex(self.pos + 2, 4)))
                    self.pos += 6
                else:
                    units.append(chr(self._hex(self.pos + 1, 2)))
                    self.pos += 3
            elif ch == "!":
                units.append("$")
                self.pos += 1
            else:
                units.append(ch)
                self.pos += 1
        # Pair up UTF-16 surrogates produced by ``**XXXX`` escapes.
        try:
            return "".join(units).encode("utf-16-le", "surrogatepass").decode("utf-16-le")
        except UnicodeDecodeError:
            raise JSURLError("Unpaired surrogate in string") from None

    def _parse_container(self) -> Any:
        self.pos += 1
        if self.peek() == "~":
            items: list[Any] = []
            if self.peek(1) == ")":
                self.pos += 1
            else:
                while self.peek() == "~":
                    items.append(self.parse_value())
            self.eat(")")
            return items
        obj: dict[str, Any] = {}
        if self.peek() != ")":
            while True:
                key = self.unescape()
                obj[key] = self.parse_value()
                if self.peek() != "~":
                    break
                self.pos += 1
        self.eat(")")
        return obj

    def _parse_literal(self) -> Any:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in "~)":
            self.pos += 1
        token = self.text[start : self.pos]
        if token and (token[0].isdigit() or token[0] == "-"):
            try:
                return int(token)
            except ValueError:
                pass
            try:
                return float(token)
            except ValueError:
                raise JSURLError(f"Bad number {token!r}") from None
        if token in _RESERVED:
            return _RESERVED[token]
        raise JSURLError(f"Bad value {token!r} at position {start}")

    def parse_value(self) -> Any:
        self.eat("~")
        ch = self.peek()
        if ch == "(":
            return self._parse_container()
        if ch == "'":
            self.pos += 1
            return self.unescape()
        return self._parse_literal()


def loads(text: str) -> Any:
    """Parse a JSURL string produced by :func:`dumps`."""
    if not text:
        raise JSURLError("Empty input")
    reader = _Reader(_APOSTROPHE_RE.sub("'", text))
    value = reader.parse_value()
    if reader.pos != len(reader.text):
        raise JSURLError(f"Trailing data at position {reader.pos}")
    return value
