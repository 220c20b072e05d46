"""Render one CBOR data item as diagnostic text."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass

from .core import (
    BREAK,
    DBL_DECIMAL_DIG,
    MAX_RECURSIONS,
    CborError,
    CborType,
    ErrorCode,
    Head,
    decode_utf8,
    read_head,
    skip_item,
    string_chunks,
)
from .encoding import base16

RECURSION_LIMIT_TEXT = "<nesting too deep, recursion stopped>"


class PrettyFlags(enum.IntFlag):
    """Options controlling the diagnostic text."""

    TEXTUAL_ENCODING_INDICATORS = 0
    MERGE_STRING_FRAGMENTS = 0
    NUMERIC_ENCODING_INDICATORS = 0x01
    INDICATE_INDETERMINATE_LENGTH = 0x02
    INDICATE_OVERLONG_NUMBERS = 0x04
    SHOW_STRING_FRAGMENTS = 0x100
    DEFAULT = INDICATE_INDETERMINATE_LENGTH


_SHORT_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "\b": "b",
    "\f": "f",
    "\n": "n",
    "\r": "r",
    "\t": "t",
}

_CLOSERS = {CborType.ARRAY: "]", CborType.MAP: "}", CborType.TAG: ")"}


def _indicator(head: Head, flags: int) -> str:
    """Encoding indicator for an integer, length or tag number."""
    if head.info < 24:
        return ""
    if head.indefinite:
        return "_" if flags & PrettyFlags.INDICATE_INDETERMINATE_LENGTH else ""
    if not flags & PrettyFlags.INDICATE_OVERLONG_NUMBERS:
        return ""
    value = head.value
    expected = 23 + (value >= 24) + (value > 0xFF) + (value > 0xFFFF) + (value > 0xFFFFFFFF)
    return "" if expected == head.info else f"_{head.info - 24}"


def _escape_text(chunk: bytes) -> str:
    parts = []
    for ch in decode_utf8(chunk):
        code = ord(ch)
        if 0x20 <= code < 0x7F and ch not in '\\"':
            parts.append(ch)
        elif ch in _SHORT_ESCAPES:
            parts.append("\\" + _SHORT_ESCAPES[ch])
        elif code > 0xFFFF:
            high = (code >> 10) + 0xD7C0
            low = (code % 0x400) + 0xDC00
            parts.append(f"\\u{high:04X}\\u{low:04X}")
        else:
            parts.append(f"\\u{code:04X}")
    return "".join(parts)


def _format_float(head: Head, flags: int) -> str:
    value = head.float_value
    numeric = bool(flags & PrettyFlags.NUMERIC_ENCODING_INDICATORS)
    if head.type is CborType.FLOAT:
        suffix = "_2" if numeric else "f"
    elif head.type is CborType.HALF_FLOAT:
        suffix = "_1" if numeric else "f16"
    else:
        suffix = ""
    if not numeric and not math.isfinite(value):
        suffix = ""

    magnitude = abs(value)
    if magnitude < 2.0**64 and magnitude == int(magnitude):
        sign = "-" if value < 0 else ""
        return f"{sign}{int(magnitude)}.{suffix}"
    if math.isnan(value):
        text = "-nan" if math.copysign(1.0, value) < 0 else "nan"
    else:
        text = format(value, f".{DBL_DECIMAL_DIG}g")
    return text + suffix


@dataclass
class _Frame:
    kind: CborType
    remaining: int | None
    depth_left: int
    seen: int = 0


class _Printer:
    def __init__(self, data: bytes, flags: int) -> None:
        self.data = bytes(data)
        self.flags = int(flags)
        self.out: list[str] = []

    def run(self, offset: int) -> int:
        stack: list[_Frame] = []
        pos = offset
        while True:
            depth_left = stack[-1].depth_left if stack else MAX_RECURSIONS
            head = read_head(self.data, pos)
            pos, frame = self._item(head, depth_left)
            if frame is not None:
                stack.append(frame)
            pos = self._settle(stack, pos, finished=frame is None)
            if not stack:
                return pos

    def _at_end(self, frame: _Frame, pos: int) -> bool:
        if frame.remaining is not None:
            return frame.remaining == 0
        if frame.kind is CborType.MAP and frame.seen % 2:
            return False
        if pos >= len(self.data):
            raise CborError(ErrorCode.UNEXPECTED_EOF, pos)
        return self.data[pos] == BREAK

    def _settle(self, stack: list[_Frame], pos: int, finished: bool) -> int:
        while stack:
            top = stack[-1]
            if finished:
                top.seen += 1
                if top.remaining is not None:
                    top.remaining -= 1
            if not self._at_end(top, pos):
                if top.seen:
                    map_key_done = top.kind is CborType.MAP and top.seen % 2
                    self.out.append(": " if map_key_done else ", ")
                return pos
            if top.remaining is None:
                pos += 1
            stack.pop()
            self.out.append(_CLOSERS[top.kind])
            finished = True
        return pos

    def _item(self, head: Head, depth_left: int) -> tuple[int, _Frame | None]:
        out = self.out
        kind = head.type
        if kind in (CborType.ARRAY, CborType.MAP):
            indicator = _indicator(head, self.flags)
            opener = "[" if kind is CborType.ARRAY else "{"
            out.append(opener + indicator + (" " if indicator else ""))
            if depth_left - 1 == 0:
                out.append(RECURSION_LIMIT_TEXT + _CLOSERS[kind])
                return skip_item(self.data, head.offset), None
            if head.indefinite:
                remaining = None
            else:
                remaining = head.value * (2 if kind is CborType.MAP else 1)
            return head.end, _Frame(kind, remaining, depth_left - 1)

        if kind is CborType.TAG:
            out.append(f"{head.value}{_indicator(head, self.flags)}(")
            if depth_left == 0:
                out.append(RECURSION_LIMIT_TEXT + ")")
                return skip_item(self.data, head.end), None
            return head.end, _Frame(kind, 1, depth_left - 1)

        if kind in (CborType.BYTE_STRING, CborType.TEXT_STRING):
            return self._string(head), None

        if kind is CborType.INTEGER:
            number = -1 - head.value if head.is_negative else head.value
            out.append(f"{number}{_indicator(head, self.flags)}")
        elif kind is CborType.SIMPLE:
            out.append(f"simple({head.value})")
        elif kind is CborType.NULL:
            out.append("null")
        elif kind is CborType.UNDEFINED:
            out.append("undefined")
        elif kind is CborType.BOOLEAN:
            out.append("true" if head.info == 21 else "false")
        elif kind in (CborType.HALF_FLOAT, CborType.FLOAT, CborType.DOUBLE):
            out.append(_format_float(head, self.flags))
        else:
            raise CborError(ErrorCode.UNKNOWN_TYPE, head.offset)
        return head.end, None

    def _string(self, head: Head) -> int:
        chunks, end = string_chunks(self.data, head.offset)
        is_text = head.type is CborType.TEXT_STRING
        opener, closer = ('"', '"') if is_text else ("h'", "'")

        def dump(payload: bytes) -> str:
            return _escape_text(payload) if is_text else base16(payload)

        if self.flags & PrettyFlags.SHOW_STRING_FRAGMENTS and head.indefinite:
            fragments = [
                opener + dump(payload) + closer + _indicator(chunk, self.flags)
                for chunk, payload in chunks
            ]
            self.out.append("(_ " + ", ".join(fragments) + ")")
        else:
            body = "".join(dump(payload) for _, payload in chunks)
            self.out.append(opener + body + closer + _indicator(head, self.flags))
        return end


def to_pretty_advance(
    data: bytes, offset: int = 0, flags: int = PrettyFlags.DEFAULT
) -> tuple[str, int]:
    """Render the item at ``offset``; return the text and the offset after it."""
    printer = _Printer(data, flags)
    end = printer.run(offset)
    return "".join(printer.out), end


def to_pretty(data: bytes, flags: int = PrettyFlags.DEFAULT) -> str:
    """Render the first data item in ``data`` as diagnostic text."""
    return to_pretty_advance(data, 0, flags)[0]