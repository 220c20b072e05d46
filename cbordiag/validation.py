"""Check a CBOR data item for well-formedness and optional stricter rules."""

from __future__ import annotations

import enum
import math
import struct
from dataclasses import dataclass

from .core import (
    BREAK,
    MAX_RECURSIONS,
    CborError,
    CborType,
    ErrorCode,
    Head,
    decode_half,
    decode_utf8,
    encode_half,
    read_head,
    string_chunks,
)


class ValidationFlags(enum.IntFlag):
    """Rules a data item can be checked against, beyond basic well-formedness."""

    BASIC = 0
    SHORTEST_INTEGRALS = 0x0001
    SHORTEST_FLOATING_POINT = 0x0002
    SHORTEST_NUMBERS = 0x0003
    NO_INDETERMINATE_LENGTH = 0x0100
    MAP_IS_SORTED = 0x0300
    CANONICAL_FORMAT = 0x0FFF
    MAP_KEYS_ARE_UNIQUE = 0x1300
    TAG_USE = 0x2000
    UTF8 = 0x4000
    STRICT_MODE = 0xFFF00
    MAP_KEYS_ARE_STRING = 0x100000
    NO_UNDEFINED = 0x200000
    NO_TAGS = 0x400000
    FINITE_FLOATING_POINT = 0x800000
    NO_UNKNOWN_SIMPLE_TYPES_SA = 0x4000000
    NO_UNKNOWN_SIMPLE_TYPES = 0xC000000
    NO_UNKNOWN_TAGS_SA = 0x10000000
    NO_UNKNOWN_TAGS_SR = 0x30000000
    NO_UNKNOWN_TAGS = 0x70000000
    COMPLETE_DATA = 0x80000000
    STRICTEST = 0xFFFFFFFF


_F = ValidationFlags
_STRINGS = (CborType.BYTE_STRING, CborType.TEXT_STRING)
_CONTAINERS = (CborType.ARRAY, CborType.MAP)
_FLOATS = (CborType.HALF_FLOAT, CborType.FLOAT, CborType.DOUBLE)
_CONVERSION_TYPES = (CborType.BYTE_STRING, CborType.ARRAY, CborType.MAP)

# Tags backed by an RFC, with the item types they may be applied to.
# An empty tuple means any type is acceptable.
KNOWN_TAGS: dict[int, tuple[CborType, ...]] = {
    0: (CborType.TEXT_STRING,),
    1: (CborType.INTEGER,),
    2: (CborType.BYTE_STRING,),
    3: (CborType.BYTE_STRING,),
    4: (CborType.ARRAY,),
    5: (CborType.ARRAY,),
    16: (CborType.ARRAY,),
    17: (CborType.ARRAY,),
    18: (CborType.ARRAY,),
    21: _CONVERSION_TYPES,
    22: _CONVERSION_TYPES,
    23: _CONVERSION_TYPES,
    24: (CborType.BYTE_STRING,),
    32: (CborType.TEXT_STRING,),
    33: (CborType.TEXT_STRING,),
    34: (CborType.TEXT_STRING,),
    35: (CborType.TEXT_STRING,),
    36: (CborType.TEXT_STRING,),
    96: (CborType.ARRAY,),
    97: (CborType.ARRAY,),
    98: (CborType.ARRAY,),
    55799: (),
}


def _as_single(value: float) -> float | None:
    try:
        return struct.unpack(">f", struct.pack(">f", value))[0]
    except OverflowError:
        return None


@dataclass
class _Frame:
    kind: CborType
    remaining: int | None
    child_depth: int
    seen: int = 0
    key_start: int = 0
    previous_key: tuple[int, int] | None = None


class _Validator:
    def __init__(self, data: bytes, flags: int) -> None:
        self.data = bytes(data)
        self.flags = int(flags)

    def run(self, offset: int) -> int:
        stack: list[_Frame] = []
        pos = offset
        while True:
            top = stack[-1] if stack else None
            depth = top.child_depth if top is not None else MAX_RECURSIONS
            if top is not None and top.kind is CborType.MAP and top.seen % 2 == 0:
                top.key_start = pos
                if self.flags & _F.MAP_KEYS_ARE_STRING:
                    self._check_key_type(pos)
            pos, frame = self._item(pos, depth)
            if frame is not None:
                stack.append(frame)
            pos = self._settle(stack, pos, finished=frame is None)
            if not stack:
                return pos

    def _settle(self, stack: list[_Frame], pos: int, finished: bool) -> int:
        while stack:
            top = stack[-1]
            if finished:
                top.seen += 1
                if top.remaining is not None:
                    top.remaining -= 1
                if top.kind is CborType.MAP and top.seen % 2 == 1:
                    self._check_order(top, pos)
            if not self._at_end(top, pos):
                return pos
            if top.remaining is None:
                pos += 1
            stack.pop()
            finished = True
        return pos

    def _at_end(self, frame: _Frame, pos: int) -> bool:
        if frame.remaining is not None:
            return frame.remaining == 0
        if pos >= len(self.data):
            raise CborError(ErrorCode.UNEXPECTED_EOF, pos)
        if self.data[pos] != BREAK:
            return False
        if frame.kind is CborType.MAP and frame.seen % 2:
            raise CborError(ErrorCode.UNEXPECTED_BREAK, pos)
        return True

    def _item(self, pos: int, depth: int) -> tuple[int, _Frame | None]:
        while True:
            head = read_head(self.data, pos)
            self._check_length(head)
            kind = head.type
            if kind is CborType.TAG:
                depth -= 1
                self._check_tag(head.value, head.end, depth)
                pos = head.end
                continue
            if kind in _CONTAINERS:
                if depth - 1 == 0:
                    raise CborError(ErrorCode.NESTING_TOO_DEEP, head.offset)
                if head.indefinite:
                    remaining = None
                else:
                    remaining = head.value * (2 if kind is CborType.MAP else 1)
                return head.end, _Frame(kind, remaining, depth - 1)
            if kind in _STRINGS:
                return self._string(head), None
            self._scalar(head)
            return head.end, None

    def _check_length(self, head: Head) -> None:
        if head.type in _STRINGS + _CONTAINERS and head.indefinite:
            if self.flags & _F.NO_INDETERMINATE_LENGTH:
                raise CborError(ErrorCode.UNKNOWN_LENGTH, head.offset)
            return
        self._check_number(head)

    def _check_number(self, head: Head) -> None:
        if not self.flags & _F.SHORTEST_INTEGRALS or head.type in _FLOATS:
            return
        value = head.value
        used = head.end - head.offset - 1
        needed = 0
        if value >= 24:
            needed += 1
        if value > 0xFF:
            needed += 1
        if value > 0xFFFF:
            needed += 2
        if value > 0xFFFFFFFF:
            needed += 4
        if needed < used:
            raise CborError(ErrorCode.OVERLONG_ENCODING, head.offset)

    def _check_key_type(self, pos: int) -> None:
        head = read_head(self.data, pos)
        while head.type is CborType.TAG:
            head = read_head(self.data, head.end)
        if head.type is not CborType.TEXT_STRING:
            raise CborError(ErrorCode.MAP_KEY_NOT_STRING, pos)

    def _check_order(self, frame: _Frame, key_end: int) -> None:
        if not self.flags & _F.MAP_IS_SORTED:
            return
        start = frame.key_start
        if frame.previous_key is not None:
            prev_start, prev_end = frame.previous_key
            len1 = read_head(self.data, prev_start).value or 0
            len2 = read_head(self.data, start).value or 0
            if len1 > len2:
                raise CborError(ErrorCode.MAP_NOT_SORTED, start)
            if len1 == len2:
                previous = self.data[prev_start:prev_end]
                current = self.data[start:key_end]
                if previous > current:
                    raise CborError(ErrorCode.MAP_NOT_SORTED, start)
                unique = int(_F.MAP_KEYS_ARE_UNIQUE)
                if previous == current and self.flags & unique == unique:
                    raise CborError(ErrorCode.MAP_KEYS_NOT_UNIQUE, start)
        frame.previous_key = (start, key_end)

    def _check_tag(self, tag: int, pos: int, depth: int) -> None:
        if depth == 0:
            raise CborError(ErrorCode.NESTING_TOO_DEEP, pos)
        flags = self.flags
        if flags & _F.NO_TAGS:
            raise CborError(ErrorCode.EXCLUDED_TYPE, pos)

        allowed = KNOWN_TAGS.get(tag)
        if flags & _F.NO_UNKNOWN_TAGS and allowed is None:
            sr, every = int(_F.NO_UNKNOWN_TAGS_SR), int(_F.NO_UNKNOWN_TAGS)
            if flags & _F.NO_UNKNOWN_TAGS_SA and tag < 24:
                raise CborError(ErrorCode.UNKNOWN_TAG, pos)
            if flags & sr == sr and tag < 256:
                raise CborError(ErrorCode.UNKNOWN_TAG, pos)
            if flags & every == every:
                raise CborError(ErrorCode.UNKNOWN_TAG, pos)

        if flags & _F.TAG_USE and allowed:
            if read_head(self.data, pos).type not in allowed:
                raise CborError(ErrorCode.INAPPROPRIATE_TAG_FOR_TYPE, pos)

    def _string(self, head: Head) -> int:
        chunks, end = string_chunks(self.data, head.offset)
        check_text = head.type is CborType.TEXT_STRING and self.flags & _F.UTF8
        for chunk, payload in chunks:
            self._check_number(chunk)
            if check_text:
                try:
                    decode_utf8(payload)
                except CborError as exc:
                    where = chunk.end + (exc.offset or 0)
                    raise CborError(ErrorCode.INVALID_UTF8_TEXT_STRING, where) from exc
        return end

    def _scalar(self, head: Head) -> None:
        kind = head.type
        if kind is CborType.SIMPLE:
            self._check_simple(head)
        elif kind is CborType.UNDEFINED:
            if self.flags & _F.NO_UNDEFINED:
                raise CborError(ErrorCode.EXCLUDED_TYPE, head.offset)
        elif kind in _FLOATS:
            self._check_float(head)
        elif kind not in (CborType.INTEGER, CborType.NULL, CborType.BOOLEAN):
            raise CborError(ErrorCode.UNKNOWN_TYPE, head.offset)

    def _check_simple(self, head: Head) -> None:
        if head.value < 32:
            if self.flags & _F.NO_UNKNOWN_SIMPLE_TYPES_SA:
                raise CborError(ErrorCode.UNKNOWN_SIMPLE_TYPE, head.offset)
            return
        full = int(_F.NO_UNKNOWN_SIMPLE_TYPES)
        if self.flags & full == full:
            raise CborError(ErrorCode.UNKNOWN_SIMPLE_TYPE, head.offset)

    def _check_float(self, head: Head) -> None:
        flags = self.flags
        kind = head.type
        value = head.float_value
        shortest = flags & _F.SHORTEST_FLOATING_POINT

        if not math.isfinite(value):
            if flags & _F.FINITE_FLOATING_POINT:
                raise CborError(ErrorCode.EXCLUDED_VALUE, head.offset)
            if shortest:
                if kind is not CborType.HALF_FLOAT:
                    raise CborError(ErrorCode.OVERLONG_ENCODING, head.offset)
                if math.isnan(value) and head.value != 0x7E00:
                    raise CborError(ErrorCode.IMPROPER_VALUE, head.offset)
                if math.isinf(value) and head.value not in (0x7C00, 0xFC00):
                    raise CborError(ErrorCode.IMPROPER_VALUE, head.offset)

        if shortest and kind is not CborType.HALF_FLOAT:
            if kind is CborType.DOUBLE:
                if _as_single(value) == value:
                    raise CborError(ErrorCode.OVERLONG_ENCODING, head.offset)
            elif decode_half(encode_half(value)) == value:
                raise CborError(ErrorCode.OVERLONG_ENCODING, head.offset)


def validate(data: bytes, flags: int = ValidationFlags.BASIC) -> int:
    """Validate the first data item in ``data``; return the offset after it.

    Raises :class:`CborError` describing the first problem found.
    """
    end = _Validator(data, flags).run(0)
    if int(flags) & _F.COMPLETE_DATA and end != len(data):
        raise CborError(ErrorCode.GARBAGE_AT_END, end)
    return end


def is_valid(data: bytes, flags: int = ValidationFlags.BASIC) -> bool:
    """Whether the first data item in ``data`` passes :func:`validate`."""
    try:
        validate(data, flags)
    except CborError:
        return False
    return True