"""Convert one CBOR data item to minified JSON, optionally with metadata."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import TextIO

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
    string_chunks,
)
from .encoding import base16, base64, base64url
from .pretty import to_pretty_advance


class JsonFlags(enum.IntFlag):
    """Options controlling the conversion to JSON."""

    IGNORE_TAGS = 0
    OBEY_BYTE_STRING_TAGS = 0
    REQUIRE_MAP_STRING_KEYS = 0
    DEFAULT = 0
    ADD_METADATA = 1
    TAGS_TO_OBJECTS = 2
    BYTE_STRINGS_TO_BASE64URL = 4
    STRINGIFY_MAP_KEYS = 8


_TYPE_WAS_NOT_NATIVE = 0x100
_TYPE_WAS_TAGGED = 0x200
_NUMBER_PRECISION_WAS_LOST = 0x400
_NUMBER_WAS_NAN = 0x800
_NUMBER_WAS_INFINITE = 0x1000
_NUMBER_WAS_NEGATIVE = 0x2000
_FINAL_TYPE_MASK = 0xFF

_NEGATIVE_BIGNUM_TAG = 3
_EXPECTED_BASE64_TAG = 22
_EXPECTED_BASE16_TAG = 23

_BYTE_STRING_TAGS = {
    _NEGATIVE_BIGNUM_TAG: ("~", base64url),
    _EXPECTED_BASE64_TAG: ("", base64),
    _EXPECTED_BASE16_TAG: ("", base16),
}


@dataclass
class _Status:
    flags: int = 0
    last_tag: int = 0
    original: int = 0


class _Converter:
    def __init__(self, data: bytes, flags: int) -> None:
        self.data = bytes(data)
        self.flags = int(flags)
        self.out: list[str] = []
        self.status = _Status()

    def _string_payload(self, pos: int) -> tuple[bytes, int]:
        chunks, end = string_chunks(self.data, pos)
        return b"".join(payload for _, payload in chunks), end

    def _at_end(self, pos: int, index: int, count: int | None) -> bool:
        if count is not None:
            return index >= count
        if pos >= len(self.data):
            raise CborError(ErrorCode.UNEXPECTED_EOF, pos)
        return self.data[pos] == BREAK

    def value(self, pos: int, depth: int) -> int:
        status = self.status
        status.flags = 0
        head = read_head(self.data, pos)
        kind = head.type

        if kind in (CborType.ARRAY, CborType.MAP):
            if depth >= MAX_RECURSIONS:
                raise CborError(ErrorCode.NESTING_TOO_DEEP, pos)
            is_array = kind is CborType.ARRAY
            self.out.append("[" if is_array else "{")
            end = self._array(head, depth + 1) if is_array else self._map(head, depth + 1)
            self.out.append("]" if is_array else "}")
            status.flags = 0
            return end

        if kind is CborType.TAG:
            return self._tagged(pos, depth)

        if kind is CborType.BYTE_STRING:
            payload, end = self._string_payload(pos)
            status.flags = _TYPE_WAS_NOT_NATIVE
            self.out.append(f'"{base64url(payload)}"')
            return end

        if kind is CborType.TEXT_STRING:
            payload, end = self._string_payload(pos)
            self.out.append(f'"{decode_utf8(payload)}"')
            return end

        if kind is CborType.INTEGER:
            self._integer(head)
        elif kind is CborType.SIMPLE:
            status.flags = _TYPE_WAS_NOT_NATIVE
            status.original = head.value
            self.out.append(f'"simple({head.value})"')
        elif kind is CborType.NULL:
            self.out.append("null")
        elif kind is CborType.UNDEFINED:
            status.flags = _TYPE_WAS_NOT_NATIVE
            self.out.append('"undefined"')
        elif kind is CborType.BOOLEAN:
            self.out.append("true" if head.info == 21 else "false")
        elif kind in (CborType.HALF_FLOAT, CborType.FLOAT, CborType.DOUBLE):
            self._float(head)
        else:
            raise CborError(ErrorCode.UNKNOWN_TYPE, pos)
        return head.end

    def _integer(self, head: Head) -> None:
        status = self.status
        raw = head.value
        number = float(raw)
        if head.is_negative:
            number = -number - 1.0
            if int(-number - 1.0) != raw:
                status.flags = _NUMBER_PRECISION_WAS_LOST | _NUMBER_WAS_NEGATIVE
                status.original = raw
        elif int(number) != raw:
            status.flags = _NUMBER_PRECISION_WAS_LOST
            status.original = raw
        self.out.append(format(number, ".0f"))

    def _float(self, head: Head) -> None:
        status = self.status
        if head.type is not CborType.DOUBLE:
            status.flags = _TYPE_WAS_NOT_NATIVE
        value = head.float_value
        if math.isnan(value):
            self.out.append("null")
            status.flags |= _NUMBER_WAS_NAN
        elif math.isinf(value):
            self.out.append("null")
            status.flags |= _NUMBER_WAS_INFINITE | (_NUMBER_WAS_NEGATIVE if value < 0 else 0)
        else:
            magnitude = abs(value)
            if magnitude < 2.0**64 and magnitude.is_integer():
                sign = "-" if value < 0 else ""
                self.out.append(f"{sign}{int(magnitude)}")
                status.flags |= _TYPE_WAS_NOT_NATIVE
            else:
                self.out.append(format(value, f".{DBL_DECIMAL_DIG}g"))

    def _array(self, head: Head, depth: int) -> int:
        pos, count, index = head.end, head.value, 0
        while not self._at_end(pos, index, count):
            if index:
                self.out.append(",")
            pos = self.value(pos, depth)
            index += 1
        return pos if count is not None else pos + 1

    def _map(self, head: Head, depth: int) -> int:
        pos, count, index = head.end, head.value, 0
        while not self._at_end(pos, index, count):
            if index:
                self.out.append(",")
            key_head = read_head(self.data, pos)
            if key_head.type is CborType.TEXT_STRING:
                payload, pos = self._string_payload(pos)
                key = decode_utf8(payload)
            elif self.flags & JsonFlags.STRINGIFY_MAP_KEYS:
                key, pos = to_pretty_advance(self.data, pos)
            else:
                raise CborError(ErrorCode.JSON_OBJECT_KEY_NOT_STRING, pos)

            self.out.append(f'"{key}":')
            value_type = read_head(self.data, pos).type
            pos = self.value(pos, depth)

            if self.flags & JsonFlags.ADD_METADATA:
                if key_head.type is not CborType.TEXT_STRING:
                    self.out.append(f',"{key}$keycbordump":true')
                if self.status.flags:
                    self.out.append(f',"{key}$cbor":{{{self._metadata(value_type)}}}')
            index += 1
        return pos if count is not None else pos + 1

    def _tagged(self, pos: int, depth: int) -> int:
        if depth >= MAX_RECURSIONS:
            raise CborError(ErrorCode.NESTING_TOO_DEEP, pos)
        status = self.status
        head = read_head(self.data, pos)

        if self.flags & JsonFlags.TAGS_TO_OBJECTS:
            tag = head.value
            pos = head.end
            self.out.append(f'{{"tag{tag}":')
            inner_type = read_head(self.data, pos).type
            pos = self.value(pos, depth + 1)
            if self.flags & JsonFlags.ADD_METADATA and status.flags:
                self.out.append(f',"tag{tag}$cbor":{{{self._metadata(inner_type)}}}')
            self.out.append("}")
            status.flags = _TYPE_WAS_NOT_NATIVE | CborType.TAG
            return pos

        while head.type is CborType.TAG:
            status.last_tag = head.value
            pos = head.end
            head = read_head(self.data, pos)
        tag = status.last_tag

        if (
            head.type is CborType.BYTE_STRING
            and not self.flags & JsonFlags.BYTE_STRINGS_TO_BASE64URL
            and tag in _BYTE_STRING_TAGS
        ):
            prefix, encode = _BYTE_STRING_TAGS[tag]
            payload, end = self._string_payload(pos)
            self.out.append(f'"{prefix}{encode(payload)}"')
            status.flags = _TYPE_WAS_NOT_NATIVE | _TYPE_WAS_TAGGED | CborType.BYTE_STRING
            return end

        end = self.value(pos, depth + 1)
        status.flags |= _TYPE_WAS_TAGGED | head.type
        return end

    def _metadata(self, value_type: int) -> str:
        status = self.status
        flags = status.flags
        parts: list[str] = []
        if flags & _TYPE_WAS_TAGGED:
            value_type = flags & _FINAL_TYPE_MASK
            flags &= ~(_FINAL_TYPE_MASK | _TYPE_WAS_TAGGED)
            parts.append(f'"tag":"{status.last_tag}"' + ("," if flags else ""))
        if not flags:
            return "".join(parts)

        parts.append(f'"t":{int(value_type)}')
        if flags & _NUMBER_WAS_NAN:
            parts.append(',"v":"nan"')
        if flags & _NUMBER_WAS_INFINITE:
            sign = "-" if flags & _NUMBER_WAS_NEGATIVE else ""
            parts.append(f',"v":"{sign}inf"')
        if flags & _NUMBER_PRECISION_WAS_LOST:
            sign = "-" if flags & _NUMBER_WAS_NEGATIVE else "+"
            parts.append(f',"v":"{sign}{status.original:x}"')
        if value_type == CborType.SIMPLE:
            parts.append(f',"v":{int(status.original)}')
        return "".join(parts)


def to_json_advance(
    data: bytes, offset: int = 0, flags: int = JsonFlags.DEFAULT
) -> tuple[str, int]:
    """Convert the item at ``offset``; return the JSON text and the offset after it."""
    converter = _Converter(data, flags)
    try:
        end = converter.value(offset, 0)
    except RecursionError as exc:
        raise CborError(ErrorCode.NESTING_TOO_DEEP, offset) from exc
    return "".join(converter.out), end


def to_json(data: bytes, flags: int = JsonFlags.DEFAULT) -> str:
    """Convert the first data item in ``data`` to JSON text."""
    return to_json_advance(data, 0, flags)[0]


def write_json(out: TextIO, data: bytes, flags: int = JsonFlags.DEFAULT) -> None:
    """Write the JSON form of the first data item in ``data`` to ``out``."""
    text = to_json(data, flags)
    try:
        out.write(text)
    except OSError as exc:
        raise CborError(ErrorCode.IO) from exc