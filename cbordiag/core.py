"""Low-level CBOR reading: item heads, skipping, string chunks and half floats."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

MAX_RECURSIONS = 1024
"""Deepest container nesting accepted while walking an item."""

DBL_DECIMAL_DIG = 17
"""Significant digits needed to print a double without loss."""

BREAK = 0xFF
INDEFINITE_LENGTH = 31


class ErrorCode(enum.Enum):
    """Reasons a CBOR operation can fail."""

    UNKNOWN_ERROR = "unknown error"
    UNKNOWN_LENGTH = "unknown length (attempted to get the length of a map/array/string of indeterminate length)"
    ADVANCE_PAST_EOF = "attempted to advance past EOF"
    IO = "I/O error"
    GARBAGE_AT_END = "garbage after the end of the content"
    UNEXPECTED_EOF = "unexpected end of data"
    UNEXPECTED_BREAK = "unexpected 'break' byte"
    UNKNOWN_TYPE = "illegal byte (encodes future extension type)"
    ILLEGAL_TYPE = "mismatched string type in chunked string"
    ILLEGAL_NUMBER = "illegal initial byte (encodes unspecified additional information)"
    ILLEGAL_SIMPLE_TYPE = "illegal encoding of simple type smaller than 32"
    NO_MORE_STRING_CHUNKS = "no more byte or text strings available"
    UNKNOWN_SIMPLE_TYPE = "unknown simple type"
    UNKNOWN_TAG = "unknown tag"
    INAPPROPRIATE_TAG_FOR_TYPE = "inappropriate tag for type"
    DUPLICATE_OBJECT_KEYS = "duplicate keys in object"
    INVALID_UTF8_TEXT_STRING = "invalid UTF-8 content in string"
    EXCLUDED_TYPE = "excluded type found"
    EXCLUDED_VALUE = "excluded value found"
    IMPROPER_VALUE = "value encoded in non-canonical form"
    OVERLONG_ENCODING = "value encoded in non-canonical form"[:-1] + "m (overlong)"
    MAP_KEY_NOT_STRING = "key in map is not a string"
    MAP_NOT_SORTED = "map is not sorted"
    MAP_KEYS_NOT_UNIQUE = "map keys are not unique"
    TOO_MANY_ITEMS = "too many items added to encoder"
    TOO_FEW_ITEMS = "too few items added to encoder"
    DATA_TOO_LARGE = "internal error: data too large"
    NESTING_TOO_DEEP = "internal error: too many nested containers found in recursive function"
    UNSUPPORTED_TYPE = "unsupported type"
    JSON_OBJECT_KEY_IS_AGGREGATE = "conversion to JSON failed: key in object is an array or map"
    JSON_OBJECT_KEY_NOT_STRING = "conversion to JSON failed: key in object is not a string"
    JSON_NOT_IMPLEMENTED = "conversion to JSON failed: open_memstream unavailable"
    OUT_OF_MEMORY = "out of memory/need more memory"
    INTERNAL_ERROR = "internal error"


class CborError(Exception):
    """Raised when CBOR data cannot be read, converted or validated."""

    def __init__(self, code: ErrorCode, offset: int | None = None) -> None:
        self.code = code
        self.offset = offset
        where = "" if offset is None else f" at offset {offset}"
        super().__init__(f"{code.value}{where}")


class CborType(enum.IntEnum):
    """Kinds of CBOR data item, numbered by their initial byte."""

    INTEGER = 0x00
    BYTE_STRING = 0x40
    TEXT_STRING = 0x60
    ARRAY = 0x80
    MAP = 0xA0
    TAG = 0xC0
    SIMPLE = 0xE0
    BOOLEAN = 0xF5
    NULL = 0xF6
    UNDEFINED = 0xF7
    HALF_FLOAT = 0xF9
    FLOAT = 0xFA
    DOUBLE = 0xFB
    INVALID = 0xFF


_STRING_TYPES = (CborType.BYTE_STRING, CborType.TEXT_STRING)
_CONTAINER_TYPES = (CborType.ARRAY, CborType.MAP)
_SIMPLE_MAJOR_TYPES = {
    20: CborType.BOOLEAN,
    21: CborType.BOOLEAN,
    22: CborType.NULL,
    23: CborType.UNDEFINED,
    24: CborType.SIMPLE,
    25: CborType.HALF_FLOAT,
    26: CborType.FLOAT,
    27: CborType.DOUBLE,
}
_MAJOR_TYPES = {
    0: CborType.INTEGER,
    1: CborType.INTEGER,
    2: CborType.BYTE_STRING,
    3: CborType.TEXT_STRING,
    4: CborType.ARRAY,
    5: CborType.MAP,
    6: CborType.TAG,
}


@dataclass(frozen=True)
class Head:
    """The initial byte of a data item and the number that follows it.

    ``value`` is the argument: the integer, length, tag number, simple value
    or raw floating-point bits; it is ``None`` for indefinite lengths.
    ``end`` is the offset of the first byte after the head.
    """

    offset: int
    major: int
    info: int
    value: int | None
    end: int
    type: CborType

    @property
    def indefinite(self) -> bool:
        return self.info == INDEFINITE_LENGTH

    @property
    def is_negative(self) -> bool:
        return self.major == 1

    @property
    def float_value(self) -> float:
        """The floating-point number held by a half, single or double item."""
        if self.type is CborType.HALF_FLOAT:
            return decode_half(self.value)
        if self.type is CborType.FLOAT:
            return struct.unpack(">f", self.value.to_bytes(4, "big"))[0]
        if self.type is CborType.DOUBLE:
            return struct.unpack(">d", self.value.to_bytes(8, "big"))[0]
        raise CborError(ErrorCode.ILLEGAL_TYPE, self.offset)


def read_head(data: bytes, offset: int = 0) -> Head:
    """Read the head of the data item starting at ``offset``."""
    if offset >= len(data):
        raise CborError(ErrorCode.UNEXPECTED_EOF, offset)
    initial = data[offset]
    major, info = initial >> 5, initial & 0x1F
    end = offset + 1

    if info < 24:
        value: int | None = info
    elif info <= 27:
        size = 1 << (info - 24)
        if end + size > len(data):
            raise CborError(ErrorCode.UNEXPECTED_EOF, offset)
        value = int.from_bytes(data[end:end + size], "big")
        end += size
    elif info == INDEFINITE_LENGTH:
        value = None
    else:
        code = ErrorCode.UNKNOWN_TYPE if major == 7 else ErrorCode.ILLEGAL_NUMBER
        raise CborError(code, offset)

    if major == 7:
        if info == INDEFINITE_LENGTH:
            raise CborError(ErrorCode.UNEXPECTED_BREAK, offset)
        if info == 24 and value < 32:
            raise CborError(ErrorCode.ILLEGAL_SIMPLE_TYPE, offset)
        item_type = _SIMPLE_MAJOR_TYPES.get(info, CborType.SIMPLE)
    else:
        item_type = _MAJOR_TYPES[major]
        if value is None and item_type not in _STRING_TYPES + _CONTAINER_TYPES:
            raise CborError(ErrorCode.ILLEGAL_NUMBER, offset)

    return Head(offset, major, info, value, end, item_type)


def _payload(data: bytes, head: Head) -> bytes:
    end = head.end + head.value
    if end > len(data):
        raise CborError(ErrorCode.UNEXPECTED_EOF, head.offset)
    return bytes(data[head.end:end])


def string_chunks(data: bytes, offset: int = 0) -> tuple[list[tuple[Head, bytes]], int]:
    """Return the chunks of the string at ``offset`` and the offset after it.

    Each chunk is its own head with its payload. A string of definite length
    has a single chunk whose head is the string's head.
    """
    head = read_head(data, offset)
    if head.type not in _STRING_TYPES:
        raise CborError(ErrorCode.ILLEGAL_TYPE, offset)
    if not head.indefinite:
        payload = _payload(data, head)
        return [(head, payload)], head.end + len(payload)

    chunks: list[tuple[Head, bytes]] = []
    pos = head.end
    while True:
        if pos >= len(data):
            raise CborError(ErrorCode.UNEXPECTED_EOF, pos)
        if data[pos] == BREAK:
            return chunks, pos + 1
        chunk = read_head(data, pos)
        if chunk.major != head.major or chunk.indefinite:
            raise CborError(ErrorCode.ILLEGAL_TYPE, pos)
        payload = _payload(data, chunk)
        chunks.append((chunk, payload))
        pos = chunk.end + len(payload)


@dataclass
class _Level:
    remaining: int | None
    is_map: bool
    seen: int = 0


def _count_item(levels: list[_Level]) -> None:
    if levels:
        level = levels[-1]
        level.seen += 1
        if level.remaining is not None:
            level.remaining -= 1


def skip_item(data: bytes, offset: int = 0) -> int:
    """Walk the whole data item at ``offset`` and return the offset after it."""
    pos = offset
    levels: list[_Level] = []
    while True:
        head = read_head(data, pos)
        pos = head.end
        if head.type in _CONTAINER_TYPES:
            if len(levels) >= MAX_RECURSIONS:
                raise CborError(ErrorCode.NESTING_TOO_DEEP, head.offset)
            is_map = head.type is CborType.MAP
            remaining = None if head.indefinite else head.value * (2 if is_map else 1)
            levels.append(_Level(remaining, is_map))
        elif head.type is CborType.TAG:
            continue
        else:
            if head.type in _STRING_TYPES:
                pos = string_chunks(data, head.offset)[1]
            _count_item(levels)

        while levels:
            level = levels[-1]
            if level.remaining is None:
                if pos >= len(data):
                    raise CborError(ErrorCode.UNEXPECTED_EOF, pos)
                if data[pos] != BREAK:
                    break
                if level.is_map and level.seen % 2:
                    raise CborError(ErrorCode.UNEXPECTED_BREAK, pos)
                pos += 1
            elif level.remaining:
                break
            levels.pop()
            _count_item(levels)

        if not levels:
            return pos


def decode_half(bits: int) -> float:
    """Convert IEEE 754 half-precision bits to a float."""
    return struct.unpack(">e", (bits & 0xFFFF).to_bytes(2, "big"))[0]


def encode_half(value: float) -> int:
    """Convert a float to the nearest IEEE 754 half-precision bits."""
    try:
        return int.from_bytes(struct.pack(">e", value), "big")
    except OverflowError:
        return (0x8000 if value < 0 else 0) | 0x7C00


def decode_utf8(data: bytes) -> str:
    """Decode strict UTF-8, rejecting overlong forms and surrogates."""
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CborError(ErrorCode.INVALID_UTF8_TEXT_STRING, exc.start) from exc