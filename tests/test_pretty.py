import math
import struct

import pytest
from hypothesis import given
from hypothesis import strategies as st

from cbordiag.core import MAX_RECURSIONS, CborError, ErrorCode
from cbordiag.pretty import PrettyFlags, to_pretty, to_pretty_advance

NESTING_TEXT = "<nesting too deep, recursion stopped>"


def head(major, value):
    if value < 24:
        return bytes([major << 5 | value])
    for info, size in ((24, 1), (25, 2), (26, 4), (27, 8)):
        if value < 1 << (8 * size):
            return bytes([major << 5 | info]) + value.to_bytes(size, "big")
    raise ValueError(value)


def enc_int(n):
    return head(0, n) if n >= 0 else head(1, -1 - n)


def enc_text(s):
    raw = s.encode("utf-8")
    return head(3, len(raw)) + raw


PRINTABLE = [chr(c) for c in range(0x20, 0x7F) if chr(c) not in '"\\']


@pytest.mark.parametrize(
    "data, expected",
    [(b"\xf6", "null"), (b"\xf7", "undefined"), (b"\xf5", "true"), (b"\xf4", "false")],
)
def test_fixed_words(data, expected):
    assert to_pretty(data) == expected


def test_most_negative_integer():
    data = b"\x3b" + b"\xff" * 8
    assert to_pretty(data) == "-18446744073709551616"


@given(st.integers(min_value=-(2**64), max_value=2**64 - 1))
def test_integers(n):
    assert to_pretty(enc_int(n)) == str(n)


@given(st.binary(max_size=40))
def test_byte_strings_are_hex(data):
    assert to_pretty(head(2, len(data)) + data) == "h'" + data.hex() + "'"


@given(st.text(alphabet=st.sampled_from(PRINTABLE), max_size=40))
def test_plain_text_is_quoted(s):
    assert to_pretty(enc_text(s)) == '"' + s + '"'


def test_newline_escape():
    assert to_pretty(enc_text("\n")) == '"\\n"'


def test_control_character_escape():
    assert to_pretty(enc_text("\x01")) == '"\\u0001"'


def test_non_bmp_uses_surrogate_pair():
    assert to_pretty(enc_text("\U0001F600")) == '"\\uD83D\\uDE00"'


def test_invalid_utf8_raises():
    with pytest.raises(CborError) as info:
        to_pretty(b"\x62\xc3\x28")
    assert info.value.code is ErrorCode.INVALID_UTF8_TEXT_STRING


@given(st.lists(st.integers(min_value=-1000, max_value=1000), max_size=30))
def test_arrays(items):
    data = head(4, len(items)) + b"".join(enc_int(x) for x in items)
    assert to_pretty(data) == "[" + ", ".join(map(str, items)) + "]"


def test_map_composes_key_and_value():
    key, value = enc_text("a"), enc_int(1)
    text = to_pretty(head(5, 1) + key + value)
    assert text == "{" + to_pretty(key) + ": " + to_pretty(value) + "}"


def test_indefinite_array_indicator():
    data = b"\x9f\x01\x02\xff"
    items = ", ".join(to_pretty(b) for b in (b"\x01", b"\x02"))
    assert to_pretty(data) == "[_ " + items + "]"
    assert to_pretty(data, 0) == "[" + items + "]"


def test_indefinite_map_break_after_key():
    with pytest.raises(CborError) as info:
        to_pretty(b"\xbf\x01\xff")
    assert info.value.code is ErrorCode.UNEXPECTED_BREAK


def test_overlong_integer_indicator():
    data = b"\x18\x01"
    assert to_pretty(data) == "1"
    assert to_pretty(data, PrettyFlags.INDICATE_OVERLONG_NUMBERS) == "1_0"


def test_shortest_integer_has_no_indicator():
    data = enc_int(1000)
    assert to_pretty(data, PrettyFlags.INDICATE_OVERLONG_NUMBERS) == "1000"


def test_merged_text_fragments():
    chunked = b"\x7f\x61a\x61b\xff"
    assert to_pretty(chunked) == to_pretty(enc_text("ab")) + "_"
    assert to_pretty(chunked, 0) == to_pretty(enc_text("ab"))


def test_shown_byte_fragments():
    first, second = b"\x41\x01", b"\x42\x02\x03"
    data = b"\x5f" + first + second + b"\xff"
    text = to_pretty(data, PrettyFlags.SHOW_STRING_FRAGMENTS)
    assert text == "(_ " + to_pretty(first) + ", " + to_pretty(second) + ")"


def test_half_float_suffixes():
    data = b"\xf9\x3c\x00"
    assert to_pretty(data) == "1.f16"
    assert to_pretty(data, PrettyFlags.NUMERIC_ENCODING_INDICATORS) == "1._1"


def test_half_float_nan_and_infinity():
    assert math.isnan(float(to_pretty(b"\xf9\x7e\x00")))
    assert float(to_pretty(b"\xf9\x7c\x00")) == math.inf
    assert float(to_pretty(b"\xf9\xfc\x00")) == -math.inf
    numeric = to_pretty(b"\xf9\x7e\x00", PrettyFlags.NUMERIC_ENCODING_INDICATORS)
    assert numeric.endswith("_1")


@given(st.floats(allow_nan=False, allow_infinity=False))
def test_double_round_trip(value):
    text = to_pretty(b"\xfb" + struct.pack(">d", value))
    assert float(text.rstrip(".")) == value


@given(st.floats(width=32, allow_nan=False, allow_infinity=False))
def test_single_round_trip(value):
    text = to_pretty(b"\xfa" + struct.pack(">f", value))
    assert text.endswith("f")
    assert float(text[:-1].rstrip(".")) == value


@given(st.integers(min_value=0, max_value=19) | st.integers(min_value=32, max_value=255))
def test_simple_values(n):
    data = bytes([0xE0 | n]) if n < 24 else bytes([0xF8, n])
    assert to_pretty(data) == f"simple({n})"


@given(st.integers(min_value=0, max_value=2**32))
def test_tag_wraps_value(n):
    data = b"\xc1" + enc_int(n)
    assert to_pretty(data) == "1(" + str(n) + ")"


def test_advance_over_sequence():
    first, second = enc_text("x"), head(4, 2) + b"\x01\x02"
    data = first + second
    text, pos = to_pretty_advance(data)
    assert (text, pos) == (to_pretty(first), len(first))
    text, pos = to_pretty_advance(data, pos)
    assert (text, pos) == (to_pretty(second), len(data))


def test_recursion_limit_stops_output():
    depth = MAX_RECURSIONS + 6
    data = b"\x81" * depth + b"\x00"
    text, pos = to_pretty_advance(data)
    assert pos == len(data)
    assert NESTING_TEXT in text
    assert text.count("[") == MAX_RECURSIONS
    assert text.count("]") == MAX_RECURSIONS


def test_truncated_input():
    with pytest.raises(CborError) as info:
        to_pretty(b"\x82\x01")
    assert info.value.code is ErrorCode.UNEXPECTED_EOF


def test_lone_break_byte():
    with pytest.raises(CborError) as info:
        to_pretty(b"\xff")
    assert info.value.code is ErrorCode.UNEXPECTED_BREAK


def test_reserved_additional_information():
    with pytest.raises(CborError) as info:
        to_pretty(b"\x1c")
    assert info.value.code is ErrorCode.ILLEGAL_NUMBER