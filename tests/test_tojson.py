import io
import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from cbordiag.core import CborError, CborType, ErrorCode
from cbordiag.encoding import base16, base64, base64url
from cbordiag.pretty import to_pretty
from cbordiag.tojson import JsonFlags, to_json, to_json_advance, write_json

META = JsonFlags.ADD_METADATA


class _BrokenStream:
    def write(self, text):
        raise OSError("no space left")


def test_array_of_integers():
    assert json.loads(to_json(b"\x83\x01\x02\x03")) == [1, 2, 3]


def test_map_with_text_keys():
    assert json.loads(to_json(b"\xa2\x61\x61\x01\x61\x62\xf5")) == {"a": 1, "b": True}


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"\xf6", "null"),
        (b"\xf5", "true"),
        (b"\xf4", "false"),
        (b"\xf7", '"undefined"'),
        (b"\xf0", '"simple(16)"'),
    ],
)
def test_simple_values(data, expected):
    assert to_json(data) == expected


def test_negative_integer():
    assert json.loads(to_json(b"\x20")) == -1


def test_byte_string_is_base64url():
    assert json.loads(to_json(b"\x43\x01\x02\x03")) == base64url(b"\x01\x02\x03")


def test_tagged_byte_strings_obey_tags():
    assert json.loads(to_json(b"\xd7\x42\xab\xcd")) == base16(b"\xab\xcd")
    assert json.loads(to_json(b"\xd6\x41\xff")) == base64(b"\xff")
    assert json.loads(to_json(b"\xc3\x41\xff")) == "~" + base64url(b"\xff")


def test_force_base64url_ignores_tags():
    text = to_json(b"\xd7\x42\xab\xcd", JsonFlags.BYTE_STRINGS_TO_BASE64URL)
    assert json.loads(text) == base64url(b"\xab\xcd")


def test_non_string_key_is_rejected():
    with pytest.raises(CborError) as info:
        to_json(b"\xa1\x01\x02")
    assert info.value.code is ErrorCode.JSON_OBJECT_KEY_NOT_STRING


def test_stringified_keys():
    assert json.loads(to_json(b"\xa1\x01\x02", JsonFlags.STRINGIFY_MAP_KEYS)) == {"1": 2}
    key = to_pretty(b"\x41\x01")
    assert json.loads(to_json(b"\xa1\x41\x01\x02", JsonFlags.STRINGIFY_MAP_KEYS)) == {key: 2}


def test_stringified_key_metadata():
    text = to_json(b"\xa1\x01\x02", JsonFlags.STRINGIFY_MAP_KEYS | META)
    assert json.loads(text) == {"1": 2, "1$keycbordump": True}


def test_byte_string_metadata():
    text = to_json(b"\xa1\x61\x61\x41\x00", META)
    assert json.loads(text) == {
        "a": base64url(b"\x00"),
        "a$cbor": {"t": int(CborType.BYTE_STRING)},
    }


def test_nan_metadata():
    data = b"\xa1\x61\x61\xfb\x7f\xf8" + b"\x00" * 6
    assert json.loads(to_json(data, META)) == {
        "a": None,
        "a$cbor": {"t": int(CborType.DOUBLE), "v": "nan"},
    }


def test_negative_infinity_half_metadata():
    assert json.loads(to_json(b"\xa1\x61\x61\xf9\xfc\x00", META)) == {
        "a": None,
        "a$cbor": {"t": int(CborType.HALF_FLOAT), "v": "-inf"},
    }


def test_integral_double_prints_as_integer():
    assert to_json(b"\xfb\x3f\xf0" + b"\x00" * 6) == "1"
    assert json.loads(to_json(b"\xfb\x3f\xf8" + b"\x00" * 6)) == 1.5


def test_precision_lost_metadata():
    data = b"\xa1\x61\x61\x1b" + b"\xff" * 8
    assert json.loads(to_json(data, META)) == {
        "a": 18446744073709551616,
        "a$cbor": {"t": int(CborType.INTEGER), "v": "+" + "f" * 16},
    }


def test_negative_precision_lost_metadata():
    data = b"\xa1\x61\x61\x3b" + b"\xff" * 8
    result = json.loads(to_json(data, META))
    assert result["a"] == -18446744073709551616
    assert result["a$cbor"]["v"] == "-" + "f" * 16


def test_simple_metadata():
    assert json.loads(to_json(b"\xa1\x61\x61\xf0", META)) == {
        "a": "simple(16)",
        "a$cbor": {"t": int(CborType.SIMPLE), "v": 16},
    }


def test_ignored_tag_metadata():
    assert json.loads(to_json(b"\xa1\x61\x61\xc1\x01", META)) == {
        "a": 1,
        "a$cbor": {"tag": "1"},
    }


def test_tagged_byte_string_metadata():
    result = json.loads(to_json(b"\xa1\x61\x61\xd7\x41\xab", META))
    assert result["a"] == base16(b"\xab")
    assert result["a$cbor"] == {"tag": "23", "t": int(CborType.BYTE_STRING)}


def test_tags_to_objects():
    assert json.loads(to_json(b"\xc1\x01", JsonFlags.TAGS_TO_OBJECTS)) == {"tag1": 1}
    text = to_json(b"\xc1\x41\x00", JsonFlags.TAGS_TO_OBJECTS | META)
    assert json.loads(text) == {
        "tag1": base64url(b"\x00"),
        "tag1$cbor": {"t": int(CborType.BYTE_STRING)},
    }


def test_indefinite_array_and_advance():
    data = b"\x9f\x01\x02\xff\x05"
    text, end = to_json_advance(data)
    assert json.loads(text) == [1, 2]
    assert end == 4
    text, end = to_json_advance(data, end)
    assert json.loads(text) == 5
    assert end == len(data)


def test_invalid_utf8_is_rejected():
    with pytest.raises(CborError) as info:
        to_json(b"\x61\xff")
    assert info.value.code is ErrorCode.INVALID_UTF8_TEXT_STRING


def test_truncated_input():
    with pytest.raises(CborError) as info:
        to_json(b"\x83\x01\x02")
    assert info.value.code is ErrorCode.UNEXPECTED_EOF


def test_deep_nesting_is_rejected():
    with pytest.raises(CborError) as info:
        to_json(b"\x81" * 2000 + b"\x00")
    assert info.value.code is ErrorCode.NESTING_TOO_DEEP


def test_write_json_matches_to_json():
    data = b"\xa2\x61\x61\x01\x61\x62\x82\xf6\xf4"
    out = io.StringIO()
    write_json(out, data)
    assert out.getvalue() == to_json(data)


def test_write_json_broken_stream():
    with pytest.raises(CborError) as info:
        write_json(_BrokenStream(), b"\x01")
    assert info.value.code is ErrorCode.IO


@given(st.lists(st.integers(min_value=0, max_value=23), max_size=23))
def test_small_integer_arrays_round_trip(values):
    data = bytes([0x80 + len(values)] + values)
    text, end = to_json_advance(data)
    assert json.loads(text) == values
    assert end == len(data)