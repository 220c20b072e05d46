# cbordiag

Tools for inspecting encoded CBOR (RFC 7049) data:

- **Diagnostic text**: render an encoded item as readable notation, for example
  `[1, "two", h'0304', 4.5]`.
- **JSON**: convert an item to compact JSON. Optional metadata records what JSON
  cannot express, such as tags, byte strings, simple values and lost precision.
- **Validation**: check that an item is well formed. Optional rules check
  canonical form, strict mode, UTF-8, sorted and unique map keys, and known tags.

The package depends only on the standard library.

## Installation

```
pip install cbordiag
```

To run the tests:

```
pip install "cbordiag[test]"
pytest
```

## Diagnostic notation

```python
from cbordiag.pretty import PrettyFlags, to_pretty

to_pretty(bytes.fromhex("83016374776f420304"))
# '[1, "two", h\'0304\']'

to_pretty(bytes.fromhex("1800"), PrettyFlags.INDICATE_OVERLONG_NUMBERS)
# '0_0'
```

`to_pretty_advance(data, offset, flags)` renders the item that starts at
`offset`. It returns a tuple of the text and the offset just after the item, so
you can walk through a sequence of concatenated items.

`PrettyFlags` has the following options:

- `INDICATE_INDETERMINATE_LENGTH`: mark indefinite-length items with `_`. This
  is the default.
- `INDICATE_OVERLONG_NUMBERS`: mark numbers and lengths that use more bytes than
  they need.
- `NUMERIC_ENCODING_INDICATORS`: give floats the suffixes `_1` and `_2` instead
  of `f16` and `f`.
- `SHOW_STRING_FRAGMENTS`: show each chunk of an indefinite-length string
  separately.

Containers nested deeper than 1024 levels are printed as
`<nesting too deep, recursion stopped>`.

`cbordiag.prettyio.write_pretty(out, data, flags)` and
`write_pretty_advance(out, data, offset, flags)` write the same text to a text
stream. `write_pretty_advance` returns the offset after the item. If the stream
raises `OSError`, they raise `CborError` with code `ErrorCode.IO`.

## JSON

```python
from cbordiag.tojson import JsonFlags, to_json

to_json(bytes.fromhex("a161616131"))                              # '{"a":"1"}'
to_json(bytes.fromhex("a1016161"), JsonFlags.STRINGIFY_MAP_KEYS)  # '{"1":"a"}'
```

By default, map keys must be text strings. Any other key raises `CborError`
with code `ErrorCode.JSON_OBJECT_KEY_NOT_STRING`.

`JsonFlags` has the following options:

- `STRINGIFY_MAP_KEYS`: render keys that are not strings in diagnostic notation.
- `ADD_METADATA`: add `"<key>$cbor"` entries that describe the original types,
  and add `"<key>$keycbordump":true` entries for stringified keys.
- `TAGS_TO_OBJECTS`: turn each tag into an object such as `{"tag1": ...}`.
- `BYTE_STRINGS_TO_BASE64URL`: always encode byte strings as base64url. Without
  this option, byte strings under tags 3, 22 and 23 use `~`+base64url, base64
  and base16 respectively.

`to_json_advance(data, offset, flags)` returns the JSON and the offset after the
item. `write_json(out, data, flags)` writes the JSON to a text stream.

## Validation

```python
from cbordiag.validation import ValidationFlags, is_valid, validate

is_valid(bytes.fromhex("1817"), ValidationFlags.CANONICAL_FORMAT)  # False (overlong)
validate(bytes.fromhex("a2616101616102"), ValidationFlags.STRICT_MODE)
# raises CborError: map keys are not unique
```

`validate(data, flags)` checks the first item in `data` and returns the offset
just after it. When a check fails, it raises `cbordiag.core.CborError`. The
error's `code` attribute is an `ErrorCode` member, and its `offset` attribute
gives the position of the problem. `is_valid` gives the same answer as a
boolean.

Flags can be combined. `CANONICAL_FORMAT`, `STRICT_MODE` and `STRICTEST` are
predefined groups. `COMPLETE_DATA` rejects bytes that follow the item.

## Lower-level helpers

`cbordiag.core` provides the building blocks used by the other modules:

- `read_head`: decode the head of an item into a `Head`.
- `skip_item`: return the offset after a complete item.
- `string_chunks`: return a list of `(Head, payload)` chunks of a definite or
  indefinite string, together with the offset after the string.
- `decode_half` and `encode_half`: convert half-precision floats.
- `decode_utf8`: decode UTF-8 strictly.
- `CborType`, `ErrorCode` and `CborError`.

`cbordiag.encoding` provides the `base16`, `base64` and `base64url` encoders
used for byte strings.

## What it does not do

- It only reads CBOR. It has no encoder and does not convert JSON back to CBOR.
- It has no command-line tool.
- The JSON output places text strings and map keys in quotes exactly as
  decoded. It does not apply JSON escaping, so a quote or a control character
  inside a string produces invalid JSON.