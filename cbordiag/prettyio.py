"""Write the diagnostic text of a CBOR data item to a text stream."""

from __future__ import annotations

from typing import TextIO

from .core import CborError, ErrorCode
from .pretty import PrettyFlags, to_pretty_advance


def _emit(out: TextIO, text: str) -> None:
    try:
        out.write(text)
    except OSError as exc:
        raise CborError(ErrorCode.IO) from exc


def write_pretty_advance(
    out: TextIO, data: bytes, offset: int = 0, flags: int = PrettyFlags.DEFAULT
) -> int:
    """Write the item at ``offset`` to ``out``; return the offset after it."""
    text, end = to_pretty_advance(data, offset, flags)
    _emit(out, text)
    return end


def write_pretty(out: TextIO, data: bytes, flags: int = PrettyFlags.DEFAULT) -> None:
    """Write the first data item in ``data`` to ``out`` as diagnostic text."""
    write_pretty_advance(out, data, 0, flags)