"""Text encodings used for byte strings: Base16, Base64 and Base64url."""

from __future__ import annotations

import base64 as _b64


def base16(data: bytes) -> str:
    """Lower-case hexadecimal."""
    return bytes(data).hex()


def base64(data: bytes) -> str:
    """Standard Base64 with '=' padding."""
    return _b64.b64encode(bytes(data)).decode("ascii")


def base64url(data: bytes) -> str:
    """URL-safe Base64 without padding."""
    return _b64.urlsafe_b64encode(bytes(data)).decode("ascii").rstrip("=")