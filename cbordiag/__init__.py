"""Diagnostic text, JSON conversion and validation for encoded CBOR data."""

__version__ = "0.1.0"
__all__ = ["core", "encoding", "pretty", "prettyio", "tojson", "validation"]