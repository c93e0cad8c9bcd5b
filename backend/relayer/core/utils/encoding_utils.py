from __future__ import annotations

import json
from typing import Sequence, Union

import base58

WireBytes = Union[str, bytes, Sequence[int]]


def decode_wire_bytes(raw: WireBytes) -> bytes:
    """
    Decode a byte value received over the wire.

    Accepted shapes:
      - raw bytes
      - a list of ints (0..255), or its JSON text "[1, 2, ...]"
      - "0x"-prefixed hex
      - base58 text

    Returns empty bytes when the value is missing or cannot be decoded.
    """
    if raw is None:
        return b""
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return b""

        if text.startswith("["):
            try:
                return _from_int_list(json.loads(text))
            except (ValueError, TypeError):
                return b""

        if text.startswith("0x") or text.startswith("0X"):
            try:
                return bytes.fromhex(text[2:])
            except ValueError:
                return b""

        try:
            return base58.b58decode(text)
        except ValueError:
            return b""

    try:
        return _from_int_list(raw)
    except (ValueError, TypeError):
        return b""


def _from_int_list(values: object) -> bytes:
    if not isinstance(values, (list, tuple)):
        raise TypeError("expected a list of byte values")
    if any(isinstance(v, bool) or not isinstance(v, int) for v in values):
        raise TypeError("byte values must be integers")
    return bytes(values)
