"""Lenient hex helpers shared by the decoder, resolvers, and CLI."""

from __future__ import annotations

import re

_WHITESPACE_RE = re.compile(r"\s+")
_HEX_PAIR_RE = re.compile(r"^[0-9A-Fa-f]{2}$")
_HEX_RE = re.compile(r"^[0-9A-Fa-f]*$")
_NON_HEX_RE = re.compile(r"[^0-9A-Fa-f]")


def clean_hex(value: str) -> str:
    return _WHITESPACE_RE.sub("", value or "").upper()


def bytes_from_hex(value: str) -> bytes:
    """Decode hex, skipping any pair that is not two hex digits.

    A trailing single nibble is dropped rather than rejected.
    """
    cleaned = clean_hex(value)
    out = bytearray()
    for i in range(0, len(cleaned), 2):
        pair = cleaned[i : i + 2]
        if _HEX_PAIR_RE.match(pair):
            out.append(int(pair, 16))
    return bytes(out)


def hex_from_bytes(data: bytes) -> str:
    return bytes(data).hex().upper()


def format_hex_block(value: str, bytes_per_line: int = 16) -> str:
    """Render hex as offset-prefixed lines, e.g. ``0010: AA BB CC``."""
    data = bytes_from_hex(value)
    step = max(1, bytes_per_line)
    lines: list[str] = []
    for i in range(0, len(data), step):
        pairs = " ".join(f"{b:02X}" for b in data[i : i + step])
        lines.append(f"{i:04X}: {pairs}")
    return "\n".join(lines)


def is_valid_hex(value: str) -> bool:
    return bool(_HEX_RE.match(value)) and len(value) % 2 == 0


def format_mac_address(address: str) -> str:
    if not address:
        return ""
    digits = _NON_HEX_RE.sub("", address).upper()
    if len(digits) != 12:
        return address.upper()
    return ":".join(digits[i : i + 2] for i in range(0, 12, 2))


def payload_from_text(value: str) -> bytes:
    """Hex (optionally ``0x``-prefixed) becomes bytes; anything else is UTF-8 text."""
    text = value.strip()
    if text[:2].lower() == "0x":
        return bytes_from_hex(text[2:])
    if text and _HEX_RE.match(text):
        return bytes_from_hex(text)
    return text.encode("utf-8")
