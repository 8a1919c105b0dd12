from __future__ import annotations

import binascii
import re
from typing import Optional

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_WS_RE = re.compile(r"\s+")

# Share of printable characters a decoded payload needs before it replaces the
# original text. Known false-positive source: hex-looking plaintext such as
# "12345678" passes.
PRINTABLE_RATIO = 0.7


def decode_possible_hex(text: Optional[str]) -> str:
    """
    Return the UTF-8 text behind a hex-encoded field value, or the trimmed
    original when the value is not hex or does not decode to mostly printable
    text. Never raises.
    """
    if not text:
        return ""
    raw = str(text).strip()
    compact = _WS_RE.sub("", raw)
    hex_part = compact[2:] if compact[:2].lower() == "0x" else compact
    if not is_likely_hex(hex_part):
        return raw
    decoded = _decode_hex(hex_part)
    if not decoded:
        return raw
    return decoded if is_mostly_printable(decoded) else raw


def is_likely_hex(value: str) -> bool:
    if not value or len(value) < 2:
        return False
    if len(value) % 2 != 0:
        return False
    return bool(_HEX_RE.match(value))


def is_mostly_printable(text: str) -> bool:
    if not text:
        return False
    printable = sum(1 for ch in text if 32 <= ord(ch) <= 126 or ch in "\t\n\r")
    return printable / len(text) >= PRINTABLE_RATIO


def _decode_hex(hex_text: str) -> str:
    try:
        return binascii.unhexlify(hex_text).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return ""
