"""
3GPP cell identifier decoding.

A composite identifier (as carried by ``utran-cell-id-3gpp=`` in
P-Access-Network-Info or in CDC ``locationData``) is laid out as
MCC (3) + MNC (3) + LAC/TAC (4) + cell id (rest). Nothing in the value says
whether the LAC and cell id are hex or decimal, so the decoder guesses:
hex when the tail holds a hex letter or is longer than 8 characters. The
guess is recorded in ``encoding`` so callers can show how a value was read.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

MIN_CELL_ID_LENGTH = 15

_HEX_LETTER_RE = re.compile(r"[a-fA-F]")

NumericPart = Union[int, str]


@dataclass
class CellIdentifier:
    raw: str
    mcc: Optional[str] = None
    mnc: Optional[str] = None
    lac: Optional[NumericPart] = None
    cell_id: Optional[NumericPart] = None
    encoding: Optional[str] = None  # "hex" or "decimal"
    lac_hex: Optional[str] = None
    cid_hex: Optional[str] = None

    @property
    def decoded(self) -> bool:
        return self.mcc is not None

    @property
    def tower_key(self) -> Optional[str]:
        if self.lac is None or self.cell_id is None:
            return None
        return f"{self.lac}-{self.cell_id}"


def decode_cell_identifier(raw: Optional[str]) -> CellIdentifier:
    text = (raw or "").strip()
    result = CellIdentifier(raw=text)
    if len(text) < MIN_CELL_ID_LENGTH:
        return result

    mcc, mnc, tail = text[:3], text[3:6], text[6:]
    if not (mcc.isdigit() and mnc.isdigit()):
        return result

    result.mcc = mcc
    result.mnc = mnc
    lac_part, cid_part = tail[:4], tail[4:]

    if _HEX_LETTER_RE.search(tail) or len(tail) > 8:
        result.encoding = "hex"
        result.lac_hex = lac_part
        result.cid_hex = cid_part
        result.lac = _to_int(lac_part, 16)
        result.cell_id = _to_int(cid_part, 16)
    else:
        result.encoding = "decimal"
        result.lac = _to_int(lac_part, 10)
        result.cell_id = _to_int(cid_part, 10)
    return result


def normalize_full_cell_id(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = re.sub(r"[^0-9a-f]", "", str(value).strip().lower())
    return cleaned or None


def _to_int(part: str, base: int) -> Optional[NumericPart]:
    if not part:
        return None
    try:
        return int(part, base)
    except ValueError:
        return part
