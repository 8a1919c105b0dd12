"""
Line-oriented access to CDC message blocks.

Blocks are tokenized into ``BlockLine`` records once; field lookups, nested
lookups and section slicing all walk that line stream. Logical field names are
resolved through the injected ``FieldAliasTable`` and every extracted value is
passed through the hex-payload normalizer.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence

from cdcanalyzer.services.hex_payload import decode_possible_hex
from cdcanalyzer.services.registry import FieldAliasTable

_KEY_RE = re.compile(r"^([^\s\[=:]+)")


@dataclass(frozen=True)
class BlockLine:
    number: int
    indent: int
    text: str

    @property
    def key(self) -> str:
        match = _KEY_RE.match(self.text)
        return match.group(1).lower() if match else ""

    @property
    def is_blank(self) -> bool:
        return not self.text


def tokenize(text: str) -> List[BlockLine]:
    out: List[BlockLine] = []
    for number, line in enumerate((text or "").replace("\r\n", "\n").split("\n")):
        stripped = line.strip()
        indent = len(line) - len(line.lstrip()) if stripped else 0
        out.append(BlockLine(number=number, indent=indent, text=stripped))
    return out


def lines_text(lines: Iterable[BlockLine]) -> str:
    return "\n".join(line.text for line in lines)


@lru_cache(maxsize=256)
def _assignment_re(name: str) -> "re.Pattern[str]":
    # The name must not continue a longer identifier ("time" vs "startTime").
    return re.compile(rf"(?<![\w-]){re.escape(name)}\s*=\s*(.+)", re.IGNORECASE)


def find_assignment(lines: Sequence[BlockLine], name: str, start: int = 0) -> Optional[str]:
    """Raw (not hex-normalized) value of the first ``name = value`` at or after ``start``."""
    pattern = _assignment_re(name)
    for line in lines[start:]:
        match = pattern.search(line.text)
        if match:
            value = match.group(1).strip()
            if value:
                return value
    return None


def section(lines: Sequence[BlockLine], header: str, stop_keys: Iterable[str] = ()) -> Optional[List[BlockLine]]:
    """
    Lines following a bare ``header`` line, up to (not including) the first line
    keyed by one of ``stop_keys`` or the end of the block. None when the header
    line is absent.
    """
    wanted = header.lower()
    stops = {key.lower() for key in stop_keys}
    for idx, line in enumerate(lines):
        if line.text.lower() != wanted:
            continue
        body: List[BlockLine] = []
        for follower in lines[idx + 1 :]:
            if follower.key in stops:
                break
            body.append(follower)
        return body
    return None


class FieldExtractor:
    def __init__(self, aliases: FieldAliasTable) -> None:
        self.aliases = aliases

    def field(
        self, lines: Sequence[BlockLine], name: str, default_aliases: Optional[Sequence[str]] = None
    ) -> Optional[str]:
        for alias in self.aliases.aliases_for(name, default_aliases):
            value = find_assignment(lines, alias)
            if value is not None:
                return decode_possible_hex(value) or None
        return None

    def nested_field(self, lines: Sequence[BlockLine], parent: str, child: str) -> Optional[str]:
        parent_lower = parent.lower()
        pattern = _assignment_re(child)
        for idx, line in enumerate(lines):
            pos = line.text.lower().find(parent_lower)
            if pos < 0:
                continue
            match = pattern.search(line.text[pos + len(parent_lower) :])
            if match and match.group(1).strip():
                return decode_possible_hex(match.group(1)) or None
            value = find_assignment(lines, child, start=idx + 1)
            if value is None:
                return None
            return decode_possible_hex(value) or None
        return None

    def call_id(self, lines: Sequence[BlockLine]) -> Optional[str]:
        return (
            self.nested_field(lines, "callId", "main")
            or self.nested_field(lines, "contentIdentifier", "main")
            or self.field(lines, "callId")
        )
