from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, List

from cdcanalyzer.services.registry import TypeRegistry

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageBlock:
    index: int
    text: str
    start_line: int
    end_line: int


def split_into_blocks(raw_text: str, registry: TypeRegistry) -> List[MessageBlock]:
    """
    Split a raw CDC log into message blocks.

    A line whose trimmed, lower-cased text equals a registry keyword opens a new
    block. T1.678 records repeat their type name as an inner header
    ("termAttempt" / "T1.678 Version 4" / "laesMessage" / "termAttempt"), so a
    keyword line only closes the pending block once that block holds a field
    line (one containing "="). Until then it joins the pending header.
    """
    keywords = registry.keywords
    lines = (raw_text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")

    blocks: List[MessageBlock] = []
    current: List[str] = []
    current_start = 1
    has_fields = False

    for line_number, line in enumerate(lines, start=1):
        if _is_block_start(line, keywords) and has_fields:
            _emit(blocks, current, current_start)
            current = []
            current_start = line_number
            has_fields = False
        if not current:
            current_start = line_number
        current.append(line)
        if "=" in line:
            has_fields = True

    _emit(blocks, current, current_start)

    LOGGER.debug(
        "Segmented lines=%d blocks=%d keywords=%d",
        len(lines),
        len(blocks),
        len(keywords),
        extra={"category": "PARSE"},
    )
    return blocks


def _is_block_start(line: str, keywords: FrozenSet[str]) -> bool:
    text = line.strip().lower()
    return bool(text) and text in keywords


def _emit(blocks: List[MessageBlock], lines: List[str], start_line: int) -> None:
    if not any(line.strip() for line in lines):
        return
    blocks.append(
        MessageBlock(
            index=len(blocks),
            text="\n".join(lines),
            start_line=start_line,
            end_line=start_line + len(lines) - 1,
        )
    )
