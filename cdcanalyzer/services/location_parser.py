from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from cdcanalyzer.services.cell_id import CellIdentifier, decode_cell_identifier
from cdcanalyzer.services.field_extractor import BlockLine, find_assignment, lines_text

LOGGER = logging.getLogger(__name__)

_LOCATION_MARKER_RE = re.compile(r"^location\[\d+\]", re.IGNORECASE)
_CELL_RE = re.compile(r"(?:utran-cell-id-3gpp|cell-id-3gpp)=([a-fA-F0-9]+)", re.IGNORECASE)
_FALLBACK_CELL_RE = re.compile(r"utran-cell-id-3gpp=([a-fA-F0-9]+)", re.IGNORECASE)

# Fields that may follow a location group; a chunk stops at any of them so one
# group never absorbs the next section.
LOCATION_BOUNDARY_KEYS = frozenset(
    {
        "subjectmedia",
        "associatemedia",
        "calling",
        "called",
        "input",
        "originationcause",
        "signalingmsg",
        "answering",
        "cause",
        "contactaddresses",
    }
)

PANI_SOURCE = "P-A-N-I-Header"
PANI_FALLBACK_SOURCE = "P-A-N-I-Header (Fallback)"


@dataclass
class LocationRecord:
    source_type: str
    raw_data: str
    timestamp: Optional[str] = None
    cell: Optional[CellIdentifier] = None


def parse_location_blocks(lines: Sequence[BlockLine], block_timestamp: Optional[str] = None) -> List[LocationRecord]:
    locations: List[LocationRecord] = []
    for chunk in _location_chunks(lines):
        location_type = find_assignment(chunk, "locationType")
        location_data = find_assignment(chunk, "locationData")
        if not location_type or not location_data:
            continue
        record = LocationRecord(
            source_type=location_type,
            raw_data=location_data,
            timestamp=find_assignment(chunk, "locationTime"),
        )
        cell_match = _CELL_RE.search(location_data)
        if cell_match:
            record.cell = decode_cell_identifier(cell_match.group(1))
        locations.append(record)

    if not locations:
        fallback = _FALLBACK_CELL_RE.search(lines_text(lines))
        if fallback:
            locations.append(
                LocationRecord(
                    source_type=PANI_FALLBACK_SOURCE,
                    raw_data=fallback.group(0),
                    timestamp=block_timestamp,
                    cell=decode_cell_identifier(fallback.group(1)),
                )
            )

    if locations:
        LOGGER.debug("Parsed locations count=%d", len(locations), extra={"category": "LOCATION"})
    return locations


def pani_location(pani_value: str, timestamp: Optional[str]) -> Optional[LocationRecord]:
    """Location record from a P-Access-Network-Info header carrying a cell id."""
    match = re.search(r"utran-cell-id-3gpp=(\w+)", pani_value or "", re.IGNORECASE)
    if not match:
        return None
    return LocationRecord(
        source_type=PANI_SOURCE,
        raw_data=pani_value,
        timestamp=timestamp,
        cell=decode_cell_identifier(match.group(1)),
    )


def _location_chunks(lines: Sequence[BlockLine]) -> List[List[BlockLine]]:
    chunks: List[List[BlockLine]] = []
    current: Optional[List[BlockLine]] = None
    for line in lines:
        if _LOCATION_MARKER_RE.match(line.text):
            if current is not None:
                chunks.append(current)
            current = [line]
            continue
        if current is None:
            continue
        if line.key in LOCATION_BOUNDARY_KEYS:
            chunks.append(current)
            current = None
            continue
        current.append(line)
    if current is not None:
        chunks.append(current)
    return chunks
