"""
Cross-call correlation for investigative leads.

Four independent analyses run over every unordered pair of finalized calls:
- time overlap (simultaneous calls)
- shared contact numbers
- shared serving cells (LAC-CellID)
- call-forwarding sequences (called party of one call places the next call
  within a short gap)

Results are recomputed from scratch for each call set; nothing is cached.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from typing import Dict, List, Optional, Set, Tuple

from cdcanalyzer.logging_setup import category_context
from cdcanalyzer.services.call_aggregator import Call
from cdcanalyzer.services.timestamps import parse_timestamp, round_half_up, seconds_between

LOGGER = logging.getLogger(__name__)

FORWARDING_MAX_GAP_SECONDS = 30.0

_NON_DIGIT_RE = re.compile(r"\D")


@dataclass
class TimeOverlap:
    call_a: str
    call_b: str
    overlap_seconds: Optional[int]  # None when both calls are still open


@dataclass
class SharedContact:
    call_a: str
    call_b: str
    numbers: List[str] = field(default_factory=list)


@dataclass
class SharedTower:
    call_a: str
    call_b: str
    tower_keys: List[str] = field(default_factory=list)


@dataclass
class ForwardingSequence:
    call_a: str
    call_b: str
    forwarding_number: str
    gap_seconds: int


@dataclass
class CorrelationResult:
    time_overlaps: List[TimeOverlap] = field(default_factory=list)
    shared_contacts: List[SharedContact] = field(default_factory=list)
    shared_towers: List[SharedTower] = field(default_factory=list)
    forwarding_sequences: List[ForwardingSequence] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.time_overlaps or self.shared_contacts or self.shared_towers or self.forwarding_sequences)


def correlate(calls: Dict[str, Call]) -> CorrelationResult:
    result = CorrelationResult()
    if len(calls) < 2:
        return result

    with category_context("CORRELATE"):
        for (key_a, call_a), (key_b, call_b) in combinations(calls.items(), 2):
            overlap = find_time_overlap(key_a, call_a, key_b, call_b)
            if overlap is not None:
                result.time_overlaps.append(overlap)

            shared_numbers = sorted(contact_numbers(call_a) & contact_numbers(call_b))
            if shared_numbers:
                result.shared_contacts.append(SharedContact(call_a=key_a, call_b=key_b, numbers=shared_numbers))

            shared_towers = sorted(tower_keys(call_a) & tower_keys(call_b))
            if shared_towers:
                result.shared_towers.append(SharedTower(call_a=key_a, call_b=key_b, tower_keys=shared_towers))

        result.forwarding_sequences = find_forwarding_sequences(calls)

        LOGGER.info(
            "Correlated calls=%d overlaps=%d shared_contacts=%d shared_towers=%d forwarding=%d",
            len(calls),
            len(result.time_overlaps),
            len(result.shared_contacts),
            len(result.shared_towers),
            len(result.forwarding_sequences),
        )
    return result


def normalize_number(value: Optional[str]) -> str:
    return _NON_DIGIT_RE.sub("", value or "")


def contact_numbers(call: Call) -> Set[str]:
    numbers = {
        normalize_number(call.calling_party.phone_number),
        normalize_number(call.called_party.phone_number),
    }
    numbers.discard("")
    return numbers


def tower_keys(call: Call) -> Set[str]:
    keys: Set[str] = set()
    for location in call.locations:
        if location.cell is not None and location.cell.tower_key:
            keys.add(location.cell.tower_key)
    return keys


def call_interval(call: Call) -> Tuple[Optional[datetime], Optional[datetime]]:
    start = parse_timestamp(call.answer_time or call.start_time)
    end = parse_timestamp(call.end_time)
    return start, end


def find_time_overlap(key_a: str, call_a: Call, key_b: str, call_b: Call) -> Optional[TimeOverlap]:
    start_a, end_a = call_interval(call_a)
    start_b, end_b = call_interval(call_b)
    if start_a is None or start_b is None:
        return None

    latest_start = max(start_a, start_b)
    ends = [end for end in (end_a, end_b) if end is not None]
    if not ends:
        return TimeOverlap(call_a=key_a, call_b=key_b, overlap_seconds=None)

    earliest_end = min(ends)
    if latest_start >= earliest_end:
        return None
    return TimeOverlap(
        call_a=key_a,
        call_b=key_b,
        overlap_seconds=round_half_up(seconds_between(latest_start, earliest_end)),
    )


def find_forwarding_sequences(calls: Dict[str, Call]) -> List[ForwardingSequence]:
    timed: List[Tuple[datetime, str, Call]] = []
    for key, call in calls.items():
        started = parse_timestamp(call.start_time)
        if started is not None:
            timed.append((started, key, call))
    timed.sort(key=lambda item: (item[0], item[1]))

    sequences: List[ForwardingSequence] = []
    for (start_a, key_a, call_a), (start_b, key_b, call_b) in zip(timed, timed[1:]):
        forwarded_to = normalize_number(call_a.called_party.phone_number)
        if not forwarded_to or forwarded_to != normalize_number(call_b.calling_party.phone_number):
            continue
        leg_end = parse_timestamp(call_a.end_time) or start_a
        gap = seconds_between(leg_end, start_b)
        if 0 <= gap <= FORWARDING_MAX_GAP_SECONDS:
            sequences.append(
                ForwardingSequence(
                    call_a=key_a,
                    call_b=key_b,
                    forwarding_number=call_a.called_party.phone_number or forwarded_to,
                    gap_seconds=round_half_up(gap),
                )
            )
    return sequences
