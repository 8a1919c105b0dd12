"""
Groups parsed CDC messages into per-call timelines.

Calls are keyed by the trimmed, lower-cased call identifier. Lower-casing can
merge two identifiers from different carrier dialects that differ only by
case; that is current behavior and is pinned by tests. Messages without any
call identifier land in the ``GLOBAL_EVENTS_KEY`` bucket.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from cdcanalyzer.services.cell_id import normalize_full_cell_id
from cdcanalyzer.services.location_parser import LocationRecord, pani_location
from cdcanalyzer.services.message_parsers import (
    AnswerPayload,
    AttemptPayload,
    ContentChannelPayload,
    ParsedMessage,
    Party,
    ReleasePayload,
    SignalReportPayload,
    SmsEntry,
    SmsPayload,
)
from cdcanalyzer.services.registry import MessageKind
from cdcanalyzer.services.sip_parser import Codec, SipMessage
from cdcanalyzer.services.timestamps import parse_timestamp, round_half_up, seconds_between

LOGGER = logging.getLogger(__name__)

GLOBAL_EVENTS_KEY = "Global-Events"

CALL_TYPE_VOICE = "Voice Call"
CALL_TYPE_SMS = "SMS/MMS"

_APPLE_UA_RE = re.compile(r"APPLE---([^-]+)---(.+)")
_QUOTED_RE = re.compile(r'"([^"]+)"')
_VERSTAT_RE = re.compile(r"verstat=([^;>\s]+)", re.IGNORECASE)

PREFERRED_CALL_WEIGHTS = {
    "start_time": 3,
    "calling_number": 4,
    "caller_name": 1,
    "answered": 1,
    "answer_time": 2,
    "end_time": 1,
}


@dataclass
class DeviceInfo:
    user_agent: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    os_version: Optional[str] = None


@dataclass
class Call:
    call_id: str
    case_id: Optional[str] = None
    calling_party: Party = field(default_factory=Party)
    called_party: Party = field(default_factory=Party)
    caller_name: Optional[str] = None
    call_direction: Optional[str] = None
    start_time: Optional[str] = None
    answer_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[int] = None
    call_type: str = CALL_TYPE_VOICE
    call_status: Optional[str] = None
    release_reason: Optional[str] = None
    verification_status: Optional[str] = None
    device_info: DeviceInfo = field(default_factory=DeviceInfo)
    codecs: List[Codec] = field(default_factory=list)
    locations: List[LocationRecord] = field(default_factory=list)
    sip_messages: List[SipMessage] = field(default_factory=list)
    sms_entries: List[SmsEntry] = field(default_factory=list)
    messages: List[ParsedMessage] = field(default_factory=list)

    @property
    def signaling_messages(self) -> List[SipMessage]:
        """SIP log without the messages reclassified as SMS-over-SIP."""
        return [sip for sip in self.sip_messages if not sip.is_sms]

    def add_location(self, location: LocationRecord) -> bool:
        if location.cell is not None:
            key = normalize_full_cell_id(location.cell.raw)
            for existing in self.locations:
                if existing.cell is not None and normalize_full_cell_id(existing.cell.raw) == key:
                    return False
        self.locations.append(location)
        return True


def normalize_call_key(call_id: Optional[str]) -> str:
    key = (call_id or "").strip().lower()
    return key or GLOBAL_EVENTS_KEY


def aggregate_calls(messages: Iterable[ParsedMessage]) -> Dict[str, Call]:
    calls: Dict[str, Call] = {}
    for message in messages:
        key = normalize_call_key(message.call_id)
        call = calls.get(key)
        if call is None:
            call = Call(call_id=key)
            calls[key] = call
        call.messages.append(message)
        merge_message(call, message)

    for call in calls.values():
        finalize_call(call)

    LOGGER.info(
        "Aggregated messages into calls=%d global_bucket=%s",
        len(calls),
        GLOBAL_EVENTS_KEY in calls,
        extra={"category": "AGGREGATE"},
    )
    return calls


def merge_message(call: Call, message: ParsedMessage) -> None:
    if message.case_id:
        call.case_id = message.case_id

    payload = message.payload
    if isinstance(payload, AttemptPayload):
        _merge_attempt(call, message, payload)
    elif isinstance(payload, SignalReportPayload):
        _merge_signal_report(call, message, payload)
    elif isinstance(payload, ContentChannelPayload):
        if payload.codecs and not call.codecs:
            call.codecs = list(payload.codecs)
    elif isinstance(payload, AnswerPayload):
        call.answer_time = message.timestamp
        call.call_status = "Answered"
        _add_locations(call, payload.locations)
    elif isinstance(payload, ReleasePayload):
        call.end_time = message.timestamp
        call.release_reason = payload.cause
        _add_locations(call, payload.locations)
    elif isinstance(payload, SmsPayload):
        call.call_type = CALL_TYPE_SMS
        call.sms_entries.append(
            SmsEntry(
                timestamp=message.timestamp,
                direction=payload.direction,
                sender=payload.sender,
                recipient=payload.recipient,
                content=payload.content,
            )
        )


def _merge_attempt(call: Call, message: ParsedMessage, payload: AttemptPayload) -> None:
    call.call_direction = "Outgoing" if message.kind == MessageKind.ORIG_ATTEMPT else "Incoming"
    call.start_time = message.timestamp
    call.calling_party = payload.calling
    call.called_party = payload.called
    if payload.calling.caller_name:
        call.caller_name = payload.calling.caller_name
    if payload.codecs:
        call.codecs = list(payload.codecs)
    _add_locations(call, payload.locations)


def _merge_signal_report(call: Call, message: ParsedMessage, payload: SignalReportPayload) -> None:
    for sip in payload.sip_messages:
        call.sip_messages.append(sip)

        pai = sip.header("P-Asserted-Identity")
        if pai and not call.caller_name:
            name = _QUOTED_RE.search(pai)
            if name:
                call.caller_name = name.group(1)

        user_agent = sip.header("User-Agent")
        if user_agent:
            _apply_user_agent(call.device_info, user_agent)

        pani = sip.header("P-Access-Network-Info")
        if pani:
            location = pani_location(pani, message.timestamp)
            if location is not None:
                call.add_location(location)

        verstat = _verification_status(sip)
        if verstat:
            call.verification_status = verstat

    if payload.sms_entries:
        call.call_type = CALL_TYPE_SMS
        call.sms_entries.extend(payload.sms_entries)


def _apply_user_agent(device: DeviceInfo, user_agent: str) -> None:
    device.user_agent = user_agent
    match = _APPLE_UA_RE.search(user_agent)
    if match:
        device.manufacturer = "Apple"
        device.model = match.group(1)
        device.os_version = match.group(2).strip()


def _verification_status(sip: SipMessage) -> Optional[str]:
    for name in sip.headers:
        if "reputation" in name.lower():
            match = _VERSTAT_RE.search(sip.header(name) or "")
            if match:
                return match.group(1)
    match = _VERSTAT_RE.search(sip.header("P-Asserted-Identity") or "")
    return match.group(1) if match else None


def _add_locations(call: Call, locations: Iterable[LocationRecord]) -> None:
    for location in locations:
        call.add_location(location)


def finalize_call(call: Call) -> None:
    answered = parse_timestamp(call.answer_time)
    ended = parse_timestamp(call.end_time)
    if answered is not None and ended is not None:
        call.duration = round_half_up(seconds_between(answered, ended))

    def sort_key(message: ParsedMessage) -> float:
        parsed = parse_timestamp(message.timestamp)
        return parsed.timestamp() if parsed is not None else float("-inf")

    call.messages.sort(key=sort_key)

    if not call.call_status:
        if call.end_time:
            call.call_status = "Ended"
        elif call.start_time:
            call.call_status = "Initiated"


def score_call(call: Call) -> int:
    weights = PREFERRED_CALL_WEIGHTS
    score = 0
    if call.start_time:
        score += weights["start_time"]
    if call.calling_party.phone_number:
        score += weights["calling_number"]
    if call.caller_name:
        score += weights["caller_name"]
    if call.call_status == "Answered":
        score += weights["answered"]
    if call.answer_time:
        score += weights["answer_time"]
    if call.end_time:
        score += weights["end_time"]
    return score


def select_preferred_call(calls: Dict[str, Call]) -> Optional[str]:
    best_key: Optional[str] = None
    best_score = -1
    for key, call in calls.items():
        score = score_call(call)
        if score > best_score:
            best_key, best_score = key, score
    return best_key
