"""
Per-kind parsers turning a classified CDC block into a typed payload.

Every parser is total: a missing sub-section leaves the matching payload
fields empty instead of raising.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from cdcanalyzer.services.classifier import classify_block
from cdcanalyzer.services.field_extractor import (
    BlockLine,
    FieldExtractor,
    find_assignment,
    lines_text,
    section,
    tokenize,
)
from cdcanalyzer.services.hex_payload import decode_possible_hex
from cdcanalyzer.services.location_parser import LocationRecord, parse_location_blocks
from cdcanalyzer.services.registry import MessageKind, TypeRegistry
from cdcanalyzer.services.segmenter import MessageBlock
from cdcanalyzer.services.sip_parser import (
    Codec,
    MediaSection,
    SipMessage,
    extract_phone_number,
    parse_codecs,
    parse_sdp_media,
    parse_sip_content,
    split_signaling_bodies,
)

LOGGER = logging.getLogger(__name__)

_URI_PHONE_RE = re.compile(r"\+(\d+)")
_PHONE_FALLBACK_RES = (
    re.compile(r"(?<![\w-])dn\s*=\s*(\+?\d+)", re.IGNORECASE),
    re.compile(r"(?<![\w-])msisdn\s*=\s*(\+?\d+)", re.IGNORECASE),
    re.compile(r"(?<![\w-])mdn\s*=\s*(\+?\d+)", re.IGNORECASE),
    re.compile(r"sip:(\+\d+)", re.IGNORECASE),
    re.compile(r"tel:(\+\d+)", re.IGNORECASE),
)
_SIP_HEADER_RE = re.compile(r"sipHeader\[\d+\]\s*=\s*(.+)", re.IGNORECASE)
_QUOTED_RE = re.compile(r'"([^"]+)"')
_SDP_VALUE_RE = re.compile(r"(?<![\w-])sdp\s*=\s*(.*)", re.IGNORECASE)
_SDP_LINE_RE = re.compile(r"^[a-zA-Z]=")
_GSM_SMS_RE = re.compile(r"gsm\s+sms|sms-deliver", re.IGNORECASE)
_GSM_DELIVER_FROM_RE = re.compile(r"GSM\s+SMS-DELIVER[^\n]*:\s*([0-9+]+)", re.IGNORECASE)

DEFAULT_SIGNALING_ALIASES = ("sigMsg", "signalingMsg")
DEFAULT_SMS_CONTENT_ALIASES = ("userInput", "smsMessage")


@dataclass
class Party:
    uri: Optional[str] = None
    phone_number: Optional[str] = None
    caller_name: Optional[str] = None
    headers: List[str] = field(default_factory=list)


@dataclass
class SmsEntry:
    timestamp: Optional[str]
    direction: str
    sender: Optional[str] = None
    recipient: Optional[str] = None
    content: Optional[str] = None
    source: str = "cdc"


@dataclass
class AttemptPayload:
    calling: Party = field(default_factory=Party)
    called: Party = field(default_factory=Party)
    sdp: Optional[str] = None
    codecs: List[Codec] = field(default_factory=list)
    locations: List[LocationRecord] = field(default_factory=list)


@dataclass
class SignalReportPayload:
    sip_messages: List[SipMessage] = field(default_factory=list)
    correlation_id: Optional[str] = None
    sms_entries: List[SmsEntry] = field(default_factory=list)


@dataclass
class ContentChannelPayload:
    sdp: Optional[str] = None
    codecs: List[Codec] = field(default_factory=list)
    media: List[MediaSection] = field(default_factory=list)


@dataclass
class AnswerPayload:
    answering: Party = field(default_factory=Party)
    locations: List[LocationRecord] = field(default_factory=list)


@dataclass
class ReleasePayload:
    cause: Optional[str] = None
    locations: List[LocationRecord] = field(default_factory=list)


@dataclass
class SmsPayload:
    sender: Optional[str] = None
    recipient: Optional[str] = None
    content: Optional[str] = None
    direction: str = "Received"


TypedPayload = Union[
    AttemptPayload,
    SignalReportPayload,
    ContentChannelPayload,
    AnswerPayload,
    ReleasePayload,
    SmsPayload,
]


@dataclass
class ParsedMessage:
    block: MessageBlock
    kind: Optional[MessageKind] = None
    timestamp: Optional[str] = None
    case_id: Optional[str] = None
    call_id: Optional[str] = None
    payload: Optional[TypedPayload] = None

    @property
    def raw_block(self) -> str:
        return self.block.text


@dataclass
class _BlockContext:
    lines: List[BlockLine]
    text: str
    extractor: FieldExtractor
    timestamp: Optional[str]


def parse_block(block: MessageBlock, registry: TypeRegistry, extractor: FieldExtractor) -> ParsedMessage:
    lines = tokenize(block.text)
    message = ParsedMessage(
        block=block,
        kind=classify_block(block, registry),
        timestamp=extractor.field(lines, "timestamp"),
        case_id=extractor.field(lines, "caseId"),
        call_id=extractor.call_id(lines),
    )
    if message.kind is None:
        return message

    ctx = _BlockContext(lines=lines, text=message.raw_block, extractor=extractor, timestamp=message.timestamp)
    message.payload = _PARSERS[message.kind](ctx)

    if isinstance(message.payload, SignalReportPayload):
        detect_sms_over_sip(message.raw_block, message.payload, message.timestamp)
        if not message.call_id and message.payload.sip_messages:
            first = message.payload.sip_messages[0]
            message.call_id = first.header("Call-ID") or first.header("i")
    return message


def parse_attempt(ctx: _BlockContext) -> AttemptPayload:
    payload = AttemptPayload()
    calling = section(ctx.lines, "calling", ("called",))
    if calling is not None:
        payload.calling = _parse_party(calling)
    called = section(ctx.lines, "called", ("associatemedia", "location"))
    if called is not None:
        payload.called = _parse_party(called)
    payload.sdp = _sdp_value(ctx.lines, stop_keys=(), stop_on_blank=True, sdp_lines_only=True)
    if payload.sdp:
        payload.codecs = parse_codecs(payload.sdp)
    payload.locations = parse_location_blocks(ctx.lines, ctx.timestamp)
    return payload


def parse_signal_report(ctx: _BlockContext) -> SignalReportPayload:
    payload = SignalReportPayload(correlation_id=ctx.extractor.field(ctx.lines, "correlationID"))
    markers = ctx.extractor.aliases.aliases_for("signalingMsg", DEFAULT_SIGNALING_ALIASES)
    for _offset, body in split_signaling_bodies(ctx.text, markers):
        content = decode_possible_hex(body)
        if not content:
            continue
        sip = parse_sip_content(content)
        sip.timestamp = ctx.timestamp
        payload.sip_messages.append(sip)
    LOGGER.debug("Parsed signaling report sip_messages=%d", len(payload.sip_messages), extra={"category": "SIP"})
    return payload


def parse_content_channel(ctx: _BlockContext) -> ContentChannelPayload:
    payload = ContentChannelPayload()
    payload.sdp = _sdp_value(
        ctx.lines,
        stop_keys=("associatemedia", "deliveryidentifier"),
        stop_on_blank=False,
        sdp_lines_only=False,
    )
    if payload.sdp:
        payload.codecs = parse_codecs(payload.sdp)
        payload.media = parse_sdp_media(payload.sdp)
    return payload


def parse_answer(ctx: _BlockContext) -> AnswerPayload:
    payload = AnswerPayload()
    answering = section(ctx.lines, "answering", ("location",))
    if answering is not None:
        payload.answering = _parse_party(answering)
    payload.locations = parse_location_blocks(ctx.lines, ctx.timestamp)
    return payload


def parse_release(ctx: _BlockContext) -> ReleasePayload:
    payload = ReleasePayload()
    cause = section(ctx.lines, "cause", ("contactaddresses", "location"))
    if cause is not None:
        payload.cause = find_assignment(cause, "signalingType")
    payload.locations = parse_location_blocks(ctx.lines, ctx.timestamp)
    return payload


def parse_sms(ctx: _BlockContext) -> SmsPayload:
    return SmsPayload(
        sender=ctx.extractor.field(ctx.lines, "originator"),
        recipient=ctx.extractor.field(ctx.lines, "recipient"),
        content=ctx.extractor.field(ctx.lines, "smsContent", DEFAULT_SMS_CONTENT_ALIASES),
        direction="Sent" if "originating" in ctx.text else "Received",
    )


_PARSERS: Dict[MessageKind, Callable[[_BlockContext], TypedPayload]] = {
    MessageKind.TERM_ATTEMPT: parse_attempt,
    MessageKind.ORIG_ATTEMPT: parse_attempt,
    MessageKind.DIRECT_SIGNAL_REPORTING: parse_signal_report,
    MessageKind.SUBJECT_SIGNAL: parse_signal_report,
    MessageKind.CC_OPEN: parse_content_channel,
    MessageKind.CC_CLOSE: parse_content_channel,
    MessageKind.ANSWER: parse_answer,
    MessageKind.RELEASE: parse_release,
    MessageKind.SMS_MESSAGE: parse_sms,
    MessageKind.MMS_MESSAGE: parse_sms,
}


def is_sms_sip_message(sip: SipMessage, raw_block: str) -> bool:
    if (sip.method or "").upper() == "MESSAGE":
        return True
    content_type = sip.header("Content-Type")
    if content_type and re.search(r"3gpp\.sms", content_type, re.IGNORECASE):
        return True
    accept_contact = sip.header("Accept-Contact")
    if accept_contact and "smsip" in accept_contact.lower():
        return True
    return bool(_GSM_SMS_RE.search(raw_block or ""))


def build_sms_entry_from_sip(sip: SipMessage, raw_block: str, timestamp: Optional[str]) -> SmsEntry:
    sender = extract_phone_number(sip.header("From")) or extract_phone_number(sip.header("P-Asserted-Identity"))
    recipient = extract_phone_number(sip.header("To")) or extract_phone_number(sip.header("P-Called-Party-ID"))

    if sip.header("P-Called-Party-ID"):
        direction = "Received"
    elif sip.header("P-Asserted-Identity"):
        direction = "Sent"
    else:
        direction = "SMS"

    content_type = (sip.header("Content-Type") or "").lower()
    deliver = _GSM_DELIVER_FROM_RE.search(raw_block or "")
    if sip.body and content_type.startswith("text/plain"):
        content = sip.body
    elif deliver:
        content = f"GSM SMS-DELIVER from {deliver.group(1)}"
    else:
        content = "SIP MESSAGE (SMS)"

    return SmsEntry(
        timestamp=timestamp,
        direction=direction,
        sender=sender or "Unknown",
        recipient=recipient or "Unknown",
        content=content,
        source="sip",
    )


def detect_sms_over_sip(raw_block: str, payload: SignalReportPayload, timestamp: Optional[str]) -> None:
    for sip in payload.sip_messages:
        if not is_sms_sip_message(sip, raw_block):
            continue
        sip.is_sms = True
        payload.sms_entries.append(build_sms_entry_from_sip(sip, raw_block, timestamp))
    if payload.sms_entries:
        LOGGER.debug("SMS-over-SIP detected entries=%d", len(payload.sms_entries), extra={"category": "SIP"})


def _parse_party(lines: Sequence[BlockLine]) -> Party:
    party = Party(uri=find_assignment(lines, "uri[0]"))
    party.phone_number = _phone_from_uri(party.uri) or _phone_fallback(lines_text(lines))
    for line in lines:
        match = _SIP_HEADER_RE.search(line.text)
        if not match:
            continue
        header = match.group(1).strip()
        party.headers.append(header)
        if party.caller_name is None:
            quoted = _QUOTED_RE.search(header)
            if quoted:
                party.caller_name = quoted.group(1)
    return party


def _phone_from_uri(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return None
    match = _URI_PHONE_RE.search(uri)
    return "+" + match.group(1) if match else None


def _phone_fallback(text: str) -> Optional[str]:
    for pattern in _PHONE_FALLBACK_RES:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def _sdp_value(
    lines: Sequence[BlockLine],
    stop_keys: Iterable[str],
    stop_on_blank: bool,
    sdp_lines_only: bool,
) -> Optional[str]:
    stops = {key.lower() for key in stop_keys}
    for idx, line in enumerate(lines):
        match = _SDP_VALUE_RE.search(line.text)
        if not match:
            continue
        parts = [match.group(1).strip()]
        for follower in lines[idx + 1 :]:
            if follower.is_blank:
                if stop_on_blank:
                    break
                continue
            if follower.key in stops:
                break
            if sdp_lines_only and not _SDP_LINE_RE.match(follower.text):
                break
            parts.append(follower.text)
        sdp = "\n".join(part for part in parts if part).strip()
        return sdp or None
    return None
