from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

LOGGER = logging.getLogger(__name__)

_STATUS_LINE_RE = re.compile(r"^SIP/2\.0\s+(\d{3})\s*(.*)$")
_METHOD_RE = re.compile(r"^([A-Za-z]+)\b")
_HEADER_RE = re.compile(r"^([^:\s][^:]*):\s*(.+)$")
_RTPMAP_RE = re.compile(r"a=rtpmap:(\d+)\s+([^\s/]+)(?:/(\d+))?")
_PHONE_PLUS_RE = re.compile(r"\+(\d+)")
_PHONE_URI_RE = re.compile(r"(?:sip|tel):(\d{5,})", re.IGNORECASE)

HeaderValue = Union[str, List[str]]


@dataclass
class Codec:
    payload_type: str
    name: str
    clock_rate: Optional[int] = None


@dataclass
class MediaSection:
    media_type: str
    port: int
    protocol: str
    payload_types: List[str] = field(default_factory=list)
    connection_ip: Optional[str] = None


@dataclass
class SipMessage:
    is_request: bool = False
    is_response: bool = False
    method: Optional[str] = None
    status_code: Optional[int] = None
    status_text: Optional[str] = None
    headers: Dict[str, HeaderValue] = field(default_factory=dict)
    body: str = ""
    content: str = ""
    timestamp: Optional[str] = None
    is_sms: bool = False

    def header(self, name: str) -> Optional[str]:
        return header_value(self.headers, name)


def parse_sip_content(content: str) -> SipMessage:
    """
    Parse a logged SIP message. Only the structure needed to classify and
    cross-reference intercept events is recovered: start line, headers (until
    the first blank line) and the raw body.
    """
    msg = SipMessage(content=content or "")
    lines = (content or "").replace("\r\n", "\n").split("\n")

    idx = 0
    while idx < len(lines) and not lines[idx].strip():
        idx += 1
    if idx >= len(lines):
        return msg

    _parse_start_line(msg, lines[idx].strip())

    body_start = len(lines)
    for pos in range(idx + 1, len(lines)):
        line = lines[pos].strip()
        if not line:
            body_start = pos + 1
            break
        match = _HEADER_RE.match(line)
        if not match:
            continue
        _add_header(msg.headers, match.group(1).strip(), match.group(2).strip())
    msg.body = "\n".join(lines[body_start:]).strip()
    return msg


def _parse_start_line(msg: SipMessage, start_line: str) -> None:
    # Request: "INVITE sip:... SIP/2.0"
    # Response: "SIP/2.0 180 Ringing"
    if start_line.startswith("SIP/2.0"):
        msg.is_response = True
        match = _STATUS_LINE_RE.match(start_line)
        if match:
            msg.status_code = int(match.group(1))
            msg.status_text = match.group(2).strip() or None
        return

    msg.is_request = True
    match = _METHOD_RE.match(start_line)
    if match:
        msg.method = match.group(1).upper()


def _add_header(headers: Dict[str, HeaderValue], name: str, value: str) -> None:
    existing = headers.get(name)
    if existing is None:
        headers[name] = value
    elif isinstance(existing, list):
        existing.append(value)
    else:
        headers[name] = [existing, value]


def header_value(headers: Dict[str, HeaderValue], name: str) -> Optional[str]:
    """First value of a header, matched case-insensitively."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value[0] if isinstance(value, list) else value
    return None


def extract_phone_number(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    match = _PHONE_PLUS_RE.search(value)
    if match:
        return "+" + match.group(1)
    match = _PHONE_URI_RE.search(value)
    if match:
        return match.group(1)
    return None


def parse_codecs(sdp: Optional[str]) -> List[Codec]:
    codecs: List[Codec] = []
    for match in _RTPMAP_RE.finditer(sdp or ""):
        rate = int(match.group(3)) if match.group(3) else None
        codecs.append(Codec(payload_type=match.group(1), name=match.group(2), clock_rate=rate))
    return codecs


def parse_sdp_media(sdp: Optional[str]) -> List[MediaSection]:
    media_sections: List[MediaSection] = []
    current: Optional[MediaSection] = None
    session_connection_ip: Optional[str] = None

    lines = [line.strip() for line in (sdp or "").replace("\r", "").split("\n") if line.strip()]
    for line in lines:
        if line.startswith("c=IN IP4") or line.startswith("c=IN IP6"):
            parts = line.split()
            if len(parts) >= 3:
                if current is None:
                    session_connection_ip = parts[2]
                else:
                    current.connection_ip = parts[2]
            continue

        if line.startswith("m="):
            if current:
                media_sections.append(current)
                current = None
            parts = line[2:].split()
            if len(parts) < 3:
                continue
            try:
                port = int(parts[1].split("/", 1)[0])
            except ValueError:
                LOGGER.debug("Ignoring SDP media line with bad port line=%s", line, extra={"category": "SDP"})
                continue
            current = MediaSection(
                media_type=parts[0],
                port=port,
                protocol=parts[2],
                payload_types=parts[3:],
                connection_ip=session_connection_ip,
            )

    if current:
        media_sections.append(current)
    return media_sections


def split_signaling_bodies(text: str, marker_names: Sequence[str] = ("sigMsg", "signalingMsg")) -> List[Tuple[int, str]]:
    """
    Locate ``sigMsg =`` / ``signalingMsg[n] =`` style bodies in a block. Each
    body runs to a ``[bin]`` marker, the next signaling marker, or the end of the
    block. Returns (offset, body) pairs in block order.
    """
    names = "|".join(re.escape(name) for name in marker_names if name)
    if not names:
        return []
    marker_re = re.compile(rf"(?<![\w-])(?:{names})(?:\[\d+\])?\s*=[ \t]*", re.IGNORECASE)
    markers = list(marker_re.finditer(text or ""))
    out: List[Tuple[int, str]] = []
    for pos, match in enumerate(markers):
        end = markers[pos + 1].start() if pos + 1 < len(markers) else len(text)
        body = text[match.end() : end]
        bin_pos = body.find("[bin]")
        if bin_pos >= 0:
            body = body[:bin_pos]
        out.append((match.start(), body))
    return out
