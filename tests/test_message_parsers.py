from cdcanalyzer.config_loader import load_tables
from cdcanalyzer.services.call_aggregator import aggregate_calls
from cdcanalyzer.services.field_extractor import FieldExtractor
from cdcanalyzer.services.message_parsers import (
    AnswerPayload,
    AttemptPayload,
    ContentChannelPayload,
    ParsedMessage,
    ReleasePayload,
    SignalReportPayload,
    SmsPayload,
    parse_block,
)
from cdcanalyzer.services.registry import MessageKind
from cdcanalyzer.services.segmenter import MessageBlock

REGISTRY, ALIASES = load_tables()
EXTRACTOR = FieldExtractor(ALIASES)


def _parse(text: str) -> ParsedMessage:
    block = MessageBlock(index=0, text=text, start_line=1, end_line=text.count("\n") + 1)
    return parse_block(block, REGISTRY, EXTRACTOR)


def test_parse_orig_attempt_parties_and_sdp() -> None:
    message = _parse(
        """origAttempt
   origAttempt
      caseId = CASE-7
      timestamp = 20250604035420.132Z
      callId = ORIG-1
      calling
         uri[0] = sip:+15551230000@ims.example.com
         sipHeader[0] = P-Asserted-Identity: "ALICE" <sip:+15551230000@ims.example.com>
      called
         uri[0] = tel:+15559870000
      associateMedia
         sdp = v=0
         m=audio 4000 RTP/AVP 0
         a=rtpmap:0 PCMU/8000
"""
    )
    assert message.kind == MessageKind.ORIG_ATTEMPT
    assert message.case_id == "CASE-7"
    assert message.call_id == "ORIG-1"
    assert message.timestamp == "20250604035420.132Z"
    payload = message.payload
    assert isinstance(payload, AttemptPayload)
    assert payload.calling.phone_number == "+15551230000"
    assert payload.calling.caller_name == "ALICE"
    assert payload.called.phone_number == "+15559870000"
    assert payload.sdp is not None and payload.sdp.startswith("v=0")
    assert [c.name for c in payload.codecs] == ["PCMU"]


def test_parse_attempt_phone_fallback_without_uri() -> None:
    message = _parse(
        """termAttempt
      callId = T-1
      calling
         msisdn = 15551230000
      called
         dn = +15559870000
"""
    )
    payload = message.payload
    assert isinstance(payload, AttemptPayload)
    assert payload.calling.phone_number == "15551230000"
    assert payload.called.phone_number == "+15559870000"


def test_parse_signal_report_hex_body_and_call_id_from_sip() -> None:
    sip_text = (
        "INVITE sip:+15559870000@ims.example.com SIP/2.0\r\n"
        "Call-ID: Hex-Call-1\r\n"
        "User-Agent: APPLE---iPhone14---16.0\r\n"
    )
    message = _parse(
        "directSignalReporting\n"
        "   directSignalReporting\n"
        "      timestamp = 20250604035421.500Z\n"
        "      correlationID = CORR-1\n"
        "      sigMsg = " + sip_text.encode("utf-8").hex() + "\n"
    )
    assert message.kind == MessageKind.DIRECT_SIGNAL_REPORTING
    payload = message.payload
    assert isinstance(payload, SignalReportPayload)
    assert payload.correlation_id == "CORR-1"
    assert len(payload.sip_messages) == 1
    sip = payload.sip_messages[0]
    assert sip.method == "INVITE"
    assert sip.timestamp == "20250604035421.500Z"
    assert message.call_id == "Hex-Call-1"
    assert payload.sms_entries == []


SMS_OVER_SIP = """directSignalReporting
   directSignalReporting
      timestamp = 20250604041000.000Z
      callId = SMS-CALL
      sigMsg =
MESSAGE sip:+15559870000@ims.example.com SIP/2.0
From: <sip:+15551230000@ims.example.com>
To: <sip:+15559870000@ims.example.com>
P-Called-Party-ID: <sip:+15559870000@ims.example.com>
Content-Type: text/plain

Meet at noon
"""


def test_sms_over_sip_message_becomes_sms_entry() -> None:
    message = _parse(SMS_OVER_SIP)
    payload = message.payload
    assert isinstance(payload, SignalReportPayload)
    assert len(payload.sip_messages) == 1
    assert payload.sip_messages[0].is_sms
    assert len(payload.sms_entries) == 1
    entry = payload.sms_entries[0]
    assert entry.direction == "Received"
    assert entry.sender == "+15551230000"
    assert entry.recipient == "+15559870000"
    assert entry.content == "Meet at noon"
    assert entry.source == "sip"


def test_sms_over_sip_hidden_from_signaling_view() -> None:
    calls = aggregate_calls([_parse(SMS_OVER_SIP)])
    call = calls["sms-call"]
    assert call.call_type == "SMS/MMS"
    assert len(call.sip_messages) == 1
    assert call.signaling_messages == []
    assert len(call.sms_entries) == 1


def test_sms_over_sip_sent_direction_from_asserted_identity() -> None:
    text = SMS_OVER_SIP.replace(
        "P-Called-Party-ID: <sip:+15559870000@ims.example.com>",
        'P-Asserted-Identity: "BOB" <sip:+15551230000@ims.example.com>',
    ).replace("Content-Type: text/plain", "Content-Type: application/vnd.3gpp.sms")
    payload = _parse(text).payload
    assert isinstance(payload, SignalReportPayload)
    entry = payload.sms_entries[0]
    assert entry.direction == "Sent"
    assert entry.content == "SIP MESSAGE (SMS)"


def _invite_report(extra_fields: str = "", extra_headers: str = "") -> str:
    return (
        "directSignalReporting\n"
        "   directSignalReporting\n"
        "      timestamp = 20250604041500.000Z\n"
        "      callId = SMS-INVITE\n"
        + extra_fields
        + "      sigMsg =\n"
        "INVITE sip:+15559870000@ims.example.com SIP/2.0\n"
        "From: <sip:+15551230000@ims.example.com>\n"
        "To: <sip:+15559870000@ims.example.com>\n"
        + extra_headers
        + "\n"
    )


def test_sms_over_sip_from_accept_contact_feature_tag() -> None:
    payload = _parse(_invite_report(extra_headers="Accept-Contact: *;+g.3gpp.smsip\n")).payload
    assert isinstance(payload, SignalReportPayload)
    assert payload.sip_messages[0].is_sms
    entry = payload.sms_entries[0]
    assert entry.direction == "SMS"
    assert entry.sender == "+15551230000"
    assert entry.recipient == "+15559870000"
    assert entry.content == "SIP MESSAGE (SMS)"


def test_plain_invite_is_not_sms() -> None:
    payload = _parse(_invite_report()).payload
    assert isinstance(payload, SignalReportPayload)
    assert not payload.sip_messages[0].is_sms
    assert payload.sms_entries == []


def test_sms_over_sip_from_gsm_deliver_in_block() -> None:
    message = _parse(_invite_report(extra_fields="      description = GSM SMS-DELIVER from: +15557770000\n"))
    payload = message.payload
    assert isinstance(payload, SignalReportPayload)
    assert len(payload.sms_entries) == 1
    entry = payload.sms_entries[0]
    assert entry.content == "GSM SMS-DELIVER from +15557770000"
    assert entry.sender == "+15551230000"
    assert entry.timestamp == "20250604041500.000Z"


def test_sms_over_sip_from_lowercase_sms_deliver_marker() -> None:
    payload = _parse(_invite_report(extra_fields="      tpduType = sms-deliver\n")).payload
    assert isinstance(payload, SignalReportPayload)
    assert len(payload.sms_entries) == 1
    assert payload.sms_entries[0].content == "SIP MESSAGE (SMS)"


def test_parse_answer_party_and_location() -> None:
    message = _parse(
        """answer
   answer
      timestamp = 20250604035425.000Z
      callId = A-1
      answering
         uri[0] = sip:+15559870000@ims.example.com
      location[0]
         locationType = utran
         locationData = utran-cell-id-3gpp=311480550414df40c
"""
    )
    assert message.kind == MessageKind.ANSWER
    payload = message.payload
    assert isinstance(payload, AnswerPayload)
    assert payload.answering.phone_number == "+15559870000"
    assert len(payload.locations) == 1
    assert payload.locations[0].timestamp is None


def test_parse_release_cause() -> None:
    message = _parse(
        """release
   release
      timestamp = 20250604040000.000Z
      callId = R-1
      cause
         signalingType = BYE
      contactAddresses
         uri[0] = sip:+15559870000@ims.example.com
"""
    )
    assert message.kind == MessageKind.RELEASE
    payload = message.payload
    assert isinstance(payload, ReleasePayload)
    assert payload.cause == "BYE"
    assert payload.locations == []


def test_parse_content_channel_sdp() -> None:
    message = _parse(
        """ccOpen
   ccOpen
      callId = CC-1
      sdp = v=0
      c=IN IP4 10.1.1.1
      m=audio 5000 RTP/AVP 8
      a=rtpmap:8 PCMA/8000
      deliveryIdentifier = 1
"""
    )
    assert message.kind == MessageKind.CC_OPEN
    payload = message.payload
    assert isinstance(payload, ContentChannelPayload)
    assert payload.sdp is not None
    assert "deliveryIdentifier" not in payload.sdp
    assert [(c.name, c.clock_rate) for c in payload.codecs] == [("PCMA", 8000)]
    assert payload.media[0].port == 5000
    assert payload.media[0].connection_ip == "10.1.1.1"


def test_parse_sms_direction() -> None:
    received = _parse(
        """smsMessage
   smsMessage
      originator = +15551230000
      recipient = +15559870000
      smsMessage = Hello there
"""
    )
    assert received.kind == MessageKind.SMS_MESSAGE
    payload = received.payload
    assert isinstance(payload, SmsPayload)
    assert payload.direction == "Received"
    assert payload.content == "Hello there"
    assert payload.sender == "+15551230000"

    sent = _parse(
        """smsMessage
      userInput = On my way
      originating
"""
    )
    assert isinstance(sent.payload, SmsPayload)
    assert sent.payload.direction == "Sent"
    assert sent.payload.content == "On my way"


def test_unclassified_block_keeps_raw_text() -> None:
    message = _parse("heartbeat\n   seq = 12\n")
    assert message.kind is None
    assert message.payload is None
    assert message.raw_block == "heartbeat\n   seq = 12\n"
