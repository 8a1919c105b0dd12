from pathlib import Path

import pytest

from cdcanalyzer.services.call_aggregator import GLOBAL_EVENTS_KEY
from cdcanalyzer.services.cdc_parser import parse_cdc, parse_cdc_file
from cdcanalyzer.services.registry import MessageKind

SAMPLE_LOG = """termAttempt
T1.678 Version 4
   laesMessage
      termAttempt
         caseId = CASE-2025-001
         timestamp = 20250604035420.132Z
         callId
            main = 003A1486D04F061E
         calling
            uri[0] = sip:+16313841232@msg.pc.t-mobile.com
            sipHeader[2] = P-Asserted-Identity: "JOHN DOE" <sip:+16313841232;verstat=TN-Validation-Passed@msg.pc.t-mobile.com>
         called
            uri[0] = tel:+16313754560;rn=+16315996100

directSignalReporting
T1.678 Version 4
    laesMessage
        directSignalReporting
            timestamp = 20250604035421.500Z
            callId = 003A1486D04F061E
            sigMsg =
INVITE sip:+16313754560@msg.pc.t-mobile.com SIP/2.0
User-Agent: APPLE---iPhone15---17.5.1
P-Access-Network-Info: 3GPP-UTRAN-FDD;utran-cell-id-3gpp=311480550414df40c

directSignalReporting
T1.678 Version 4
    laesMessage
        directSignalReporting
            timestamp = 20250604035422.200Z
            callId = 003A1486D04F061E
            sigMsg =
SIP/2.0 180 Ringing

smsMessage
T1.678 Version 4
    laesMessage
        smsMessage
            caseId = CASE-2025-001
            timestamp = 20250604041000.000Z
            originator = +16313841232
            recipient = +16313754560
            userInput = See you there at 5pm.
            originating"""

CALL_KEY = "003a1486d04f061e"


def test_sample_log_messages_and_kinds() -> None:
    result = parse_cdc(SAMPLE_LOG)
    assert [m.kind for m in result.messages] == [
        MessageKind.TERM_ATTEMPT,
        MessageKind.DIRECT_SIGNAL_REPORTING,
        MessageKind.DIRECT_SIGNAL_REPORTING,
        MessageKind.SMS_MESSAGE,
    ]
    assert result.unclassified_count == 0
    assert result.has_records
    assert result.run_id != "-"


def test_sample_log_builds_one_call() -> None:
    result = parse_cdc(SAMPLE_LOG)
    records = result.call_records()
    assert list(records) == [CALL_KEY]

    call = records[CALL_KEY]
    assert call.case_id == "CASE-2025-001"
    assert call.call_direction == "Incoming"
    assert call.caller_name == "JOHN DOE"
    assert call.calling_party.phone_number == "+16313841232"
    assert call.called_party.phone_number == "+16313754560"
    assert call.call_type == "Voice Call"
    assert call.call_status == "Initiated"
    assert call.duration is None
    assert call.device_info.manufacturer == "Apple"
    assert call.device_info.model == "iPhone15"
    assert call.device_info.os_version == "17.5.1"

    assert [sip.method for sip in call.signaling_messages] == ["INVITE", None]
    assert call.signaling_messages[1].status_code == 180
    assert len(call.locations) == 1
    location = call.locations[0]
    assert location.source_type == "P-A-N-I-Header"
    assert location.cell is not None
    assert location.cell.mcc == "311"
    assert location.cell.mnc == "480"
    assert result.preferred_call_id == CALL_KEY


def test_sample_sms_without_call_id_goes_to_global_events() -> None:
    result = parse_cdc(SAMPLE_LOG)
    bucket = result.calls[GLOBAL_EVENTS_KEY]
    assert bucket.call_type == "SMS/MMS"
    assert len(bucket.sms_entries) == 1
    sms = bucket.sms_entries[0]
    assert sms.sender == "+16313841232"
    assert sms.recipient == "+16313754560"
    assert sms.content == "See you there at 5pm."
    assert sms.direction == "Sent"
    assert result.calls[CALL_KEY].sms_entries == []


def test_sms_with_call_id_turns_call_into_sms() -> None:
    log = SAMPLE_LOG.replace(
        "            originator = +16313841232",
        "            callId = 003A1486D04F061E\n            originator = +16313841232",
    )
    result = parse_cdc(log)
    assert GLOBAL_EVENTS_KEY not in result.calls
    call = result.calls[CALL_KEY]
    assert call.call_type == "SMS/MMS"
    assert len(call.sms_entries) == 1
    assert call.caller_name == "JOHN DOE"
    assert len(call.messages) == 4


def test_parse_is_deterministic() -> None:
    first = parse_cdc(SAMPLE_LOG)
    second = parse_cdc(SAMPLE_LOG)
    assert list(first.calls) == list(second.calls)
    assert first.calls == second.calls


def test_unrecognized_text_has_no_records() -> None:
    result = parse_cdc("hello world\nnothing = here\n")
    assert not result.has_records
    assert result.unclassified_count == 1
    assert len(result.calls) == 1


def test_parse_cdc_file(tmp_path: Path) -> None:
    log_file = tmp_path / "sample.txt"
    log_file.write_text(SAMPLE_LOG, encoding="utf-8")
    result = parse_cdc_file(log_file)
    assert CALL_KEY in result.calls

    with pytest.raises(ValueError):
        parse_cdc_file(tmp_path / "missing.txt")
