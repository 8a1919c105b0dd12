from cdcanalyzer.constants import get_carrier, get_sip_status
from cdcanalyzer.formatting import format_duration, format_phone_number, format_timestamp
from cdcanalyzer.services.timestamps import parse_timestamp, round_half_up


def test_format_phone_number() -> None:
    assert format_phone_number("+16313841232") == "+1 (631) 384-1232"
    assert format_phone_number("6313841232") == "(631) 384-1232"
    assert format_phone_number("+4420123") == "+4420123"
    assert format_phone_number(None) == "Unknown"


def test_format_duration() -> None:
    assert format_duration(91) == "1m 31s"
    assert format_duration(5) == "5s"
    assert format_duration(None) == "N/A"


def test_format_timestamp() -> None:
    assert format_timestamp("20250604035420.132Z") == "2025-06-04 03:54:20 UTC"
    assert format_timestamp("soon") == "soon"
    assert format_timestamp(None) == "Unknown"


def test_parse_timestamp_variants() -> None:
    cdc = parse_timestamp("20250604035420.132Z")
    assert cdc is not None
    assert cdc.microsecond == 132000
    iso = parse_timestamp("2025-06-04T03:54:20Z")
    assert iso is not None
    assert iso.utcoffset() is not None
    assert parse_timestamp("20251304035420Z") is None
    assert parse_timestamp("") is None


def test_round_half_up() -> None:
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


def test_carrier_and_sip_lookups() -> None:
    assert get_carrier("311", "480") == "Verizon Wireless"
    assert get_carrier("310", "12") == "Verizon Wireless"
    assert get_carrier("999", "001") == "Unknown (999-001)"
    assert get_carrier(None, "480") == "Unknown Carrier"
    assert get_sip_status(486).startswith("Busy Here")
    assert get_sip_status(299) == "Status Code 299"
    assert get_sip_status(None) == "Unknown Status"
