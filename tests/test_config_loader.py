from pathlib import Path

import pytest

from cdcanalyzer.config_loader import load_standards, load_tables
from cdcanalyzer.services.registry import MessageKind


def test_load_default_standards() -> None:
    config = load_standards()
    assert {"T1_678", "IMS"} <= set(config.standards)
    registry, aliases = load_tables()
    assert registry.descriptors[0].id == MessageKind.TERM_ATTEMPT
    assert "termattempt" in registry.keywords
    assert "ims_3gpp_voip_ccopen" in registry.keywords
    assert aliases.aliases_for("smsContent") == ("userInput", "smsMessage")
    assert aliases.aliases_for("signalingMsg") == ("sigMsg", "signalingMsg")
    # SIP headers are read straight from the parsed message, never through aliases.
    assert aliases.aliases_for("userAgent") == ("userAgent",)


def test_load_standards_accepts_camel_case_keys(tmp_path: Path) -> None:
    config_file = tmp_path / "standards.yaml"
    config_file.write_text(
        """
standards:
  CARRIER_X:
    messageTypes:
      - id: release
        displayName: Teardown
        keywords: ["  TEARDOWN  "]
    commonFieldAliases:
      callId: [sessionRef]
""".strip(),
        encoding="utf-8",
    )

    registry, aliases = load_tables(config_file)
    descriptor = registry.descriptor(MessageKind.RELEASE)
    assert descriptor is not None
    assert descriptor.display_name == "Teardown"
    assert descriptor.keywords == ("teardown",)
    assert aliases.aliases_for("callId") == ("sessionRef",)


def test_load_standards_rejects_unknown_kind(tmp_path: Path) -> None:
    config_file = tmp_path / "standards.yaml"
    config_file.write_text(
        """
standards:
  CARRIER_X:
    message_types:
      - id: faxAttempt
        keywords: [faxattempt]
""".strip(),
        encoding="utf-8",
    )

    with pytest.raises(ValueError):
        load_standards(config_file)


def test_load_standards_rejects_empty_keywords(tmp_path: Path) -> None:
    config_file = tmp_path / "standards.yaml"
    config_file.write_text(
        """
standards:
  CARRIER_X:
    message_types:
      - id: answer
        keywords: ["   "]
""".strip(),
        encoding="utf-8",
    )

    with pytest.raises(ValueError):
        load_standards(config_file)


def test_load_standards_rejects_missing_and_malformed_files(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_standards(tmp_path / "missing.yaml")

    bad_yaml = tmp_path / "bad.yaml"
    bad_yaml.write_text("standards: [unclosed", encoding="utf-8")
    with pytest.raises(ValueError):
        load_standards(bad_yaml)

    scalar_root = tmp_path / "scalar.yaml"
    scalar_root.write_text("just a string", encoding="utf-8")
    with pytest.raises(ValueError):
        load_standards(scalar_root)

    empty = tmp_path / "empty.yaml"
    empty.write_text("standards: {}", encoding="utf-8")
    with pytest.raises(ValueError):
        load_standards(empty)
