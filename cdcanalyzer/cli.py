from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click

from cdcanalyzer.config_loader import load_tables
from cdcanalyzer.constants import get_carrier, get_sip_status
from cdcanalyzer.formatting import format_duration, format_phone_number, format_timestamp
from cdcanalyzer.logging_setup import setup_logging
from cdcanalyzer.services.call_aggregator import Call
from cdcanalyzer.services.call_correlation import correlate
from cdcanalyzer.services.cdc_parser import CdcParseResult, parse_cdc_file
from cdcanalyzer.services.registry import MessageKind, TypeRegistry

LOGGER = logging.getLogger(__name__)


@click.group()
@click.option("--log-level", default=None, help="Log level (defaults to CDCANALYZER_LOG_LEVEL, then INFO).")
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Also write logs to this rotating file.")
def main(log_level: Optional[str], log_file: Optional[Path]) -> None:
    """cdcanalyzer commands."""
    setup_logging(log_level, log_file)
    LOGGER.debug("CLI bootstrap completed", extra={"category": "CONFIG"})


def _load(log_file: Path, standards: Optional[Path], max_bytes: Optional[int]) -> Tuple[TypeRegistry, CdcParseResult]:
    if max_bytes is not None and log_file.stat().st_size > max_bytes:
        raise click.ClickException(f"{log_file} is larger than --max-bytes={max_bytes}")
    try:
        registry, aliases = load_tables(standards)
        result = parse_cdc_file(log_file, registry, aliases)
    except ValueError as exc:
        LOGGER.error("CLI load failed error=%s", exc, extra={"category": "ERRORS"})
        raise click.ClickException(str(exc)) from exc
    if not result.has_records:
        raise click.ClickException("No recognizable CDC records found. Check the log format.")
    return registry, result


def _kind_label(registry: TypeRegistry, kind: Optional[MessageKind]) -> Optional[str]:
    if kind is None:
        return None
    descriptor = registry.descriptor(kind)
    return descriptor.display_name if descriptor and descriptor.display_name else kind.value


def _call_summary(call: Call, registry: TypeRegistry) -> Dict[str, Any]:
    return {
        "call_id": call.call_id,
        "case_id": call.case_id,
        "call_type": call.call_type,
        "call_direction": call.call_direction,
        "call_status": call.call_status,
        "calling": asdict(call.calling_party),
        "called": asdict(call.called_party),
        "caller_name": call.caller_name,
        "verification_status": call.verification_status,
        "start_time": call.start_time,
        "answer_time": call.answer_time,
        "end_time": call.end_time,
        "duration": call.duration,
        "release_reason": call.release_reason,
        "device_info": asdict(call.device_info),
        "codecs": [asdict(c) for c in call.codecs],
        "locations": [asdict(loc) for loc in call.locations],
        "sms": [asdict(sms) for sms in call.sms_entries],
        "signaling": [
            {"timestamp": sip.timestamp, "method": sip.method, "status_code": sip.status_code, "status_text": sip.status_text}
            for sip in call.signaling_messages
        ],
        "messages": [
            {"kind": m.kind.value if m.kind else None, "label": _kind_label(registry, m.kind), "timestamp": m.timestamp}
            for m in call.messages
        ],
    }


@main.command()
@click.argument("log_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--standards", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None, help="Standards YAML (keywords and field aliases).")
@click.option("--max-bytes", type=int, default=None, help="Refuse logs larger than this many bytes.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print calls as JSON.")
def analyze(log_file: Path, standards: Optional[Path], max_bytes: Optional[int], as_json: bool) -> None:
    """Parse a CDC/LAES log and summarize its calls."""
    LOGGER.info("CLI analyze command log_file=%s standards=%s", log_file, standards or "-", extra={"category": "FILES"})
    registry, result = _load(log_file, standards, max_bytes)

    if as_json:
        payload = {
            "preferred_call": result.preferred_call_id,
            "calls": {key: _call_summary(call, registry) for key, call in result.calls.items()},
        }
        click.echo(json.dumps(payload, indent=2, default=str))
        return

    preferred = result.preferred_call_id
    for key, call in result.calls.items():
        marker = "*" if key == preferred else " "
        first_cell = next((loc.cell for loc in call.locations if loc.cell is not None), None)
        click.echo(f"{marker} [{call.call_type}] {key}")
        click.echo(f"    {format_phone_number(call.calling_party.phone_number)} -> {format_phone_number(call.called_party.phone_number)}")
        click.echo(f"    caller={call.caller_name or 'N/A'} direction={call.call_direction or 'Unknown'} status={call.call_status or 'Unknown'}")
        click.echo(f"    start={format_timestamp(call.start_time)} duration={format_duration(call.duration)}")
        if first_cell is not None:
            click.echo(f"    carrier={get_carrier(first_cell.mcc, first_cell.mnc)} cell={first_cell.tower_key or first_cell.raw}")
        click.echo(f"    messages={len(call.messages)} sip={len(call.signaling_messages)} sms={len(call.sms_entries)}")
        for sip in call.signaling_messages:
            label = sip.method if sip.is_request else get_sip_status(sip.status_code)
            click.echo(f"      {format_timestamp(sip.timestamp)}  {label}")
        for sms in call.sms_entries:
            click.echo(f"      {format_timestamp(sms.timestamp)}  SMS {sms.direction} {sms.sender or '?'} -> {sms.recipient or '?'}: {sms.content or ''}")


@main.command(name="correlate")
@click.argument("log_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--standards", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print leads as JSON.")
def correlate_command(log_file: Path, standards: Optional[Path], as_json: bool) -> None:
    """Cross-reference the calls in a CDC/LAES log."""
    LOGGER.info("CLI correlate command log_file=%s", log_file, extra={"category": "CORRELATE"})
    _registry, result = _load(log_file, standards, None)
    leads = correlate(result.calls)

    if as_json:
        click.echo(json.dumps(asdict(leads), indent=2))
        return

    if leads.is_empty:
        click.echo("No correlations found.")
        return
    for overlap in leads.time_overlaps:
        seconds = "open-ended" if overlap.overlap_seconds is None else f"{overlap.overlap_seconds}s"
        click.echo(f"overlap   {overlap.call_a} <-> {overlap.call_b} ({seconds})")
    for contact in leads.shared_contacts:
        click.echo(f"contact   {contact.call_a} <-> {contact.call_b} numbers={','.join(contact.numbers)}")
    for tower in leads.shared_towers:
        click.echo(f"tower     {tower.call_a} <-> {tower.call_b} towers={','.join(tower.tower_keys)}")
    for seq in leads.forwarding_sequences:
        click.echo(f"forward   {seq.call_a} -> {seq.call_b} via {seq.forwarding_number} gap={seq.gap_seconds}s")


if __name__ == "__main__":
    main()
