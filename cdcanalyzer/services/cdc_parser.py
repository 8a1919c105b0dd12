from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from cdcanalyzer.config_loader import load_tables
from cdcanalyzer.logging_setup import correlation_context
from cdcanalyzer.services.call_aggregator import GLOBAL_EVENTS_KEY, Call, aggregate_calls, select_preferred_call
from cdcanalyzer.services.field_extractor import FieldExtractor
from cdcanalyzer.services.message_parsers import ParsedMessage, parse_block
from cdcanalyzer.services.registry import FieldAliasTable, TypeRegistry
from cdcanalyzer.services.segmenter import split_into_blocks

LOGGER = logging.getLogger(__name__)


@dataclass
class CdcParseResult:
    messages: List[ParsedMessage] = field(default_factory=list)
    calls: Dict[str, Call] = field(default_factory=dict)
    run_id: str = "-"

    @property
    def unclassified_count(self) -> int:
        return sum(1 for m in self.messages if m.kind is None)

    @property
    def has_records(self) -> bool:
        return any(m.kind is not None for m in self.messages)

    @property
    def preferred_call_id(self) -> Optional[str]:
        return select_preferred_call(self.calls)

    def call_records(self) -> Dict[str, Call]:
        """Calls without the global-events bucket."""
        return {key: call for key, call in self.calls.items() if key != GLOBAL_EVENTS_KEY}


def parse_cdc(
    raw_text: str,
    registry: Optional[TypeRegistry] = None,
    aliases: Optional[FieldAliasTable] = None,
) -> CdcParseResult:
    """
    Segment, classify and parse a raw CDC/LAES log, then aggregate the
    messages into calls. Missing tables fall back to the bundled standards.
    """
    if registry is None or aliases is None:
        default_registry, default_aliases = load_tables()
        registry = registry or default_registry
        aliases = aliases or default_aliases

    with correlation_context() as run_id:
        blocks = split_into_blocks(raw_text, registry)
        extractor = FieldExtractor(aliases)
        messages = [parse_block(block, registry, extractor) for block in blocks]
        calls = aggregate_calls(messages)
        result = CdcParseResult(messages=messages, calls=calls, run_id=run_id)

        if not result.has_records:
            LOGGER.warning("No recognizable CDC records blocks=%d", len(blocks), extra={"category": "PARSE"})
        else:
            LOGGER.info(
                "Parsed CDC text blocks=%d unclassified=%d calls=%d",
                len(blocks),
                result.unclassified_count,
                len(calls),
                extra={"category": "PARSE"},
            )
    return result


def parse_cdc_file(
    path: Path,
    registry: Optional[TypeRegistry] = None,
    aliases: Optional[FieldAliasTable] = None,
) -> CdcParseResult:
    if not path.exists():
        raise ValueError(f"CDC log not found: {path}")
    LOGGER.info("Reading CDC log path=%s bytes=%d", path, path.stat().st_size, extra={"category": "FILES"})
    text = path.read_text(encoding="utf-8", errors="replace")
    return parse_cdc(text, registry, aliases)
