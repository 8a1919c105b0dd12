from __future__ import annotations

import logging
from typing import Optional

from cdcanalyzer.services.registry import LITERAL_KEYWORDS, MessageKind, TypeRegistry
from cdcanalyzer.services.segmenter import MessageBlock

LOGGER = logging.getLogger(__name__)


def classify_block(block: MessageBlock, registry: TypeRegistry) -> Optional[MessageKind]:
    """First registry descriptor (declaration order) with a keyword in the block wins."""
    lowered = block.text.lower()
    for descriptor in registry.descriptors:
        if any(keyword in lowered for keyword in descriptor.keywords):
            return descriptor.id

    for keyword, kind in LITERAL_KEYWORDS:
        if keyword in lowered:
            return kind

    LOGGER.debug("Unclassified block index=%d lines=%d-%d", block.index, block.start_line, block.end_line, extra={"category": "PARSE"})
    return None
