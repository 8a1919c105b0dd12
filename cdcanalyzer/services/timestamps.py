from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Optional

# CDC generalized time: YYYYMMDDhhmmss[.fff][Z]
_CDC_TS_RE = re.compile(r"(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})(?:\.(\d+))?Z?")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a CDC timestamp into an aware UTC datetime; None when unparsable."""
    if not value:
        return None
    text = str(value).strip()
    match = _CDC_TS_RE.search(text)
    if match:
        year, month, day, hour, minute, second, fraction = match.groups()
        micros = int((fraction or "0")[:6].ljust(6, "0"))
        try:
            return datetime(
                int(year), int(month), int(day), int(hour), int(minute), int(second), micros, tzinfo=timezone.utc
            )
        except ValueError:
            return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def seconds_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds()


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
