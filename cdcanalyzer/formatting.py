from __future__ import annotations

import re
from typing import Optional

from cdcanalyzer.services.timestamps import parse_timestamp


def format_phone_number(number: Optional[str]) -> str:
    if not number:
        return "Unknown"
    digits = re.sub(r"\D", "", number)
    if len(digits) == 11 and digits.startswith("1"):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return number


def format_duration(seconds: Optional[int]) -> str:
    if seconds is None or seconds < 0:
        return "N/A"
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}m {secs}s" if minutes > 0 else f"{secs}s"


def format_timestamp(value: Optional[str]) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return value or "Unknown"
    return parsed.strftime("%Y-%m-%d %H:%M:%S UTC")
