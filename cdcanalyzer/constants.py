"""Carrier and SIP status lookups used when presenting calls."""
from __future__ import annotations

from typing import Dict, Optional

CARRIERS: Dict[str, Dict[str, str]] = {
    "310": {
        "012": "Verizon Wireless",
        "020": "T-Mobile",
        "120": "Sprint",
        "260": "T-Mobile",
        "410": "AT&T",
        "880": "T-Mobile",
    },
    "311": {
        "180": "Verizon Wireless",
        "480": "Verizon Wireless",
        "490": "T-Mobile",
        "660": "Metro by T-Mobile",
    },
}

SIP_CODES: Dict[int, str] = {
    100: "Trying - Searching for the user",
    180: "Ringing - The destination is alerting",
    183: "Session Progress - Early media / customized ringback",
    200: "OK - Request successful",
    202: "Accepted - Typically used for Refer",
    400: "Bad Request",
    401: "Unauthorized - Authentication required",
    403: "Forbidden - Server understood but refuses",
    404: "Not Found - User does not exist",
    480: "Temporarily Unavailable",
    486: "Busy Here - User is on another call",
    487: "Request Terminated - Caller canceled",
    500: "Server Internal Error",
    603: "Decline - User declined the call",
}


def get_carrier(mcc: Optional[str], mnc: Optional[str]) -> str:
    if not mcc or not mnc:
        return "Unknown Carrier"
    by_mnc = CARRIERS.get(mcc, {})
    carrier = by_mnc.get(mnc) or by_mnc.get(mnc.zfill(3))
    return carrier or f"Unknown ({mcc}-{mnc})"


def get_sip_status(code: Optional[int]) -> str:
    if code is None:
        return "Unknown Status"
    return SIP_CODES.get(code, f"Status Code {code}")
