"""
Date and Time utilities

XMLTV timestamp parsing. All parsed times are normalised to UTC.
"""
from datetime import datetime, timedelta, timezone
import logging
import re

from iptv_ingest.errors import ParseError

logger = logging.getLogger(__name__)

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def parse_xmltv_time(time_str: str | None) -> datetime:
    """
    Convert an XMLTV timestamp to a UTC datetime

    Only the first 14 digits (YYYYMMDDHHMMSS) are read as the local time.
    A following '±HHMM' offset is applied; a missing or malformed offset is
    treated as +0000.

    Args:
        time_str: XMLTV time like '20080715003000 -0600'

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        ParseError: If the date part cannot be parsed
    """
    if not time_str:
        raise ParseError("Empty XMLTV timestamp")

    parts = time_str.strip().split()
    if not parts:
        raise ParseError("Empty XMLTV timestamp")

    date_part = parts[0][:14]
    if len(date_part) != 14 or not date_part.isdigit():
        raise ParseError(f"Invalid XMLTV timestamp: '{time_str}'")

    try:
        dt = datetime.strptime(date_part, "%Y%m%d%H%M%S")
    except ValueError as e:
        raise ParseError(f"Invalid XMLTV timestamp: '{time_str}'") from e

    offset = _parse_offset(parts[1]) if len(parts) > 1 else timedelta(0)
    try:
        return (dt - offset).replace(tzinfo=timezone.utc)
    except (OverflowError, ValueError) as e:
        raise ParseError(f"XMLTV timestamp out of range: '{time_str}'") from e


def _parse_offset(tz_part: str) -> timedelta:
    match = _OFFSET_RE.match(tz_part)
    if not match:
        logger.debug(f"Ignoring malformed XMLTV timezone offset: '{tz_part}'")
        return timedelta(0)

    sign, hours, minutes = match.groups()
    delta = timedelta(hours=int(hours), minutes=int(minutes))
    return delta if sign == "+" else -delta
