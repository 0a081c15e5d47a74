"""
Date and Time utilities

Centralizes XMLTV timestamp parsing and UTC helpers used by the pipeline.
"""
from datetime import datetime, timedelta, timezone
import logging

logger = logging.getLogger(__name__)


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_xmltv_time(time_str: str) -> datetime:
    """
    Convert XMLTV time format to a UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600' (offset optional,
                  seconds optional)

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the string is not a valid XMLTV timestamp
    """
    try:
        parts = time_str.strip().split()
        time_part = parts[0]
        tz_part = parts[1] if len(parts) > 1 else "+0000"

        # Some grabbers glue the offset to the timestamp: 20240101120000+0100
        for digits in (14, 12):
            if len(time_part) > digits and time_part[digits] in "+-":
                time_part, tz_part = time_part[:digits], time_part[digits:]
                break

        if len(time_part) == 12:
            dt = datetime.strptime(time_part, "%Y%m%d%H%M")
        else:
            dt = datetime.strptime(time_part[:14], "%Y%m%d%H%M%S")

        if tz_part.upper() in ("Z", "UTC", "GMT"):
            tz_offset_minutes = 0
        else:
            if tz_part[0] not in "+-":
                raise ValueError(f"bad offset {tz_part!r}")
            tz_sign = 1 if tz_part[0] == "+" else -1
            tz_hours = int(tz_part[1:3])
            tz_mins = int(tz_part[3:5] or 0)
            tz_offset_minutes = tz_sign * (tz_hours * 60 + tz_mins)
    except (ValueError, IndexError) as e:
        raise DateFormatError(f"Invalid XMLTV time: '{time_str}'") from e

    dt_utc = dt - timedelta(minutes=tz_offset_minutes)
    return dt_utc.replace(tzinfo=timezone.utc)
