# airfield/timeutils.py
from datetime import datetime, timezone
import re

# feed payloads sometimes carry stray control or zero-width chars
_CONTROL_RE = re.compile(r"[\x00-\x1F\x7F\u200B\u200C\u200D]")

# open-ended or empty end times
_NULL_TOKENS = {
    "", "NULL", "NONE", "NIL", "N/A", "NA",
    "PERM", "PERMANENT", "UFN", "UNTIL FURTHER NOTICE", "TIL FURTHER NOTICE"
}

# NOTAM field times: yymmddhhmm (B/C fields, DINS ranges) or yyyymmddhhmm (AIXM)
_NOTAM_TIME_RE = re.compile(r"^(\d{2}|\d{4})(\d{2})(\d{2})(\d{2})(\d{2})$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso_to_utc(dt_like) -> datetime | None:
    """ISO-8601 (Z or offset) or a compact NOTAM stamp -> aware UTC. Naive input is taken as UTC; junk gives None."""
    if dt_like is None:
        return None

    if isinstance(dt_like, datetime):
        dt = dt_like
    elif isinstance(dt_like, str):
        s = _CONTROL_RE.sub("", dt_like).strip()
        if s.upper() in _NULL_TOKENS:
            return None
        if s.isdigit():
            return parse_notam_time(s)
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_notam_time(stamp: str | None) -> datetime | None:
    """'2510151200' or '202510151200' -> aware UTC datetime; None if not a valid stamp."""
    if not stamp:
        return None
    m = _NOTAM_TIME_RE.match(stamp.strip())
    if not m:
        return None
    year, month, day, hour, minute = m.groups()
    y = int(year)
    if len(year) == 2:
        y += 2000
    try:
        # some issuers write 2400 for end-of-day
        if hour == "24" and minute == "00":
            return datetime(y, int(month), int(day), 23, 59, tzinfo=timezone.utc)
        return datetime(y, int(month), int(day), int(hour), int(minute), tzinfo=timezone.utc)
    except ValueError:
        return None


def to_z(dt: datetime | None) -> str | None:
    """2025-10-15T12:00:00Z"""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
