# airfield/core/records.py
import hashlib
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from airfield.core.enums import Source
from airfield.core.normalizer import TextNormalizer
from airfield.core.severity import classify_severity
from airfield.models import NotamRecord
from airfield.timeutils import parse_notam_time, utcnow

DEFAULT_VALIDITY = timedelta(hours=24)

# "!MGM 10/045", "!FDC 5/1234"
_DOMESTIC_ID_RE = re.compile(r"!(?P<loc>[A-Z0-9]{3,4})\s+(?P<num>\d{1,2}/\d{3,4})\b")
_FDC_ID_RE = re.compile(r"\bFDC\s+(?P<num>\d{1,2}/\d{3,4})\b")
# "A1234/25", "M0123/25"
_ICAO_ID_RE = re.compile(r"\b[A-Z]?\d{3,5}/\d{2}\b")

_ICAO_LOC_RE = re.compile(r"\bA\)\s*(?P<loc>[A-Z]{4})\b")
_FDC_LOC_RE = re.compile(r"!FDC\s+\d{1,2}/\d{3,4}\s+(?P<loc>[A-Z0-9]{3,4})\b")
_DOMESTIC_LOC_RE = re.compile(r"!(?!FDC\b)(?P<loc>[A-Z0-9]{3,4})\b")

_B_FIELD_RE = re.compile(r"\bB\)\s*(?P<t>\d{10})\b")
_C_FIELD_RE = re.compile(r"\bC\)\s*(?:(?P<t>\d{10})\s*(?P<est>EST)?|(?P<perm>PERM))")
_RANGE_RE = re.compile(r"\b(?P<start>\d{10})-(?:(?P<end>\d{10})(?P<est>EST)?|(?P<perm>PERM))")

# "A1235/25 NOTAMR A1234/25": the type marker is followed by the id it retires
_SUPERSEDE_RE = re.compile(r"\bNOTAM(?P<kind>[RC])\s+(?P<ref>[A-Z]?\d{3,5}/\d{2})\b")


@dataclass(frozen=True)
class Validity:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    estimated: bool = False


def extract_notam_id(text: str | None) -> Optional[str]:
    if not text:
        return None
    m = _DOMESTIC_ID_RE.search(text)
    if m:
        return f"{m.group('loc')} {m.group('num')}"
    m = _FDC_ID_RE.search(text)
    if m:
        return f"FDC {m.group('num')}"
    m = _ICAO_ID_RE.search(text)
    if m:
        return m.group(0)
    return None


def extract_location(text: str | None) -> Optional[str]:
    if not text:
        return None
    for rx in (_ICAO_LOC_RE, _FDC_LOC_RE, _DOMESTIC_LOC_RE):
        m = rx.search(text)
        if m:
            return m.group("loc")
    return None


def resolve_location(code: str | None, airfield: str) -> Optional[str]:
    """'MGM' -> 'KMGM' (domestic designators are the ICAO code minus the K)."""
    if not code:
        return None
    code = str(code).strip().upper()
    airfield = (airfield or "").strip().upper()
    if len(code) == 4:
        return code
    if len(code) == 3 and code.isalnum():
        if airfield[1:] == code:
            return airfield
        return "K" + code
    return None


def extract_validity(text: str | None) -> Validity:
    if not text:
        return Validity()
    b = _B_FIELD_RE.search(text)
    c = _C_FIELD_RE.search(text)
    if b or c:
        start = parse_notam_time(b.group("t")) if b else None
        end = parse_notam_time(c.group("t")) if (c and c.group("t")) else None
        return Validity(start=start, end=end, estimated=bool(c and c.group("est")))
    r = _RANGE_RE.search(text)
    if r:
        return Validity(
            start=parse_notam_time(r.group("start")),
            end=parse_notam_time(r.group("end")) if r.group("end") else None,
            estimated=bool(r.group("est")),
        )
    return Validity()


def extract_supersedes(text: str | None) -> Tuple[Optional[str], bool]:
    """(id being replaced or cancelled, is it a cancellation). (None, False) for a new notice."""
    if not text:
        return None, False
    m = _SUPERSEDE_RE.search(text.upper())
    if not m:
        return None, False
    return m.group("ref"), m.group("kind") == "C"


def surrogate_id(location: str, canonical_text: str) -> str:
    """Stable stand-in key when no NOTAM number can be pulled from the text."""
    combined = f"{location.strip()}|{canonical_text.strip()}"
    return "UNK-" + hashlib.sha256(combined.encode("utf-8")).hexdigest()[:12]


def build_record(
    raw_text,
    *,
    source: Source,
    location: str,
    normalizer: TextNormalizer,
    notam_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
    default_validity: timedelta = DEFAULT_VALIDITY,
) -> Optional[NotamRecord]:
    """
    Normalize + classify one notice into a NotamRecord.

    Explicit start/end (e.g. from AIXM fields) win over times parsed out of the
    text. With no end at all the record gets `now + default_validity` so that bad
    data cannot pin a notice forever. Returns None for empty text.
    """
    canonical = normalizer.normalize(raw_text)
    if not canonical:
        return None
    now = now or utcnow()
    raw = raw_text if isinstance(raw_text, str) else str(raw_text)
    # the NOTAMR/NOTAMC marker is stripped from canonical text, so read it off the raw
    supersedes, cancels = extract_supersedes(raw)

    # header id first so feed and scrape copies of one notice share a key
    rid = extract_notam_id(canonical) or (notam_id or "").strip() or surrogate_id(location, canonical)

    parsed = extract_validity(canonical)
    eff_start = start or parsed.start or now
    eff_end = end or parsed.end
    estimated = parsed.estimated if end is None else False
    if eff_end is None:
        eff_end = now + default_validity
        estimated = True

    return NotamRecord(
        id=rid,
        location=location,
        raw_text=raw,
        canonical_text=canonical,
        severity=classify_severity(canonical),
        effective_start=eff_start,
        effective_end=eff_end,
        end_estimated=estimated,
        source=source,
        received_at=now,
        supersedes=supersedes,
        is_cancellation=cancels,
    )
