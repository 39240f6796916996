# airfield/core/normalizer.py
"""
Canonical NOTAM text.

Raw bodies arrive from the DINS raw report, OurAirports listings, or the SWIM
feed. Each source wraps the operative notice in a different amount of page
chrome and admin metadata. ``TextNormalizer.normalize`` strips that down to the
notice itself. It never raises: in the worst case it returns the input with
whitespace collapsed.
"""
import html
import re
from typing import Iterable, Optional

_WS_RE = re.compile(r"\s+")

# OurAirports page chrome around the listing
_BOILERPLATE_RES = (
    re.compile(r"NOTAMS? @ OurAirports[\s\S]*?Airport", re.I),
    re.compile(r"Toggle navigation[\s\S]*?Help", re.I),
    re.compile(r"NOTAM feed for [\s\S]*?rss\"?>?", re.I),
    re.compile(r"NOTAM source[\s\S]*$", re.I),
)

# notice-type markers: new / replacement / cancel
_TYPE_MARKER_RE = re.compile(r"\bNOTAM[NRC]\b")

# DINS admin metadata, "CREATED: 15 Oct 2025 12:00:00 SOURCE: KMGM"
_CREATED_RE = re.compile(r"[ \t]*\bCREATED:[^\n]*", re.I)
_SOURCE_RE = re.compile(r"[ \t]*\bSOURCE:[ \t]*\S+", re.I)

FIELD_MARKER_RE = re.compile(
    r"!(?:FDC|[A-Z0-9]{3,4})\b"        # domestic / FDC header
    r"|\bFDC\s+\d{1,2}/\d{3,4}\b"
    r"|\b[A-Z]\d{3,5}/\d{2}\b"         # ICAO series + number
    r"|\bNOTAM\s+\d{2}/\d{3}\b"
    r"|\b[QAE]\)"                      # ICAO item fields
)


def collapse_ws(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def looks_like_notam(text: Optional[str]) -> bool:
    """True if the text carries at least one recognizable NOTAM field marker."""
    return bool(text) and FIELD_MARKER_RE.search(text) is not None


def _compile_names(names: Iterable[str]):
    parts = []
    # longest first so "X Regional Airport" beats "X Regional"
    for name in sorted({n.strip() for n in names if n and n.strip()}, key=len, reverse=True):
        parts.append(r"\s+".join(re.escape(tok) for tok in name.split()))
    if not parts:
        return None
    return re.compile(r"(?<![A-Za-z])(?:" + "|".join(parts) + r")(?![A-Za-z])", re.I)


class TextNormalizer:
    def __init__(self, location: str, airport_names: Iterable[str] = ()):
        self.location = (location or "").strip().upper()
        self._names_re = _compile_names(airport_names)

    def normalize(self, raw) -> str:
        if raw is None:
            return ""
        text = raw if isinstance(raw, str) else str(raw)
        fallback = collapse_ws(text)

        text = html.unescape(text)
        for rx in _BOILERPLATE_RES:
            text = rx.sub(" ", text)

        text = _CREATED_RE.sub("", text)
        text = _SOURCE_RE.sub("", text)
        text = _TYPE_MARKER_RE.sub(" ", text)

        if self._names_re is not None and self.location:
            text = self._names_re.sub(self.location, text)

        text = collapse_ws(text)

        m = FIELD_MARKER_RE.search(text)
        if m and m.start() > 0:
            text = text[m.start():]

        return text or fallback

    __call__ = normalize
