# airfield/core/severity.py
import re
from typing import Tuple

from airfield.core.enums import Severity

# Checked top to bottom; first hit wins. Whole words only, so plurals and
# UN- forms are listed.
SEVERITY_KEYWORDS: Tuple[Tuple[Severity, Tuple[str, ...]], ...] = (
    # Closures / out of service
    (Severity.CRITICAL, (
        "CLSD", "CLOSED", "U/S", "OTS", "UNSERVICEABLE", "OUT OF SERVICE",
        "UNUSABLE", "UNAVBL", "NOT AVBL",
    )),
    # Obstructions / work in progress
    (Severity.HIGH, (
        "OBST", "OBSTN", "OBSTNS", "OBSTRUCTION", "OBSTRUCTIONS", "OBSTACLE", "OBSTACLES",
        "CRANE", "CRANES", "WIP", "WORK IN PROGRESS", "CONST", "CONSTRUCTION",
        "RESTR", "RESTRICTED", "RESTRICTION", "RESTRICTIONS",
    )),
    # Lighting / marking / wildlife
    (Severity.MEDIUM, (
        "LGT", "LGTS", "LGTD", "UNLGTD", "LIGHT", "LIGHTS", "LIGHTED", "UNLIGHTED", "LIGHTING",
        "PAPI", "REIL", "ALS",
        "MARKING", "MARKINGS", "MKG", "BIRD", "BIRDS", "WILDLIFE", "BASH",
    )),
)


def _compile(words: Tuple[str, ...]) -> re.Pattern:
    alts = "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))
    return re.compile(rf"(?<![A-Z0-9])(?:{alts})(?![A-Z0-9])", re.I)


_TIERS = tuple((sev, _compile(words)) for sev, words in SEVERITY_KEYWORDS)


def classify_severity(text: str | None) -> Severity:
    if not text:
        return Severity.INFO
    for sev, rx in _TIERS:
        if rx.search(text):
            return sev
    return Severity.INFO
