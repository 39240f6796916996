# airfield/core/equipment.py
"""
Navaid availability derived from the active NOTAM set.

State is recomputed from scratch on every refresh: a navaid is UNAVAILABLE only
while some active record matches its outage pattern, so it comes back on its
own once that record expires or is superseded. No "restored" notice is needed.

Operator overrides sit on top of the derived value. An override holds until the
derived state for that navaid changes (the condition it was covering changed)
or until its TTL runs out, whichever comes first.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, Mapping, Optional, Set

from airfield.core.enums import NavaidState
from airfield.models import EquipmentStatus, NotamRecord
from airfield.timeutils import utcnow

log = logging.getLogger(__name__)

OUTAGE = (
    r"(?<![A-Z0-9])(?:U/S|OTS|UNSERVICEABLE|OUT\s+OF\s+SERVICE|UNUSABLE|UNAVBL|UNAVAILABLE"
    r"|NOT\s+AVBL|DECOMMISSIONED)(?![A-Z0-9])"
)

# subject and outage phrase must sit in the same notice
_GAP = r"[^!]{0,80}?"

_ILS_WORDS = r"(?:ILS|LOC|LOCALIZER|GS|GP|GLIDESLOPE|GLIDE\s+PATH)"


def ils_outage_pattern(runway: str) -> str:
    rwy = rf"\bRWY\s*{re.escape(runway)}(?![0-9LCR])"
    subject = rf"(?:\b{_ILS_WORDS}\b[\s/A-Z]{{0,20}}?{rwy}|{rwy}\s+{_ILS_WORDS}\b)"
    return subject + _GAP + OUTAGE


def tacan_outage_pattern(ident: str) -> str:
    ident = re.escape(ident)
    subject = (
        rf"(?:\b{ident}\b[\s/A-Z]{{0,20}}?\b(?:TACAN|VORTAC)\b"
        rf"|\b(?:TACAN|VORTAC)\b[\s/A-Z]{{0,10}}?\b{ident}\b)"
    )
    return subject + _GAP + OUTAGE


@dataclass(frozen=True)
class NavaidRule:
    label: str
    pattern: str

    def compiled(self) -> re.Pattern:
        return re.compile(self.pattern, re.I)


DEFAULT_NAVAID_RULES: Dict[str, NavaidRule] = {
    "mgm": NavaidRule("MGM TACAN", tacan_outage_pattern("MGM")),
    "mxf": NavaidRule("MXF TACAN", tacan_outage_pattern("MXF")),
    "ils10": NavaidRule("ILS 10", ils_outage_pattern("10")),
    "ils28": NavaidRule("ILS 28", ils_outage_pattern("28")),
}


class EquipmentStatusDeriver:
    def __init__(self, rules: Mapping[str, NavaidRule] = DEFAULT_NAVAID_RULES):
        self.rules = dict(rules)
        self._compiled = {nid: rule.compiled() for nid, rule in self.rules.items()}

    def matches(self, text: str) -> Set[str]:
        """Navaid ids whose outage pattern appears in the text."""
        if not text:
            return set()
        return {nid for nid, rx in self._compiled.items() if rx.search(text)}

    def derive(self, records: Iterable[NotamRecord], now: Optional[datetime] = None) -> EquipmentStatus:
        states = {nid: NavaidState.AVAILABLE for nid in self.rules}
        for rec in records:
            for nid in self.matches(rec.canonical_text):
                states[nid] = NavaidState.UNAVAILABLE
        return EquipmentStatus(navaids=states, derived_at=now or utcnow())


@dataclass
class _Override:
    state: NavaidState
    derived_when_set: NavaidState
    expires_at: Optional[datetime]


class NavaidBoard:
    """Last derived navaid state plus live operator overrides."""

    def __init__(self, deriver: Optional[EquipmentStatusDeriver] = None,
                 override_ttl: Optional[timedelta] = timedelta(minutes=240)):
        self.deriver = deriver or EquipmentStatusDeriver()
        self.override_ttl = override_ttl
        self._derived = self.deriver.derive([])
        self._overrides: Dict[str, _Override] = {}
        self._status = self._compose()

    @property
    def status(self) -> EquipmentStatus:
        return self._status

    @property
    def derived(self) -> EquipmentStatus:
        return self._derived

    def refresh(self, records: Iterable[NotamRecord], now: Optional[datetime] = None) -> EquipmentStatus:
        now = now or utcnow()
        derived = self.deriver.derive(records, now)

        for nid, ov in list(self._overrides.items()):
            if ov.expires_at is not None and now >= ov.expires_at:
                log.info("⏲️ Override on %s expired", nid)
                del self._overrides[nid]
            elif derived.navaids[nid] != ov.derived_when_set:
                log.info("🔄 Override on %s dropped: derived state now %s", nid, derived.navaids[nid].value)
                del self._overrides[nid]

        changed = [nid for nid, st in derived.navaids.items() if self._derived.navaids.get(nid) != st]
        if changed:
            log.info("🛰️ Navaid state changed: %s",
                     ", ".join(f"{nid}={derived.navaids[nid].value}" for nid in changed))

        self._derived = derived
        self._status = self._compose()
        return self._status

    def set_override(self, navaid: str, state: NavaidState, now: Optional[datetime] = None) -> EquipmentStatus:
        if navaid not in self.deriver.rules:
            raise KeyError(navaid)
        now = now or utcnow()
        expires = now + self.override_ttl if self.override_ttl else None
        self._overrides[navaid] = _Override(
            state=NavaidState(state),
            derived_when_set=self._derived.navaids[navaid],
            expires_at=expires,
        )
        log.info("✋ Operator override: %s=%s", navaid, NavaidState(state).value)
        self._status = self._compose()
        return self._status

    def clear_override(self, navaid: str) -> bool:
        if navaid not in self.deriver.rules:
            raise KeyError(navaid)
        removed = self._overrides.pop(navaid, None) is not None
        if removed:
            self._status = self._compose()
        return removed

    def _compose(self) -> EquipmentStatus:
        states = dict(self._derived.navaids)
        for nid, ov in self._overrides.items():
            states[nid] = ov.state
        return EquipmentStatus(
            navaids=states,
            derived_at=self._derived.derived_at,
            overrides=sorted(self._overrides),
        )
