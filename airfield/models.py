# airfield/models.py
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from airfield.core.enums import NavaidState, Severity, Source


class NotamRecord(BaseModel):
    """One active notice. Frozen: a newer version replaces the whole record."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="NOTAM identifier, or an UNK- surrogate when none is extractable")
    location: str = Field(description="4-letter ICAO location code")
    raw_text: str
    canonical_text: str
    severity: Severity
    effective_start: datetime
    effective_end: datetime
    end_estimated: bool = Field(False, description="End is EST or the default horizon")
    source: Source
    received_at: datetime
    supersedes: Optional[str] = Field(None, description="Id this notice replaces (NOTAMR) or cancels (NOTAMC)")
    is_cancellation: bool = False


class EquipmentStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    navaids: Dict[str, NavaidState]
    derived_at: datetime
    overrides: List[str] = Field(default_factory=list, description="Navaids currently held by an operator override")


# ---- read API shapes ----

class NotamOut(BaseModel):
    id: str
    text: str
    severity: str


class NotamListOut(BaseModel):
    notams: List[NotamOut]


class NavaidOverrideIn(BaseModel):
    state: NavaidState


class HealthOut(BaseModel):
    status: str
    timestamp: str
    airfield: str
    active_notams: int
    feed: Optional[dict] = None
    fallback: dict
