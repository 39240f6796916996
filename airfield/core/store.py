# airfield/core/store.py
import itertools
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from airfield.core.enums import Source
from airfield.models import NotamRecord
from airfield.timeutils import utcnow

log = logging.getLogger(__name__)


class NotamStore:
    """
    In-memory working set of active NOTAMs, keyed by NOTAM id.

    Every mutation builds the next mapping and swaps it in with a single
    assignment, so a reader never sees half of a batch replacement.
    """

    def __init__(self):
        # id -> (arrival seq, record)
        self._records: Dict[str, Tuple[int, NotamRecord]] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, notam_id: str) -> bool:
        return notam_id in self._records

    def get(self, notam_id: str) -> Optional[NotamRecord]:
        entry = self._records.get(notam_id)
        return entry[1] if entry else None

    def records(self) -> List[NotamRecord]:
        return [rec for _, rec in sorted(self._records.values(), key=lambda e: e[0])]

    def upsert(self, record: NotamRecord) -> bool:
        """Insert or replace by id; last writer wins regardless of source."""
        replaced = record.id in self._records
        nxt = dict(self._records)
        nxt[record.id] = (next(self._seq), record)
        self._records = nxt
        return replaced

    def remove(self, notam_id: str) -> bool:
        if notam_id not in self._records:
            return False
        nxt = dict(self._records)
        del nxt[notam_id]
        self._records = nxt
        return True

    def sweep(self, now: datetime) -> int:
        """Drop every record whose effective_end <= now. Returns how many went."""
        if not isinstance(now, datetime):
            raise TypeError(f"sweep() needs a datetime, got {type(now)!r}")
        if now.tzinfo is None:
            raise ValueError("sweep() needs a timezone-aware datetime")

        keep = {rid: e for rid, e in self._records.items() if e[1].effective_end > now}
        removed = len(self._records) - len(keep)
        if removed:
            self._records = keep
            log.info("🧹 Swept %d expired NOTAM(s); %d remain", removed, len(keep))
        return removed

    def query_active(self, location: str, now: Optional[datetime] = None) -> List[NotamRecord]:
        """Non-expired records for a location, most urgent first, arrival order on ties."""
        now = now or utcnow()
        location = (location or "").strip().upper()
        rows = [
            e for e in self._records.values()
            if e[1].location == location and e[1].effective_end > now
        ]
        rows.sort(key=lambda e: (e[1].severity, e[0]))
        return [rec for _, rec in rows]

    def replace_source_batch(self, source: Source, location: str,
                             records: Iterable[NotamRecord]) -> Tuple[int, int]:
        """
        Atomically swap out every (source, location) record for the new batch.

        An empty batch is a caller bug: a failed scrape must keep the previous
        batch, not wipe it.
        """
        batch = list(records)
        if not batch:
            raise ValueError("replace_source_batch() called with an empty batch")
        location = (location or "").strip().upper()
        for rec in batch:
            if rec.source != source or rec.location != location:
                raise ValueError(
                    f"record {rec.id} ({rec.source.value}, {rec.location}) "
                    f"does not belong to batch ({source.value}, {location})"
                )

        nxt = {
            rid: e for rid, e in self._records.items()
            if not (e[1].source == source and e[1].location == location)
        }
        removed = len(self._records) - len(nxt)
        for rec in batch:  # repeated id in the batch: last one wins
            nxt[rec.id] = (next(self._seq), rec)
        self._records = nxt
        return removed, len({rec.id for rec in batch})
