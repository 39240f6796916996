# airfield/pipeline.py
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from airfield.config import Settings
from airfield.core.enums import NavaidState, Source
from airfield.core.equipment import EquipmentStatusDeriver, NavaidBoard
from airfield.core.normalizer import TextNormalizer
from airfield.core.store import NotamStore
from airfield.models import EquipmentStatus, NotamRecord
from airfield.services.feed import FeedListener, FeedTransport
from airfield.services.scraper import FallbackScraper
from airfield.timeutils import utcnow

log = logging.getLogger(__name__)


class NotamHub:
    """
    Owns the working set for one airfield and everything that writes to it.

    Built once at startup and handed to the feed listener, the scheduler jobs
    and the HTTP handlers. Every write goes store -> navaid refresh, so the
    navaid board never lags the store.
    """

    def __init__(
        self,
        airfield: str,
        *,
        normalizer: Optional[TextNormalizer] = None,
        store: Optional[NotamStore] = None,
        board: Optional[NavaidBoard] = None,
        scraper: Optional[FallbackScraper] = None,
        default_validity: timedelta = timedelta(hours=24),
    ):
        self.airfield = airfield.strip().upper()
        self.normalizer = normalizer or TextNormalizer(self.airfield)
        self.store = store or NotamStore()
        self.board = board or NavaidBoard(EquipmentStatusDeriver())
        self.default_validity = default_validity
        self.scraper = scraper or FallbackScraper(
            self.airfield, self.normalizer, default_validity=default_validity
        )
        self.listener: Optional[FeedListener] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotamHub":
        normalizer = TextNormalizer(settings.airfield, settings.airfield_names)
        validity = timedelta(hours=settings.default_validity_hours)
        scraper = FallbackScraper(
            settings.airfield,
            normalizer,
            url_template=settings.scrape.url_template,
            timeout_sec=settings.scrape.timeout_sec,
            attempts=settings.scrape.attempts,
            verify_tls=settings.scrape.verify_tls,
            default_validity=validity,
        )
        ttl = timedelta(minutes=settings.navaid_override_ttl_min) if settings.navaid_override_ttl_min > 0 else None
        return cls(
            settings.airfield,
            normalizer=normalizer,
            board=NavaidBoard(EquipmentStatusDeriver(), override_ttl=ttl),
            scraper=scraper,
            default_validity=validity,
        )

    def attach_feed(self, transport_factory: Callable[[], FeedTransport], *, queue_name: str,
                    reconnect_backoff_sec: float = 10.0, connect_timeout_sec: float = 30.0,
                    max_inflight: int = 500) -> FeedListener:
        self.listener = FeedListener(
            transport_factory,
            queue_name=queue_name,
            airfield=self.airfield,
            normalizer=self.normalizer,
            sink=self.ingest_feed,
            reconnect_backoff_sec=reconnect_backoff_sec,
            connect_timeout_sec=connect_timeout_sec,
            max_inflight=max_inflight,
            default_validity=self.default_validity,
        )
        return self.listener

    # ---- writes ----

    def _refresh_navaids(self, now: Optional[datetime] = None) -> EquipmentStatus:
        now = now or utcnow()
        return self.board.refresh(self.store.query_active(self.airfield, now), now)

    def _retire(self, record: NotamRecord) -> bool:
        """Drop whatever a NOTAMR/NOTAMC points at."""
        target = record.supersedes
        if not target or target == record.id or not self.store.remove(target):
            return False
        log.info("🗑️ %s %s by %s", "Cancelled" if record.is_cancellation else "Superseded", target, record.id)
        return True

    def ingest_feed(self, record: NotamRecord) -> None:
        self._retire(record)
        if record.is_cancellation:
            # the cancel notice itself is not an active NOTAM
            self._refresh_navaids()
            return
        replaced = self.store.upsert(record)
        if replaced:
            log.info("♻️ Replaced %s", record.id)
        self._refresh_navaids()

    def apply_fallback_batch(self, location: str, records: List[NotamRecord]) -> bool:
        """Swap in a fresh scrape. An empty batch keeps the last known fallback data."""
        if not records:
            log.warning("⚠️ Empty fallback batch for %s; keeping last known NOTAMs", location)
            return False
        retired = sum(self._retire(rec) for rec in records)
        records = [rec for rec in records if not rec.is_cancellation]
        if not records:
            log.warning("⚠️ Fallback batch for %s held only cancellations; keeping last known NOTAMs", location)
            if retired:
                self._refresh_navaids()
            return False
        removed, inserted = self.store.replace_source_batch(Source.FALLBACK, location, records)
        log.info("✅ Fallback batch for %s: %d in, %d replaced", location, inserted, removed)
        self._refresh_navaids()
        return True

    async def run_scrape(self) -> bool:
        batch = await self.scraper.scrape()
        return self.apply_fallback_batch(self.scraper.location, batch)

    def sweep(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        removed = self.store.sweep(now)
        self._refresh_navaids(now)
        return removed

    # ---- reads ----

    def notams(self, location: Optional[str] = None) -> List[NotamRecord]:
        return self.store.query_active(location or self.airfield)

    def navaids(self) -> EquipmentStatus:
        return self.board.status

    def set_override(self, navaid: str, state: NavaidState) -> EquipmentStatus:
        # derive from the current store first so the override is pinned against fresh state
        now = utcnow()
        self._refresh_navaids(now)
        return self.board.set_override(navaid, state, now)

    def clear_override(self, navaid: str) -> EquipmentStatus:
        self.board.clear_override(navaid)
        return self._refresh_navaids()

    def health(self) -> dict:
        return {
            "airfield": self.airfield,
            "active_notams": len(self.store.query_active(self.airfield)),
            "feed": self.listener.status() if self.listener else None,
            "fallback": self.scraper.status(),
        }
