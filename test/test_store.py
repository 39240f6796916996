# test/test_store.py
from datetime import datetime, timedelta

import pytest

from airfield.core.enums import Severity, Source
from airfield.core.store import NotamStore


class TestNotamStore:
    @pytest.fixture
    def store(self):
        return NotamStore()

    def test_upsert_same_id_keeps_latest(self, store, make_record, now):
        first = make_record("!MGM 10/045 MGM TWY A CLSD")
        second = make_record("!MGM 10/045 MGM TWY A CLSD EXC TAX ACFT", at=now + timedelta(minutes=1))
        assert store.upsert(first) is False
        assert store.upsert(second) is True
        assert len(store) == 1
        assert store.get("MGM 10/045").canonical_text.endswith("EXC TAX ACFT")

    def test_last_writer_wins_across_sources(self, store, make_record):
        store.upsert(make_record("!MGM 10/045 MGM TWY A CLSD", source=Source.FEED))
        store.upsert(make_record("!MGM 10/045 MGM TWY A CLSD", source=Source.FALLBACK))
        assert store.get("MGM 10/045").source is Source.FALLBACK

    def test_sweep_removes_expired_only(self, store, make_record, now):
        gone = make_record("!MGM 10/060 MGM TWY C CLSD", end=now - timedelta(minutes=1))
        edge = make_record("!MGM 10/061 MGM TWY D CLSD", end=now)
        kept = make_record("!MGM 10/062 MGM TWY E CLSD", hours=2)
        for rec in (gone, edge, kept):
            store.upsert(rec)

        assert store.sweep(now) == 2
        assert [r.id for r in store.records()] == ["MGM 10/062"]
        assert store.get("MGM 10/062") is kept
        assert store.sweep(now) == 0

    def test_sweep_rejects_bad_clock(self, store):
        with pytest.raises(TypeError):
            store.sweep("2025-10-15T12:00:00Z")
        with pytest.raises(ValueError):
            store.sweep(datetime(2025, 10, 15, 12, 0))

    def test_query_active_sorted_and_stable(self, store, make_record, now):
        texts = [
            "!MGM 10/070 MGM AD AP BIRD ACTIVITY",          # MEDIUM
            "!MGM 10/071 MGM RWY 10/28 CLSD",               # CRITICAL
            "!MGM 10/072 MGM AIRSHOW",                      # INFO
            "!MGM 10/073 MGM OBST CRANE 200FT AGL",         # HIGH
            "!MGM 10/074 MGM TWY B CLSD",                   # CRITICAL, arrived later
            "!MGM 10/075 MGM RWY 28 PAPI UNMONITORED",      # MEDIUM, arrived later
        ]
        for t in texts:
            store.upsert(make_record(t))

        active = store.query_active("KMGM", now)
        assert [r.id[-3:] for r in active] == ["071", "074", "073", "070", "075", "072"]
        assert [r.severity for r in active] == sorted(r.severity for r in active)
        assert active[0].severity is Severity.CRITICAL

    def test_query_active_filters_location_and_expiry(self, store, make_record, now):
        store.upsert(make_record("!MGM 10/080 MGM TWY A CLSD"))
        store.upsert(make_record("!BHM 10/001 BHM TWY A CLSD", location="KBHM"))
        store.upsert(make_record("!MGM 10/081 MGM TWY B CLSD", end=now - timedelta(seconds=1)))
        assert [r.id for r in store.query_active("kmgm", now)] == ["MGM 10/080"]
        assert [r.id for r in store.query_active("KBHM", now)] == ["BHM 10/001"]
        assert store.query_active("KXYZ", now) == []

    def test_replaced_record_moves_to_back_of_tier(self, store, make_record, now):
        store.upsert(make_record("!MGM 10/090 MGM TWY A CLSD"))
        store.upsert(make_record("!MGM 10/091 MGM TWY B CLSD"))
        store.upsert(make_record("!MGM 10/090 MGM TWY A CLSD WEST"))
        assert [r.id for r in store.query_active("KMGM", now)] == ["MGM 10/091", "MGM 10/090"]

    def test_remove(self, store, make_record):
        store.upsert(make_record("!MGM 10/095 MGM TWY A CLSD"))
        before = store._records
        assert store.remove("MGM 10/095") is True
        assert "MGM 10/095" not in store
        assert "MGM 10/095" in before
        assert store.remove("MGM 10/095") is False


class TestReplaceSourceBatch:
    @pytest.fixture
    def store(self, make_record):
        store = NotamStore()
        store.upsert(make_record("!MGM 10/100 MGM TWY A CLSD", source=Source.FEED))
        store.upsert(make_record("!MGM 10/101 MGM TWY B CLSD", source=Source.FALLBACK))
        store.upsert(make_record("!MGM 10/102 MGM TWY C CLSD", source=Source.FALLBACK))
        store.upsert(make_record("!BHM 10/001 BHM TWY A CLSD", source=Source.FALLBACK, location="KBHM"))
        return store

    def test_swaps_only_matching_source_and_location(self, store, make_record):
        batch = [
            make_record("!MGM 10/102 MGM TWY C CLSD", source=Source.FALLBACK),
            make_record("!MGM 10/103 MGM TWY D CLSD", source=Source.FALLBACK),
        ]
        removed, inserted = store.replace_source_batch(Source.FALLBACK, "KMGM", batch)
        assert (removed, inserted) == (2, 2)
        assert "MGM 10/101" not in store
        assert {"MGM 10/100", "MGM 10/102", "MGM 10/103", "BHM 10/001"} == {r.id for r in store.records()}
        assert store.get("MGM 10/100").source is Source.FEED

    def test_batch_takes_over_a_feed_id(self, store, make_record):
        batch = [make_record("!MGM 10/100 MGM TWY A CLSD", source=Source.FALLBACK)]
        store.replace_source_batch(Source.FALLBACK, "KMGM", batch)
        assert store.get("MGM 10/100").source is Source.FALLBACK
        assert len(store) == 2

    def test_duplicate_ids_in_batch(self, store, make_record):
        batch = [
            make_record("!MGM 10/110 MGM TWY F CLSD", source=Source.FALLBACK),
            make_record("!MGM 10/110 MGM TWY F CLSD EXC HEL", source=Source.FALLBACK),
        ]
        assert store.replace_source_batch(Source.FALLBACK, "KMGM", batch) == (2, 1)
        assert store.get("MGM 10/110").canonical_text.endswith("EXC HEL")

    def test_empty_batch_refused(self, store):
        with pytest.raises(ValueError):
            store.replace_source_batch(Source.FALLBACK, "KMGM", [])
        assert len(store) == 4

    def test_mismatched_record_refused(self, store, make_record):
        with pytest.raises(ValueError):
            store.replace_source_batch(Source.FALLBACK, "KMGM", [make_record("!MGM 10/120 MGM TWY G CLSD")])
        with pytest.raises(ValueError):
            store.replace_source_batch(
                Source.FALLBACK, "KMGM",
                [make_record("!BHM 10/002 BHM TWY B CLSD", source=Source.FALLBACK, location="KBHM")],
            )
        assert len(store) == 4
