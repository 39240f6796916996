# test/test_records.py
from datetime import datetime, timedelta, timezone

import pytest

from airfield.core.enums import Severity, Source
from airfield.core.records import (
    build_record, extract_location, extract_notam_id, extract_supersedes, extract_validity, resolve_location,
    surrogate_id,
)
from airfield.timeutils import parse_notam_time


@pytest.mark.parametrize("text,expected", [
    ("!MGM 10/045 MGM RWY 10/28 CLSD", "MGM 10/045"),
    ("!FDC 5/1234 ZJX AL..AIRSPACE MONTGOMERY", "FDC 5/1234"),
    ("A1234/25 NOTAMN Q) KZTL/QMRLC A) KMGM", "A1234/25"),
    ("TWY A CLSD", None),
    (None, None),
])
def test_extract_notam_id(text, expected):
    assert extract_notam_id(text) == expected


@pytest.mark.parametrize("text,expected", [
    ("A1234/25 A) KMGM B) 2510151200", "KMGM"),
    ("!MGM 10/045 MGM RWY 10/28 CLSD", "MGM"),
    ("!FDC 5/1234 MGM IAP MONTGOMERY RGNL", "MGM"),
    ("TWY A CLSD", None),
])
def test_extract_location(text, expected):
    assert extract_location(text) == expected


@pytest.mark.parametrize("code,expected", [
    ("MGM", "KMGM"),
    ("mgm", "KMGM"),
    ("BHM", "KBHM"),
    ("KMGM", "KMGM"),
    ("", None),
    (None, None),
    ("X", None),
])
def test_resolve_location(code, expected):
    assert resolve_location(code, "KMGM") == expected


def test_resolve_location_non_k_airfield():
    assert resolve_location("ABC", "PABC") == "PABC"


class TestExtractValidity:
    def test_icao_fields(self):
        v = extract_validity("A1234/25 A) KMGM B) 2510151200 C) 2510201800 EST E) TWY A CLSD")
        assert v.start == datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)
        assert v.end == datetime(2025, 10, 20, 18, 0, tzinfo=timezone.utc)
        assert v.estimated is True

    def test_icao_perm(self):
        v = extract_validity("A1234/25 A) KMGM B) 2510151200 C) PERM E) OBST")
        assert v.start is not None
        assert v.end is None

    def test_domestic_range(self):
        v = extract_validity("!MGM 10/045 MGM RWY 10/28 CLSD 2510151200-2510201200")
        assert v.start == parse_notam_time("2510151200")
        assert v.end == parse_notam_time("2510201200")
        assert v.estimated is False

    def test_domestic_est_and_perm(self):
        assert extract_validity("!MGM 10/046 MGM NAV TACAN U/S 2510151000-2510161000EST").estimated is True
        assert extract_validity("!MGM 10/047 MGM OBST TOWER 2510151000-PERM").end is None

    def test_nothing(self):
        v = extract_validity("TWY A CLSD")
        assert (v.start, v.end, v.estimated) == (None, None, False)


def test_surrogate_id_is_stable():
    a = surrogate_id("KMGM", "TWY A CLSD")
    assert a == surrogate_id("KMGM", "TWY A CLSD")
    assert a.startswith("UNK-") and len(a) == 16
    assert a != surrogate_id("KBHM", "TWY A CLSD")


class TestBuildRecord:
    def test_parsed_window(self, normalizer, now):
        rec = build_record(
            "!MGM 10/045 MGM RWY 10/28 CLSD 2510151200-2510201200\nCREATED: 15 Oct 2025 11:58:00",
            source=Source.FALLBACK, location="KMGM", normalizer=normalizer, now=now,
        )
        assert rec.id == "MGM 10/045"
        assert rec.severity is Severity.CRITICAL
        assert rec.canonical_text == "!MGM 10/045 MGM RWY 10/28 CLSD 2510151200-2510201200"
        assert rec.effective_end == datetime(2025, 10, 20, 12, 0, tzinfo=timezone.utc)
        assert rec.end_estimated is False
        assert rec.received_at == now

    def test_default_horizon(self, normalizer, now):
        rec = build_record("TWY A CLSD", source=Source.FALLBACK, location="KMGM", normalizer=normalizer, now=now)
        assert rec.id == surrogate_id("KMGM", "TWY A CLSD")
        assert rec.effective_start == now
        assert rec.effective_end == now + timedelta(hours=24)
        assert rec.end_estimated is True

    def test_perm_gets_horizon(self, normalizer, now):
        rec = build_record(
            "!MGM 10/047 MGM OBST TOWER 2510151000-PERM",
            source=Source.FEED, location="KMGM", normalizer=normalizer, now=now,
            default_validity=timedelta(hours=6),
        )
        assert rec.effective_end == now + timedelta(hours=6)
        assert rec.end_estimated is True

    def test_explicit_fields_win(self, normalizer, now):
        end = now + timedelta(days=3)
        rec = build_record(
            "TWY B CLSD 2510151200-2510151300", source=Source.FEED, location="KMGM",
            normalizer=normalizer, notam_id="10/099", end=end, now=now,
        )
        assert rec.id == "10/099"
        assert rec.effective_end == end
        assert rec.end_estimated is False

    def test_header_id_beats_message_number(self, normalizer, now):
        rec = build_record(
            "!MGM 10/045 MGM RWY 10/28 CLSD", source=Source.FEED, location="KMGM",
            normalizer=normalizer, notam_id="10/045", now=now,
        )
        assert rec.id == "MGM 10/045"

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty(self, normalizer, now, raw):
        assert build_record(raw, source=Source.FEED, location="KMGM", normalizer=normalizer, now=now) is None

    def test_cancellation_keeps_its_own_id(self, normalizer, now):
        rec = build_record(
            "A1235/25 NOTAMC A1234/25 A) KMGM E) ILS RWY 10 U/S", source=Source.FEED, location="KMGM",
            normalizer=normalizer, now=now,
        )
        assert rec.id == "A1235/25"
        assert rec.supersedes == "A1234/25"
        assert rec.is_cancellation is True

    def test_new_notice_supersedes_nothing(self, normalizer, now):
        rec = build_record(
            "A1234/25 NOTAMN A) KMGM E) TWY A CLSD", source=Source.FEED, location="KMGM",
            normalizer=normalizer, now=now,
        )
        assert rec.supersedes is None
        assert rec.is_cancellation is False


@pytest.mark.parametrize("text,expected", [
    ("A1235/25 NOTAMR A1234/25 A) KMGM E) TWY A CLSD", ("A1234/25", False)),
    ("a1235/25 notamc a1234/25 a) kmgm", ("A1234/25", True)),
    ("A1234/25 NOTAMN A) KMGM", (None, False)),
    ("!MGM 10/045 MGM RWY 10/28 CLSD", (None, False)),
    (None, (None, False)),
])
def test_extract_supersedes(text, expected):
    assert extract_supersedes(text) == expected
