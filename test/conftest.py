# test/conftest.py
from datetime import datetime, timedelta, timezone

import pytest

from airfield.core.enums import Source
from airfield.core.normalizer import TextNormalizer
from airfield.core.records import build_record

NOW = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def normalizer():
    return TextNormalizer("KMGM", ["Montgomery Regional Airport", "Montgomery Regional"])


@pytest.fixture
def make_record(normalizer, now):
    """Factory for records valid for `hours` from `now` unless told otherwise."""

    def _make(text, *, notam_id=None, source=Source.FEED, location="KMGM", hours=6, end=None, at=None):
        at = at or now
        return build_record(
            text,
            source=source,
            location=location,
            normalizer=normalizer,
            notam_id=notam_id,
            start=at - timedelta(hours=1),
            end=end or at + timedelta(hours=hours),
            now=at,
        )

    return _make
