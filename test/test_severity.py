# test/test_severity.py
import pytest

from airfield.core.enums import Severity
from airfield.core.severity import classify_severity


@pytest.mark.parametrize("text,expected", [
    ("!MGM 10/045 MGM RWY 10/28 CLSD", Severity.CRITICAL),
    ("!MGM 10/046 MGM NAV TACAN U/S", Severity.CRITICAL),
    ("ILS RWY 28 OUT OF SERVICE", Severity.CRITICAL),
    ("!MGM 10/047 MGM OBST CRANE 200FT AGL", Severity.HIGH),
    ("TWY B WORK IN PROGRESS", Severity.HIGH),
    ("OBSTACLE LGT U/S", Severity.CRITICAL),   # first tier wins
    ("RWY 10 PAPI UNMONITORED", Severity.MEDIUM),
    ("BIRD ACTIVITY VICINITY OF AD", Severity.MEDIUM),
    ("AIRSHOW ACFT WILL BE ON FREQ", Severity.INFO),
    ("", Severity.INFO),
    (None, Severity.INFO),
])
def test_classify(text, expected):
    assert classify_severity(text) is expected


def test_case_insensitive():
    assert classify_severity("rwy 10/28 clsd") is Severity.CRITICAL


@pytest.mark.parametrize("text", ["CONSTANT RATE", "WIPER", "CLOSEDOWN"])
def test_whole_words_only(text):
    assert classify_severity(text) is Severity.INFO


def test_ordering_is_most_urgent_first():
    assert sorted([Severity.INFO, Severity.CRITICAL, Severity.MEDIUM, Severity.HIGH]) == [
        Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.INFO,
    ]


@pytest.mark.parametrize("text,expected", [
    ("!MGM 10/001 MGM AD AP TWO CRANES 150FT AGL", Severity.HIGH),
    ("!MGM 10/002 MGM OBSTRUCTIONS NEAR TWY A", Severity.HIGH),
    ("!MGM 10/003 MGM AIRSPACE RESTRICTIONS IN EFFECT", Severity.HIGH),
    ("!MGM 10/004 MGM RWY 10 UNLGTD", Severity.MEDIUM),
    ("!MGM 10/005 MGM TWY A UNLIGHTED", Severity.MEDIUM),
])
def test_inflected_forms(text, expected):
    assert classify_severity(text) is expected
