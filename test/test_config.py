# test/test_config.py
import pytest

from airfield.config import DEFAULT_AIRFIELD_NAMES, FeedSettings, Settings

SWIM_ENV = {
    "SWIM_HOST": "tcps://ems1.swim.faa.gov:55443",
    "SWIM_VPN": "AIM_FNS",
    "SWIM_USERNAME": "user",
    "SWIM_PASSWORD": "secret",
    "SWIM_QUEUE": "user.FNS.NOTAM.Q",
}

ALL_VARS = list(SWIM_ENV) + [
    "AIRFIELD", "AIRFIELD_NAMES", "SWIM_TRUST_STORE_PEM", "SWIM_RECONNECT_BACKOFF_SEC",
    "SCRAPE_URL_TEMPLATE", "SCRAPE_VERIFY_TLS", "SCRAPE_INTERVAL_MIN", "NAVAID_OVERRIDE_TTL_MIN", "PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ALL_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = Settings.from_env()
    assert s.airfield == "KMGM"
    assert s.airfield_names == list(DEFAULT_AIRFIELD_NAMES)
    assert s.feed is None
    assert s.scrape.interval_min == 15
    assert s.scrape.verify_tls is True
    assert s.navaid_override_ttl_min == 240
    assert s.port == 10000


def test_overrides(monkeypatch):
    monkeypatch.setenv("AIRFIELD", "kbhm")
    monkeypatch.setenv("AIRFIELD_NAMES", "Birmingham-Shuttlesworth Intl | Birmingham Intl")
    monkeypatch.setenv("SCRAPE_URL_TEMPLATE", "https://ourairports.com/airports/{location}/notams.html")
    monkeypatch.setenv("SCRAPE_VERIFY_TLS", "no")
    monkeypatch.setenv("PORT", "8080")
    s = Settings.from_env()
    assert s.airfield == "KBHM"
    assert s.airfield_names == ["Birmingham-Shuttlesworth Intl", "Birmingham Intl"]
    assert s.scrape.verify_tls is False
    assert s.port == 8080


def test_bad_airfield(monkeypatch):
    monkeypatch.setenv("AIRFIELD", "MGM")
    with pytest.raises(RuntimeError):
        Settings.from_env()


def test_feed_configured(monkeypatch):
    for k, v in SWIM_ENV.items():
        monkeypatch.setenv(k, v)
    monkeypatch.setenv("SWIM_RECONNECT_BACKOFF_SEC", "3")
    feed = FeedSettings.from_env()
    assert feed.queue == "user.FNS.NOTAM.Q"
    assert feed.reconnect_backoff_sec == 3
    assert feed.trust_store is None


def test_feed_half_configured(monkeypatch):
    monkeypatch.setenv("SWIM_HOST", SWIM_ENV["SWIM_HOST"])
    with pytest.raises(RuntimeError, match="SWIM_VPN"):
        FeedSettings.from_env()


def test_configure_logging_writes_file(tmp_path):
    import logging

    from airfield.logs import configure_logging

    root = logging.getLogger()
    saved = root.handlers[:], root.level
    try:
        configure_logging("debug", str(tmp_path / "logs"))
        assert root.level == logging.DEBUG
        logging.getLogger("airfield.test").info("hello")
        for h in root.handlers:
            h.flush()
        assert "hello" in (tmp_path / "logs" / "airfield_notams.log").read_text(encoding="utf-8")
        assert logging.getLogger("apscheduler").level == logging.WARNING
    finally:
        for h in root.handlers:
            if h not in saved[0]:
                h.close()
        root.handlers, root.level = saved
