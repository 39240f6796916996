# airfield/config.py
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()  # does nothing if no .env present

# --- defaults (override via env / .env) ---
DEFAULT_AIRFIELD = "KMGM"
DEFAULT_AIRFIELD_NAMES = (
    "Montgomery Regional (Dannelly Field) Airport",
    "Montgomery Regional (Dannelly Field)",
    "Montgomery Rgnl (Dannelly Fld)",
    "Montgomery Regional Airport",
    "Dannelly Field",
)
DINS_URL_TEMPLATE = (
    "https://www.notams.faa.gov/dinsQueryWeb/queryRetrievalMapAction.do"
    "?reportType=RAW&retrieveLocId={location}"
    "&actionType=notamRetrievalByICAOs&formatType=DOMESTIC"
)

_FEED_REQUIRED = ("SWIM_HOST", "SWIM_VPN", "SWIM_USERNAME", "SWIM_PASSWORD", "SWIM_QUEUE")


def _env(name: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    v = os.getenv(name, default)
    if required and not v:
        raise RuntimeError(f"Missing required env var: {name}")
    return v


def _truthy(val: str | None) -> bool:
    """Turn env var strings like '1', 'true', 'yes' into True."""
    return (val or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _split_names(val: str | None) -> List[str]:
    if not val:
        return list(DEFAULT_AIRFIELD_NAMES)
    return [n.strip() for n in val.split("|") if n.strip()]


class FeedSettings(BaseModel):
    """Solace / SWIM connection bits."""
    host: str                       # e.g. tcps://ems1.swim.faa.gov:55443
    vpn: str                        # AIM_FNS
    username: str
    password: str
    queue: str
    trust_store: Optional[str] = None   # DIRECTORY (or a file inside it) with PEM/CRT
    reconnect_backoff_sec: float = 10.0
    connect_timeout_sec: float = 30.0
    max_inflight: int = 500

    @classmethod
    def from_env(cls) -> Optional["FeedSettings"]:
        """None when the feed is not configured at all; RuntimeError when half configured."""
        present = [k for k in _FEED_REQUIRED if os.getenv(k)]
        if not present:
            return None
        return cls(
            host=_env("SWIM_HOST", required=True),
            vpn=_env("SWIM_VPN", required=True),
            username=_env("SWIM_USERNAME", required=True),
            password=_env("SWIM_PASSWORD", required=True),
            queue=_env("SWIM_QUEUE", required=True),
            trust_store=_env("SWIM_TRUST_STORE_PEM") or None,
            reconnect_backoff_sec=float(_env("SWIM_RECONNECT_BACKOFF_SEC", "10")),
            connect_timeout_sec=float(_env("SWIM_CONNECT_TIMEOUT_SEC", "30")),
            max_inflight=int(_env("SWIM_MAX_INFLIGHT", "500")),
        )


class ScrapeSettings(BaseModel):
    url_template: str = DINS_URL_TEMPLATE
    timeout_sec: float = 20.0
    attempts: int = 1
    verify_tls: bool = True
    interval_min: float = 15.0

    @classmethod
    def from_env(cls) -> "ScrapeSettings":
        return cls(
            url_template=_env("SCRAPE_URL_TEMPLATE", DINS_URL_TEMPLATE),
            timeout_sec=float(_env("SCRAPE_TIMEOUT_SEC", "20")),
            attempts=int(_env("SCRAPE_ATTEMPTS", "1")),
            verify_tls=_truthy(_env("SCRAPE_VERIFY_TLS", "true")),
            interval_min=float(_env("SCRAPE_INTERVAL_MIN", "15")),
        )


class Settings(BaseModel):
    airfield: str = DEFAULT_AIRFIELD
    airfield_names: List[str] = Field(default_factory=lambda: list(DEFAULT_AIRFIELD_NAMES))
    default_validity_hours: float = 24.0
    sweep_interval_min: float = 5.0
    navaid_override_ttl_min: float = 240.0
    feed: Optional[FeedSettings] = None
    scrape: ScrapeSettings = Field(default_factory=ScrapeSettings)
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    port: int = 10000

    @classmethod
    def from_env(cls) -> "Settings":
        airfield = (_env("AIRFIELD", DEFAULT_AIRFIELD) or DEFAULT_AIRFIELD).strip().upper()
        if len(airfield) != 4:
            raise RuntimeError(f"AIRFIELD must be a 4-letter ICAO code, got {airfield!r}")
        return cls(
            airfield=airfield,
            airfield_names=_split_names(_env("AIRFIELD_NAMES")),
            default_validity_hours=float(_env("DEFAULT_VALIDITY_HOURS", "24")),
            sweep_interval_min=float(_env("SWEEP_INTERVAL_MIN", "5")),
            navaid_override_ttl_min=float(_env("NAVAID_OVERRIDE_TTL_MIN", "240")),
            feed=FeedSettings.from_env(),
            scrape=ScrapeSettings.from_env(),
            log_level=_env("LOG_LEVEL", "INFO"),
            log_dir=_env("LOG_DIR") or None,
            port=int(_env("PORT", "10000")),
        )
