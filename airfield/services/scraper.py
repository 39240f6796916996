# airfield/services/scraper.py
import asyncio
import html as html_lib
import logging
import random
import re
import time
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

import requests
from bs4 import BeautifulSoup

from airfield.config import DINS_URL_TEMPLATE
from airfield.core.enums import Source
from airfield.core.normalizer import TextNormalizer, looks_like_notam
from airfield.core.records import DEFAULT_VALIDITY, build_record
from airfield.models import NotamRecord
from airfield.timeutils import to_z, utcnow

log = logging.getLogger(__name__)

HEADERS = {"User-Agent": "Mozilla/5.0", "Accept": "text/html"}


def _get_with_backoff(url, headers=None, attempts=1, timeout=20, base=0.5, verify=True):
    headers = headers or {}
    attempts = max(1, int(attempts))
    for i in range(attempts):
        try:
            return requests.get(url, headers=headers, timeout=timeout, verify=verify)
        except requests.RequestException as e:
            if i == attempts - 1:
                raise
            sleep = base * (2 ** i) + random.random() * 0.2
            log.warning(
                "HTTP error fetching %s (try %d/%d): %s; retrying in %.2fs",
                url, i + 1, attempts, e, sleep
            )
            time.sleep(sleep)


# ----------------- parse strategies -----------------

_SEMANTIC_TAGS = ["pre", "article", "section"]
_CLASS_RE = re.compile("notam", re.I)

_HEADER = r"(?:!(?:FDC|[A-Z0-9]{3,4})\s|FDC\s+\d|[A-Z]\d{4}/\d{2}\s)"
_BLOCK_RE = re.compile(
    rf"(?:^|\n)[ \t]*({_HEADER}[\s\S]*?)(?=\n[ \t]*{_HEADER}|\n[ \t]*\n|\Z)"
)
# one element often holds many notices, one per header line
_SPLIT_RE = re.compile(rf"\n(?=[ \t]*{_HEADER})")
_LINEBREAK_TAG_RE = re.compile(r"<br\s*/?>|</(?:p|div|li|tr|pre|h\d)>", re.I)
_TAG_RE = re.compile(r"<[^>]+>")
_SCRIPT_RE = re.compile(r"<(script|style)\b[\s\S]*?</\1>", re.I)


def semantic_blocks(page: str, soup: BeautifulSoup) -> List[str]:
    out = []
    for el in soup.find_all(_SEMANTIC_TAGS):
        if el.find(_SEMANTIC_TAGS) is not None:
            continue  # innermost elements only
        out.extend(_SPLIT_RE.split(el.get_text("\n")))
    return out


def class_blocks(page: str, soup: BeautifulSoup) -> List[str]:
    found = soup.find_all(class_=_CLASS_RE) + soup.select("a[href*='notam-']")
    out, seen = [], set()
    for el in found:
        if id(el) in seen:
            continue
        seen.add(id(el))
        if el.find(class_=_CLASS_RE) is not None:
            continue  # a wrapper around the real entries
        out.append(el.get_text(" "))
    return out


def regex_blocks(page: str, soup: BeautifulSoup) -> List[str]:
    text = _SCRIPT_RE.sub(" ", page)
    text = _LINEBREAK_TAG_RE.sub("\n", text)
    text = html_lib.unescape(_TAG_RE.sub(" ", text))
    return [m.group(1) for m in _BLOCK_RE.finditer(text)]


Strategy = Callable[[str, BeautifulSoup], List[str]]

STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("semantic", semantic_blocks),
    ("class", class_blocks),
    ("regex", regex_blocks),
)


class FallbackScraper:
    """
    Pull-based baseline: fetch the per-location NOTAM listing page and parse it.

    scrape() never raises. Network errors, timeouts and pages where no strategy
    finds anything all come back as an empty batch; the caller keeps whatever
    fallback data it already had.
    """

    def __init__(
        self,
        location: str,
        normalizer: TextNormalizer,
        *,
        url_template: str = DINS_URL_TEMPLATE,
        timeout_sec: float = 20.0,
        attempts: int = 1,
        fetch_grace_sec: float = 5.0,
        verify_tls: bool = True,
        default_validity=DEFAULT_VALIDITY,
        fetch: Optional[Callable[[str], str]] = None,
        strategies: Sequence[Tuple[str, Strategy]] = STRATEGIES,
    ):
        self.location = location.strip().upper()
        self.normalizer = normalizer
        self.url_template = url_template
        self.timeout_sec = timeout_sec
        self.attempts = max(1, attempts)
        self.fetch_grace_sec = fetch_grace_sec
        self.verify_tls = verify_tls
        self.default_validity = default_validity
        self._fetch = fetch or self._fetch_html
        self.strategies = tuple(strategies)

        self.last_error: Optional[str] = None
        self.last_success_at: Optional[datetime] = None
        self.last_strategy: Optional[str] = None
        self.last_count = 0

    @property
    def url(self) -> str:
        return self.url_template.format(location=self.location)

    def _fetch_html(self, url: str) -> str:
        resp = _get_with_backoff(
            url, headers=HEADERS, attempts=self.attempts, timeout=self.timeout_sec, verify=self.verify_tls
        )
        resp.raise_for_status()
        return resp.text or ""

    def parse_blocks(self, page: str) -> Tuple[Optional[str], List[str]]:
        """First strategy with at least one NOTAM-looking block wins."""
        soup = BeautifulSoup(page or "", "html.parser")
        for name, strategy in self.strategies:
            try:
                raw_blocks = strategy(page or "", soup)
            except Exception:
                log.exception("Parse strategy %s blew up; trying next", name)
                continue
            blocks, seen = [], set()
            for raw in raw_blocks:
                canonical = self.normalizer.normalize(raw)
                if not looks_like_notam(canonical) or canonical in seen:
                    continue
                seen.add(canonical)
                blocks.append(raw)
            if blocks:
                log.debug("Strategy %s found %d block(s)", name, len(blocks))
                return name, blocks
            log.debug("Strategy %s found nothing", name)
        return None, []

    def to_records(self, blocks: List[str], now: Optional[datetime] = None) -> List[NotamRecord]:
        now = now or utcnow()
        out = []
        for raw in blocks:
            rec = build_record(
                raw.strip(),
                source=Source.FALLBACK,
                location=self.location,
                normalizer=self.normalizer,
                now=now,
                default_validity=self.default_validity,
            )
            if rec is not None:
                out.append(rec)
        return out

    async def scrape(self, now: Optional[datetime] = None) -> List[NotamRecord]:
        url = self.url
        log.info("🌐 Scraping NOTAMs for %s: %s", self.location, url)
        # requests' timeout is per socket op; this caps the whole fetch
        hard_cap = self.timeout_sec * self.attempts + self.fetch_grace_sec
        try:
            page = await asyncio.wait_for(asyncio.to_thread(self._fetch, url), timeout=hard_cap)
        except asyncio.TimeoutError:
            self.last_error = f"timeout>{hard_cap:g}s"
            log.error("❌ Scrape for %s timed out after %.0fs", self.location, hard_cap)
            return []
        except requests.RequestException as e:
            self.last_error = str(e) or e.__class__.__name__
            log.error("❌ Scrape for %s failed: %s", self.location, e)
            return []
        except Exception as e:
            self.last_error = str(e) or e.__class__.__name__
            log.exception("❌ Unexpected scrape error for %s", self.location)
            return []

        try:
            strategy, blocks = self.parse_blocks(page)
            records = self.to_records(blocks, now)
        except Exception as e:
            self.last_error = f"parse: {e}"
            log.exception("❌ Could not parse NOTAM page for %s", self.location)
            return []

        if not records:
            self.last_error = "no NOTAM blocks found"
            log.warning("⚠️ No NOTAMs parsed for %s (page length %d)", self.location, len(page or ""))
            return []

        self.last_error = None
        self.last_success_at = now or utcnow()
        self.last_strategy = strategy
        self.last_count = len(records)
        log.info("✅ Parsed %d NOTAM(s) for %s via %s strategy", len(records), self.location, strategy)
        return records

    def status(self) -> dict:
        return {
            "url": self.url,
            "last_success_at": to_z(self.last_success_at),
            "last_strategy": self.last_strategy,
            "last_count": self.last_count,
            "last_error": self.last_error,
        }
