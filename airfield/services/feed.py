# airfield/services/feed.py
"""
Push side of the ingestion: a reconnecting consumer of the SWIM NOTAM queue.

The messaging SDK calls back from its own threads. Those callbacks only hop
onto the event loop (``call_soon_threadsafe``) and land in two queues:

* connection events, which drive DISCONNECTED -> CONNECTING -> CONNECTED -> BOUND
  and the fixed-backoff reconnect, and
* inbound messages, which one consumer task turns into FEED records one at a time.

A message that cannot be decoded, parsed or located is dropped; it never stops
the consumer.
"""
import asyncio
import json
import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from html import unescape
from typing import Any, Callable, Dict, Optional, Protocol, Set

from airfield.core.enums import FeedState, Source
from airfield.core.normalizer import TextNormalizer
from airfield.core.records import DEFAULT_VALIDITY, build_record, extract_location, resolve_location
from airfield.models import NotamRecord
from airfield.timeutils import parse_iso_to_utc, parse_notam_time, to_z, utcnow

log = logging.getLogger(__name__)

AIXM_NS = {
    "gml": "http://www.opengis.net/gml/3.2",
    "aixm": "http://www.aixm.aero/schema/5.1",
    "event": "http://www.aixm.aero/schema/5.1/event",
    "msg": "http://www.aixm.aero/schema/5.1/message",
    "fnse": "http://www.aixm.aero/schema/5.1/extensions/FAA/FNSE",
    "html": "http://www.w3.org/1999/xhtml",
}

_STOP = object()


class FeedTransport(Protocol):
    """Blocking broker binding; every call runs in a worker thread."""

    def connect(self, on_interrupted: Callable[[str], None]) -> None: ...

    def bind(self, queue_name: str, on_message: Callable[[Any], None]) -> None: ...

    def disconnect(self) -> None: ...


# ----------------- payload extraction -----------------

def _from_bytes(msg) -> Optional[str]:
    data = msg.get_payload_as_bytes()
    if not data:
        return None
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError:
        return None


def _from_text(msg) -> Optional[str]:
    return msg.get_payload_as_string() or None


def _from_container(msg) -> Optional[str]:
    d = msg.get_payload_as_dictionary()
    return json.dumps(d, default=str) if d else None


# Tried in order; first non-empty string wins.
PAYLOAD_EXTRACTORS = (
    ("binary", _from_bytes),
    ("text", _from_text),
    ("container", _from_container),
)


def extract_payload(msg) -> Optional[str]:
    if isinstance(msg, str):
        return msg if msg.strip() else None
    if isinstance(msg, (bytes, bytearray)):
        msg_text = bytes(msg).decode("utf-8", errors="replace")
        return msg_text if msg_text.strip() else None
    for name, extract in PAYLOAD_EXTRACTORS:
        try:
            value = extract(msg)
        except Exception as e:  # wrong payload type for this getter, missing getter, ...
            log.debug("Payload extractor %s not applicable: %s", name, e)
            continue
        if value and value.strip():
            return value
    return None


# ----------------- field parsing -----------------

def _end_time(value) -> Optional[datetime]:
    if value is None:
        return None
    s = str(value).strip().upper()
    if s.endswith("EST"):
        s = s[:-3].strip()
    return parse_notam_time(s) or parse_iso_to_utc(s)


def extract_notam_fields(payload: str) -> Dict[str, Any]:
    """
    Parse FAA AIM FNS payloads.
    Tries JSON first, then AIXM XML (with namespace-aware <pre> extraction), then raw text.
    Returns keys: text, notam_number, airport, issue_time, start, end.
    """
    payload = payload or ""

    # JSON path
    try:
        j = json.loads(payload)
    except ValueError:
        j = None
    if isinstance(j, dict):
        notam = j.get("notam") if isinstance(j.get("notam"), dict) else {}
        text = j.get("icaoMessage") or notam.get("icaoMessage") or j.get("TextNOTAM") or j.get("text")
        num = j.get("notamNumber") or notam.get("notamNumber") or j.get("NotamNumber")
        ap = (j.get("location") or j.get("stationId") or j.get("Designator")
              or j.get("Airport") or j.get("icaoLocation"))
        if text:
            return {
                "text": str(text),
                "notam_number": str(num).strip() if num else None,
                "airport": str(ap).strip().upper() if ap else None,
                "issue_time": parse_iso_to_utc(j.get("issueDate") or j.get("issueTime") or j.get("IssueTime")),
                "start": parse_iso_to_utc(j.get("effectiveStart") or j.get("startDate")),
                "end": _end_time(j.get("effectiveEnd") or j.get("endDate")),
            }

    # XML (AIXM 5.1) path
    root = None
    if payload.lstrip().startswith("<"):
        try:
            root = ET.fromstring(payload)
        except ET.ParseError as e:
            log.debug("Payload is not well-formed XML: %s", e)
    if root is not None:
        ns = AIXM_NS
        # Prefer ICAO formatted <pre> inside html:div (escaped)
        icao_msg = ""
        for div in root.findall(".//html:div", ns):
            txt = unescape("".join(div.itertext()).strip())
            if "<pre>" in txt:
                txt = txt.split("<pre>", 1)[1].split("</pre>", 1)[0]
            icao_msg = txt.strip()
            if icao_msg:
                break

        # Fallback: plain text field in event:NOTAM
        if not icao_msg:
            tnode = root.find(".//event:textNOTAM/event:NOTAM/event:text", ns)
            if tnode is None:
                tnode = root.find(".//event:NOTAM/event:text", ns)
            if tnode is not None and (tnode.text or "").strip():
                icao_msg = tnode.text.strip()

        def _t(path: str) -> str:
            return (root.findtext(path, default="", namespaces=ns) or "").strip()

        # series + number + year => e.g. X6073/25
        series, number, year = _t(".//event:NOTAM/event:series"), _t(".//event:NOTAM/event:number"), _t(".//event:NOTAM/event:year")
        notam_no = f"{series}{number}/{year[-2:]}" if (series and number and year) else None

        if icao_msg:
            return {
                "text": icao_msg,
                "notam_number": notam_no,
                "airport": _t(".//event:NOTAM/event:location").upper() or None,
                "issue_time": parse_iso_to_utc(_t(".//event:NOTAM/event:issued")),
                "start": parse_iso_to_utc(_t(".//event:NOTAM/event:effectiveStart")),
                "end": _end_time(_t(".//event:NOTAM/event:effectiveEnd") or None),
            }
        return {"text": None}

    # Fallback: raw
    return {
        "text": payload.strip() or None,
        "notam_number": None,
        "airport": None,
        "issue_time": None,
        "start": None,
        "end": None,
    }


# ----------------- listener -----------------

class FeedListener:
    def __init__(
        self,
        transport_factory: Callable[[], FeedTransport],
        *,
        queue_name: str,
        airfield: str,
        normalizer: TextNormalizer,
        sink: Callable[[NotamRecord], Any],
        reconnect_backoff_sec: float = 10.0,
        connect_timeout_sec: float = 30.0,
        max_inflight: int = 500,
        default_validity=DEFAULT_VALIDITY,
    ):
        self.transport_factory = transport_factory
        self.queue_name = queue_name
        self.airfield = airfield.strip().upper()
        self.normalizer = normalizer
        self.sink = sink
        self.reconnect_backoff_sec = reconnect_backoff_sec
        self.connect_timeout_sec = connect_timeout_sec
        self.max_inflight = max_inflight
        self.default_validity = default_validity

        self.state = FeedState.DISCONNECTED
        self.last_error: Optional[str] = None
        self.connected_since: Optional[datetime] = None
        self.stats = {"received": 0, "accepted": 0, "dropped": 0, "errors": 0, "reconnects": 0}

        self._transport: Optional[FeedTransport] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._messages: Optional[asyncio.Queue] = None
        self._events: Optional[asyncio.Queue] = None
        self._stopping = False
        self._late_connects: Set[asyncio.Task] = set()

    # ---- SDK thread -> loop bridge ----

    def _post(self, queue: Optional[asyncio.Queue], item) -> None:
        loop = self._loop
        if loop is None or queue is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(queue.put_nowait, item)
        except RuntimeError:
            # loop shut down between the check and the call
            log.debug("Dropping SDK callback: event loop is closed")

    def _on_message(self, msg) -> None:
        self._post(self._messages, msg)

    def _interrupted_by(self, transport: FeedTransport) -> Callable[[str], None]:
        def on_interrupted(reason: str) -> None:
            self._post(self._events, (transport, reason or "connection lost"))
        return on_interrupted

    # ---- state machine ----

    def _set_state(self, state: FeedState) -> None:
        if state is not self.state:
            log.info("📡 Feed %s -> %s", self.state.value, state.value)
            self.state = state

    def stop(self) -> None:
        """Ask run() to wind down. Call from the event loop thread."""
        self._stopping = True
        if self._events is not None:
            self._events.put_nowait(_STOP)

    async def run(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._messages = asyncio.Queue()
        self._events = asyncio.Queue()
        consumer = asyncio.create_task(self._consume(), name="feed-consumer")
        try:
            while not self._stopping:
                if await self._connect_and_bind():
                    reason = await self._next_interruption()
                    if reason is _STOP:
                        break
                    self.last_error = str(reason)
                    log.warning("⚠️ Feed connection lost: %s", reason)
                await self._teardown()
                self._set_state(FeedState.DISCONNECTED)
                if self._stopping:
                    break
                log.info("⏳ Reconnecting to feed in %.0fs", self.reconnect_backoff_sec)
                if await self._sleep_unless_stopped(self.reconnect_backoff_sec):
                    break
                self.stats["reconnects"] += 1
        finally:
            await self._teardown()
            self._set_state(FeedState.DISCONNECTED)
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)
            if self._late_connects:
                await asyncio.wait(set(self._late_connects), timeout=self.connect_timeout_sec)
            log.info("Feed listener stopped")

    async def _sleep_unless_stopped(self, seconds: float) -> bool:
        """Backoff sleep; True if stop() was called meanwhile. Late events from the dead link are ignored."""
        deadline = self._loop.time() + seconds
        while True:
            remaining = deadline - self._loop.time()
            if remaining <= 0:
                return self._stopping
            try:
                event = await asyncio.wait_for(self._events.get(), timeout=remaining)
            except asyncio.TimeoutError:
                return self._stopping
            if event is _STOP:
                return True

    async def _next_interruption(self):
        """Wait for stop() or an interruption of the current session."""
        while True:
            event = await self._events.get()
            if event is _STOP:
                return _STOP
            source, reason = event
            if source is self._transport:
                return reason
            log.debug("Ignoring interruption from a retired session: %s", reason)

    def _drain_stale_events(self) -> None:
        while not self._events.empty():
            if self._events.get_nowait() is _STOP:
                self._stopping = True

    async def _connect_and_bind(self) -> bool:
        self._drain_stale_events()
        if self._stopping:
            return False
        self._set_state(FeedState.CONNECTING)
        transport = self.transport_factory()
        self._transport = transport
        connecting = asyncio.ensure_future(
            asyncio.to_thread(transport.connect, self._interrupted_by(transport))
        )
        try:
            try:
                await asyncio.wait_for(asyncio.shield(connecting), timeout=self.connect_timeout_sec)
            except asyncio.TimeoutError:
                # the worker thread keeps going; close the session if it comes up late
                self._transport = None
                reaper = asyncio.create_task(self._close_late_connect(transport, connecting))
                self._late_connects.add(reaper)
                reaper.add_done_callback(self._late_connects.discard)
                raise
            self._set_state(FeedState.CONNECTED)
            await asyncio.wait_for(
                asyncio.to_thread(transport.bind, self.queue_name, self._on_message),
                timeout=self.connect_timeout_sec,
            )
        except asyncio.TimeoutError:
            self.last_error = f"connect timeout>{self.connect_timeout_sec:.0f}s"
            log.error("❌ Feed connect timed out after %.0fs", self.connect_timeout_sec)
            return False
        except Exception as e:
            self.last_error = str(e) or e.__class__.__name__
            log.error("❌ Feed connect failed: %s", self.last_error)
            return False

        self._set_state(FeedState.BOUND)
        self.last_error = None
        self.connected_since = utcnow()
        log.info("✅ Receiving on queue: %s", self.queue_name)
        return True

    async def _close_late_connect(self, transport: FeedTransport, connecting: asyncio.Future) -> None:
        try:
            await connecting
        except Exception as e:
            log.debug("Abandoned feed connect failed on its own: %s", e)
            return
        log.warning("Feed session came up after its connect timeout; closing it")
        try:
            await asyncio.to_thread(transport.disconnect)
        except Exception as e:
            log.warning("Could not close late feed session: %s", e)

    async def _teardown(self) -> None:
        transport, self._transport = self._transport, None
        self.connected_since = None
        if transport is None:
            return
        try:
            await asyncio.wait_for(asyncio.to_thread(transport.disconnect), timeout=self.connect_timeout_sec)
        except Exception as e:
            log.warning("Feed disconnect did not complete cleanly: %s", e)

    # ---- messages ----

    async def _consume(self) -> None:
        while True:
            msg = await self._messages.get()
            backlog = self._messages.qsize()
            if backlog > self.max_inflight:
                log.warning("Backpressure: %d messages buffered (max %d)", backlog, self.max_inflight)
            try:
                self.handle_message(msg)
            except Exception as e:
                self.stats["errors"] += 1
                log.exception("Message handling error: %s", e)

    def _drop(self, why: str) -> None:
        self.stats["dropped"] += 1
        log.debug("Dropped feed message: %s", why)

    def handle_message(self, msg) -> Optional[NotamRecord]:
        """Decode, filter and hand one message to the sink. Returns the record, or None if dropped."""
        self.stats["received"] += 1

        payload = extract_payload(msg)
        if not payload:
            self._drop("no payload")
            return None

        fields = extract_notam_fields(payload)
        text = fields.get("text")
        if not text:
            self._drop("no NOTAM text")
            return None

        location = resolve_location(fields.get("airport"), self.airfield)
        if location is None:
            location = resolve_location(extract_location(self.normalizer.normalize(text)), self.airfield)
        if location != self.airfield:
            self._drop(f"location {location or 'UNKNOWN'}")
            return None

        rec = build_record(
            text,
            source=Source.FEED,
            location=location,
            normalizer=self.normalizer,
            notam_id=fields.get("notam_number"),
            start=fields.get("start"),
            end=fields.get("end"),
            default_validity=self.default_validity,
        )
        if rec is None:
            self._drop("empty after normalization")
            return None

        self.sink(rec)
        self.stats["accepted"] += 1
        log.info("📥 FEED %s [%s] %s", rec.id, rec.severity.name, rec.canonical_text[:80])
        return rec

    def status(self) -> dict:
        return {
            "state": self.state.value,
            "queue": self.queue_name,
            "connected_since": to_z(self.connected_since),
            "last_error": self.last_error,
            **self.stats,
        }
