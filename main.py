# main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from airfield.config import Settings
from airfield.logs import configure_logging
from airfield.models import HealthOut, NavaidOverrideIn, NotamListOut, NotamOut
from airfield.pipeline import NotamHub
from airfield.scheduler import build_scheduler

log = logging.getLogger(__name__)


async def _start_background(app: FastAPI) -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_dir)
    hub = NotamHub.from_settings(settings)
    app.state.hub = hub

    log.info("=" * 60)
    log.info("🛫 Airfield NOTAM service for %s", settings.airfield)
    log.info("Scrape: every %.0f min from %s", settings.scrape.interval_min, hub.scraper.url)
    log.info("Sweep: every %.0f min", settings.sweep_interval_min)

    feed = settings.feed
    if feed:
        from airfield.services.solace_transport import SolaceTransport

        listener = hub.attach_feed(
            lambda: SolaceTransport(feed),
            queue_name=feed.queue,
            reconnect_backoff_sec=feed.reconnect_backoff_sec,
            connect_timeout_sec=feed.connect_timeout_sec,
            max_inflight=feed.max_inflight,
        )
        app.state.feed_task = asyncio.create_task(listener.run(), name="feed-listener")
        log.info("Feed: %s queue %s", feed.host, feed.queue)
    else:
        log.info("🌍 SWIM feed not configured; running on fallback scrape only")
    log.info("=" * 60)

    scheduler = build_scheduler(
        hub,
        scrape_interval_min=settings.scrape.interval_min,
        sweep_interval_min=settings.sweep_interval_min,
    )
    scheduler.start()
    app.state.scheduler = scheduler


async def _stop_background(app: FastAPI) -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    hub: Optional[NotamHub] = app.state.hub
    task = getattr(app.state, "feed_task", None)
    if hub is not None and hub.listener is not None:
        hub.listener.stop()
    if task is not None:
        try:
            await asyncio.wait_for(task, timeout=15)
        except asyncio.TimeoutError:
            log.warning("Feed listener did not stop in time; cancelling")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


def create_app(hub: Optional[NotamHub] = None) -> FastAPI:
    """
    With no hub, the app builds one from the environment on startup and runs
    the feed listener and timers. With a hub, it only serves reads.
    """
    background = hub is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if background:
            await _start_background(app)
        try:
            yield
        finally:
            if background:
                await _stop_background(app)

    app = FastAPI(
        title="Airfield NOTAM API",
        version="1.0.0",
        description="Active NOTAMs and derived navaid status for one airfield",
        lifespan=lifespan,
    )
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_hub(request: Request) -> NotamHub:
        hub = request.app.state.hub
        if hub is None:
            raise HTTPException(status_code=503, detail="Service is starting")
        return hub

    # -------------------- Public Routes --------------------
    @app.get("/")
    async def root():
        return {"message": "✅ NOTAM API is running. Use /api/notams and /api/navaids.", "version": "1.0.0"}

    @app.get("/ping")
    async def ping():
        return {"message": "pong", "timestamp": datetime.now().isoformat()}

    @app.get("/health", response_model=HealthOut)
    async def health_check(hub: NotamHub = Depends(get_hub)):
        return {"status": "healthy", "timestamp": datetime.now().isoformat(), **hub.health()}

    @app.get("/api/notams", response_model=NotamListOut)
    async def list_notams(
        location: Optional[str] = Query(None, description="4-letter ICAO code; defaults to the airfield"),
        icao: Optional[str] = Query(None, description="Alias of location"),
        hub: NotamHub = Depends(get_hub),
    ):
        code = (location or icao or hub.airfield).strip().upper()
        return {
            "notams": [
                NotamOut(id=r.id, text=r.canonical_text, severity=r.severity.name)
                for r in hub.notams(code)
            ]
        }

    @app.get("/api/navaids", response_model=Dict[str, str])
    async def list_navaids(hub: NotamHub = Depends(get_hub)):
        return {nid: st.value for nid, st in hub.navaids().navaids.items()}

    @app.get("/api/navaids/status")
    async def navaid_status(hub: NotamHub = Depends(get_hub)):
        return hub.navaids().model_dump(mode="json")

    @app.put("/api/navaids/{navaid}", response_model=Dict[str, str])
    async def override_navaid(navaid: str, body: NavaidOverrideIn, hub: NotamHub = Depends(get_hub)):
        try:
            status = hub.set_override(navaid, body.state)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown navaid: {navaid}")
        return {nid: st.value for nid, st in status.navaids.items()}

    @app.delete("/api/navaids/{navaid}", response_model=Dict[str, str])
    async def clear_navaid_override(navaid: str, hub: NotamHub = Depends(get_hub)):
        try:
            status = hub.clear_override(navaid)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown navaid: {navaid}")
        return {nid: st.value for nid, st in status.navaids.items()}

    # -------------------- Error Handlers --------------------
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.detail,
                "status_code": exc.status_code,
                "timestamp": datetime.now().isoformat(),
            },
        )

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Settings.from_env().port)
