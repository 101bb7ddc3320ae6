import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from quicklinks import config, database, errors, schemas
from quicklinks.eventlog import EventLog
from quicklinks.registry import LinkRegistry
from quicklinks.storage import SqlSnapshotStore

# --- Logging ---
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger("quicklinks")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    database.init_db(database.engine)
    store = SqlSnapshotStore(database.SessionLocal)
    event_log = EventLog(
        store,
        flush_interval=config.SNAPSHOT_FLUSH_SECONDS,
        user_id=config.EVENT_LOG_USER_ID,
    )
    app.state.event_log = event_log
    app.state.registry = LinkRegistry(store, event_log, flush_interval=config.SNAPSHOT_FLUSH_SECONDS)
    yield
    # flush anything still pending before the process goes away
    app.state.registry.close()
    app.state.event_log.close()


app = FastAPI(
    title="Quick Links",
    description="Short links with click accounting and an in-process event log.",
    version="1.0.0",
    lifespan=lifespan,
)


def get_registry(request: Request) -> LinkRegistry:
    return request.app.state.registry


def get_event_log(request: Request) -> EventLog:
    return request.app.state.event_log


def public_base_url(request: Request) -> str:
    return config.PUBLIC_BASE_URL or str(request.base_url).rstrip("/")


def short_url(code: str, request: Request) -> str:
    prefix = "/r" if code in RESERVED else ""
    return f"{public_base_url(request)}{prefix}/{code}"


def to_out(record: schemas.LinkRecord, request: Request) -> schemas.LinkOut:
    return schemas.LinkOut(**record.model_dump(), short_url=short_url(record.short_code, request))


def get_link_or_404(registry: LinkRegistry, code: str) -> schemas.LinkRecord:
    record = registry.lookup(code)
    if record is None:
        raise HTTPException(status_code=404, detail=errors.LinkNotFound.default_message)
    return record


ERROR_STATUS = {
    errors.InvalidUrl: 400,
    errors.InvalidShortCode: 400,
    errors.ShortCodeTaken: 409,
    errors.CodeSpaceExhausted: 503,
    errors.LinkNotFound: 404,
}


# Health check (useful for uptime monitors & load balancers)
@app.get("/health", include_in_schema=False)
def health():
    return {"status": "ok", "env": config.ENVIRONMENT}


# ---------- Links ----------
@app.post("/links", response_model=schemas.LinkOut, status_code=201)
def create_link(link_in: schemas.LinkCreate, request: Request, registry: LinkRegistry = Depends(get_registry)):
    try:
        record = registry.shorten(link_in.original_url, link_in.custom_code)
    except errors.LinkError as exc:
        raise HTTPException(status_code=ERROR_STATUS.get(type(exc), 400), detail=str(exc))
    logger.info("Created link %s -> %s", record.short_code, record.original_url)
    return to_out(record, request)


@app.get("/links", response_model=list[schemas.LinkOut])
def list_links(request: Request, registry: LinkRegistry = Depends(get_registry)):
    return [to_out(record, request) for record in registry.list_all()]


@app.get("/links/{code}", response_model=schemas.LinkOut)
def get_link(code: str, request: Request, registry: LinkRegistry = Depends(get_registry)):
    return to_out(get_link_or_404(registry, code), request)


@app.post("/links/{code}/clicks", response_model=schemas.ClickOut)
def record_click(
    code: str,
    click: schemas.ClickIn | None = Body(None),
    registry: LinkRegistry = Depends(get_registry),
):
    click = click or schemas.ClickIn()
    if not registry.record_click(code, click.user_agent, click.referrer):
        raise HTTPException(status_code=404, detail=errors.LinkNotFound.default_message)
    record = registry.lookup(code)
    return {"ok": True, "click_count": record.click_count if record else 0}


@app.delete("/links/{code}", response_model=schemas.MessageOut)
def delete_link(code: str, registry: LinkRegistry = Depends(get_registry)):
    if not registry.delete(code):
        raise HTTPException(status_code=404, detail=errors.LinkNotFound.default_message)
    logger.info("Deleted link %s", code)
    return {"ok": True, "detail": f"Link '{code}' deleted"}


@app.get("/stats", response_model=schemas.LinkStats)
def get_stats(registry: LinkRegistry = Depends(get_registry)):
    return registry.compute_stats()


# ---------- Logs ----------
@app.get("/logs", response_model=list[schemas.LogEntry])
def list_logs(
    level: schemas.LogLevel | None = Query(None),
    q: str | None = Query(None, max_length=200),
    event_log: EventLog = Depends(get_event_log),
):
    return event_log.query(level=level, term=q)


@app.get("/logs/summary")
def logs_summary(event_log: EventLog = Depends(get_event_log)):
    return {"total": len(event_log), "levels": event_log.counts_by_level()}


@app.get("/logs/export")
def export_logs(event_log: EventLog = Depends(get_event_log)):
    data = event_log.export()
    stamp = data[0]["timestamp"][:10] if data else "empty"
    return JSONResponse(
        content=data,
        headers={"Content-Disposition": f'attachment; filename="quicklinks-logs-{stamp}.json"'},
    )


@app.delete("/logs", response_model=schemas.MessageOut)
def clear_logs(event_log: EventLog = Depends(get_event_log)):
    event_log.clear()
    logger.info("Event log cleared")
    return {"ok": True, "detail": "Logs cleared"}


# ---------- Redirects ----------
# Codes that collide with the app's own paths only resolve through /r/{code}
RESERVED = {"docs", "openapi.json", "redoc", "health", "links", "stats", "logs", "favicon.ico"}


def follow_link(code: str, request: Request, registry: LinkRegistry, event_log: EventLog) -> RedirectResponse:
    event_log.info("Redirect page accessed", {"shortCode": code}, "REDIRECT_PAGE_ACCESS")
    record = registry.lookup(code)
    if record is None:
        event_log.warn("Redirect attempted for non-existent URL", {"shortCode": code}, "REDIRECT_NOT_FOUND")
        raise HTTPException(status_code=404, detail=errors.LinkNotFound.default_message)
    try:
        registry.record_click(code, request.headers.get("user-agent"), request.headers.get("referer"))
    except Exception:
        logger.exception("Failed to record click for %s", code)
    return RedirectResponse(url=record.original_url, status_code=307)


@app.get("/r/{code}", include_in_schema=False)
def redirect_r(
    code: str,
    request: Request,
    registry: LinkRegistry = Depends(get_registry),
    event_log: EventLog = Depends(get_event_log),
):
    return follow_link(code, request, registry, event_log)


# Pretty redirect /{code}
@app.get("/{code}", include_in_schema=False)
def redirect_pretty(
    code: str,
    request: Request,
    registry: LinkRegistry = Depends(get_registry),
    event_log: EventLog = Depends(get_event_log),
):
    if code in RESERVED or not re.fullmatch(r"[A-Za-z0-9]{3,20}", code):
        raise HTTPException(status_code=404, detail="Not found")
    return follow_link(code, request, registry, event_log)


if __name__ == "__main__":
    uvicorn.run("quicklinks.main:app", reload=True, host="localhost", log_level="info")
