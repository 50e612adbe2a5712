"""FastAPI endpoints for the Cosmic Lens API.

GET /apod - one day's record (cache-aside)
GET /apod/range - records between two dates, newest first
GET /apod/random - random sample of records
POST /explain - one-shot assistant explanation of a record
POST /chat/stream - streamed assistant reply via SSE
GET/PUT /settings - provider key and theme
GET /health - component health check
"""

import json
from datetime import date, datetime, timedelta, timezone

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from backend.agent.assistant import AssistantError
from backend.api.schemas import (
    ChatStreamRequest,
    DayRecord,
    ExplainRequest,
    ExplainResponse,
    SettingsResponse,
    SettingsUpdate,
)
from backend.core.apod_service import RemoteFetchError
from backend.core.settings import APOD_EARLIEST, AppSettings

logger = structlog.get_logger(__name__)

router = APIRouter()

CREDENTIAL_HINT = "Check settings to ensure API Key is valid."
GALLERY_DAYS = 20


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _check_published(day: date, field: str = "date") -> None:
    """Reject dates the provider cannot have published."""
    if day > _today():
        raise HTTPException(status_code=400, detail=f"{field} cannot be in the future.")
    if day < APOD_EARLIEST:
        raise HTTPException(status_code=400, detail=f"{field} must be on or after {APOD_EARLIEST.isoformat()}.")


def _settings_response(settings: AppSettings, assistant_configured: bool) -> SettingsResponse:
    key_set = not settings.using_demo_key
    return SettingsResponse(
        nasa_api_key_set=key_set,
        using_demo_key=settings.using_demo_key,
        nasa_api_key_hint=f"...{settings.nasa_api_key[-4:]}" if key_set else None,
        assistant_configured=assistant_configured,
        theme=settings.theme,
    )


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@router.get("/apod", response_model=DayRecord, response_model_exclude_unset=True)
async def get_apod(req: Request, day: date | None = Query(None, alias="date")):
    """Fetch one record; defaults to today (UTC)."""
    day = day or _today()
    _check_published(day)

    try:
        return await req.app.state.apod_service.get_by_date(day)
    except RemoteFetchError as e:
        raise HTTPException(status_code=502, detail=e.message)


@router.get("/apod/range", response_model=list[DayRecord], response_model_exclude_unset=True)
async def get_apod_range(
    req: Request,
    start_date: date | None = None,
    end_date: date | None = None,
):
    """Fetch a date range; defaults to the last GALLERY_DAYS days."""
    end_date = end_date or _today()
    start_date = start_date or end_date - timedelta(days=GALLERY_DAYS)
    _check_published(end_date, "end_date")
    _check_published(start_date, "start_date")
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date.")

    try:
        return await req.app.state.apod_service.get_by_range(start_date, end_date)
    except RemoteFetchError as e:
        raise HTTPException(status_code=502, detail=e.message)


@router.get("/apod/random", response_model=list[DayRecord], response_model_exclude_unset=True)
async def get_apod_random(req: Request, count: int = Query(5, ge=1, le=100)):
    """Fetch a random, uncached sample."""
    try:
        return await req.app.state.apod_service.get_random_sample(count)
    except RemoteFetchError as e:
        raise HTTPException(status_code=502, detail=e.message)


@router.post("/explain", response_model=ExplainResponse)
async def explain(request: ExplainRequest, req: Request):
    """Ask the assistant about a record in a single turn."""
    assistant = req.app.state.assistant
    logger.info("explain.request", date=request.record.date, has_question=bool(request.question))

    try:
        text = await assistant.explain(request.record, request.question)
    except AssistantError as e:
        raise HTTPException(status_code=503, detail=f"{e} {CREDENTIAL_HINT}")

    return ExplainResponse(date=request.record.date, text=text)


@router.post("/chat/stream")
async def chat_stream(request: ChatStreamRequest, req: Request):
    """Stream the assistant's reply as SSE events: start, fragment*, done | error."""
    assistant = req.app.state.assistant
    logger.info("chat_stream.request", session_id=request.session_id,
                date=request.record.date, msg_len=len(request.message))

    async def generate_events():
        yield _sse({"type": "start", "date": request.record.date})
        try:
            async for fragment in assistant.stream_reply(request.history, request.message, request.record):
                yield _sse({"type": "fragment", "content": fragment})
        except AssistantError as e:
            yield _sse({"type": "error", "content": str(e), "hint": CREDENTIAL_HINT})
            return
        yield _sse({"type": "done"})

    return StreamingResponse(generate_events(), media_type="text/event-stream")


@router.get("/settings", response_model=SettingsResponse)
def get_settings(req: Request):
    """Current effective settings."""
    settings = req.app.state.settings_store.current()
    return _settings_response(settings, req.app.state.assistant.is_healthy())


@router.put("/settings", response_model=SettingsResponse)
def update_settings(update: SettingsUpdate, req: Request):
    """Persist settings; the APOD client picks up a new key immediately."""
    settings = req.app.state.settings_store.update(
        nasa_api_key=update.nasa_api_key,
        theme=update.theme,
    )
    return _settings_response(settings, req.app.state.assistant.is_healthy())


@router.get("/health")
def health(req: Request):
    """Check health of all backend components."""
    components = {}

    apod_service = req.app.state.apod_service
    components["nasa"] = "demo" if apod_service.using_demo_key else "ok"

    components["gemini"] = "ok" if req.app.state.assistant.is_healthy() else "error"

    components["store"] = "ok" if req.app.state.store.is_healthy() else "error"

    errors = [k for k, v in components.items() if v == "error"]
    if not errors:
        status = "healthy"
    elif len(errors) == len(components):
        status = "unhealthy"
    else:
        status = "degraded"

    return {"status": status, "components": components}


@router.get("/")
@router.head("/")
def root_health():
    """Basic root health check for deployment platforms."""
    return {"status": "ok", "service": "cosmic-lens-api"}
