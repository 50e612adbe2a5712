"""FastAPI application entry point.

Startup sequence: read settings → open key-value store → build APOD client
→ build assistant. The APOD client subscribes to settings changes so a new
provider key applies without a restart.
"""

import json
import os
import time
from collections import defaultdict
from contextlib import asynccontextmanager

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import JSONResponse

from backend.agent.assistant import CosmosAssistant
from backend.api.routes import router
from backend.core.apod_service import ApodService
from backend.core.kv_store import KeyValueStore
from backend.core.settings import AppSettings, SettingsStore

load_dotenv()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("startup.begin")

    defaults = AppSettings.from_env()

    store = KeyValueStore(defaults.database_url)
    app.state.store = store

    settings_store = SettingsStore(store, defaults)
    app.state.settings_store = settings_store
    settings = settings_store.current()
    logger.info("startup.settings_loaded", using_demo_key=settings.using_demo_key)

    apod_service = ApodService(
        store,
        api_key=settings.nasa_api_key,
        base_url=settings.nasa_api_base,
        timeout=settings.nasa_timeout,
    )
    settings_store.subscribe(lambda s: apod_service.configure(s.nasa_api_key))
    app.state.apod_service = apod_service

    assistant = CosmosAssistant(api_key=settings.gemini_api_key, model=settings.gemini_model)
    app.state.assistant = assistant
    if not assistant.is_healthy():
        logger.warning("startup.assistant_unconfigured", hint="Set GEMINI_API_KEY in .env")

    logger.info("startup.complete")
    yield

    await apod_service.aclose()
    store.dispose()
    logger.info("shutdown.complete")


app = FastAPI(
    title="Cosmic Lens API",
    description="Astronomy Picture of the Day viewer with an AI astronomer",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for Streamlit frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiter: per-session throttling of assistant calls (they spend Gemini quota)
RATE_LIMIT = int(os.environ.get("RATE_LIMIT_PER_MIN", "10"))
RATE_LIMITED_PATHS = {"/chat/stream", "/explain"}
_rate_buckets: dict[str, list[float]] = defaultdict(list)


def _prune_rate_buckets(now: float) -> None:
    """Drop timestamps older than the window, and sessions left with none."""
    for session_id in list(_rate_buckets):
        window = [t for t in _rate_buckets[session_id] if now - t < 60]
        if window:
            _rate_buckets[session_id] = window
        else:
            del _rate_buckets[session_id]


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Enforce per-session rate limiting on the assistant endpoints."""
    if request.url.path not in RATE_LIMITED_PATHS or request.method != "POST":
        return await call_next(request)

    body = await request.body()
    try:
        data = json.loads(body)
        session_id = data.get("session_id") or request.client.host
    except (ValueError, AttributeError):
        session_id = "unknown"

    now = time.monotonic()
    _prune_rate_buckets(now)
    window = _rate_buckets[session_id]

    if len(window) >= RATE_LIMIT:
        logger.warning("rate_limit.exceeded", session_id=session_id, path=request.url.path)
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please wait a moment."},
        )

    window.append(now)

    # The body stream is consumed; replay it for the endpoint
    async def receive_body():
        return {"type": "http.request", "body": body}

    return await call_next(StarletteRequest(request.scope, receive_body))


app.include_router(router)
