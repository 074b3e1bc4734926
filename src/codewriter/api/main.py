from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from ..config import get_settings
from ..infrastructure.session_store import SessionSweeper, get_session_store
from ..observability.metrics import metrics_middleware_factory
from .routers.builder import router as builder_router
from .routers.codewriter import router as codewriter_router

load_dotenv()  # Load environment variables from .env if present (MISTRAL_API_KEY, OPENAI_API_KEY, etc.)

LOG = logging.getLogger("codewriter.api")

APP_NAME = "CodeWriter Studio API"
APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    sweeper = SessionSweeper(get_session_store(), get_settings().sweep_interval_seconds)
    sweeper.start()
    LOG.info("session_sweeper_started")
    try:
        yield
    finally:
        sweeper.stop()
        LOG.info("session_sweeper_stopped")


app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

# Routers
app.include_router(codewriter_router)
app.include_router(builder_router)

# Also expose the same routers under /api
app.include_router(codewriter_router, prefix="/api")
app.include_router(builder_router, prefix="/api")

# CORS (for the web client dev server on localhost:3000 / 5173)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _health() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "sessions": "in-memory",
            "active_sessions": get_session_store().count(),
        },
    }


@app.get("/")
def root():
    return {"name": APP_NAME, "version": APP_VERSION}


@app.get("/health")
def health():
    return _health()


@app.get("/metrics")
def metrics() -> Response:
    # Expose Prometheus metrics
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


# API-prefixed convenience routes (kept alongside non-prefixed routes)
@app.get("/api")
def api_root():
    return {"name": APP_NAME, "version": APP_VERSION}


@app.get("/api/health")
def api_health():
    return _health()


@app.get("/api/metrics")
def api_metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
