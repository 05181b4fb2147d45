"""FastAPI backend for the bulk print-on-demand product creator."""

import logging
import sys
import time
from collections import defaultdict
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from podflow.config import get_settings

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

settings = get_settings()

app = FastAPI(
    title="Podflow API",
    description="Bulk product creation jobs for print-on-demand shops.",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)


# ---------------------------------------------------------------------------
# Basic in-memory rate limiter (per IP, 30 requests / 60 s for mutating routes)
# ---------------------------------------------------------------------------
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_MAX = 30  # max requests per window
_rate_store: dict[str, list[float]] = defaultdict(list)


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Sliding-window rate limiter for non-GET routes."""
    if request.method in ("GET", "HEAD", "OPTIONS"):
        return await call_next(request)

    client_ip = request.client.host if request.client else "unknown"
    now = time.time()
    recent = [t for t in _rate_store[client_ip] if now - t < RATE_LIMIT_WINDOW]
    if len(recent) >= RATE_LIMIT_MAX:
        _rate_store[client_ip] = recent
        return Response(
            content='{"detail":"Rate limit exceeded. Try again later."}',
            status_code=429,
            media_type="application/json",
        )
    recent.append(now)
    _rate_store[client_ip] = recent
    return await call_next(request)


# ---------------------------------------------------------------------------
# CORS: added last so it is the outermost middleware and 429s carry headers.
# ---------------------------------------------------------------------------
cors_origins = settings.cors_origin_list
cors_origin_regex = settings.cors_origin_regex
logger.info("CORS configured for origins: %s", cors_origins)
if cors_origin_regex:
    logger.info("CORS origin regex: %s", cors_origin_regex)

logger.info(
    "Job store: %s",
    "Postgres" if settings.pod_database_url else f"files under {settings.jobs_dir}",
)

cors_kw: dict = {
    "allow_origins": cors_origins,
    "allow_credentials": True,
    "allow_methods": ["*"],
    "allow_headers": ["*"],
}
if cors_origin_regex:
    cors_kw["allow_origin_regex"] = cors_origin_regex
app.add_middleware(CORSMiddleware, **cors_kw)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
class HealthResponse(BaseModel):
    status: str
    data_dir: str
    job_store: str


@app.get("/health", response_model=HealthResponse)
@app.get("/api/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        data_dir=str(settings.data_dir),
        job_store="postgres" if settings.pod_database_url else "file",
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
from backend.routes import jobs  # noqa: E402

app.include_router(jobs.router, prefix="/api", tags=["jobs"])
