import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from app.api.v1.router import api_v1_router
from app.core.config import settings, validate_settings_for_production
from app.core.dependencies import get_job_runner
from app.core.logging import redact_secrets, setup_logging
from app.core.metrics import PrometheusMiddleware, metrics_response
from app.core.middleware import RequestLoggingMiddleware
from app.core.rate_limit import limiter
from app.core.sentry import init_sentry
from app.db.postgres import engine

# Configure logging before anything else
setup_logging()
init_sentry()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    validate_settings_for_production()
    logger.info("Starting AI Mention Tracker (job runner: %s)...", settings.job_runner)

    yield

    # Shutdown
    await get_job_runner().shutdown()
    await engine.dispose()
    logger.info("AI Mention Tracker shut down")


app = FastAPI(
    title="AI Mention Tracker",
    description="Tracks brand and competitor mentions across AI answer engines",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.app_debug else None,
    redoc_url="/api/redoc" if settings.app_debug else None,
)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = redact_secrets("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    logger.error("Unhandled %s on %s %s:\n%s", type(exc).__name__, request.method, request.url.path, tb)
    detail = f"{type(exc).__name__}: {redact_secrets(str(exc))}" if settings.app_debug else "Internal server error"
    return JSONResponse(status_code=500, content={"detail": detail})


# Rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request logging + metrics middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(PrometheusMiddleware)

# CORS: parse allowed_origins from settings (comma-separated)
_origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials="*" not in _origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(api_v1_router)


@app.get("/health")
async def health():
    postgres_ok = True
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check: database unavailable: %s", e)
        postgres_ok = False
    return {"status": "ok" if postgres_ok else "degraded", "postgres": postgres_ok}


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return metrics_response()
