"""
HIV Resistance Report Service - FastAPI Application
=====================================================
Thin HTTP harness around the report pipeline: loads a patient record,
runs accumulate -> Sierra -> semaphore enrichment and returns the
enriched payload as JSON.

Every non-200 response carries ``{"error": true, "message": ...}``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import settings as _settings_instance
from src.metrics import get_metrics_text
from src.patient_store import PatientStore
from src.semaphore import DEFAULT_SEMAPHORE_CONFIG
from src.utils.sierra_client import SierraClient

from api.routes import patients, reports

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Global application state
# ---------------------------------------------------------------------------
_state: Dict[str, Any] = {}

VERSION = "0.1.0"


def get_state() -> Dict[str, Any]:
    """Return the shared application state dict."""
    return _state


def error_response(status_code: int, message: str) -> JSONResponse:
    """JSON error body shared by every non-200 response."""
    return JSONResponse(
        status_code=status_code,
        content={"error": True, "message": message},
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle for the report service."""
    logger.info("HIV resistance report service starting up ...")

    settings = _settings_instance
    _state["settings"] = settings

    # -- Sierra ------------------------------------------------------------
    http_client = httpx.AsyncClient(timeout=settings.SIERRA_TIMEOUT)
    _state["http_client"] = http_client
    _state["sierra_client"] = SierraClient(
        url=settings.SIERRA_URL,
        http_client=http_client,
        operation_name=settings.SIERRA_OPERATION_NAME,
    )

    # -- Patients ----------------------------------------------------------
    _state["patient_store"] = PatientStore(
        patient_dir=settings.PATIENT_DIR,
        summary_file=settings.PATIENT_SUMMARY_FILE,
    )

    # -- Semaphore ---------------------------------------------------------
    _state["semaphore_config"] = DEFAULT_SEMAPHORE_CONFIG

    logger.info("Sierra endpoint: %s; patients: %s",
                settings.SIERRA_URL, settings.PATIENT_DIR)

    yield  # --- application runs here ---

    logger.info("HIV resistance report service shutting down ...")
    try:
        await http_client.aclose()
    except Exception as exc:
        logger.warning("Error closing Sierra HTTP client: %s", exc)
    _state.clear()
    logger.info("Shutdown complete.")


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="HIV Resistance Report Service",
    description=(
        "Accumulated HIV drug-resistance mutations scored by Stanford "
        "HIVdb Sierra and cross-referenced with the active TARGA regimen."
    ),
    version=VERSION,
    lifespan=lifespan,
)

# -- CORS ------------------------------------------------------------------
_cors_origins = [
    o.strip() for o in _settings_instance.CORS_ORIGINS.split(",") if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -- Error bodies ----------------------------------------------------------
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s: %s", request.url.path, exc, exc_info=True)
    return error_response(500, str(exc) or "Internal server error")


# -- Include routers -------------------------------------------------------
app.include_router(reports.router)
app.include_router(patients.router)


# ---------------------------------------------------------------------------
# Core endpoints
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    """Service health check."""
    services = {
        "sierra_client": _state.get("sierra_client") is not None,
        "patient_store": _state.get("patient_store") is not None,
    }
    store = _state.get("patient_store")
    return {
        "status": "healthy" if all(services.values()) else "degraded",
        "version": VERSION,
        "sierra_url": _settings_instance.SIERRA_URL,
        "patient_dir_exists": bool(store and store.patient_dir.is_dir()),
        "services": services,
    }


@app.get("/metrics")
async def metrics():
    """Prometheus-compatible metrics endpoint."""
    if not _settings_instance.METRICS_ENABLED:
        return error_response(404, "Metrics are disabled")
    return PlainTextResponse(get_metrics_text(), media_type=CONTENT_TYPE_LATEST)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=_settings_instance.LOG_LEVEL)
    uvicorn.run(
        "api.main:app",
        host=_settings_instance.API_HOST,
        port=_settings_instance.API_PORT,
        reload=False,
        log_level=_settings_instance.LOG_LEVEL.lower(),
    )
